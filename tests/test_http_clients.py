"""
Tests for the aiohttp-based clients against local aiohttp test servers:
catalog client, detail enricher, image relay and the CMS REST store.
"""
import asyncio
import os
import tempfile
import unittest

import aiohttp
from aiohttp import test_utils

from catalog_populator.core.cms_client import CmsRecordStore, CmsUploadSink
from catalog_populator.core.database import SqliteRecordStore
from catalog_populator.core.errors import RemoteApiError, StoreError
from catalog_populator.enrichment.detail_enricher import DetailEnricher
from catalog_populator.enrichment.image_relay import ImageRelay
from catalog_populator.main import CatalogPipeline
from catalog_populator.pipeline.game_ingestor import GameIngestor
from catalog_populator.sources.gog_catalog import CatalogClient
from tests.fakes import FOO_BAR, IMAGE_BYTES, make_cms_app, make_storefront_app


class ServerTestCase(unittest.IsolatedAsyncioTestCase):
    """Starts the fake storefront and CMS servers and a shared client session."""

    products = [FOO_BAR]

    async def asyncSetUp(self):
        self.storefront_app = make_storefront_app(self.products)
        self.storefront = test_utils.TestServer(self.storefront_app)
        await self.storefront.start_server()
        self.cms_app = make_cms_app()
        self.cms = test_utils.TestServer(self.cms_app)
        await self.cms.start_server()
        self.session = aiohttp.ClientSession()

    async def asyncTearDown(self):
        await self.session.close()
        await self.storefront.close()
        await self.cms.close()

    def storefront_url(self, path: str) -> str:
        # Plain concatenation keeps '{slug}' and '{formatter}' placeholders unencoded
        return str(self.storefront.make_url("")).rstrip("/") + path

    def cms_url(self) -> str:
        return str(self.cms.make_url("")).rstrip("/")


class TestCatalogClient(ServerTestCase):

    async def test_returns_products_and_passes_params_through(self):
        client = CatalogClient(self.session, api_url=self.storefront_url("/v1/catalog"), cache_ttl=0)
        products = await client.fetch_catalog({"limit": "48", "order": "desc:trending"})

        self.assertEqual([p["title"] for p in products], ["Foo Bar"])
        self.assertIn(("catalog", {"limit": "48", "order": "desc:trending"}), self.storefront_app["log"])

    async def test_payload_without_products_raises_remote_api_error(self):
        client = CatalogClient(self.session, api_url=self.storefront_url("/broken/catalog"), cache_ttl=0)
        with self.assertRaises(RemoteApiError):
            await client.fetch_catalog({})

    async def test_not_found_raises_remote_api_error(self):
        client = CatalogClient(self.session, api_url=self.storefront_url("/nowhere"), cache_ttl=0)
        with self.assertRaises(RemoteApiError) as ctx:
            await client.fetch_catalog({})
        self.assertEqual(ctx.exception.status, 404)


class TestDetailEnricher(ServerTestCase):

    def enricher(self) -> DetailEnricher:
        return DetailEnricher(self.session, page_url=self.storefront_url("/game/{slug}"), cache_ttl=0)

    async def test_extracts_short_and_full_description(self):
        details = await self.enricher().fetch_details("foo_bar")

        self.assertEqual(details["short_description"], "Foo Bar is a fast game.")
        self.assertIn("<b>fast</b>", details["description"])
        self.assertIn("<p>", details["description"])

    async def test_short_description_is_capped(self):
        enricher = self.enricher()
        long_text = "word " * 100
        details = enricher._parse_description(f"<div class='description'>{long_text}</div>")
        self.assertEqual(len(details["short_description"]), 160)

    async def test_page_without_description_returns_none(self):
        self.assertIsNone(await self.enricher().fetch_details("plain_page"))

    async def test_missing_page_returns_none(self):
        self.assertIsNone(await self.enricher().fetch_details("missing"))


class TestImageRelay(ServerTestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.sink = SqliteRecordStore(os.path.join(self._tmp.name, "catalog.db"))

    def tearDown(self):
        self._tmp.cleanup()

    async def test_gallery_url_formatter_token_is_stripped(self):
        relay = ImageRelay(self.session, self.sink)
        url = self.storefront_url("/images/shot1_{formatter}")

        ok = await relay.relay_image(url, {"id": 7, "slug": "foo_bar"}, field="gallery")

        self.assertTrue(ok)
        self.assertIn(("image", "shot1"), self.storefront_app["log"])
        uploads = self.sink.get_uploads(7, "gallery")
        self.assertEqual([(u["filename"], u["data"]) for u in uploads], [("foo_bar.jpg", IMAGE_BYTES)])

    async def test_cover_url_is_used_verbatim(self):
        self.assertEqual(ImageRelay.resolve_url("https://x/a_{formatter}.jpg", "cover"), "https://x/a_{formatter}.jpg")
        self.assertEqual(ImageRelay.resolve_url("https://x/a_{formatter}.jpg", "gallery"), "https://x/a.jpg")

    async def test_missing_image_is_logged_and_reported(self):
        relay = ImageRelay(self.session, self.sink)
        with self.assertLogs("catalog_populator.enrichment.image_relay", level="ERROR"):
            ok = await relay.relay_image(self.storefront_url("/images/missing.jpg"), {"id": 7, "slug": "foo_bar"})
        self.assertFalse(ok)
        self.assertEqual(self.sink.get_uploads(7), [])


class TestCmsBackend(ServerTestCase):

    async def test_get_or_create_is_idempotent(self):
        store = CmsRecordStore(self.session, self.cms_url())
        first, created_first = await store.get_or_create("developer", {"name": "Acme", "slug": "acme"})
        second, created_second = await store.get_or_create("developer", {"name": "Acme", "slug": "acme"})

        self.assertTrue(created_first)
        self.assertFalse(created_second)
        self.assertEqual(first["id"], second["id"])
        self.assertEqual(len(self.cms_app["records"]["developers"]), 1)

    async def test_concurrent_get_or_create_tolerates_conflicts(self):
        store = CmsRecordStore(self.session, self.cms_url())
        results = await asyncio.gather(
            *(store.get_or_create("platform", {"name": "Windows", "slug": "windows"}) for _ in range(5))
        )
        self.assertEqual(len({record["id"] for record, _ in results}), 1)
        self.assertEqual(len(self.cms_app["records"]["platforms"]), 1)

    async def test_error_slug_policy_raises(self):
        store = CmsRecordStore(self.session, self.cms_url(), slug_policy="error")
        await store.get_or_create("category", {"name": "Co-op", "slug": "co-op"})
        with self.assertRaises(StoreError):
            await store.get_or_create("category", {"name": "Co op", "slug": "co-op"})

    async def test_enveloped_lookup_response_raises_store_error(self):
        wrapped = test_utils.TestServer(make_cms_app(wrap_lookups=True))
        await wrapped.start_server()
        try:
            store = CmsRecordStore(self.session, str(wrapped.make_url("")).rstrip("/"))
            with self.assertRaises(StoreError):
                await store.find_by_name("developer", "Acme")
        finally:
            await wrapped.close()

    async def test_upload_sends_multipart_fields(self):
        sink = CmsUploadSink(self.session, self.cms_url())
        await sink.upload(3, "game", "gallery", "foo_bar.jpg", IMAGE_BYTES)
        await sink.upload(3, "game", "gallery", "foo_bar.jpg", IMAGE_BYTES)

        self.assertEqual(len(self.cms_app["uploads"]), 2)
        upload = self.cms_app["uploads"][0]
        self.assertEqual((upload["refId"], upload["ref"], upload["field"]), ("3", "game", "gallery"))
        self.assertEqual((upload["filename"], upload["data"]), ("foo_bar.jpg", IMAGE_BYTES))


class TestEndToEnd(ServerTestCase):

    products = [dict(
        FOO_BAR,
        coverHorizontal=None,
        screenshots=[],
    )]

    async def test_full_run_against_cms(self):
        self.products[0]["coverHorizontal"] = self.storefront_url("/images/cover")
        self.products[0]["screenshots"] = [self.storefront_url("/images/missing_{formatter}")] + [
            self.storefront_url(f"/images/shot{i}_{{formatter}}") for i in range(6)
        ]

        store = CmsRecordStore(self.session, self.cms_url())
        sink = CmsUploadSink(self.session, self.cms_url())
        ingestor = GameIngestor(
            store,
            DetailEnricher(self.session, page_url=self.storefront_url("/game/{slug}"), cache_ttl=0),
            ImageRelay(self.session, sink),
            pacing_delay=0,
        )
        pipeline = CatalogPipeline(
            store, sink, self.session,
            catalog_client=CatalogClient(self.session, api_url=self.storefront_url("/v1/catalog"), cache_ttl=0),
            ingestor=ingestor,
        )

        report = await pipeline.run({"limit": "1"})

        self.assertEqual(report.failures(), [])
        games = self.cms_app["records"]["games"]
        self.assertEqual(len(games), 1)
        game = games[0]
        self.assertEqual((game["name"], game["slug"], game["price"]), ("Foo Bar", "foo_bar", 9.99))
        self.assertEqual(game["short_description"], "Foo Bar is a fast game.")
        for relation, collection in [("categories", "categories"), ("platforms", "platforms"),
                                     ("developers", "developers"), ("publishers", "publishers")]:
            self.assertEqual(game[relation], [self.cms_app["records"][collection][0]["id"]])

        # cover plus four of the first five screenshots; the 404 one is skipped
        fields = [u["field"] for u in self.cms_app["uploads"]]
        self.assertEqual(fields, ["cover"] + ["gallery"] * 4)

        second = await pipeline.run({"limit": "1"})
        self.assertEqual(second.created("game"), [])
        self.assertEqual(len(self.cms_app["records"]["games"]), 1)


if __name__ == "__main__":
    unittest.main()
