# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
import os
import aiohttp
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qsl

# --- Configuration ---
from catalog_populator.config import (
    LOG_LEVEL, STORE_BACKEND, DATABASE_PATH, CMS_URL, CATALOG_QUERY, SLUG_COLLISION_POLICY,
)

# --- Core Components ---
from catalog_populator.core.cms_client import CmsRecordStore, CmsUploadSink
from catalog_populator.core.database import SqliteRecordStore
from catalog_populator.core.store import RecordStore, UploadSink

# --- Data Models ---
from catalog_populator.models.game import RunReport

# --- Data Sources ---
from catalog_populator.sources.gog_catalog import CatalogClient

# --- Enrichment Services ---
from catalog_populator.enrichment.detail_enricher import DetailEnricher
from catalog_populator.enrichment.image_relay import ImageRelay

# --- Pipeline Stages ---
from catalog_populator.pipeline.taxonomy import EntityDeduplicator
from catalog_populator.pipeline.game_ingestor import GameIngestor

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC / PIPELINE =====
class CatalogPipeline:
    """Orchestrates fetching the catalog, creating taxonomy records and ingesting games."""

    def __init__(
        self,
        store: RecordStore,
        sink: UploadSink,
        session: aiohttp.ClientSession,
        catalog_client: Optional[CatalogClient] = None,
        ingestor: Optional[GameIngestor] = None,
    ):
        self.store = store
        self.session = session

        # Initialize all components, injecting the shared session and store
        self.catalog_client = catalog_client or CatalogClient(session)
        self.deduplicator = EntityDeduplicator(store)
        self.ingestor = ingestor or GameIngestor(
            store,
            detail_enricher=DetailEnricher(session),
            image_relay=ImageRelay(session, sink),
        )

    async def run(self, params: Optional[Dict[str, str]] = None) -> Optional[RunReport]:
        """
        Executes the complete population run. Returns the run report, or None
        when the run was aborted; failures are logged and never re-raised.
        """
        logger.info("🚀🚀🚀 Starting Catalog Population 🚀🚀🚀")
        try:
            logger.info("--- Step 1: Fetching the product catalog ---")
            products = await self.catalog_client.fetch_catalog(params)
            if not products:
                logger.info("No products returned by the catalog. Nothing to do.")
                return RunReport()

            logger.info("--- Step 2: Creating developers, publishers, categories and platforms ---")
            report = await self.deduplicator.ensure_taxonomy(products)

            # Games are only created once every taxonomy record has settled
            logger.info("--- Step 3: Creating games and relaying images ---")
            report.extend(await self.ingestor.ingest(products, report.record_ids()))
        except Exception as e:
            logger.critical(f"🔥🔥🔥 A critical error occurred in the population run: {e}", exc_info=True)
            return None

        failures = report.failures()
        if failures:
            logger.warning(f"⚠️ {len(failures)} items failed: " + ", ".join(f"{f['entity_type']} '{f['name']}'" for f in failures))
        logger.info(f"🏁🏁🏁 Population finished: {report.summary()} 🏁🏁🏁")
        return report


def parse_catalog_query(query: str) -> Dict[str, str]:
    """Turns 'limit=48&order=desc:trending' into {'limit': '48', 'order': 'desc:trending'}."""
    return dict(parse_qsl(query or "", keep_blank_values=True))


def build_backend(session: aiohttp.ClientSession, backend: str = STORE_BACKEND) -> Tuple[RecordStore, UploadSink]:
    """Returns the (record store, upload sink) pair selected by STORE_BACKEND."""
    if backend == "cms":
        return CmsRecordStore(session, CMS_URL, slug_policy=SLUG_COLLISION_POLICY), CmsUploadSink(session, CMS_URL)
    if backend == "sqlite":
        store = SqliteRecordStore(DATABASE_PATH, slug_policy=SLUG_COLLISION_POLICY)
        return store, store
    raise ValueError(f"Unknown STORE_BACKEND '{backend}', expected 'sqlite' or 'cms'")

# ===== INITIALIZATION & STARTUP =====
async def main():
    """Initializes and runs the CatalogPipeline."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    async with aiohttp.ClientSession() as session:
        store, sink = build_backend(session)
        pipeline = CatalogPipeline(store, sink, session)
        await pipeline.run(parse_catalog_query(CATALOG_QUERY))


def run():
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())


if __name__ == "__main__":
    run()
