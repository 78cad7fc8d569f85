# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from catalog_populator.config import (
    GAME_ENTITY_TYPE, GAME_RELATIONS, MAX_CONCURRENT_PRODUCTS, MAX_GALLERY_IMAGES, PACING_DELAY,
)
from catalog_populator.core.store import RecordStore
from catalog_populator.enrichment.detail_enricher import DetailEnricher
from catalog_populator.enrichment.image_relay import ImageRelay
from catalog_populator.models.game import RawProduct, GameRecord, ItemResult, RunReport
from catalog_populator.utils.product_utils import extract_taxonomy, parse_price, normalize_release_date
from catalog_populator.utils.slug import game_slug

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC =====
class GameIngestor:
    """
    Creates one game record per product, linked to taxonomy records that
    must already exist, then relays the cover and gallery images.

    Products run concurrently, at most `max_concurrency` at a time; each
    created game holds its slot for `pacing_delay` seconds after finishing
    so the detail and image hosts see a bounded request rate.
    """

    def __init__(
        self,
        store: RecordStore,
        detail_enricher: DetailEnricher,
        image_relay: ImageRelay,
        pacing_delay: float = PACING_DELAY,
        max_gallery_images: int = MAX_GALLERY_IMAGES,
        max_concurrency: int = MAX_CONCURRENT_PRODUCTS,
    ):
        self.store = store
        self.detail_enricher = detail_enricher
        self.image_relay = image_relay
        self.pacing_delay = pacing_delay
        self.max_gallery_images = max_gallery_images
        self.max_concurrency = max(1, max_concurrency)

    async def _resolve_relations(self, product: RawProduct, known_ids: Dict[Tuple[str, str], Any]) -> Dict[str, List[Any]]:
        """
        Maps each referenced taxonomy name to a record id. Names settled by the
        taxonomy phase use the id it resolved to, which also covers names merged
        into another record by slug; other names are looked up by name and
        dropped from the relation when missing.
        """
        refs = extract_taxonomy(product)
        relations: Dict[str, List[Any]] = {}
        for relation, entity_type in GAME_RELATIONS.items():
            unknown = [ref for ref in refs[entity_type] if (entity_type, ref['name']) not in known_ids]
            records = await asyncio.gather(
                *(self.store.find_by_name(entity_type, ref['name']) for ref in unknown)
            )
            found = {ref['name']: record for ref, record in zip(unknown, records)}

            ids = []
            for ref in refs[entity_type]:
                record_id = known_ids.get((entity_type, ref['name']))
                if record_id is None:
                    record = found.get(ref['name'])
                    if record is None:
                        logger.warning(f"⚠️ [{self.__class__.__name__}] {entity_type} '{ref['name']}' not found for '{product.get('title')}'. Relation skipped.")
                        continue
                    record_id = record['id']
                if record_id not in ids:
                    ids.append(record_id)
            relations[relation] = ids
        return relations

    async def _build_game(self, product: RawProduct, known_ids: Dict[Tuple[str, str], Any]) -> Dict:
        slug = game_slug(product.get('slug', ''))
        fields = {
            'name': product['title'],
            'slug': slug,
            'price': parse_price(product),
            'release_date': normalize_release_date(product.get('releaseDate')),
        }
        fields.update(await self._resolve_relations(product, known_ids))

        details = await self.detail_enricher.fetch_details(slug)
        if details:
            fields.update(details)
        return fields

    async def _relay_images(self, product: RawProduct, game: GameRecord) -> None:
        await self.image_relay.relay_image(product.get('coverHorizontal'), game, field="cover")
        for url in (product.get('screenshots') or [])[:self.max_gallery_images]:
            await self.image_relay.relay_image(url, game, field="gallery")

    async def ingest_one(self, product: RawProduct, known_ids: Optional[Dict[Tuple[str, str], Any]] = None) -> ItemResult:
        """Creates the game for one product unless a game with its title already exists."""
        title = product['title']
        existing = await self.store.find_by_name(GAME_ENTITY_TYPE, title)
        if existing:
            logger.info(f"ℹ️ [{self.__class__.__name__}] Skipping '{title}' (already exists).")
            return ItemResult(entity_type=GAME_ENTITY_TYPE, name=title, id=existing.get('id'), ok=True, created=False, error=None)

        logger.info(f"[{self.__class__.__name__}] Creating: {title}...")
        fields = await self._build_game(product, known_ids or {})
        game, created = await self.store.get_or_create(GAME_ENTITY_TYPE, fields)
        if created:
            await self._relay_images(product, game)
        return ItemResult(entity_type=GAME_ENTITY_TYPE, name=title, id=game.get('id'), ok=True, created=created, error=None)

    async def _paced(self, semaphore: asyncio.Semaphore, product: RawProduct, known_ids: Dict[Tuple[str, str], Any]) -> ItemResult:
        async with semaphore:
            result = None
            try:
                result = await self.ingest_one(product, known_ids)
                return result
            finally:
                # Skipped products made no detail or image requests
                if result is None or result.get('created'):
                    await asyncio.sleep(self.pacing_delay)

    async def ingest(self, products: List[RawProduct], known_ids: Optional[Dict[Tuple[str, str], Any]] = None) -> RunReport:
        """
        Ingests every product, isolating failures so one bad product never drops its siblings.
        `known_ids` is the (entity_type, name) -> id map from the taxonomy phase.
        """
        logger.info(f"--- Ingesting {len(products)} games (concurrency {self.max_concurrency}) ---")
        semaphore = asyncio.Semaphore(self.max_concurrency)
        known_ids = known_ids or {}
        results = await asyncio.gather(
            *(self._paced(semaphore, product, known_ids) for product in products),
            return_exceptions=True
        )

        report = RunReport()
        for product, result in zip(products, results):
            if isinstance(result, BaseException):
                logger.error(f"❌ [{self.__class__.__name__}] Failed to ingest '{product.get('title')}': {result}", exc_info=result)
                report.add(ItemResult(entity_type=GAME_ENTITY_TYPE, name=product.get('title'), ok=False, created=False, error=str(result)))
            else:
                report.add(result)

        logger.info(f"[{self.__class__.__name__}] Games done: {report.summary()}")
        return report
