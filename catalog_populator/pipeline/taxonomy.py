# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
from typing import Dict, List, Tuple

from catalog_populator.config import TAXONOMY_ENTITY_TYPES
from catalog_populator.core.store import RecordStore
from catalog_populator.models.game import RawProduct, TaxonomyRecord, ItemResult, RunReport
from catalog_populator.utils.product_utils import extract_taxonomy

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC =====
class EntityDeduplicator:
    """Makes sure every developer, publisher, category and platform named by the products exists once in the store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def collect(self, products: List[RawProduct]) -> List[Tuple[str, TaxonomyRecord]]:
        """Scans the products once and returns distinct (entity_type, record) pairs in first-seen order."""
        seen: Dict[Tuple[str, str], TaxonomyRecord] = {}
        for product in products:
            for entity_type, records in extract_taxonomy(product).items():
                for record in records:
                    seen.setdefault((entity_type, record['name']), record)

        ordered = sorted(seen.items(), key=lambda item: TAXONOMY_ENTITY_TYPES.index(item[0][0]))
        return [(entity_type, record) for (entity_type, _), record in ordered]

    async def _ensure_one(self, entity_type: str, record: TaxonomyRecord) -> ItemResult:
        stored, created = await self.store.get_or_create(entity_type, {'name': record['name'], 'slug': record['slug']})
        # Under the merge policy `stored` may carry another name; the id links this name to it
        return ItemResult(entity_type=entity_type, name=record['name'], id=stored.get('id'), ok=True, created=created, error=None)

    async def ensure_taxonomy(self, products: List[RawProduct]) -> RunReport:
        """
        Get-or-creates every referenced taxonomy record concurrently and waits
        for all of them to settle. A failing item is logged and reported; it
        never aborts the rest of the batch.
        """
        pending = self.collect(products)
        logger.info(f"--- Ensuring {len(pending)} taxonomy records from {len(products)} products ---")

        results = await asyncio.gather(
            *(self._ensure_one(entity_type, record) for entity_type, record in pending),
            return_exceptions=True
        )

        report = RunReport()
        for (entity_type, record), result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.error(f"❌ [{self.__class__.__name__}] Failed to ensure {entity_type} '{record['name']}': {result}")
                report.add(ItemResult(entity_type=entity_type, name=record['name'], ok=False, created=False, error=str(result)))
            else:
                report.add(result)

        logger.info(f"[{self.__class__.__name__}] Taxonomy done: {report.summary()}")
        return report
