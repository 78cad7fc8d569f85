# ===== IMPORTS & DEPENDENCIES =====
import logging
import os
import aiohttp
from typing import Dict, List, Optional
from urllib.parse import urlencode

from catalog_populator.core.base_client import BaseWebClient
from catalog_populator.core.errors import RemoteApiError
from catalog_populator.models.game import RawProduct
from catalog_populator.config import CATALOG_API_URL, CACHE_DIR, DEFAULT_CACHE_TTL

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC =====
class CatalogClient(BaseWebClient):
    """Fetches a product listing from the GOG catalog API."""

    def __init__(self, session: aiohttp.ClientSession, api_url: str = CATALOG_API_URL, cache_ttl: int = DEFAULT_CACHE_TTL):
        super().__init__(
            session=session,
            cache_dir=os.path.join(CACHE_DIR, "catalog"),
            cache_ttl=cache_ttl
        )
        self.api_url = api_url

    def build_url(self, params: Optional[Dict[str, str]] = None) -> str:
        if not params:
            return self.api_url
        return f"{self.api_url}?{urlencode(params)}"

    async def fetch_catalog(self, params: Optional[Dict[str, str]] = None) -> List[RawProduct]:
        """
        Issues one catalog query with `params` passed through as the query string.
        Raises NetworkError or RemoteApiError if the listing cannot be obtained.
        """
        url = self.build_url(params)
        logger.info(f"🚀 [{self.__class__.__name__}] Fetching catalog: {url}")

        response_data = await self._fetch(url)
        if not isinstance(response_data, dict) or not isinstance(response_data.get('products'), list):
            raise RemoteApiError(f"Catalog response from {url} has no 'products' list", url=url)

        products: List[RawProduct] = [p for p in response_data['products'] if isinstance(p, dict) and p.get('title')]
        skipped = len(response_data['products']) - len(products)
        if skipped:
            logger.warning(f"⚠️ [{self.__class__.__name__}] Skipped {skipped} catalog entries without a title.")

        logger.info(f"✅ [{self.__class__.__name__}] Received {len(products)} products from the catalog.")
        if products:
            logger.debug(f"[{self.__class__.__name__}] First product: {products[0]}")
        return products
