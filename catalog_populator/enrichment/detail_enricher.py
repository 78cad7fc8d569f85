# ===== IMPORTS & DEPENDENCIES =====
import logging
import os
import aiohttp
from typing import Optional, Dict
from bs4 import BeautifulSoup

from catalog_populator.core.base_client import BaseWebClient
from catalog_populator.core.errors import ParseError
from catalog_populator.config import (
    DETAIL_PAGE_URL, DESCRIPTION_SELECTOR, SHORT_DESCRIPTION_LENGTH,
    CACHE_DIR, DEFAULT_CACHE_TTL,
)

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC =====
class DetailEnricher(BaseWebClient):
    """Scrapes a game's description from its storefront product page."""

    def __init__(self, session: aiohttp.ClientSession, page_url: str = DETAIL_PAGE_URL, cache_ttl: int = DEFAULT_CACHE_TTL):
        super().__init__(
            session=session,
            cache_dir=os.path.join(CACHE_DIR, "details"),
            cache_ttl=cache_ttl
        )
        self.page_url = page_url

    def _parse_description(self, html_content: str) -> Dict[str, str]:
        """Extracts the description block's plain text and inner markup."""
        soup = BeautifulSoup(html_content, 'lxml')
        description_tag = soup.select_one(DESCRIPTION_SELECTOR)
        if not description_tag:
            raise ParseError(f"No '{DESCRIPTION_SELECTOR}' element on the page")

        return {
            'short_description': description_tag.get_text().strip()[:SHORT_DESCRIPTION_LENGTH],
            'description': description_tag.decode_contents(),
        }

    async def fetch_details(self, slug: str) -> Optional[Dict[str, str]]:
        """
        Returns {short_description, description} for the product page of `slug`,
        or None when the page cannot be fetched or has no description.
        Never raises.
        """
        url = self.page_url.format(slug=slug)
        try:
            html_content = await self._fetch(url, response_type='text', headers={'Accept': 'text/html'})
            details = self._parse_description(html_content or "")
        except ParseError as e:
            logger.warning(f"⚠️ [{self.__class__.__name__}] {e} for '{slug}' ({url}).")
            return None
        except Exception as e:
            logger.error(f"❌ [{self.__class__.__name__}] Failed to fetch details for '{slug}': {e}")
            return None

        logger.info(f"✅ [{self.__class__.__name__}] Found description for '{slug}'.")
        return details
