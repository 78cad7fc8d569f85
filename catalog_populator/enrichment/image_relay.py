# ===== IMPORTS & DEPENDENCIES =====
import logging
import aiohttp
from typing import Optional

from catalog_populator.core.base_client import BaseWebClient
from catalog_populator.core.store import UploadSink
from catalog_populator.models.game import GameRecord
from catalog_populator.config import GALLERY_FORMATTER_TOKEN, IMAGE_EXTENSION, UPLOAD_REF

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

IMAGE_HEADERS = {'Accept': 'image/*,*/*;q=0.8'}

# ===== CORE BUSINESS LOGIC =====
class ImageRelay(BaseWebClient):
    """Downloads images and forwards the bytes to an upload sink, without keeping a local copy."""

    def __init__(self, session: aiohttp.ClientSession, sink: UploadSink):
        super().__init__(session=session)
        self.sink = sink

    @staticmethod
    def resolve_url(url: str, field: str) -> str:
        """Gallery URLs carry a '_{formatter}' size token that must be dropped before fetching."""
        if field == "gallery":
            return url.replace(GALLERY_FORMATTER_TOKEN, '')
        return url

    async def relay_image(self, url: Optional[str], game: GameRecord, field: str = "cover") -> bool:
        """
        Fetches `url` and uploads it against game['id'] / `field`.
        Returns True on success. Failures are logged and never raised.
        """
        slug = game.get('slug')
        if not url:
            logger.debug(f"[{self.__class__.__name__}] No {field} image URL for '{slug}'.")
            return False

        filename = f"{slug}.{IMAGE_EXTENSION}"
        try:
            data = await self._fetch(self.resolve_url(url, field), response_type='bytes', headers=IMAGE_HEADERS)
            await self.sink.upload(ref_id=game['id'], ref=UPLOAD_REF, field=field, filename=filename, data=data)
        except Exception as e:
            logger.error(f"❌ [{self.__class__.__name__}] Failed to relay {field} image for '{slug}' from {url}: {e}")
            return False

        logger.info(f"✅ [{self.__class__.__name__}] Uploaded {field} image: {filename}")
        return True
