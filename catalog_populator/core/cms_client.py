# ===== IMPORTS & DEPENDENCIES =====
import logging
import aiohttp
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

from catalog_populator.config import CMS_COLLECTIONS
from catalog_populator.core.base_client import BaseWebClient
from catalog_populator.core.errors import RemoteApiError, StoreError
from catalog_populator.core.store import (
    SLUG_POLICY_ALLOW, SLUG_POLICY_ERROR,
    check_entity_type, check_slug_policy,
)

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

JSON_HEADERS = {'Accept': 'application/json', 'Content-Type': 'application/json'}

# A create that loses a race against another create is rejected with one of these
CONFLICT_STATUSES = [400, 409]

# ===== CORE BUSINESS LOGIC =====
class CmsRecordStore(BaseWebClient):
    """Record store backed by a Strapi-style REST API (one collection per entity type)."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str, slug_policy: str = SLUG_POLICY_ALLOW):
        super().__init__(session=session)
        self.base_url = base_url.rstrip('/')
        self.slug_policy = check_slug_policy(slug_policy)

    def _collection_url(self, entity_type: str) -> str:
        return f"{self.base_url}/{CMS_COLLECTIONS[check_entity_type(entity_type)]}"

    async def _find_one(self, entity_type: str, **filters: str) -> Optional[Dict[str, Any]]:
        url = f"{self._collection_url(entity_type)}?{urlencode(filters)}"
        try:
            results = await self._fetch(url, headers=JSON_HEADERS)
        except RemoteApiError as e:
            raise StoreError(f"Lookup of {entity_type} {filters} failed: {e}") from e
        if not isinstance(results, list):
            raise StoreError(f"Unexpected lookup response for {entity_type} {filters}: {type(results).__name__}")
        return results[0] if results else None

    async def find_by_name(self, entity_type: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._find_one(entity_type, name=name)

    async def create(self, entity_type: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        try:
            record = await self._fetch(
                self._collection_url(entity_type), method='POST', headers=JSON_HEADERS, payload=fields, max_retries=1
            )
        except RemoteApiError as e:
            raise StoreError(f"Creating {entity_type} '{fields.get('name')}' failed: {e}") from e
        logger.info(f"[{self.__class__.__name__}] Created {entity_type}: '{fields.get('name')}'")
        return record

    async def get_or_create(self, entity_type: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """
        Find-then-create by name. A create rejected as a conflict means a
        concurrent caller won the race, so the record is read back instead.
        """
        name = fields['name']
        existing = await self.find_by_name(entity_type, name)
        if existing:
            return existing, False

        if self.slug_policy != SLUG_POLICY_ALLOW and entity_type != "game" and fields.get('slug'):
            same_slug = await self._find_one(entity_type, slug=fields['slug'])
            if same_slug:
                if self.slug_policy == SLUG_POLICY_ERROR:
                    raise StoreError(f"Slug '{fields['slug']}' of {entity_type} '{name}' already used by '{same_slug.get('name')}'")
                logger.info(f"[{self.__class__.__name__}] Merging {entity_type} '{name}' into '{same_slug.get('name')}'.")
                return same_slug, False

        try:
            record = await self.create(entity_type, fields)
        except StoreError as e:
            status = getattr(e.__cause__, 'status', None)
            if status not in CONFLICT_STATUSES:
                raise
            logger.warning(f"⚠️ [{self.__class__.__name__}] Create of {entity_type} '{name}' conflicted (status {status}). Re-reading.")
            existing = await self.find_by_name(entity_type, name)
            if not existing:
                raise
            return existing, False
        return record, True


class CmsUploadSink(BaseWebClient):
    """Relays blobs to the CMS upload endpoint as multipart/form-data."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str):
        super().__init__(session=session)
        self.upload_url = f"{base_url.rstrip('/')}/upload"

    async def upload(self, ref_id: Any, ref: str, field: str, filename: str, data: bytes) -> None:
        form = aiohttp.FormData()
        form.add_field('refId', str(ref_id))
        form.add_field('ref', ref)
        form.add_field('field', field)
        form.add_field('files', data, filename=filename, content_type='image/jpeg')

        logger.info(f"[{self.__class__.__name__}] Uploading {field} image: {filename}")
        try:
            # FormData is consumed on send, so a multipart upload is never retried
            await self._fetch(self.upload_url, method='POST', data=form, headers={'Accept': 'application/json'}, max_retries=1)
        except RemoteApiError as e:
            raise StoreError(f"Upload of '{filename}' ({field}) for {ref} {ref_id} failed: {e}") from e
