# ===== IMPORTS & DEPENDENCIES =====
import logging
import asyncio
import aiohttp
import os
import hashlib
import time
import json
import random
from typing import Optional, Any, Dict

from catalog_populator.config import COMMON_HEADERS, REQUEST_TIMEOUT
from catalog_populator.core.errors import NetworkError, RemoteApiError

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = [403, 429, 502, 503, 504]
CACHEABLE_TYPES = {"json": "json", "text": "html"}

# ===== CORE BUSINESS LOGIC =====
class BaseWebClient:
    """A base class for web clients providing optional caching and robust fetching."""

    def __init__(self, session: aiohttp.ClientSession, cache_dir: Optional[str] = None, cache_ttl: int = 0):
        self._session = session
        self._cache_dir = cache_dir
        self._cache_ttl = cache_ttl
        if self._cache_enabled:
            os.makedirs(self._cache_dir, exist_ok=True)
        logger.debug(f"[{self.__class__.__name__}] Initialized with cache dir: {self._cache_dir} and TTL: {self._cache_ttl}s")

    @property
    def _cache_enabled(self) -> bool:
        return bool(self._cache_dir) and self._cache_ttl > 0

    def _get_cache_path(self, key: str, extension: str = "json") -> str:
        """Generates a cache file path from a given key."""
        hashed_key = hashlib.sha256(key.encode('utf-8')).hexdigest()
        return os.path.join(self._cache_dir, f"{hashed_key}.{extension}")

    def _is_cache_valid(self, cache_path: str) -> bool:
        """Checks if a cache file exists and has not expired."""
        if not os.path.exists(cache_path):
            return False

        file_mod_time = os.path.getmtime(cache_path)
        if (time.time() - file_mod_time) > self._cache_ttl:
            logger.debug(f"[{self.__class__.__name__}] Cache file expired: {cache_path}")
            return False

        return True

    def _read_cache(self, cache_path: str, response_type: str) -> Optional[Any]:
        with open(cache_path, 'r', encoding='utf-8') as f:
            content = f.read()
        if response_type != "json":
            return content
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            logger.warning(f"⚠️ [{self.__class__.__name__}] Invalid JSON in cache file {cache_path}. Deleting and re-fetching.")
            os.remove(cache_path)
            return None

    async def _fetch(
        self,
        url: str,
        method: str = 'GET',
        response_type: str = 'json',
        max_retries: int = 3,
        initial_delay: float = 2.0,
        headers: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None
    ) -> Any:
        """
        Fetches a URL with retries and exponential backoff.

        `response_type` is one of "json", "text" or "bytes". GET responses of
        the first two kinds are cached on disk when caching is enabled.
        Raises NetworkError when the host cannot be reached and RemoteApiError
        when it answers with a failing status or an unreadable body.
        """
        cache_path = None
        if self._cache_enabled and method == 'GET' and response_type in CACHEABLE_TYPES:
            cache_path = self._get_cache_path(url, extension=CACHEABLE_TYPES[response_type])
            if self._is_cache_valid(cache_path):
                logger.info(f"✅ [{self.__class__.__name__}] Loading content from cache: {cache_path}")
                cached = self._read_cache(cache_path, response_type)
                if cached is not None:
                    return cached

        logger.info(f"➡️ [{self.__class__.__name__}] {method} {url}")
        request_headers = headers or COMMON_HEADERS
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)

        for attempt in range(max_retries):
            try:
                async with self._session.request(method, url, headers=request_headers, json=payload, data=data, timeout=timeout) as response:
                    response.raise_for_status()

                    if response_type == 'json':
                        # content_type=None handles non-standard API content-types
                        content = await response.json(content_type=None)
                    elif response_type == 'text':
                        content = await response.text()
                    else:
                        content = await response.read()

                    if cache_path:
                        file_content = json.dumps(content, ensure_ascii=False, indent=4) if response_type == 'json' else content
                        with open(cache_path, 'w', encoding='utf-8') as f:
                            f.write(file_content)
                        logger.info(f"💾 [{self.__class__.__name__}] Content saved to cache: {cache_path}")
                    return content

            except aiohttp.ClientResponseError as e:
                logger.warning(f"⚠️ [{self.__class__.__name__}] HTTP error on {url} (Attempt {attempt + 1}/{max_retries}): Status {e.status}")
                if attempt >= max_retries - 1 or e.status not in RETRYABLE_STATUSES:
                    logger.error(f"❌ [{self.__class__.__name__}] Unrecoverable error on {url}. Giving up.")
                    raise RemoteApiError(f"{method} {url} failed with status {e.status}", url=url, status=e.status) from e
            except (asyncio.TimeoutError, aiohttp.ClientConnectionError) as e:
                logger.warning(f"⚠️ [{self.__class__.__name__}] Network error on {url} (Attempt {attempt + 1}/{max_retries}): {type(e).__name__}")
                if attempt >= max_retries - 1:
                    logger.error(f"❌ [{self.__class__.__name__}] Failed to connect to {url} after {max_retries} attempts.")
                    raise NetworkError(f"{method} {url} failed: {type(e).__name__}", url=url) from e
            except ValueError as e:
                logger.error(f"❌ [{self.__class__.__name__}] Unreadable response body from {url}: {e}")
                raise RemoteApiError(f"{method} {url} returned a malformed body", url=url) from e

            delay = initial_delay * (2 ** attempt) + random.uniform(0, 1)
            logger.info(f"Retrying request to {url} in {delay:.2f} seconds...")
            await asyncio.sleep(delay)

        raise NetworkError(f"{method} {url} was not attempted", url=url)
