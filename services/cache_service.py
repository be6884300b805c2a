"""
Cache Service - Serve extraction results without re-reading the workbook.

The ``CacheGate`` keys results by worksheet and file path and remembers how
many field mappings produced them. A request with a different number of
mappings re-extracts; a request with the same number but different mappings
is served from cache unless the gate runs in ``content`` key mode, which
adds a digest of the mappings to the key.

Cache stores are plain objects with ``get``/``set``/``delete``; the process
creates one at startup and passes it to the gate.
"""

import hashlib
import json
import logging
import threading
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Tuple

import redis

from backend.models.report import CacheEntry, FieldMapping, ResultSet
from services.extraction_service import ExtractionService
from services.spreadsheet import SpreadsheetAccessor

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)
CACHE_KEY_PREFIX = 'ExcelData'

KEY_MODE_SHAPE = 'shape'
KEY_MODE_CONTENT = 'content'
KEY_MODES = (KEY_MODE_SHAPE, KEY_MODE_CONTENT)


class CacheStore(Protocol):
    """Process-wide key/value store with per-key expiry."""

    def get(self, key: str) -> Tuple[Optional[Any], bool]:
        ...

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def ping(self) -> bool:
        ...


class MemoryCacheStore:
    """In-process cache store; expired entries are dropped on read and on every write."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Tuple[Optional[Any], bool]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None, False

            value, expires_at = item
            if self._clock() >= expires_at:
                del self._entries[key]
                return None, False

            return value, True

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (value, now + ttl.total_seconds())

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore:
    """
    Redis-backed cache store for deployments running several API workers.

    Values are stored as JSON with SETEX. Redis being unreachable degrades
    to a cache miss instead of failing the request.
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: str = 'redis://localhost:6379/0'):
        self.client = client or redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> Tuple[Optional[Any], bool]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Could not read cache key {key} from Redis: {e}")
            return None, False

        if raw is None:
            return None, False
        return json.loads(raw), True

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        try:
            self.client.setex(key, ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.warning(f"Could not write cache key {key} to Redis: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Could not delete cache key {key} from Redis: {e}")

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False


def mappings_digest(field_mappings: Sequence[FieldMapping]) -> str:
    """Stable digest of mapping content (keys, rows and their order)."""
    payload = json.dumps([[m.key, m.row_number] for m in field_mappings])
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()[:16]


class CacheGate:
    """
    Cached front for the extraction service.

    ``shape`` key mode only notices a changed number of mappings; this is
    the long-standing behaviour and stays the default. ``content`` key mode
    misses on any change to the mappings.
    """

    def __init__(
        self,
        extractor: ExtractionService,
        accessor: SpreadsheetAccessor,
        store: CacheStore,
        ttl: timedelta = DEFAULT_TTL,
        key_mode: str = KEY_MODE_SHAPE
    ):
        if key_mode not in KEY_MODES:
            raise ValueError(f"Unsupported cache key mode: {key_mode}")

        self.extractor = extractor
        self.accessor = accessor
        self.store = store
        self.ttl = ttl
        self.key_mode = key_mode

    def cache_key(
        self,
        worksheet_name: str,
        file_path: str,
        field_mappings: Sequence[FieldMapping] = ()
    ) -> str:
        key = f"{CACHE_KEY_PREFIX}_{worksheet_name}_{file_path}"
        if self.key_mode == KEY_MODE_CONTENT:
            key = f"{key}_{mappings_digest(field_mappings)}"
        return key

    def get(
        self,
        worksheet_name: str,
        file_path: str,
        field_mappings: Sequence[FieldMapping]
    ) -> ResultSet:
        """
        Return records for the worksheet, extracting only on a cache miss.

        Raises:
            WorksheetNotFound: If the worksheet does not exist
            WorkbookUnavailable: If the workbook cannot be opened
        """
        key = self.cache_key(worksheet_name, file_path, field_mappings)
        shape = len(field_mappings)

        cached, found = self.store.get(key)
        if found:
            entry = CacheEntry.from_dict(cached)
            if entry.shape == shape:
                logger.info(f"Cache hit for {key} ({len(entry.result_set)} records)")
                return entry.result_set
            logger.info(f"Cache entry for {key} has {entry.shape} fields, "
                        f"request has {shape}; re-extracting")
        else:
            logger.info(f"Cache miss for {key}")

        workbook = self.accessor.open_workbook(file_path)
        try:
            result_set = self.extractor.extract(workbook, worksheet_name, field_mappings)
        finally:
            workbook.close()

        entry = CacheEntry(result_set=result_set, shape=shape)
        self.store.set(key, entry.to_dict(), self.ttl)

        return result_set

    def invalidate(
        self,
        worksheet_name: str,
        file_path: str,
        field_mappings: Sequence[FieldMapping] = ()
    ) -> None:
        """Drop the cached entry for a worksheet/file (and mappings, in content mode)."""
        key = self.cache_key(worksheet_name, file_path, field_mappings)
        self.store.delete(key)
        logger.info(f"Invalidated cache entry {key}")
