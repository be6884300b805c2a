"""
Dependency injection utilities for FastAPI.

This module builds the process-wide cache store and the report services
once, and exposes them as dependencies so tests can override them.
"""

import logging
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends

from api.config import resolve_file_path, settings
from services.cache_service import CacheGate, CacheStore, MemoryCacheStore, RedisCacheStore
from services.export_service import ExportService
from services.extraction_service import ExtractionService
from services.spreadsheet import OpenpyxlAccessor

logger = logging.getLogger(__name__)


@lru_cache()
def get_cache_store() -> CacheStore:
    """
    Get the process-wide cache store.

    Created on first use and shared by every request until the process exits.
    """
    if settings.CACHE_BACKEND == 'redis':
        logger.info(f"Using Redis cache store: {settings.REDIS_URL}")
        return RedisCacheStore(url=settings.REDIS_URL)

    if settings.CACHE_BACKEND != 'memory':
        logger.warning(f"Unknown CACHE_BACKEND '{settings.CACHE_BACKEND}', using in-memory cache")
    return MemoryCacheStore()


def get_extraction_service() -> ExtractionService:
    return ExtractionService(
        header_row=settings.ENTITY_HEADER_ROW,
        first_column=settings.ENTITY_FIRST_COLUMN,
        empty_sentinel=settings.EMPTY_SENTINEL,
        max_workers=settings.EXTRACTION_MAX_WORKERS
    )


def get_cache_gate(
    store: CacheStore = Depends(get_cache_store),
    extractor: ExtractionService = Depends(get_extraction_service)
) -> CacheGate:
    """
    Get the cached extraction front.

    Usage:
        @app.post("/endpoint")
        def endpoint(gate: CacheGate = Depends(get_cache_gate)):
            records = gate.get(worksheet, path, mappings)
    """
    return CacheGate(
        extractor=extractor,
        accessor=OpenpyxlAccessor(),
        store=store,
        ttl=timedelta(minutes=settings.CACHE_TTL_MINUTES),
        key_mode=settings.CACHE_KEY_MODE
    )


def get_export_service() -> ExportService:
    return ExportService(sheet_name=settings.EXPORT_SHEET_NAME)


def get_file_path() -> str:
    """Absolute path of the configured report workbook."""
    return resolve_file_path()
