"""
Application configuration using Pydantic Settings.

This module manages all configuration from environment variables.
"""

import os
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Finance Report API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Extract company records from the finance report workbook and export them to Excel"
    API_PREFIX: str = "/api"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    RELOAD: bool = False

    # Workbook Configuration
    FILE_PATH: str = "data/FinanceReport.xlsx"  # Relative paths resolve against the working directory
    ENTITY_HEADER_ROW: int = 2
    ENTITY_FIRST_COLUMN: int = 6
    EMPTY_SENTINEL: str = "$-"
    EXTRACTION_MAX_WORKERS: int = 8

    # Cache Configuration
    CACHE_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_MINUTES: int = 30
    CACHE_KEY_MODE: str = "shape"  # "shape" (field count) or "content" (field digest)

    # Export Configuration
    EXPORT_SHEET_NAME: str = "Results"
    EXPORT_FILENAME: str = "report.xlsx"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "api.log"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Create global settings instance
settings = get_settings()


def resolve_file_path(file_path: Optional[str] = None) -> str:
    """Absolute path of the report workbook."""
    path = file_path or settings.FILE_PATH
    return os.path.join(os.getcwd(), path)
