"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class RowLimitSettings:
    """
    Row caps applied per processing mode.

    Preview caps apply per sheet; sync/async caps apply to the selected sheet.
    """

    default_preview_limit: int = 25
    max_preview_limit: int = 50
    default_limit: int = 100_000
    max_limit: int = 100_000


@dataclass(frozen=True)
class TempUploadSettings:
    """
    Temporary upload storage and expiry settings.
    """

    root_dir: str
    sub_dir: str = "sheets"
    expire_after_seconds: int = 3600
    cleanup_interval_seconds: int = 300
    max_upload_bytes: int = 50 * 1024 * 1024


@dataclass(frozen=True)
class WorkerSettings:
    """
    Background ingestion worker pool settings.
    """

    async_workers: int = 4


@dataclass(frozen=True)
class QuerySettings:
    """
    Pagination defaults for dataset queries.
    """

    default_page_size: int = 100
    max_page_size: int = 1000


@lru_cache(maxsize=1)
def get_row_limit_settings() -> RowLimitSettings:
    """
    Return cached row limit settings from environment variables.
    """

    max_preview_limit = max(1, _get_int_env("MAX_PREVIEW_LIMIT", 50))
    max_limit = max(1, _get_int_env("MAX_LIMIT", 100_000))
    return RowLimitSettings(
        default_preview_limit=min(max_preview_limit, max(1, _get_int_env("DEFAULT_PREVIEW_LIMIT", 25))),
        max_preview_limit=max_preview_limit,
        default_limit=min(max_limit, max(1, _get_int_env("DEFAULT_LIMIT", max_limit))),
        max_limit=max_limit,
    )


@lru_cache(maxsize=1)
def get_temp_upload_settings() -> TempUploadSettings:
    """
    Return cached temp upload settings from environment variables.
    """

    return TempUploadSettings(
        root_dir=_get_str_env("TMP_FILE_DIR", tempfile.gettempdir()),
        sub_dir=_get_str_env("SPREADSHEET_SUBDIR", "sheets"),
        expire_after_seconds=max(1, _get_int_env("DELETE_TMP_FILES_AFTER_SECONDS", 3600)),
        cleanup_interval_seconds=max(1, _get_int_env("TMP_CLEANUP_INTERVAL_SECONDS", 300)),
        max_upload_bytes=max(1, _get_int_env("UPLOAD_MAX_BYTES", 50 * 1024 * 1024)),
    )


@lru_cache(maxsize=1)
def get_worker_settings() -> WorkerSettings:
    """
    Return cached background worker settings.
    """

    return WorkerSettings(async_workers=max(1, _get_int_env("ASYNC_WORKERS", 4)))


@lru_cache(maxsize=1)
def get_query_settings() -> QuerySettings:
    """
    Return cached dataset query pagination settings.
    """

    max_page_size = max(1, _get_int_env("MAX_PAGE_SIZE", 1000))
    return QuerySettings(
        default_page_size=min(max_page_size, max(1, _get_int_env("DEFAULT_PAGE_SIZE", 100))),
        max_page_size=max_page_size,
    )
