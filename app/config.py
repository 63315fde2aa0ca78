"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from app.domain.keyword_refresh import ScraperSettings
from db.config import get_bool_env, get_float_env, load_env_files, project_root

DEFAULT_SCRAPER_TIMEOUT_SECONDS = 15.0
MAX_SCRAPE_DELAY_MS = 30_000


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    return get_bool_env(name, default)


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


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    return get_float_env(name, default)


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


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@lru_cache(maxsize=1)
def get_global_scraper_settings() -> ScraperSettings:
    """
    Return cached global scraper settings.

    `SCRAPER_TYPE=none` (the default) means no provider is configured.
    """

    delay_ms = _get_int_env("SCRAPE_DELAY_MS", 0)
    timeout_seconds = _get_float_env("SCRAPER_TIMEOUT_SECONDS", DEFAULT_SCRAPER_TIMEOUT_SECONDS)
    return ScraperSettings(
        scraper_type=_get_str_env("SCRAPER_TYPE", "none"),
        scraping_api=_get_optional_str_env("SCRAPING_API_KEY"),
        scrape_retry=_get_bool_env("SCRAPE_RETRY", False),
        scrape_delay_ms=min(max(delay_ms, 0), MAX_SCRAPE_DELAY_MS),
        timeout_seconds=timeout_seconds if timeout_seconds > 0 else DEFAULT_SCRAPER_TIMEOUT_SECONDS,
    )


@dataclass(frozen=True)
class RetryQueueSettings:
    """
    Location and locking behaviour of the failed-scrape retry queue.
    """

    path: Path
    lock_attempts: int = 20
    lock_backoff_seconds: float = 0.05


@lru_cache(maxsize=1)
def get_retry_queue_settings() -> RetryQueueSettings:
    """
    Return cached retry queue settings.
    """

    raw_path = Path(_get_str_env("RETRY_QUEUE_PATH", "data/failed_queue.json"))
    path = raw_path if raw_path.is_absolute() else project_root() / raw_path
    return RetryQueueSettings(
        path=path,
        lock_attempts=max(_get_int_env("RETRY_QUEUE_LOCK_ATTEMPTS", 20), 1),
        lock_backoff_seconds=max(_get_float_env("RETRY_QUEUE_LOCK_BACKOFF_SECONDS", 0.05), 0.0),
    )


@dataclass(frozen=True)
class CronSettings:
    """
    Schedules for the cron worker.
    """

    timezone: str = "UTC"
    main_schedule: str = "0 0 * * *"
    failed_schedule: str = "0 */1 * * *"
    stale_updating_minutes: int = 60
    stale_check_interval_minutes: int = 15


@lru_cache(maxsize=1)
def get_cron_settings() -> CronSettings:
    """
    Return cached cron worker settings.
    """

    return CronSettings(
        timezone=_get_str_env("CRON_TIMEZONE", "UTC"),
        main_schedule=_get_str_env("CRON_MAIN_SCHEDULE", "0 0 * * *"),
        failed_schedule=_get_str_env("CRON_FAILED_SCHEDULE", "0 */1 * * *"),
        stale_updating_minutes=max(_get_int_env("STALE_UPDATING_MINUTES", 60), 1),
        stale_check_interval_minutes=max(_get_int_env("STALE_CHECK_INTERVAL_MINUTES", 15), 1),
    )


@lru_cache(maxsize=1)
def get_provider_class_paths() -> tuple[str, ...]:
    """
    Return `module:Class` paths of extra SERP providers to register.

    `SCRAPER_PROVIDER_CLASSES` is a comma-separated list; blank entries are
    ignored.
    """

    raw_value = _get_str_env("SCRAPER_PROVIDER_CLASSES", "")
    return tuple(path.strip() for path in raw_value.split(",") if path.strip())
