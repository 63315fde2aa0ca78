"""
app/scheduler/jobs.py

APScheduler-based cron jobs for keyword refresh.

Schedule (CRON_TIMEZONE, default UTC)
--------------------------------------
  refresh_all_domains   : CRON_MAIN_SCHEDULE (default: daily at midnight)
  retry_failed_scrapes  : CRON_FAILED_SCHEDULE (default: hourly)
  clear_stale_updating  : every STALE_CHECK_INTERVAL_MINUTES

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured scheduler; the cron worker
script starts it in the foreground. Every job runs its own event loop and its
own database engine, so jobs never share async resources across loops.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TypeVar

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import get_cron_settings
from app.services.keyword_refresh import KeywordRefreshService, ScraperNotConfiguredError
from db.session import create_db_engine, create_session_factory

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_service(operation: Callable[[KeywordRefreshService], Awaitable[T]]) -> T:
    engine = create_db_engine()
    try:
        service = KeywordRefreshService(session_factory=create_session_factory(engine))
        return await operation(service)
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Job: Refresh every scrape-enabled domain
# ---------------------------------------------------------------------------


def run_refresh_all_domains() -> None:
    logger.info("Scheduler: refresh_all_domains starting")
    try:
        refreshed = asyncio.run(_with_service(lambda service: service.refresh_all_domains()))
    except ScraperNotConfiguredError as exc:
        logger.warning("Scheduler: refresh_all_domains skipped: %s", exc)
        return
    except Exception as exc:  # noqa: BLE001
        logger.error("Scheduler: refresh_all_domains failed: %s", exc)
        return
    logger.info(
        "Scheduler: refresh_all_domains complete domains=%d keywords=%d",
        len(refreshed),
        sum(refreshed.values()),
    )


# ---------------------------------------------------------------------------
# Job: Retry failed scrapes
# ---------------------------------------------------------------------------


def run_retry_failed_scrapes() -> None:
    logger.info("Scheduler: retry_failed_scrapes starting")
    try:
        refreshed = asyncio.run(_with_service(lambda service: service.retry_failed()))
    except ScraperNotConfiguredError as exc:
        logger.warning("Scheduler: retry_failed_scrapes skipped: %s", exc)
        return
    except Exception as exc:  # noqa: BLE001
        logger.error("Scheduler: retry_failed_scrapes failed: %s", exc)
        return
    logger.info("Scheduler: retry_failed_scrapes complete keywords=%d", len(refreshed))


# ---------------------------------------------------------------------------
# Job: Clear keywords stuck in the updating state
# ---------------------------------------------------------------------------


def run_clear_stale_updating() -> None:
    max_age = timedelta(minutes=get_cron_settings().stale_updating_minutes)
    try:
        cleared = asyncio.run(_with_service(lambda service: service.clear_stale_updating(max_age)))
    except Exception as exc:  # noqa: BLE001
        logger.error("Scheduler: clear_stale_updating failed: %s", exc)
        return
    if cleared:
        logger.info("Scheduler: clear_stale_updating cleared=%d", cleared)


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(scheduler_class: type[BaseScheduler] = BackgroundScheduler) -> BaseScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* scheduler. Jobs never overlap
    with themselves (``max_instances=1``).
    """
    settings = get_cron_settings()
    scheduler = scheduler_class(timezone=settings.timezone)

    scheduler.add_job(
        run_refresh_all_domains,
        trigger=CronTrigger.from_crontab(settings.main_schedule, timezone=settings.timezone),
        id="refresh_all_domains",
        name="Refresh all domains",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        run_retry_failed_scrapes,
        trigger=CronTrigger.from_crontab(settings.failed_schedule, timezone=settings.timezone),
        id="retry_failed_scrapes",
        name="Retry failed scrapes",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=900,
    )
    scheduler.add_job(
        run_clear_stale_updating,
        trigger="interval",
        minutes=settings.stale_check_interval_minutes,
        id="clear_stale_updating",
        name="Clear stale updating flags",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    return scheduler
