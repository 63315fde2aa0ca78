"""
Run the keyword refresh cron worker in the foreground.
"""

from __future__ import annotations

import asyncio
import logging
import os

from apscheduler.schedulers.blocking import BlockingScheduler

from app.scheduler.jobs import build_scheduler
from db.config import load_env_files
from db.session import create_db_engine, init_models


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def _prepare_database() -> None:
    engine = create_db_engine()
    try:
        await init_models(engine)
    finally:
        await engine.dispose()


def main() -> int:
    load_env_files()
    _configure_logging()
    asyncio.run(_prepare_database())

    scheduler = build_scheduler(BlockingScheduler)
    logging.getLogger(__name__).info("Cron worker starting with %d jobs", len(scheduler.get_jobs()))
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logging.getLogger(__name__).info("Cron worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
