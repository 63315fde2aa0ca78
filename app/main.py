from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate scraper-related environment variables at startup.

    Raises RuntimeError listing every invalid variable so the operator can fix
    all problems in one restart cycle. An unset SCRAPER_TYPE is allowed; the
    refresh endpoint then answers 400 until one is configured.
    """

    from app.config import get_global_scraper_settings
    from app.scraping.registry import NO_PROVIDER, get_provider_registry
    from db.config import load_env_files, resolve_database_url

    load_env_files()

    errors: list[str] = []

    scraper_type = get_global_scraper_settings().scraper_type
    registry = get_provider_registry()
    if scraper_type != NO_PROVIDER and scraper_type not in registry:
        errors.append(
            f"SCRAPER_TYPE='{scraper_type}' is not valid. "
            f"Allowed values: {[NO_PROVIDER, *registry.ids()]}."
        )
    if scraper_type != NO_PROVIDER and not os.getenv("SCRAPING_API_KEY", "").strip():
        errors.append(f"SCRAPING_API_KEY is not set but SCRAPER_TYPE is '{scraper_type}'.")

    try:
        resolve_database_url()
    except RuntimeError as exc:
        errors.append(str(exc))

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Create missing tables on boot; dispose the engine on exit."""
    from db.session import get_engine, init_models

    await init_models()
    logging.getLogger(__name__).info("Database schema ready")
    try:
        yield
    finally:
        await get_engine().dispose()
        logging.getLogger(__name__).info("Database engine disposed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="SERP Rank Refresher API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import refresh_router

    application.include_router(refresh_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
