"""
app/services/keyword_refresh.py

Refresh orchestration: scrape a batch of keywords and persist one update per
keyword.

A keyword enters a batch with its in-flight marker set and always leaves it
cleared, whether the scrape succeeded, failed, raised, or was skipped because
its domain has scraping disabled. The retry queue and domain statistics are
secondary effects and never block a keyword's own write.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import timedelta
from functools import lru_cache

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import MAX_SCRAPE_DELAY_MS, get_global_scraper_settings
from app.domain.keyword_refresh import (
    DEVICE_DESKTOP,
    DomainPolicy,
    KeywordSnapshot,
    KeywordUpdate,
    ScraperSettings,
)
from app.repositories.keyword_repository import KeywordRepository
from app.scraping.client import scrape_keyword
from app.scraping.errors import ScraperError
from app.scraping.locales import COUNTRIES, CountryLocale
from app.scraping.logging_utils import log_event
from app.scraping.registry import NO_PROVIDER, ProviderRegistry, get_provider_registry
from app.services.domain_stats import DomainStatsAggregator
from app.services.retry_queue import RetryQueue, get_retry_queue
from app.services.scraper_settings import ScraperSettingsResolver
from db.session import get_session_factory

logger = logging.getLogger(__name__)


class ScraperNotConfiguredError(RuntimeError):
    """Raised when a refresh is requested but no scraper is configured."""


class NoKeywordsFoundError(LookupError):
    """Raised when a refresh request matches no keywords."""


class DomainRefreshInProgressError(RuntimeError):
    """Raised when a refresh touches a domain that is already refreshing."""

    def __init__(self, domains: Iterable[str]) -> None:
        self.domains = sorted(domains)
        super().__init__(f"A refresh is already running for: {', '.join(self.domains)}.")


def is_scraper_configured(settings: ScraperSettings) -> bool:
    return bool(settings.scraper_type) and settings.scraper_type.strip().lower() != NO_PROVIDER


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, ScraperError):
        return str(exc) or type(exc).__name__
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class KeywordRefreshService:
    """
    Runs keyword refresh batches against the configured SERP providers.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ProviderRegistry | None = None,
        retry_queue: RetryQueue | None = None,
        http_client: httpx.AsyncClient | None = None,
        locales: Mapping[str, CountryLocale] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._registry = registry or get_provider_registry()
        self._repository = KeywordRepository(session_factory)
        self._stats = DomainStatsAggregator(session_factory)
        self._resolver = ScraperSettingsResolver(self._registry)
        self._retry_queue = retry_queue or get_retry_queue()
        self._http_client = http_client
        self._locales = COUNTRIES if locales is None else locales
        self._sleep = sleep
        # Domains with a start_refresh in flight in this process.
        self._refreshing_domains: set[str] = set()

    @property
    def repository(self) -> KeywordRepository:
        return self._repository

    @property
    def retry_queue(self) -> RetryQueue:
        return self._retry_queue

    def is_refreshing(self, domain: str) -> bool:
        return domain in self._refreshing_domains

    async def refresh_keywords(
        self,
        keywords: Sequence[KeywordSnapshot],
        global_settings: ScraperSettings,
    ) -> list[KeywordSnapshot]:
        """
        Refresh a batch of keywords that are already marked as updating.

        Returns post-refresh snapshots of the keywords that were scraped;
        keywords of scrape-disabled domains only get their marker cleared.
        A failure before scraping starts clears the whole batch's markers and
        is re-raised.
        """

        if not keywords:
            return []

        batch_ids = [keyword.id for keyword in keywords]
        domain_names = list(dict.fromkeys(keyword.domain for keyword in keywords))
        try:
            domain_rows = await self._repository.load_domains(domain_names)
            policies = self._resolver.resolve(global_settings, domain_rows, domain_names)
            eligible = [keyword for keyword in keywords if policies[keyword.domain].scrape_enabled]
            skipped = [keyword for keyword in keywords if not policies[keyword.domain].scrape_enabled]
            parallel = all(
                self._registry.get(policies[keyword.domain].settings.scraper_type).supports_parallel
                for keyword in eligible
            )
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "keyword_refresh_setup_failed",
                keyword_ids=batch_ids,
                error=describe_error(exc),
            )
            await self._clear_flags(batch_ids, context="setup_failed")
            raise

        if skipped:
            await self._skip(skipped)
        if not eligible:
            return []

        started = time.perf_counter()
        log_event(
            logger,
            logging.INFO,
            "keyword_refresh_started",
            count=len(eligible),
            skipped=len(skipped),
            mode="parallel" if parallel else "sequential",
        )

        try:
            if self._http_client is not None:
                updated = await self._run(eligible, policies, self._http_client, parallel)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    updated = await self._run(eligible, policies, client, parallel)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "keyword_refresh_failed",
                keyword_ids=[keyword.id for keyword in eligible],
                error=describe_error(exc),
            )
            await self._clear_flags([keyword.id for keyword in eligible], context="batch_failed")
            raise

        log_event(
            logger,
            logging.INFO,
            "keyword_refresh_completed",
            count=len(updated),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        await self._stats.update_many(keyword.domain for keyword in updated)
        return updated

    async def _run(
        self,
        keywords: list[KeywordSnapshot],
        policies: Mapping[str, DomainPolicy],
        client: httpx.AsyncClient,
        parallel: bool,
    ) -> list[KeywordSnapshot]:
        # Last known desktop map-pack flag per sibling key, refreshed as
        # desktop keywords complete.
        desktop_map_pack = {
            keyword.sibling_key(): keyword.map_pack_top3
            for keyword in keywords
            if keyword.device == DEVICE_DESKTOP
        }
        if parallel:
            return await self._run_parallel(keywords, policies, client, desktop_map_pack)
        return await self._run_sequential(keywords, policies, client, desktop_map_pack)

    async def _run_parallel(
        self,
        keywords: list[KeywordSnapshot],
        policies: Mapping[str, DomainPolicy],
        client: httpx.AsyncClient,
        desktop_map_pack: dict[tuple[str, str, str, str], bool],
    ) -> list[KeywordSnapshot]:
        results = await asyncio.gather(
            *(
                self._refresh_one(
                    keyword,
                    policies[keyword.domain].settings,
                    client,
                    desktop_map_pack.get(keyword.sibling_key()) if keyword.is_mobile else None,
                )
                for keyword in keywords
            ),
            return_exceptions=True,
        )

        updated: list[KeywordSnapshot] = []
        for keyword, result in zip(keywords, results):
            if isinstance(result, BaseException):
                log_event(
                    logger,
                    logging.ERROR,
                    "keyword_refresh_task_failed",
                    keyword_id=keyword.id,
                    error=describe_error(result),
                )
                await self._clear_flags([keyword.id], context="task_failed")
                updated.append(replace(keyword, updating=False, updating_started_at=None))
            else:
                updated.append(result)
        return updated

    async def _run_sequential(
        self,
        keywords: list[KeywordSnapshot],
        policies: Mapping[str, DomainPolicy],
        client: httpx.AsyncClient,
        desktop_map_pack: dict[tuple[str, str, str, str], bool],
    ) -> list[KeywordSnapshot]:
        ordered = sorted(keywords, key=lambda keyword: keyword.is_mobile)
        updated: list[KeywordSnapshot] = []
        for index, keyword in enumerate(ordered):
            settings = policies[keyword.domain].settings
            fallback = desktop_map_pack.get(keyword.sibling_key()) if keyword.is_mobile else None
            refreshed = await self._refresh_one(keyword, settings, client, fallback)
            updated.append(refreshed)

            if not keyword.is_mobile and refreshed.last_update_error is False:
                desktop_map_pack[keyword.sibling_key()] = refreshed.map_pack_top3

            delay_ms = min(settings.scrape_delay_ms, MAX_SCRAPE_DELAY_MS)
            if delay_ms > 0 and index + 1 < len(ordered):
                await self._sleep(delay_ms / 1000)
        return updated

    async def _refresh_one(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        client: httpx.AsyncClient,
        fallback_map_pack_top3: bool | None,
    ) -> KeywordSnapshot:
        try:
            outcome = await scrape_keyword(
                keyword,
                settings,
                client=client,
                registry=self._registry,
                locales=self._locales,
                fallback_map_pack_top3=fallback_map_pack_top3,
            )
        except Exception as exc:
            log_event(
                logger,
                logging.WARNING,
                "keyword_scrape_failed",
                keyword_id=keyword.id,
                keyword=keyword.keyword,
                scraper=settings.scraper_type,
                error=describe_error(exc),
            )
            keyword_update = KeywordUpdate.failure(
                keyword,
                error=describe_error(exc),
                scraper_id=settings.scraper_type,
            )
        else:
            keyword_update = KeywordUpdate.success(
                keyword,
                position=outcome.position,
                url=outcome.url,
                organic_results=outcome.organic_results,
                local_results=outcome.local_results,
                map_pack_top3=outcome.map_pack_top3,
            )

        persisted = await self._persist(keyword_update)
        await self._sync_retry_queue(keyword.id, failed=keyword_update.failed, retry=settings.scrape_retry)

        if not persisted:
            return replace(keyword, updating=False, updating_started_at=None)

        log_event(
            logger,
            logging.INFO,
            "keyword_updated",
            keyword_id=keyword.id,
            device=keyword.device,
            position=keyword_update.values.get("position", keyword.position),
            map_pack_top3=keyword_update.values.get("map_pack_top3", keyword.map_pack_top3),
            has_error=keyword_update.failed,
        )
        return keyword_update.apply_to(keyword)

    async def _persist(self, keyword_update: KeywordUpdate) -> bool:
        try:
            await self._repository.apply_update(keyword_update)
            return True
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "keyword_update_write_failed",
                keyword_id=keyword_update.keyword_id,
                error=describe_error(exc),
            )
        await self._clear_flags([keyword_update.keyword_id], context="write_failed")
        return False

    async def _skip(self, keywords: list[KeywordSnapshot]) -> None:
        for keyword in keywords:
            await self._persist(KeywordUpdate.skipped(keyword))
        log_event(
            logger,
            logging.INFO,
            "keyword_refresh_skipped",
            keyword_ids=[keyword.id for keyword in keywords],
            reason="scrape_disabled",
        )
        try:
            await self._retry_queue.remove_batch(keyword.id for keyword in keywords)
        except Exception as exc:
            log_event(logger, logging.ERROR, "retry_queue_update_failed", error=describe_error(exc))

    async def _sync_retry_queue(self, keyword_id: int, *, failed: bool, retry: bool) -> None:
        try:
            if failed and retry:
                await self._retry_queue.add(keyword_id)
            else:
                await self._retry_queue.remove(keyword_id)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "retry_queue_update_failed",
                keyword_id=keyword_id,
                error=describe_error(exc),
            )

    async def _clear_flags(self, keyword_ids: list[int], *, context: str) -> None:
        try:
            await self._repository.clear_updating_flags(keyword_ids)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "keyword_flags_clear_failed",
                keyword_ids=keyword_ids,
                context=context,
                error=describe_error(exc),
            )

    async def start_refresh(
        self,
        *,
        keyword_ids: Iterable[int] | None = None,
        domain: str | None = None,
        global_settings: ScraperSettings | None = None,
    ) -> list[KeywordSnapshot]:
        """
        Mark the selected keywords as updating and refresh them.

        Keywords are chosen by id (optionally restricted to `domain`) or, when
        no ids are given, every keyword of `domain`.
        """

        settings = global_settings or get_global_scraper_settings()
        if not is_scraper_configured(settings):
            raise ScraperNotConfiguredError("No scraper is configured (SCRAPER_TYPE is 'none').")

        if keyword_ids is not None:
            selected = await self._repository.get_by_ids(keyword_ids)
            if domain:
                selected = [keyword for keyword in selected if keyword.domain == domain]
        elif domain:
            selected = await self._repository.get_by_domain(domain)
        else:
            raise ValueError("Either keyword_ids or domain is required.")

        if not selected:
            raise NoKeywordsFoundError("No keywords matched the refresh request.")

        domains = {keyword.domain for keyword in selected}
        busy = domains & self._refreshing_domains
        if busy:
            log_event(logger, logging.WARNING, "keyword_refresh_rejected", domains=sorted(busy))
            raise DomainRefreshInProgressError(busy)

        # No await between the check above and this claim.
        self._refreshing_domains.update(domains)
        try:
            ids = [keyword.id for keyword in selected]
            await self._repository.mark_updating(ids)
            # The bulk update does not touch loaded snapshots.
            fresh = await self._repository.get_by_ids(ids)
            return await self.refresh_keywords(fresh, settings)
        finally:
            self._refreshing_domains.difference_update(domains)

    async def refresh_domain(
        self,
        domain: str,
        *,
        global_settings: ScraperSettings | None = None,
    ) -> list[KeywordSnapshot]:
        try:
            return await self.start_refresh(domain=domain, global_settings=global_settings)
        except NoKeywordsFoundError:
            log_event(logger, logging.INFO, "domain_refresh_empty", domain=domain)
            return []

    async def refresh_all_domains(
        self,
        *,
        global_settings: ScraperSettings | None = None,
    ) -> dict[str, int]:
        """
        Refresh every scrape-enabled domain, one domain at a time.
        """

        refreshed: dict[str, int] = {}
        for domain in await self._repository.list_domain_names(scrape_enabled_only=True):
            try:
                refreshed[domain] = len(await self.refresh_domain(domain, global_settings=global_settings))
            except ScraperNotConfiguredError:
                raise
            except DomainRefreshInProgressError:
                log_event(logger, logging.INFO, "domain_refresh_skipped", domain=domain, reason="in_progress")
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "domain_refresh_failed",
                    domain=domain,
                    error=describe_error(exc),
                )
        return refreshed

    async def retry_failed(
        self,
        *,
        global_settings: ScraperSettings | None = None,
    ) -> list[KeywordSnapshot]:
        """
        Refresh every keyword in the retry queue.

        Ids whose keyword no longer exists are dropped from the queue.
        """

        queued = await self._retry_queue.list()
        if not queued:
            return []

        found = await self._repository.get_by_ids(queued)
        missing = [keyword_id for keyword_id in queued if keyword_id not in {keyword.id for keyword in found}]
        if missing:
            try:
                await self._retry_queue.remove_batch(missing)
            except Exception as exc:
                log_event(logger, logging.ERROR, "retry_queue_update_failed", error=describe_error(exc))
        # Keywords of a domain that is refreshing stay queued for the next run.
        existing = {keyword.id for keyword in found if not self.is_refreshing(keyword.domain)}
        if not existing:
            return []

        log_event(logger, logging.INFO, "retry_failed_started", keyword_ids=sorted(existing))
        return await self.start_refresh(keyword_ids=sorted(existing), global_settings=global_settings)

    async def clear_stale_updating(self, max_age: timedelta) -> int:
        cleared = await self._repository.clear_stale_updating(max_age=max_age)
        if cleared:
            log_event(
                logger,
                logging.WARNING,
                "stale_updating_cleared",
                count=cleared,
                max_age_minutes=round(max_age.total_seconds() / 60, 2),
            )
        return cleared


@lru_cache(maxsize=1)
def get_keyword_refresh_service() -> KeywordRefreshService:
    """
    Build and cache the keyword refresh service.
    """

    return KeywordRefreshService(session_factory=get_session_factory())
