"""
app/services/scraper_settings.py

Resolve the effective scraper settings and scrape permission per domain.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from app.domain.keyword_refresh import DomainPolicy, ScraperSettings
from app.scraping.logging_utils import log_event
from app.scraping.registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainScraperOverride:
    """
    Per-domain override persisted as JSON on the domain row.
    """

    scraper_type: str | None = None
    scraping_api: str | None = None
    business_name: str | None = None


def _clean(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_domain_override(raw: Any) -> DomainScraperOverride | None:
    """
    Parse a stored override; malformed or empty payloads yield None.
    """

    if not raw:
        return None
    payload = raw
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(payload, Mapping):
        return None

    override = DomainScraperOverride(
        scraper_type=_clean(payload.get("scraper_type")),
        scraping_api=_clean(payload.get("scraping_api")),
        business_name=_clean(payload.get("business_name")),
    )
    if not (override.scraper_type or override.scraping_api or override.business_name):
        return None
    return override


class ScraperSettingsResolver:
    """
    Builds one DomainPolicy per domain before a refresh batch starts.

    Every provider id a batch would use is looked up here, so an unknown id
    fails the batch up front rather than one keyword at a time.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    def resolve(
        self,
        global_settings: ScraperSettings,
        domain_rows: Mapping[str, Any],
        domain_names: Iterable[str],
    ) -> dict[str, DomainPolicy]:
        policies: dict[str, DomainPolicy] = {}
        for name in dict.fromkeys(domain_names):
            row = domain_rows.get(name)
            policy = self._policy_for(name, row, global_settings)
            if policy.scrape_enabled:
                self._registry.get(policy.settings.scraper_type)
            policies[name] = policy

        overrides = sorted(
            f"{name}:{policy.settings.scraper_type}"
            for name, policy in policies.items()
            if policy.has_override
        )
        if overrides:
            log_event(logger, logging.DEBUG, "domain_scraper_overrides", overrides=overrides)
        return policies

    @staticmethod
    def _policy_for(name: str, row: Any, global_settings: ScraperSettings) -> DomainPolicy:
        if row is None:
            return DomainPolicy(domain=name, scrape_enabled=True, settings=global_settings)

        override = parse_domain_override(getattr(row, "scraper_settings", None))
        business_name = _clean(getattr(row, "business_name", None)) or (
            override.business_name if override else None
        )
        settings = global_settings.with_override(
            scraper_type=override.scraper_type if override else None,
            scraping_api=override.scraping_api if override else None,
            business_name=business_name,
        )
        return DomainPolicy(
            domain=name,
            scrape_enabled=bool(row.scrape_enabled),
            settings=settings,
            has_override=bool(override and override.scraper_type),
        )
