"""
Async SERP fetch client: one provider call per keyword.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from app.domain.keyword_refresh import KeywordSnapshot, OrganicResult, ScraperSettings
from app.scraping.base import SerpProvider
from app.scraping.errors import ProviderRequestError, ProviderResponseError
from app.scraping.locales import COUNTRIES, CountryLocale
from app.scraping.logging_utils import log_event, redact_url
from app.scraping.map_pack import extract_local_results, has_local_results_section, normalize_host
from app.scraping.registry import ProviderRegistry
from app.scraping.types import DecodedSerp, ScrapeOutcome

logger = logging.getLogger(__name__)

ERROR_FIELDS = ("error", "error_message", "errors")


def effective_timeout_seconds(provider: SerpProvider, settings: ScraperSettings) -> float:
    if provider.timeout_ms:
        return provider.timeout_ms / 1000
    return settings.timeout_seconds


def find_domain_rank(domain: str, organic_results: list[OrganicResult]) -> tuple[int, str | None]:
    """
    Position and URL of the first organic result hosted on `domain`.

    Returns (0, None) when the domain does not rank.
    """

    domain_host = normalize_host(domain)
    if not domain_host:
        return 0, None
    for result in organic_results:
        if normalize_host(result.url) == domain_host:
            return result.position, result.url
    return 0, None


def _error_message(body: Any) -> str | None:
    if not isinstance(body, Mapping):
        return None
    for field_name in ERROR_FIELDS:
        value = body.get(field_name)
        if value:
            return value if isinstance(value, str) else str(value)
    request_info = body.get("request_info")
    if isinstance(request_info, Mapping) and request_info.get("success") is False:
        return str(request_info.get("message") or "Request was not successful.")
    return None


async def _fetch(
    client: httpx.AsyncClient,
    provider: SerpProvider,
    url: str,
    headers: dict[str, str],
    timeout_seconds: float,
) -> Any:
    try:
        response = await client.get(url, headers=headers, timeout=httpx.Timeout(timeout_seconds))
    except httpx.TimeoutException as exc:
        raise ProviderRequestError(
            f"{provider.name} request timed out after {timeout_seconds:g}s."
        ) from exc
    except httpx.HTTPError as exc:
        raise ProviderRequestError(f"{provider.name} request failed: {exc}") from exc

    body: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None

    if response.status_code >= 400:
        detail = _error_message(body) or response.reason_phrase
        raise ProviderRequestError(
            f"{provider.name} returned HTTP {response.status_code}: {detail}",
            status_code=response.status_code,
        )
    if body is None:
        raise ProviderResponseError(f"{provider.name} returned a response that is not valid JSON.")

    error_message = _error_message(body)
    if error_message:
        raise ProviderResponseError(f"{provider.name} error: {error_message}")
    return body


async def scrape_keyword(
    snapshot: KeywordSnapshot,
    settings: ScraperSettings,
    *,
    client: httpx.AsyncClient,
    registry: ProviderRegistry,
    locales: Mapping[str, CountryLocale] | None = None,
    fallback_map_pack_top3: bool | None = None,
) -> ScrapeOutcome:
    """
    Fetch and decode the SERP for one keyword.

    Raises a ScraperError subclass on any provider, transport or payload
    failure. `fallback_map_pack_top3` is the desktop sibling's flag, used for
    mobile keywords whose response carries no local-results section.
    """

    provider = registry.get(settings.scraper_type)
    table = COUNTRIES if locales is None else locales
    url = provider.build_request_url(snapshot, settings, table)
    headers = provider.build_headers(snapshot, settings)
    timeout_seconds = effective_timeout_seconds(provider, settings)

    log_event(
        logger,
        logging.DEBUG,
        "serp_request_started",
        keyword_id=snapshot.id,
        scraper=provider.id,
        url=redact_url(url),
        timeout_seconds=timeout_seconds,
    )
    body = await _fetch(client, provider, url, headers, timeout_seconds)

    raw_result = body.get(provider.result_key) if isinstance(body, Mapping) else body
    if raw_result is None:
        raise ProviderResponseError(
            f"{provider.name} response is missing '{provider.result_key}'."
        )

    decoded: DecodedSerp = provider.decode_response(
        raw_result,
        body if isinstance(body, Mapping) else None,
        snapshot,
        settings,
    )

    map_pack_top3 = decoded.map_pack_top3 if provider.supports_map_pack else False
    if (
        provider.supports_map_pack
        and snapshot.is_mobile
        and fallback_map_pack_top3 is not None
        and not has_local_results_section(body)
    ):
        map_pack_top3 = fallback_map_pack_top3

    local_results = decoded.local_results or [dict(entry) for entry in extract_local_results(body)]
    position, ranked_url = find_domain_rank(snapshot.domain, decoded.organic_results)

    log_event(
        logger,
        logging.DEBUG,
        "serp_request_completed",
        keyword_id=snapshot.id,
        scraper=provider.id,
        position=position,
        results=len(decoded.organic_results),
        map_pack_top3=map_pack_top3,
    )
    return ScrapeOutcome(
        keyword_id=snapshot.id,
        scraper_id=provider.id,
        position=position,
        url=ranked_url,
        organic_results=decoded.organic_results,
        local_results=local_results,
        map_pack_top3=map_pack_top3,
    )
