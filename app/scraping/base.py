"""
Base SERP provider abstraction.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar

from app.domain.keyword_refresh import KeywordSnapshot, OrganicResult, ScraperSettings
from app.scraping.errors import ProviderResponseError
from app.scraping.locales import (
    CountryLocale,
    build_location_param,
    decode_text,
    get_locale,
    resolve_country_code,
)
from app.scraping.map_pack import compute_map_pack_top3
from app.scraping.types import DecodedSerp


class SerpProvider(ABC):
    """
    Static capability bundle plus request/decode hooks for one SERP API.

    Providers hold no per-request state; one instance serves every keyword.
    """

    id: ClassVar[str]
    name: ClassVar[str]
    website: ClassVar[str] = ""
    result_key: ClassVar[str] = "organic_results"
    allowed_countries: ClassVar[tuple[str, ...] | None] = None
    allows_city: ClassVar[bool] = False
    supports_map_pack: ClassVar[bool] = False
    supports_parallel: ClassVar[bool] = False
    timeout_ms: ClassVar[int | None] = None
    # Field in each organic entry carrying its rank.
    position_field: ClassVar[str] = "position"

    @abstractmethod
    def build_request_url(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        locales: Mapping[str, CountryLocale],
    ) -> str:
        """
        Build the provider request URL for one keyword.
        """

    def build_headers(self, keyword: KeywordSnapshot, settings: ScraperSettings) -> dict[str, str]:
        return {}

    def decode_response(
        self,
        raw_result: Any,
        raw_body: Mapping[str, Any] | None,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
    ) -> DecodedSerp:
        """
        Turn the provider payload into organic results and the map-pack flag.
        """

        organic_results = parse_organic_results(
            raw_result,
            raw_body,
            result_key=self.result_key,
            position_field=self.position_field,
            provider_name=self.name,
        )
        map_pack_top3 = False
        if self.supports_map_pack:
            map_pack_top3 = compute_map_pack_top3(
                keyword.domain,
                raw_body,
                business_name=self.business_name_for(settings),
            )
        return DecodedSerp(organic_results=organic_results, map_pack_top3=map_pack_top3)

    def business_name_for(self, settings: ScraperSettings) -> str | None:
        return None

    def resolve_country(self, keyword: KeywordSnapshot) -> str:
        return resolve_country_code(keyword.country, self.allowed_countries)

    def query_text(self, keyword: KeywordSnapshot) -> str:
        return decode_text(keyword.keyword)

    def location_param(
        self,
        keyword: KeywordSnapshot,
        country: str,
        locales: Mapping[str, CountryLocale],
    ) -> str | None:
        if not self.allows_city:
            return None
        return build_location_param(keyword.location, country, locales)

    def language_for(self, country: str, locales: Mapping[str, CountryLocale]) -> str:
        return get_locale(country, locales).language

    def google_domain_for(self, country: str, locales: Mapping[str, CountryLocale]) -> str:
        return get_locale(country, locales).google_domain


def _coerce_position(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return fallback
    return fallback


def parse_organic_results(
    raw_result: Any,
    raw_body: Mapping[str, Any] | None,
    *,
    result_key: str,
    position_field: str = "position",
    provider_name: str,
) -> list[OrganicResult]:
    """
    Parse organic results from a list, a JSON string or the full response body.

    Entries without both a title and a link are dropped.
    """

    entries: Sequence[Any] = []
    if isinstance(raw_result, str):
        try:
            parsed = json.loads(raw_result)
        except json.JSONDecodeError as exc:
            raise ProviderResponseError(f"Invalid JSON response for {provider_name}: {exc}") from exc
        if not isinstance(parsed, list):
            raise ProviderResponseError(f"Unexpected result payload for {provider_name}: expected a list.")
        entries = parsed
    elif isinstance(raw_result, list):
        entries = raw_result
    elif isinstance(raw_body, Mapping) and isinstance(raw_body.get(result_key), list):
        entries = raw_body[result_key]

    results: list[OrganicResult] = []
    for index, item in enumerate(entries):
        if not isinstance(item, Mapping):
            continue
        title = item.get("title")
        link = item.get("link")
        if not title or not link:
            continue
        results.append(
            OrganicResult(
                title=str(title),
                url=str(link),
                position=_coerce_position(item.get(position_field), index + 1),
            )
        )
    return results
