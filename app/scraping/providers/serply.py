"""
Serply adapter.

Serply authenticates through headers and only proxies a fixed set of
countries; anything else is searched from the US.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode

from app.domain.keyword_refresh import KeywordSnapshot, ScraperSettings
from app.scraping.base import SerpProvider
from app.scraping.locales import CountryLocale

SERPLY_COUNTRIES = ("US", "CA", "IE", "GB", "FR", "DE", "SE", "IN", "JP", "KR", "SG", "AU", "BR")


class SerplyProvider(SerpProvider):
    id = "serply"
    name = "Serply"
    website = "serply.io"
    result_key = "result"
    allowed_countries = SERPLY_COUNTRIES
    supports_map_pack = True
    position_field = "realPosition"

    def build_headers(self, keyword: KeywordSnapshot, settings: ScraperSettings) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-User-Agent": keyword.device,
            "X-Api-Key": settings.scraping_api or "",
            "X-Proxy-Location": self.resolve_country(keyword),
        }

    def build_request_url(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        locales: Mapping[str, CountryLocale],
    ) -> str:
        params = {
            "q": self.query_text(keyword),
            "num": "100",
            "hl": self.resolve_country(keyword),
        }
        return f"https://api.serply.io/v1/search?{urlencode(params)}"

    def business_name_for(self, settings: ScraperSettings) -> str | None:
        return settings.business_name
