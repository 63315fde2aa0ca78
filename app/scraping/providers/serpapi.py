"""
SerpApi.com adapter.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode

from app.domain.keyword_refresh import KeywordSnapshot, ScraperSettings
from app.scraping.base import SerpProvider
from app.scraping.locales import CountryLocale


class SerpApiProvider(SerpProvider):
    id = "serpapi"
    name = "SerpApi.com"
    website = "serpapi.com"
    allows_city = True
    supports_map_pack = True
    supports_parallel = True

    def build_headers(self, keyword: KeywordSnapshot, settings: ScraperSettings) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": settings.scraping_api or "",
        }

    def build_request_url(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        locales: Mapping[str, CountryLocale],
    ) -> str:
        country = self.resolve_country(keyword)
        params = {
            "q": self.query_text(keyword),
            "num": "100",
            "gl": country.lower(),
            "device": keyword.device,
            "api_key": settings.scraping_api or "",
            "google_domain": self.google_domain_for(country, locales),
        }
        location = self.location_param(keyword, country, locales)
        if location:
            params["location"] = location
        return f"https://serpapi.com/search?{urlencode(params)}"
