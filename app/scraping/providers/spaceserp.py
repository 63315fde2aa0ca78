"""
Space Serp adapter.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode

from app.domain.keyword_refresh import KeywordSnapshot, ScraperSettings
from app.scraping.base import SerpProvider
from app.scraping.locales import CountryLocale


class SpaceSerpProvider(SerpProvider):
    id = "spaceSerp"
    name = "Space Serp"
    website = "spaceserp.com"
    allows_city = True
    supports_map_pack = True

    def build_request_url(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        locales: Mapping[str, CountryLocale],
    ) -> str:
        country = self.resolve_country(keyword)
        params = {
            "apiKey": settings.scraping_api or "",
            "q": self.query_text(keyword),
            "pageSize": "100",
            "gl": country.lower(),
            "hl": self.language_for(country, locales),
            "google_domain": self.google_domain_for(country, locales),
            "resultBlocks": "",
        }
        if keyword.is_mobile:
            params["device"] = "mobile"
        location = self.location_param(keyword, country, locales)
        if location:
            params["location"] = location
        return f"https://api.spaceserp.com/google/search?{urlencode(params)}"
