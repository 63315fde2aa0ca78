"""
Value Serp adapter.

Value Serp accepts a wider set of Google domains than the shared locale table
carries, so it keeps its own mapping.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode

from app.domain.keyword_refresh import KeywordSnapshot, ScraperSettings
from app.scraping.base import SerpProvider
from app.scraping.locales import CountryLocale

GOOGLE_DOMAINS: dict[str, str] = {
    "AE": "google.ae",
    "AR": "google.com.ar",
    "AT": "google.at",
    "AU": "google.com.au",
    "BD": "google.com.bd",
    "BE": "google.be",
    "BG": "google.bg",
    "BH": "google.com.bh",
    "BR": "google.com.br",
    "BY": "google.by",
    "CA": "google.ca",
    "CH": "google.ch",
    "CL": "google.cl",
    "CN": "google.cn",
    "CO": "google.com.co",
    "CZ": "google.cz",
    "DE": "google.de",
    "DK": "google.dk",
    "DO": "google.com.do",
    "EC": "google.com.ec",
    "EG": "google.com.eg",
    "ES": "google.es",
    "FI": "google.fi",
    "FR": "google.fr",
    "GB": "google.co.uk",
    "GR": "google.gr",
    "GT": "google.com.gt",
    "HK": "google.com.hk",
    "HN": "google.hn",
    "HR": "google.hr",
    "HU": "google.hu",
    "ID": "google.co.id",
    "IE": "google.ie",
    "IL": "google.co.il",
    "IN": "google.co.in",
    "IQ": "google.iq",
    "IS": "google.is",
    "IT": "google.it",
    "JM": "google.com.jm",
    "JO": "google.jo",
    "JP": "google.co.jp",
    "KE": "google.co.ke",
    "KR": "google.co.kr",
    "KW": "google.com.kw",
    "KZ": "google.kz",
    "LB": "google.com.lb",
    "LT": "google.lt",
    "LU": "google.lu",
    "LV": "google.lv",
    "MA": "google.co.ma",
    "MX": "google.com.mx",
    "MY": "google.com.my",
    "NG": "google.com.ng",
    "NL": "google.nl",
    "NO": "google.no",
    "NZ": "google.co.nz",
    "OM": "google.com.om",
    "PA": "google.com.pa",
    "PE": "google.com.pe",
    "PH": "google.com.ph",
    "PK": "google.com.pk",
    "PL": "google.pl",
    "PT": "google.pt",
    "QA": "google.com.qa",
    "RO": "google.ro",
    "RS": "google.rs",
    "SA": "google.com.sa",
    "SE": "google.se",
    "SG": "google.com.sg",
    "SI": "google.si",
    "SK": "google.sk",
    "TH": "google.co.th",
    "TR": "google.com.tr",
    "TW": "google.com.tw",
    "UA": "google.com.ua",
    "US": "google.com",
    "UY": "google.com.uy",
    "VN": "google.com.vn",
    "ZA": "google.co.za",
}


class ValueSerpProvider(SerpProvider):
    id = "valueserp"
    name = "Value Serp"
    website = "valueserp.com"
    allows_city = True
    supports_map_pack = True
    timeout_ms = 35_000

    def google_domain_for(self, country: str, locales: Mapping[str, CountryLocale]) -> str:
        return GOOGLE_DOMAINS.get(country.upper(), "google.com")

    def build_request_url(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        locales: Mapping[str, CountryLocale],
    ) -> str:
        country = self.resolve_country(keyword)
        params = {
            "api_key": settings.scraping_api or "",
            "q": self.query_text(keyword),
            "gl": country.lower(),
            "hl": self.language_for(country, locales),
            "output": "json",
            "include_answer_box": "false",
            "include_advertiser_info": "false",
            "google_domain": self.google_domain_for(country, locales),
        }
        if keyword.is_mobile:
            params["device"] = "mobile"
        location = self.location_param(keyword, country, locales)
        if location:
            params["location"] = location
        return f"https://api.valueserp.com/search?{urlencode(params)}"
