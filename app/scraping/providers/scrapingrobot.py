"""
Scraping Robot adapter.

Scraping Robot proxies a plain Google results page, so organic results are
parsed out of the returned HTML.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, quote, urlencode, urlsplit

from bs4 import BeautifulSoup, Tag

from app.domain.keyword_refresh import KeywordSnapshot, OrganicResult, ScraperSettings
from app.scraping.base import SerpProvider
from app.scraping.errors import ProviderResponseError
from app.scraping.locales import CountryLocale
from app.scraping.types import DecodedSerp


class GoogleResultsHTMLParser:
    """
    Extract organic results from a Google results page.
    """

    RESULT_SELECTORS = ("div.g", "div.MjjYud", "div.tF2Cxc")

    @classmethod
    def parse(cls, html: str) -> list[OrganicResult]:
        soup = BeautifulSoup(html, "html.parser")
        results: list[OrganicResult] = []
        seen: set[str] = set()

        for block in cls._result_blocks(soup):
            anchor = block.find("a", href=True)
            heading = block.find("h3")
            if anchor is None or heading is None:
                continue
            url = cls._clean_href(str(anchor["href"]))
            title = heading.get_text(" ", strip=True)
            if not url or not title or url in seen:
                continue
            seen.add(url)
            results.append(OrganicResult(title=title, url=url, position=len(results) + 1))
        return results

    @classmethod
    def _result_blocks(cls, soup: BeautifulSoup) -> list[Tag]:
        for selector in cls.RESULT_SELECTORS:
            blocks = soup.select(selector)
            if blocks:
                return blocks
        # Stripped-down pages without result containers.
        return [heading.parent for heading in soup.find_all("h3") if isinstance(heading.parent, Tag)]

    @staticmethod
    def _clean_href(href: str) -> str | None:
        if href.startswith("/url?"):
            target = parse_qs(urlsplit(href).query).get("q")
            href = target[0] if target else ""
        if not href.startswith(("http://", "https://")):
            return None
        host = urlsplit(href).hostname or ""
        if ".google." in f".{host}.":
            return None
        return href


class ScrapingRobotProvider(SerpProvider):
    id = "scrapingrobot"
    name = "Scraping Robot"
    website = "scrapingrobot.com"
    result_key = "result"

    def build_request_url(
        self,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
        locales: Mapping[str, CountryLocale],
    ) -> str:
        country = self.resolve_country(keyword)
        google_params = {
            "num": "100",
            "hl": self.language_for(country, locales),
            "gl": country.lower(),
            "q": self.query_text(keyword),
        }
        google_url = f"https://{self.google_domain_for(country, locales)}/search?{urlencode(google_params)}"
        params = {
            "token": settings.scraping_api or "",
            "proxyCountry": country,
            "render": "false",
        }
        if keyword.is_mobile:
            params["mobile"] = "true"
        return f"https://api.scrapingrobot.com/?{urlencode(params)}&url={quote(google_url, safe='')}"

    def decode_response(
        self,
        raw_result: Any,
        raw_body: Mapping[str, Any] | None,
        keyword: KeywordSnapshot,
        settings: ScraperSettings,
    ) -> DecodedSerp:
        if isinstance(raw_result, list):
            return super().decode_response(raw_result, raw_body, keyword, settings)
        if not isinstance(raw_result, str):
            raise ProviderResponseError(f"Missing HTML result for {self.name}.")
        return DecodedSerp(organic_results=GoogleResultsHTMLParser.parse(raw_result))
