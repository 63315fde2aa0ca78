"""
tests/test_providers.py

Pytest unit tests for the SERP provider adapters and registry.

Coverage
--------
- Registry lookup, registration and unknown ids
- Extra providers registered from SCRAPER_PROVIDER_CLASSES
- Request URLs: single encoding, locale mapping, device and location
- Serply country restriction and header auth
- Organic result decoding from lists, JSON strings and bodies
- Map-pack capability flag
- Scraping Robot HTML parsing
"""

from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from app.domain.keyword_refresh import KeywordSnapshot, ScraperSettings
from app.scraping.base import SerpProvider, parse_organic_results
from app.scraping.errors import ProviderResponseError, UnknownProviderError
from app.scraping.locales import COUNTRIES
from app.scraping.providers import (
    ScrapingRobotProvider,
    SearchApiProvider,
    SerpApiProvider,
    SerplyProvider,
    SpaceSerpProvider,
    ValueSerpProvider,
)
from app.config import get_provider_class_paths
from app.scraping import registry as registry_module
from app.scraping.registry import ProviderRegistry, get_provider_registry


class PluginProvider(SerpProvider):
    id = "plugin"
    name = "Plugin SERP"

    def build_request_url(self, keyword, settings, locales) -> str:
        return "https://plugin.example/search"


def _keyword(**overrides: object) -> KeywordSnapshot:
    values: dict[str, object] = {"id": 1, "keyword": "best coffee beans", "domain": "x.com"}
    values.update(overrides)
    return KeywordSnapshot(**values)  # type: ignore[arg-type]


def _params(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query, keep_blank_values=True).items()}


@pytest.fixture()
def settings() -> ScraperSettings:
    return ScraperSettings(scraper_type="serpapi", scraping_api="token-123")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestProviderRegistry:
    def test_builtins_are_registered(self) -> None:
        registry = ProviderRegistry()
        assert set(registry.ids()) == {
            "serpapi",
            "searchapi",
            "valueserp",
            "spaceSerp",
            "serply",
            "scrapingrobot",
        }

    def test_unknown_id_raises(self) -> None:
        with pytest.raises(UnknownProviderError, match="Allowed types"):
            ProviderRegistry().get("bogus")

    def test_none_is_not_a_provider(self) -> None:
        with pytest.raises(UnknownProviderError):
            ProviderRegistry().get("none")

    def test_register_custom_provider(self) -> None:
        class CustomProvider(SerpProvider):
            id = "custom"
            name = "Custom"

            def build_request_url(self, keyword, settings, locales) -> str:
                return "https://custom.example/search"

        registry = ProviderRegistry()
        registry.register(provider_class=CustomProvider)
        assert registry.get("custom").name == "Custom"
        assert "custom" in registry

    def test_dynamic_path_must_be_a_provider(self) -> None:
        with pytest.raises(ValueError):
            ProviderRegistry().register_path("app.scraping.locales:CountryLocale")

    def test_default_registry_loads_configured_classes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCRAPER_PROVIDER_CLASSES", " test_providers:PluginProvider, ,")
        monkeypatch.setattr(registry_module, "_default_registry", None)
        get_provider_class_paths.cache_clear()
        try:
            registry = get_provider_registry()
        finally:
            get_provider_class_paths.cache_clear()

        assert registry.get("plugin").name == "Plugin SERP"
        assert "serpapi" in registry

    def test_default_registry_rejects_bad_class_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCRAPER_PROVIDER_CLASSES", "test_providers")
        monkeypatch.setattr(registry_module, "_default_registry", None)
        get_provider_class_paths.cache_clear()
        try:
            with pytest.raises(ValueError, match="module.path:ClassName"):
                get_provider_registry()
        finally:
            get_provider_class_paths.cache_clear()
        assert registry_module._default_registry is None

    def test_parallel_capability(self) -> None:
        registry = ProviderRegistry()
        parallel = {provider.id for provider in registry.providers() if provider.supports_parallel}
        assert parallel == {"serpapi", "searchapi"}


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


class TestRequestUrls:
    def test_pre_encoded_text_is_encoded_once(self, settings: ScraperSettings) -> None:
        keyword = _keyword(keyword="plumber%20near%20me", location="new%20york,NY,US")
        url = SerpApiProvider().build_request_url(keyword, settings, COUNTRIES)

        assert "q=plumber+near+me" in url
        assert "new+york" in url
        assert "%2520" not in url
        assert _params(url)["location"] == "new york,NY,United States"

    def test_plus_signs_survive(self, settings: ScraperSettings) -> None:
        url = SerpApiProvider().build_request_url(_keyword(keyword="c++ tutorial"), settings, COUNTRIES)
        assert _params(url)["q"] == "c++ tutorial"

    def test_country_maps_to_google_domain(self, settings: ScraperSettings) -> None:
        url = SerpApiProvider().build_request_url(_keyword(country="GB"), settings, COUNTRIES)
        params = _params(url)
        assert params["google_domain"] == "google.co.uk"
        assert params["gl"] == "gb"

    def test_searchapi_locale_parameters(self, settings: ScraperSettings) -> None:
        url = SearchApiProvider().build_request_url(_keyword(location="Miami,FL,US"), settings, COUNTRIES)
        params = _params(url)
        assert params["google_domain"] == "google.com"
        assert params["device"] == "desktop"
        assert params["location"] == "Miami,FL,United States"
        assert "api_key" not in params

    def test_spaceserp_sets_mobile_device_and_language(self, settings: ScraperSettings) -> None:
        url = SpaceSerpProvider().build_request_url(_keyword(device="mobile", country="BR"), settings, COUNTRIES)
        params = _params(url)
        assert params["device"] == "mobile"
        assert params["hl"] == "pt"
        assert params["google_domain"] == "google.com.br"

    def test_valueserp_uses_own_domain_table_and_timeout(self, settings: ScraperSettings) -> None:
        url = ValueSerpProvider().build_request_url(_keyword(country="QA"), settings, COUNTRIES)
        assert _params(url)["google_domain"] == "google.com.qa"
        assert ValueSerpProvider.timeout_ms == 35_000

    def test_serply_falls_back_to_us_for_disallowed_country(self, settings: ScraperSettings) -> None:
        provider = SerplyProvider()
        keyword = _keyword(country="NG", device="mobile")

        url = provider.build_request_url(keyword, settings, COUNTRIES)
        headers = provider.build_headers(keyword, settings)

        assert _params(url)["hl"] == "US"
        assert headers["X-Proxy-Location"] == "US"
        assert headers["X-User-Agent"] == "mobile"
        assert headers["X-Api-Key"] == "token-123"
        assert "token-123" not in url

    def test_serply_keeps_allowed_country(self, settings: ScraperSettings) -> None:
        url = SerplyProvider().build_request_url(_keyword(country="de"), settings, COUNTRIES)
        assert _params(url)["hl"] == "DE"

    def test_scrapingrobot_wraps_google_url(self, settings: ScraperSettings) -> None:
        url = ScrapingRobotProvider().build_request_url(_keyword(device="mobile"), settings, COUNTRIES)
        params = _params(url)
        google = urlsplit(unquote(params["url"]))

        assert params["proxyCountry"] == "US"
        assert params["mobile"] == "true"
        assert google.hostname == "google.com"
        assert parse_qs(google.query)["q"] == ["best coffee beans"]


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


class TestDecodeResponse:
    def test_parses_list_and_drops_incomplete_entries(self) -> None:
        results = parse_organic_results(
            [{"title": "A", "link": "https://a.com", "position": 1}, {"title": "No link"}],
            None,
            result_key="organic_results",
            provider_name="Test",
        )
        assert [(item.title, item.url, item.position) for item in results] == [("A", "https://a.com", 1)]

    def test_parses_json_string(self) -> None:
        results = parse_organic_results(
            '[{"title": "A", "link": "https://a.com", "position": 2}]',
            None,
            result_key="organic_results",
            provider_name="Test",
        )
        assert results[0].position == 2

    def test_invalid_json_raises_response_error(self) -> None:
        with pytest.raises(ProviderResponseError, match="Invalid JSON"):
            parse_organic_results("{not json", None, result_key="organic_results", provider_name="Test")

    def test_missing_position_uses_order(self) -> None:
        results = parse_organic_results(
            [{"title": "A", "link": "https://a.com"}, {"title": "B", "link": "https://b.com"}],
            None,
            result_key="organic_results",
            provider_name="Test",
        )
        assert [item.position for item in results] == [1, 2]

    def test_serply_reads_real_position(self, settings: ScraperSettings) -> None:
        decoded = SerplyProvider().decode_response(
            [{"title": "A", "link": "https://a.com", "realPosition": 9}],
            {"result": []},
            _keyword(),
            settings,
        )
        assert decoded.organic_results[0].position == 9

    def test_map_pack_detected_for_capable_provider(self, settings: ScraperSettings) -> None:
        body = {"organic_results": [], "local_results": [{"title": "Us", "website": "https://x.com"}]}
        decoded = SerpApiProvider().decode_response([], body, _keyword(), settings)
        assert decoded.map_pack_top3 is True

    def test_serply_uses_business_name(self) -> None:
        settings = ScraperSettings(scraper_type="serply", business_name="Acme Coffee")
        body = {"result": [], "local_results": [{"title": "Acme Coffee", "data_id": "1"}]}
        decoded = SerplyProvider().decode_response([], body, _keyword(), settings)
        assert decoded.map_pack_top3 is True

    def test_non_capable_provider_never_reports_map_pack(self, settings: ScraperSettings) -> None:
        html = "<html><body></body></html>"
        body = {"result": html, "local_results": [{"title": "Us", "website": "https://x.com"}]}
        decoded = ScrapingRobotProvider().decode_response(html, body, _keyword(), settings)
        assert decoded.map_pack_top3 is False


class TestScrapingRobotHtml:
    HTML = """
    <html><body>
      <div class="g"><a href="https://first.com/a"><h3>First</h3></a></div>
      <div class="g"><a href="/url?q=https://www.x.com/landing&sa=U"><h3>Ours</h3></a></div>
      <div class="g"><a href="https://maps.google.com/place"><h3>Maps</h3></a></div>
      <div class="g"><a href="https://first.com/a"><h3>Duplicate</h3></a></div>
      <div class="g"><span>No link</span></div>
    </body></html>
    """

    def test_extracts_organic_results_in_order(self, settings: ScraperSettings) -> None:
        decoded = ScrapingRobotProvider().decode_response(self.HTML, {"result": self.HTML}, _keyword(), settings)
        assert [(item.title, item.url, item.position) for item in decoded.organic_results] == [
            ("First", "https://first.com/a", 1),
            ("Ours", "https://www.x.com/landing", 2),
        ]

    def test_missing_html_raises(self, settings: ScraperSettings) -> None:
        with pytest.raises(ProviderResponseError):
            ScrapingRobotProvider().decode_response({"oops": 1}, {"result": {"oops": 1}}, _keyword(), settings)
