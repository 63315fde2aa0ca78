"""
tests/test_locales.py

Pytest unit tests for country and location helpers.
"""

from __future__ import annotations

import pytest

from app.scraping.locales import (
    build_location_param,
    decode_text,
    get_locale,
    parse_location,
    resolve_country_code,
)


class TestResolveCountryCode:
    def test_upper_cases_input(self) -> None:
        assert resolve_country_code(" gb ") == "GB"

    def test_empty_falls_back_to_us(self) -> None:
        assert resolve_country_code(None) == "US"

    def test_disallowed_falls_back(self) -> None:
        assert resolve_country_code("NG", ("US", "GB")) == "US"


class TestLocationHelpers:
    def test_decode_text_undoes_one_level_of_encoding(self) -> None:
        assert decode_text("best%20pizza") == "best pizza"
        assert decode_text("100%25%20natural") == "100% natural"
        assert decode_text(None) == ""

    @pytest.mark.parametrize(
        ("location", "expected"),
        [
            ("Miami,FL,US", ("Miami", "FL")),
            ("Miami, FL, United States", ("Miami", "FL")),
            ("Austin", ("Austin", None)),
            ("US", (None, None)),
            ("", (None, None)),
        ],
    )
    def test_parse_location(self, location: str, expected: tuple) -> None:
        assert parse_location(location, "US") == expected

    def test_build_location_param_appends_country_name(self) -> None:
        assert build_location_param("Leeds", "GB") == "Leeds,United Kingdom"
        assert build_location_param("", "GB") is None

    def test_unknown_country_uses_us_locale(self) -> None:
        assert get_locale("ZZ").google_domain == "google.com"
