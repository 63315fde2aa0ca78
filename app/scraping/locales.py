"""
Country locale table used to build provider requests.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import unquote

DEFAULT_COUNTRY = "US"


@dataclass(frozen=True)
class CountryLocale:
    """
    Locale data for one country code.
    """

    name: str
    city: str
    language: str
    google_domain: str


COUNTRIES: dict[str, CountryLocale] = {
    "AE": CountryLocale("United Arab Emirates", "Dubai", "ar", "google.ae"),
    "AR": CountryLocale("Argentina", "Buenos Aires", "es", "google.com.ar"),
    "AT": CountryLocale("Austria", "Vienna", "de", "google.at"),
    "AU": CountryLocale("Australia", "Canberra", "en", "google.com.au"),
    "BD": CountryLocale("Bangladesh", "Dhaka", "bn", "google.com.bd"),
    "BE": CountryLocale("Belgium", "Brussels", "nl", "google.be"),
    "BG": CountryLocale("Bulgaria", "Sofia", "bg", "google.bg"),
    "BR": CountryLocale("Brazil", "Brasilia", "pt", "google.com.br"),
    "CA": CountryLocale("Canada", "Ottawa", "en", "google.ca"),
    "CH": CountryLocale("Switzerland", "Bern", "de", "google.ch"),
    "CL": CountryLocale("Chile", "Santiago", "es", "google.cl"),
    "CO": CountryLocale("Colombia", "Bogota", "es", "google.com.co"),
    "CZ": CountryLocale("Czechia", "Prague", "cs", "google.cz"),
    "DE": CountryLocale("Germany", "Berlin", "de", "google.de"),
    "DK": CountryLocale("Denmark", "Copenhagen", "da", "google.dk"),
    "EG": CountryLocale("Egypt", "Cairo", "ar", "google.com.eg"),
    "ES": CountryLocale("Spain", "Madrid", "es", "google.es"),
    "FI": CountryLocale("Finland", "Helsinki", "fi", "google.fi"),
    "FR": CountryLocale("France", "Paris", "fr", "google.fr"),
    "GB": CountryLocale("United Kingdom", "London", "en", "google.co.uk"),
    "GR": CountryLocale("Greece", "Athens", "el", "google.gr"),
    "HK": CountryLocale("Hong Kong", "Hong Kong", "zh-TW", "google.com.hk"),
    "HU": CountryLocale("Hungary", "Budapest", "hu", "google.hu"),
    "ID": CountryLocale("Indonesia", "Jakarta", "id", "google.co.id"),
    "IE": CountryLocale("Ireland", "Dublin", "en", "google.ie"),
    "IL": CountryLocale("Israel", "Jerusalem", "iw", "google.co.il"),
    "IN": CountryLocale("India", "New Delhi", "en", "google.co.in"),
    "IT": CountryLocale("Italy", "Rome", "it", "google.it"),
    "JP": CountryLocale("Japan", "Tokyo", "ja", "google.co.jp"),
    "KE": CountryLocale("Kenya", "Nairobi", "en", "google.co.ke"),
    "KR": CountryLocale("South Korea", "Seoul", "ko", "google.co.kr"),
    "MX": CountryLocale("Mexico", "Mexico City", "es", "google.com.mx"),
    "MY": CountryLocale("Malaysia", "Kuala Lumpur", "en", "google.com.my"),
    "NG": CountryLocale("Nigeria", "Abuja", "en", "google.com.ng"),
    "NL": CountryLocale("Netherlands", "Amsterdam", "nl", "google.nl"),
    "NO": CountryLocale("Norway", "Oslo", "no", "google.no"),
    "NZ": CountryLocale("New Zealand", "Wellington", "en", "google.co.nz"),
    "PE": CountryLocale("Peru", "Lima", "es", "google.com.pe"),
    "PH": CountryLocale("Philippines", "Manila", "en", "google.com.ph"),
    "PK": CountryLocale("Pakistan", "Islamabad", "en", "google.com.pk"),
    "PL": CountryLocale("Poland", "Warsaw", "pl", "google.pl"),
    "PT": CountryLocale("Portugal", "Lisbon", "pt", "google.pt"),
    "RO": CountryLocale("Romania", "Bucharest", "ro", "google.ro"),
    "SA": CountryLocale("Saudi Arabia", "Riyadh", "ar", "google.com.sa"),
    "SE": CountryLocale("Sweden", "Stockholm", "sv", "google.se"),
    "SG": CountryLocale("Singapore", "Singapore", "en", "google.com.sg"),
    "TH": CountryLocale("Thailand", "Bangkok", "th", "google.co.th"),
    "TR": CountryLocale("Turkey", "Ankara", "tr", "google.com.tr"),
    "TW": CountryLocale("Taiwan", "Taipei", "zh-TW", "google.com.tw"),
    "UA": CountryLocale("Ukraine", "Kyiv", "uk", "google.com.ua"),
    "US": CountryLocale("United States", "Washington, D.C.", "en", "google.com"),
    "VN": CountryLocale("Vietnam", "Hanoi", "vi", "google.com.vn"),
    "ZA": CountryLocale("South Africa", "Pretoria", "en", "google.co.za"),
}


def resolve_country_code(
    country: str | None,
    allowed_countries: Sequence[str] | None = None,
    fallback: str = DEFAULT_COUNTRY,
) -> str:
    """
    Upper-case `country`; fall back when it is empty or not allowed.
    """

    normalized_fallback = fallback.upper()
    normalized = (country or "").strip().upper()
    if not normalized:
        return normalized_fallback
    if allowed_countries:
        return normalized if normalized in allowed_countries else normalized_fallback
    return normalized


def get_locale(country: str, locales: Mapping[str, CountryLocale] | None = None) -> CountryLocale:
    table = COUNTRIES if locales is None else locales
    return table.get(country.upper()) or table.get(DEFAULT_COUNTRY) or COUNTRIES[DEFAULT_COUNTRY]


def decode_text(value: str | None) -> str:
    """
    Undo any prior URL encoding so text is encoded exactly once downstream.
    """

    if not value:
        return ""
    return unquote(value).strip()


def parse_location(location: str | None, country: str | None) -> tuple[str | None, str | None]:
    """
    Split a free-text location into (city, state).

    A trailing country name or code is ignored because providers receive the
    country separately.
    """

    text = decode_text(location)
    if not text:
        return None, None

    parts = [part.strip() for part in text.split(",") if part.strip()]
    code = (country or "").strip().upper()
    country_name = COUNTRIES[code].name.lower() if code in COUNTRIES else None
    if parts and (parts[-1].upper() == code or parts[-1].lower() == country_name):
        parts = parts[:-1]

    if not parts:
        return None, None
    city = parts[0]
    state = parts[1] if len(parts) > 1 else None
    return city, state


def build_location_param(
    location: str | None,
    country: str,
    locales: Mapping[str, CountryLocale] | None = None,
) -> str | None:
    city, state = parse_location(location, country)
    if not city and not state:
        return None
    parts = [part for part in (city, state, get_locale(country, locales).name) if part]
    return ",".join(parts)
