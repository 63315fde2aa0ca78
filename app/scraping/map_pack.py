"""
Local-pack (map pack) detection over heterogeneous provider payloads.

Providers put local results under different keys and nesting levels. The
detector tries the well-known locations first and only then walks keys whose
names hint at local results, so an unrelated nested array is not picked up by
accident. Nothing here raises on odd input: a payload without local results
simply yields no entries.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

MAX_SEARCH_DEPTH = 3
TOP_N = 3

URL_KEYS = (
    "website",
    "link",
    "url",
    "site",
    "result_link",
    "data_website",
    "share_link",
    "maps_website",
    "place_link",
    "business_website",
    "domain",
)
NESTED_URL_CONTAINERS = ("links", "gps_coordinates")
POSITION_KEYS = ("position", "rank", "index", "block_position")
TITLE_KEYS = ("title", "name", "business_name", "place_name")
PLAUSIBLE_ENTRY_KEYS = ("title", "link", "website", "data_id")
KEY_HINTS = ("local", "map", "place")

# (top-level key, optional nested key) pairs checked before the generic walk.
DIRECT_PATHS: tuple[tuple[str, str | None], ...] = (
    ("local_results", None),
    ("localResults", None),
    ("local_results", "results"),
    ("local_results", "local_results"),
    ("local_results", "places"),
    ("local_pack", "results"),
    ("maps_results", None),
    ("map_results", None),
    ("places_results", None),
    ("place_results", None),
    ("results", "local_results"),
    ("mobile_local_results", None),
    ("local_map", None),
    ("local_map", "places"),
    ("places", None),
)


def _is_plausible_entry(entry: Any) -> bool:
    return isinstance(entry, Mapping) and any(key in entry for key in PLAUSIBLE_ENTRY_KEYS)


def _plausible_entries(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if _is_plausible_entry(entry)]


def _has_hint(key: str) -> bool:
    lowered = key.lower()
    return any(hint in lowered for hint in KEY_HINTS)


def _search_hinted(container: Mapping[str, Any], depth: int) -> list[Mapping[str, Any]]:
    if depth > MAX_SEARCH_DEPTH:
        return []

    for key, value in container.items():
        if not value or not isinstance(key, str) or not _has_hint(key):
            continue
        entries = _plausible_entries(value)
        if entries:
            return entries
        if isinstance(value, Mapping):
            nested = _search_hinted(value, depth + 1)
            if nested:
                return nested
    return []


def extract_local_results(payload: Any) -> list[Mapping[str, Any]]:
    """
    Return the first array of plausible local-result entries in `payload`.
    """

    if isinstance(payload, list):
        return _plausible_entries(payload)
    if not isinstance(payload, Mapping):
        return []

    for key, nested_key in DIRECT_PATHS:
        value = payload.get(key)
        if nested_key is not None:
            value = value.get(nested_key) if isinstance(value, Mapping) else None
        entries = _plausible_entries(value)
        if entries:
            return entries

    return _search_hinted(payload, depth=0)


def _has_hinted_section(container: Mapping[str, Any], depth: int) -> bool:
    # Empty lists count; nested mappings are walked whatever their key.
    if depth > MAX_SEARCH_DEPTH:
        return False
    for key, value in container.items():
        if isinstance(key, str) and _has_hint(key) and isinstance(value, list):
            return True
        if isinstance(value, Mapping) and _has_hinted_section(value, depth + 1):
            return True
    return False


def has_local_results_section(payload: Any) -> bool:
    """
    Whether the payload carries any local-results section, even an empty one.
    """

    if not isinstance(payload, Mapping):
        return False
    for key, nested_key in DIRECT_PATHS:
        if key not in payload:
            continue
        if nested_key is None:
            return True
        value = payload.get(key)
        if isinstance(value, Mapping) and nested_key in value:
            return True
    return _has_hinted_section(payload, depth=0)


def normalize_host(value: str | None) -> str | None:
    """
    Lower-cased hostname without a leading `www.`, or None if unparseable.
    """

    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if "://" not in text:
        text = f"https://{text}"
    try:
        host = urlsplit(text).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def url_matches_domain(domain_host: str, candidate: str) -> bool:
    candidate_host = normalize_host(candidate)
    if not candidate_host:
        return False
    # Maps redirect links point at Google, never at the business itself.
    if "google." in candidate_host:
        return False
    return candidate_host == domain_host


def _entry_rank(entry: Mapping[str, Any], index: int) -> float:
    for key in POSITION_KEYS:
        if key not in entry:
            continue
        value = entry[key]
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str) and value.strip():
            try:
                return float(value)
            except ValueError:
                continue
    return float(index + 1)


def _candidate_urls(entry: Mapping[str, Any]) -> list[str]:
    candidates: list[str] = []

    def _collect(source: Mapping[str, Any]) -> None:
        for key in URL_KEYS:
            value = source.get(key)
            if isinstance(value, str) and value.strip() and value.strip() not in candidates:
                candidates.append(value.strip())

    _collect(entry)
    for container_key in NESTED_URL_CONTAINERS:
        nested = entry.get(container_key)
        if isinstance(nested, Mapping):
            _collect(nested)
    return candidates


def _title_matches(entry: Mapping[str, Any], business_name: str) -> bool:
    expected = business_name.strip().lower()
    if not expected:
        return False
    for key in TITLE_KEYS:
        value = entry.get(key)
        if isinstance(value, str) and value.strip().lower() == expected:
            return True
    return False


def top_local_entries(local_results: list[Mapping[str, Any]], limit: int = TOP_N) -> list[Mapping[str, Any]]:
    ranked = sorted(
        ((_entry_rank(entry, index), index, entry) for index, entry in enumerate(local_results)),
        key=lambda item: (item[0], item[1]),
    )
    return [entry for _, _, entry in ranked[:limit]]


def compute_map_pack_top3(
    domain: str,
    payload: Any,
    business_name: str | None = None,
) -> bool:
    """
    Whether `domain` appears among the top three local results in `payload`.

    URL-like fields are compared first; when none of an entry's URLs match
    and a business name is known, an exact case-insensitive title match
    counts as well.
    """

    domain_host = normalize_host(domain)
    if not domain_host:
        return False

    local_results = extract_local_results(payload)
    if not local_results:
        return False

    for entry in top_local_entries(local_results):
        if any(url_matches_domain(domain_host, url) for url in _candidate_urls(entry)):
            return True
        if business_name and _title_matches(entry, business_name):
            return True
    return False
