"""
app/domain/keyword_refresh.py

Domain models for keyword rank refresh.

Everything here is a plain value: the refresh pipeline never holds a live ORM
instance, so a snapshot can never be silently refreshed (or silently left
stale) by a bulk update elsewhere. Callers re-fetch after filter-based writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import unquote

DEVICE_DESKTOP = "desktop"
DEVICE_MOBILE = "mobile"

HISTORY_MAX_PRIOR_DAYS = 30


class UpdateAlreadyAppliedError(RuntimeError):
    """Raised when one KeywordUpdate is written a second time."""


def normalize_device(device: str | None) -> str:
    return DEVICE_MOBILE if (device or "").strip().lower() == DEVICE_MOBILE else DEVICE_DESKTOP


def day_key(moment: datetime) -> str:
    return moment.date().isoformat()


def _parse_day_key(key: str) -> date | None:
    # Older rows used unpadded keys such as "2024-3-7".
    try:
        year, month, day = (int(part) for part in str(key).split("-"))
        return date(year, month, day)
    except (TypeError, ValueError):
        return None


def trim_history(history: dict[str, Any], today: str, position: int) -> dict[str, int]:
    """
    Record `position` under `today` and keep at most the 30 most recent
    earlier days. Unparseable and future-dated keys are dropped.
    """

    today_date = _parse_day_key(today)
    dated: list[tuple[date, str, int]] = []
    for key, value in history.items():
        parsed = _parse_day_key(key)
        if parsed is None or key == today:
            continue
        if today_date is not None and parsed >= today_date:
            continue
        try:
            dated.append((parsed, key, int(value)))
        except (TypeError, ValueError):
            continue

    dated.sort(key=lambda item: item[0])
    trimmed = {key: value for _, key, value in dated[-HISTORY_MAX_PRIOR_DAYS:]}
    trimmed[today] = position
    return trimmed


@dataclass(frozen=True)
class OrganicResult:
    """
    One organic search result.
    """

    title: str
    url: str
    position: int

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url, "position": self.position}


@dataclass(frozen=True)
class ScraperSettings:
    """
    Effective scraper configuration: global settings merged with any
    per-domain override.
    """

    scraper_type: str
    scraping_api: str | None = None
    scrape_retry: bool = False
    scrape_delay_ms: int = 0
    timeout_seconds: float = 15.0
    business_name: str | None = None

    def with_override(
        self,
        *,
        scraper_type: str | None = None,
        scraping_api: str | None = None,
        business_name: str | None = None,
    ) -> "ScraperSettings":
        updated = self
        if scraper_type:
            updated = replace(updated, scraper_type=scraper_type)
            # Without its own key an override keeps using the global key.
            if scraping_api:
                updated = replace(updated, scraping_api=scraping_api)
        if business_name:
            updated = replace(updated, business_name=business_name)
        return updated


@dataclass(frozen=True)
class DomainPolicy:
    """
    Scrape policy for one domain, resolved once per batch.
    """

    domain: str
    scrape_enabled: bool
    settings: ScraperSettings
    has_override: bool = False


@dataclass(frozen=True)
class KeywordSnapshot:
    """
    Plain-data copy of one keyword row.
    """

    id: int
    keyword: str
    domain: str
    device: str = DEVICE_DESKTOP
    country: str = "US"
    location: str = ""
    position: int = 0
    history: dict[str, int] = field(default_factory=dict)
    url: str | None = None
    last_result: list[dict[str, Any]] = field(default_factory=list)
    local_results: list[dict[str, Any]] = field(default_factory=list)
    map_pack_top3: bool = False
    updating: bool = False
    updating_started_at: datetime | None = None
    last_updated: datetime | None = None
    last_update_error: Any = False

    @classmethod
    def from_model(cls, model: Any) -> "KeywordSnapshot":
        return cls(
            id=model.id,
            keyword=model.keyword,
            domain=model.domain,
            device=normalize_device(model.device),
            country=model.country or "US",
            location=model.location or "",
            position=model.position or 0,
            history=dict(model.history or {}),
            url=model.url,
            last_result=list(model.last_result or []),
            local_results=list(model.local_results or []),
            map_pack_top3=bool(model.map_pack_top3),
            updating=bool(model.updating),
            updating_started_at=model.updating_started_at,
            last_updated=model.last_updated,
            last_update_error=model.last_update_error if model.last_update_error else False,
        )

    @property
    def is_mobile(self) -> bool:
        return self.device == DEVICE_MOBILE

    def sibling_key(self) -> tuple[str, str, str, str]:
        """Key shared by the desktop and mobile variants of one keyword."""
        location = " ".join(unquote(self.location or "").split()).lower()
        return (self.keyword, self.domain, self.country.upper(), location)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "keyword": self.keyword,
            "domain": self.domain,
            "device": self.device,
            "country": self.country,
            "location": self.location,
            "position": self.position,
            "history": dict(self.history),
            "url": self.url,
            "last_result": list(self.last_result),
            "local_results": list(self.local_results),
            "map_pack_top3": self.map_pack_top3,
            "updating": self.updating,
            "updating_started_at": self.updating_started_at,
            "last_updated": self.last_updated,
            "last_update_error": self.last_update_error,
        }


@dataclass(frozen=True)
class KeywordUpdate:
    """
    The one persisted write for one refresh attempt of one keyword.

    Built only through `success`, `failure` or `skipped`; every variant clears
    the in-flight marker. A repository claims the update before writing it,
    so the same payload cannot be applied twice.
    """

    keyword_id: int
    values: dict[str, Any]
    failed: bool = False
    _claims: list[bool] = field(default_factory=list, repr=False, compare=False)

    @staticmethod
    def _in_flight_cleared() -> dict[str, Any]:
        return {"updating": False, "updating_started_at": None}

    @classmethod
    def success(
        cls,
        snapshot: KeywordSnapshot,
        *,
        position: int,
        url: str | None,
        organic_results: list[OrganicResult],
        local_results: list[dict[str, Any]],
        map_pack_top3: bool,
        now: datetime | None = None,
    ) -> "KeywordUpdate":
        moment = now or datetime.now(timezone.utc)
        values = {
            "position": position,
            "history": trim_history(snapshot.history, day_key(moment), position),
            "url": url,
            "last_result": [item.to_dict() for item in organic_results],
            "local_results": list(local_results),
            "map_pack_top3": bool(map_pack_top3),
            "last_updated": moment,
            "last_update_error": False,
            **cls._in_flight_cleared(),
        }
        return cls(keyword_id=snapshot.id, values=values)

    @classmethod
    def failure(
        cls,
        snapshot: KeywordSnapshot,
        *,
        error: str,
        scraper_id: str,
        now: datetime | None = None,
    ) -> "KeywordUpdate":
        moment = now or datetime.now(timezone.utc)
        values = {
            "last_update_error": {
                "date": moment.isoformat(),
                "error": error,
                "scraper": scraper_id,
            },
            **cls._in_flight_cleared(),
        }
        return cls(keyword_id=snapshot.id, values=values, failed=True)

    @classmethod
    def skipped(cls, snapshot: KeywordSnapshot) -> "KeywordUpdate":
        return cls(keyword_id=snapshot.id, values=cls._in_flight_cleared())

    def claim(self) -> dict[str, Any]:
        if self._claims:
            raise UpdateAlreadyAppliedError(
                f"Update for keyword id={self.keyword_id} was already applied."
            )
        self._claims.append(True)
        return dict(self.values)

    def apply_to(self, snapshot: KeywordSnapshot) -> KeywordSnapshot:
        return replace(snapshot, **self.values)
