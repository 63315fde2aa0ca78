"""
Shared scraping runtime data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.domain.keyword_refresh import OrganicResult


@dataclass(frozen=True)
class DecodedSerp:
    """
    Provider-independent view of one SERP response.
    """

    organic_results: list[OrganicResult]
    map_pack_top3: bool = False
    local_results: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ScrapeOutcome:
    """
    Outcome for one successful keyword scrape.
    """

    keyword_id: int
    scraper_id: str
    position: int
    url: str | None
    organic_results: list[OrganicResult]
    local_results: list[dict[str, Any]]
    map_pack_top3: bool
