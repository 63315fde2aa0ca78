"""
app/domain package marker.
"""

from app.domain.keyword_refresh import (
    DomainPolicy,
    KeywordSnapshot,
    KeywordUpdate,
    OrganicResult,
    ScraperSettings,
    UpdateAlreadyAppliedError,
)

__all__ = [
    "DomainPolicy",
    "KeywordSnapshot",
    "KeywordUpdate",
    "OrganicResult",
    "ScraperSettings",
    "UpdateAlreadyAppliedError",
]
