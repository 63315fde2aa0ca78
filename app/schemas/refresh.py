"""
app/schemas/refresh.py

Response schemas for keyword refresh operations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.domain.keyword_refresh import KeywordSnapshot


class KeywordResponse(BaseModel):
    """
    API response model for one keyword after a refresh.
    """

    id: int
    keyword: str
    domain: str
    device: str
    country: str
    location: str = ""
    position: int = Field(..., ge=0)
    history: dict[str, int] = Field(default_factory=dict)
    url: str | None = None
    last_result: list[dict[str, Any]] = Field(default_factory=list)
    local_results: list[dict[str, Any]] = Field(default_factory=list)
    map_pack_top3: bool = False
    updating: bool = False
    updating_started_at: datetime | None = None
    last_updated: datetime | None = None
    last_update_error: dict[str, Any] | bool = False

    @classmethod
    def from_snapshot(cls, snapshot: KeywordSnapshot) -> "KeywordResponse":
        return cls(**snapshot.to_dict())


class RefreshResponse(BaseModel):
    keywords: list[KeywordResponse] = Field(default_factory=list)


class ClearFailedResponse(BaseModel):
    cleared: bool


class RetryQueueResponse(BaseModel):
    keyword_ids: list[int] = Field(default_factory=list)
