"""
db/models/keyword.py

Keyword model: one tracked (keyword, device, country, location) on a domain.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import AddedMixin, Base


class Keyword(Base, AddedMixin):
    """
    The unit of refresh work.

    `updating` / `updating_started_at` form the in-flight marker; both are
    cleared in the same write that stores the refresh outcome.
    `last_update_error` holds either JSON `false` or `{date, error, scraper}`.
    """

    __tablename__ = "keyword"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    keyword: Mapped[str] = mapped_column(String(512), nullable=False)

    device: Mapped[str] = mapped_column(String(16), nullable=False, default="desktop")

    country: Mapped[str] = mapped_column(String(8), nullable=False, default="US")

    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Owning domain hostname (not a surrogate key)",
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    history: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    last_result: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    local_results: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    map_pack_top3: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    updating: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    updating_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_update_error: Mapped[Any] = mapped_column(JSON, nullable=False, default=False)

    __table_args__ = (
        Index("ix_keyword_domain", "domain"),
        Index("ix_keyword_updating", "updating"),
    )

    def __repr__(self) -> str:
        return f"<Keyword id={self.id} keyword={self.keyword!r} domain={self.domain!r} device={self.device!r}>"
