"""
db/models/domain.py

Domain model: aggregation root and scrape-policy holder.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import AddedMixin, Base


class Domain(Base, AddedMixin):
    """
    A tracked website.

    `avg_position` and `map_pack_keywords` are derived from keyword rows and
    are recomputed after every refresh batch; never read them as a source of
    truth.
    """

    __tablename__ = "domain"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    scrape_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    scraper_settings: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="JSON override: scraper_type, scraping_api, business_name",
    )

    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    avg_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    map_pack_keywords: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Domain id={self.id} domain={self.domain!r} scrape_enabled={self.scrape_enabled}>"
