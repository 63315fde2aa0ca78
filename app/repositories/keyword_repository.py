"""
app/repositories/keyword_repository.py

Persistence layer for keyword rows and domain scrape policy.

Reads return plain KeywordSnapshot values. Every write is an UPDATE keyed by
id or by filter, in its own short-lived session, so concurrent refresh tasks
never share a session and never rely on a loaded instance being current.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.keyword_refresh import KeywordSnapshot, KeywordUpdate
from db.models.domain import Domain
from db.models.keyword import Keyword


class KeywordRepository:
    """
    Repository for keyword reads and single-row refresh writes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_ids(self, keyword_ids: Iterable[int]) -> list[KeywordSnapshot]:
        ids = sorted({int(value) for value in keyword_ids})
        if not ids:
            return []
        async with self._session_factory() as session:
            result = await session.scalars(
                select(Keyword).where(Keyword.id.in_(ids)).order_by(Keyword.id)
            )
            return [KeywordSnapshot.from_model(row) for row in result.all()]

    async def get_by_domain(self, domain: str) -> list[KeywordSnapshot]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(Keyword).where(Keyword.domain == domain).order_by(Keyword.id)
            )
            return [KeywordSnapshot.from_model(row) for row in result.all()]

    async def mark_updating(self, keyword_ids: Sequence[int], *, now: datetime | None = None) -> int:
        """
        Set the in-flight marker on many rows in one bulk UPDATE.

        Loaded snapshots are not refreshed; re-fetch afterwards.
        """

        if not keyword_ids:
            return 0
        moment = now or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(
                update(Keyword)
                .where(Keyword.id.in_(list(keyword_ids)))
                .values(updating=True, updating_started_at=moment, last_update_error=False)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def apply_update(self, keyword_update: KeywordUpdate) -> bool:
        """
        Persist one refresh outcome as a single UPDATE by id.

        Returns False when the row no longer exists.
        """

        values = keyword_update.claim()
        async with self._session_factory() as session:
            result = await session.execute(
                update(Keyword)
                .where(Keyword.id == keyword_update.keyword_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return bool(result.rowcount)

    async def clear_updating_flags(self, keyword_ids: Sequence[int]) -> int:
        if not keyword_ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(
                update(Keyword)
                .where(Keyword.id.in_(list(keyword_ids)))
                .values(updating=False, updating_started_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def clear_stale_updating(self, *, max_age: timedelta, now: datetime | None = None) -> int:
        """
        Clear the in-flight marker on rows stuck longer than `max_age`.

        Rows flagged without a start time are treated as stale.
        """

        cutoff = (now or datetime.now(timezone.utc)) - max_age
        async with self._session_factory() as session:
            result = await session.execute(
                update(Keyword)
                .where(Keyword.updating.is_(True))
                .where(
                    (Keyword.updating_started_at.is_(None))
                    | (Keyword.updating_started_at < cutoff)
                )
                .values(updating=False, updating_started_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def load_domains(self, domains: Iterable[str]) -> dict[str, Domain]:
        names = sorted(set(domains))
        if not names:
            return {}
        async with self._session_factory() as session:
            result = await session.scalars(select(Domain).where(Domain.domain.in_(names)))
            return {row.domain: row for row in result.all()}

    async def list_domain_names(self, *, scrape_enabled_only: bool = True) -> list[str]:
        statement = select(Domain.domain).order_by(Domain.domain)
        if scrape_enabled_only:
            statement = statement.where(Domain.scrape_enabled.is_(True))
        async with self._session_factory() as session:
            result = await session.scalars(statement)
            return list(result.all())
