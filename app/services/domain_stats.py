"""
app/services/domain_stats.py

Recompute the derived per-domain statistics from keyword rows.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.scraping.logging_utils import log_event
from db.models.domain import Domain
from db.models.keyword import Keyword

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainStats:
    domain: str
    avg_position: int
    map_pack_keywords: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class DomainStatsAggregator:
    """
    Maintains `avg_position` and `map_pack_keywords` on domain rows.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def compute(self, domain: str) -> DomainStats:
        """
        Aggregate one domain's keywords in a single query.

        Unranked keywords (position 0) are left out of the average; a domain
        without keywords gets zeros.
        """

        ranked = Keyword.position > 0
        statement = select(
            func.count(Keyword.id),
            func.coalesce(func.sum(case((Keyword.map_pack_top3.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((ranked, Keyword.position), else_=0)), 0),
            func.coalesce(func.sum(case((ranked, 1), else_=0)), 0),
        ).where(Keyword.domain == domain)

        async with self._session_factory() as session:
            total, map_pack_count, position_sum, ranked_count = (await session.execute(statement)).one()

        if not total or not ranked_count:
            avg_position = 0
        else:
            avg_position = round_half_up(position_sum / ranked_count)
        return DomainStats(
            domain=domain,
            avg_position=avg_position,
            map_pack_keywords=int(map_pack_count or 0) if total else 0,
        )

    async def update_domain_stats(self, domain: str) -> DomainStats | None:
        """
        Recompute and store stats for one domain. Failures are logged, not raised.
        """

        try:
            stats = await self.compute(domain)
            async with self._session_factory() as session:
                await session.execute(
                    update(Domain)
                    .where(Domain.domain == domain)
                    .values(
                        avg_position=stats.avg_position,
                        map_pack_keywords=stats.map_pack_keywords,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "domain_stats_update_failed",
                domain=domain,
                error=str(exc),
            )
            return None

        log_event(
            logger,
            logging.INFO,
            "domain_stats_updated",
            domain=domain,
            avg_position=stats.avg_position,
            map_pack_keywords=stats.map_pack_keywords,
        )
        return stats

    async def update_many(self, domains: Iterable[str]) -> list[DomainStats | None]:
        """
        Recompute several domains concurrently.
        """

        unique = list(dict.fromkeys(domains))
        if not unique:
            return []
        return list(await asyncio.gather(*(self.update_domain_stats(domain) for domain in unique)))
