"""
tests/conftest.py

Shared fixtures: a temporary SQLite database, seeding helpers and a mocked
SERP transport.

Async code is driven with ``asyncio.run`` from synchronous tests. Each run
creates and disposes its own engine so no connection outlives its loop.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.retry_queue import RetryQueue
from db.models.domain import Domain
from db.models.keyword import Keyword
from db.session import create_db_engine, create_session_factory, init_models

T = TypeVar("T")

SessionFactory = async_sessionmaker[AsyncSession]


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}"


@pytest.fixture()
def run_db(db_url: str) -> Callable[[Callable[[SessionFactory], Awaitable[T]]], T]:
    """Run ``scenario(session_factory)`` against a fresh schema."""

    def _run(scenario: Callable[[SessionFactory], Awaitable[T]]) -> T:
        async def _main() -> T:
            engine = create_db_engine(db_url)
            try:
                await init_models(engine)
                return await scenario(create_session_factory(engine))
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return _run


@pytest.fixture()
def retry_queue(tmp_path: Path) -> RetryQueue:
    return RetryQueue(tmp_path / "data" / "failed_queue.json", lock_attempts=5, lock_backoff_seconds=0.01)


async def seed(session_factory: SessionFactory, *rows: Any) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def make_domain(domain: str = "x.com", **overrides: Any) -> Domain:
    values: dict[str, Any] = {"domain": domain, "slug": domain.replace(".", "-"), "scrape_enabled": True}
    values.update(overrides)
    return Domain(**values)


def make_keyword(keyword_id: int, keyword: str, domain: str = "x.com", **overrides: Any) -> Keyword:
    values: dict[str, Any] = {
        "id": keyword_id,
        "keyword": keyword,
        "domain": domain,
        "device": "desktop",
        "country": "US",
        "location": "",
        "position": 0,
        "history": {},
        "last_result": [],
        "local_results": [],
        "updating": True,
        "last_update_error": False,
    }
    values.update(overrides)
    return Keyword(**values)


def organic(*links: str) -> list[dict[str, Any]]:
    return [
        {"title": f"Result {index}", "link": link, "position": index}
        for index, link in enumerate(links, start=1)
    ]


def ranked_at(domain: str, position: int) -> list[dict[str, Any]]:
    """Organic results with `domain` at `position`."""
    links = [f"https://other{index}.example/page" for index in range(1, position)]
    links.append(f"https://www.{domain}/landing")
    return organic(*links)


def query_of(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(str(request.url)).query).items()}


class SerpStub:
    """
    httpx handler answering per search query.

    ``responses`` maps the `q` parameter to a JSON body, an ``httpx.Response``
    or an exception to raise.
    """

    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.responses.get(query_of(request).get("q", ""))
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, httpx.Response):
            return answer
        if answer is None:
            return httpx.Response(404, json={"error": "no stub"})
        return httpx.Response(200, content=json.dumps(answer).encode(), headers={"Content-Type": "application/json"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def queries(self) -> list[str]:
        return [query_of(request).get("q", "") for request in self.requests]
