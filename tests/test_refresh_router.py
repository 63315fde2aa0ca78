"""
tests/test_refresh_router.py

Pytest tests for the refresh HTTP endpoints using FastAPI's TestClient with
the refresh service overridden.

Coverage
--------
- Keyword id parsing
- Error mapping: bad input, unconfigured scraper, no match, refresh in
  progress, queue lock timeout
- Retry queue listing and clearing
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routers import refresh_router
from app.api.routers.refresh import parse_keyword_ids
from app.domain.keyword_refresh import KeywordSnapshot
from app.services.keyword_refresh import (
    DomainRefreshInProgressError,
    NoKeywordsFoundError,
    ScraperNotConfiguredError,
    get_keyword_refresh_service,
)
from app.services.retry_queue import QueueLockTimeoutError, RetryQueue


class FakeRefreshService:
    def __init__(self, retry_queue: RetryQueue, *, error: Exception | None = None) -> None:
        self.retry_queue = retry_queue
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def start_refresh(self, *, keyword_ids=None, domain=None, global_settings=None):
        self.calls.append({"keyword_ids": keyword_ids, "domain": domain})
        if self.error is not None:
            raise self.error
        return [KeywordSnapshot(id=keyword_id, keyword="shoes", domain="x.com", position=4) for keyword_id in keyword_ids or [1]]


def _client(service: FakeRefreshService) -> TestClient:
    application = FastAPI()
    application.include_router(refresh_router)
    application.dependency_overrides[get_keyword_refresh_service] = lambda: service
    return TestClient(application)


# ---------------------------------------------------------------------------
# parse_keyword_ids
# ---------------------------------------------------------------------------


class TestParseKeywordIds:
    def test_comma_separated(self) -> None:
        assert parse_keyword_ids("3, 1,2,") == [3, 1, 2]

    def test_all(self) -> None:
        assert parse_keyword_ids(" ALL ") is None

    @pytest.mark.parametrize("raw", ["", "a,b", "0", "-1", ","])
    def test_invalid(self, raw: str) -> None:
        with pytest.raises(ValueError):
            parse_keyword_ids(raw)


# ---------------------------------------------------------------------------
# POST /refresh
# ---------------------------------------------------------------------------


class TestRefreshEndpoint:
    def test_refresh_by_ids(self, retry_queue: RetryQueue) -> None:
        service = FakeRefreshService(retry_queue)

        response = _client(service).post("/refresh", params={"id": "1,2"})

        assert response.status_code == 200
        body = response.json()
        assert [keyword["id"] for keyword in body["keywords"]] == [1, 2]
        assert body["keywords"][0]["position"] == 4
        assert service.calls == [{"keyword_ids": [1, 2], "domain": None}]

    def test_all_requires_domain(self, retry_queue: RetryQueue) -> None:
        response = _client(FakeRefreshService(retry_queue)).post("/refresh", params={"id": "all"})
        assert response.status_code == 400

    def test_all_with_domain(self, retry_queue: RetryQueue) -> None:
        service = FakeRefreshService(retry_queue)

        response = _client(service).post("/refresh", params={"id": "all", "domain": "x.com"})

        assert response.status_code == 200
        assert service.calls == [{"keyword_ids": None, "domain": "x.com"}]

    def test_invalid_ids(self, retry_queue: RetryQueue) -> None:
        response = _client(FakeRefreshService(retry_queue)).post("/refresh", params={"id": "x"})
        assert response.status_code == 400

    def test_missing_id(self, retry_queue: RetryQueue) -> None:
        response = _client(FakeRefreshService(retry_queue)).post("/refresh")
        assert response.status_code == 422

    def test_unconfigured_scraper(self, retry_queue: RetryQueue) -> None:
        service = FakeRefreshService(retry_queue, error=ScraperNotConfiguredError("No scraper is configured."))

        response = _client(service).post("/refresh", params={"id": "1"})

        assert response.status_code == 400
        assert response.json()["detail"] == "No scraper is configured."

    def test_no_keywords(self, retry_queue: RetryQueue) -> None:
        service = FakeRefreshService(retry_queue, error=NoKeywordsFoundError("No keywords matched."))
        response = _client(service).post("/refresh", params={"id": "9"})
        assert response.status_code == 404

    def test_domain_already_refreshing(self, retry_queue: RetryQueue) -> None:
        service = FakeRefreshService(retry_queue, error=DomainRefreshInProgressError(["x.com"]))

        response = _client(service).post("/refresh", params={"id": "all", "domain": "x.com"})

        assert response.status_code == 409
        assert response.json()["detail"] == "A refresh is already running for: x.com."


# ---------------------------------------------------------------------------
# Retry queue endpoints
# ---------------------------------------------------------------------------


class TestRetryQueueEndpoints:
    def test_list_and_clear(self, retry_queue: RetryQueue) -> None:
        asyncio.run(retry_queue.add(5))
        asyncio.run(retry_queue.add(8))
        client = _client(FakeRefreshService(retry_queue))

        assert client.get("/retry-queue").json() == {"keyword_ids": [5, 8]}
        assert client.put("/clearfailed").json() == {"cleared": True}
        assert client.get("/retry-queue").json() == {"keyword_ids": []}

    def test_lock_timeout_maps_to_503(self, retry_queue: RetryQueue, monkeypatch: pytest.MonkeyPatch) -> None:
        async def locked() -> None:
            raise QueueLockTimeoutError("Could not lock queue.")

        monkeypatch.setattr(retry_queue, "clear", locked)

        response = _client(FakeRefreshService(retry_queue)).put("/clearfailed")

        assert response.status_code == 503
