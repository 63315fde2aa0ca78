"""
app/api/routers/refresh.py

Keyword refresh and retry queue endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas.refresh import (
    ClearFailedResponse,
    KeywordResponse,
    RefreshResponse,
    RetryQueueResponse,
)
from app.scraping.errors import UnknownProviderError
from app.services.keyword_refresh import (
    DomainRefreshInProgressError,
    KeywordRefreshService,
    NoKeywordsFoundError,
    ScraperNotConfiguredError,
    get_keyword_refresh_service,
)
from app.services.retry_queue import RetryQueueError

router = APIRouter(tags=["refresh"])


def parse_keyword_ids(raw: str) -> list[int] | None:
    """
    Parse `1,2,3` into ids; `all` yields None. Raises ValueError otherwise.
    """

    text = raw.strip().lower()
    if text == "all":
        return None
    ids: list[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or int(part) <= 0:
            raise ValueError(f"Invalid keyword id '{part}'.")
        ids.append(int(part))
    if not ids:
        raise ValueError("No keyword ids provided.")
    return ids


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_keywords(
    id: str = Query(..., description="Comma-separated keyword ids, or 'all' with a domain"),
    domain: str | None = Query(default=None, description="Restrict the refresh to one domain"),
    refresh_service: KeywordRefreshService = Depends(get_keyword_refresh_service),
) -> RefreshResponse:
    """
    Refresh the selected keywords and return their updated state.
    """

    try:
        keyword_ids = parse_keyword_ids(id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if keyword_ids is None and not domain:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A domain is required when refreshing all keywords.",
        )

    try:
        refreshed = await refresh_service.start_refresh(keyword_ids=keyword_ids, domain=domain)
    except (ScraperNotConfiguredError, UnknownProviderError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NoKeywordsFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DomainRefreshInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return RefreshResponse(keywords=[KeywordResponse.from_snapshot(keyword) for keyword in refreshed])


@router.put("/clearfailed", response_model=ClearFailedResponse)
async def clear_failed_queue(
    refresh_service: KeywordRefreshService = Depends(get_keyword_refresh_service),
) -> ClearFailedResponse:
    try:
        await refresh_service.retry_queue.clear()
    except RetryQueueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ClearFailedResponse(cleared=True)


@router.get("/retry-queue", response_model=RetryQueueResponse)
async def list_retry_queue(
    refresh_service: KeywordRefreshService = Depends(get_keyword_refresh_service),
) -> RetryQueueResponse:
    try:
        keyword_ids = await refresh_service.retry_queue.list()
    except RetryQueueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return RetryQueueResponse(keyword_ids=keyword_ids)
