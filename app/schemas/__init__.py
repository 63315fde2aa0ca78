"""
app/schemas package marker.
"""

from app.schemas.refresh import (
    ClearFailedResponse,
    KeywordResponse,
    RefreshResponse,
    RetryQueueResponse,
)

__all__ = [
    "ClearFailedResponse",
    "KeywordResponse",
    "RefreshResponse",
    "RetryQueueResponse",
]
