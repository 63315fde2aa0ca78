"""
Scraper-layer exceptions.
"""

from __future__ import annotations


class ScraperError(Exception):
    """Base exception for SERP provider failures."""


class UnknownProviderError(ScraperError):
    """Raised when a provider id is not registered."""


class ProviderRequestError(ScraperError):
    """Raised for transport failures, timeouts and non-2xx responses."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderResponseError(ScraperError):
    """Raised when a provider responded but the payload is unusable."""
