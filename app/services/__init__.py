"""
app/services package marker.
"""

from app.services.domain_stats import DomainStats, DomainStatsAggregator
from app.services.keyword_refresh import (
    DomainRefreshInProgressError,
    KeywordRefreshService,
    NoKeywordsFoundError,
    ScraperNotConfiguredError,
    get_keyword_refresh_service,
)
from app.services.retry_queue import (
    QueueLockTimeoutError,
    RetryQueue,
    RetryQueueError,
    get_retry_queue,
)
from app.services.scraper_settings import ScraperSettingsResolver

__all__ = [
    "DomainStats",
    "DomainStatsAggregator",
    "DomainRefreshInProgressError",
    "KeywordRefreshService",
    "NoKeywordsFoundError",
    "ScraperNotConfiguredError",
    "get_keyword_refresh_service",
    "QueueLockTimeoutError",
    "RetryQueue",
    "RetryQueueError",
    "get_retry_queue",
    "ScraperSettingsResolver",
]
