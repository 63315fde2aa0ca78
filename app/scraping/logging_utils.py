"""
Structured logging helpers for scraping workflows.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

_SECRET_PARAM_PATTERN = re.compile(
    r"(?P<name>api_key|apiKey|token|key)=(?P<value>[^&\s]+)",
    re.IGNORECASE,
)


def redact_url(url: str) -> str:
    """
    Mask credential query parameters so request URLs can be logged.
    """

    return _SECRET_PARAM_PATTERN.sub(lambda match: f"{match.group('name')}=***", url)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
