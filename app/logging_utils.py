"""
Structured logging helpers for the upload pipeline.
"""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.

    Fields whose value is None are dropped.
    """

    payload = {"event": event}
    payload.update({key: value for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def log_failure(
    logger: logging.Logger,
    event: str,
    exc: BaseException,
    *,
    level: int = logging.WARNING,
    **fields: Any,
) -> None:
    """
    Emit a structured failure line carrying the exception type and message.
    """

    log_event(
        logger,
        level,
        event,
        error_type=type(exc).__name__,
        error=str(exc) or None,
        **fields,
    )
