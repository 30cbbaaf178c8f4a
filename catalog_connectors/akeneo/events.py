from __future__ import annotations

import logging
from typing import Any, Optional

from catalog_connectors.runtime.events import emit

from .constants import _CONNECTOR_NAME

logger = logging.getLogger("catalog_connectors.akeneo")

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _emit_event(
    event_type: str,
    message: str,
    *,
    stream: Optional[str] = None,
    count: Optional[int] = None,
    level: str = "info",
    **fields: Any,
) -> None:
    """Emit structured event to runtime bus and the module logger. Fails silently."""
    try:
        logger.log(_LOG_LEVELS.get(level, logging.INFO), "%s %s", message, fields or "")
    except Exception:
        pass

    emit(
        event_type,
        message,
        connector=_CONNECTOR_NAME,
        stream=stream,
        count=count,
        level=level,
        **(fields or {}),
    )


def debug(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    _emit_event("message", message, stream=stream, level="debug", **fields)


def info(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    _emit_event("message", message, stream=stream, level="info", **fields)


def warn(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    _emit_event("message", message, stream=stream, level="warn", **fields)


def error(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    _emit_event("message", message, stream=stream, level="error", **fields)


def records(stream: str, count: int, *, message: str = "records") -> None:
    """
    Emit a record-counting event.

    Hosts update their running totals only for events with an integer `count`
    and type "records".
    """
    _emit_event("records", message, stream=stream, count=int(count), level="info")
