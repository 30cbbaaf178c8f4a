"""
Progress events from connectors to whatever application hosts them.

A host installs one callable with `set_emitter` (or temporarily with
`use_emitter`); connectors call `emit` and never learn who is listening.
With nothing installed, events are dropped. A failing emitter never breaks
the API call that produced the event.

  from catalog_connectors.runtime.events import use_emitter

  seen = []
  with use_emitter(seen.append):
      await client.get_list_of_products(fetch_all=True)
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional

LEVELS = ("debug", "info", "warn", "error")

EventEmitter = Callable[["RuntimeEvent"], None]

_EMITTER: Optional[EventEmitter] = None


@dataclass(frozen=True)
class RuntimeEvent:
    type: str  # "message" or "records"
    message: str  # dotted event name, e.g. "http.request.retry"
    connector: Optional[str] = None
    stream: Optional[str] = None
    count: Optional[int] = None
    level: str = "info"
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    fields: Dict[str, Any] = field(default_factory=dict)


def set_emitter(fn: Optional[EventEmitter]) -> None:
    global _EMITTER
    _EMITTER = fn


def get_emitter() -> Optional[EventEmitter]:
    return _EMITTER


@contextmanager
def use_emitter(fn: Optional[EventEmitter]) -> Iterator[None]:
    """Install `fn` for the duration of the block, then restore the previous emitter."""
    previous = _EMITTER
    set_emitter(fn)
    try:
        yield
    finally:
        set_emitter(previous)


def emit(
    event_type: str,
    message: str,
    *,
    connector: Optional[str] = None,
    stream: Optional[str] = None,
    count: Optional[int] = None,
    level: str = "info",
    **fields: Any,
) -> None:
    fn = _EMITTER
    if fn is None:
        return

    event = RuntimeEvent(
        type=str(event_type),
        message=str(message),
        connector=connector,
        stream=stream,
        count=count,
        level=level if level in LEVELS else "info",
        fields=dict(fields),
    )
    try:
        fn(event)
    except Exception:
        # reporting is best-effort; the request outcome must not depend on it
        return
