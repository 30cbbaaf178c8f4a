"""
Public convenience exports for the catalog_connectors package.

Connectors themselves live in `catalog_connectors/<system>/`.
The shared event bus lives in `catalog_connectors/runtime/`.

This file keeps imports stable for callers:
  from catalog_connectors import AkeneoClient, set_emitter
"""
from __future__ import annotations

from catalog_connectors.akeneo import AkeneoClient, AkeneoConfig, AkeneoError, RetryPolicy  # noqa: F401
from catalog_connectors.runtime.events import RuntimeEvent, set_emitter  # noqa: F401

__all__ = [
    "AkeneoClient",
    "AkeneoConfig",
    "AkeneoError",
    "RetryPolicy",
    "RuntimeEvent",
    "set_emitter",
]

__version__ = "0.1.0"
