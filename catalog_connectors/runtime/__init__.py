"""
Connector runtime primitives shared by every connector package.
"""
from __future__ import annotations

from catalog_connectors.runtime.events import RuntimeEvent, emit, set_emitter, use_emitter  # noqa: F401

__all__ = ["RuntimeEvent", "emit", "set_emitter", "use_emitter"]
