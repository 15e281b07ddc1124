"""
Well-known bus keys and the payload keys published under them.

Engine events are routed by per-event correlation ids; the constants below are
the fixed keys used for cross-cutting notifications.
"""
from __future__ import annotations

from typing import Any, Optional, TypedDict


ENGINE_ERROR = "engine.error"


class EngineError(TypedDict, total=False):
    context: str        # "<engine>.<EventType>"
    message: str
    severity: str       # error|warning|critical
    category: str       # engine name
    key: Optional[Any]  # routing key of the failed event
    metadata: dict[str, Any]


__all__ = ["ENGINE_ERROR", "EngineError"]
