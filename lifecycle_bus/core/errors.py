"""
Exception types raised by the bus and the engines built on it.
"""

from __future__ import annotations

from typing import Any


class LifecycleBusError(Exception):
    """Base class for every error raised by lifecycle_bus."""


class BusDisposedError(LifecycleBusError):
    """Raised into waiters that were still pending when their bus was disposed."""

    def __init__(self, name: str = "") -> None:
        super().__init__(f"event bus {name!r} was disposed" if name else "event bus was disposed")
        self.name = name


class EngineClosedError(LifecycleBusError):
    """Raised when an event is added to an engine (or coordinator) after close()."""

    def __init__(self, name: str) -> None:
        super().__init__(f"cannot add events to closed engine {name!r}")
        self.name = name


class UnhandledEventError(LifecycleBusError):
    """Raised when no handler is registered for the type of an added event."""

    def __init__(self, name: str, event: Any) -> None:
        super().__init__(f"engine {name!r} has no handler for {type(event).__name__}")
        self.name = name
        self.event = event


class SupersededRequestError(LifecycleBusError):
    """Raised into a pending request when a newer dispatch takes over its routing key."""

    def __init__(self, key: Any) -> None:
        super().__init__(f"request for {key!r} was superseded by a newer dispatch")
        self.key = key


__all__ = [
    "LifecycleBusError",
    "BusDisposedError",
    "EngineClosedError",
    "UnhandledEventError",
    "SupersededRequestError",
]
