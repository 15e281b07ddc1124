"""
Value types shared by the bus, the engines and their listeners.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Hashable, Tuple, TypeVar

T = TypeVar("T")

EventKey = Hashable


class EventStatus(str, Enum):
    """Phase of processing of a single event instance."""

    STARTED = "started"
    SUCCESS = "success"
    ERROR = "error"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        """True for the outcome statuses that precede COMPLETED."""
        return self in (EventStatus.SUCCESS, EventStatus.ERROR)

    @property
    def is_replayable(self) -> bool:
        # a late subscriber has no use for a bare "started"
        return self is not EventStatus.STARTED


class KeyPolicy(str, Enum):
    """How an engine derives the routing key of an event it did not receive a key for."""

    CORRELATION = "correlation"
    PAYLOAD = "payload"

    @classmethod
    def parse(cls, value: str) -> "KeyPolicy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.CORRELATION


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class EventEnvelope(Generic[T]):
    """
    An event payload paired with its lifecycle status.

    Equality and hashing use ``(payload, status)`` only. ``error`` is carried
    for listeners but never compared.
    """

    payload: T
    status: EventStatus
    error: Any = field(default=None, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def failed(self) -> bool:
        return self.status is EventStatus.ERROR

    def identity(self, include_error: bool = False) -> Tuple[Any, ...]:
        """Tuple compared by the dedup window for this envelope."""
        if include_error:
            return (self.payload, self.status, self.error)
        return (self.payload, self.status)

    def __repr__(self) -> str:
        if self.error is not None:
            return f"EventEnvelope({self.payload!r}, {self.status.value}, error={self.error!r})"
        return f"EventEnvelope({self.payload!r}, {self.status.value})"


__all__ = [
    "EventKey",
    "EventStatus",
    "KeyPolicy",
    "EventEnvelope",
    "new_correlation_id",
]
