from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, List, Optional, Tuple

from lifecycle_bus.core.domain.event_models import EventEnvelope, EventKey
from lifecycle_bus.core.engines.base.logging_utils import get_logger

_logger = get_logger("dedup_window")

DEFAULT_WINDOW = 0.1


class _Recent:
    def __init__(self, key: EventKey, run: Any, identity: Tuple[Any, ...], deadline: float) -> None:
        self.key = key
        self.run = run
        self.identity = identity
        self.deadline = deadline
        self.handle: Optional[asyncio.TimerHandle] = None

    def matches(self, key: EventKey, run: Any, identity: Tuple[Any, ...]) -> bool:
        return self.run is run and self.key == key and self.identity == identity


class DedupWindow:
    """
    Suppresses an envelope identical to one emitted for the same key less than
    `window` seconds ago.

    `run` scopes the comparison: an envelope is only a duplicate of one emitted
    with the same run token, so two runs of an event under one key never
    suppress each other. Emissions made outside any run share the `None` token.

    Entries are compared by equality rather than hashing, so payloads do not
    need to be hashable. Expired entries are dropped by a loop timer when an
    event loop is running, and by deadline on every check otherwise.
    """

    def __init__(
        self,
        window: float = DEFAULT_WINDOW,
        *,
        include_error: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = max(0.0, float(window))
        self.include_error = include_error
        self._clock = clock
        self._recent: List[_Recent] = []

    def should_suppress(self, key: EventKey, envelope: EventEnvelope[Any], run: Any = None) -> bool:
        if self.window <= 0:
            return False
        now = self._clock()
        self._prune(now)
        identity = envelope.identity(self.include_error)
        for entry in self._recent:
            if entry.matches(key, run, identity):
                _logger.debug("Duplicate emission suppressed for %r: %r", key, envelope)
                return True
        entry = _Recent(key, run, identity, now + self.window)
        self._recent.append(entry)
        self._schedule_eviction(entry)
        return False

    def clear(self) -> None:
        for entry in self._recent:
            if entry.handle is not None:
                entry.handle.cancel()
        self._recent.clear()

    def __len__(self) -> int:
        return len(self._recent)

    def _prune(self, now: float) -> None:
        if any(entry.deadline <= now for entry in self._recent):
            self._recent = [entry for entry in self._recent if entry.deadline > now]

    def _schedule_eviction(self, entry: _Recent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        entry.handle = loop.call_later(self.window, self._evict, entry)

    def _evict(self, entry: _Recent) -> None:
        # may fire after clear(); the entry is simply gone by then
        try:
            self._recent.remove(entry)
        except ValueError:
            pass


__all__ = ["DedupWindow", "DEFAULT_WINDOW"]
