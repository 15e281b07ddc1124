from __future__ import annotations

from typing import Any, Dict, Optional

from lifecycle_bus.core.domain.event_models import EventEnvelope, EventKey


class LastValueCache:
    """Most recent replayable envelope per key."""

    def __init__(self) -> None:
        self._last: Dict[EventKey, EventEnvelope[Any]] = {}

    def record_if_replayable(self, key: EventKey, envelope: EventEnvelope[Any]) -> bool:
        if not envelope.status.is_replayable:
            return False
        self._last[key] = envelope
        return True

    def get(self, key: EventKey) -> Optional[EventEnvelope[Any]]:
        return self._last.get(key)

    def clear(self, key: EventKey) -> None:
        self._last.pop(key, None)

    def clear_all(self) -> None:
        self._last.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._last

    def __len__(self) -> int:
        return len(self._last)
