from __future__ import annotations

from typing import Any, List

import pytest

from lifecycle_bus.config import LifecycleBusConfig
from lifecycle_bus.core.domain.event_models import EventEnvelope, EventStatus
from lifecycle_bus.core.event_bus import LifecycleEventBus


class Recorder:
    """Listener that keeps every envelope it receives."""

    def __init__(self) -> None:
        self.envelopes: List[EventEnvelope[Any]] = []

    def __call__(self, envelope: EventEnvelope[Any]) -> None:
        self.envelopes.append(envelope)

    @property
    def statuses(self) -> List[EventStatus]:
        return [envelope.status for envelope in self.envelopes]


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def make_recorder():
    return Recorder


@pytest.fixture()
def bus() -> LifecycleEventBus:
    bus = LifecycleEventBus(name="test")
    yield bus
    bus.dispose()


@pytest.fixture()
def quick_config() -> LifecycleBusConfig:
    return LifecycleBusConfig(dedup_window=0.02, settle_delay=0.0, completion_delay=0.0)


__all__ = ["Recorder"]
