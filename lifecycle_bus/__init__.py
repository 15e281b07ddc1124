"""
Lifecycle-aware event bus for asyncio engines.

Every event an engine processes is published as STARTED, then SUCCESS or
ERROR, then COMPLETED under the event's routing key. Late listeners receive
the latest known envelope for a key, and engines can drive each other by
listening for COMPLETED instead of calling one another directly.
"""

from lifecycle_bus.core.domain.event_models import (
    EventEnvelope,
    EventKey,
    EventStatus,
    KeyPolicy,
    new_correlation_id,
)
from lifecycle_bus.core.errors import (
    BusDisposedError,
    EngineClosedError,
    LifecycleBusError,
    SupersededRequestError,
    UnhandledEventError,
)
from lifecycle_bus.core.bus.subscriptions import Subscription, SubscriptionRegistry
from lifecycle_bus.core.event_bus import BusPolicy, LifecycleEventBus
from lifecycle_bus.core.engines.base.lifecycle_engine import LifecycleEngine
from lifecycle_bus.core.engines.base.lifecycle_interceptor import LifecycleInterceptor
from lifecycle_bus.core.engines.base import strategies
from lifecycle_bus.core.engines.coordinator import EngineCoordinator
from lifecycle_bus.core.engines.error_engine import ErrorEngine

__version__ = "0.1.0"

__all__ = [
    "EventEnvelope",
    "EventKey",
    "EventStatus",
    "KeyPolicy",
    "new_correlation_id",
    "BusDisposedError",
    "EngineClosedError",
    "LifecycleBusError",
    "UnhandledEventError",
    "SupersededRequestError",
    "Subscription",
    "SubscriptionRegistry",
    "BusPolicy",
    "LifecycleEventBus",
    "LifecycleEngine",
    "LifecycleInterceptor",
    "strategies",
    "EngineCoordinator",
    "ErrorEngine",
]
