"""
Lifecycle-aware publish/subscribe bus used to observe and coordinate engines.

Every emission is an `EventEnvelope` routed by key. The bus keeps the last
replayable envelope per key so late listeners still learn the latest known
lifecycle state, and drops identical envelopes emitted in quick succession.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Set, Union

from lifecycle_bus.core.bus.dedup_window import DEFAULT_WINDOW, DedupWindow
from lifecycle_bus.core.bus.last_value_cache import LastValueCache
from lifecycle_bus.core.bus.subscriptions import (
    Callback,
    ErrorCallback,
    Subscription,
    SubscriptionRegistry,
)
from lifecycle_bus.core.domain.event_models import EventEnvelope, EventKey, EventStatus
from lifecycle_bus.core.engines.base.logging_utils import get_logger
from lifecycle_bus.core.errors import BusDisposedError

_logger = get_logger("event_bus")

StatusFilter = Union[EventStatus, str, Iterable[Union[EventStatus, str]]]


@dataclass(frozen=True)
class BusPolicy:
    """
    Tunables whose right value depends on the application.

    - dedup_window: seconds an identical (key, payload, status) emission is suppressed; 0 disables
    - compare_errors: also compare `error` when deciding whether two emissions are identical
    - clear_cache_on_remove: drop the cached envelope of a key in remove_listeners()
    """

    dedup_window: float = DEFAULT_WINDOW
    compare_errors: bool = False
    clear_cache_on_remove: bool = False


class LifecycleEventBus:
    """In-process lifecycle bus owned by a single engine."""

    def __init__(self, policy: Optional[BusPolicy] = None, *, name: str = "bus") -> None:
        self.policy = policy or BusPolicy()
        self.name = name
        self._registry = SubscriptionRegistry(name)
        self._cache = LastValueCache()
        self._dedup = DedupWindow(self.policy.dedup_window, include_error=self.policy.compare_errors)
        self._waiters: Set[asyncio.Future] = set()
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # --------------------------
    # Publishing
    # --------------------------
    def emit(
        self,
        key: EventKey,
        payload: Any,
        status: Union[EventStatus, str],
        error: Any = None,
        *,
        run: Any = None,
    ) -> bool:
        """
        Publish `payload` with `status` to the listeners of `key`.

        `run` identifies the processing run the emission belongs to; duplicates
        are only suppressed within one run (see `DedupWindow`).

        Returns False when nothing was dispatched (duplicate or disposed bus).
        """
        if self._disposed:
            _logger.warning("[%s] emit(%r, %s) ignored: bus disposed", self.name, key, status)
            return False

        envelope = EventEnvelope(payload, EventStatus(status), error=error)
        if self._dedup.should_suppress(key, envelope, run):
            return False

        self._cache.record_if_replayable(key, envelope)
        delivered = self._registry.notify(key, envelope)
        _logger.debug("[%s] %r -> %r (%d listener(s))", self.name, key, envelope, delivered)
        return True

    # --------------------------
    # Subscribing
    # --------------------------
    def listen(
        self,
        key: EventKey,
        on_data: Callback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Attach a listener to `key`.

        If a replayable envelope is cached for the key it is delivered to this
        listener alone on the next loop iteration, and in any case before any
        later live envelope.
        """
        if self._disposed:
            _logger.warning("[%s] listen(%r) ignored: bus disposed", self.name, key)
            return Subscription(key, on_data, on_error)

        subscription = self._registry.subscribe(key, on_data, on_error)

        cached = self._cache.get(key)
        if cached is not None and cached.status.is_replayable:
            subscription._stage_replay(cached)
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                self._registry.flush_replay(subscription)
            else:
                loop.call_soon(self._deliver_replay, subscription)
        return subscription

    add_event_listener = listen

    def _deliver_replay(self, subscription: Subscription) -> None:
        # scheduled work: the bus may have been disposed or the listener cancelled meanwhile
        if self._disposed:
            return
        self._registry.flush_replay(subscription)

    def remove_listener(self, subscription: Subscription) -> None:
        subscription.cancel()

    def remove_listeners(self, key: EventKey) -> int:
        removed = self._registry.dispose_key(key)
        if self.policy.clear_cache_on_remove:
            self._cache.clear(key)
        return removed

    async def wait_for(
        self,
        key: EventKey,
        statuses: StatusFilter = EventStatus.COMPLETED,
        *,
        timeout: Optional[float] = None,
    ) -> EventEnvelope[Any]:
        """Wait for the first envelope of `key` whose status is in `statuses` (a replay counts)."""
        if self._disposed:
            raise BusDisposedError(self.name)

        if isinstance(statuses, (EventStatus, str)):
            statuses = (statuses,)
        wanted = frozenset(EventStatus(s) for s in statuses)

        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _on_data(envelope: EventEnvelope[Any]) -> None:
            if envelope.status in wanted and not future.done():
                future.set_result(envelope)

        subscription = self.listen(key, _on_data)
        self._waiters.add(future)
        try:
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        finally:
            subscription.cancel()
            self._waiters.discard(future)

    # --------------------------
    # Cache / teardown
    # --------------------------
    def clear_cache(self, key: Optional[EventKey] = None) -> None:
        if key is None:
            self._cache.clear_all()
        else:
            self._cache.clear(key)

    def reset(self) -> None:
        """Forget cached envelopes and recent emissions; listeners stay attached."""
        self._cache.clear_all()
        self._dedup.clear()
        _logger.debug("[%s] cache cleared", self.name)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._registry.dispose_all()
        self._cache.clear_all()
        self._dedup.clear()
        for future in list(self._waiters):
            if not future.done():
                future.set_exception(BusDisposedError(self.name))
        self._waiters.clear()
        _logger.debug("[%s] disposed", self.name)

    # --------------------------
    # Inspection
    # --------------------------
    def has_listeners(self, key: Optional[EventKey] = None) -> bool:
        return self._registry.has_listeners(key)

    def last_envelope(self, key: EventKey) -> Optional[EventEnvelope[Any]]:
        return self._cache.get(key)

    def active_keys(self) -> Iterable[EventKey]:
        return self._registry.keys()

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "disposed": self._disposed,
            "keys": len(tuple(self._registry.keys())),
            "listeners": self._registry.listener_count(),
            "cached": len(self._cache),
            "recent": len(self._dedup),
            "waiters": len(self._waiters),
        }


__all__ = ["BusPolicy", "LifecycleEventBus"]
