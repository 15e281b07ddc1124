"""
Per-key listener bookkeeping for the lifecycle event bus.

Notification always walks a snapshot of the listener list, so listeners may
subscribe, cancel themselves or cancel siblings from inside a callback.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from lifecycle_bus.core.domain.event_models import EventEnvelope, EventKey
from lifecycle_bus.core.engines.base.logging_utils import get_logger

_logger = get_logger("subscriptions")

Callback = Callable[[EventEnvelope[Any]], Any]
ErrorCallback = Callable[[BaseException], Any]


class Subscription:
    """Handle returned by `listen`; cancel() detaches the listener and is idempotent."""

    def __init__(
        self,
        key: EventKey,
        callback: Callback,
        on_error: Optional[ErrorCallback] = None,
        registry: Optional["SubscriptionRegistry"] = None,
    ) -> None:
        self.key = key
        self.callback = callback
        self.on_error = on_error
        self._registry = registry
        self._active = registry is not None
        self._pending_replay: Optional[EventEnvelope[Any]] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def has_pending_replay(self) -> bool:
        return self._pending_replay is not None

    def cancel(self) -> None:
        if self._registry is not None:
            self._registry.unsubscribe(self)
        else:
            self._deactivate()

    def _deactivate(self) -> None:
        self._active = False
        self._pending_replay = None

    def _stage_replay(self, envelope: EventEnvelope[Any]) -> None:
        self._pending_replay = envelope

    def _take_replay(self) -> Optional[EventEnvelope[Any]]:
        envelope, self._pending_replay = self._pending_replay, None
        return envelope

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<Subscription key={self.key!r} active={self._active}>"


class SubscriptionRegistry:
    """
    Ordered listeners per key.

    - insertion order is notification order
    - a raising callback is routed to its own `on_error` (or logged) and never
      interrupts delivery to the remaining listeners
    - callbacks returning awaitables are scheduled as tasks; their failures are
      routed the same way
    """

    def __init__(self, name: str = "bus") -> None:
        self._name = name
        self._subscribers: Dict[EventKey, List[Subscription]] = {}
        self._tasks: Set[asyncio.Task] = set()

    # --------------------------
    # Registration
    # --------------------------
    def subscribe(
        self,
        key: EventKey,
        callback: Callback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = Subscription(key, callback, on_error, registry=self)
        self._subscribers.setdefault(key, []).append(subscription)
        _logger.debug("[%s] subscribed to %r (listeners=%d)", self._name, key, len(self._subscribers[key]))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False when it was not registered (no-op)."""
        subscription._deactivate()
        subs = self._subscribers.get(subscription.key)
        if not subs or subscription not in subs:
            return False
        subs.remove(subscription)
        if not subs:
            del self._subscribers[subscription.key]
        _logger.debug("[%s] unsubscribed from %r", self._name, subscription.key)
        return True

    def dispose_key(self, key: EventKey) -> int:
        subs = self._subscribers.pop(key, [])
        for sub in subs:
            sub._deactivate()
        if subs:
            _logger.debug("[%s] disposed %d listener(s) for %r", self._name, len(subs), key)
        return len(subs)

    def dispose_all(self) -> None:
        for subs in self._subscribers.values():
            for sub in subs:
                sub._deactivate()
        self._subscribers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # --------------------------
    # Delivery
    # --------------------------
    def notify(self, key: EventKey, envelope: EventEnvelope[Any]) -> int:
        """Deliver `envelope` to a snapshot of the listeners of `key`. Returns deliveries made."""
        subs = self._subscribers.get(key)
        if not subs:
            return 0
        delivered = 0
        for sub in list(subs):
            # cancelled by a sibling or by disposal earlier in this pass
            if not sub.active:
                continue
            self.flush_replay(sub)
            if not sub.active:
                continue
            self.deliver(sub, envelope)
            delivered += 1
        return delivered

    def flush_replay(self, subscription: Subscription) -> bool:
        """Deliver a staged replay now, if one is still pending."""
        envelope = subscription._take_replay()
        if envelope is None or not subscription.active:
            return False
        self.deliver(subscription, envelope)
        return True

    def deliver(self, subscription: Subscription, envelope: EventEnvelope[Any]) -> None:
        try:
            result = subscription.callback(envelope)
        except Exception as exc:
            self._route_error(subscription, exc)
            return
        if inspect.isawaitable(result):
            self._track(result, lambda exc: self._route_error(subscription, exc))

    def _route_error(self, subscription: Subscription, exc: BaseException) -> None:
        if subscription.on_error is None:
            _logger.warning(
                "[%s] listener for %r raised %s: %s (discarded)",
                self._name,
                subscription.key,
                type(exc).__name__,
                exc,
            )
            return
        try:
            result = subscription.on_error(exc)
        except Exception:
            _logger.exception("[%s] on_error handler for %r failed", self._name, subscription.key)
            return
        if inspect.isawaitable(result):
            self._track(
                result,
                lambda err: _logger.error("[%s] on_error handler for %r failed: %s", self._name, subscription.key, err),
            )

    def _track(self, awaitable: Awaitable[Any], on_failure: Callable[[BaseException], None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.warning("[%s] async listener called without a running loop; result dropped", self._name)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        async def _run() -> None:
            try:
                await awaitable
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                on_failure(exc)

        task = loop.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --------------------------
    # Inspection
    # --------------------------
    def has_listeners(self, key: Optional[EventKey] = None) -> bool:
        if key is None:
            return bool(self._subscribers)
        return bool(self._subscribers.get(key))

    def listener_count(self, key: Optional[EventKey] = None) -> int:
        if key is not None:
            return len(self._subscribers.get(key, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def keys(self) -> Iterable[EventKey]:
        return tuple(self._subscribers.keys())

    def pending_tasks(self) -> int:
        return len(self._tasks)


__all__ = ["Subscription", "SubscriptionRegistry", "Callback", "ErrorCallback"]
