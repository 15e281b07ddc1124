"""
Engine-to-engine choreography over the lifecycle bus.

An engine that needs work done by another engine does not call it and wait
for a return value. It mints a key on the target, listens for that key, adds
the event, and reacts once the target publishes COMPLETED for it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from lifecycle_bus.core.bus.subscriptions import Subscription
from lifecycle_bus.core.domain.event_models import EventEnvelope, EventKey, EventStatus
from lifecycle_bus.core.engines.base.lifecycle_engine import LifecycleEngine
from lifecycle_bus.core.engines.base.logging_utils import get_logger
from lifecycle_bus.core.errors import EngineClosedError, SupersededRequestError

OnCompleted = Callable[[EventEnvelope[Any]], Any]
OnError = Callable[[BaseException], Any]


class _Pending:
    def __init__(self, key: EventKey) -> None:
        self.key = key
        self.subscription: Optional[Subscription] = None
        self.started = False
        self.outcome: Optional[EventEnvelope[Any]] = None
        self.future: Optional[asyncio.Future] = None


class EngineCoordinator:
    """
    Issues events into a target engine and reacts to their completion.

    - `on_completed` receives the terminal SUCCESS/ERROR envelope seen for the
      event (or the COMPLETED one when no terminal envelope reached us)
    - envelopes count only after the run's own STARTED, so a replay or the tail
      of an earlier run under the same payload key is ignored
    - the subscription removes itself once COMPLETED arrives
    - a pending `request` whose key is taken over by a newer dispatch fails
      with `SupersededRequestError`
    - `close()` (call it from the owning engine's close hook) cancels every
      pending subscription; no callback runs afterwards
    """

    def __init__(self, target: LifecycleEngine[Any, Any], *, owner: str = "coordinator") -> None:
        self._target = target
        self._owner = owner
        self._pending: Dict[EventKey, _Pending] = {}
        self._closed = False
        self._logger = get_logger(f"{owner}.coordinator")
        target.add_closed_callback(self._on_target_closed)

    @property
    def target(self) -> LifecycleEngine[Any, Any]:
        return self._target

    @property
    def is_closed(self) -> bool:
        return self._closed

    def pending(self) -> List[EventKey]:
        return list(self._pending)

    def dispatch(
        self,
        event: Any,
        on_completed: OnCompleted,
        *,
        on_error: Optional[OnError] = None,
        replace_stale: bool = True,
    ) -> EventKey:
        """
        Listen for `event` on the target, then add it there. Returns the routing key.

        With `replace_stale` every earlier pending dispatch is superseded first,
        so only the latest request can drive the owner's state.
        """
        if self._closed:
            raise EngineClosedError(self._owner)
        if replace_stale:
            for stale in list(self._pending):
                self._supersede(stale)

        key = self._target.mint_key(event)
        # payload keys can collide with a dispatch still in flight
        self._supersede(key)

        pending = _Pending(key)

        def _on_data(envelope: EventEnvelope[Any]) -> Any:
            if self._closed or self._pending.get(key) is not pending:
                return None
            if envelope.status is EventStatus.STARTED:
                pending.started = True
                return None
            if not pending.started:
                # replay or tail of an earlier run under the same payload key
                return None
            if envelope.is_terminal:
                pending.outcome = envelope
            if envelope.status is not EventStatus.COMPLETED:
                return None
            self._release(key)
            self._logger.debug("%r completed on %s", key, self._target.name)
            return on_completed(pending.outcome or envelope)

        def _on_error(exc: BaseException) -> Any:
            self._release(key)
            if on_error is not None:
                return on_error(exc)
            self._logger.warning("Completion handler for %r failed: %s", key, exc)
            return None

        pending.subscription = self._target.listen(key, _on_data, _on_error)
        self._pending[key] = pending
        try:
            self._target.add(event, key=key)
        except Exception:
            self.cancel(key)
            raise
        return key

    async def request(self, event: Any, *, timeout: Optional[float] = None) -> EventEnvelope[Any]:
        """Dispatch `event` and wait for its terminal envelope."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _done(envelope: EventEnvelope[Any]) -> None:
            if not future.done():
                future.set_result(envelope)

        key = self.dispatch(event, _done, replace_stale=False)
        pending = self._pending.get(key)
        if pending is not None:
            pending.future = future
        try:
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        finally:
            # a newer dispatch may own the key by now
            if pending is not None and self._pending.get(key) is pending:
                self.cancel(key)

    def cancel(self, key: EventKey) -> bool:
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        if pending.subscription is not None:
            pending.subscription.cancel()
        if pending.future is not None and not pending.future.done():
            pending.future.cancel()
        return True

    def cancel_all(self) -> int:
        keys = list(self._pending)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._fail_pending(EngineClosedError(self._owner))

    def _supersede(self, key: EventKey) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        if pending.subscription is not None:
            pending.subscription.cancel()
        if pending.future is not None and not pending.future.done():
            pending.future.set_exception(SupersededRequestError(key))
        self._logger.debug("Dispatch for %r superseded", key)

    def _release(self, key: EventKey) -> None:
        pending = self._pending.pop(key, None)
        if pending is not None and pending.subscription is not None:
            pending.subscription.cancel()

    def _on_target_closed(self) -> None:
        # events that never ran will never complete
        self._fail_pending(EngineClosedError(self._target.name))

    def _fail_pending(self, error: Exception) -> None:
        pending_items = list(self._pending.values())
        self._pending.clear()
        for pending in pending_items:
            if pending.subscription is not None:
                pending.subscription.cancel()
            if pending.future is not None and not pending.future.done():
                pending.future.set_exception(error)
        if pending_items:
            self._logger.debug("Dropped %d pending dispatch(es): %s", len(pending_items), error)


__all__ = ["EngineCoordinator"]
