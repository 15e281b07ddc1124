from __future__ import annotations

import asyncio
import inspect
from contextlib import aclosing
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Type,
    TypeVar,
)

from lifecycle_bus.core.bus.subscriptions import Callback, ErrorCallback, Subscription
from lifecycle_bus.core.domain.event_models import (
    EventEnvelope,
    EventKey,
    EventStatus,
    KeyPolicy,
    new_correlation_id,
)
from lifecycle_bus.core.engines.base.lifecycle_interceptor import LifecycleInterceptor
from lifecycle_bus.core.engines.base.logging_utils import get_logger, log_exception, set_correlation_id
from lifecycle_bus.core.engines.base.strategies import Strategy, concurrent
from lifecycle_bus.core.errors import EngineClosedError, UnhandledEventError
from lifecycle_bus.core.event_bus import BusPolicy, LifecycleEventBus, StatusFilter

E = TypeVar("E")
S = TypeVar("S")

Handler = Callable[[Any], Any]


@dataclass
class _Registration:
    event_type: type
    handler: Handler
    strategy: Strategy


class LifecycleEngine(Generic[E, S]):
    """
    Base class for processing units whose events are observable on a lifecycle bus.

    Subclasses register handlers with `on()` in their constructor. A handler is
    either an async generator yielding new states, or a coroutine function whose
    non-None return value becomes the new state. Each invocation is wrapped by a
    `LifecycleInterceptor`, so listeners of the event's key observe
    STARTED -> SUCCESS|ERROR -> COMPLETED.

    The engine owns its bus; other engines interact with it through
    `listen` / `add_event_listener`, `wait_for` and `add`.
    """

    def __init__(
        self,
        initial_state: S,
        *,
        name: Optional[str] = None,
        policy: Optional[BusPolicy] = None,
        key_policy: KeyPolicy = KeyPolicy.CORRELATION,
        completion_delay: float = 0.0,
        error_engine: Optional[Any] = None,
    ) -> None:
        self._name = name or self.__class__.__name__.replace("Engine", "").lower() + "_engine"
        self._state = initial_state
        self._bus = LifecycleEventBus(policy, name=self._name)
        self._interceptor = LifecycleInterceptor(self._bus, completion_delay=completion_delay)
        self._registrations: Dict[type, _Registration] = {}
        self._close_hooks: List[Callable[[], Any]] = []
        self._closed_callbacks: List[Callable[[], Any]] = []
        self._error_engine = error_engine
        self._closed = False
        self.key_policy = key_policy
        self.logger = get_logger(self._name)

    # ---------- identity / state ----------
    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> S:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._closed

    def emit_state(self, state: S) -> None:
        """Replace the current state. Equal states are not re-emitted."""
        if self._closed:
            self.logger.warning("State %r ignored: engine %s is closed", state, self._name)
            return
        if state == self._state:
            return
        previous = self._state
        self._state = state
        self.on_change(previous, state)

    def on_change(self, previous: S, current: S) -> None:
        self.logger.debug("%s: %r -> %r", self._name, previous, current)

    async def on_error(self, error: BaseException, *, event: Any = None, key: EventKey = None) -> None:
        """Error channel for handler failures; the bus has already published ERROR."""
        context = f"{self._name}.{type(event).__name__}"
        log_exception(self.logger, error, context=context, extra={"key": key})
        if self._error_engine is not None:
            await self._error_engine.log_error(error, context=context, category=self._name, key=key)

    # ---------- handlers ----------
    def on(self, event_type: Type[E], handler: Handler, *, strategy: Optional[Strategy] = None) -> None:
        if self._closed:
            raise EngineClosedError(self._name)
        if event_type in self._registrations:
            raise ValueError(f"{self._name}: a handler for {event_type.__name__} is already registered")
        self._registrations[event_type] = _Registration(event_type, handler, strategy or concurrent())

    def _registration_for(self, event: Any) -> Optional[_Registration]:
        # most specific registered type wins
        for klass in type(event).__mro__:
            registration = self._registrations.get(klass)
            if registration is not None:
                return registration
        return None

    def mint_key(self, event: E) -> EventKey:
        """Routing key the engine would use for `event` when none is supplied to add()."""
        if self.key_policy is KeyPolicy.PAYLOAD:
            return event
        return new_correlation_id()

    def add(self, event: E, *, key: Optional[EventKey] = None) -> EventKey:
        """
        Submit an event for processing and return the key its envelopes are published under.

        Must be called from a running event loop.
        """
        if self._closed:
            raise EngineClosedError(self._name)
        registration = self._registration_for(event)
        if registration is None:
            raise UnhandledEventError(self._name, event)

        if key is None:
            key = self.mint_key(event)

        async def _run() -> None:
            await self._process(registration, event, key)

        if not registration.strategy.submit(_run):
            self.logger.debug("%s dropped %r (%s strategy busy)", self._name, event, registration.strategy.name)
        return key

    async def _process(self, registration: _Registration, event: Any, key: EventKey) -> None:
        # each run has its own task, so the correlation id never leaks between events
        set_correlation_id(key if isinstance(key, str) else repr(key))
        try:
            states = self._interceptor.intercept(key, event, lambda e: _as_stream(registration.handler, e))
            async with aclosing(states):
                async for state in states:
                    self.emit_state(state)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self.on_error(exc, event=event, key=key)

    # ---------- bus surface ----------
    def listen(self, key: EventKey, on_data: Callback, on_error: Optional[ErrorCallback] = None) -> Subscription:
        return self._bus.listen(key, on_data, on_error)

    add_event_listener = listen

    def remove_listener(self, subscription: Subscription) -> None:
        self._bus.remove_listener(subscription)

    def remove_listeners(self, key: EventKey) -> int:
        return self._bus.remove_listeners(key)

    def reset_event_bus(self) -> None:
        self._bus.reset()

    def last_envelope(self, key: EventKey) -> Optional[EventEnvelope[Any]]:
        return self._bus.last_envelope(key)

    def has_listeners(self, key: Optional[EventKey] = None) -> bool:
        return self._bus.has_listeners(key)

    async def wait_for(
        self,
        key: EventKey,
        statuses: StatusFilter = EventStatus.COMPLETED,
        *,
        timeout: Optional[float] = None,
    ) -> EventEnvelope[Any]:
        return await self._bus.wait_for(key, statuses, timeout=timeout)

    # ---------- lifecycle ----------
    def add_close_hook(self, hook: Callable[[], Any]) -> None:
        """Run `hook` at the start of close(), before in-flight processing is cancelled."""
        self._close_hooks.append(hook)

    def add_closed_callback(self, callback: Callable[[], Any]) -> None:
        """Run `callback` at the end of close(), after the bus is disposed."""
        self._closed_callbacks.append(callback)

    async def drain(self) -> None:
        """Wait until no event of this engine is being processed."""
        while any(r.strategy.in_flight for r in self._registrations.values()):
            for registration in list(self._registrations.values()):
                await registration.strategy.join()

    async def close(self) -> None:
        """
        Tear the engine down.

        Close hooks run first (coordinators drop their subscriptions on other
        engines), then in-flight processing is cancelled and awaited so its
        COMPLETED envelopes still reach listeners, then the bus is disposed and
        closed callbacks run.
        """
        if self._closed:
            return
        self._closed = True
        await self._run_hooks(self._close_hooks)
        for registration in self._registrations.values():
            await registration.strategy.close()
        self._bus.dispose()
        await self._run_hooks(self._closed_callbacks)
        self.logger.debug("%s closed", self._name)

    async def _run_hooks(self, hooks: List[Callable[[], Any]]) -> None:
        for hook in hooks:
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception("Close hook %r failed for %s", hook, self._name)

    async def __aenter__(self) -> "LifecycleEngine[E, S]":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<{self.__class__.__name__} name={self._name} state={self._state!r} closed={self._closed}>"


async def _as_stream(handler: Handler, event: Any) -> AsyncIterator[Any]:
    result = handler(event)
    if inspect.isasyncgen(result):
        async with aclosing(result):
            async for state in result:
                yield state
        return
    if inspect.isawaitable(result):
        result = await result
    if result is not None:
        yield result


__all__ = ["LifecycleEngine", "Handler"]
