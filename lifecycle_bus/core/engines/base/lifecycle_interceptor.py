from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable

from lifecycle_bus.core.domain.event_models import EventKey, EventStatus
from lifecycle_bus.core.engines.base.logging_utils import get_logger
from lifecycle_bus.core.event_bus import LifecycleEventBus

_logger = get_logger("lifecycle_interceptor")

Mapper = Callable[[Any], AsyncIterator[Any]]


class LifecycleInterceptor:
    """
    Brackets one handler invocation with lifecycle envelopes on a bus.

    STARTED is emitted before the handler runs, SUCCESS or ERROR once it ends,
    and COMPLETED exactly once on every exit path, including cancellation.
    States yielded by the handler pass through untouched and failures are
    re-raised unchanged.
    """

    def __init__(self, bus: LifecycleEventBus, *, completion_delay: float = 0.0) -> None:
        self._bus = bus
        self.completion_delay = max(0.0, completion_delay)

    async def intercept(self, key: EventKey, event: Any, mapper: Mapper) -> AsyncIterator[Any]:
        # dedup is scoped to this run
        run = object()
        self._bus.emit(key, event, EventStatus.STARTED, run=run)
        interrupted = False
        try:
            async with aclosing(mapper(event)) as states:
                async for state in states:
                    yield state
        except (asyncio.CancelledError, GeneratorExit) as exc:
            interrupted = True
            _logger.debug("Processing of %r interrupted", key)
            self._bus.emit(key, event, EventStatus.ERROR, error=exc, run=run)
            raise
        except Exception as exc:
            self._bus.emit(key, event, EventStatus.ERROR, error=exc, run=run)
            raise
        else:
            self._bus.emit(key, event, EventStatus.SUCCESS, run=run)
        finally:
            try:
                if self.completion_delay and not interrupted:
                    await asyncio.sleep(self.completion_delay)
            finally:
                self._bus.emit(key, event, EventStatus.COMPLETED, run=run)


__all__ = ["LifecycleInterceptor", "Mapper"]
