"""
Scheduling strategies for the handlers of a LifecycleEngine.

A strategy receives one zero-argument coroutine function per added event and
decides when (and whether) it runs:

- concurrent(): every event runs immediately in its own task (default)
- sequential(): events run one at a time in arrival order
- restartable(): a new event cancels the one in flight, then runs
- droppable(): events arriving while one is in flight are ignored

Each run is already bracketed by the lifecycle interceptor, so a run that is
cancelled here still reports ERROR and COMPLETED.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, List, Optional, Set

from lifecycle_bus.core.engines.base.logging_utils import get_logger

_logger = get_logger("strategies")

Run = Callable[[], Awaitable[None]]


class Strategy:
    name = "strategy"

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, run: Run) -> bool:
        """Schedule `run`. Returns False when the strategy dropped it."""
        raise NotImplementedError

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)  # type: ignore[arg-type]
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def join(self) -> None:
        """Wait until nothing submitted so far is still running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel everything in flight and wait for the cancellations to settle."""
        for task in list(self._tasks):
            task.cancel()
        await self.join()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<{self.__class__.__name__} in_flight={self.in_flight}>"


class ConcurrentStrategy(Strategy):
    name = "concurrent"

    def submit(self, run: Run) -> bool:
        self._spawn(run())
        return True


class SequentialStrategy(Strategy):
    name = "sequential"

    def __init__(self) -> None:
        super().__init__()
        self._queue: Deque[Run] = deque()
        self._worker: Optional[asyncio.Task] = None

    def submit(self, run: Run) -> bool:
        self._queue.append(run)
        if self._worker is None or self._worker.done():
            self._worker = self._spawn(self._drain())
        return True

    async def _drain(self) -> None:
        while self._queue:
            run = self._queue.popleft()
            try:
                await run()
            except Exception:
                _logger.exception("Sequential run failed; continuing with the next event")

    async def close(self) -> None:
        # queued runs never started, so they have no lifecycle to finish
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            _logger.debug("Sequential strategy closed with %d queued event(s) discarded", dropped)
        await super().close()


class RestartableStrategy(Strategy):
    name = "restartable"

    def submit(self, run: Run) -> bool:
        previous = [task for task in self._tasks if not task.done()]
        for task in previous:
            task.cancel()
        self._spawn(self._after(previous, run))
        return True

    @staticmethod
    async def _after(previous: List[asyncio.Task], run: Run) -> None:
        # cancelled runs must report COMPLETED before the next one reports STARTED
        if previous:
            await asyncio.wait(previous)
        await run()


class DroppableStrategy(Strategy):
    name = "droppable"

    def __init__(self) -> None:
        super().__init__()
        self._current: Optional[asyncio.Task] = None

    def submit(self, run: Run) -> bool:
        if self._current is not None and not self._current.done():
            _logger.debug("Droppable strategy busy; event dropped")
            return False
        self._current = self._spawn(run())
        return True


def concurrent() -> Strategy:
    return ConcurrentStrategy()


def sequential() -> Strategy:
    return SequentialStrategy()


def restartable() -> Strategy:
    return RestartableStrategy()


def droppable() -> Strategy:
    return DroppableStrategy()


__all__ = [
    "Strategy",
    "ConcurrentStrategy",
    "SequentialStrategy",
    "RestartableStrategy",
    "DroppableStrategy",
    "concurrent",
    "sequential",
    "restartable",
    "droppable",
]
