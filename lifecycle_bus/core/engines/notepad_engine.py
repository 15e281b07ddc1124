from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

from lifecycle_bus.core.engines.base.lifecycle_engine import LifecycleEngine
from lifecycle_bus.core.engines.base.strategies import sequential

NotepadState = Tuple[str, ...]


class NotepadAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    EDIT = "edit"


@dataclass(frozen=True)
class NotepadEvent:
    action: NotepadAction
    index: Optional[int] = None
    note: Optional[str] = None

    @classmethod
    def add(cls, note: str) -> "NotepadEvent":
        return cls(NotepadAction.ADD, note=note)

    @classmethod
    def remove(cls, index: int) -> "NotepadEvent":
        return cls(NotepadAction.REMOVE, index=index)

    @classmethod
    def edit(cls, index: int, note: str) -> "NotepadEvent":
        return cls(NotepadAction.EDIT, index=index, note=note)


class NotepadEngine(LifecycleEngine[NotepadEvent, NotepadState]):
    """
    Ordered list of notes.

    Events are applied one at a time; an out-of-range index fails the event,
    which listeners observe as an ERROR envelope.
    """

    def __init__(self, notes: Iterable[str] = (), *, work_delay: float = 0.0, **options: Any) -> None:
        super().__init__(tuple(notes), **options)
        self.work_delay = work_delay
        self.on(NotepadEvent, self._on_event, strategy=sequential())

    @property
    def notes(self) -> NotepadState:
        return self.state

    async def _on_event(self, event: NotepadEvent) -> NotepadState:
        if self.work_delay:
            await asyncio.sleep(self.work_delay)
        notes = list(self.state)
        if event.action is NotepadAction.ADD:
            notes.append(event.note or "")
        elif event.action is NotepadAction.REMOVE:
            del notes[event.index]
        elif event.action is NotepadAction.EDIT:
            notes[event.index] = event.note or ""
        return tuple(notes)


__all__ = ["NotepadEngine", "NotepadEvent", "NotepadAction", "NotepadState"]
