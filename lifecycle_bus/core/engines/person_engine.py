from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from lifecycle_bus.core.domain.event_models import EventEnvelope
from lifecycle_bus.core.engines.base.lifecycle_engine import LifecycleEngine
from lifecycle_bus.core.engines.coordinator import EngineCoordinator
from lifecycle_bus.core.engines.notepad_engine import NotepadEngine, NotepadEvent


# Events
class PersonEvent:
    pass


@dataclass(frozen=True)
class AddNote(PersonEvent):
    note: str


@dataclass(frozen=True)
class RemoveNote(PersonEvent):
    index: int


@dataclass(frozen=True)
class EditNote(PersonEvent):
    index: int
    note: str


# States
class PersonState:
    pass


@dataclass(frozen=True)
class PersonIdle(PersonState):
    pass


@dataclass(frozen=True)
class PersonWriting(PersonState):
    note: str = ""


class PersonEngine(LifecycleEngine[PersonEvent, PersonState]):
    """
    Writes notes into a NotepadEngine.

    AddNote switches to PersonWriting and hands the note to the notepad; the
    person goes back to PersonIdle only when the notepad reports the note's
    event as completed (optionally after `settle_delay` seconds). Removing and
    editing are forwarded without waiting.
    """

    def __init__(self, notepad: NotepadEngine, *, settle_delay: float = 0.0, **options: Any) -> None:
        super().__init__(PersonIdle(), **options)
        self.notepad = notepad
        self.settle_delay = max(0.0, settle_delay)
        self.last_outcome: Optional[EventEnvelope[Any]] = None
        self._coordinator = EngineCoordinator(notepad, owner=self.name)
        self._settle_handle: Optional[asyncio.TimerHandle] = None
        self.add_close_hook(self._teardown)

        self.on(AddNote, self._on_add_note)
        self.on(RemoveNote, self._on_remove_note)
        self.on(EditNote, self._on_edit_note)

    @property
    def coordinator(self) -> EngineCoordinator:
        return self._coordinator

    async def _on_add_note(self, event: AddNote) -> AsyncIterator[PersonState]:
        yield PersonWriting(event.note)
        self._coordinator.dispatch(NotepadEvent.add(event.note), self._on_note_written)

    async def _on_remove_note(self, event: RemoveNote) -> None:
        self.notepad.add(NotepadEvent.remove(event.index))

    async def _on_edit_note(self, event: EditNote) -> None:
        self.notepad.add(NotepadEvent.edit(event.index, event.note))

    def _on_note_written(self, envelope: EventEnvelope[Any]) -> None:
        self.last_outcome = envelope
        if envelope.failed:
            self.logger.warning("Notepad failed to store %r: %s", envelope.payload, envelope.error)
        if not isinstance(self.state, PersonWriting):
            return
        if not self.settle_delay:
            self._settle()
            return
        if self._settle_handle is not None:
            self._settle_handle.cancel()
        self._settle_handle = asyncio.get_running_loop().call_later(self.settle_delay, self._settle)

    def _settle(self) -> None:
        self._settle_handle = None
        if self.is_closed or not isinstance(self.state, PersonWriting):
            return
        self.emit_state(PersonIdle())

    def _teardown(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None
        self._coordinator.close()


__all__ = [
    "PersonEngine",
    "PersonEvent",
    "AddNote",
    "RemoveNote",
    "EditNote",
    "PersonState",
    "PersonIdle",
    "PersonWriting",
]
