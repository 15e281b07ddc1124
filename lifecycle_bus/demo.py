"""
Person/notepad walkthrough of the lifecycle bus.

A PersonEngine writes notes into a NotepadEngine and only returns to idle when
the notepad reports completion. Every envelope the notepad publishes for the
person's notes is logged, and a late listener shows the replay of the last
known envelope.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Sequence

from lifecycle_bus.config import LifecycleBusConfig
from lifecycle_bus.core.domain.event_models import EventEnvelope
from lifecycle_bus.core.engines.base.logging_utils import get_logger, timed
from lifecycle_bus.core.engines.error_engine import ErrorEngine
from lifecycle_bus.core.engines.notepad_engine import NotepadEngine, NotepadEvent
from lifecycle_bus.core.engines.person_engine import AddNote, PersonEngine, RemoveNote

_logger = get_logger("demo")

DEFAULT_NOTES = ("Buy cookies", "Star the repo", "Have a walk")


async def run_demo(config: LifecycleBusConfig, notes: Sequence[str] = DEFAULT_NOTES) -> List[str]:
    errors = ErrorEngine()
    notepad = NotepadEngine(error_engine=errors, **config.engine_options())
    person = PersonEngine(notepad, settle_delay=config.settle_delay, error_engine=errors, **config.engine_options())

    def _log(envelope: EventEnvelope[Any]) -> None:
        _logger.info("notepad %-9s %r", envelope.status.value, envelope.payload)

    async with notepad, person:
        for note in notes:
            with timed(_logger, f"note {note!r}"):
                request = notepad.mint_key(NotepadEvent.add(note))
                notepad.listen(request, _log)
                notepad.add(NotepadEvent.add(note), key=request)
                await notepad.drain()

        # the person waits for the notepad before going idle
        person.add(AddNote("Call mum"))
        await person.drain()
        await notepad.drain()
        if config.settle_delay:
            await asyncio.sleep(config.settle_delay)
        _logger.info("person is %r", person.state)

        # out-of-range removal fails on the notepad; the person is not affected
        person.add(RemoveNote(99))
        await person.drain()
        await notepad.drain()

        # a listener attached after the fact still learns the outcome
        late = notepad.mint_key(NotepadEvent.add("late"))
        notepad.add(NotepadEvent.add("late"), key=late)
        await notepad.drain()
        replayed = await notepad.wait_for(late, timeout=1.0)
        _logger.info("late listener got %r", replayed)

        result = list(notepad.notes)

    _logger.info("notes: %s", result)
    if errors.peek_last() is not None:
        _logger.info("recorded errors:\n%s", errors.dump_recent_text())
    return result


__all__ = ["run_demo", "DEFAULT_NOTES"]
