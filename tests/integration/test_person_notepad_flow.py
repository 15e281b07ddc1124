import asyncio

import pytest

from lifecycle_bus.core.domain.event_models import EventStatus, KeyPolicy
from lifecycle_bus.core.engines.error_engine import ErrorEngine
from lifecycle_bus.core.engines.notepad_engine import NotepadEngine
from lifecycle_bus.core.engines.person_engine import (
    AddNote,
    EditNote,
    PersonEngine,
    PersonIdle,
    PersonWriting,
    RemoveNote,
)
from lifecycle_bus.core.event_bus import BusPolicy

NO_DEDUP = BusPolicy(dedup_window=0)


@pytest.mark.asyncio
async def test_person_waits_for_notepad_before_going_idle():
    notepad = NotepadEngine(policy=NO_DEDUP, work_delay=0.02)
    person = PersonEngine(notepad, policy=NO_DEDUP)

    async with notepad, person:
        person.add(AddNote("Call mum"))
        await person.drain()
        assert person.state == PersonWriting("Call mum")

        await notepad.drain()
        assert person.state == PersonIdle()
        assert notepad.notes == ("Call mum",)
        assert person.last_outcome.status is EventStatus.SUCCESS
        assert person.coordinator.pending() == []


@pytest.mark.asyncio
async def test_settle_delay_postpones_idle():
    notepad = NotepadEngine(policy=NO_DEDUP)
    person = PersonEngine(notepad, settle_delay=0.03, policy=NO_DEDUP)

    async with notepad, person:
        person.add(AddNote("later"))
        await person.drain()
        await notepad.drain()
        assert isinstance(person.state, PersonWriting)

        await asyncio.sleep(0.06)
        assert person.state == PersonIdle()


@pytest.mark.asyncio
async def test_closing_person_before_completion_ignores_outcome():
    notepad = NotepadEngine(policy=NO_DEDUP, work_delay=0.02)
    person = PersonEngine(notepad, policy=NO_DEDUP)

    person.add(AddNote("orphan"))
    await person.drain()
    await person.close()
    await notepad.drain()

    assert notepad.notes == ("orphan",)
    assert person.last_outcome is None
    assert person.state == PersonWriting("orphan")
    assert not notepad.has_listeners()
    await notepad.close()


@pytest.mark.asyncio
async def test_closing_person_cancels_pending_settle():
    notepad = NotepadEngine(policy=NO_DEDUP)
    person = PersonEngine(notepad, settle_delay=0.02, policy=NO_DEDUP)

    person.add(AddNote("note"))
    await person.drain()
    await notepad.drain()
    await person.close()
    await asyncio.sleep(0.04)

    assert person.state == PersonWriting("note")
    await notepad.close()


@pytest.mark.asyncio
async def test_latest_note_drives_person_state():
    notepad = NotepadEngine(policy=NO_DEDUP, work_delay=0.01)
    person = PersonEngine(notepad, policy=NO_DEDUP)

    async with notepad, person:
        person.add(AddNote("first"))
        person.add(AddNote("second"))
        await person.drain()
        await notepad.drain()

        assert notepad.notes == ("first", "second")
        assert person.last_outcome.payload.note == "second"
        assert person.state == PersonIdle()


@pytest.mark.asyncio
async def test_remove_and_edit_are_forwarded():
    notepad = NotepadEngine(["a", "b"], policy=NO_DEDUP)
    person = PersonEngine(notepad, policy=NO_DEDUP)

    async with notepad, person:
        person.add(EditNote(0, "A"))
        person.add(RemoveNote(1))
        await person.drain()
        await notepad.drain()

        assert notepad.notes == ("A",)
        assert person.state == PersonIdle()


@pytest.mark.asyncio
async def test_failed_removal_is_reported_by_the_notepad():
    errors = ErrorEngine()
    notepad = NotepadEngine(["a"], policy=NO_DEDUP, error_engine=errors)
    person = PersonEngine(notepad, policy=NO_DEDUP, error_engine=errors)

    async with notepad, person:
        person.add(RemoveNote(9))
        await person.drain()
        await notepad.drain()

        assert notepad.notes == ("a",)
        assert person.state == PersonIdle()
        record = errors.peek_last()
        assert record["category"] == "notepad_engine"
        assert record["error_type"] == "IndexError"


@pytest.mark.asyncio
async def test_repeating_a_note_with_payload_keys_returns_to_idle():
    options = {"key_policy": KeyPolicy.PAYLOAD, "policy": BusPolicy()}
    notepad = NotepadEngine(**options)
    person = PersonEngine(notepad, **options)

    async with notepad, person:
        for _ in range(2):
            person.add(AddNote("same"))
            await person.drain()
            await notepad.drain()
            assert person.state == PersonIdle()

        assert notepad.notes == ("same", "same")
