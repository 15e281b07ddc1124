import pytest

from lifecycle_bus.config import LifecycleBusConfig
from lifecycle_bus.demo import DEFAULT_NOTES, run_demo


@pytest.mark.asyncio
async def test_demo_writes_every_note(quick_config):
    notes = await run_demo(quick_config)

    assert notes == [*DEFAULT_NOTES, "Call mum", "late"]


@pytest.mark.asyncio
async def test_demo_with_settle_delay_and_payload_keys():
    config = LifecycleBusConfig.from_env(
        {"LIFECYCLE_SETTLE_DELAY_MS": "10", "LIFECYCLE_KEY_POLICY": "payload"}
    )

    notes = await run_demo(config, notes=("late", "late"))

    assert notes == ["late", "late", "Call mum", "late"]
