import asyncio
import logging

import pytest

from lifecycle_bus.core.engines.base.logging_utils import (
    ContextFilter,
    get_correlation_id,
    get_logger,
    log_exception,
    reset_correlation_id,
    set_correlation_id,
    timed,
)


def test_get_logger_is_prefixed_and_filtered():
    logger = get_logger("unit")

    assert logger.name == "lifecycle_bus.unit"
    assert sum(isinstance(f, ContextFilter) for f in get_logger("unit").filters) == 1


def test_correlation_id_round_trip():
    token = set_correlation_id("abc")
    try:
        assert get_correlation_id() == "abc"
    finally:
        reset_correlation_id(token)
    assert get_correlation_id() is None


@pytest.mark.asyncio
async def test_correlation_id_is_scoped_to_the_task():
    async def worker(cid):
        set_correlation_id(cid)
        await asyncio.sleep(0)
        return get_correlation_id()

    results = await asyncio.gather(worker("one"), worker("two"))

    assert results == ["one", "two"]
    assert get_correlation_id() is None


def test_log_records_carry_correlation_id(caplog):
    logger = get_logger("unit.records")
    token = set_correlation_id("req-1")
    try:
        with caplog.at_level(logging.INFO, logger="lifecycle_bus"):
            logger.info("hello")
    finally:
        reset_correlation_id(token)

    assert caplog.records[-1].correlation_id == "req-1"


def test_log_exception_includes_context_and_traceback(caplog):
    logger = get_logger("unit.errors")
    try:
        raise KeyError("missing")
    except KeyError as exc:
        with caplog.at_level(logging.ERROR, logger="lifecycle_bus"):
            log_exception(logger, exc, context="notepad.add", extra={"key": "k1"})

    message = caplog.records[-1].getMessage()
    assert "Exception in notepad.add: KeyError" in message
    assert "'key': 'k1'" in message
    assert "Traceback" in message


def test_timed_logs_success_and_failure(caplog):
    logger = get_logger("unit.timed")

    with caplog.at_level(logging.INFO, logger="lifecycle_bus"):
        with timed(logger, "fast step"):
            pass
        with pytest.raises(RuntimeError):
            with timed(logger, "broken step"):
                raise RuntimeError("nope")

    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("fast step completed in") for m in messages)
    assert any(m.startswith("broken step failed after") for m in messages)
