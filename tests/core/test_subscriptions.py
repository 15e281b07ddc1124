import asyncio

import pytest

from lifecycle_bus.core.bus.subscriptions import SubscriptionRegistry
from lifecycle_bus.core.domain.event_models import EventEnvelope, EventStatus

ENVELOPE = EventEnvelope("note", EventStatus.SUCCESS)


def test_notify_in_subscription_order():
    registry = SubscriptionRegistry()
    calls = []
    registry.subscribe("k", lambda env: calls.append("first"))
    registry.subscribe("k", lambda env: calls.append("second"))
    registry.subscribe("other", lambda env: calls.append("other"))

    assert registry.notify("k", ENVELOPE) == 2
    assert calls == ["first", "second"]


def test_failing_listener_does_not_block_siblings():
    registry = SubscriptionRegistry()
    errors = []
    calls = []

    def explode(env):
        raise RuntimeError("listener failed")

    registry.subscribe("k", explode, on_error=errors.append)
    registry.subscribe("k", explode)  # no on_error: discarded
    registry.subscribe("k", calls.append)

    registry.notify("k", ENVELOPE)

    assert calls == [ENVELOPE]
    assert len(errors) == 1 and isinstance(errors[0], RuntimeError)


def test_failing_error_handler_is_contained():
    registry = SubscriptionRegistry()
    calls = []

    def explode(_):
        raise RuntimeError("boom")

    registry.subscribe("k", explode, on_error=explode)
    registry.subscribe("k", calls.append)

    registry.notify("k", ENVELOPE)
    assert calls == [ENVELOPE]


def test_notify_walks_a_snapshot():
    registry = SubscriptionRegistry()
    late_calls = []

    def subscribe_more(env):
        registry.subscribe("k", late_calls.append)

    registry.subscribe("k", subscribe_more)
    registry.notify("k", ENVELOPE)

    assert late_calls == []
    assert registry.listener_count("k") == 2


def test_listener_cancelled_by_sibling_is_skipped():
    registry = SubscriptionRegistry()
    calls = []
    holder = {}

    def cancel_next(env):
        holder["victim"].cancel()

    registry.subscribe("k", cancel_next)
    holder["victim"] = registry.subscribe("k", calls.append)

    assert registry.notify("k", ENVELOPE) == 1
    assert calls == []


def test_unsubscribe_is_idempotent():
    registry = SubscriptionRegistry()
    subscription = registry.subscribe("k", lambda env: None)

    assert registry.unsubscribe(subscription) is True
    assert registry.unsubscribe(subscription) is False
    subscription.cancel()
    assert not subscription.active
    assert not registry.has_listeners("k")


def test_dispose_key_and_dispose_all():
    registry = SubscriptionRegistry()
    a = registry.subscribe("a", lambda env: None)
    b = registry.subscribe("b", lambda env: None)

    assert registry.dispose_key("a") == 1
    assert not a.active and b.active
    assert registry.notify("a", ENVELOPE) == 0

    registry.dispose_all()
    assert not b.active
    assert registry.listener_count() == 0
    assert tuple(registry.keys()) == ()


@pytest.mark.asyncio
async def test_async_listener_failure_routes_to_on_error():
    registry = SubscriptionRegistry()
    errors = []
    seen = []

    async def listener(env):
        seen.append(env)
        raise ValueError("async boom")

    registry.subscribe("k", listener, on_error=errors.append)
    registry.notify("k", ENVELOPE)
    assert registry.pending_tasks() == 1

    for _ in range(3):
        await asyncio.sleep(0)

    assert seen == [ENVELOPE]
    assert len(errors) == 1 and isinstance(errors[0], ValueError)
    assert registry.pending_tasks() == 0
