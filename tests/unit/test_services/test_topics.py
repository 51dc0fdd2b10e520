"""Tests for publish/subscribe topics."""

import pytest

from src.services.topics import Topic


class Recorder:
    def __init__(self):
        self.events = []

    async def handle(self, event):
        self.events.append(event)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_publish_delivers_in_subscription_order():
    topic = Topic("test")
    order = []

    async def first(event):
        order.append(("first", event))

    async def second(event):
        order.append(("second", event))

    topic.subscribe(first)
    topic.subscribe(second)
    await topic.publish(1)

    assert order == [("first", 1), ("second", 1)]


@pytest.mark.unit
def test_subscribing_bound_method_twice_returns_same_handle():
    topic = Topic("test")
    recorder = Recorder()

    first = topic.subscribe(recorder.handle)
    second = topic.subscribe(recorder.handle)

    assert first is second
    assert len(topic) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_subscription_stops_delivery():
    topic = Topic("test")
    recorder = Recorder()
    subscription = topic.subscribe(recorder.handle)

    await topic.publish("a")
    subscription.cancel()
    await topic.publish("b")

    assert recorder.events == ["a"]
    assert not subscription.active


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    topic = Topic("test")
    recorder = Recorder()

    async def broken(event):
        raise RuntimeError("boom")

    topic.subscribe(broken)
    topic.subscribe(recorder.handle)
    await topic.publish("event")

    assert recorder.events == ["event"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_topics_are_independent_per_instance():
    a, b = Topic("a"), Topic("b")
    recorder = Recorder()
    a.subscribe(recorder.handle)

    await b.publish("ignored")

    assert recorder.events == []
