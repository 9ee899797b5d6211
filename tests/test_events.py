"""Event bus and mutation dispatcher tests."""

import asyncio

import pytest

from searcher.events import EventBus, EventType, MutationDispatcher, MutationEvent


def _event(model: str = "user", event_type: EventType = EventType.CREATED) -> MutationEvent:
    return MutationEvent(type=event_type, model=model, record={"id": "1"})


@pytest.mark.asyncio
async def test_publish_reaches_per_model_and_global_topics() -> None:
    bus = EventBus()
    _, per_op = await bus.subscribe("model.create.user")
    _, per_model = await bus.subscribe("user")
    _, everything = await bus.subscribe("*")
    _, other = await bus.subscribe("post")

    delivered = await bus.publish(_event())

    assert delivered == 3
    assert (await per_op.__anext__()).model == "user"
    assert (await per_model.__anext__()).model == "user"
    assert (await everything.__anext__()).type is EventType.CREATED
    assert bus.subscriber_count == 4


@pytest.mark.asyncio
async def test_bounded_queue_drops_oldest() -> None:
    bus = EventBus(queue_size=1)
    _, events = await bus.subscribe("*")

    await bus.publish(_event(event_type=EventType.CREATED))
    await bus.publish(_event(event_type=EventType.DESTROYED))

    assert bus.dropped_events == 1
    assert (await events.__anext__()).type is EventType.DESTROYED


@pytest.mark.asyncio
async def test_max_subscribers() -> None:
    bus = EventBus(max_subscribers=1)
    await bus.subscribe("*")
    with pytest.raises(ValueError):
        await bus.subscribe("*")


@pytest.mark.asyncio
async def test_dispatcher_routes_by_model_and_type() -> None:
    bus = EventBus()
    dispatcher = MutationDispatcher(bus)
    seen: list[tuple[str, str]] = []

    async def on_create(model, record):
        seen.append(("create", model))

    async def on_destroy(model, record):
        seen.append(("destroy", model))

    dispatcher.on("user", EventType.CREATED, on_create)
    dispatcher.on("user", EventType.CREATED, on_create)
    dispatcher.on("user", EventType.DESTROYED, on_destroy)
    await dispatcher.start()

    await bus.publish(_event("user", EventType.CREATED))
    await bus.publish(_event("post", EventType.CREATED))
    await bus.publish(_event("user", EventType.UPDATED))
    await bus.publish(_event("user", EventType.DESTROYED))
    await dispatcher.drain()

    assert sorted(seen) == [("create", "user"), ("destroy", "user")]
    await dispatcher.stop()
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_dispatch() -> None:
    bus = EventBus()
    dispatcher = MutationDispatcher(bus)
    seen: list[str] = []

    async def flaky(model, record):
        if not seen:
            seen.append("failed")
            raise RuntimeError("boom")
        seen.append("ok")

    dispatcher.on("user", EventType.CREATED, flaky)
    await dispatcher.start()
    await bus.publish(_event())
    await dispatcher.drain()
    await bus.publish(_event())
    await dispatcher.drain()

    assert seen == ["failed", "ok"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_handlers_run_concurrently() -> None:
    """A slow handler does not hold up the next event."""
    bus = EventBus()
    dispatcher = MutationDispatcher(bus)
    release = asyncio.Event()
    order: list[str] = []

    async def handler(model, record):
        if record["id"] == "slow":
            await release.wait()
        order.append(record["id"])
        if record["id"] == "fast":
            release.set()

    dispatcher.on("user", EventType.UPDATED, handler)
    await dispatcher.start()
    await bus.publish(MutationEvent(type=EventType.UPDATED, model="user", record={"id": "slow"}))
    await bus.publish(MutationEvent(type=EventType.UPDATED, model="user", record={"id": "fast"}))
    await dispatcher.drain()

    assert order == ["fast", "slow"]
    await dispatcher.stop()
