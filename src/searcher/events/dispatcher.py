"""Routes mutation events to per-model callbacks."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from searcher.events.bus import EventBus
from searcher.events.types import GLOBAL_TOPIC, EventType, MutationEvent

logger = structlog.get_logger()

MutationHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class MutationDispatcher:
    """Single dispatcher over per-model create/update/destroy callbacks.

    Consumes the bus's global channel, so events published under
    per-model topics and global ones are routed the same way. Each
    callback invocation runs as its own task; there is no ordering
    between events beyond the bus's FIFO delivery.
    """

    def __init__(self, bus: EventBus) -> None:
        """Initialize dispatcher.

        Args:
            bus: Event bus carrying record store mutations.
        """
        self._bus = bus
        self._handlers: dict[tuple[str, EventType], list[MutationHandler]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._runner: asyncio.Task[None] | None = None
        self._subscriber_id: str | None = None

    def on(self, model: str, event_type: EventType, handler: MutationHandler) -> None:
        """Register a callback for one mutation kind of one model.

        Registering the same callback twice has no effect.

        Args:
            model: Model identity to listen for.
            event_type: Mutation kind.
            handler: Coroutine function called with (model, record).
        """
        handlers = self._handlers.setdefault((model, event_type), [])
        if handler not in handlers:
            handlers.append(handler)

    def handlers(self, model: str, event_type: EventType) -> list[MutationHandler]:
        """Callbacks registered for one mutation kind of one model."""
        return list(self._handlers.get((model, event_type), []))

    async def dispatch(self, event: MutationEvent) -> None:
        """Invoke every callback registered for an event and await them.

        Hosts with their own notification system may call this directly.
        """
        handlers = self._handlers.get((event.model, event.type), [])
        if not handlers:
            return
        await asyncio.gather(*(h(event.model, event.record) for h in handlers))

    def _spawn(self, event: MutationEvent) -> None:
        task = asyncio.create_task(self.dispatch(event))
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "mutation_handler_failed",
                error=str(task.exception()),
            )

    async def start(self) -> None:
        """Subscribe to the bus and start routing events in the background."""
        if self._runner is not None:
            return
        self._subscriber_id, events = await self._bus.subscribe(topic=GLOBAL_TOPIC)

        async def run() -> None:
            async for event in events:
                self._spawn(event)

        self._runner = asyncio.create_task(run())
        logger.info("mutation_dispatcher_started", subscriber_id=self._subscriber_id)

    async def drain(self) -> None:
        """Wait until queued events and in-flight callbacks are finished."""
        while True:
            await asyncio.sleep(0)
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            if self._subscriber_id and self._bus.pending(self._subscriber_id):
                continue
            return

    async def stop(self) -> None:
        """Finish in-flight callbacks and stop consuming the bus."""
        await self.drain()
        if self._runner is not None:
            self._runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._runner
            self._runner = None
        logger.info("mutation_dispatcher_stopped", subscriber_id=self._subscriber_id)
        self._subscriber_id = None
