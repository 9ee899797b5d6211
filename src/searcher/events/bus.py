"""In-memory event bus with topic-based pub/sub."""
import asyncio
import uuid
from collections.abc import AsyncIterator

import structlog

from searcher.events.types import GLOBAL_TOPIC, MutationEvent

logger = structlog.get_logger()


class EventBus:
    """Async event bus with topic-based fan-out.

    An event is delivered to subscribers of its per-operation topic
    (``model.create.user``), of its model identity (``user``) and of the
    global ``*`` topic. Topics are created on first subscription.
    Bounded queues drop their oldest event on overflow.

    Attributes:
        queue_size: Maximum size of each subscriber queue (0 = unbounded).
        max_subscribers: Maximum number of concurrent subscribers.
    """

    def __init__(
        self,
        queue_size: int = 0,
        max_subscribers: int = 100,
    ) -> None:
        """Initialize event bus.

        Args:
            queue_size: Maximum items per subscriber queue, 0 for unbounded.
            max_subscribers: Maximum concurrent subscribers allowed.
        """
        self._subscribers: dict[str, dict[str, asyncio.Queue[MutationEvent]]] = {
            GLOBAL_TOPIC: {},
        }
        self._queue_size = queue_size
        self._max_subscribers = max_subscribers
        self._dropped_count = 0
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        """Total number of active subscribers across all topics."""
        return sum(len(subs) for subs in self._subscribers.values())

    @property
    def dropped_events(self) -> int:
        """Total number of events dropped due to queue overflow."""
        return self._dropped_count

    def pending(self, subscriber_id: str) -> int:
        """Number of events queued but not yet consumed by a subscriber."""
        for subscribers in self._subscribers.values():
            queue = subscribers.get(subscriber_id)
            if queue is not None:
                return queue.qsize()
        return 0

    async def publish(self, event: MutationEvent) -> int:
        """Publish event to all subscribers of its topics.

        Args:
            event: Mutation event to publish.

        Returns:
            Number of subscribers that received the event.
        """
        delivered = 0
        for topic in (event.topic, event.model, GLOBAL_TOPIC):
            subscribers = self._subscribers.get(topic, {})
            for subscriber_id, queue in list(subscribers.items()):
                try:
                    queue.put_nowait(event)
                    delivered += 1
                except asyncio.QueueFull:
                    try:
                        queue.get_nowait()
                        queue.put_nowait(event)
                        delivered += 1
                        self._dropped_count += 1
                        logger.warning(
                            "event_dropped",
                            subscriber_id=subscriber_id,
                            topic=topic,
                        )
                    except asyncio.QueueEmpty:
                        pass

        return delivered

    async def subscribe(
        self,
        topic: str = GLOBAL_TOPIC,
    ) -> tuple[str, AsyncIterator[MutationEvent]]:
        """Subscribe to events on a topic.

        Args:
            topic: Topic to subscribe to. Use "*" for all events.

        Returns:
            Tuple of (subscriber_id, event_iterator).

        Raises:
            ValueError: If maximum subscribers reached.
        """
        async with self._lock:
            if self.subscriber_count >= self._max_subscribers:
                raise ValueError("Maximum subscribers reached")

            subscriber_id = str(uuid.uuid4())
            queue: asyncio.Queue[MutationEvent] = asyncio.Queue(
                maxsize=self._queue_size,
            )
            self._subscribers.setdefault(topic, {})[subscriber_id] = queue

        async def event_iterator() -> AsyncIterator[MutationEvent]:
            try:
                while True:
                    event = await queue.get()
                    yield event
            finally:
                await self.unsubscribe(topic, subscriber_id)

        return subscriber_id, event_iterator()

    async def unsubscribe(self, topic: str, subscriber_id: str) -> None:
        """Remove a subscriber from the bus.

        Args:
            topic: Topic the subscriber was subscribed to.
            subscriber_id: ID of the subscriber to remove.
        """
        async with self._lock:
            if topic in self._subscribers:
                self._subscribers[topic].pop(subscriber_id, None)
                logger.debug(
                    "subscriber_removed",
                    subscriber_id=subscriber_id,
                    topic=topic,
                )
