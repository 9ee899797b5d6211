"""Events subsystem carrying record store mutations to the indexer."""
from searcher.events.bus import EventBus
from searcher.events.dispatcher import MutationDispatcher
from searcher.events.types import EventType, MutationEvent

__all__ = [
    "EventBus",
    "EventType",
    "MutationDispatcher",
    "MutationEvent",
]
