"""Domain event types for record store mutations."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Record mutation kinds emitted by the record store."""

    CREATED = "model.create"
    UPDATED = "model.update"
    DESTROYED = "model.destroy"


GLOBAL_TOPIC = "*"


class MutationEvent(BaseModel):
    """A record mutation published by the record store.

    Attributes:
        id: Unique event identifier (UUID).
        type: Mutation kind.
        timestamp: Event timestamp in UTC.
        model: Identity of the mutated record's model.
        record: Record snapshot after the mutation (before it, for destroy).
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model: str
    record: dict[str, Any]

    @property
    def topic(self) -> str:
        """Per-model channel name, e.g. ``model.create.user``."""
        return f"{self.type.value}.{self.model}"
