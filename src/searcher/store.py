"""Record store interface and an in-memory implementation.

The record store is the primary source of truth. Searcher reads from it
for paginated reindex scans and result hydration, and listens to the
mutation events it publishes.
"""

import itertools
from typing import Any, Protocol

import structlog

from searcher.events.bus import EventBus
from searcher.events.types import EventType, MutationEvent

logger = structlog.get_logger()


class ModelHandle(Protocol):
    """Access to the records of one model."""

    identity: str

    async def find(self, skip: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        """Return a page of records in a stable order."""
        ...

    async def find_one(self, record_id: Any) -> dict[str, Any] | None:
        """Return one record by id, or None."""
        ...

    async def find_many(
        self, ids: list[Any], populate: Any = None
    ) -> list[dict[str, Any]]:
        """Return records for the given ids, preserving id order."""
        ...

    def attributes(self) -> dict[str, dict[str, Any]]:
        """Return field name to type metadata."""
        ...


class RecordStore(Protocol):
    """Registry of model handles."""

    def get_model(self, identity: str) -> ModelHandle:
        """Return the handle for a model identity."""
        ...


class MemoryModel:
    """Dictionary-backed model that publishes mutation events.

    Attributes:
        identity: Model identity.
    """

    def __init__(
        self,
        identity: str,
        attributes: dict[str, dict[str, Any]],
        bus: EventBus | None,
        relations: "MemoryRecordStore",
    ) -> None:
        self.identity = identity
        self._attributes = attributes
        self._bus = bus
        self._store = relations
        self._records: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def _publish(self, event_type: EventType, record: dict[str, Any]) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            MutationEvent(type=event_type, model=self.identity, record=dict(record))
        )

    async def create(self, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a record, assigning an id when none is given."""
        record = dict(values)
        record.setdefault("id", str(next(self._ids)))
        record["id"] = str(record["id"])
        self._records[record["id"]] = record
        await self._publish(EventType.CREATED, record)
        return dict(record)

    async def update(self, record_id: Any, values: dict[str, Any]) -> dict[str, Any]:
        """Merge values into an existing record.

        Raises:
            KeyError: If no record has the id.
        """
        record = self._records[str(record_id)]
        record.update({k: v for k, v in values.items() if k != "id"})
        await self._publish(EventType.UPDATED, record)
        return dict(record)

    async def destroy(self, record_id: Any) -> dict[str, Any]:
        """Remove a record.

        Raises:
            KeyError: If no record has the id.
        """
        record = self._records.pop(str(record_id))
        await self._publish(EventType.DESTROYED, record)
        return record

    async def find(self, skip: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        records = list(self._records.values())
        end = skip + limit if limit is not None else None
        return [dict(r) for r in records[skip:end]]

    async def find_one(self, record_id: Any) -> dict[str, Any] | None:
        record = self._records.get(str(record_id))
        return dict(record) if record is not None else None

    async def find_many(
        self, ids: list[Any], populate: Any = None
    ) -> list[dict[str, Any]]:
        found = [dict(self._records[str(i)]) for i in ids if str(i) in self._records]
        if populate:
            for record in found:
                self._populate(record, populate)
        return found

    def _populate(self, record: dict[str, Any], populate: Any) -> None:
        # populate names fields holding ids of records in a same-named model
        fields = [populate] if isinstance(populate, str) else list(populate)
        for field in fields:
            related = self._store.models.get(field)
            if related is None or record.get(field) is None:
                continue
            linked = related._records.get(str(record[field]))
            record[field] = dict(linked) if linked is not None else None

    def attributes(self) -> dict[str, dict[str, Any]]:
        return dict(self._attributes)


class MemoryRecordStore:
    """In-memory record store for development and tests."""

    def __init__(self, bus: EventBus | None = None) -> None:
        """Initialize store.

        Args:
            bus: Event bus mutation events are published on.
        """
        self._bus = bus
        self.models: dict[str, MemoryModel] = {}

    def define(
        self,
        identity: str,
        attributes: dict[str, dict[str, Any]] | None = None,
    ) -> MemoryModel:
        """Declare a model; returns the existing one if already defined."""
        model = self.models.get(identity)
        if model is None:
            model = MemoryModel(
                identity,
                attributes or {"id": {"type": "string"}},
                self._bus,
                self,
            )
            self.models[identity] = model
            logger.debug("store_model_defined", model=identity)
        return model

    def get_model(self, identity: str) -> MemoryModel:
        """Return a model handle.

        Raises:
            KeyError: If the model was never defined.
        """
        return self.models[identity]
