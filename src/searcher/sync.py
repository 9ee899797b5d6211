"""Propagation of record mutations to the search index."""

import inspect
from collections.abc import Callable
from typing import Any

import structlog

from searcher.backends.base import SearchBackend
from searcher.errors import TransformError
from searcher.registry import SearchableRegistration, SearchRegistry
from searcher.retry import RetryLimiter

logger = structlog.get_logger()

FailureObserver = Callable[[str, str, BaseException], None]


async def to_document(
    registration: SearchableRegistration,
    record: dict[str, Any],
) -> dict[str, Any]:
    """Turn a record into the document stored in the search index.

    Injects the ``model`` discriminator and runs the registration's
    processor, which may be sync or async.

    Args:
        registration: Search configuration of the record's model.
        record: Record as returned by the record store.

    Returns:
        The full document to index.

    Raises:
        TransformError: If the processor raises.
    """
    document = {**record, "model": registration.model}
    if registration.processor is None:
        return document
    try:
        result = registration.processor(document)
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        raise TransformError(registration.model, e) from e
    if not isinstance(result, dict):
        raise TransformError(
            registration.model,
            TypeError(f"processor returned {type(result).__name__}, not dict"),
        )
    return result


def document_id(record: dict[str, Any]) -> str | None:
    """Return the record id as a document id, or None if it has none."""
    value = record.get("id")
    if value is None or value == "":
        return None
    return str(value)


class SyncController:
    """Forwards create/update/destroy events to the search backend.

    Failures are logged and dropped, never raised: a record mutation
    must not fail because the index is unavailable. The index catches
    up on the next reindex.
    """

    def __init__(
        self,
        registry: SearchRegistry,
        backend: SearchBackend,
        limiter: RetryLimiter,
        on_failure: FailureObserver | None = None,
    ) -> None:
        """Initialize controller.

        Args:
            registry: Searchable model registry.
            backend: Search backend receiving the writes.
            limiter: Retry executor wrapping each backend call.
            on_failure: Called with (operation, model, error) for every
                dropped sync, e.g. to count drops.
        """
        self._registry = registry
        self._backend = backend
        self._limiter = limiter
        self._on_failure = on_failure
        self.failures = 0

    def _failed(self, operation: str, model: str, record_id: str | None, error: BaseException) -> None:
        self.failures += 1
        logger.warning(
            "search_sync_failed",
            operation=operation,
            model=model,
            id=record_id,
            error=str(error),
        )
        if self._on_failure is None:
            return
        try:
            self._on_failure(operation, model, error)
        except Exception:
            logger.exception(
                "search_sync_observer_failed",
                operation=operation,
                model=model,
                id=record_id,
            )

    async def _write(self, operation: str, model: str, record: dict[str, Any]) -> None:
        registration = self._registry.get(model)
        if registration is None:
            return
        record_id = document_id(record)
        try:
            if record_id is None:
                raise TransformError(model, ValueError("record has no id"))
            document = await to_document(registration, record)
            index = registration.index.index_name
            await self._limiter.execute(
                "EnsureIndex", lambda: self._backend.ensure_index(index)
            )
            await self._limiter.execute(
                operation,
                lambda: self._backend.index_document(index, record_id, document),
            )
        except Exception as e:
            self._failed(operation, model, record_id, e)
            return
        logger.debug(
            "search_document_indexed",
            operation=operation,
            model=model,
            id=record_id,
        )

    async def handle_create(self, model: str, record: dict[str, Any]) -> None:
        """Index a newly created record."""
        await self._write("Create", model, record)

    async def handle_update(self, model: str, record: dict[str, Any]) -> None:
        """Replace the indexed document of an updated record."""
        await self._write("Update", model, record)

    async def handle_destroy(self, model: str, record: dict[str, Any]) -> None:
        """Remove the indexed document of a destroyed record."""
        registration = self._registry.get(model)
        if registration is None:
            return
        record_id = document_id(record)
        if record_id is None:
            return
        index = registration.index.index_name
        try:
            await self._limiter.execute(
                "Destroy",
                lambda: self._backend.delete_document(index, record_id),
            )
        except Exception as e:
            self._failed("Destroy", model, record_id, e)
            return
        logger.debug("search_document_deleted", model=model, id=record_id)
