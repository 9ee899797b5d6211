"""Full re-synchronization of a model's documents with the record store."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel, Field

from searcher.backends.base import SearchBackend
from searcher.errors import BulkIndexError
from searcher.query import model_filter
from searcher.registry import SearchableRegistration, SearchRegistry
from searcher.retry import RetryLimiter
from searcher.store import RecordStore
from searcher.sync import document_id, to_document

logger = structlog.get_logger()


class ReindexOptions(BaseModel):
    """Throttling options for a reindex pass.

    Attributes:
        concurrency: Records fetched, transformed and bulk-written per page.
        interval_ms: Pause between pages.
    """

    concurrency: int = Field(default=1000, ge=1)
    interval_ms: int = Field(default=100, ge=0)


class ReindexSummary(BaseModel):
    """Outcome of a reindex pass.

    Attributes:
        model: Model identity that was reindexed.
        scanned: Records read from the record store.
        indexed: Documents accepted by the backend.
        errors: Skipped records, failed bulk items and failed requests.
    """

    model: str
    scanned: int = 0
    indexed: int = 0
    errors: int = 0


def bulk_body(index: str, documents: list[tuple[str, dict[str, Any]]]) -> str:
    """Render (id, document) pairs as newline-delimited bulk actions.

    Args:
        index: Backend index name each action targets.
        documents: Document id and body pairs.

    Returns:
        Bulk request body, one JSON object per line.
    """
    lines: list[str] = []
    for doc_id, document in documents:
        lines.append(json.dumps({"index": {"_index": index, "_id": doc_id}}))
        lines.append(json.dumps(document, default=str))
    return "\n".join(lines) + "\n"


def _failed_items(response: dict[str, Any]) -> list[dict[str, Any]]:
    failed = []
    for item in response.get("items", []):
        for result in item.values():
            if result.get("error") or result.get("status", 200) >= 300:
                failed.append(result)
    return failed


class ReindexPipeline:
    """Purges and rebuilds the indexed documents of a model.

    Runs best-effort over the whole collection: bad records and failed
    bulk requests are counted, never raised. Concurrent passes over the
    same model are not serialized.
    """

    def __init__(
        self,
        registry: SearchRegistry,
        store: RecordStore,
        backend: SearchBackend,
        limiter: RetryLimiter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize pipeline.

        Args:
            registry: Searchable model registry.
            store: Primary record store scanned for documents.
            backend: Search backend receiving bulk writes.
            limiter: Retry executor wrapping backend calls.
            sleep: Coroutine used for the pause between pages.
        """
        self._registry = registry
        self._store = store
        self._backend = backend
        self._limiter = limiter
        self._sleep = sleep

    async def _purge(self, registration: SearchableRegistration) -> None:
        index = registration.index.index_name
        body = {"query": model_filter(registration.model)}
        try:
            response = await self._limiter.execute(
                "Purge", lambda: self._backend.delete_by_query(index, body)
            )
            logger.debug(
                "search_reindex_purged",
                model=registration.model,
                deleted=response.get("deleted"),
            )
        except Exception as e:
            logger.warning(
                "search_reindex_purge_failed",
                model=registration.model,
                error=str(e),
            )

    async def _transform_page(
        self,
        registration: SearchableRegistration,
        records: list[dict[str, Any]],
        summary: ReindexSummary,
    ) -> list[tuple[str, dict[str, Any]]]:
        results = await asyncio.gather(
            *(to_document(registration, r) for r in records),
            return_exceptions=True,
        )
        documents: list[tuple[str, dict[str, Any]]] = []
        for record, result in zip(records, results):
            record_id = document_id(record)
            if isinstance(result, BaseException):
                summary.errors += 1
                logger.warning(
                    "search_reindex_transform_failed",
                    model=registration.model,
                    id=record_id,
                    error=str(result),
                )
                continue
            doc_id = document_id(result) or record_id
            if doc_id is None:
                summary.errors += 1
                logger.warning("search_reindex_missing_id", model=registration.model)
                continue
            documents.append((doc_id, result))
        return documents

    async def _write_page(
        self,
        registration: SearchableRegistration,
        documents: list[tuple[str, dict[str, Any]]],
        summary: ReindexSummary,
    ) -> None:
        index = registration.index.index_name
        body = bulk_body(index, documents)

        async def write() -> dict[str, Any]:
            response = await self._backend.bulk(index, body)
            if response.get("errors"):
                failed = _failed_items(response)
                raise BulkIndexError(f"{len(failed)} bulk items failed", failed)
            return response

        try:
            await self._limiter.execute("Reindex", write)
            summary.indexed += len(documents)
        except BulkIndexError as e:
            summary.indexed += len(documents) - len(e.items)
            summary.errors += len(e.items)
            logger.warning(
                "search_reindex_bulk_items_failed",
                model=registration.model,
                failed=len(e.items),
            )
        except Exception as e:
            summary.errors += 1
            logger.warning(
                "search_reindex_bulk_failed",
                model=registration.model,
                error=str(e),
            )

    async def run(
        self,
        model: str,
        options: ReindexOptions | None = None,
    ) -> ReindexSummary:
        """Purge a model's documents and rebuild them from the record store.

        Args:
            model: Model identity (or plural alias) to reindex.
            options: Page size and inter-page pause.

        Returns:
            Counts of scanned and indexed records and errors.
        """
        opts = options or ReindexOptions()
        registration = self._registry.get(model)
        if registration is None:
            logger.info("search_reindex_unregistered", model=model)
            return ReindexSummary(model=model)

        summary = ReindexSummary(model=registration.model)
        try:
            handle = self._store.get_model(registration.model)
            index = registration.index.index_name
            await self._limiter.execute(
                "EnsureIndex", lambda: self._backend.ensure_index(index)
            )
        except Exception as e:
            summary.errors += 1
            logger.warning("search_reindex_aborted", model=summary.model, error=str(e))
            return summary
        await self._purge(registration)

        while True:
            try:
                records = await handle.find(skip=summary.scanned, limit=opts.concurrency)
            except Exception as e:
                summary.errors += 1
                logger.warning("search_reindex_scan_failed", model=summary.model, error=str(e))
                break
            if not records:
                break
            summary.scanned += len(records)

            documents = await self._transform_page(registration, records, summary)
            if documents:
                await self._write_page(registration, documents, summary)
            logger.debug(
                "search_reindex_progress",
                model=registration.model,
                scanned=summary.scanned,
                indexed=summary.indexed,
            )

            if len(records) < opts.concurrency:
                break
            await self._sleep(opts.interval_ms / 1000)

        logger.info(
            "search_reindex_complete",
            model=summary.model,
            scanned=summary.scanned,
            indexed=summary.indexed,
            errors=summary.errors,
        )
        return summary
