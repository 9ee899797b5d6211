"""Searcher facade: registration, queries and reindexing."""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel, Field

from searcher.backends.base import SearchBackend
from searcher.events.dispatcher import MutationDispatcher
from searcher.events.types import EventType
from searcher.query import QueryOptions, build_query, coerce_options
from searcher.registry import RegistrationOptions, SearchableRegistration, SearchRegistry
from searcher.reindex import ReindexOptions, ReindexPipeline, ReindexSummary
from searcher.retry import RetryLimiter, RetryPolicy
from searcher.store import RecordStore
from searcher.sync import FailureObserver, SyncController

logger = structlog.get_logger()


class SearchResults(BaseModel):
    """Documents matching a search.

    Attributes:
        hits: Indexed documents, each with its ``_score``.
        total: Total number of matching documents.
        aggregations: Aggregation results, if requested.
    """

    hits: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    aggregations: dict[str, Any] | None = None

    def ids(self) -> list[str]:
        """Record ids of the hits, in rank order."""
        return [str(h["id"]) for h in self.hits if h.get("id") is not None]


class Searcher:
    """Keeps a search index in sync with a record store and queries it.

    Registering a model subscribes the sync controller to its mutation
    events. Searches and counts for unregistered models return nothing;
    that lets registration happen in any order at startup.
    """

    def __init__(
        self,
        store: RecordStore,
        backend: SearchBackend,
        dispatcher: MutationDispatcher,
        retry_policy: RetryPolicy | None = None,
        default_index: str = "searcher",
        on_sync_failure: FailureObserver | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize searcher.

        Args:
            store: Primary record store.
            backend: Search backend holding the index.
            dispatcher: Mutation event dispatcher to subscribe through.
            retry_policy: Backoff for every backend call.
            default_index: Backend index name of the shared default target.
            on_sync_failure: Observer for dropped sync writes.
            sleep: Coroutine used for retry backoff and reindex pauses.
        """
        self.store = store
        self.backend = backend
        self.dispatcher = dispatcher
        self.registry = SearchRegistry(default_index_name=default_index)
        self.limiter = RetryLimiter(retry_policy, sleep=sleep)
        self.sync = SyncController(
            self.registry, backend, self.limiter, on_failure=on_sync_failure
        )
        self.pipeline = ReindexPipeline(
            self.registry, store, backend, self.limiter, sleep=sleep
        )

    def searchable(
        self,
        model: str,
        options: RegistrationOptions | dict[str, Any] | None = None,
    ) -> SearchableRegistration:
        """Register a model as searchable and start syncing its records.

        Args:
            model: Model identity already known to the record store.
            options: Fields, target index, processor and populate directive.

        Returns:
            The stored registration.
        """
        logger.debug("searchable_registering", model=model)
        registration = self.registry.register(model, options)
        self.dispatcher.on(model, EventType.CREATED, self.sync.handle_create)
        self.dispatcher.on(model, EventType.UPDATED, self.sync.handle_update)
        self.dispatcher.on(model, EventType.DESTROYED, self.sync.handle_destroy)
        return registration

    async def _prepare(
        self,
        model: str,
        query: str | Mapping[str, Any],
        options: QueryOptions | Mapping[str, Any] | None,
    ) -> tuple[SearchableRegistration, dict[str, Any], QueryOptions] | None:
        registration = self.registry.get(model)
        if registration is None:
            logger.debug("search_unregistered_model", model=model)
            return None
        opts = coerce_options(options)
        body = build_query(registration.model, query, opts, registration.fields)
        index = registration.index.index_name
        await self.limiter.execute(
            "EnsureIndex", lambda: self.backend.ensure_index(index)
        )
        return registration, dict(body), opts

    async def search(
        self,
        model: str,
        query: str | Mapping[str, Any],
        options: QueryOptions | Mapping[str, Any] | None = None,
    ) -> SearchResults:
        """Search a model's documents.

        ``query`` is either search text, assembled into a boolean OR of
        field matches filtered to the model, or a finished query object
        that must do its own model filtering.

        Args:
            model: Model identity or plural alias.
            query: Search text or query object.
            options: Query assembly and pagination options.

        Returns:
            Matching documents with total and aggregations.

        Raises:
            BackendError: The backend's error once retries are exhausted.
        """
        prepared = await self._prepare(model, query, options)
        if prepared is None:
            return SearchResults()
        registration, body, opts = prepared
        index = registration.index.index_name
        response = await self.limiter.execute(
            "Search",
            lambda: self.backend.search(index, body, limit=opts.limit, skip=opts.skip),
        )
        hits = [{"_score": hit.get("_score"), **hit["_source"]} for hit in response.hits]
        return SearchResults(
            hits=hits,
            total=response.total,
            aggregations=response.aggregations,
        )

    async def count(
        self,
        model: str,
        query: str | Mapping[str, Any],
        options: QueryOptions | Mapping[str, Any] | None = None,
    ) -> int:
        """Count a model's documents matching a query.

        Args:
            model: Model identity or plural alias.
            query: Search text or query object.
            options: Query assembly options.

        Returns:
            Number of matching documents.

        Raises:
            BackendError: The backend's error once retries are exhausted.
        """
        prepared = await self._prepare(model, query, options)
        if prepared is None:
            return 0
        registration, body, _ = prepared
        index = registration.index.index_name
        return await self.limiter.execute(
            "Count", lambda: self.backend.count(index, body)
        )

    async def reindex(
        self,
        model: str,
        concurrency: int = 1000,
        interval_ms: int = 100,
    ) -> ReindexSummary:
        """Rebuild a model's documents from the record store.

        Never raises for backend or record errors; they are counted in
        the returned summary.

        Args:
            model: Model identity or plural alias.
            concurrency: Records per page and bulk request.
            interval_ms: Pause between pages.

        Returns:
            Reindex summary.
        """
        options = ReindexOptions(concurrency=concurrency, interval_ms=interval_ms)
        return await self.pipeline.run(model, options)

    async def refresh(self, model: str) -> None:
        """Make recent writes to a model's index visible to searches."""
        registration = self.registry.get(model)
        if registration is None:
            return
        index = registration.index.index_name
        await self.limiter.execute("Refresh", lambda: self.backend.refresh(index))

    async def records(
        self,
        model: str,
        results: SearchResults,
    ) -> list[dict[str, Any]]:
        """Load the record store records behind search hits.

        Applies the registration's populate directive.

        Args:
            model: Model identity or plural alias.
            results: Search results to hydrate.

        Returns:
            Records in hit order; hits whose record is gone are omitted.
        """
        registration = self.registry.get(model)
        if registration is None:
            return []
        handle = self.store.get_model(registration.model)
        return await handle.find_many(results.ids(), populate=registration.populate)

    async def start(self) -> None:
        """Start routing record store mutations to the index."""
        await self.dispatcher.start()

    async def stop(self) -> None:
        """Flush pending syncs and release the backend."""
        await self.dispatcher.stop()
        await self.backend.close()
