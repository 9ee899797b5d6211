"""Elasticsearch implementation of the search backend protocol."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from searcher.backends.base import BackendHits
from searcher.errors import BackendError
from searcher.registry import DEFAULT_MAPPINGS

logger = structlog.get_logger()

# Search body keys forwarded to the client as keyword arguments.
_SEARCH_KEYS: dict[str, str] = {
    "query": "query",
    "aggs": "aggs",
    "aggregations": "aggregations",
    "sort": "sort",
    "post_filter": "post_filter",
    "highlight": "highlight",
    "_source": "source",
    "min_score": "min_score",
    "size": "size",
    "from": "from_",
    "track_total_hits": "track_total_hits",
    "search_after": "search_after",
    "collapse": "collapse",
    "script_fields": "script_fields",
    "docvalue_fields": "docvalue_fields",
    "stored_fields": "stored_fields",
    "explain": "explain",
    "timeout": "timeout",
    "terminate_after": "terminate_after",
    "rescore": "rescore",
    "suggest": "suggest",
    "pit": "pit",
    "runtime_mappings": "runtime_mappings",
    "knn": "knn",
}


@contextmanager
def _translated(operation: str) -> Iterator[None]:
    """Re-raise client errors as BackendError with the response status."""
    try:
        yield
    except ApiError as e:
        raise BackendError.from_status(f"{operation}: {e.message}", e.meta.status) from e
    except TransportError as e:
        raise BackendError.from_status(f"{operation}: {e}", None) from e


def _total(hits: dict[str, Any]) -> int:
    total = hits.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total)


class ElasticsearchBackend:
    """Search backend talking to Elasticsearch through AsyncElasticsearch.

    Indexes are created on first use with mappings that keep ``id`` and
    ``model`` as keywords.
    """

    def __init__(
        self,
        url: str = "http://localhost:9200",
        client: AsyncElasticsearch | None = None,
        mappings: dict[str, Any] | None = None,
    ) -> None:
        """Initialize backend.

        Args:
            url: Elasticsearch node URL, used when no client is given.
            client: Preconfigured async client.
            mappings: Mappings for newly created indexes.
        """
        self._client = client or AsyncElasticsearch(url)
        self._mappings = mappings or DEFAULT_MAPPINGS
        self._ready: set[str] = set()

    async def ensure_index(self, index: str) -> None:
        if index in self._ready:
            return
        with _translated("ensure_index"):
            exists = await self._client.indices.exists(index=index)
            if not exists:
                try:
                    await self._client.indices.create(index=index, mappings=self._mappings)
                    logger.info("search_index_created", index=index)
                except ApiError as e:
                    # another process created it between exists and create
                    if e.error != "resource_already_exists_exception":
                        raise
        self._ready.add(index)

    async def search(
        self,
        index: str,
        body: dict[str, Any],
        limit: int | None = None,
        skip: int | None = None,
    ) -> BackendHits:
        """Run a search request.

        Top-level body keys are forwarded as request parameters; keys
        the client has no parameter for are rejected with a 400. Paging
        keys in the body (``size``, ``from``) win over ``limit`` and
        ``skip``.

        Args:
            index: Index to search.
            body: Search request body.
            limit: Page size.
            skip: Offset of the first hit.

        Returns:
            Hits, total and aggregations.

        Raises:
            BackendError: For unsupported keys and client failures.
        """
        unknown = set(body) - set(_SEARCH_KEYS)
        if unknown:
            raise BackendError.from_status(
                f"unsupported search body keys: {sorted(unknown)}", 400
            )
        params: dict[str, Any] = {"size": limit, "from_": skip, "track_total_hits": True}
        params.update({_SEARCH_KEYS[k]: v for k, v in body.items()})
        with _translated("search"):
            response = await self._client.search(index=index, **params)
        hits = response["hits"]
        return BackendHits(
            hits=list(hits["hits"]),
            total=_total(hits),
            aggregations=response.get("aggregations"),
        )

    async def count(self, index: str, body: dict[str, Any]) -> int:
        with _translated("count"):
            response = await self._client.count(index=index, query=body.get("query"))
        return int(response["count"])

    async def index_document(
        self, index: str, doc_id: str, document: dict[str, Any]
    ) -> None:
        with _translated("index"):
            await self._client.index(index=index, id=doc_id, document=document)

    async def delete_document(self, index: str, doc_id: str) -> None:
        with _translated("delete"):
            await self._client.delete(index=index, id=doc_id)

    async def bulk(self, index: str, body: str) -> dict[str, Any]:
        with _translated("bulk"):
            response = await self._client.bulk(index=index, operations=body)
        return dict(response)

    async def delete_by_query(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        with _translated("delete_by_query"):
            response = await self._client.delete_by_query(
                index=index,
                query=body.get("query"),
                conflicts="proceed",
            )
        return dict(response)

    async def refresh(self, index: str) -> None:
        with _translated("refresh"):
            await self._client.indices.refresh(index=index)

    async def close(self) -> None:
        await self._client.close()
