"""Search backend protocol and shared response types."""

from typing import Any, Protocol

from pydantic import BaseModel, Field


class BackendHits(BaseModel):
    """Raw result of a backend search call.

    Attributes:
        hits: Matching entries, each with ``_id``, ``_score`` and ``_source``.
        total: Total number of matching documents.
        aggregations: Aggregation results, if requested.
    """

    hits: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    aggregations: dict[str, Any] | None = None


class SearchBackend(Protocol):
    """Operations searcher needs from a full-text search engine.

    Every method reports failures as exceptions carrying a backend status
    code so the retry executor can classify them.
    """

    async def ensure_index(self, index: str) -> None:
        """Create the index with the default mappings if it is missing."""
        ...

    async def search(
        self,
        index: str,
        body: dict[str, Any],
        limit: int | None = None,
        skip: int | None = None,
    ) -> BackendHits:
        """Run a query and return a page of hits."""
        ...

    async def count(self, index: str, body: dict[str, Any]) -> int:
        """Count documents matching a query."""
        ...

    async def index_document(
        self, index: str, doc_id: str, document: dict[str, Any]
    ) -> None:
        """Create or fully replace a document by id."""
        ...

    async def delete_document(self, index: str, doc_id: str) -> None:
        """Delete a document by id."""
        ...

    async def bulk(self, index: str, body: str) -> dict[str, Any]:
        """Submit newline-delimited action/document pairs."""
        ...

    async def delete_by_query(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        """Delete every document matching a query."""
        ...

    async def refresh(self, index: str) -> None:
        """Make recent writes visible to searches."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...
