"""Search result and reindex endpoints."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request, status
from pydantic import BaseModel

from searcher.query import model_filter

if TYPE_CHECKING:
    from searcher.config import Settings
    from searcher.registry import SearchableRegistration
    from searcher.service import Searcher

router = APIRouter(tags=["search"])


class SearchPageResponse(BaseModel):
    """One page of search results for a model.

    Attributes:
        model: Canonical model identity.
        query: The search text.
        view: List view name registered for the model.
        total: Total number of matching documents.
        page: Current page number (1-based).
        items_per_page: Page size.
        total_pages: Number of pages for the total.
        attributes: Field name to type metadata from the record store.
        records: Record store records behind the hits.
    """

    model: str
    query: str
    view: str
    total: int
    page: int
    items_per_page: int
    total_pages: int
    attributes: dict[str, dict[str, Any]]
    records: list[dict[str, Any]]


class DetailResponse(BaseModel):
    """A single record reached from search results."""

    model: str
    view: str
    title: str
    attributes: dict[str, dict[str, Any]]
    record: dict[str, Any]


class ReindexScheduledResponse(BaseModel):
    """Acknowledgement for a background reindex."""

    model: str
    status: str


def _registration(request: Request, model: str) -> SearchableRegistration:
    searcher: Searcher = request.app.state.searcher
    registration = searcher.registry.get(model)
    if registration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Model Not Found")
    return registration


@router.get(
    "/{model}",
    response_model=SearchPageResponse,
    summary="Search a model's records",
)
async def search_results(
    request: Request,
    model: str,
    q: str = Query(default="", max_length=500, description="Search text"),
    page: int = Query(default=1, ge=1, description="Page number"),
) -> SearchPageResponse:
    """Search a model (singular or plural identity) and hydrate the hits.

    Args:
        request: FastAPI request (provides access to app state).
        model: Model identity or plural alias.
        q: Search text; empty lists every record of the model.
        page: 1-based page number.

    Returns:
        Page of records with pagination metadata.
    """
    registration = _registration(request, model)
    searcher: Searcher = request.app.state.searcher
    settings: Settings = request.app.state.settings
    canonical = registration.model

    query: str | dict[str, Any] = q
    if not q.strip():
        query = {"query": {"bool": {"filter": [model_filter(canonical)]}}}

    per_page = settings.items_per_page
    results = await searcher.search(
        canonical, query, {"limit": per_page, "skip": (page - 1) * per_page}
    )
    total = await searcher.count(canonical, query)
    records = await searcher.records(canonical, results)

    return SearchPageResponse(
        model=canonical,
        query=q,
        view=registration.list_view,
        total=total,
        page=page,
        items_per_page=per_page,
        total_pages=math.ceil(total / per_page) if per_page else 0,
        attributes=searcher.store.get_model(canonical).attributes(),
        records=records,
    )


@router.get(
    "/{model}/{record_id}",
    response_model=DetailResponse,
    summary="Show one searchable record",
)
async def search_detail(request: Request, model: str, record_id: str) -> DetailResponse:
    """Return a single record of a searchable model.

    Args:
        request: FastAPI request (provides access to app state).
        model: Model identity or plural alias.
        record_id: Record identifier.

    Returns:
        The record and its attribute metadata.
    """
    registration = _registration(request, model)
    searcher: Searcher = request.app.state.searcher
    handle = searcher.store.get_model(registration.model)
    record = await handle.find_one(record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record Not Found")
    return DetailResponse(
        model=registration.model,
        view=registration.detail_view,
        title=f"View {record_id}",
        attributes=handle.attributes(),
        record=record,
    )


@router.post(
    "/{model}/reindex",
    response_model=ReindexScheduledResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Rebuild a model's search documents",
)
async def reindex(
    request: Request,
    model: str,
    background: BackgroundTasks,
) -> ReindexScheduledResponse:
    """Schedule a reindex of a model in the background.

    Args:
        request: FastAPI request (provides access to app state).
        model: Model identity or plural alias.
        background: Background task queue.

    Returns:
        Acknowledgement; the outcome is logged when the pass completes.
    """
    registration = _registration(request, model)
    searcher: Searcher = request.app.state.searcher
    settings: Settings = request.app.state.settings
    background.add_task(
        searcher.reindex,
        registration.model,
        settings.reindex_concurrency,
        settings.reindex_interval_ms,
    )
    return ReindexScheduledResponse(model=registration.model, status="scheduled")
