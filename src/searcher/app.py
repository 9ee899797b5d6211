"""FastAPI application factory and lifespan management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from searcher.backends import SearchBackend, build_backend
from searcher.config import Settings
from searcher.errors import BackendError
from searcher.events import EventBus, MutationDispatcher
from searcher.middleware.logging import RequestLoggingMiddleware
from searcher.routes import health, search
from searcher.service import Searcher
from searcher.store import MemoryRecordStore, RecordStore

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    Starts routing record store mutations to the search index on
    startup; flushes in-flight syncs and closes the backend on shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    searcher: Searcher = app.state.searcher
    logger.info(
        "searcher_startup",
        backend=settings.backend,
        models=searcher.registry.models,
    )

    await searcher.start()
    try:
        yield
    finally:
        await searcher.stop()
        logger.info("searcher_shutdown")


async def _backend_error(request: Request, exc: Exception) -> JSONResponse:
    status_code = getattr(exc, "status_code", None)
    logger.warning("search_backend_error", path=request.url.path, status=status_code, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Search backend error", "backend_status": status_code},
    )


def build_searcher(
    settings: Settings,
    store: RecordStore | None = None,
    backend: SearchBackend | None = None,
) -> Searcher:
    """Wire a Searcher from settings.

    Args:
        settings: Configuration instance.
        store: Primary record store; an in-memory store if None.
        backend: Search backend; built from settings if None.

    Returns:
        Searcher ready for model registration.
    """
    bus = EventBus(queue_size=settings.event_queue_size)
    if store is None:
        store = MemoryRecordStore(bus)
    if backend is None:
        backend = build_backend(settings.backend, settings.elasticsearch_url)
    return Searcher(
        store=store,
        backend=backend,
        dispatcher=MutationDispatcher(bus),
        retry_policy=settings.retry_policy,
        default_index=settings.default_index,
    )


def create_app(
    settings: Settings | None = None,
    searcher: Searcher | None = None,
) -> FastAPI:
    """Factory function to create configured FastAPI application.

    Args:
        settings: Configuration instance. Creates default if None.
        searcher: Preconfigured searcher. Built from settings if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings()
    if searcher is None:
        searcher = build_searcher(settings)

    app = FastAPI(
        title="Searcher",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.searcher = searcher

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(BackendError, _backend_error)

    app.include_router(health.router)
    app.include_router(search.router, prefix=settings.base_url)

    return app
