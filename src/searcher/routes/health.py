"""Health check endpoints for liveness and readiness probes."""
from typing import Literal

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(prefix="/health", tags=["health"])


class LivenessResponse(BaseModel):
    """Response model for liveness probe.

    Attributes:
        status: Always 'alive' when process is running.
    """

    status: Literal["alive"]


class ReadinessResponse(BaseModel):
    """Response model for readiness probe.

    Attributes:
        status: Overall readiness ('ready' or 'not_ready').
        models: Registered searchable models.
        message: Backend error details when not ready.
    """

    status: Literal["ready", "not_ready"]
    models: list[str]
    message: str | None = None


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe endpoint.

    Returns:
        Liveness status response.
    """
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe endpoint.

    Checks that the default search index is reachable. Returns 200 if
    it is, 503 otherwise.

    Returns:
        Readiness status with registered models.
    """
    searcher = request.app.state.searcher
    default = searcher.registry.resolve_index("")
    try:
        await searcher.backend.ensure_index(default.index_name)
        response = ReadinessResponse(status="ready", models=searcher.registry.models)
        code = status.HTTP_200_OK
    except Exception as e:
        response = ReadinessResponse(
            status="not_ready",
            models=searcher.registry.models,
            message=str(e),
        )
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(), status_code=code)
