from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from catalog_assets.core.db import check_database
from catalog_assets.core.errors import BackendConnectionError

from .schemas import HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/ready", response_model=HealthResponse, summary="Database and uploads root reachable")
async def ready(request: Request) -> HealthResponse:
    try:
        await check_database(request.app.state.session_factory)
        request.app.state.layout.probe_root()
    except BackendConnectionError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.reason) from exc
    return HealthResponse()


__all__ = ["router"]
