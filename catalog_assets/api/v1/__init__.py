"""Versioned API routing for the catalog asset pipeline."""

from fastapi import APIRouter

from . import routes_images, routes_system, routes_uploads


def get_api_router() -> APIRouter:
    router = APIRouter(prefix="/v1")
    router.include_router(routes_system.router)
    router.include_router(routes_uploads.router)
    router.include_router(routes_images.router)
    return router


__all__ = ["get_api_router"]
