from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from catalog_assets.api.v1 import get_api_router
from catalog_assets.core.config import get_settings
from catalog_assets.core.db import create_engine, create_session_factory
from catalog_assets.core.errors import BackendConnectionError
from catalog_assets.core.logging import configure_logging, get_logger, level_from_name
from catalog_assets.core.storage import get_layout


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level), renderer=settings.log_format)
    logger = get_logger(component="app")
    layout = get_layout(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.layout = layout
        app.state.engine = engine
        app.state.session_factory = session_factory
        try:
            layout.check_root()
        except BackendConnectionError as exc:
            # /v1/ready keeps answering 503 until the root is usable.
            logger.warning("uploads_root_unavailable", error=str(exc))
        logger.info("app_started", uploads_root=str(layout.uploads_root), environment=settings.environment)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    app.mount(
        layout.public_mount,
        StaticFiles(directory=layout.uploads_root, check_dir=False),
        name="uploads",
    )
    return app


app = create_app()


__all__ = ["app", "create_app"]
