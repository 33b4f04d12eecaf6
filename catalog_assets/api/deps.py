from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_assets.core.config import Settings, get_settings
from catalog_assets.core.storage import StorageLayout
from catalog_assets.services.image_records import ImageRecordRepository
from catalog_assets.services.ingest_service import IngestService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_layout(request: Request) -> StorageLayout:
    layout: StorageLayout = request.app.state.layout
    return layout


def get_app_settings() -> Settings:
    return get_settings()


def get_ingest_service(
    layout: StorageLayout = Depends(get_layout),
    settings: Settings = Depends(get_app_settings),
) -> IngestService:
    return IngestService(settings, layout)


def get_image_records(session: AsyncSession = Depends(get_session)) -> ImageRecordRepository:
    return ImageRecordRepository(session)


IngestDependency = Annotated[IngestService, Depends(get_ingest_service)]
RecordsDependency = Annotated[ImageRecordRepository, Depends(get_image_records)]
SettingsDependency = Annotated[Settings, Depends(get_app_settings)]


__all__ = [
    "get_session",
    "get_layout",
    "get_app_settings",
    "get_ingest_service",
    "get_image_records",
    "IngestDependency",
    "RecordsDependency",
    "SettingsDependency",
]
