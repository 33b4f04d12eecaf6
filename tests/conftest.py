import asyncio
import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import select

from catalog_assets.core.config import get_settings
from catalog_assets.core.db import Base, create_engine, create_session_factory
from catalog_assets.db.models import Product, ProductImage
from catalog_assets.main import create_app


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    db_path = tmp_path / "catalog_test.db"
    uploads_root = tmp_path / "uploads"

    monkeypatch.setenv("CATALOG_ASSETS_ENV", "test")
    monkeypatch.setenv("CATALOG_ASSETS_LOG_LEVEL", "debug")
    monkeypatch.setenv("CATALOG_ASSETS_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("CATALOG_ASSETS_UPLOADS_ROOT", str(uploads_root))
    monkeypatch.setenv("CATALOG_ASSETS_API_BASE_URL", "http://h:3001")

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return configure_environment


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def image_bytes(fmt: str = "PNG", size: tuple[int, int] = (64, 48), color=(200, 40, 40)) -> bytes:
    mode = "RGBA" if fmt.upper() == "PNG" else "RGB"
    fill = color + (255,) if mode == "RGBA" else color
    buffer = io.BytesIO()
    Image.new(mode, size, fill).save(buffer, format=fmt)
    return buffer.getvalue()


def write_image(directory: Path, name: str, fmt: str = "WEBP", size: tuple[int, int] = (32, 32)) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / name
    target.write_bytes(image_bytes(fmt, size))
    return target


def seed(settings, products: dict[int, str], images: list[tuple[int, str, int]] = ()) -> None:
    """Insert products by id and ``(product_id, url, sort_order)`` image rows."""

    async def _seed() -> None:
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            for product_id, name in products.items():
                session.add(Product(id=product_id, name=name))
            await session.flush()
            for product_id, url, sort_order in images:
                session.add(ProductImage(product_id=product_id, url=url, alt=None, sort_order=sort_order))
            await session.commit()
        await engine.dispose()

    asyncio.run(_seed())


def fetch_images(settings, product_id: int) -> list[tuple[str, int]]:
    """Return ``(url, sort_order)`` rows ordered by sort order then id."""

    async def _fetch() -> list[tuple[str, int]]:
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            stmt = (
                select(ProductImage.url, ProductImage.sort_order)
                .where(ProductImage.product_id == product_id)
                .order_by(ProductImage.sort_order, ProductImage.id)
            )
            rows = [(row.url, row.sort_order) for row in (await session.execute(stmt)).all()]
        await engine.dispose()
        return rows

    return asyncio.run(_fetch())
