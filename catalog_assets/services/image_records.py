from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assets.db.models import Product, ProductImage


@dataclass(frozen=True, slots=True)
class EntityRef:
    id: int
    name: str = ""


class ImageRecordRepository:
    """Data access for ``product_images`` rows, scoped to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_entities(self, entity_ids: Sequence[int] | None = None) -> list[EntityRef]:
        stmt = select(Product.id, Product.name).order_by(Product.id)
        if entity_ids:
            stmt = stmt.where(Product.id.in_(list(entity_ids)))
        rows = (await self.session.execute(stmt)).all()
        return [EntityRef(id=row.id, name=row.name or "") for row in rows]

    async def get_entity(self, entity_id: int) -> EntityRef | None:
        product = await self.session.get(Product, entity_id)
        if product is None:
            return None
        return EntityRef(id=product.id, name=product.name or "")

    async def list_for_entity(self, entity_id: int) -> list[ProductImage]:
        stmt = (
            select(ProductImage)
            .where(ProductImage.product_id == entity_id)
            .order_by(ProductImage.sort_order.asc(), ProductImage.id.asc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def delete_ids(self, record_ids: Sequence[int]) -> int:
        if not record_ids:
            return 0
        await self.session.execute(delete(ProductImage).where(ProductImage.id.in_(list(record_ids))))
        return len(record_ids)

    async def insert(self, entity_id: int, url: str, *, alt: str | None, sort_order: int) -> ProductImage:
        record = ProductImage(product_id=entity_id, url=url, alt=alt, sort_order=sort_order)
        self.session.add(record)
        await self.session.flush()
        return record

    async def next_sort_order(self, entity_id: int) -> int:
        stmt = select(func.max(ProductImage.sort_order)).where(ProductImage.product_id == entity_id)
        current = (await self.session.execute(stmt)).scalar_one_or_none()
        return 0 if current is None else current + 1

    async def append_uploaded(self, entity_id: int, urls: Sequence[str], *, alt: str | None) -> list[ProductImage]:
        """Persist freshly ingested primaries after the entity's existing gallery."""
        start = await self.next_sort_order(entity_id)
        created = []
        for offset, url in enumerate(urls):
            created.append(await self.insert(entity_id, url, alt=alt, sort_order=start + offset))
        await self.session.commit()
        return created


__all__ = ["EntityRef", "ImageRecordRepository"]
