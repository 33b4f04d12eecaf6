from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from catalog_assets.api import deps
from catalog_assets.domain import resolve

from . import schemas


router = APIRouter(prefix="/products", tags=["images"])


@router.get("/{product_id}/images", response_model=schemas.EntityImagesResponse)
async def list_product_images(
    product_id: int,
    records: deps.RecordsDependency,
    settings: deps.SettingsDependency,
) -> schemas.EntityImagesResponse:
    if await records.get_entity(product_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="entity_not_found")

    rows = await records.list_for_entity(product_id)
    images = [
        schemas.ImageRecordModel(
            id=row.id,
            url=row.url,
            resolved_url=resolve(row.url, settings.api_base_url),
            alt=row.alt,
            sort_order=row.sort_order,
        )
        for row in rows
    ]
    primary = images[0].resolved_url if images else resolve(None, settings.api_base_url)
    return schemas.EntityImagesResponse(entity_id=product_id, primary_image=primary, images=images)


__all__ = ["router"]
