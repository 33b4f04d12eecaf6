from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Path, UploadFile, status

from catalog_assets.api import deps
from catalog_assets.core.errors import InvalidInputError
from catalog_assets.services.ingest_service import UploadedImage

from . import schemas


router = APIRouter(prefix="/uploads", tags=["uploads"])

_REJECTION_STATUS = {
    "missing_file": status.HTTP_400_BAD_REQUEST,
    "not_an_image": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    "upload_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "source_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
}


async def _read_bounded(upload: UploadFile, limit: int) -> UploadedImage:
    # One byte past the limit is enough to reject without buffering the rest.
    data = await upload.read(limit + 1)
    await upload.close()
    return UploadedImage(filename=upload.filename or "upload", content_type=upload.content_type, data=data)


@router.post(
    "/{entity_kind}/{entity_id}",
    response_model=schemas.UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload images for an entity",
)
async def upload_images(
    service: deps.IngestDependency,
    records: deps.RecordsDependency,
    settings: deps.SettingsDependency,
    entity_kind: str = Path(..., pattern=r"^[a-z0-9_-]+$"),
    entity_id: int = Path(..., ge=1),
    files: Optional[List[UploadFile]] = File(default=None),
) -> schemas.UploadResponse:
    persist = entity_kind == settings.entity_kind
    entity = None
    if persist:
        entity = await records.get_entity(entity_id)
        if entity is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="entity_not_found")

    uploads = [await _read_bounded(upload, settings.max_upload_size_bytes) for upload in files or []]
    try:
        result = await service.ingest(entity_kind, entity_id, uploads)
    except InvalidInputError as exc:
        raise HTTPException(
            status_code=_REJECTION_STATUS.get(exc.reason, status.HTTP_400_BAD_REQUEST),
            detail=exc.reason,
        ) from exc

    if not result.files:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="processing_error")

    record_ids: list[int] = []
    if persist and entity is not None:
        created = await records.append_uploaded(entity_id, result.primaries, alt=entity.name)
        record_ids = [record.id for record in created]

    return schemas.UploadResponse(
        entity_kind=entity_kind,
        entity_id=entity_id,
        paths=result.paths,
        files=[
            schemas.UploadedFileInfo(
                filename=item.filename,
                content_type=item.content_type,
                size_bytes=item.size_bytes,
                width=item.width,
                height=item.height,
                primary=item.primary,
                thumbnails=item.thumbnails,
            )
            for item in result.files
        ],
        failures=[
            schemas.UploadFailure(filename=failure.filename, reason=failure.reason, error=failure.error)
            for failure in result.failures
        ],
        record_ids=record_ids,
    )


__all__ = ["router"]
