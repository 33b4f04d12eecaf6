from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UploadedFileInfo(BaseModel):
    filename: str
    content_type: Optional[str] = None
    size_bytes: int
    width: int
    height: int
    primary: str = Field(..., json_schema_extra={"example": "/uploads/products/42/1728000000000-a1b2c3d4e5f6.webp"})
    thumbnails: List[str] = Field(default_factory=list)


class UploadFailure(BaseModel):
    filename: str
    reason: str = Field(description="decode_error | encode_error | storage_error | source_too_large")
    error: str


class UploadResponse(BaseModel):
    entity_kind: str
    entity_id: int
    paths: List[str] = Field(description="Primary then thumbnails (smallest first), per uploaded file.")
    files: List[UploadedFileInfo]
    failures: List[UploadFailure] = Field(default_factory=list)
    record_ids: List[int] = Field(default_factory=list, description="Image records created for the primaries.")


class ImageRecordModel(BaseModel):
    id: int
    url: str = Field(description="Value as stored.")
    resolved_url: str = Field(description="Absolute URL a viewer can fetch.")
    alt: Optional[str] = None
    sort_order: int


class EntityImagesResponse(BaseModel):
    entity_id: int
    primary_image: Optional[str] = None
    images: List[ImageRecordModel]


__all__ = [
    "HealthResponse",
    "UploadedFileInfo",
    "UploadFailure",
    "UploadResponse",
    "ImageRecordModel",
    "EntityImagesResponse",
]
