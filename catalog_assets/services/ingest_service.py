from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from catalog_assets.core.config import Settings
from catalog_assets.core.errors import AssetPipelineError, InvalidInputError
from catalog_assets.core.logging import get_logger
from catalog_assets.core.storage import StorageLayout
from catalog_assets.ingest.thumbnails import ResizeProfile, parse_profiles
from catalog_assets.ingest.transcoder import CANONICAL_EXTENSION, transcode


@dataclass(slots=True)
class UploadedImage:
    filename: str
    content_type: str | None
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class IngestedFile:
    filename: str
    content_type: str | None
    size_bytes: int
    width: int
    height: int
    primary: str
    thumbnails: list[str] = field(default_factory=list)


@dataclass(slots=True)
class IngestFailure:
    filename: str
    reason: str
    error: str


@dataclass(slots=True)
class IngestResult:
    files: list[IngestedFile] = field(default_factory=list)
    failures: list[IngestFailure] = field(default_factory=list)

    @property
    def paths(self) -> list[str]:
        """Public paths per file: primary first, then thumbnails smallest to largest."""
        paths: list[str] = []
        for item in self.files:
            paths.append(item.primary)
            paths.extend(item.thumbnails)
        return paths

    @property
    def primaries(self) -> list[str]:
        return [item.primary for item in self.files]


class IngestService:
    """Turns uploaded images into stored WEBP derivatives for one entity.

    The service writes files only. Persisting the returned paths as image
    records is the caller's job, which keeps this usable without a database.
    """

    def __init__(self, settings: Settings, layout: StorageLayout, profiles: Sequence[ResizeProfile] | None = None):
        self.settings = settings
        self.layout = layout
        self.profiles = sorted(profiles, key=lambda p: (p.area, p.width)) if profiles else parse_profiles(settings.thumbnail_profiles)
        self.logger = get_logger(component="ingest_service")

    def validate(self, uploads: Sequence[UploadedImage]) -> None:
        if not uploads:
            raise InvalidInputError("missing_file", "no file was uploaded")
        for upload in uploads:
            if not upload.data:
                raise InvalidInputError("missing_file", f"{upload.filename or 'upload'} is empty")
            content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
            if not content_type.startswith("image/"):
                raise InvalidInputError("not_an_image", f"{upload.filename or 'upload'} is {content_type or 'untyped'}")
            if upload.size_bytes > self.settings.max_upload_size_bytes:
                raise InvalidInputError(
                    "upload_too_large",
                    f"{upload.filename or 'upload'} exceeds {self.settings.max_upload_size_bytes} bytes",
                )
            if upload.size_bytes > self.settings.max_source_bytes:
                raise InvalidInputError(
                    "source_too_large",
                    f"{upload.filename or 'upload'} exceeds the decoder limit of {self.settings.max_source_bytes} bytes",
                )

    async def ingest(self, entity_kind: str, entity_id: int, uploads: Sequence[UploadedImage]) -> IngestResult:
        """Validate then transcode every upload; a failing file never aborts its siblings."""
        self.validate(uploads)
        logger = self.logger.bind(entity_kind=entity_kind, entity_id=entity_id)
        result = IngestResult()

        for upload in uploads:
            try:
                ingested = await asyncio.to_thread(self._process_one, entity_kind, entity_id, upload)
            except AssetPipelineError as exc:
                reason = exc.reason
                logger.warning("ingest_file_failed", filename=upload.filename, reason=reason, error=str(exc))
                result.failures.append(IngestFailure(filename=upload.filename, reason=reason, error=str(exc)))
                continue
            logger.info(
                "ingest_file_processed",
                filename=upload.filename,
                primary=ingested.primary,
                thumbnails=len(ingested.thumbnails),
            )
            result.files.append(ingested)

        return result

    def _process_one(self, entity_kind: str, entity_id: int, upload: UploadedImage) -> IngestedFile:
        transcoded = transcode(
            upload.data,
            self.profiles,
            max_source_bytes=self.settings.max_source_bytes,
            quality=self.settings.webp_quality,
        )
        base = self.layout.new_upload_basename()
        primary_path = self.layout.write_bytes(entity_kind, entity_id, f"{base}.{CANONICAL_EXTENSION}", transcoded.primary)

        thumbnails = []
        for thumb in transcoded.thumbnails:
            name = self.layout.thumbnail_filename(base, thumb.label, CANONICAL_EXTENSION)
            thumb_path = self.layout.write_bytes(entity_kind, entity_id, name, thumb.data)
            thumbnails.append(self.layout.resolve_public_path(thumb_path))

        return IngestedFile(
            filename=upload.filename,
            content_type=upload.content_type,
            size_bytes=upload.size_bytes,
            width=transcoded.width,
            height=transcoded.height,
            primary=self.layout.resolve_public_path(primary_path),
            thumbnails=thumbnails,
        )


__all__ = [
    "IngestFailure",
    "IngestResult",
    "IngestService",
    "IngestedFile",
    "UploadedImage",
]
