from __future__ import annotations


class AssetPipelineError(Exception):
    """Base class for failures raised by the image asset pipeline.

    ``reason`` is a stable snake_case code suitable for API error details and
    report tables.
    """

    reason = "pipeline_error"


class DecodeError(AssetPipelineError):
    """Source bytes could not be decoded as a raster image."""

    reason = "decode_error"


class EncodeError(AssetPipelineError):
    """A decoded image could not be resized or written in the canonical format."""

    reason = "encode_error"


class InvalidInputError(AssetPipelineError):
    """The caller supplied something the pipeline refuses to process.

    Reasons: ``missing_file``, ``not_an_image``, ``upload_too_large``, ``source_too_large``.
    """

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason)
        self.reason = reason


class StorageError(AssetPipelineError):
    """A filesystem operation under the uploads root failed."""

    reason = "storage_error"


class BackendConnectionError(AssetPipelineError):
    """The database or the uploads root cannot be reached at all."""

    reason = "backend_unavailable"


__all__ = [
    "AssetPipelineError",
    "DecodeError",
    "EncodeError",
    "InvalidInputError",
    "StorageError",
    "BackendConnectionError",
]
