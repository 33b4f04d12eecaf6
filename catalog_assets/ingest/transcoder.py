"""Pure in-memory conversion of uploaded images into the stored WEBP derivatives.

Re-encoding is lossy: transcoding the same source twice gives visually
equivalent output, not identical bytes.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Sequence

from PIL import Image, ImageOps

from catalog_assets.core.errors import DecodeError, EncodeError, InvalidInputError

from .thumbnails import ResizeProfile, render_thumbnail

CANONICAL_FORMAT = "WEBP"
CANONICAL_EXTENSION = "webp"
DEFAULT_QUALITY = 82
DEFAULT_MAX_SOURCE_BYTES = 25 * 1024 * 1024


@dataclass(slots=True)
class Thumbnail:
    label: str
    data: bytes
    width: int
    height: int


@dataclass(slots=True)
class TranscodeResult:
    primary: bytes
    width: int
    height: int
    thumbnails: list[Thumbnail] = field(default_factory=list)


def decode(source: bytes, *, max_source_bytes: int = DEFAULT_MAX_SOURCE_BYTES) -> Image.Image:
    if not source:
        raise DecodeError("empty_source")
    if len(source) > max_source_bytes:
        raise InvalidInputError("source_too_large", f"source is {len(source)} bytes, limit {max_source_bytes}")
    try:
        image = Image.open(io.BytesIO(source))
        image.load()
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"decompression_bomb: {exc}") from exc
    except (OSError, ValueError, SyntaxError) as exc:
        raise DecodeError(str(exc) or exc.__class__.__name__) from exc
    image = ImageOps.exif_transpose(image)
    return _normalise_mode(image)


def _normalise_mode(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA"):
        return image
    if image.mode in ("LA", "PA") or (image.mode == "P" and "transparency" in image.info):
        return image.convert("RGBA")
    return image.convert("RGB")


def encode(image: Image.Image, *, quality: int = DEFAULT_QUALITY) -> bytes:
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=CANONICAL_FORMAT, quality=quality, method=4)
    except (OSError, ValueError) as exc:
        # libwebp refuses either side above 16383 px even when decoding succeeded.
        raise EncodeError(f"{CANONICAL_FORMAT.lower()}_encode_failed ({image.width}x{image.height}): {exc}") from exc
    return buffer.getvalue()


def transcode(
    source: bytes,
    profiles: Sequence[ResizeProfile] = (),
    *,
    max_source_bytes: int = DEFAULT_MAX_SOURCE_BYTES,
    quality: int = DEFAULT_QUALITY,
) -> TranscodeResult:
    """Decode ``source`` and produce the canonical primary plus one thumbnail per profile.

    Raises:
        DecodeError: the bytes are not a decodable raster image.
        EncodeError: the decoded image cannot be resized or encoded as WEBP.
        InvalidInputError: the source exceeds ``max_source_bytes``.
    """
    image = decode(source, max_source_bytes=max_source_bytes)
    result = TranscodeResult(primary=encode(image, quality=quality), width=image.width, height=image.height)
    for profile in profiles:
        try:
            thumb = render_thumbnail(image, profile)
        except (OSError, ValueError) as exc:
            raise EncodeError(f"resize_failed ({profile.label}): {exc}") from exc
        result.thumbnails.append(
            Thumbnail(
                label=profile.label,
                data=encode(thumb, quality=quality),
                width=thumb.width,
                height=thumb.height,
            )
        )
    return result


def probe_dimensions(source: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` of an encoded image without keeping it around."""
    try:
        with Image.open(io.BytesIO(source)) as image:
            return image.size
    except (OSError, ValueError, SyntaxError) as exc:
        raise DecodeError(str(exc) or exc.__class__.__name__) from exc


__all__ = [
    "CANONICAL_EXTENSION",
    "CANONICAL_FORMAT",
    "Thumbnail",
    "TranscodeResult",
    "decode",
    "encode",
    "probe_dimensions",
    "transcode",
]
