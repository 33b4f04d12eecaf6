from __future__ import annotations

import asyncio

import pytest

from catalog_assets.core.errors import InvalidInputError
from catalog_assets.core.storage import get_layout
from catalog_assets.services.ingest_service import IngestService, UploadedImage
from tests.conftest import image_bytes


@pytest.fixture()
def service(settings):
    return IngestService(settings, get_layout(settings))


def test_ingest_writes_primary_and_thumbnails(service, settings):
    upload = UploadedImage(filename="shoe.jpg", content_type="image/jpeg", data=image_bytes("JPEG", (1600, 900)))
    result = asyncio.run(service.ingest("products", 12, [upload]))

    assert not result.failures
    [item] = result.files
    assert item.primary.startswith("/uploads/products/12/")
    assert item.primary.endswith(".webp")
    assert [path.rsplit("-", 1)[-1] for path in item.thumbnails] == ["200x200.webp", "800x800.webp"]
    assert result.paths == [item.primary, *item.thumbnails]

    root = settings.resolved_uploads_root
    for public_path in result.paths:
        assert (root / public_path.removeprefix("/uploads/")).is_file()


def test_one_bad_file_does_not_abort_the_batch(service, settings):
    uploads = [
        UploadedImage("a.png", "image/png", image_bytes("PNG", (300, 300))),
        UploadedImage("broken.jpg", "image/jpeg", b"\xff\xd8 truncated"),
        UploadedImage("c.gif", "image/gif", image_bytes("GIF", (50, 80))),
    ]
    result = asyncio.run(service.ingest("products", 4, uploads))

    assert [item.filename for item in result.files] == ["a.png", "c.gif"]
    assert [(f.filename, f.reason) for f in result.failures] == [("broken.jpg", "decode_error")]
    assert len(result.paths) == 6

    directory = settings.resolved_uploads_root / "products" / "4"
    assert len([p for p in directory.iterdir() if p.suffix == ".webp"]) == 6


@pytest.mark.parametrize(
    ("uploads", "reason"),
    [
        ([], "missing_file"),
        ([UploadedImage("empty.png", "image/png", b"")], "missing_file"),
        ([UploadedImage("doc.pdf", "application/pdf", b"%PDF-1.4")], "not_an_image"),
        ([UploadedImage("x.png", None, b"data")], "not_an_image"),
    ],
)
def test_validation_rejects_before_writing(service, settings, uploads, reason):
    with pytest.raises(InvalidInputError) as excinfo:
        asyncio.run(service.ingest("products", 1, uploads))
    assert excinfo.value.reason == reason
    assert not (settings.resolved_uploads_root / "products" / "1").exists()


def test_upload_over_limit_is_rejected(settings):
    tight = settings.model_copy(update={"max_upload_size_bytes": 16})
    service = IngestService(tight, get_layout(tight))
    with pytest.raises(InvalidInputError) as excinfo:
        service.validate([UploadedImage("big.png", "image/png", image_bytes("PNG", (64, 64)))])
    assert excinfo.value.reason == "upload_too_large"


def test_image_too_wide_for_webp_is_skipped(service):
    uploads = [
        UploadedImage("a.png", "image/png", image_bytes("PNG", (30, 30))),
        UploadedImage("panorama.png", "image/png", image_bytes("PNG", (17000, 2))),
        UploadedImage("c.png", "image/png", image_bytes("PNG", (30, 30))),
    ]
    result = asyncio.run(service.ingest("products", 2, uploads))

    assert [item.filename for item in result.files] == ["a.png", "c.png"]
    assert [(f.filename, f.reason) for f in result.failures] == [("panorama.png", "encode_error")]
    assert len(result.paths) == 6


def test_source_over_decoder_limit_is_rejected(settings):
    tight = settings.model_copy(update={"max_source_bytes": 16})
    service = IngestService(tight, get_layout(tight))
    with pytest.raises(InvalidInputError) as excinfo:
        service.validate([UploadedImage("big.png", "image/png", image_bytes("PNG", (64, 64)))])
    assert excinfo.value.reason == "source_too_large"
