from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from catalog_assets.core.config import get_settings
from catalog_assets.main import create_app
from tests.conftest import fetch_images, image_bytes, seed


def test_v1_health_ok(client):
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_v1_ready_checks_backends(client):
    resp = client.get("/v1/ready")
    assert resp.status_code == 200, resp.text


def test_upload_creates_files_and_records(client, settings):
    seed(settings, {42: "Trail Shoe"}, [(42, "/uploads/products/42/0.webp", 0)])

    resp = client.post(
        "/v1/uploads/products/42",
        files=[
            ("files", ("front.jpg", image_bytes("JPEG", (1200, 800)), "image/jpeg")),
            ("files", ("back.png", image_bytes("PNG", (300, 500)), "image/png")),
        ],
    )

    assert resp.status_code == 201, resp.text
    payload = resp.json()
    assert payload["entity_id"] == 42
    assert len(payload["files"]) == 2
    assert len(payload["paths"]) == 6
    assert len(payload["record_ids"]) == 2
    assert all(path.startswith("/uploads/products/42/") for path in payload["paths"])

    rows = fetch_images(settings, 42)
    assert [order for _, order in rows] == [0, 1, 2]
    assert [url for url, _ in rows[1:]] == [item["primary"] for item in payload["files"]]

    served = client.get(payload["files"][0]["primary"])
    assert served.status_code == 200
    assert served.content[:4] == b"RIFF"


def test_upload_reports_partial_failures(client, settings):
    seed(settings, {5: "Cap"})

    resp = client.post(
        "/v1/uploads/products/5",
        files=[
            ("files", ("ok.png", image_bytes("PNG"), "image/png")),
            ("files", ("bad.png", b"garbage", "image/png")),
        ],
    )

    assert resp.status_code == 201, resp.text
    payload = resp.json()
    assert [f["filename"] for f in payload["files"]] == ["ok.png"]
    assert payload["failures"][0]["reason"] == "decode_error"


def test_upload_with_only_undecodable_files_is_unprocessable(client, settings):
    seed(settings, {6: "Bag"})
    resp = client.post("/v1/uploads/products/6", files=[("files", ("bad.png", b"garbage", "image/png"))])
    assert resp.status_code == 422
    assert resp.json()["detail"] == "processing_error"
    assert fetch_images(settings, 6) == []


def test_upload_rejects_non_images(client, settings):
    seed(settings, {7: "Tee"})
    resp = client.post("/v1/uploads/products/7", files=[("files", ("notes.txt", b"hello", "text/plain"))])
    assert resp.status_code == 415
    assert resp.json()["detail"] == "not_an_image"
    assert not (settings.resolved_uploads_root / "products" / "7").exists()


def test_upload_without_files_is_a_bad_request(client, settings):
    seed(settings, {8: "Sock"})
    resp = client.post("/v1/uploads/products/8")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "missing_file"


def test_upload_for_unknown_product_is_not_found(client):
    resp = client.post("/v1/uploads/products/999", files=[("files", ("a.png", image_bytes("PNG"), "image/png"))])
    assert resp.status_code == 404


def test_upload_for_other_entity_kind_skips_records(client):
    resp = client.post("/v1/uploads/banners/3", files=[("files", ("a.png", image_bytes("PNG"), "image/png"))])
    assert resp.status_code == 201, resp.text
    payload = resp.json()
    assert payload["record_ids"] == []
    assert payload["paths"][0].startswith("/uploads/banners/3/")


def test_upload_over_size_limit(monkeypatch, settings):
    seed(settings, {9: "Coat"})
    monkeypatch.setenv("CATALOG_ASSETS_MAX_UPLOAD_SIZE_BYTES", "64")
    get_settings.cache_clear()
    with TestClient(create_app()) as limited:
        resp = limited.post(
            "/v1/uploads/products/9",
            files=[("files", ("big.png", image_bytes("PNG", (256, 256)), "image/png"))],
        )
    assert resp.status_code == 413
    assert resp.json()["detail"] == "upload_too_large"


@pytest.mark.parametrize("path", ["/v1/uploads/Products/1", "/v1/uploads/products/0"])
def test_upload_path_is_validated(client, path):
    resp = client.post(path, files=[("files", ("a.png", image_bytes("PNG"), "image/png"))])
    assert resp.status_code == 422


def test_images_are_resolved_for_viewers(client, settings):
    seed(
        settings,
        {10: "Lamp"},
        [
            (10, "/uploads/products/10/0.webp", 0),
            (10, "../../image/catalog/lamp/side.jpg", 1),
            (10, "https://cdn.example.com/lamp.jpg", 2),
        ],
    )

    resp = client.get("/v1/products/10/images")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["primary_image"] == "http://h:3001/uploads/products/10/0.webp"
    assert [image["resolved_url"] for image in payload["images"]] == [
        "http://h:3001/uploads/products/10/0.webp",
        "http://h:3001/image/catalog/lamp/side.jpg",
        "https://cdn.example.com/lamp.jpg",
    ]


def test_images_for_product_without_rows_use_placeholder(client, settings):
    seed(settings, {11: "Rug"})
    resp = client.get("/v1/products/11/images")
    assert resp.status_code == 200
    assert resp.json()["primary_image"] == "/placeholder-product.svg"
    assert resp.json()["images"] == []


def test_images_for_unknown_product(client):
    assert client.get("/v1/products/404/images").status_code == 404


def test_ready_reports_missing_root_without_recreating_it(client, settings):
    root = settings.resolved_uploads_root
    assert root.is_dir()
    root.rmdir()

    resp = client.get("/v1/ready")

    assert resp.status_code == 503
    assert resp.json()["detail"] == "backend_unavailable"
    assert not root.exists()


def test_upload_over_decoder_limit(monkeypatch, settings):
    seed(settings, {12: "Vase"})
    monkeypatch.setenv("CATALOG_ASSETS_MAX_SOURCE_BYTES", "64")
    get_settings.cache_clear()
    with TestClient(create_app()) as limited:
        resp = limited.post(
            "/v1/uploads/products/12",
            files=[("files", ("big.png", image_bytes("PNG", (256, 256)), "image/png"))],
        )
    assert resp.status_code == 413
    assert resp.json()["detail"] == "source_too_large"
