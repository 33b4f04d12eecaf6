from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEPLOYMENT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """Centralised runtime configuration for the catalog asset pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_ASSETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Catalog Assets API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")
    log_format: str = Field(default="json", description="Structured log renderer: json or console.")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./catalog.db",
        description="SQLAlchemy compatible async DSN.",
    )

    deployment_root: Path = Field(
        default=DEPLOYMENT_ROOT,
        description="Anchor for relative filesystem settings; independent of the working directory.",
    )
    uploads_root: Path = Field(default=Path("uploads"), description="Root of the entity image directory tree.")
    public_mount: str = Field(default="/uploads", description="URL prefix the uploads root is served under.")
    api_base_url: str = Field(default="http://localhost:3001", description="Origin prepended to stored paths.")

    entity_kind: str = Field(default="products", description="Directory name for catalog product images.")
    canonical_filename: str = Field(default="0.webp", description="Filename of the primary image per entity.")
    allowed_extensions: tuple[str, ...] = Field(default=(".webp", ".jpg", ".jpeg", ".png", ".gif"))
    thumbnail_profiles: tuple[str, ...] = Field(
        default=("200x200:cover", "800x800:inside"),
        description="Resize profiles produced for every upload, as '<w>x<h>:<fit>'.",
    )

    max_upload_size_bytes: int = Field(default=10 * 1024 * 1024, description="Hard limit for a single upload.")
    max_source_bytes: int = Field(default=25 * 1024 * 1024, description="Largest byte stream the transcoder decodes.")
    webp_quality: int = Field(default=82, ge=1, le=100)

    reconcile_concurrency: int = Field(default=1, ge=1, description="Parallel reconciliation partitions.")

    @field_validator("allowed_extensions")
    @classmethod
    def _normalise_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalised = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalised.append(ext if ext.startswith(".") else f".{ext}")
        return tuple(normalised)

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def resolved_uploads_root(self) -> Path:
        root = self.uploads_root.expanduser()
        if not root.is_absolute():
            root = self.deployment_root / root
        return root.resolve()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "CATALOG_ASSETS_ENV": "CATALOG_ASSETS_ENVIRONMENT",
        "CATALOG_ASSETS_DB_URL": "CATALOG_ASSETS_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    return Settings()


__all__ = ["Settings", "get_settings", "DEPLOYMENT_ROOT"]
