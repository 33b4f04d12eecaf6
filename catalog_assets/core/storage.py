from __future__ import annotations

import os
import re
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable

from .config import Settings
from .errors import BackendConnectionError, StorageError

THUMBNAIL_PATTERN = re.compile(r"(?:[-_]\d+x\d*$)|thumb", re.IGNORECASE)


@dataclass(slots=True)
class EntityDir:
    kind: str
    entity_id: int
    path: Path


def is_thumbnail_name(filename: str) -> bool:
    """True for derivative names such as ``<base>-200x200.webp`` or ``12_thumb.webp``."""
    return bool(THUMBNAIL_PATTERN.search(PurePosixPath(filename).stem))


class StorageLayout:
    """Owns the ``<uploads_root>/<kind>/<entity_id>/<filename>`` directory convention.

    This is the only code path that creates, copies or writes image files.
    """

    def __init__(self, uploads_root: Path, public_mount: str = "/uploads"):
        self.uploads_root = Path(uploads_root)
        self.public_mount = "/" + public_mount.strip("/")

    def check_root(self) -> Path:
        try:
            self.uploads_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackendConnectionError(f"uploads_root_unavailable: {self.uploads_root}: {exc}") from exc
        if not self.uploads_root.is_dir() or not os.access(self.uploads_root, os.W_OK):
            raise BackendConnectionError(f"uploads_root_not_writable: {self.uploads_root}")
        return self.uploads_root

    def probe_root(self) -> Path:
        """Read-only variant of ``check_root`` for health checks; never creates anything."""
        if not self.uploads_root.is_dir():
            raise BackendConnectionError(f"uploads_root_missing: {self.uploads_root}")
        if not os.access(self.uploads_root, os.W_OK | os.X_OK):
            raise BackendConnectionError(f"uploads_root_not_writable: {self.uploads_root}")
        return self.uploads_root

    def entity_dir(self, kind: str, entity_id: int) -> Path:
        return self.uploads_root / kind / str(entity_id)

    def ensure_entity_dir(self, kind: str, entity_id: int) -> EntityDir:
        path = self.entity_dir(kind, entity_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot create {path}: {exc}") from exc
        return EntityDir(kind=kind, entity_id=entity_id, path=path)

    def list_files(self, kind: str, entity_id: int, allowed_extensions: Iterable[str]) -> list[str]:
        directory = self.entity_dir(kind, entity_id)
        if not directory.is_dir():
            return []
        allowed = {ext.lower() for ext in allowed_extensions}
        try:
            names = [entry.name for entry in directory.iterdir() if entry.is_file()]
        except OSError as exc:
            raise StorageError(f"cannot list {directory}: {exc}") from exc
        return sorted(name for name in names if Path(name).suffix.lower() in allowed)

    def file_exists(self, kind: str, entity_id: int, filename: str) -> bool:
        if not filename or filename in {".", ".."}:
            return False
        return (self.entity_dir(kind, entity_id) / filename).is_file()

    def resolve_public_path(self, absolute_file_path: Path | str) -> str:
        path = Path(absolute_file_path)
        try:
            relative = path.resolve().relative_to(self.uploads_root.resolve())
        except ValueError as exc:
            raise StorageError(f"{path} is outside {self.uploads_root}") from exc
        posix = str(relative).replace(os.sep, "/").replace("\\", "/")
        return f"{self.public_mount}/{posix}"

    def entity_public_path(self, kind: str, entity_id: int, filename: str) -> str:
        return f"{self.public_mount}/{kind}/{entity_id}/{filename}"

    def write_bytes(self, kind: str, entity_id: int, filename: str, payload: bytes) -> Path:
        target = self.ensure_entity_dir(kind, entity_id).path / filename
        _atomic_write(target, payload)
        return target

    def copy_file(self, kind: str, entity_id: int, source_name: str, target_name: str) -> Path:
        """Copy a sibling file onto ``target_name``; the source is never removed."""
        directory = self.entity_dir(kind, entity_id)
        source = directory / source_name
        target = directory / target_name
        tmp = target.with_name(f".{target.name}.{secrets.token_hex(4)}.tmp")
        try:
            shutil.copyfile(source, tmp)
            os.replace(tmp, target)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise StorageError(f"cannot copy {source} to {target}: {exc}") from exc
        return target

    @staticmethod
    def new_upload_basename() -> str:
        return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"

    @staticmethod
    def thumbnail_filename(base: str, label: str, ext: str) -> str:
        return f"{base}-{label}.{ext.lstrip('.')}"


def _atomic_write(target: Path, payload: bytes) -> None:
    tmp = target.with_name(f".{target.name}.{secrets.token_hex(4)}.tmp")
    try:
        tmp.write_bytes(payload)
        os.replace(tmp, target)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise StorageError(f"cannot write {target}: {exc}") from exc


def get_layout(settings: Settings) -> StorageLayout:
    return StorageLayout(settings.resolved_uploads_root, public_mount=settings.public_mount)


__all__ = [
    "EntityDir",
    "StorageLayout",
    "THUMBNAIL_PATTERN",
    "is_thumbnail_name",
    "get_layout",
]
