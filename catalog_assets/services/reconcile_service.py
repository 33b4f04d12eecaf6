"""Batch repair of drift between image files on disk and ``product_images`` rows.

The two stores share no transaction. Every run re-derives the desired rows
from the directory listing, so a run that dies half way is repaired by the
next one. Per entity the order is fixed: inspect, prune stale rows, select the
canonical file, copy it into place, upsert the canonical row.
"""

from __future__ import annotations

import asyncio
import enum
import secrets
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Sequence
from urllib.parse import urlsplit

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_assets.core.config import Settings
from catalog_assets.core.db import check_database
from catalog_assets.core.errors import (
    AssetPipelineError,
    BackendConnectionError,
    DecodeError,
    EncodeError,
    InvalidInputError,
    StorageError,
)
from catalog_assets.core.logging import get_logger, log_context
from catalog_assets.core.storage import StorageLayout, is_thumbnail_name
from catalog_assets.db.models import ProductImage
from catalog_assets.ingest.transcoder import transcode

from .image_records import EntityRef, ImageRecordRepository


class Action(str, enum.Enum):
    update = "update"
    noop = "noop"
    skip_no_file = "skip-no-file"
    failed = "failed"


@dataclass(slots=True)
class EntityOutcome:
    entity_id: int
    name: str
    action: Action
    old_urls: list[str] = field(default_factory=list)
    new_url: str | None = None
    pruned: list[str] = field(default_factory=list)
    selected: str | None = None
    copied_from: str | None = None
    error: str | None = None


@dataclass(slots=True)
class WriteCounters:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    copied: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.deleted + self.copied


@dataclass(slots=True)
class ReconcileReport:
    dry_run: bool
    outcomes: list[EntityOutcome] = field(default_factory=list)
    writes: WriteCounters = field(default_factory=WriteCounters)

    def counts(self) -> dict[str, int]:
        totals = {action.value: 0 for action in Action}
        for outcome in self.outcomes:
            totals[outcome.action.value] += 1
        return totals

    def classification(self) -> dict[int, str]:
        return {outcome.entity_id: outcome.action.value for outcome in self.outcomes}


@dataclass(slots=True)
class EntityPlan:
    """What inspect, prune and select found, and what the copy and upsert phases will do."""

    files: list[str]
    records: list[ProductImage]
    stale: list[ProductImage]
    candidates: list[str] = field(default_factory=list)
    selected: str | None = None
    canonical_url: str | None = None
    needs_copy: bool = False
    insert: bool = False
    target: ProductImage | None = None
    demote: list[ProductImage] = field(default_factory=list)

    @property
    def remaining(self) -> list[ProductImage]:
        stale_ids = {record.id for record in self.stale}
        return [record for record in self.records if record.id not in stale_ids]

    @property
    def changes_rows(self) -> bool:
        return bool(self.stale or self.insert or self.target is not None or self.demote)


def url_basename(url: str | None) -> str:
    if not url:
        return ""
    path = urlsplit(url.strip().replace("\\", "/")).path
    return PurePosixPath(path).name


def canonical_candidates(files: Sequence[str], canonical_filename: str) -> list[str]:
    """Every file in the order it would be promoted into the canonical slot.

    Priority: the canonical file itself, other slot-0 files (``0.jpg``),
    full-size files, then thumbnails; lexicographic within each group.
    """
    ordered = sorted(files)
    canonical_stem = PurePosixPath(canonical_filename).stem

    def rank(name: str) -> int:
        if name == canonical_filename:
            return 0
        if PurePosixPath(name).stem == canonical_stem:
            return 1
        return 3 if is_thumbnail_name(name) else 2

    return sorted(ordered, key=rank)


def select_canonical(files: Sequence[str], canonical_filename: str) -> str | None:
    """Pick the file to promote into the canonical slot, or None for an empty directory."""
    candidates = canonical_candidates(files, canonical_filename)
    return candidates[0] if candidates else None


class ReconcileService:
    def __init__(
        self,
        settings: Settings,
        layout: StorageLayout,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.settings = settings
        self.layout = layout
        self.session_factory = session_factory
        self.kind = settings.entity_kind
        self.canonical_filename = settings.canonical_filename
        self.logger = get_logger(component="reconcile_service")

    async def preflight(self, *, dry_run: bool) -> None:
        """Raise BackendConnectionError before any entity is touched."""
        await check_database(self.session_factory)
        root = self.layout.uploads_root
        if not dry_run:
            self.layout.check_root()
        elif root.exists() and not root.is_dir():
            raise BackendConnectionError(f"uploads_root_not_a_directory: {root}")
        elif not root.exists():
            self.logger.warning("uploads_root_missing", uploads_root=str(root))

    async def load_entities(self, entity_ids: Sequence[int] | None = None) -> list[EntityRef]:
        try:
            async with self.session_factory() as session:
                return await ImageRecordRepository(session).list_entities(entity_ids)
        except SQLAlchemyError as exc:
            raise BackendConnectionError(f"cannot_list_entities: {exc}") from exc

    async def reconcile(
        self,
        entities: Sequence[EntityRef] | None = None,
        *,
        entity_ids: Sequence[int] | None = None,
        dry_run: bool = True,
        concurrency: int | None = None,
    ) -> ReconcileReport:
        await self.preflight(dry_run=dry_run)
        if entities is None:
            entities = await self.load_entities(entity_ids)

        report = ReconcileReport(dry_run=dry_run)
        workers = max(1, concurrency or self.settings.reconcile_concurrency)
        partitions = partition_entities(entities, workers)
        with log_context(run_id=secrets.token_hex(4), dry_run=dry_run):
            self.logger.info("reconcile_started", entities=len(entities), partitions=len(partitions))
            await asyncio.gather(*(self._run_partition(partition, report, dry_run) for partition in partitions))
            report.outcomes.sort(key=lambda outcome: outcome.entity_id)
            self.logger.info("reconcile_summary", writes=report.writes.total, **_log_counts(report))
        return report

    async def _run_partition(self, entities: Sequence[EntityRef], report: ReconcileReport, dry_run: bool) -> None:
        async with self.session_factory() as session:
            repo = ImageRecordRepository(session)
            for entity in entities:
                outcome = await self._reconcile_one(repo, entity, report.writes, dry_run)
                report.outcomes.append(outcome)

    async def _reconcile_one(
        self,
        repo: ImageRecordRepository,
        entity: EntityRef,
        writes: WriteCounters,
        dry_run: bool,
    ) -> EntityOutcome:
        logger = self.logger.bind(entity_id=entity.id)
        pending = WriteCounters()
        try:
            plan = await self.plan_entity(repo, entity)
            outcome = self._classify(entity, plan)
            if not dry_run:
                await self._apply(repo, entity, plan, pending)
                outcome.selected = plan.selected
                outcome.copied_from = plan.selected if plan.needs_copy else None
                await repo.session.commit()
        except (AssetPipelineError, SQLAlchemyError, OSError) as exc:
            await repo.session.rollback()
            logger.error("reconcile_entity_failed", error=str(exc), error_type=exc.__class__.__name__)
            return EntityOutcome(entity_id=entity.id, name=entity.name, action=Action.failed, error=str(exc))

        writes.inserted += pending.inserted
        writes.updated += pending.updated
        writes.deleted += pending.deleted
        writes.copied += pending.copied
        logger.debug("reconcile_entity_done", action=outcome.action.value, new_url=outcome.new_url)
        return outcome

    async def plan_entity(self, repo: ImageRecordRepository, entity: EntityRef) -> EntityPlan:
        """Inspect, prune and select, then decide the copy and upsert; never mutates anything."""
        files = await asyncio.to_thread(
            self.layout.list_files, self.kind, entity.id, self.settings.allowed_extensions
        )
        records = await repo.list_for_entity(entity.id)
        stale = []
        for record in records:
            exists = await asyncio.to_thread(self.layout.file_exists, self.kind, entity.id, url_basename(record.url))
            if not exists:
                stale.append(record)

        plan = EntityPlan(files=files, records=records, stale=stale)
        if not files:
            return plan

        plan.candidates = canonical_candidates(files, self.canonical_filename)
        plan.selected = plan.candidates[0]
        plan.canonical_url = self.layout.entity_public_path(self.kind, entity.id, self.canonical_filename)
        plan.needs_copy = plan.selected != self.canonical_filename

        remaining = plan.remaining
        if not remaining:
            plan.insert = True
            return plan

        target = next(
            (r for r in remaining if r.sort_order == 0 and r.url == plan.canonical_url),
            None,
        ) or next((r for r in remaining if r.sort_order == 0), remaining[0])
        if target.url != plan.canonical_url or target.sort_order != 0:
            plan.target = target
        plan.demote = [r for r in remaining if r.sort_order == 0 and r.id != target.id]
        return plan

    def _classify(self, entity: EntityRef, plan: EntityPlan) -> EntityOutcome:
        outcome = EntityOutcome(
            entity_id=entity.id,
            name=entity.name,
            action=Action.update,
            old_urls=[record.url for record in plan.records],
            pruned=[record.url for record in plan.stale],
            selected=plan.selected,
        )
        if not plan.files:
            outcome.action = Action.skip_no_file
            return outcome
        outcome.new_url = plan.canonical_url
        if plan.needs_copy:
            outcome.copied_from = plan.selected
        if not plan.changes_rows and not plan.needs_copy:
            outcome.action = Action.noop
        return outcome

    async def _apply(self, repo: ImageRecordRepository, entity: EntityRef, plan: EntityPlan, writes: WriteCounters) -> None:
        if plan.stale:
            writes.deleted += await repo.delete_ids([record.id for record in plan.stale])

        if not plan.files:
            return

        await asyncio.to_thread(self.layout.ensure_entity_dir, self.kind, entity.id)
        if plan.needs_copy and plan.candidates:
            plan.selected = await asyncio.to_thread(self._promote_first_usable, entity.id, plan.candidates)
            writes.copied += 1

        if plan.insert:
            await repo.insert(entity.id, plan.canonical_url or "", alt=entity.name, sort_order=0)
            writes.inserted += 1
            return

        if plan.demote:
            next_order = max(record.sort_order for record in plan.remaining) + 1
            for record in plan.demote:
                record.sort_order = next_order
                next_order += 1
                writes.updated += 1

        if plan.target is not None:
            plan.target.url = plan.canonical_url or plan.target.url
            plan.target.sort_order = 0
            writes.updated += 1
        await repo.session.flush()

    def _promote_first_usable(self, entity_id: int, candidates: Sequence[str]) -> str:
        """Promote the first candidate that transcodes; an unreadable file falls through to the next.

        Returns the promoted filename. Raises the last candidate's error when none is usable.
        """
        last_error: AssetPipelineError | None = None
        for name in candidates:
            try:
                self._promote(entity_id, name)
            except (DecodeError, EncodeError, InvalidInputError) as exc:
                self.logger.warning(
                    "reconcile_candidate_unusable",
                    entity_id=entity_id,
                    filename=name,
                    reason=exc.reason,
                    error=str(exc),
                )
                last_error = exc
                continue
            return name
        raise last_error or StorageError("no_promotable_candidate")

    def _promote(self, entity_id: int, source_name: str) -> None:
        """Copy ``source_name`` to the canonical filename, re-encoding if the format differs."""
        source_ext = PurePosixPath(source_name).suffix.lower()
        canonical_ext = PurePosixPath(self.canonical_filename).suffix.lower()
        if source_ext == canonical_ext:
            self.layout.copy_file(self.kind, entity_id, source_name, self.canonical_filename)
            return
        source_path = self.layout.entity_dir(self.kind, entity_id) / source_name
        transcoded = transcode(
            source_path.read_bytes(),
            max_source_bytes=self.settings.max_source_bytes,
            quality=self.settings.webp_quality,
        )
        self.layout.write_bytes(self.kind, entity_id, self.canonical_filename, transcoded.primary)


def partition_entities(entities: Sequence[EntityRef], workers: int) -> list[list[EntityRef]]:
    """Split by ``id % workers`` so one entity can never land in two partitions."""
    if workers <= 1:
        return [list(entities)] if entities else []
    buckets: list[list[EntityRef]] = [[] for _ in range(workers)]
    for entity in entities:
        buckets[entity.id % workers].append(entity)
    return [bucket for bucket in buckets if bucket]


def _log_counts(report: ReconcileReport) -> dict[str, int]:
    return {key.replace("-", "_"): value for key, value in report.counts().items()}


__all__ = [
    "Action",
    "EntityOutcome",
    "EntityPlan",
    "ReconcileReport",
    "ReconcileService",
    "WriteCounters",
    "partition_entities",
    "canonical_candidates",
    "select_canonical",
    "url_basename",
]
