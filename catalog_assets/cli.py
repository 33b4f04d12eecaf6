from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core.config import Settings, get_settings
from .core.db import check_database, create_engine, create_session_factory
from .core.errors import BackendConnectionError, InvalidInputError
from .core.logging import configure_logging, level_from_name
from .core.storage import get_layout
from .domain import matching_rule, resolve
from .services.ingest_service import IngestService, UploadedImage
from .services.reconcile_service import Action, ReconcileReport, ReconcileService

console = Console()

EXIT_BACKEND_UNAVAILABLE = 2

_ACTION_STYLE = {
    Action.update: "yellow",
    Action.noop: "green",
    Action.skip_no_file: "magenta",
    Action.failed: "red",
}


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level), renderer=settings.log_format)

    if getattr(args, "check", False):
        _run_environment_check(settings)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Catalog image asset tooling")
    parser.add_argument("--check", action="store_true", help="Verify the database and uploads root are reachable")

    subparsers = parser.add_subparsers(dest="command")

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Repair image records against the files on disk (dry-run unless --apply)",
    )
    reconcile_parser.add_argument("--apply", action="store_true", help="Copy files and write the database")
    reconcile_parser.add_argument(
        "--entity-id",
        type=int,
        action="append",
        dest="entity_ids",
        help="Restrict the run to this entity id (repeatable).",
    )
    reconcile_parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Parallel partitions across entities (default from settings).",
    )
    reconcile_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    reconcile_parser.set_defaults(func=_cmd_reconcile)

    ingest_parser = subparsers.add_parser("ingest", help="Transcode local image files into an entity directory")
    ingest_parser.add_argument("--entity-id", type=int, required=True, help="Entity the images belong to")
    ingest_parser.add_argument("--kind", default=None, help="Entity kind directory (default from settings)")
    ingest_parser.add_argument("files", nargs="+", help="Image files to ingest")
    ingest_parser.set_defaults(func=_cmd_ingest)

    resolve_parser = subparsers.add_parser("resolve-url", help="Show how stored image URLs resolve")
    resolve_parser.add_argument("values", nargs="+", help="Stored url values")
    resolve_parser.add_argument("--base", default=None, help="API base URL (default from settings)")
    resolve_parser.set_defaults(func=_cmd_resolve)
    return parser


def _cmd_reconcile(args: argparse.Namespace, settings: Settings) -> None:
    """Run the reconciliation batch and print a per-entity outcome table.

    Args:
        args: The command-line arguments.
        settings: Active settings.
    """
    dry_run = not args.apply
    try:
        report = asyncio.run(_reconcile(settings, dry_run=dry_run, entity_ids=args.entity_ids, concurrency=args.concurrency))
    except BackendConnectionError as exc:
        console.print(f"[red]Cannot reach storage or database:[/] {exc}")
        sys.exit(EXIT_BACKEND_UNAVAILABLE)

    if args.json:
        console.print_json(data=_report_payload(report))
    else:
        _print_report(report)


async def _reconcile(
    settings: Settings,
    *,
    dry_run: bool,
    entity_ids: Optional[list[int]],
    concurrency: Optional[int],
) -> ReconcileReport:
    engine = create_engine(settings)
    try:
        service = ReconcileService(settings, get_layout(settings), create_session_factory(engine))
        return await service.reconcile(entity_ids=entity_ids, dry_run=dry_run, concurrency=concurrency)
    finally:
        await engine.dispose()


def _print_report(report: ReconcileReport) -> None:
    table = Table(title="Reconciliation")
    table.add_column("id", justify="right")
    table.add_column("name")
    table.add_column("action")
    table.add_column("old")
    table.add_column("new")
    for outcome in report.outcomes:
        style = _ACTION_STYLE.get(outcome.action, "")
        old = " | ".join(outcome.old_urls[:3])
        new = outcome.error if outcome.action is Action.failed else (outcome.new_url or "")
        table.add_row(str(outcome.entity_id), outcome.name, f"[{style}]{outcome.action.value}[/]", old, new or "")
    console.print(table)

    counts = report.counts()
    console.rule("[bold]Summary")
    console.print(f"update: {counts['update']}")
    console.print(f"noop: {counts['noop']}")
    console.print(f"skip-no-file: {counts['skip-no-file']}")
    console.print(f"failed: {counts['failed']}")
    if report.dry_run:
        console.print("[yellow]Dry run: no changes were applied. Re-run with --apply to write them.[/]")
    else:
        writes = report.writes
        console.print(
            f"[green]Changes applied[/]: inserted={writes.inserted} updated={writes.updated} "
            f"deleted={writes.deleted} copied={writes.copied}"
        )


def _report_payload(report: ReconcileReport) -> dict:
    outcomes = []
    for outcome in report.outcomes:
        item = asdict(outcome)
        item["action"] = outcome.action.value
        outcomes.append(item)
    return {
        "dry_run": report.dry_run,
        "counts": report.counts(),
        "writes": asdict(report.writes),
        "outcomes": outcomes,
    }


def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    """Ingest local files the way the upload endpoint does, without touching the database.

    Args:
        args: The command-line arguments.
        settings: Active settings.
    """
    uploads = []
    for raw in args.files:
        path = Path(raw).expanduser().resolve()
        if not path.is_file():
            console.print(f"[red]File not found: {path}[/]")
            sys.exit(1)
        content_type, _ = mimetypes.guess_type(path.name)
        uploads.append(UploadedImage(filename=path.name, content_type=content_type, data=path.read_bytes()))

    service = IngestService(settings, get_layout(settings))
    try:
        result = asyncio.run(service.ingest(args.kind or settings.entity_kind, args.entity_id, uploads))
    except InvalidInputError as exc:
        console.print(f"[red]Rejected:[/] {exc.reason} ({exc})")
        sys.exit(1)

    for item in result.paths:
        console.print(item)
    for failure in result.failures:
        console.print(f"[red]{failure.filename}[/]: {failure.reason} {failure.error}")


def _cmd_resolve(args: argparse.Namespace, settings: Settings) -> None:
    """Print the resolved URL and the rule that produced it for each value.

    Args:
        args: The command-line arguments.
        settings: Active settings.
    """
    base = args.base or settings.api_base_url
    table = Table(title=f"Resolved against {base}")
    table.add_column("stored")
    table.add_column("rule")
    table.add_column("resolved")
    for value in args.values:
        table.add_row(repr(value), matching_rule(value) or "", resolve(value, base))
    console.print(table)


def _run_environment_check(settings: Settings) -> None:
    """Check that the database and the uploads root can be reached."""
    results = {}
    layout = get_layout(settings)
    try:
        layout.probe_root()
        results["uploads_root"] = True
    except BackendConnectionError:
        results["uploads_root"] = False

    async def _db() -> bool:
        engine = create_engine(settings)
        try:
            await check_database(create_session_factory(engine))
            return True
        except BackendConnectionError:
            return False
        finally:
            await engine.dispose()

    results["database"] = asyncio.run(_db())

    console.rule("[bold]Environment Check")
    console.print(f"[dim]uploads root: {layout.uploads_root}[/]")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Storage backends unavailable. Check CATALOG_ASSETS_DATABASE_URL and CATALOG_ASSETS_UPLOADS_ROOT.[/]")
        sys.exit(EXIT_BACKEND_UNAVAILABLE)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
