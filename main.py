"""Serials CLI entry point."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from sqlmodel import Session

from serials.api import build_orchestrator, run_server
from serials.config import DEFAULT_CONFIG_PATH, SerialsConfig, load_config, write_config
from serials.database import get_engine, init_db, reset_database
from serials.domain import ImportKind, ImportSettings, RemovalPolicy, Scan
from serials.errors import ScanError
from serials.logging_config import setup_logging
from serials.migrations import get_status, stamp_if_needed, upgrade_to_head
from serials.repository import Repository


__version__ = "0.1.0"

app = typer.Typer(add_completion=False, help="Serials source reconciliation CLI")


def _ensure_config() -> SerialsConfig:
    try:
        return load_config()
    except FileNotFoundError:
        typer.echo("[ERROR] config.ini not found. Run: serials init")
        raise typer.Exit(code=1)


def _format_scan(scan: Scan) -> str:
    return (
        f"{scan.date:%Y-%m-%d %H:%M} total={scan.total} "
        f"new={len(scan.new)} updated={len(scan.updated)} removed={len(scan.removed)}"
    )


@app.command()
def init(
    removal_policy: RemovalPolicy = typer.Option(
        RemovalPolicy.RETAIN, "--removal-policy", help="What to do with chapters gone from the remote listing"
    ),
    port: int = typer.Option(8080, "--port", help="API server port"),
) -> None:
    """Initialize config.ini with default settings."""
    config = SerialsConfig()
    config.scanner.removal_policy = removal_policy
    config.server.port = port
    path = write_config(config, DEFAULT_CONFIG_PATH)
    init_db()
    typer.echo(f"[OK] Config created at {path}")


@app.command("add-source")
def add_source(
    name: str = typer.Option(..., "--name", help="Display name"),
    url: str = typer.Option(..., "--url", help="Table of contents URL"),
    author: str = typer.Option("", "--author"),
    selector: Optional[str] = typer.Option(None, "--selector", help="CSS selector for chapter links or menu"),
    menu: bool = typer.Option(False, "--menu", help="Chapters are <option>s of a <select> menu"),
    url_unstable: bool = typer.Option(False, "--url-unstable", help="Match chapters by title instead of URL"),
    preserve_order: Optional[bool] = typer.Option(None, "--preserve-order/--append", help="Override [scanner] preserve_order"),
) -> None:
    """Register a source to scan."""
    _ensure_config()
    init_db()
    settings = ImportSettings(
        tag=ImportKind.MENU if menu else ImportKind.TOC,
        selector=selector,
        url_unstable=url_unstable,
        preserve_order=preserve_order,
    )
    with Session(get_engine()) as session:
        repo = Repository(session)
        source = repo.create_source(name=name, url=url, author=author, settings=settings)
        repo.commit()
        typer.echo(f"[OK] Source {source.id} added: {name}")


@app.command()
def sources() -> None:
    """List sources with chapter counts and last scan."""
    _ensure_config()
    init_db()
    with Session(get_engine()) as session:
        repo = Repository(session)
        for source in repo.list_sources():
            last = repo.get_last_scan(source.id)
            count = repo.count_chapters(source.id, include_removed=False)
            flag = " (disabled)" if source.disabled else ""
            summary = _format_scan(last) if last else "never scanned"
            typer.echo(f"{source.id}  {source.name}{flag}  {count} chapters  [{summary}]")


@app.command()
def scan(
    source_id: Optional[str] = typer.Argument(None, help="Source to scan"),
    all_sources: bool = typer.Option(False, "--all", help="Scan every enabled source"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output on the console"),
) -> None:
    """Fetch sources and reconcile their chapter lists."""
    if not source_id and not all_sources:
        typer.echo("[ERROR] Give a SOURCE_ID or --all")
        raise typer.Exit(code=2)

    setup_logging("DEBUG" if verbose else "INFO")
    config = _ensure_config()
    init_db()

    async def _run():
        orchestrator = build_orchestrator(config)
        try:
            if all_sources:
                return await orchestrator.run_all()
            try:
                return {source_id: await orchestrator.run_scan(source_id)}
            except ScanError as exc:
                return {source_id: exc}
        finally:
            await orchestrator.fetcher.close()

    outcomes = asyncio.run(_run())
    failed = 0
    for sid, outcome in outcomes.items():
        if isinstance(outcome, ScanError):
            failed += 1
            typer.echo(f"✗ {sid}: {outcome}")
        else:
            typer.echo(f"✓ {sid}: {_format_scan(outcome)}")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def chapters(
    source_id: str = typer.Argument(..., help="Source id"),
    include_removed: bool = typer.Option(False, "--removed", help="Also show chapters marked removed"),
) -> None:
    """Show the stored chapter list of a source."""
    _ensure_config()
    init_db()
    with Session(get_engine()) as session:
        repo = Repository(session)
        if repo.get_source(source_id) is None:
            typer.echo(f"[ERROR] Source '{source_id}' not found")
            raise typer.Exit(code=1)
        for chapter in repo.get_chapters(source_id):
            if chapter.removed and not include_removed:
                continue
            mark = " [removed]" if chapter.removed else ""
            typer.echo(f"{chapter.position:>5}  {chapter.title}{mark}  {chapter.url or ''}")


@app.command()
def history(
    source_id: str = typer.Argument(..., help="Source id"),
    limit: int = typer.Option(10, "--limit", help="Number of scans to show"),
) -> None:
    """Show recent scans and their changes."""
    _ensure_config()
    init_db()
    with Session(get_engine()) as session:
        repo = Repository(session)
        for record in repo.list_scans(source_id, limit):
            typer.echo(_format_scan(record))
            for change in record.changes:
                if change.kind.value == "updated":
                    detail = f"{change.old_title or ''} → {change.new_title or ''}".strip(" →")
                else:
                    detail = change.new_title or change.old_title or ""
                typer.echo(f"    {change.kind.value:<8} {change.chapter_id}  {detail}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Server host"),
    port: Optional[int] = typer.Option(None, "--port", help="Server port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output on the console"),
) -> None:
    """Start the API server."""
    setup_logging("DEBUG" if verbose else "INFO")
    config = _ensure_config()
    init_db()

    upgrade_to_head(backup=True)

    try:
        run_server(config, host=host, port=port)
    except KeyboardInterrupt:
        pass


@app.command()
def migrate(
    check: bool = typer.Option(False, "--check", help="Only report; exit 1 when behind head"),
) -> None:
    """Upgrade the database schema to the latest revision."""
    _ensure_config()
    init_db()
    stamp_if_needed()
    current, head = get_status()

    if check:
        state = "up to date" if current == head else "behind"
        typer.echo(f"[INFO] Schema {state}: current={current} head={head}")
        raise typer.Exit(code=0 if current == head else 1)

    if upgrade_to_head(backup=True):
        typer.echo(f"[OK] Migrated {current} -> {head} (backup: serials.db.bak)")
    else:
        typer.echo(f"[OK] Schema already at {head}")


@app.command()
def reset(
    confirm: bool = typer.Option(False, "--confirm", help="Confirm destructive reset"),
) -> None:
    """Delete the database, including all sources and scan history."""
    if not confirm:
        typer.echo("[ERROR] This will delete all sources, chapters and scans. Use --confirm.")
        raise typer.Exit(code=1)

    _ensure_config()
    reset_database()
    typer.echo("[INFO] Database reset.")


if __name__ == "__main__":
    app()
