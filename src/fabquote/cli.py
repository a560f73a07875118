from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer
import uvicorn

from fabquote import __version__
from fabquote.config import get_settings

app = typer.Typer(add_completion=False, help="FabQuote back office CLI")

_KIND_CHOICES = {"parts": "part", "quote-parts": "quote_part"}


@app.callback()
def _root(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    level = (log_level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _orchestrator(kind: str):
    from fabquote import database
    from fabquote.backoffice.events.event_bus import event_bus
    from fabquote.backoffice.events.listeners import register_event_log_listener
    from fabquote.backoffice.models.conversion import EntityKind
    from fabquote.backoffice.services.conversion_orchestrator import ConversionOrchestrator
    from fabquote.backoffice.services.file_service import ObjectStore
    from fabquote.integrations.conversion_service import ConversionServiceClient

    if kind not in _KIND_CHOICES:
        typer.echo(f"Unknown kind: {kind} (expected parts|quote-parts)", err=True)
        raise typer.Exit(1)
    register_event_log_listener(event_bus, database.SessionLocal)
    return ConversionOrchestrator(
        EntityKind(_KIND_CHOICES[kind]),
        session_factory=database.SessionLocal,
        client=ConversionServiceClient(),
        object_store=ObjectStore(),
    )


@app.command()
def start(
    host: Optional[str] = typer.Option(None, help="Bind host"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
    reload: bool = typer.Option(False, help="Auto-reload on changes (dev)"),
) -> None:
    settings = get_settings()
    uvicorn.run(
        "fabquote.api.app:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
    )


@app.command()
def version() -> None:
    typer.echo(__version__)


@app.command("init-db")
def init_db_command() -> None:
    """Create all tables (SCHEMA_MODE=create_all only)."""
    from fabquote.database import init_db

    init_db(create_tables=True)
    typer.echo("Database initialized.")


@app.command("conversion-stats")
def conversion_stats(
    kind: str = typer.Option("parts", help="parts|quote-parts"),
) -> None:
    """Print conversion counts per status."""
    typer.echo(json.dumps(_orchestrator(kind).stats(), indent=2))


@app.command("convert-pending")
def convert_pending(
    kind: str = typer.Option("parts", help="parts|quote-parts"),
    limit: int = typer.Option(10, help="Max entities to convert"),
    batch_size: Optional[int] = typer.Option(None, help="Concurrent conversions per group"),
) -> None:
    """Convert entities that have a CAD file but no mesh yet."""
    orchestrator = _orchestrator(kind)
    pending = [s.entity_id for s in orchestrator.pending_entities(limit)]
    if not pending:
        typer.echo("Nothing to convert.")
        return
    results = asyncio.run(orchestrator.convert_batch(pending, batch_size))
    for result in results.values():
        typer.echo(json.dumps(result.to_dict()))
    if not all(r.success for r in results.values()):
        raise typer.Exit(2)


@app.command("retry-conversion")
def retry_conversion(
    entity_id: str = typer.Argument(..., help="Part or quote part id"),
    kind: str = typer.Option("parts", help="parts|quote-parts"),
) -> None:
    """Retry a failed conversion against the entity's current CAD file."""
    from fabquote.exceptions.handlers import FabQuoteException

    try:
        result = asyncio.run(_orchestrator(kind).retry(entity_id))
    except FabQuoteException as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(result.to_dict()))
    if not result.success:
        raise typer.Exit(2)


@app.command("set-conversion")
def set_conversion(
    enabled: Optional[bool] = typer.Option(None, "--enabled/--disabled", help="Runtime toggle"),
    output_format: Optional[str] = typer.Option(None, help="glb|gltf|obj|stl"),
    updated_by: Optional[str] = typer.Option(None, help="Operator name for the audit trail"),
) -> None:
    """Change conversion settings without restarting workers."""
    from fabquote import database
    from fabquote.backoffice.services.format_guard import OUTPUT_FORMATS
    from fabquote.backoffice.services.runtime_config import (
        CONVERSION_ENABLED_KEY,
        OUTPUT_FORMAT_KEY,
        RuntimeConfigService,
    )

    service = RuntimeConfigService(database.SessionLocal)
    if enabled is not None:
        service.set(CONVERSION_ENABLED_KEY, "true" if enabled else "false", updated_by=updated_by)
    if output_format is not None:
        if output_format.lower() not in OUTPUT_FORMATS:
            typer.echo(f"Unsupported output format: {output_format}", err=True)
            raise typer.Exit(1)
        service.set(OUTPUT_FORMAT_KEY, output_format.lower(), updated_by=updated_by)
    typer.echo(
        json.dumps(
            {"enabled": service.conversion_enabled(), "output_format": service.output_format()}
        )
    )


@app.command("convert-quote")
def convert_quote(
    quote_id: int = typer.Argument(..., help="Quote id"),
    user: Optional[str] = typer.Option(None, help="Acting user id for the audit trail"),
) -> None:
    """Convert a quote into an order."""
    from fabquote import database
    from fabquote.backoffice.events.event_bus import event_bus
    from fabquote.backoffice.events.listeners import register_event_log_listener
    from fabquote.backoffice.services.file_service import ObjectStore
    from fabquote.backoffice.services.quote_conversion_service import QuoteConversionService
    from fabquote.exceptions.handlers import FabQuoteException

    register_event_log_listener(event_bus, database.SessionLocal)
    service = QuoteConversionService(database.SessionLocal, object_store=ObjectStore())
    try:
        result = asyncio.run(service.convert(quote_id, user_id=user))
    except FabQuoteException as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(result.to_dict(), indent=2))


@app.command("db")
def db_command(
    action: str = typer.Argument(..., help="upgrade|downgrade|revision|current|history"),
    message: Optional[str] = typer.Option(
        None, "--message", "-m", help="Migration message (for revision)"
    ),
    autogenerate: bool = typer.Option(
        True, "--autogenerate/--no-autogenerate", help="Autogenerate migration"
    ),
    revision: Optional[str] = typer.Option(
        None, "--revision", "-r", help="Target revision (for upgrade/downgrade)"
    ),
) -> None:
    """
    Database migrations via Alembic.

    Actions:
      upgrade   - Apply migrations (default: head)
      downgrade - Revert migrations
      revision  - Create new migration
      current   - Show current revision
      history   - Show migration history
    """
    import os
    import subprocess
    import sys

    alembic_ini = os.path.join(os.getcwd(), "alembic.ini")
    if not os.path.exists(alembic_ini):
        typer.echo("Error: alembic.ini not found in the current directory", err=True)
        raise typer.Exit(1)

    cmd = [sys.executable, "-m", "alembic", "-c", alembic_ini]
    if action == "upgrade":
        cmd.extend(["upgrade", revision or "head"])
    elif action == "downgrade":
        cmd.extend(["downgrade", revision or "-1"])
    elif action == "revision":
        cmd.append("revision")
        if autogenerate:
            cmd.append("--autogenerate")
        cmd.extend(["-m", message or "auto migration"])
    elif action in {"current", "history"}:
        cmd.append(action)
    else:
        typer.echo(f"Unknown action: {action}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Running: {' '.join(cmd)}", err=True)
    result = subprocess.run(cmd, cwd=os.getcwd())
    raise typer.Exit(result.returncode)


def main() -> None:
    app()
