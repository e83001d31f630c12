"""
AdSource server command.
"""

from __future__ import annotations

import typer

from adrotator.infra.exceptions import MalformedPayloadError
from adrotator.infra.settings import settings


def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default ADROTATOR_HOST)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default ADROTATOR_PORT)"),
    catalog: str = typer.Option(None, "--catalog", help="JSON ad catalog (default built-in ads)"),
    no_event_log: bool = typer.Option(False, "--no-event-log", help="Do not append events to the log file"),
):
    """Serve the AdSource API (GET /api/v1/ad, POST /api/v1/ad/event)."""
    from adrotator.web.server import run

    overrides: dict[str, object] = {}
    if catalog:
        overrides["catalog_path"] = catalog
    if no_event_log:
        overrides["disable_event_log"] = True
    effective = settings.model_copy(update=overrides) if overrides else settings

    try:
        run(host, port, settings=effective)
    except (OSError, MalformedPayloadError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
