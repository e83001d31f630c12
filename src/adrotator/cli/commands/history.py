"""
Recent-history command group.

Reads and clears the persisted list of recently shown ad ids that the
rotator uses to penalise repeats.
"""

from __future__ import annotations

import json

import typer

from adrotator.infra.exceptions import HistoryStoreError
from adrotator.infra.settings import settings
from adrotator.runtime.history import JsonFileHistoryStore

app = typer.Typer(name="history", help="Recently-shown history operations")


def _store(directory: str | None) -> JsonFileHistoryStore:
    return JsonFileHistoryStore(directory or settings.history_dir)


@app.command("show")
def show(
    directory: str = typer.Option(None, "--dir", help="History directory (default ADROTATOR_HISTORY_DIR)"),
    key: str = typer.Option(None, "--key", help="Storage key (default ADROTATOR_STORAGE_KEY)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List recently shown ad ids, most recent first."""
    key = key or settings.storage_key
    try:
        ids = _store(directory).load(key)
    except HistoryStoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps({"key": key, "recent": ids}, indent=2))
        return
    if not ids:
        typer.echo("No recently shown ads")
        return
    for position, ad_id in enumerate(ids, start=1):
        typer.echo(f"{position:>3}. {ad_id}")


@app.command("clear")
def clear(
    directory: str = typer.Option(None, "--dir", help="History directory (default ADROTATOR_HISTORY_DIR)"),
    key: str = typer.Option(None, "--key", help="Storage key (default ADROTATOR_STORAGE_KEY)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm deletion"),
):
    """Forget every recently shown ad id."""
    key = key or settings.storage_key
    store = _store(directory)
    if not yes:
        typer.echo(f"Clearing {store.path_for(key)} requires --yes confirmation", err=True)
        raise typer.Exit(1)
    try:
        store.clear(key)
    except HistoryStoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Cleared history {key}")
