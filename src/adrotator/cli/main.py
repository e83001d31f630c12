"""
Main CLI application using Typer.

Wires the rotator, AdSource server and history command groups together
and configures logging before any command runs.
"""

from __future__ import annotations

import typer

from adrotator.infra.logging import configure_logging

from .commands import history, rotate, serve

app = typer.Typer(help="adrotator operator CLI")

app.command("rotate")(rotate.rotate)
app.command("serve")(serve.serve)
app.add_typer(history.app, name="history", help="Inspect or clear the recently-shown history")


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
    console: bool = typer.Option(False, "--console-logs", help="Human-readable logs instead of JSON"),
):
    """adrotator - weighted ad rotation for display slots."""
    configure_logging(log_level, json_output=not console)
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


def cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
