"""
Rotate command.

Runs the rotation runtime against console slots for a fixed duration. Each
slot logs what it would display; the final controller state (recent
history, CTR counters, slot phases) is printed on exit.
"""

from __future__ import annotations

import json
import random
import time

import typer

from adrotator.adapters.sinks import ConsoleSlotSink
from adrotator.infra.exceptions import ConfigError
from adrotator.infra.settings import settings
from adrotator.runtime.config import RotatorConfig
from adrotator.runtime.history import InMemoryHistoryStore, JsonFileHistoryStore
from adrotator.runtime.scheduler import rotate_ads


def _format_human_output(state: dict) -> str:
    if not state:
        return "No slots matched; rotation disabled"
    lines = []
    for slot_id, slot in state["slots"].items():
        lines.append(f"{slot_id}: {slot['phase']} showing {slot['current_ad_id'] or '-'}")
    for ad_id, stats in state["ctr"].items():
        lines.append(f"  {ad_id}: {stats['impressions']} impressions, {stats['clicks']} clicks")
    lines.append(f"Recent: {', '.join(state['recent']) or '-'}")
    return "\n".join(lines)


def rotate(
    api: str = typer.Option(None, "--api", help="AdSource endpoint (default ADROTATOR_API)"),
    slots: int = typer.Option(2, "--slots", "-n", min=1, help="Number of console slots"),
    duration: float = typer.Option(60.0, "--duration", "-d", min=0.0, help="Seconds to run before stopping"),
    interval: int = typer.Option(None, "--interval", help="Default rotation interval in ms"),
    selector: str = typer.Option(None, "--selector", help="Slot selector pattern (default ADROTATOR_SLOT_SELECTOR)"),
    seed: int = typer.Option(None, "--seed", help="Seed the weighted selection"),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Persist recent history to ADROTATOR_HISTORY_DIR"),
    json_output: bool = typer.Option(False, "--json", help="Output final state in JSON format"),
):
    """Rotate ads through console slots named ad-banner-1..N."""
    overrides: dict[str, object] = {}
    if api:
        overrides["api"] = api
    if interval is not None:
        overrides["default_interval"] = interval
    if selector:
        overrides["slot_selector"] = selector

    try:
        config = RotatorConfig.from_settings(settings, **overrides)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    sinks = [ConsoleSlotSink(f"ad-banner-{i}") for i in range(1, slots + 1)]
    store = JsonFileHistoryStore(settings.history_dir) if persist else InMemoryHistoryStore()
    random_fn = random.Random(seed).random if seed is not None else None

    rotator = rotate_ads(sinks, config, store=store, random_fn=random_fn)
    try:
        time.sleep(duration)
    except KeyboardInterrupt:
        typer.echo("\nStopping...", err=True)
    finally:
        rotator.stop()
        state = rotator.get_state()
        rotator.close()

    if json_output:
        typer.echo(json.dumps(state, indent=2))
    else:
        typer.echo(_format_human_output(state))
