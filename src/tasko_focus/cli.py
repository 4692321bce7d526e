#!/usr/bin/env python3
"""Command-line client for the focus API.

Usage:
    tasko-focus serve
    tasko-focus status
    tasko-focus duration 50
    tasko-focus start
    tasko-focus adjust -5
    tasko-focus rewards
    tasko-focus unlock nebula
"""

from __future__ import annotations

from typing import Any

import click
import requests
from rich.console import Console
from rich.table import Table

from .config import load_config
from .timer import format_timer_time

console = Console()

REQUEST_TIMEOUT = 5


def _request(ctx: click.Context, method: str, path: str, **kwargs) -> Any:
    """Call the API and return decoded JSON, turning failures into ClickException."""
    url = f"{ctx.obj['api_url']}{path}"
    try:
        response = requests.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        response.raise_for_status()
    except requests.ConnectionError as exc:
        raise click.ClickException(f"Cannot reach focus API at {ctx.obj['api_url']} (is 'tasko-focus serve' running?)") from exc
    except requests.RequestException as exc:
        raise click.ClickException(f"{method} {path} failed: {exc}") from exc
    return response.json()


def render_timer(timer: dict) -> None:
    phase = timer["phase"]
    color = {"running": "green", "paused": "yellow", "expired": "magenta"}.get(phase, "cyan")
    console.print(
        f"[bold {color}]{format_timer_time(timer['remainingSeconds'])}[/] "
        f"[dim]of {format_timer_time(timer['durationSeconds'])}[/]  ({phase})"
    )


def build_rewards_table(ledger: dict) -> Table:
    table = Table(
        title=f"Cosmic rewards: {ledger['totalFocusMinutes']} focus minutes "
        f"({ledger['unlockedCount']}/{ledger['rewardCount']})"
    )
    table.add_column("", width=2)
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Needs", justify="right")
    for reward in ledger["rewards"]:
        marker = "[magenta]*[/]" if reward["unlocked"] else "[dim]-[/]"
        table.add_row(marker, reward["id"], reward["name"], f"{reward['requiredMinutes']}m")
    return table


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--url", "api_url", default=None, help="Focus API base URL (defaults to TASKO_FOCUS_URL).")
@click.pass_context
def cli(ctx: click.Context, api_url: str | None) -> None:
    """Focus timer and cosmic rewards."""
    config = load_config()
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["api_url"] = (api_url or config.api_url).rstrip("/")


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the focus API server."""
    import uvicorn

    from .main import create_app

    config = ctx.obj["config"]
    uvicorn.run(create_app(config), host=config.host, port=config.port)


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the SQLite tables."""
    from .init_db import init_database

    path = ctx.obj["config"].db_path
    init_database(path)
    click.echo(f"Database initialized at {path}")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the timer and reward progress."""
    render_timer(_request(ctx, "GET", "/api/timer"))
    ledger = _request(ctx, "GET", "/api/rewards")
    line = f"{ledger['totalFocusMinutes']} focus minutes, {ledger['unlockedCount']}/{ledger['rewardCount']} rewards"
    if ledger["nextRewardId"]:
        line += f", {ledger['minutesToNext']}m to {ledger['nextRewardId']}"
    console.print(line)


@cli.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start or resume the countdown."""
    render_timer(_request(ctx, "POST", "/api/timer/start"))


@cli.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Pause the countdown."""
    render_timer(_request(ctx, "POST", "/api/timer/pause"))


@cli.command()
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Reset the countdown to its full duration."""
    render_timer(_request(ctx, "POST", "/api/timer/reset"))


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("minutes", type=int)
@click.pass_context
def adjust(ctx: click.Context, minutes: int) -> None:
    """Add (or with a negative value remove) MINUTES of remaining time."""
    render_timer(_request(ctx, "POST", "/api/timer/adjust", json={"minutes": minutes}))


@cli.command()
@click.argument("minutes", type=click.IntRange(min=1))
@click.pass_context
def duration(ctx: click.Context, minutes: int) -> None:
    """Set the cycle length to MINUTES and refill the countdown."""
    render_timer(_request(ctx, "POST", "/api/timer/duration", json={"seconds": minutes * 60}))


@cli.command()
@click.pass_context
def rewards(ctx: click.Context) -> None:
    """List reward tiers and their unlock status."""
    console.print(build_rewards_table(_request(ctx, "GET", "/api/rewards")))


@cli.command()
@click.argument("reward_id")
@click.pass_context
def unlock(ctx: click.Context, reward_id: str) -> None:
    """Unlock REWARD_ID regardless of its threshold."""
    result = _request(ctx, "POST", f"/api/rewards/{reward_id}/unlock")
    if result["changed"]:
        console.print(f"Unlocked [magenta]{reward_id}[/]")
    else:
        console.print(f"[dim]Nothing changed for {reward_id}[/]")


@cli.command()
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1))
@click.pass_context
def events(ctx: click.Context, limit: int) -> None:
    """Show recent timer and reward events."""
    table = Table(title="Recent events")
    table.add_column("When")
    table.add_column("Event")
    table.add_column("Details")
    for event in _request(ctx, "GET", "/api/events", params={"limit": limit}):
        details = event.get("details") or ""
        if isinstance(details, dict):
            details = ", ".join(f"{k}={v}" for k, v in details.items())
        table.add_row(str(event["created_at"])[:19], event["event_type"], str(details))
    console.print(table)


if __name__ == "__main__":  # pragma: no cover
    cli()
