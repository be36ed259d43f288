"""
Quota rotator CLI.
Command-line interface for inspecting and driving key:model quotas.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import click
from redis.exceptions import RedisError
from rich.console import Console
from rich.table import Table

from quota_rotator.config import settings
from quota_rotator.errors import QuotaRotatorError
from quota_rotator.factory import create_rotator, create_store
from quota_rotator.quota.rotator import QuotaRotator, Selection

console = Console()

EXIT_UNAVAILABLE = 2


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _run(ctx: click.Context, action: Callable[[QuotaRotator], Awaitable[Any]]) -> Any:
    """Build a rotator from the CLI options, run one action, close the store."""

    async def runner() -> Any:
        store = create_store(backend=ctx.obj["backend"], url=ctx.obj["redis_url"])
        try:
            rotator = create_rotator(store=store, config_path=ctx.obj["config"])
            return await action(rotator)
        finally:
            await store.close()

    try:
        return asyncio.run(runner())
    except (QuotaRotatorError, RedisError, OSError, ValueError) as e:
        console.print(f"❌ [red]Error: {e}[/red]")
        sys.exit(1)


def _usage_table(title: str, usage: dict) -> Table:
    table = Table(title=title)
    table.add_column("Window", style="cyan")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right", style="green")
    table.add_column("Reset (s)", justify="right", style="dim")

    for window, u in usage.items():
        table.add_row(
            window,
            str(u.used),
            "-" if u.limit is None else str(u.limit),
            "-" if u.remaining is None else str(u.remaining),
            str(u.reset),
        )
    return table


def _print_selection(selection: Selection) -> None:
    flag = " [yellow](borrowed)[/yellow]" if selection.borrowed else ""
    console.print(f"✅ [green]{selection.key}[/green] → [cyan]{selection.model}[/cyan]{flag}")


@click.group()
@click.option(
    "--config", "-c", "config_path",
    default=lambda: settings.apis_config_path,
    help="JSON file with API definitions",
)
@click.option("--backend", "-b", type=click.Choice(["memory", "redis"]), default=None,
              help="Store backend (defaults to STORE_BACKEND)")
@click.option("--redis-url", envvar="REDIS_URL", default=None, help="Redis connection URL")
@click.pass_context
def cli(ctx, config_path: str, backend: Optional[str], redis_url: Optional[str]):
    """Quota rotator CLI - pick the next key:model pair within its limits."""
    _configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    ctx.obj["backend"] = backend or ("redis" if redis_url else None)
    ctx.obj["redis_url"] = redis_url


@cli.command()
@click.argument("api_name")
@click.option("--borrow", is_flag=True, help="Allow borrowing from non-final windows")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def acquire(ctx, api_name: str, borrow: bool, as_json: bool):
    """Consume one request from the next available key:model pair."""
    selection = _run(ctx, lambda r: r.get_model(api_name, allow_borrowing=borrow))

    if selection is None:
        console.print(f"⚠️ [yellow]No key:model pair available for {api_name}[/yellow]")
        sys.exit(EXIT_UNAVAILABLE)

    if as_json:
        console.print(json.dumps(selection.to_dict(), indent=2))
        return

    _print_selection(selection)
    console.print(_usage_table("Window usage", selection.limits))


@cli.command()
@click.argument("api_name")
@click.option("--size", "-n", type=int, default=None, help="Number of pairs to reserve")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def batch(ctx, api_name: str, size: Optional[int], as_json: bool):
    """Consume one request from each of up to SIZE available pairs."""
    selections = _run(ctx, lambda r: r.get_batch(api_name, size))

    if selections is None:
        console.print(f"⚠️ [yellow]No key:model pair available for {api_name}[/yellow]")
        sys.exit(EXIT_UNAVAILABLE)

    if as_json:
        console.print(json.dumps([s.to_dict() for s in selections], indent=2))
        return

    for selection in selections:
        _print_selection(selection)


@cli.command()
@click.argument("api_key")
@click.argument("model_name")
@click.argument("seconds", type=float)
@click.pass_context
def freeze(ctx, api_key: str, model_name: str, seconds: float):
    """Suppress a key:model pair for SECONDS."""
    _run(ctx, lambda r: r.freeze_model(api_key, model_name, seconds))
    console.print(f"🧊 [cyan]{api_key}:{model_name}[/cyan] frozen for {seconds:g}s")


@cli.command()
@click.pass_context
def frozen(ctx):
    """List currently frozen key:model pairs."""
    pairs = _run(ctx, lambda r: r.list_frozen())

    if not pairs:
        console.print("[dim]Nothing is frozen[/dim]")
        return

    table = Table(title="Frozen pairs")
    table.add_column("Key", style="cyan")
    table.add_column("Model")
    for api_key, model_name in pairs:
        table.add_row(api_key, model_name)
    console.print(table)


@cli.command()
@click.argument("api_name")
@click.argument("api_key")
@click.argument("model_name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx, api_name: str, api_key: str, model_name: str, as_json: bool):
    """Show current window usage and today's metrics for a pair."""
    usage = _run(ctx, lambda r: r.get_usage_stats(api_name, api_key, model_name))

    if as_json:
        console.print(json.dumps(usage.to_dict(), indent=2))
        return

    console.print(_usage_table(f"{api_key}:{model_name}", usage.current_usage))
    if usage.metrics is None:
        console.print("[dim]Metrics disabled[/dim]")
    else:
        m = usage.metrics
        console.print(
            f"Today: [green]{m.success}[/green] ok, "
            f"[red]{m.limit_reached}[/red] limited, "
            f"[yellow]{m.borrowed}[/yellow] borrowed"
        )


@cli.command("set-limit")
@click.argument("api_name")
@click.argument("model_name")
@click.argument("limits", nargs=-1, required=True)
@click.pass_context
def set_limit(ctx, api_name: str, model_name: str, limits: tuple[str, ...]):
    """Update limits for this run, e.g. `set-limit openai gpt-4 minute=10`.

    Limits are held in memory by this process only and are not written
    back to the config file.
    """
    new_limits: dict[str, int] = {}
    for item in limits:
        window, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected WINDOW=N, got {item!r}")
        try:
            new_limits[window] = int(value)
        except ValueError:
            raise click.BadParameter(f"Limit for {window} must be an integer") from None

    async def update(rotator: QuotaRotator) -> dict[str, int]:
        return rotator.update_limits(api_name, model_name, new_limits)

    merged = _run(ctx, update)
    console.print(f"Limits for [cyan]{api_name}/{model_name}[/cyan]: {merged}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
