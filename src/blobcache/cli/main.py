"""Main CLI entry point for blobcache.

Provides command-line access to cached container snapshots: one-off
refreshes, snapshot queries, status, and a long-running refresh service.
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional

import click
import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from blobcache.cache import (
    CacheConfig,
    ContainerCache,
    init_cached_containers,
    load_cache_configs,
    shutdown_schedulers,
)
from blobcache.utils import format_age, utc_now

# Global console for Rich output
console = Console()


def find_config_file(ctx_config: Optional[str] = None) -> Path:
    """Find the cached containers config file.

    Priority:
    1. Explicit --config/-c flag
    2. BLOBCACHE_CONFIG environment variable
    3. blobcache.json in the current working directory

    Raises:
        click.ClickException: If no config file can be found
    """
    if ctx_config:
        path = Path(ctx_config)
        if path.exists():
            return path
        raise click.ClickException(f"Config file not found: {ctx_config}")

    env_config = os.environ.get("BLOBCACHE_CONFIG")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return path
        raise click.ClickException(
            f"Config file not found (from BLOBCACHE_CONFIG): {env_config}"
        )

    path = Path.cwd() / "blobcache.json"
    if path.exists():
        return path
    raise click.ClickException(
        "No config file given. Use --config or set BLOBCACHE_CONFIG."
    )


def load_configs(ctx) -> list[CacheConfig]:
    """Load every valid container config, reporting the invalid ones."""
    configs, failures = load_cache_configs(find_config_file(ctx.obj.get("config")))
    for name, error in failures.items():
        console.print(f"[yellow]![/yellow] Skipping {name}: {error}")
    return configs


def get_config(ctx, name: str) -> CacheConfig:
    for config in load_configs(ctx):
        if config.name == name:
            return config
    raise click.ClickException(f"Container '{name}' is not configured for caching")


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(),
    help="Path to cached containers config (default: BLOBCACHE_CONFIG or ./blobcache.json)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config, verbose):
    """blobcache CLI - Cached listings of large blob containers."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@cli.command("refresh")
@click.argument("name")
@click.pass_context
def refresh(ctx, name):
    """Refresh the snapshot of one container now.

    Example:
        blobcache refresh media
    """
    try:
        cache = ContainerCache(get_config(ctx, name))
        result = cache.refresh()
        if result is None:
            console.print(f"[yellow]Refresh of '{name}' already in progress[/yellow]")
            return

        console.print(f"[green]✓[/green] Refreshed '{name}'")
        console.print(f"  Entries: {result.entries}")
        console.print(f"  Pages: {result.pages}")
        console.print(f"  Duration: {result.duration:.1f}s")
        if result.recovered:
            console.print(
                "  [yellow]Promotion failed, previous snapshot restored[/yellow]"
            )

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("ls")
@click.argument("name")
@click.argument("prefix", default="")
@click.option("--cursor", default="", help="Resume after this entry name")
@click.option("--limit", "-n", default=0, type=int, help="Maximum entries (0 = all)")
@click.option("--pattern", "-p", default=None, help="Wildcard filter, e.g. '*.csv'")
@click.option("--json", "as_json", is_flag=True, help="Output JSON lines")
@click.pass_context
def ls(ctx, name, prefix, cursor, limit, pattern, as_json):
    """List entries from a container's snapshot.

    Never contacts the remote service.

    Example:
        blobcache ls media 2024/ --limit 100
        blobcache ls media --pattern '*.mp4' --cursor 2024/06/clip.mp4
    """
    try:
        cache = ContainerCache(get_config(ctx, name))
        entries = cache.query(prefix=prefix, cursor=cursor, limit=limit, pattern=pattern)

        if as_json:
            for entry in entries:
                click.echo(
                    orjson.dumps(
                        {
                            "name": entry.name,
                            "size": entry.size,
                            "is_dir": entry.is_dir,
                            "modified": entry.modified.isoformat(),
                        }
                    ).decode()
                )
            return

        if not entries:
            console.print("[yellow]No entries found[/yellow]")
            return

        table = Table(title=f"{name} ({len(entries)} entries)")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Size", justify="right", style="green")
        table.add_column("Modified", style="blue")
        for entry in entries:
            table.add_row(
                entry.name,
                str(entry.size),
                entry.modified.strftime("%Y-%m-%d %H:%M:%S"),
            )
        console.print(table)

        if limit > 0 and len(entries) == limit:
            console.print(f"More entries follow; continue with --cursor '{entries[-1].name}'")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("status")
@click.pass_context
def status(ctx):
    """Show the snapshot state of every configured container.

    Example:
        blobcache status
    """
    try:
        configs = load_configs(ctx)
        if not configs:
            console.print("[yellow]No cached containers configured[/yellow]")
            return

        table = Table(title=f"Cached containers ({len(configs)})")
        table.add_column("Container", style="cyan", no_wrap=True)
        table.add_column("Snapshot", style="white")
        table.add_column("Entries", justify="right", style="green")
        table.add_column("Last refresh", style="blue")
        table.add_column("Age", justify="right")
        table.add_column("Interval", justify="right")

        now = utc_now()
        for config in configs:
            cache = ContainerCache(config)
            meta = cache.metadata()
            completed = meta.last_refresh_completed()
            age = (now - completed).total_seconds() if completed else None
            entries = meta.get("entry_count")

            snapshot = "[green]present[/green]" if cache.has_snapshot() else "[red]missing[/red]"
            if meta.get("last_error"):
                snapshot += " [yellow](last cycle failed)[/yellow]"

            table.add_row(
                config.name,
                snapshot,
                "" if entries is None else str(entries),
                completed.strftime("%Y-%m-%d %H:%M") if completed else "",
                format_age(age),
                f"{config.refresh_interval:g}m",
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("run")
@click.pass_context
def run(ctx):
    """Keep every configured container's snapshot refreshed until interrupted.

    Example:
        blobcache -c containers.json run
    """
    try:
        configs = load_configs(ctx)
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    result = init_cached_containers(configs)
    for name, error in result.failures.items():
        console.print(f"[red]✗[/red] {name}: {error}")
    if not result.schedulers:
        console.print("[red]✗[/red] Error: no container could be initialized", style="red")
        sys.exit(1)

    names = ", ".join(cache.name for cache in result.caches)
    console.print(f"[green]✓[/green] Caching {names} (Ctrl+C to stop)")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        shutdown_schedulers(result.schedulers, timeout=30)


if __name__ == "__main__":
    cli()
