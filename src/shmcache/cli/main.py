"""
Maintenance CLI for a shmcache backing file.

Commands:
    shmcache stats - Show entry counts and file size
    shmcache get KEY - Print a cached value
    shmcache set KEY VALUE - Store a JSON (or plain string) value
    shmcache delete KEY - Remove an entry
    shmcache purge - Remove expired entries and compact
    shmcache compact - Reclaim free space
    shmcache init - Create the schema in a new (or, with --force, existing) file
    shmcache config - Show effective configuration
    shmcache version - Print version
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any, Callable, Generator, Optional, TypeVar

import orjson
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shmcache import __version__
from shmcache.config import CacheSettings, clear_settings_cache, get_settings
from shmcache.engine import SQLiteCache
from shmcache.exceptions import CacheError, ConfigError, StoreBusy
from shmcache.logging import setup_logging
from shmcache.schema import initialize
from shmcache.store import SQLiteStore

T = TypeVar("T")

app = typer.Typer(
    name="shmcache",
    help="shmcache - maintenance for SQLite-backed key-value caches",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> CacheSettings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError:
        return None


def render_error(exc: CacheError) -> None:
    """Print a cache error as a panel on stderr."""
    lines = [f"[bold]Description:[/bold] {escape(exc.message)}"]
    for key, value in exc.context.items():
        lines.append(f"[dim]{key}:[/dim] {escape(str(value))}")
    error_console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold red]{exc.__class__.__name__}[/bold red]",
            border_style="red",
        )
    )


@contextmanager
def _cache_errors() -> Generator[None, None, None]:
    try:
        yield
    except CacheError as e:
        render_error(e)
        raise typer.Exit(1) from e


@retry(
    retry=retry_if_exception_type(StoreBusy),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
def _retry_busy(func: Callable[..., T], *args: Any) -> T:
    """Run a write against the cache, retrying while another process holds the lock."""
    return func(*args)


def _settings_or_exit() -> CacheSettings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'shmcache config' to see what's wrong."
        )
        raise typer.Exit(1)
    return settings


def _db_path(ctx: typer.Context, settings: CacheSettings) -> Path:
    override = (ctx.obj or {}).get("db")
    return override if override is not None else settings.db_file


def _open_cache(ctx: typer.Context, create: bool = False) -> SQLiteCache:
    """Open the backing file. Only commands that write may create it."""
    settings = _settings_or_exit()
    path = _db_path(ctx, settings)
    if not create and not path.exists():
        raise ConfigError("Cache file does not exist", context={"db_path": str(path)})

    mode = (ctx.obj or {}).get("mode") or settings.CACHE_CODEC_MODE
    return SQLiteCache(
        db_path=path,
        mode=mode,
        silent=settings.CACHE_SILENT,
        busy_timeout=settings.CACHE_BUSY_TIMEOUT,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", "-d", help="Backing SQLite file (overrides CACHE_DB_FILE)"),
    ] = None,
    mode: Annotated[
        Optional[str],
        typer.Option("--mode", "-m", help="Codec mode: msgpack, pickle or json"),
    ] = None,
) -> None:
    """Inspect and maintain a shmcache backing file."""
    ctx.obj = {"db": db, "mode": mode}
    settings = _get_settings_safe()
    setup_logging(settings.LOG_LEVEL if settings else "INFO")


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show entry counts, codec and file size."""
    with _cache_errors(), _open_cache(ctx) as cache:
        info = cache.stats()

    table = Table(title="Cache", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in info.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def get(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key")],
) -> None:
    """Print the value cached under KEY."""
    with _cache_errors(), _open_cache(ctx) as cache:
        value = cache.get(key)

    if value is None:
        console.print(f"[yellow]Miss:[/yellow] '{key}' not found in cache")
        raise typer.Exit(1)

    rendered = orjson.dumps(
        value,
        default=repr,
        option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS,
    )
    console.print_json(rendered.decode("utf-8"))


@app.command("set")
def set_value(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key")],
    value: Annotated[str, typer.Argument(help="JSON value (stored as a string if not JSON)")],
    expires: Annotated[
        int,
        typer.Option(
            "--expires",
            "-e",
            help="0 = one hour, below 100000 = TTL seconds, else absolute Unix time",
        ),
    ] = 0,
) -> None:
    """Store VALUE under KEY."""
    try:
        parsed: Any = orjson.loads(value)
    except orjson.JSONDecodeError:
        parsed = value

    with _cache_errors(), _open_cache(ctx, create=True) as cache:
        _retry_busy(cache.set, key, parsed, expires)
        entry = cache.entry(key)

    expires_at = entry.expires_at if entry else "?"
    console.print(f"Wrote '{key}' (expires at {expires_at})")


@app.command()
def delete(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key")],
) -> None:
    """Remove KEY from the cache."""
    with _cache_errors(), _open_cache(ctx) as cache:
        removed = _retry_busy(cache.delete, key)

    if removed:
        console.print(f"Deleted '{key}'")
    else:
        console.print(f"[dim]'{key}' was not cached[/dim]")


@app.command()
def purge(
    ctx: typer.Context,
    compact: Annotated[
        bool,
        typer.Option("--compact/--no-compact", help="Reclaim space after purging"),
    ] = True,
) -> None:
    """Remove all expired entries."""
    with _cache_errors(), _open_cache(ctx) as cache:
        removed = _retry_busy(cache.purge_expired, compact)

    console.print(f"Removed {removed} expired entries")


@app.command("compact")
def compact_cmd(ctx: typer.Context) -> None:
    """Reclaim space left by deleted and replaced entries."""
    with _cache_errors(), _open_cache(ctx) as cache:
        _retry_busy(cache.compact)

    console.print("Compacted")


@app.command()
def init(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Recreate the schema in an existing file"),
    ] = False,
) -> None:
    """Create the cache schema.

    Without --force this only works for a file that does not exist yet.
    With --force every entry in an existing file is dropped.
    """
    settings = _settings_or_exit()
    path = _db_path(ctx, settings)

    if path.exists() and not force:
        error_console.print(
            f"[red]Error:[/red] {path} already exists. Use --force to recreate it."
        )
        raise typer.Exit(1)

    with _cache_errors():
        if path.exists():
            with SQLiteStore(path, busy_timeout=settings.CACHE_BUSY_TIMEOUT) as store:
                initialize(store, silent=True)
        else:
            SQLiteCache(db_path=path, silent=True).close()

    console.print(f"[green]Initialized[/green] {path}")


@app.command()
def config() -> None:
    """Show effective configuration."""
    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print()
        error_console.print("Check these environment variables:")
        error_console.print("  - CACHE_CODEC_MODE (msgpack, pickle or json)")
        error_console.print("  - CACHE_BUSY_TIMEOUT (seconds, 0 < t <= 300)")
        error_console.print("  - CACHE_INSTANCE_ID (non-empty, no path separators)")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"shmcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
