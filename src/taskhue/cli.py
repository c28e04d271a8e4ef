"""Command-line interface for Taskhue."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
import yaml

from . import context
from .cache import CacheManager
from .color_writer import ColorWriter
from .config import EngineConfig, default_config_path, default_store_path, load_config
from .exceptions import TaskhueError
from .fingerprint import FingerprintMap, extract_fingerprint
from .identifiers import INDIRECT_PREFIX, decode_indirect_id, strip_direct_prefix
from .logger import setup_logger
from .models import ObservedColors, StyleResult
from .rendering import render_style
from .resolver import ColorContext, ColorResolver
from .store import StoreArea, YamlFileStore

app = typer.Typer(
    name="taskhue",
    help="Task color resolution over a calendar color store",
    add_completion=False,
)

DEFAULT_STORE = Path("taskhue_store.yaml")

StoreOption = Annotated[
    Path | None,
    typer.Option(
        "--store",
        "-s",
        help="Path to the YAML store snapshot (default: $TASKHUE_STORE or taskhue_store.yaml)",
    ),
]


@app.callback()
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            help="Verbosity level: 0=silent (default), 1=show changes, 2=show all checks, 3=debug",
            min=0,
            max=3,
        ),
    ] = 0,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to engine config file (default: $TASKHUE_CONFIG)",
        ),
    ] = None,
) -> None:
    """Global options for taskhue commands."""
    setup_logger(verbose)
    context.set_config_path(config)


def _load_engine_config() -> EngineConfig:
    """Load config from --config, else $TASKHUE_CONFIG, else defaults."""
    path = context.get_config_path() or default_config_path()
    if path is None:
        return EngineConfig()
    try:
        return load_config(path)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


def _open_store(store: Path | None) -> YamlFileStore:
    path = store or default_store_path() or DEFAULT_STORE
    try:
        return YamlFileStore(path)
    except TaskhueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


async def _resolve(
    store: YamlFileStore,
    config: EngineConfig,
    task_id: str,
    context_: ColorContext,
) -> StyleResult | None:
    cache = CacheManager(store, config.cache, config.keys)
    return await ColorResolver(cache, FingerprintMap()).resolve(task_id, context_)


def _print_style(style: StyleResult | None) -> None:
    if style is None:
        typer.echo("No color (host default)")
        return
    typer.echo(yaml.safe_dump(style.to_dict(), sort_keys=False).rstrip())


@app.command()
def resolve(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    *,
    completed: Annotated[
        bool, typer.Option("--completed", help="Style the task as completed")
    ] = False,
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Rendered label, used for recurring fingerprints"),
    ] = None,
    text_color: Annotated[
        str | None, typer.Option("--text-color", help="Explicit text color override")
    ] = None,
    store: StoreOption = None,
) -> None:
    """Resolve a task's styling."""
    config = _load_engine_config()
    color_store = _open_store(store)
    context_ = ColorContext(
        fingerprint=extract_fingerprint(text) if text else None,
        is_completed=completed,
        text_override=text_color,
    )
    _print_style(asyncio.run(_resolve(color_store, config, task_id, context_)))


@app.command()
def render(  # noqa: PLR0913 - CLI command needs multiple options
    task_id: Annotated[str, typer.Argument(help="Task id")],
    *,
    completed: Annotated[
        bool, typer.Option("--completed", help="Style the task as completed")
    ] = False,
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Rendered label, used for recurring fingerprints"),
    ] = None,
    observed_bg: Annotated[
        str | None, typer.Option("--observed-bg", help="Host background before styling")
    ] = None,
    observed_text: Annotated[
        str | None, typer.Option("--observed-text", help="Host text color before styling")
    ] = None,
    observed_completed: Annotated[
        bool,
        typer.Option(
            "--observed-completed", help="The observed background was already faded by the host"
        ),
    ] = False,
    store: StoreOption = None,
) -> None:
    """Resolve a task's styling and print the final paint colors."""
    config = _load_engine_config()
    color_store = _open_store(store)
    context_ = ColorContext(
        fingerprint=extract_fingerprint(text) if text else None,
        is_completed=completed,
    )
    style = asyncio.run(_resolve(color_store, config, task_id, context_))
    if style is None:
        typer.echo("No color (host default)")
        return

    observed = None
    if observed_bg or observed_text:
        observed = ObservedColors(
            background=observed_bg, text=observed_text, was_completed=observed_completed
        )
    rendered = render_style(style, observed)
    typer.echo(f"background: {rendered.background or 'host default'}")
    typer.echo(f"text: {rendered.text}")


@app.command()
def decode(
    identifier: Annotated[str, typer.Argument(help="A data-eventid value")],
) -> None:
    """Decode a rendered item identifier."""
    task_id = strip_direct_prefix(identifier)
    if task_id:
        typer.echo(f"task: {task_id}")
        return

    if identifier.startswith(INDIRECT_PREFIX):
        event_id = decode_indirect_id(identifier)
        if event_id:
            typer.echo(f"calendar event: {event_id}")
            return

    typer.echo(f"Error: Cannot decode identifier '{identifier}'", err=True)
    raise typer.Exit(1)


@app.command()
def fingerprint(
    text: Annotated[str, typer.Argument(help="Rendered task label")],
) -> None:
    """Print the recurring-instance fingerprint of a rendered label."""
    result = extract_fingerprint(text)
    if result.key is None:
        typer.echo(
            f"Error: No fingerprint (title: {result.title or '-'}, time: {result.time or '-'})",
            err=True,
        )
        raise typer.Exit(1)
    typer.echo(result.key)


async def _write(
    store: YamlFileStore,
    config: EngineConfig,
    key: str,
    color: str | None,
    recurring: bool,
) -> dict[str, str]:
    writer = ColorWriter(store, CacheManager(store, config.cache, config.keys))
    if recurring:
        if color is None:
            return await writer.clear_recurring_color(key)
        return await writer.set_recurring_color(key, color)
    if color is None:
        return await writer.clear_task_color(key)
    return await writer.set_task_color(key, color)


def _run_write(store_path: Path | None, key: str, color: str | None, recurring: bool) -> None:
    config = _load_engine_config()
    color_store = _open_store(store_path)
    written = asyncio.run(_write(color_store, config, key, color, recurring))

    # Writes absorb store failures, so confirm against what the store holds
    table_key = config.keys.recurring_colors if recurring else config.keys.manual_colors
    stored = color_store.snapshot()[StoreArea.SYNC.value].get(table_key, {})
    if stored != written:
        typer.echo(f"Error: Failed to write {table_key} to {color_store.path}", err=True)
        raise typer.Exit(1)


@app.command("set-color")
def set_color(
    key: Annotated[str, typer.Argument(help="Task id, or fingerprint with --recurring")],
    color: Annotated[str, typer.Argument(help="Color, e.g. '#ff0000'")],
    *,
    recurring: Annotated[
        bool, typer.Option("--recurring", help="Color every instance with this fingerprint")
    ] = False,
    store: StoreOption = None,
) -> None:
    """Set a manual color."""
    _run_write(store, key, color, recurring)
    typer.echo(f"Set {'recurring' if recurring else 'task'} color of {key} to {color}")


@app.command("clear-color")
def clear_color(
    key: Annotated[str, typer.Argument(help="Task id, or fingerprint with --recurring")],
    *,
    recurring: Annotated[
        bool, typer.Option("--recurring", help="Clear the color shared by a fingerprint")
    ] = False,
    store: StoreOption = None,
) -> None:
    """Clear a manual color."""
    _run_write(store, key, None, recurring)
    typer.echo(f"Cleared {'recurring' if recurring else 'task'} color of {key}")


def main() -> int:
    """Main entry point."""
    # Typer handles sys.exit() internally
    app()
    return 0


if __name__ == "__main__":
    main()
