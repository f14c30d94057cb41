"""Shared helpers for commands that need a built runtime."""
from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from switchyard_core.config import SwitchyardConfig
from switchyard_core.errors import ConfigError
from switchyard_core.logging import setup_logging
from switchyard_core.types import Task
from switchyard_runtime.builder import RuntimeBuilder

if TYPE_CHECKING:
    from switchyard_runtime.context import RuntimeContext

console = Console()

config_option = typer.Option(
    None,
    "--config",
    "-c",
    help="Config file to use instead of the layered defaults",
)


def load_config(config_path: str | None) -> SwitchyardConfig:
    try:
        if config_path is not None:
            if not Path(config_path).exists():
                raise ConfigError(f"Config file not found: {config_path}")
            return SwitchyardConfig.from_toml(config_path)
        return SwitchyardConfig.load()
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise typer.Exit(1) from exc


async def build_context(config_path: str | None) -> RuntimeContext:
    config = load_config(config_path)
    setup_logging(config.logging.level, json_output=config.logging.json_output)
    return await RuntimeBuilder(config).build()


def load_tasks(path: Path) -> list[Task]:
    """Read a JSON file holding one task object or a list of them."""
    if not path.exists():
        console.print(f"[red]Task file not found:[/red] {path}")
        raise typer.Exit(1)
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON in {path}:[/red] {exc}")
        raise typer.Exit(1) from exc

    items = raw if isinstance(raw, list) else [raw]
    try:
        return [Task.from_dict(item) for item in items]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        console.print(f"[red]Malformed task in {path}:[/red] {exc!r}")
        raise typer.Exit(1) from exc
