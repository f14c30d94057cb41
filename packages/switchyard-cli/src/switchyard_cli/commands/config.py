from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax
from switchyard_core.config import config_paths

console = Console()


def _show(path: Path, label: str) -> None:
    console.print(f"[bold]{label}:[/bold]")
    console.print(Syntax(path.read_text(), "toml", theme="monokai"))


def config_command(
    show_global: bool = typer.Option(
        False,
        "--global",
        "-g",
        help="Show global config only",
    ),
) -> None:
    """Show the configuration files that are in effect."""
    global_path, project_path = config_paths()

    if show_global:
        if not global_path.exists():
            console.print("[yellow]~/.switchyard/config.toml not found.[/yellow]")
            raise typer.Exit(1)
        _show(global_path, "~/.switchyard/config.toml")
        return

    shown = False
    if global_path.exists():
        _show(global_path, "Global (~/.switchyard/config.toml)")
        console.print()
        shown = True
    if project_path.exists():
        _show(project_path, f"Project ({project_path.relative_to(Path.cwd())})")
        shown = True

    if not shown:
        console.print(
            "[yellow]No config found.[/yellow]"
            " Create switchyard.toml with \\[adapters.<name>] tables."
        )
        raise typer.Exit(1)
