"""Task commands: route and run tasks from a JSON file."""
from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from switchyard_core.errors import AllStrategiesExhaustedError, NoMatchingAdapterError

from switchyard_cli.commands._runtime import build_context, config_option, load_tasks

console = Console()


async def _route(tasks_file: Path, config_path: str | None) -> list[tuple]:
    ctx = await build_context(config_path)
    tasks = load_tasks(tasks_file)
    routed = await ctx.router.route_batch(tasks)
    return [
        (
            r.task_id,
            f"{r.decision.adapter_name} v{r.decision.adapter_version}",
            r.decision.strategy,
            f"{r.decision.score:.2f}",
            "grouped" if r.grouped else "",
        )
        for r in routed
    ]


def route_command(
    tasks_file: Path = typer.Argument(..., help="JSON file with a task or a list of tasks"),
    config_path: str | None = config_option,
) -> None:
    """Show which adapter and strategy each task would be routed to."""
    try:
        rows = asyncio.run(_route(tasks_file, config_path))
    except NoMatchingAdapterError as exc:
        console.print(f"[red]Routing failed:[/red] {exc}")
        raise typer.Exit(1) from exc

    table = Table(title="Routing Decisions", show_header=True, header_style="bold cyan")
    table.add_column("Task", style="bold")
    table.add_column("Adapter")
    table.add_column("Strategy")
    table.add_column("Score", justify="right")
    table.add_column("", style="dim")
    for row in rows:
        table.add_row(*row)
    console.print(table)


def _attempt_trail(attempts) -> str:
    return " -> ".join(
        f"{a.strategy}:{a.status.value}" for a in attempts
    )


async def _run(tasks_file: Path, config_path: str | None) -> int:
    ctx = await build_context(config_path)
    tasks = load_tasks(tasks_file)
    failures = 0

    table = Table(title="Execution Results", show_header=True, header_style="bold cyan")
    table.add_column("Task", style="bold")
    table.add_column("Adapter")
    table.add_column("Strategy")
    table.add_column("Status")
    table.add_column("Attempts")

    for task in tasks:
        try:
            result = await ctx.dispatcher.dispatch(task)
        except NoMatchingAdapterError as exc:
            failures += 1
            table.add_row(task.id, "-", "-", "[red]unroutable[/red]", str(exc))
            continue
        except AllStrategiesExhaustedError as exc:
            failures += 1
            table.add_row(
                task.id, "-", "-", "[red]failed[/red]", _attempt_trail(exc.attempts)
            )
            continue
        table.add_row(
            task.id,
            result.metadata.get("adapter", "-"),
            result.strategy or "-",
            f"[green]{result.status}[/green]",
            _attempt_trail(result.attempts),
        )

    console.print(table)
    await ctx.bridge.flush()
    return failures


def run_command(
    tasks_file: Path = typer.Argument(..., help="JSON file with a task or a list of tasks"),
    config_path: str | None = config_option,
) -> None:
    """Dry-run tasks through the configured adapters."""
    failures = asyncio.run(_run(tasks_file, config_path))
    if failures:
        console.print(f"\n[red]{failures} task(s) failed.[/red]")
        raise typer.Exit(1)
