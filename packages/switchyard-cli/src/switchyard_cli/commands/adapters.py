from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from switchyard_cli.commands._runtime import build_context, config_option

console = Console()


def _capability_summary(caps: dict) -> str:
    flags = [
        name
        for name in ("multi_file", "streaming")
        if caps.get(name)
    ]
    if caps["sub_agents"]["supported"]:
        flags.append(f"sub_agents({caps['sub_agents']['max_concurrent']})")
    flags.extend(
        name
        for name, value in caps["features"].items()
        if (value["enabled"] if isinstance(value, dict) else value)
    )
    return ", ".join(flags) or "-"


def adapters_command(config_path: str | None = config_option) -> None:
    """List the adapters declared in the configuration."""
    ctx = asyncio.run(build_context(config_path))
    descriptors = ctx.registry.describe()

    if not descriptors:
        console.print(
            "[yellow]No adapters configured.[/yellow] "
            "Add \\[adapters.<name>] tables to switchyard.toml."
        )
        raise typer.Exit(0)

    table = Table(
        title="Configured Adapters",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Name", style="bold")
    table.add_column("Version", justify="center")
    table.add_column("Default", justify="center")
    table.add_column("Context", justify="right")
    table.add_column("Languages")
    table.add_column("Capabilities")

    for d in sorted(descriptors, key=lambda d: (d.name, d.version)):
        caps = d.capabilities.to_dict()
        table.add_row(
            d.name,
            d.version,
            "[green]yes[/green]" if d.is_default else "",
            str(caps["max_context_tokens"]),
            ", ".join(caps["supported_languages"]) or "-",
            _capability_summary(caps),
        )

    console.print(table)
    console.print(f"\n[dim]{len(descriptors)} adapter version(s).[/dim]")
