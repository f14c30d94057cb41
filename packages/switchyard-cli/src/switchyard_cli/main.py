from __future__ import annotations

import typer

from switchyard_cli.commands.adapters import adapters_command
from switchyard_cli.commands.config import config_command
from switchyard_cli.commands.tasks import route_command, run_command

app = typer.Typer(
    name="switchyard",
    help="Switchyard: capability-based task routing across adapters",
    no_args_is_help=True,
)


@app.callback()
def _setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON"),
) -> None:
    from switchyard_core.logging import setup_logging

    if verbose or json_logs:
        setup_logging("DEBUG" if verbose else "INFO", json_output=json_logs, force=True)


app.command("config")(config_command)
app.command("adapters")(adapters_command)
app.command("route")(route_command)
app.command("run")(run_command)


@app.command()
def version() -> None:
    """Show the Switchyard version."""
    from rich.console import Console
    from switchyard_core import __version__

    Console().print(f"switchyard {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
