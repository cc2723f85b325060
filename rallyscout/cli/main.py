"""Main CLI entry point for RallyScout."""

import logging

import typer
from rich.console import Console

from rallyscout.cli.commands.state import state as state_command
from rallyscout.cli.commands.stats import stats as stats_command
from rallyscout.cli.commands.warnings import warnings as warnings_command

app = typer.Typer(
    name="rallyscout",
    help="Volleyball scouting CLI - replay match logs into game state and statistics",
    no_args_is_help=True,
)

console = Console()

# Register commands
app.command(name="state")(state_command)
app.command(name="stats")(stats_command)
app.command(name="warnings")(warnings_command)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """RallyScout - volleyball match replay and statistics CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    if verbose:
        console.print("[dim]Verbose mode enabled[/dim]")


if __name__ == "__main__":
    app()
