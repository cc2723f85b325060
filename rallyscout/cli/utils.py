"""CLI utilities for RallyScout."""

from __future__ import annotations

import functools
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console

from rallyscout.core.config import get_config
from rallyscout.core.errors import RallyScoutError, SnapshotError, SubstitutionViolation
from rallyscout.core.models import Side
from rallyscout.ingest.rows import MatchSnapshot

console = Console()

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """Decorator to handle common errors in CLI commands."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except SubstitutionViolation as e:
            console.print(f"\n[red]Rejected ({e.kind.value}):[/red] {e.message}")
            if e.hint:
                console.print(f"[dim]Hint: {e.hint}[/dim]")
            raise typer.Exit(1)
        except RallyScoutError as e:
            console.print(f"\n[red]Error:[/red] {e.message}")
            if e.hint:
                console.print(f"[dim]Hint: {e.hint}[/dim]")
            raise typer.Exit(1)
        except FileNotFoundError as e:
            console.print(f"\n[red]Error:[/red] File not found: {e.filename}")
            raise typer.Exit(1)
        except PermissionError as e:
            console.print(f"\n[red]Error:[/red] Permission denied: {e.filename}")
            console.print("[dim]Hint: Check file permissions or try a different output path[/dim]")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            raise typer.Exit(130)

    return wrapper  # type: ignore[return-value]


def load_snapshot(path: Path) -> MatchSnapshot:
    """Load a snapshot file, overlaying its match row on the configured defaults."""
    if not path.is_file():
        raise SnapshotError(
            f"Not a file: {path}",
            hint="Pass the JSON file exported from the match store",
        )
    return MatchSnapshot.load(path, defaults=get_config().match)


def parse_side_option(value: str | None) -> Side | None:
    """Accept CASA/FORA as stored, or home/away."""
    if value is None:
        return None
    aliases = {"HOME": Side.HOME, "AWAY": Side.AWAY}
    key = value.strip().upper()
    if key in aliases:
        return aliases[key]
    try:
        return Side(key)
    except ValueError as e:
        raise typer.BadParameter("side must be CASA, FORA, home or away") from e


def format_pct(value: float) -> str:
    return f"{value * 100:.0f}%"
