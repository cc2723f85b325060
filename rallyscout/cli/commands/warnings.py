"""Warnings command - list data-quality issues found while replaying a match."""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from rallyscout.analysis.match import MatchAnalyzer
from rallyscout.cli.utils import console, handle_errors, load_snapshot
from rallyscout.core.warnings import WarningCode


@handle_errors
def warnings(
    snapshot: Path = typer.Argument(
        ...,
        help="Match snapshot exported from the store (JSON)",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    code: Optional[WarningCode] = typer.Option(
        None,
        "--code", "-c",
        help="Only warnings with this code",
        case_sensitive=False,
    ),
):
    """
    List partial actions, missing destinations or kill types, representation
    discrepancies and rotation mismatches.
    """
    snap = load_snapshot(snapshot)
    analysis = MatchAnalyzer().analyze(snap)

    rally_keys = {r.rally_id: (r.set_no, r.rally_no) for r in analysis.rallies}
    found = [w for w in analysis.warnings if code is None or w.code == code]

    if not found:
        console.print("[green]No data-quality warnings[/green]")
        return

    table = Table(title=f"Data-quality warnings ({len(found)})")
    table.add_column("Set", justify="right")
    table.add_column("Rally", justify="right")
    table.add_column("Seq", justify="right")
    table.add_column("Code", style="yellow")
    table.add_column("Message")
    for warning in found:
        set_no, rally_no = rally_keys.get(warning.rally_id, ("-", "-"))
        table.add_row(
            str(set_no),
            str(rally_no),
            str(warning.sequence_no) if warning.sequence_no is not None else "-",
            warning.code.value,
            warning.message,
        )
    console.print(table)
