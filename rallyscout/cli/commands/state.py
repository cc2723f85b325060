"""State command - replay a match snapshot into its current game state."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from rallyscout.analysis.match import MatchAnalyzer
from rallyscout.core.models import Side
from rallyscout.cli.utils import console, handle_errors, load_snapshot


@handle_errors
def state(
    snapshot: Path = typer.Argument(
        ...,
        help="Match snapshot exported from the store (JSON)",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    set_no: Optional[int] = typer.Option(
        None,
        "--set", "-s",
        help="Replay this set instead of the one in progress",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the state as JSON",
    ),
):
    """
    Derive score, server, rotation and set/match status from a match log.

    Examples:
        rallyscout state match.json            # Current state
        rallyscout state match.json --set 2    # State at the end of set 2
    """
    snap = load_snapshot(snapshot)
    analyzer = MatchAnalyzer()
    analysis = analyzer.analyze(snap)

    game_state = analysis.state
    if set_no is not None:
        game_state = analyzer.reconstructor(snap).replay_set(analysis.rallies, set_no)

    eligibility = {}
    if snap.lineups:
        for side in (Side.HOME, Side.AWAY):
            if (game_state.set_no, side) in {(l.set_no, l.side) for l in snap.lineups}:
                eligibility[side] = analyzer.eligibility(snap, side, game_state)

    if json_output:
        payload = {
            "state": game_state.to_dict(),
            "status": analysis.status.to_dict(),
            "eligibility": {s.value: e.to_dict() for s, e in eligibility.items()},
        }
        console.print_json(json.dumps(payload))
        return

    names = {Side.HOME: snap.match.home_name, Side.AWAY: snap.match.away_name}

    console.print(f"\n[bold]RallyScout State[/bold] - {names[Side.HOME]} vs {names[Side.AWAY]}")
    console.print(
        f"Set [cyan]{game_state.set_no}[/cyan], rally [cyan]{game_state.rally_no}[/cyan], "
        f"phase [cyan]{game_state.phase}[/cyan] ({game_state.state.value})"
    )
    console.print(
        f"Score: [bold]{game_state.home_score} - {game_state.away_score}[/bold]  "
        f"Serving: [yellow]{names[game_state.serving_side]}[/yellow] R{game_state.serving_rotation}  "
        f"Receiving: {names[game_state.receiving_side]} R{game_state.receiving_rotation}"
    )
    console.print()

    table = Table(title="Sets")
    table.add_column("Set", justify="right")
    table.add_column(names[Side.HOME], justify="right")
    table.add_column(names[Side.AWAY], justify="right")
    table.add_column("Winner", style="green")
    for result in analysis.status.sets:
        winner = names[result.winner] if result.winner else "-"
        if result.incomplete_side is not None:
            winner += " (opponent incomplete)"
        table.add_row(str(result.set_no), str(result.home_score), str(result.away_score), winner)
    console.print(table)

    home_sets, away_sets = analysis.status.home_sets, analysis.status.away_sets
    console.print(f"Sets won: {home_sets} - {away_sets}")
    if analysis.status.complete and analysis.status.winner is not None:
        console.print(f"[bold green]Match won by {names[analysis.status.winner]}[/bold green]")

    for side, flags in eligibility.items():
        console.print(
            f"\n[bold]{names[side]}[/bold]: substitutions left {flags.substitutions_remaining}, "
            f"libero on court: {flags.libero_id or 'no'}, can enter: {flags.can_enter}, "
            f"must exit: {flags.must_exit}, can swap: {flags.can_swap}"
        )
