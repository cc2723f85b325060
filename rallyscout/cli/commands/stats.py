"""Stats command - per-player and per-team statistics from a match snapshot."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from rallyscout.analysis.match import MatchAnalyzer
from rallyscout.core.models import Side
from rallyscout.cli.utils import (
    console,
    format_pct,
    handle_errors,
    load_snapshot,
    parse_side_option,
)
from rallyscout.statistics.aggregator import MatchStatistics
from rallyscout.statistics.enrichment import StatsFilter


def _print_attack_table(result: MatchStatistics) -> None:
    rows = [p for p in result.players.values() if p.attack is not None]
    if not rows:
        return
    table = Table(title="Attack")
    table.add_column("Player", style="cyan")
    table.add_column("Att", justify="right")
    table.add_column("Kills", justify="right", style="green")
    table.add_column("Err", justify="right", style="red")
    table.add_column("Blk", justify="right")
    table.add_column("Eff", justify="right")
    table.add_column("Eff (good set)", justify="right")
    table.add_column("Eff (bad set)", justify="right")
    for p in rows:
        a = p.attack
        table.add_row(
            p.name or p.player_id,
            str(a.total.attempts),
            str(a.total.kills),
            str(a.total.errors),
            str(a.total.blocked),
            format_pct(a.total.efficiency),
            format_pct(a.good.efficiency) if a.good.attempts else "-",
            format_pct(a.bad.efficiency) if a.bad.attempts else "-",
        )
    console.print(table)


def _print_serve_reception_table(result: MatchStatistics) -> None:
    rows = [p for p in result.players.values() if p.serve or p.reception]
    if not rows:
        return
    table = Table(title="Serve / Reception")
    table.add_column("Player", style="cyan")
    table.add_column("Serves", justify="right")
    table.add_column("Aces", justify="right", style="green")
    table.add_column("S.Err", justify="right", style="red")
    table.add_column("Rec", justify="right")
    table.add_column("Pos%", justify="right")
    table.add_column("Exc%", justify="right")
    for p in rows:
        s, r = p.serve, p.reception
        table.add_row(
            p.name or p.player_id,
            str(s.attempts) if s else "-",
            str(s.aces) if s else "-",
            str(s.errors) if s else "-",
            str(r.total) if r else "-",
            f"{r.positive_pct}%" if r else "-",
            f"{r.excellent_pct}%" if r else "-",
        )
    console.print(table)


def _print_destination_table(result: MatchStatistics) -> None:
    if not result.destinations:
        return
    table = Table(title="Set destinations")
    table.add_column("Side")
    table.add_column("Dest", style="cyan")
    table.add_column("Att", justify="right")
    table.add_column("Kills", justify="right", style="green")
    table.add_column("Err", justify="right", style="red")
    table.add_column("Kill%", justify="right")
    table.add_column("Eff", justify="right")
    for d in result.destinations.values():
        table.add_row(
            d.side.value,
            d.destination.value,
            str(d.attempts),
            str(d.kills),
            str(d.errors),
            format_pct(d.kill_rate),
            format_pct(d.efficiency),
        )
    console.print(table)


def _print_team_table(result: MatchStatistics, names: dict[Side, str]) -> None:
    table = Table(title="Team")
    table.add_column("Side", style="cyan")
    table.add_column("Points", justify="right")
    table.add_column("Side-out", justify="right")
    table.add_column("Break", justify="right")
    table.add_column("Longest run", justify="right")
    table.add_column("Unforced", justify="right", style="red")
    table.add_column("Worst rot", justify="right")
    for side, team in result.teams.items():
        worst = team.worst_rotation
        table.add_row(
            names[side],
            str(team.points),
            f"{team.sideout_points}/{team.sideout_attempts} ({team.sideout_pct}%)",
            f"{team.break_points}/{team.break_attempts} ({team.break_pct}%)",
            str(team.longest_run),
            str(team.unforced_errors),
            f"R{worst.rotation} ({worst.sideout_pct}%)" if worst else "-",
        )
    console.print(table)


@handle_errors
def stats(
    snapshot: Path = typer.Argument(
        ...,
        help="Match snapshot exported from the store (JSON)",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    side: Optional[str] = typer.Option(
        None,
        "--side",
        help="Only this side (CASA/FORA or home/away)",
    ),
    player: Optional[str] = typer.Option(
        None,
        "--player", "-p",
        help="Only this player id",
    ),
    set_no: Optional[int] = typer.Option(
        None,
        "--set", "-s",
        help="Only this set",
    ),
    quality: Optional[int] = typer.Option(
        None,
        "--quality", "-q",
        min=0,
        max=3,
        help="Only touches with this quality code",
    ),
    context_quality: Optional[int] = typer.Option(
        None,
        "--context-quality",
        min=0,
        max=3,
        help="Only touches that followed a touch of this quality (e.g. the set before an attack)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output JSON file path",
    ),
):
    """
    Compute player and team statistics from a match log.

    Examples:
        rallyscout stats match.json                       # Whole match
        rallyscout stats match.json --side CASA --set 1  # One side, one set
        rallyscout stats match.json -o stats.json        # Save to JSON
    """
    snap = load_snapshot(snapshot)
    analysis = MatchAnalyzer().analyze(snap)
    filters = StatsFilter(
        side=parse_side_option(side),
        player_id=player,
        set_no=set_no,
        quality=quality,
        context_quality=context_quality,
    )
    result = analysis.statistics(filters)
    names = {Side.HOME: snap.match.home_name, Side.AWAY: snap.match.away_name}

    console.print(f"\n[bold]RallyScout Stats[/bold] - {names[Side.HOME]} vs {names[Side.AWAY]}")
    console.print(f"Rallies: [cyan]{len(analysis.rallies)}[/cyan]")
    if analysis.warnings:
        console.print(
            f"[yellow]{len(analysis.warnings)} data-quality warning(s)[/yellow] "
            "(see `rallyscout warnings`)"
        )
    console.print()

    _print_serve_reception_table(result)
    _print_attack_table(result)
    _print_destination_table(result)
    _print_team_table(result, names)

    if output:
        with open(output, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        console.print(f"\nStatistics saved to: [cyan]{output}[/cyan]")
