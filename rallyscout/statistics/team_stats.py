"""Team folds over resolved rallies: side-out, break point, rotations, runs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from rallyscout.core.config import MatchConfig
from rallyscout.core.models import ActionType, Rally, Reason, Side

UNFORCED_REASONS = frozenset({Reason.SERVE_ERROR, Reason.ATTACK_ERROR, Reason.OPPONENT_ERROR})
CLUTCH_MARGIN = 5  # points from the set target where clutch time starts


def _pct(numerator: int, denominator: int) -> int:
    return round(100 * numerator / denominator) if denominator else 0


@dataclass(frozen=True)
class RotationStats:
    side: Side
    rotation: int
    sideout_attempts: int = 0
    sideout_points: int = 0
    break_attempts: int = 0
    break_points: int = 0

    @property
    def sideout_pct(self) -> int:
        return _pct(self.sideout_points, self.sideout_attempts)

    @property
    def break_pct(self) -> int:
        return _pct(self.break_points, self.break_attempts)

    @property
    def points_for(self) -> int:
        return self.sideout_points + self.break_points

    @property
    def points_against(self) -> int:
        return (
            self.sideout_attempts - self.sideout_points
            + self.break_attempts - self.break_points
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side.value,
            "rotation": self.rotation,
            "sideoutAttempts": self.sideout_attempts,
            "sideoutPoints": self.sideout_points,
            "sideoutPct": self.sideout_pct,
            "breakAttempts": self.break_attempts,
            "breakPoints": self.break_points,
            "breakPct": self.break_pct,
            "pointsFor": self.points_for,
            "pointsAgainst": self.points_against,
        }


@dataclass(frozen=True)
class TeamStats:
    """Team KPIs for one side over a set of rallies."""

    side: Side
    points: int
    sideout_attempts: int
    sideout_points: int
    break_attempts: int
    break_points: int
    longest_run: int
    unforced_errors: int  # points given away through SE, AE, OP
    clutch_points: int
    serve_attempts: int
    aces: int
    serve_errors: int
    reception_attempts: int
    perfect_receptions: int
    positive_receptions: int
    reception_errors: int
    attack_attempts: int
    kills: int
    attack_errors: int
    rotations: dict[int, RotationStats] = field(default_factory=dict)

    @property
    def sideout_pct(self) -> int:
        return _pct(self.sideout_points, self.sideout_attempts)

    @property
    def break_pct(self) -> int:
        return _pct(self.break_points, self.break_attempts)

    @property
    def worst_rotation(self) -> RotationStats | None:
        """Rotation with the lowest side-out rate, among those with two attempts or more."""
        candidates = [r for r in self.rotations.values() if r.sideout_attempts >= 2]
        if not candidates:
            return None
        return min(candidates, key=lambda r: (r.sideout_pct, r.rotation))

    def to_dict(self) -> dict[str, Any]:
        worst = self.worst_rotation
        return {
            "side": self.side.value,
            "points": self.points,
            "sideoutAttempts": self.sideout_attempts,
            "sideoutPoints": self.sideout_points,
            "sideoutPct": self.sideout_pct,
            "breakAttempts": self.break_attempts,
            "breakPoints": self.break_points,
            "breakPct": self.break_pct,
            "longestRun": self.longest_run,
            "unforcedErrors": self.unforced_errors,
            "clutchPoints": self.clutch_points,
            "serveAttempts": self.serve_attempts,
            "aces": self.aces,
            "serveErrors": self.serve_errors,
            "receptionAttempts": self.reception_attempts,
            "perfectReceptions": self.perfect_receptions,
            "positiveReceptions": self.positive_receptions,
            "receptionErrors": self.reception_errors,
            "attackAttempts": self.attack_attempts,
            "kills": self.kills,
            "attackErrors": self.attack_errors,
            "worstRotation": worst.rotation if worst else None,
            "rotations": [r.to_dict() for _, r in sorted(self.rotations.items())],
        }


def _resolved(rallies: Iterable[Rally]) -> list[Rally]:
    return sorted((r for r in rallies if r.is_resolved), key=lambda r: (r.set_no, r.rally_no))


def longest_run(rallies: Sequence[Rally], side: Side) -> int:
    """Longest streak of consecutive points within a set."""
    best = current = 0
    current_set = None
    for rally in _resolved(rallies):
        if rally.set_no != current_set:
            current_set, current = rally.set_no, 0
        current = current + 1 if rally.winner == side else 0
        best = max(best, current)
    return best


def clutch_points(rallies: Sequence[Rally], side: Side, match: MatchConfig) -> int:
    """Points won once either side is within the clutch margin of the set target."""
    won = 0
    score = {Side.HOME: 0, Side.AWAY: 0}
    current_set = None
    for rally in _resolved(rallies):
        if rally.set_no != current_set:
            current_set = rally.set_no
            score = {Side.HOME: 0, Side.AWAY: 0}
        threshold = match.target_for_set(rally.set_no) - CLUTCH_MARGIN
        if max(score.values()) >= threshold and rally.winner == side:
            won += 1
        score[rally.winner] += 1
    return won


def compute_rotation_stats(rallies: Iterable[Rally], side: Side) -> dict[int, RotationStats]:
    counts: dict[int, list[int]] = {}
    for rally in _resolved(rallies):
        rotation = rally.rotation_of(side)
        row = counts.setdefault(rotation, [0, 0, 0, 0])
        won = rally.winner == side
        if rally.receiving_side == side:
            row[0] += 1
            row[1] += int(won)
        else:
            row[2] += 1
            row[3] += int(won)
    return {
        rotation: RotationStats(side, rotation, *row)
        for rotation, row in sorted(counts.items())
    }


def compute_team_stats(
    rallies: Iterable[Rally], side: Side, match: MatchConfig
) -> TeamStats:
    resolved = _resolved(rallies)
    receiving = [r for r in resolved if r.receiving_side == side]
    serving = [r for r in resolved if r.serving_side == side]
    actions = [a for r in resolved for a in r.actions if a.side == side]

    def codes(action_type: ActionType) -> list[int]:
        return [
            a.quality for a in actions
            if a.action_type == action_type and a.quality is not None
        ]

    serves = codes(ActionType.SERVE)
    receptions = codes(ActionType.RECEPTION)
    attacks = codes(ActionType.ATTACK)

    return TeamStats(
        side=side,
        points=sum(1 for r in resolved if r.winner == side),
        sideout_attempts=len(receiving),
        sideout_points=sum(1 for r in receiving if r.winner == side),
        break_attempts=len(serving),
        break_points=sum(1 for r in serving if r.winner == side),
        longest_run=longest_run(resolved, side),
        unforced_errors=sum(
            1 for r in resolved
            if r.winner == side.opponent and _reason(r) in UNFORCED_REASONS
        ),
        clutch_points=clutch_points(resolved, side, match),
        serve_attempts=len(serves),
        aces=serves.count(3),
        serve_errors=serves.count(0),
        reception_attempts=len(receptions),
        perfect_receptions=receptions.count(3),
        positive_receptions=sum(1 for q in receptions if q >= 2),
        reception_errors=receptions.count(0),
        attack_attempts=len(attacks),
        kills=attacks.count(3),
        attack_errors=attacks.count(0),
        rotations=compute_rotation_stats(resolved, side),
    )


def _reason(rally: Rally) -> Reason | None:
    terminal = rally.terminal_action
    return terminal.reason if terminal is not None else rally.reason


@dataclass(frozen=True)
class SetKPIs:
    """Both sides' team stats for one set, with the change from the previous set."""

    set_no: int
    home: TeamStats
    away: TeamStats
    sideout_delta: dict[Side, int | None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "setNo": self.set_no,
            "home": self.home.to_dict(),
            "away": self.away.to_dict(),
            "sideoutDelta": {side.value: delta for side, delta in self.sideout_delta.items()},
        }


def compute_set_kpis(rallies: Iterable[Rally], match: MatchConfig) -> list[SetKPIs]:
    rallies = list(rallies)
    kpis: list[SetKPIs] = []
    for set_no in sorted({r.set_no for r in rallies}):
        in_set = [r for r in rallies if r.set_no == set_no]
        home = compute_team_stats(in_set, Side.HOME, match)
        away = compute_team_stats(in_set, Side.AWAY, match)
        previous = kpis[-1] if kpis else None
        delta: dict[Side, int | None] = {
            Side.HOME: home.sideout_pct - previous.home.sideout_pct if previous else None,
            Side.AWAY: away.sideout_pct - previous.away.sideout_pct if previous else None,
        }
        kpis.append(SetKPIs(set_no=set_no, home=home, away=away, sideout_delta=delta))
    return kpis
