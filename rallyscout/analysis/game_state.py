"""Game state reconstruction by replaying canonical rallies.

Nothing here is tracked incrementally: score, server, rotation and
completion are re-derived from the rally list on every call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rallyscout.core.config import MatchConfig, get_config
from rallyscout.core.models import Rally, Side, TeamIncomplete
from rallyscout.core.warnings import DataQualityWarning

logger = logging.getLogger(__name__)

ROTATIONS = 6


class ReplayState(str, Enum):
    """Where the replay of a set stands."""

    FRESH = "fresh"  # no rallies yet
    MID_RALLY = "mid_rally"  # latest rally has no winner yet
    BETWEEN_RALLIES = "between_rallies"


@dataclass(frozen=True)
class GameState:
    """Authoritative state of a set derived from its rallies."""

    match_id: str
    set_no: int
    rally_no: int
    phase: int
    serving_side: Side
    serving_rotation: int
    receiving_side: Side
    receiving_rotation: int
    home_score: int
    away_score: int
    state: ReplayState

    @property
    def mid_rally(self) -> bool:
        return self.state == ReplayState.MID_RALLY

    def score_of(self, side: Side) -> int:
        return self.home_score if side == Side.HOME else self.away_score

    def rotation_of(self, side: Side) -> int:
        return self.serving_rotation if side == self.serving_side else self.receiving_rotation

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchId": self.match_id,
            "currentSet": self.set_no,
            "currentRally": self.rally_no,
            "currentPhase": self.phase,
            "serveSide": self.serving_side.value,
            "serveRot": self.serving_rotation,
            "recvSide": self.receiving_side.value,
            "recvRot": self.receiving_rotation,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "state": self.state.value,
            "midRally": self.mid_rally,
        }


@dataclass(frozen=True)
class SetResult:
    """Score and completion of one set."""

    set_no: int
    home_score: int
    away_score: int
    target: int
    complete: bool
    winner: Side | None = None
    incomplete_side: Side | None = None  # side declared unable to field six

    def to_dict(self) -> dict[str, Any]:
        return {
            "setNo": self.set_no,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "target": self.target,
            "complete": self.complete,
            "winner": self.winner.value if self.winner else None,
            "incompleteSide": self.incomplete_side.value if self.incomplete_side else None,
        }


@dataclass(frozen=True)
class MatchStatus:
    """Set wins and match completion."""

    sets: tuple[SetResult, ...]
    home_sets: int
    away_sets: int
    complete: bool
    winner: Side | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sets": [s.to_dict() for s in self.sets],
            "homeSets": self.home_sets,
            "awaySets": self.away_sets,
            "complete": self.complete,
            "winner": self.winner.value if self.winner else None,
        }


def next_rotation(rotation: int) -> int:
    """Advance one rotation slot (1 -> 2 -> ... -> 6 -> 1)."""
    return rotation % ROTATIONS + 1


def is_set_complete(home: int, away: int, target: int, min_lead: int = 2) -> bool:
    """A set ends once a side reaches the target with a clear lead."""
    return max(home, away) >= target and abs(home - away) >= min_lead


def first_server(set_no: int, match: MatchConfig) -> Side:
    """Side serving the first rally of a set.

    Odd sets start with the configured first server and even sets with the
    other side. The deciding set uses its own toss when one was recorded.
    """
    if set_no == match.deciding_set and match.deciding_set_serve_side is not None:
        return match.deciding_set_serve_side
    if set_no % 2 == 1:
        return match.first_serve_side
    return match.first_serve_side.opponent


class GameStateReconstructor:
    """Replays a match's canonical rallies into game state and results."""

    def __init__(
        self,
        match: MatchConfig | None = None,
        incomplete: Iterable[TeamIncomplete] = (),
        match_id: str = "",
    ):
        self.match = match or get_config().match
        self.incomplete = list(incomplete)
        self.match_id = match_id

    def set_rallies(self, rallies: Iterable[Rally], set_no: int) -> list[Rally]:
        return sorted((r for r in rallies if r.set_no == set_no), key=lambda r: r.rally_no)

    def score(self, rallies: Iterable[Rally], set_no: int) -> tuple[int, int]:
        """(home, away) points of a set, one point per resolved rally."""
        home = away = 0
        for rally in self.set_rallies(rallies, set_no):
            winner = rally.winner
            if winner == Side.HOME:
                home += 1
            elif winner == Side.AWAY:
                away += 1
        return home, away

    def fresh_state(self, set_no: int) -> GameState:
        server = first_server(set_no, self.match)
        return GameState(
            match_id=self.match_id,
            set_no=set_no,
            rally_no=1,
            phase=1,
            serving_side=server,
            serving_rotation=1,
            receiving_side=server.opponent,
            receiving_rotation=1,
            home_score=0,
            away_score=0,
            state=ReplayState.FRESH,
        )

    def replay_set(self, rallies: Iterable[Rally], set_no: int) -> GameState:
        """Derive the state of a set after its latest recorded rally."""
        set_rallies = self.set_rallies(rallies, set_no)
        if not set_rallies:
            return self.fresh_state(set_no)

        home, away = self.score(set_rallies, set_no)
        latest = set_rallies[-1]
        match_id = self.match_id or latest.match_id

        if not latest.is_resolved:
            return GameState(
                match_id=match_id,
                set_no=set_no,
                rally_no=latest.rally_no,
                phase=latest.phases + 1,
                serving_side=latest.serving_side,
                serving_rotation=latest.serving_rotation,
                receiving_side=latest.receiving_side,
                receiving_rotation=latest.receiving_rotation,
                home_score=home,
                away_score=away,
                state=ReplayState.MID_RALLY,
            )

        serving_side, serving_rotation, receiving_side, receiving_rotation = _after_rally(latest)
        return GameState(
            match_id=match_id,
            set_no=set_no,
            rally_no=latest.rally_no + 1,
            phase=1,
            serving_side=serving_side,
            serving_rotation=serving_rotation,
            receiving_side=receiving_side,
            receiving_rotation=receiving_rotation,
            home_score=home,
            away_score=away,
            state=ReplayState.BETWEEN_RALLIES,
        )

    def set_result(self, rallies: Iterable[Rally], set_no: int) -> SetResult:
        home, away = self.score(rallies, set_no)
        target = self.match.target_for_set(set_no)

        declared = _declaration_for(self.incomplete, set_no)
        if declared is not None:
            winner = declared.side.opponent
            loser_score = home if declared.side == Side.HOME else away
            winner_score = max(
                away if declared.side == Side.HOME else home,
                target,
                loser_score + self.match.min_lead,
            )
            if winner == Side.HOME:
                home = winner_score
            else:
                away = winner_score
            return SetResult(
                set_no=set_no,
                home_score=home,
                away_score=away,
                target=target,
                complete=True,
                winner=winner,
                incomplete_side=declared.side,
            )

        complete = is_set_complete(home, away, target, self.match.min_lead)
        winner = None
        if complete:
            winner = Side.HOME if home > away else Side.AWAY
        return SetResult(
            set_no=set_no,
            home_score=home,
            away_score=away,
            target=target,
            complete=complete,
            winner=winner,
        )

    def match_status(self, rallies: Iterable[Rally]) -> MatchStatus:
        rallies = list(rallies)
        set_numbers = sorted({r.set_no for r in rallies} | {d.set_no for d in self.incomplete})
        results: list[SetResult] = []
        wins = {Side.HOME: 0, Side.AWAY: 0}
        winner: Side | None = None

        for set_no in set_numbers:
            if winner is not None:
                logger.warning("Ignoring set %d recorded after the match was decided", set_no)
                continue
            result = self.set_result(rallies, set_no)
            results.append(result)
            if result.winner is not None:
                wins[result.winner] += 1
                if wins[result.winner] >= self.match.sets_to_win:
                    winner = result.winner

        return MatchStatus(
            sets=tuple(results),
            home_sets=wins[Side.HOME],
            away_sets=wins[Side.AWAY],
            complete=winner is not None,
            winner=winner,
        )

    def current_state(self, rallies: Iterable[Rally]) -> GameState:
        """State of the set being played, opening the next set once one closes."""
        rallies = list(rallies)
        set_numbers = [r.set_no for r in rallies] + [d.set_no for d in self.incomplete]
        if not set_numbers:
            return self.fresh_state(1)

        set_no = max(set_numbers)
        if self.set_result(rallies, set_no).complete and not self.match_status(rallies).complete:
            return self.fresh_state(set_no + 1)
        return self.replay_set(rallies, set_no)

    def rotation_warnings(self, rallies: Iterable[Rally], set_no: int) -> list[DataQualityWarning]:
        """Compare each rally header against the state the previous rally implies."""
        warnings = []
        fresh = self.fresh_state(set_no)
        expected = (
            fresh.serving_side,
            fresh.serving_rotation,
            fresh.receiving_side,
            fresh.receiving_rotation,
        )
        previous: Rally | None = None
        for rally in self.set_rallies(rallies, set_no):
            if previous is not None and previous.is_resolved:
                expected = _after_rally(previous)
            recorded = (
                rally.serving_side,
                rally.serving_rotation,
                rally.receiving_side,
                rally.receiving_rotation,
            )
            # a rally following an unresolved one cannot be checked
            if (previous is None or previous.is_resolved) and recorded != expected:
                warnings.append(
                    DataQualityWarning.rotation_mismatch(
                        rally.rally_id, _describe(recorded), _describe(expected)
                    )
                )
            previous = rally
        return warnings


def _after_rally(rally: Rally) -> tuple[Side, int, Side, int]:
    """Serving/receiving sides and rotations for the rally after ``rally``."""
    if rally.is_sideout:
        return (
            rally.receiving_side,
            next_rotation(rally.receiving_rotation),
            rally.serving_side,
            rally.serving_rotation,
        )
    return (
        rally.serving_side,
        rally.serving_rotation,
        rally.receiving_side,
        rally.receiving_rotation,
    )


def _describe(state: Sequence[Any]) -> str:
    serving_side, serving_rotation, receiving_side, receiving_rotation = state
    return (
        f"{serving_side.value} serving in R{serving_rotation}, "
        f"{receiving_side.value} receiving in R{receiving_rotation}"
    )


def _declaration_for(incomplete: Iterable[TeamIncomplete], set_no: int) -> TeamIncomplete | None:
    for declaration in incomplete:
        if declaration.set_no == set_no:
            return declaration
    return None
