"""Per-player folds, one per action family.

Each ``compute_*`` function folds an already-filtered enriched action list
into fresh result records. Nothing is cached or mutated between calls.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from rallyscout.analysis.correlator import Correlation
from rallyscout.core.config import RatingConfig
from rallyscout.core.models import ActionType, Destination, Side
from rallyscout.statistics.enrichment import EnrichedAction

KILL = 3
ERROR = 0
BLOCKED = 1
DEFENDED = 2
QUALITY_CODES = (0, 1, 2, 3)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _pct(numerator: float, denominator: float) -> int:
    return round(100 * numerator / denominator) if denominator else 0


def _of_type(actions: Iterable[EnrichedAction], action_type: ActionType) -> list[EnrichedAction]:
    return [a for a in actions if a.action_type == action_type]


def _rated(actions: Iterable[EnrichedAction]) -> list[EnrichedAction]:
    return [a for a in actions if a.player_id is not None and a.quality is not None]


def _by_player(actions: Iterable[EnrichedAction]) -> dict[str, list[EnrichedAction]]:
    grouped: dict[str, list[EnrichedAction]] = defaultdict(list)
    for action in actions:
        if action.player_id is not None:
            grouped[action.player_id].append(action)
    return grouped


def _rating(points: int, errors: int, attempts: int) -> float:
    """0-3 rating: points weigh 3, continued balls 1.5, errors 0."""
    if not attempts:
        return 0.0
    return (points * 3 + (attempts - points - errors) * 1.5) / attempts


# =============================================================================
# Serve
# =============================================================================


@dataclass(frozen=True)
class ServeStats:
    player_id: str
    side: Side
    attempts: int
    aces: int
    errors: int
    by_code: dict[int, int]

    @property
    def efficiency(self) -> float:
        return _ratio(self.aces - self.errors, self.attempts)

    @property
    def rating(self) -> float:
        return _rating(self.aces, self.errors, self.attempts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "side": self.side.value,
            "attempts": self.attempts,
            "aces": self.aces,
            "errors": self.errors,
            "byCode": {str(k): v for k, v in self.by_code.items()},
            "efficiency": self.efficiency,
            "rating": self.rating,
        }


def compute_serve_stats(actions: Iterable[EnrichedAction]) -> dict[str, ServeStats]:
    serves = _rated(_of_type(actions, ActionType.SERVE))
    result = {}
    for player_id, rows in _by_player(serves).items():
        codes = Counter(a.quality for a in rows)
        result[player_id] = ServeStats(
            player_id=player_id,
            side=rows[0].side,
            attempts=len(rows),
            aces=codes[KILL],
            errors=codes[ERROR],
            by_code={q: codes[q] for q in QUALITY_CODES},
        )
    return result


# =============================================================================
# Reception / defense
# =============================================================================


@dataclass(frozen=True)
class QualityStats:
    """Distribution of 0-3 codes for reception or defense."""

    player_id: str
    side: Side
    family: ActionType
    by_code: dict[int, int]

    @property
    def total(self) -> int:
        return sum(self.by_code.values())

    @property
    def errors(self) -> int:
        return self.by_code.get(0, 0)

    @property
    def positive_pct(self) -> int:
        return _pct(self.by_code.get(2, 0) + self.by_code.get(3, 0), self.total)

    @property
    def excellent_pct(self) -> int:
        return _pct(self.by_code.get(3, 0), self.total)

    @property
    def average(self) -> float:
        return _ratio(sum(q * n for q, n in self.by_code.items()), self.total)

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "side": self.side.value,
            "family": self.family.value,
            "total": self.total,
            "q0": self.by_code.get(0, 0),
            "q1": self.by_code.get(1, 0),
            "q2": self.by_code.get(2, 0),
            "q3": self.by_code.get(3, 0),
            "errors": self.errors,
            "positivePct": self.positive_pct,
            "excellentPct": self.excellent_pct,
            "average": self.average,
        }


def compute_quality_stats(
    actions: Iterable[EnrichedAction], family: ActionType
) -> dict[str, QualityStats]:
    rows_of_family = _rated(_of_type(actions, family))
    result = {}
    for player_id, rows in _by_player(rows_of_family).items():
        codes = Counter(a.quality for a in rows)
        result[player_id] = QualityStats(
            player_id=player_id,
            side=rows[0].side,
            family=family,
            by_code={q: codes[q] for q in QUALITY_CODES},
        )
    return result


# =============================================================================
# Attack
# =============================================================================


@dataclass(frozen=True)
class AttackSplit:
    """Attack outcomes for one slice of attempts."""

    attempts: int = 0
    kills: int = 0
    errors: int = 0
    blocked: int = 0  # stuffed by a point block

    @property
    def efficiency(self) -> float:
        return _ratio(self.kills - self.errors - self.blocked, self.attempts)

    @property
    def kill_rate(self) -> float:
        return _ratio(self.kills, self.attempts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "kills": self.kills,
            "errors": self.errors,
            "blocked": self.blocked,
            "efficiency": self.efficiency,
            "killRate": self.kill_rate,
        }


def fold_attacks(attacks: Sequence[EnrichedAction]) -> AttackSplit:
    return AttackSplit(
        attempts=len(attacks),
        kills=sum(1 for a in attacks if a.quality == KILL),
        errors=sum(1 for a in attacks if a.quality == ERROR),
        blocked=sum(1 for a in attacks if a.blocked_for_point),
    )


@dataclass(frozen=True)
class AttackStats:
    player_id: str
    side: Side
    total: AttackSplit
    good: AttackSplit  # set quality at or above the threshold
    bad: AttackSplit
    by_distribution: dict[int, AttackSplit] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "side": self.side.value,
            **self.total.to_dict(),
            "good": self.good.to_dict(),
            "bad": self.bad.to_dict(),
            "byDistribution": {str(k): v.to_dict() for k, v in self.by_distribution.items()},
        }


def compute_attack_stats(
    actions: Iterable[EnrichedAction], rating: RatingConfig
) -> dict[str, AttackStats]:
    attacks = _rated(_of_type(actions, ActionType.ATTACK))
    threshold = rating.good_quality_threshold
    result = {}
    for player_id, rows in _by_player(attacks).items():
        good = [a for a in rows if a.context_quality is not None and a.context_quality >= threshold]
        bad = [a for a in rows if a.context_quality is not None and a.context_quality < threshold]
        by_distribution = {
            q: fold_attacks([a for a in rows if a.context_quality == q])
            for q in QUALITY_CODES
            if any(a.context_quality == q for a in rows)
        }
        result[player_id] = AttackStats(
            player_id=player_id,
            side=rows[0].side,
            total=fold_attacks(rows),
            good=fold_attacks(good),
            bad=fold_attacks(bad),
            by_distribution=by_distribution,
        )
    return result


@dataclass(frozen=True)
class DistributionBreakdown:
    """Team attack outcomes for one set quality, against the expected kill rate."""

    quality: int
    split: AttackSplit
    expected_kill_rate: float
    top_attackers: tuple[str, ...] = ()

    @property
    def kill_rate_delta(self) -> float:
        return self.split.kill_rate - self.expected_kill_rate

    def to_dict(self) -> dict[str, Any]:
        return {
            "quality": self.quality,
            **self.split.to_dict(),
            "expectedKillRate": self.expected_kill_rate,
            "killRateDelta": self.kill_rate_delta,
            "topAttackers": list(self.top_attackers),
        }


def compute_attack_breakdown(
    actions: Iterable[EnrichedAction], rating: RatingConfig
) -> dict[int, DistributionBreakdown]:
    attacks = _rated(_of_type(actions, ActionType.ATTACK))
    result = {}
    for quality in QUALITY_CODES:
        rows = [a for a in attacks if a.context_quality == quality]
        per_player = {pid: fold_attacks(r) for pid, r in _by_player(rows).items()}
        ranked = sorted(
            per_player.items(), key=lambda item: (-item[1].kills, -item[1].kill_rate, item[0])
        )
        result[quality] = DistributionBreakdown(
            quality=quality,
            split=fold_attacks(rows),
            expected_kill_rate=rating.expected_kill_rate.get(quality, 0.0),
            top_attackers=tuple(pid for pid, _ in ranked[: rating.top_attackers]),
        )
    return result


# =============================================================================
# Block
# =============================================================================


@dataclass(frozen=True)
class BlockStats:
    player_id: str
    side: Side
    attempts: int
    points: int
    errors: int
    touches: int  # codes 1-2

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "side": self.side.value,
            "attempts": self.attempts,
            "points": self.points,
            "errors": self.errors,
            "touches": self.touches,
        }


def compute_block_stats(actions: Iterable[EnrichedAction]) -> dict[str, BlockStats]:
    """Every listed blocker is credited with the block's outcome."""
    counts: dict[str, Counter] = defaultdict(Counter)
    sides: dict[str, Side] = {}
    for block in _of_type(actions, ActionType.BLOCK):
        if block.quality is None:
            continue
        for player_id in block.player_ids:
            counts[player_id][block.quality] += 1
            sides[player_id] = block.side
    return {
        pid: BlockStats(
            player_id=pid,
            side=sides[pid],
            attempts=sum(c.values()),
            points=c[KILL],
            errors=c[ERROR],
            touches=c[1] + c[2],
        )
        for pid, c in counts.items()
    }


# =============================================================================
# Distribution
# =============================================================================


@dataclass(frozen=True)
class DistributionStats:
    """Where a setter sends the ball."""

    player_id: str
    side: Side
    total: int
    incomplete: int  # sets recorded without a destination
    destinations: dict[Destination, int]
    by_reception: dict[int, dict[Destination, int]]
    within_available: int  # sets to a position available for that first-touch quality
    with_context: int

    @property
    def preference(self) -> list[tuple[Destination, int]]:
        return sorted(self.destinations.items(), key=lambda item: (-item[1], item[0].value))

    @property
    def located(self) -> int:
        return self.total - self.incomplete

    @property
    def top2(self) -> str:
        parts = [f"{dest.value} {_pct(n, self.located)}%" for dest, n in self.preference[:2]]
        return " | ".join(parts)

    @property
    def within_available_pct(self) -> int:
        return _pct(self.within_available, self.with_context)

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "side": self.side.value,
            "total": self.total,
            "incomplete": self.incomplete,
            "destinations": {d.value: n for d, n in self.preference},
            "top2": self.top2,
            "byReception": {
                str(q): {d.value: n for d, n in dests.items()}
                for q, dests in self.by_reception.items()
            },
            "withinAvailablePct": self.within_available_pct,
        }


def compute_distribution_stats(
    actions: Iterable[EnrichedAction], rating: RatingConfig
) -> dict[str, DistributionStats]:
    distributions = [
        a for a in _of_type(actions, ActionType.DISTRIBUTION) if a.player_id is not None
    ]
    result = {}
    for player_id, rows in _by_player(distributions).items():
        destinations: Counter = Counter()
        by_reception: dict[int, Counter] = defaultdict(Counter)
        within = with_context = 0
        for row in rows:
            if row.destination is None:
                continue
            destinations[row.destination] += 1
            if row.context_quality is None:
                continue
            by_reception[row.context_quality][row.destination] += 1
            with_context += 1
            available = rating.positions_by_reception.get(row.context_quality, [])
            if row.destination.value in available:
                within += 1
        result[player_id] = DistributionStats(
            player_id=player_id,
            side=rows[0].side,
            total=len(rows),
            incomplete=sum(1 for r in rows if r.destination is None),
            destinations=dict(destinations),
            by_reception={q: dict(c) for q, c in sorted(by_reception.items())},
            within_available=within,
            with_context=with_context,
        )
    return result


@dataclass(frozen=True)
class DestinationStats:
    """Attack outcomes attributed to a set destination through correlation."""

    side: Side
    destination: Destination
    attempts: int
    kills: int
    errors: int
    blocked: int
    defended: int

    @property
    def kill_rate(self) -> float:
        return _ratio(self.kills, self.attempts)

    @property
    def efficiency(self) -> float:
        return _ratio(self.kills - self.errors, self.attempts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side.value,
            "destination": self.destination.value,
            "attempts": self.attempts,
            "kills": self.kills,
            "errors": self.errors,
            "blocked": self.blocked,
            "defended": self.defended,
            "killRate": self.kill_rate,
            "efficiency": self.efficiency,
        }


def compute_destination_stats(
    correlations: Iterable[Correlation],
) -> dict[tuple[Side, Destination], DestinationStats]:
    """Fold resolved correlations. Missing destinations and outcomes are skipped."""
    counts: dict[tuple[Side, Destination], Counter] = defaultdict(Counter)
    for correlation in correlations:
        if correlation.destination is None or correlation.outcome is None:
            continue
        counts[(correlation.side, correlation.destination)][correlation.outcome] += 1
    return {
        key: DestinationStats(
            side=key[0],
            destination=key[1],
            attempts=sum(c.values()),
            kills=c[KILL],
            errors=c[ERROR],
            blocked=c[BLOCKED],
            defended=c[DEFENDED],
        )
        for key, c in sorted(counts.items(), key=lambda item: (item[0][0].value, item[0][1].value))
    }


# =============================================================================
# Errors
# =============================================================================


@dataclass(frozen=True)
class ErrorStats:
    player_id: str
    side: Side
    serve_errors: int = 0
    reception_errors: int = 0
    attack_errors: int = 0
    block_errors: int = 0

    @property
    def total(self) -> int:
        return self.serve_errors + self.reception_errors + self.attack_errors + self.block_errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "side": self.side.value,
            "serveErrors": self.serve_errors,
            "receptionErrors": self.reception_errors,
            "attackErrors": self.attack_errors,
            "blockErrors": self.block_errors,
            "total": self.total,
        }


_ERROR_FIELDS = {
    ActionType.SERVE: "serve_errors",
    ActionType.RECEPTION: "reception_errors",
    ActionType.ATTACK: "attack_errors",
    ActionType.BLOCK: "block_errors",
}


def compute_error_stats(actions: Iterable[EnrichedAction]) -> dict[str, ErrorStats]:
    counts: dict[str, Counter] = defaultdict(Counter)
    sides: dict[str, Side] = {}
    for action in actions:
        name = _ERROR_FIELDS.get(action.action_type)
        if name is None or action.quality != ERROR:
            continue
        for player_id in action.player_ids:
            counts[player_id][name] += 1
            sides[player_id] = action.side
    return {
        pid: ErrorStats(player_id=pid, side=sides[pid], **c) for pid, c in counts.items()
    }
