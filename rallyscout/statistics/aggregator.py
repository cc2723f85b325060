"""Statistics aggregation for RallyScout."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from rallyscout.analysis.correlator import ActionCorrelator, Correlation, RallyCorrelation
from rallyscout.core.config import MatchConfig, RatingConfig, get_config
from rallyscout.core.models import ActionType, Destination, Player, Rally, Side
from rallyscout.statistics.enrichment import EnrichedAction, StatsFilter, enrich
from rallyscout.statistics.player_stats import (
    AttackStats,
    BlockStats,
    DestinationStats,
    DistributionBreakdown,
    DistributionStats,
    ErrorStats,
    QualityStats,
    ServeStats,
    compute_attack_breakdown,
    compute_attack_stats,
    compute_block_stats,
    compute_destination_stats,
    compute_distribution_stats,
    compute_error_stats,
    compute_quality_stats,
    compute_serve_stats,
)
from rallyscout.statistics.team_stats import SetKPIs, TeamStats, compute_set_kpis, compute_team_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerStatistics:
    """Every family of statistics for one player."""

    player_id: str
    side: Side
    name: str = ""
    serve: ServeStats | None = None
    reception: QualityStats | None = None
    attack: AttackStats | None = None
    block: BlockStats | None = None
    defense: QualityStats | None = None
    distribution: DistributionStats | None = None
    errors: ErrorStats | None = None

    def to_dict(self) -> dict[str, Any]:
        def dump(stats: Any) -> dict[str, Any] | None:
            return stats.to_dict() if stats is not None else None

        return {
            "playerId": self.player_id,
            "side": self.side.value,
            "name": self.name,
            "serve": dump(self.serve),
            "reception": dump(self.reception),
            "attack": dump(self.attack),
            "block": dump(self.block),
            "defense": dump(self.defense),
            "distribution": dump(self.distribution),
            "errors": dump(self.errors),
        }


@dataclass(frozen=True)
class MatchStatistics:
    """Result of one statistics query."""

    filters: StatsFilter
    players: dict[str, PlayerStatistics] = field(default_factory=dict)
    destinations: dict[tuple[Side, Destination], DestinationStats] = field(default_factory=dict)
    attack_breakdown: dict[int, DistributionBreakdown] = field(default_factory=dict)
    teams: dict[Side, TeamStats] = field(default_factory=dict)
    sets: list[SetKPIs] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        f = self.filters
        return {
            "filters": {
                "side": f.side.value if f.side else None,
                "playerId": f.player_id,
                "setNo": f.set_no,
                "quality": f.quality,
                "contextQuality": f.context_quality,
                "rotation": f.rotation,
            },
            "players": [p.to_dict() for p in self.players.values()],
            "destinations": [d.to_dict() for d in self.destinations.values()],
            "attackBreakdown": [b.to_dict() for b in self.attack_breakdown.values()],
            "teams": {side.value: t.to_dict() for side, t in self.teams.items()},
            "sets": [s.to_dict() for s in self.sets],
        }


class StatisticsAggregator:
    """Folds canonical rallies into per-player and per-team statistics.

    Rallies are enriched once at construction; each ``query`` applies its
    filters to that list and folds from scratch.
    """

    def __init__(
        self,
        rallies: Sequence[Rally],
        correlations: Iterable[RallyCorrelation] | None = None,
        players: Iterable[Player] = (),
        match: MatchConfig | None = None,
        rating: RatingConfig | None = None,
    ):
        config = get_config()
        self.match = match or config.match
        self.rating = rating or config.rating
        self.rallies = sorted(rallies, key=lambda r: (r.set_no, r.rally_no))
        if correlations is None:
            correlations = ActionCorrelator().correlate(self.rallies)
        self.correlations = list(correlations)
        self.roster = {p.player_id: p for p in players}
        self.actions: list[EnrichedAction] = enrich(
            self.rallies, self.correlations, self.rating.default_distribution_quality
        )

    def filtered(self, filters: StatsFilter | None = None) -> list[EnrichedAction]:
        return (filters or StatsFilter()).apply(self.actions)

    def query(self, filters: StatsFilter | None = None) -> MatchStatistics:
        filters = filters or StatsFilter()
        actions = filters.apply(self.actions)
        logger.debug("Folding %d of %d actions", len(actions), len(self.actions))

        families: dict[str, dict[str, Any]] = {
            "serve": compute_serve_stats(actions),
            "reception": compute_quality_stats(actions, ActionType.RECEPTION),
            "attack": compute_attack_stats(actions, self.rating),
            "block": compute_block_stats(actions),
            "defense": compute_quality_stats(actions, ActionType.DEFENSE),
            "distribution": compute_distribution_stats(actions, self.rating),
            "errors": compute_error_stats(actions),
        }
        if filters.player_id is not None:
            families = {
                name: {pid: s for pid, s in stats.items() if pid == filters.player_id}
                for name, stats in families.items()
            }

        return MatchStatistics(
            filters=filters,
            players=self._players(families),
            destinations=compute_destination_stats(self._correlations(filters)),
            attack_breakdown=compute_attack_breakdown(actions, self.rating),
            teams=self._teams(filters),
            sets=compute_set_kpis(filters.apply_rallies(self.rallies), self.match),
        )

    def _players(self, families: dict[str, dict[str, Any]]) -> dict[str, PlayerStatistics]:
        player_ids = sorted({pid for stats in families.values() for pid in stats})
        result = {}
        for pid in player_ids:
            found = {name: stats.get(pid) for name, stats in families.items()}
            side = next(s.side for s in found.values() if s is not None)
            player = self.roster.get(pid)
            result[pid] = PlayerStatistics(
                player_id=pid,
                side=side,
                name=player.label if player else "",
                **found,
            )
        return result

    def _correlations(self, filters: StatsFilter) -> Iterator[Correlation]:
        keep = {(a.action.rally_id, a.action.sequence_no) for a in filters.apply(self.actions)}
        for rally_correlation in self.correlations:
            for correlation in rally_correlation.correlations:
                # a correlation is kept when its distribution survives the filters
                if (correlation.rally_id, correlation.distribution_seq) in keep:
                    yield correlation

    def _teams(self, filters: StatsFilter) -> dict[Side, TeamStats]:
        rallies = filters.apply_rallies(self.rallies)
        sides = [filters.side] if filters.side is not None else [Side.HOME, Side.AWAY]
        return {side: compute_team_stats(rallies, side, self.match) for side in sides}
