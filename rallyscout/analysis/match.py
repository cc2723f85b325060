"""Match-level entry point: normalize, replay, correlate and aggregate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from rallyscout.analysis.correlator import ActionCorrelator, RallyCorrelation
from rallyscout.analysis.game_state import (
    GameState,
    GameStateReconstructor,
    MatchStatus,
)
from rallyscout.analysis.lineup import Eligibility, SubstitutionTracker
from rallyscout.core.cache import AnalysisCache
from rallyscout.core.config import RallyScoutConfig, get_config
from rallyscout.core.models import Rally, Side
from rallyscout.core.warnings import DataQualityWarning
from rallyscout.ingest.normalizer import normalize_rallies
from rallyscout.ingest.rows import MatchSnapshot
from rallyscout.statistics.aggregator import MatchStatistics, StatisticsAggregator
from rallyscout.statistics.enrichment import StatsFilter

logger = logging.getLogger(__name__)


@dataclass
class MatchAnalysis:
    """Everything derived from one snapshot of a match log."""

    match_id: str
    log_version: str | None
    rallies: list[Rally]
    correlations: list[RallyCorrelation]
    state: GameState
    status: MatchStatus
    aggregator: StatisticsAggregator = field(repr=False)

    @property
    def warnings(self) -> list[DataQualityWarning]:
        return [w for rally in self.rallies for w in rally.warnings]

    def statistics(self, filters: StatsFilter | None = None) -> MatchStatistics:
        return self.aggregator.query(filters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchId": self.match_id,
            "logVersion": self.log_version,
            "state": self.state.to_dict(),
            "status": self.status.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


class MatchAnalyzer:
    """Runs the full replay over a match snapshot, memoized per log version."""

    def __init__(
        self,
        config: RallyScoutConfig | None = None,
        cache: AnalysisCache[MatchAnalysis] | None = None,
    ):
        self.config = config or get_config()
        if cache is None and self.config.cache.enabled:
            cache = AnalysisCache(self.config.cache.max_entries)
        self.cache = cache
        self.correlator = ActionCorrelator()

    def reconstructor(self, snapshot: MatchSnapshot) -> GameStateReconstructor:
        return GameStateReconstructor(
            match=snapshot.match, incomplete=snapshot.incomplete, match_id=snapshot.match_id
        )

    def tracker(self, snapshot: MatchSnapshot) -> SubstitutionTracker:
        return SubstitutionTracker(
            snapshot.lineups,
            snapshot.substitutions,
            snapshot.players,
            match=snapshot.match,
            rotation=self.config.rotation,
        )

    def analyze(self, snapshot: MatchSnapshot) -> MatchAnalysis:
        if self.cache is not None:
            cached = self.cache.get(snapshot.match_id, snapshot.log_version)
            if cached is not None:
                return cached

        rallies = normalize_rallies(snapshot.rallies, snapshot.actions, snapshot.roster)
        correlations = self.correlator.correlate(rallies)
        reconstructor = self.reconstructor(snapshot)

        by_id = {rally.rally_id: rally for rally in rallies}
        for correlation in correlations:
            by_id[correlation.rally_id].warnings.extend(correlation.warnings)
        for set_no in sorted({r.set_no for r in rallies}):
            for warning in reconstructor.rotation_warnings(rallies, set_no):
                by_id[warning.rally_id].warnings.append(warning)

        analysis = MatchAnalysis(
            match_id=snapshot.match_id,
            log_version=snapshot.log_version,
            rallies=rallies,
            correlations=correlations,
            state=reconstructor.current_state(rallies),
            status=reconstructor.match_status(rallies),
            aggregator=StatisticsAggregator(
                rallies,
                correlations,
                snapshot.players,
                match=snapshot.match,
                rating=self.config.rating,
            ),
        )
        logger.info(
            "Match %s: %d rallies, %d warning(s)",
            snapshot.match_id, len(rallies), len(analysis.warnings),
        )
        if self.cache is not None:
            self.cache.set(snapshot.match_id, snapshot.log_version, analysis)
        return analysis

    def eligibility(
        self, snapshot: MatchSnapshot, side: Side, state: GameState | None = None
    ) -> Eligibility:
        """Libero and substitution flags for ``side`` at the current (or given) state."""
        state = state or self.analyze(snapshot).state
        return self.tracker(snapshot).eligibility(
            state.set_no,
            side,
            state.rally_no,
            rotation=state.rotation_of(side),
            receiving=state.receiving_side == side,
        )
