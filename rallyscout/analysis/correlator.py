"""Distribution -> attack correlation.

Each side carries at most one pending distribution while a rally is scanned.
The pending state is an explicit tagged value (``Idle`` or ``Pending``), scoped
to one rally and dropped when the scan ends.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Union

from rallyscout.core.models import ActionType, CanonicalAction, Destination, Rally, Side
from rallyscout.core.warnings import DataQualityWarning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    """No distribution is waiting for an attack."""


@dataclass(frozen=True)
class Pending:
    """A distribution waiting for the same side's attack."""

    side: Side
    destination: Destination | None
    distribution: CanonicalAction


PendingState = Union[Idle, Pending]

IDLE = Idle()


@dataclass(frozen=True)
class Correlation:
    """A distribution paired with the attack outcome it produced."""

    rally_id: str
    side: Side
    destination: Destination | None
    distribution_seq: int
    attack_seq: int | None  # None when the distribution carried its own outcome
    outcome: int | None
    setter_id: str | None = None
    attacker_id: str | None = None
    distribution_quality: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rallyId": self.rally_id,
            "side": self.side.value,
            "destination": self.destination.value if self.destination else None,
            "distributionSeq": self.distribution_seq,
            "attackSeq": self.attack_seq,
            "outcome": self.outcome,
            "setterId": self.setter_id,
            "attackerId": self.attacker_id,
            "distributionQuality": self.distribution_quality,
        }


@dataclass
class RallyCorrelation:
    """Outcome of scanning one rally."""

    rally_id: str
    correlations: list[Correlation] = field(default_factory=list)
    abandoned: list[CanonicalAction] = field(default_factory=list)
    unresolved: list[CanonicalAction] = field(default_factory=list)
    warnings: list[DataQualityWarning] = field(default_factory=list)

    def for_attack(self, sequence_no: int) -> Correlation | None:
        """The correlation resolved by the attack at ``sequence_no``, if any."""
        for correlation in self.correlations:
            if correlation.attack_seq == sequence_no:
                return correlation
        return None


class ActionCorrelator:
    """Pairs distributions with the attacks that follow them."""

    def correlate_rally(self, rally: Rally) -> RallyCorrelation:
        result = RallyCorrelation(rally_id=rally.rally_id)
        pending: dict[Side, PendingState] = {Side.HOME: IDLE, Side.AWAY: IDLE}

        for action in sorted(rally.actions, key=lambda a: a.sequence_no):
            if action.action_type == ActionType.DISTRIBUTION:
                previous = pending[action.side]
                if isinstance(previous, Pending):
                    result.abandoned.append(previous.distribution)
                    logger.debug(
                        "Rally %s: distribution %d abandoned by %d",
                        rally.rally_id, previous.distribution.sequence_no, action.sequence_no,
                    )

                if action.outcome is not None:
                    result.correlations.append(self._resolve(result, action, None))
                    pending[action.side] = IDLE
                else:
                    pending[action.side] = Pending(action.side, action.destination, action)

            elif action.action_type == ActionType.ATTACK:
                state = pending[action.side]
                if isinstance(state, Pending):
                    result.correlations.append(self._resolve(result, state.distribution, action))
                    pending[action.side] = IDLE

        result.unresolved = [s.distribution for s in pending.values() if isinstance(s, Pending)]
        return result

    def correlate(self, rallies: Iterable[Rally]) -> list[RallyCorrelation]:
        return [self.correlate_rally(rally) for rally in rallies]

    @staticmethod
    def _resolve(
        result: RallyCorrelation,
        distribution: CanonicalAction,
        attack: CanonicalAction | None,
    ) -> Correlation:
        if distribution.destination is None:
            result.warnings.append(
                DataQualityWarning.missing_destination(distribution.rally_id, distribution.sequence_no)
            )
        return Correlation(
            rally_id=distribution.rally_id,
            side=distribution.side,
            destination=distribution.destination,
            distribution_seq=distribution.sequence_no,
            attack_seq=attack.sequence_no if attack else None,
            outcome=attack.quality if attack else distribution.outcome,
            setter_id=distribution.player_id,
            attacker_id=attack.player_id if attack else None,
            distribution_quality=distribution.quality,
        )
