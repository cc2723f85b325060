"""Rally log normalization.

The store holds two overlapping representations of the same rallies: the
flat rally-phase records (one row per phase, every touch of the phase in
columns) and the granular action log (one row per touch). Each is wrapped
in an ``ActionSource`` adapter that yields canonical actions, so everything
downstream only ever sees ``CanonicalAction`` sequences.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace

from rallyscout.core.models import (
    ActionType,
    CanonicalAction,
    Player,
    Rally,
    Reason,
    Side,
)
from rallyscout.core.warnings import DataQualityWarning
from rallyscout.ingest.rows import ActionRecord, RallyRecord

logger = logging.getLogger(__name__)

KILL_CODE = 3


@dataclass(frozen=True)
class RallyHeader:
    """Header fields of one rally, taken from its phase records."""

    rally_id: str
    match_id: str
    set_no: int
    rally_no: int
    serving_side: Side
    serving_rotation: int
    receiving_side: Side
    receiving_rotation: int
    point_won_by: Side | None
    reason: Reason | None
    phases: int

    @classmethod
    def from_records(cls, records: Sequence[RallyRecord]) -> RallyHeader:
        """Build the header from a rally's phase records (sorted by phase)."""
        first, last = records[0], records[-1]
        return cls(
            rally_id=first.id,
            match_id=first.match_id,
            set_no=first.set_no,
            rally_no=first.rally_no,
            serving_side=first.serve_side,
            serving_rotation=first.serve_rot,
            receiving_side=first.recv_side,
            receiving_rotation=first.recv_rot,
            point_won_by=last.point_won_by,
            reason=last.reason,
            phases=len(records),
        )


class ActionSource(ABC):
    """Adapter turning one storage representation into canonical actions."""

    @abstractmethod
    def actions_for(self, header: RallyHeader) -> list[CanonicalAction]:
        """Canonical actions of the rally, ordered by sequence number."""

    @abstractmethod
    def has_rally(self, header: RallyHeader) -> bool:
        """Whether this source holds any touches for the rally."""


def _attack_side(record: RallyRecord) -> Side:
    """Guess which side attacked in a flat phase record from the rally outcome.

    Only used when none of the phase's actors is on the roster.
    """
    if record.point_won_by is not None:
        if record.reason == Reason.KILL:
            return record.point_won_by
        if record.reason in (Reason.ATTACK_ERROR, Reason.BLOCK):
            return record.point_won_by.opponent
    return record.recv_side


class FlatRecordSource(ActionSource):
    """Expands flat rally-phase records into synthetic touches.

    Each phase yields up to six actions in touch order; an action is present
    when its actor or its quality code is recorded. The attacking side of a
    phase is the roster side of its setter or attacker, so counter-attacks
    in later phases are credited to the team that made them.
    """

    def __init__(self, records: Iterable[RallyRecord], roster: Mapping[str, Player] | None = None):
        self.roster = dict(roster or {})
        self._by_rally: dict[tuple[str, int, int], list[RallyRecord]] = defaultdict(list)
        for record in records:
            self._by_rally[(record.match_id, record.set_no, record.rally_no)].append(record)
        for phases in self._by_rally.values():
            phases.sort(key=lambda r: r.phase)

    def _side_of(self, *player_ids: str | None) -> Side | None:
        """Roster side of the first listed player the roster knows."""
        for player_id in player_ids:
            player = self.roster.get(player_id) if player_id else None
            if player is not None:
                return player.side
        return None

    def has_rally(self, header: RallyHeader) -> bool:
        return bool(self.actions_for(header))

    def records_for(self, header: RallyHeader) -> list[RallyRecord]:
        return list(self._by_rally.get((header.match_id, header.set_no, header.rally_no), []))

    def actions_for(self, header: RallyHeader) -> list[CanonicalAction]:
        actions: list[CanonicalAction] = []
        for record in self.records_for(header):
            actions.extend(self._expand_phase(header.rally_id, record, len(actions)))
        return actions

    def _expand_phase(
        self, rally_id: str, record: RallyRecord, offset: int
    ) -> list[CanonicalAction]:
        blockers = tuple(p for p in (record.b2_player_id, record.b3_player_id) if p)
        primary_blocker = record.b1_player_id
        if primary_blocker is None and blockers:
            primary_blocker, blockers = blockers[0], blockers[1:]

        attack_side = self._side_of(record.a_player_id, record.setter_player_id)
        if attack_side is None:
            answering = self._side_of(primary_blocker, *blockers, record.d_player_id)
            attack_side = answering.opponent if answering else _attack_side(record)
        distribution_side = self._side_of(record.setter_player_id) or attack_side
        block_side = self._side_of(primary_blocker, *blockers) or attack_side.opponent
        defense_side = self._side_of(record.d_player_id) or attack_side.opponent

        candidates: list[tuple[ActionType, Side, str | None, int | None, dict]] = [
            (ActionType.SERVE, record.serve_side, record.s_player_id, record.s_code, {}),
            (ActionType.RECEPTION, record.recv_side, record.r_player_id, record.r_code, {}),
            (
                ActionType.DISTRIBUTION,
                distribution_side,
                record.setter_player_id,
                record.pass_code,
                {"destination": record.pass_destination},
            ),
            (
                ActionType.ATTACK,
                attack_side,
                record.a_player_id,
                record.a_code,
                {"kill_type": record.kill_type, "set_quality": record.a_pass_quality},
            ),
            (
                ActionType.BLOCK,
                block_side,
                primary_blocker,
                record.b_code,
                {"aux_player_ids": blockers},
            ),
            (ActionType.DEFENSE, defense_side, record.d_player_id, record.d_code, {}),
        ]

        attack_recorded = record.a_player_id is not None or record.a_code is not None
        actions = []
        for action_type, side, player_id, quality, extra in candidates:
            if player_id is None and quality is None:
                continue
            if action_type == ActionType.DISTRIBUTION and attack_recorded:
                # set and attack share the row, so the set's outcome is known
                extra = {**extra, "outcome": record.a_code}
            actions.append(
                CanonicalAction(
                    rally_id=rally_id,
                    sequence_no=offset + len(actions) + 1,
                    action_type=action_type,
                    side=side,
                    player_id=player_id,
                    quality=quality,
                    **extra,
                )
            )
        return actions


class ActionLogSource(ActionSource):
    """Reads the granular action log.

    Action rows reference their rally through the id of any of the rally's
    phase records.
    """

    def __init__(self, records: Iterable[ActionRecord], rally_records: Iterable[RallyRecord]):
        phase_to_key = {r.id: (r.match_id, r.set_no, r.rally_no) for r in rally_records}
        self._by_rally: dict[tuple[str, int, int], list[ActionRecord]] = defaultdict(list)
        self.orphans: list[ActionRecord] = []
        for record in records:
            key = phase_to_key.get(record.rally_id)
            if key is None:
                self.orphans.append(record)
                continue
            self._by_rally[key].append(record)
        for rows in self._by_rally.values():
            rows.sort(key=lambda r: r.sequence_no)
        if self.orphans:
            logger.warning(
                "Skipping %d action row(s) whose rally record is missing", len(self.orphans)
            )

    def has_rally(self, header: RallyHeader) -> bool:
        return bool(self._by_rally.get((header.match_id, header.set_no, header.rally_no)))

    def records_for(self, header: RallyHeader) -> list[ActionRecord]:
        return list(self._by_rally.get((header.match_id, header.set_no, header.rally_no), []))

    def actions_for(self, header: RallyHeader) -> list[CanonicalAction]:
        actions = []
        for record in self.records_for(header):
            if record.action_type == ActionType.DISTRIBUTION:
                quality = record.code if record.code is not None else record.pass_code
            else:
                quality = record.code
            if record.action_type == ActionType.BLOCK:
                aux = tuple(p for p in (record.b2_player_id, record.b3_player_id) if p)
            else:
                aux = ()
            actions.append(
                CanonicalAction(
                    rally_id=header.rally_id,
                    sequence_no=record.sequence_no,
                    action_type=record.action_type,
                    side=record.side,
                    player_id=record.player_id,
                    quality=quality,
                    aux_player_ids=aux,
                    destination=record.pass_destination,
                    kill_type=record.kill_type,
                )
            )
        return actions


class RallyLogNormalizer:
    """Merges both representations into one canonical rally list per match.

    The action log is authoritative for any rally it covers. When both
    representations hold a rally and the action log has fewer touches than
    the flat records imply, a discrepancy warning is attached.
    """

    def __init__(
        self,
        rally_records: Sequence[RallyRecord],
        action_records: Sequence[ActionRecord] = (),
        roster: Mapping[str, Player] | None = None,
    ):
        self.rally_records = list(rally_records)
        self.flat = FlatRecordSource(self.rally_records, roster)
        self.granular = ActionLogSource(action_records, self.rally_records)

    def headers(self) -> list[RallyHeader]:
        grouped: dict[tuple[str, int, int], list[RallyRecord]] = defaultdict(list)
        for record in self.rally_records:
            grouped[(record.match_id, record.set_no, record.rally_no)].append(record)
        headers = [
            RallyHeader.from_records(sorted(phases, key=lambda r: r.phase))
            for phases in grouped.values()
        ]
        return sorted(headers, key=lambda h: (h.set_no, h.rally_no))

    def normalize(self) -> list[Rally]:
        rallies = [self.normalize_rally(header) for header in self.headers()]
        logger.debug("Normalized %d rallies", len(rallies))
        return rallies

    def normalize_rally(self, header: RallyHeader) -> Rally:
        warnings: list[DataQualityWarning] = []
        flat_actions = self.flat.actions_for(header)

        if self.granular.has_rally(header):
            actions = self.granular.actions_for(header)
            warnings.extend(_sequence_conflicts(header.rally_id, actions))
            if len(actions) < len(flat_actions):
                warnings.append(
                    DataQualityWarning.representation_discrepancy(
                        header.rally_id, granular=len(actions), flat=len(flat_actions)
                    )
                )
        else:
            actions = flat_actions

        actions = _stamp_outcome(actions, header)
        warnings.extend(_action_warnings(actions))

        return Rally(
            rally_id=header.rally_id,
            match_id=header.match_id,
            set_no=header.set_no,
            rally_no=header.rally_no,
            serving_side=header.serving_side,
            serving_rotation=header.serving_rotation,
            receiving_side=header.receiving_side,
            receiving_rotation=header.receiving_rotation,
            actions=actions,
            point_won_by=header.point_won_by,
            reason=header.reason,
            phases=header.phases,
            warnings=warnings,
        )


def _stamp_outcome(actions: list[CanonicalAction], header: RallyHeader) -> list[CanonicalAction]:
    """Put the rally outcome on the last touch, the rally's terminal action."""
    if not actions or header.point_won_by is None:
        return actions
    last = actions[-1]
    return actions[:-1] + [replace(last, point_won_by=header.point_won_by, reason=header.reason)]


def _sequence_conflicts(rally_id: str, actions: Sequence[CanonicalAction]) -> list[DataQualityWarning]:
    seen: set[int] = set()
    warnings = []
    for action in actions:
        if action.sequence_no in seen:
            warnings.append(DataQualityWarning.sequence_conflict(rally_id, action.sequence_no))
        seen.add(action.sequence_no)
    return warnings


def _action_warnings(actions: Sequence[CanonicalAction]) -> list[DataQualityWarning]:
    warnings = []
    for action in actions:
        if action.is_partial:
            warnings.append(
                DataQualityWarning.partial_action(
                    action.rally_id,
                    action.sequence_no,
                    action.action_type.value,
                    has_actor=action.player_id is not None,
                )
            )
        if (
            action.action_type == ActionType.ATTACK
            and action.quality == KILL_CODE
            and action.kill_type is None
        ):
            warnings.append(DataQualityWarning.missing_kill_type(action.rally_id, action.sequence_no))
    return warnings


def normalize_rallies(
    rally_records: Sequence[RallyRecord],
    action_records: Sequence[ActionRecord] = (),
    roster: Mapping[str, Player] | None = None,
) -> list[Rally]:
    """Normalize a match's store rows into canonical rallies, ordered by set and rally.

    ``roster`` maps player ids to roster entries; flat phases use it to find
    which side set, attacked, blocked and defended.
    """
    return RallyLogNormalizer(rally_records, action_records, roster).normalize()
