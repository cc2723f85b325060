"""Domain models for RallyScout."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rallyscout.core.warnings import DataQualityWarning


class Side(str, Enum):
    """Team side as stored by the scouting app."""

    HOME = "CASA"
    AWAY = "FORA"

    @property
    def opponent(self) -> Side:
        return Side.AWAY if self is Side.HOME else Side.HOME


class ActionType(str, Enum):
    """Touch types, listed in the order they occur within a phase."""

    SERVE = "serve"
    RECEPTION = "reception"
    DISTRIBUTION = "distribution"
    ATTACK = "attack"
    BLOCK = "block"
    DEFENSE = "defense"

    @classmethod
    def parse(cls, value: str) -> ActionType:
        """Parse a stored action type, accepting the legacy ``setter`` alias."""
        value = value.strip().lower()
        if value in ("setter", "set"):
            return cls.DISTRIBUTION
        return cls(value)


class Destination(str, Enum):
    """Where the setter sent the ball."""

    P2 = "P2"
    P3 = "P3"
    P4 = "P4"
    OP = "OP"
    PIPE = "PIPE"
    BACK = "BACK"
    OTHER = "OUTROS"


class KillType(str, Enum):
    FLOOR = "FLOOR"
    BLOCKOUT = "BLOCKOUT"


class Reason(str, Enum):
    """Why the rally ended."""

    ACE = "ACE"  # serve ace
    SERVE_ERROR = "SE"
    KILL = "KILL"
    ATTACK_ERROR = "AE"
    BLOCK = "BLK"  # stuff block point
    DEFENSE_ERROR = "DEF"
    OPPONENT_ERROR = "OP"


LIBERO_POSITIONS = frozenset({"L", "LIBERO", "LIB"})
MIDDLE_POSITIONS = frozenset({"MB", "C", "CENTRAL", "M"})


@dataclass(frozen=True)
class Player:
    """Roster entry for one player of a match."""

    player_id: str
    side: Side
    number: int | None = None
    name: str = ""
    position: str | None = None

    @property
    def is_libero(self) -> bool:
        return (self.position or "").upper() in LIBERO_POSITIONS

    @property
    def is_middle(self) -> bool:
        return (self.position or "").upper() in MIDDLE_POSITIONS

    @property
    def label(self) -> str:
        if self.number is not None and self.name:
            return f"#{self.number} {self.name}"
        if self.number is not None:
            return f"#{self.number}"
        return self.name or self.player_id


@dataclass(frozen=True)
class CanonicalAction:
    """One touch of the ball, independent of how it was stored.

    ``outcome`` is only set on distributions expanded from a flat phase record,
    where the attack result is stored on the same row as the set destination.
    ``set_quality`` is the set quality recorded on a flat attack itself.
    ``point_won_by``/``reason`` are only set on the rally's terminal action.
    """

    rally_id: str
    sequence_no: int
    action_type: ActionType
    side: Side
    player_id: str | None = None
    quality: int | None = None
    aux_player_ids: tuple[str, ...] = ()
    destination: Destination | None = None
    outcome: int | None = None
    set_quality: int | None = None
    kill_type: KillType | None = None
    point_won_by: Side | None = None
    reason: Reason | None = None

    @property
    def is_terminal(self) -> bool:
        return self.point_won_by is not None

    @property
    def is_partial(self) -> bool:
        """Actor without a quality code, or a code without an actor.

        A block code alone is meaningful (the blockers may be unknown), so
        blocks are only partial in the first case.
        """
        if self.player_id is not None and self.quality is None:
            return True
        return (
            self.quality is not None
            and self.player_id is None
            and self.action_type != ActionType.BLOCK
        )

    @property
    def player_ids(self) -> tuple[str, ...]:
        """Primary actor followed by any auxiliary blockers."""
        primary = (self.player_id,) if self.player_id is not None else ()
        return primary + self.aux_player_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "rallyId": self.rally_id,
            "sequenceNo": self.sequence_no,
            "type": self.action_type.value,
            "side": self.side.value,
            "playerId": self.player_id,
            "qualityCode": self.quality,
            "auxPlayerIds": list(self.aux_player_ids),
            "destination": self.destination.value if self.destination else None,
            "outcome": self.outcome,
            "setQuality": self.set_quality,
            "killType": self.kill_type.value if self.kill_type else None,
            "pointWonBy": self.point_won_by.value if self.point_won_by else None,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class Rally:
    """A canonical rally: header fields fixed at creation plus ordered touches."""

    rally_id: str
    match_id: str
    set_no: int
    rally_no: int
    serving_side: Side
    serving_rotation: int
    receiving_side: Side
    receiving_rotation: int
    actions: list[CanonicalAction] = field(default_factory=list)
    point_won_by: Side | None = None
    reason: Reason | None = None
    phases: int = 1
    warnings: list[DataQualityWarning] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, int, int]:
        return (self.match_id, self.set_no, self.rally_no)

    @property
    def terminal_action(self) -> CanonicalAction | None:
        """The highest-sequence action carrying the point outcome."""
        terminal = [a for a in self.actions if a.is_terminal]
        return max(terminal, key=lambda a: a.sequence_no) if terminal else None

    @property
    def winner(self) -> Side | None:
        """Side that won the rally, or None while it is still being entered."""
        terminal = self.terminal_action
        if terminal is not None:
            return terminal.point_won_by
        return self.point_won_by

    @property
    def is_resolved(self) -> bool:
        return self.winner is not None

    @property
    def is_sideout(self) -> bool:
        return self.winner == self.receiving_side

    def rotation_of(self, side: Side) -> int:
        return self.serving_rotation if side == self.serving_side else self.receiving_rotation

    def to_dict(self) -> dict[str, Any]:
        return {
            "rallyId": self.rally_id,
            "matchId": self.match_id,
            "setNo": self.set_no,
            "rallyNo": self.rally_no,
            "servingSide": self.serving_side.value,
            "servingRotation": self.serving_rotation,
            "receivingSide": self.receiving_side.value,
            "receivingRotation": self.receiving_rotation,
            "pointWonBy": self.winner.value if self.winner else None,
            "phases": self.phases,
            "actions": [a.to_dict() for a in self.actions],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class BaseLineup:
    """Starting six for one side of one set (slot number -> player id).

    Slot ``n`` is the player standing in zone ``n`` at rotation 1.
    """

    set_no: int
    side: Side
    slots: dict[int, str]

    def slot_of(self, player_id: str) -> int | None:
        for slot, pid in self.slots.items():
            if pid == player_id:
                return slot
        return None


@dataclass(frozen=True)
class Substitution:
    """A recorded player exchange.

    Libero exchanges (``is_libero``) and replacements of unavailable players
    (``mandatory``) do not count against the regular substitution budget.
    """

    set_no: int
    side: Side
    rally_no: int
    player_out: str
    player_in: str
    is_libero: bool = False
    mandatory: bool = False
    order: int = 0

    @property
    def counts_against_budget(self) -> bool:
        return not (self.is_libero or self.mandatory)

    def to_dict(self) -> dict[str, Any]:
        return {
            "setNo": self.set_no,
            "side": self.side.value,
            "rallyNo": self.rally_no,
            "playerOut": self.player_out,
            "playerIn": self.player_in,
            "isLibero": self.is_libero,
            "mandatory": self.mandatory,
        }


@dataclass(frozen=True)
class TeamIncomplete:
    """Explicit declaration that a side cannot field six players."""

    set_no: int
    side: Side
    rally_no: int

    def to_dict(self) -> dict[str, Any]:
        return {"setNo": self.set_no, "side": self.side.value, "rallyNo": self.rally_no}
