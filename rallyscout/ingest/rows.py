"""Row shapes read from the match store.

Rows arrive as plain mappings (as returned by the store client or exported
to a JSON snapshot). Parsing is lenient about extra keys and strict about the
fields replay depends on.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from rallyscout.core.config import MatchConfig
from rallyscout.core.errors import SnapshotError
from rallyscout.core.models import (
    ActionType,
    BaseLineup,
    Destination,
    KillType,
    Player,
    Reason,
    Side,
    Substitution,
    TeamIncomplete,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def _required(row: Mapping[str, Any], key: str, kind: str) -> Any:
    value = row.get(key)
    if value is None:
        raise SnapshotError(
            f"{kind} row is missing '{key}'",
            hint=f"Row: {dict(row)}",
        )
    return value


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _enum(enum_cls: type[E], value: Any, kind: str) -> E:
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)  # type: ignore[attr-defined]
        raise SnapshotError(
            f"Invalid {kind} value: {value!r}",
            hint=f"Expected one of: {allowed}",
        ) from e


def _opt_enum(enum_cls: type[E], value: Any, kind: str) -> E | None:
    if value is None or value == "":
        return None
    return _enum(enum_cls, value, kind)


def parse_side(value: Any) -> Side:
    return _enum(Side, value, "side")


@dataclass(frozen=True)
class RallyRecord:
    """Flat rally-phase record: one row aggregates every touch of a phase."""

    id: str
    match_id: str
    set_no: int
    rally_no: int
    phase: int
    serve_side: Side
    serve_rot: int
    recv_side: Side
    recv_rot: int
    point_won_by: Side | None = None
    reason: Reason | None = None
    s_player_id: str | None = None
    s_code: int | None = None
    r_player_id: str | None = None
    r_code: int | None = None
    setter_player_id: str | None = None
    pass_destination: Destination | None = None
    pass_code: int | None = None
    a_player_id: str | None = None
    a_code: int | None = None
    a_pass_quality: int | None = None
    kill_type: KillType | None = None
    b1_player_id: str | None = None
    b2_player_id: str | None = None
    b3_player_id: str | None = None
    b_code: int | None = None
    d_player_id: str | None = None
    d_code: int | None = None

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> RallyRecord:
        return cls(
            id=str(_required(row, "id", "Rally")),
            match_id=str(_required(row, "match_id", "Rally")),
            set_no=int(_required(row, "set_no", "Rally")),
            rally_no=int(_required(row, "rally_no", "Rally")),
            phase=_opt_int(row.get("phase")) or 1,
            serve_side=parse_side(_required(row, "serve_side", "Rally")),
            serve_rot=int(_required(row, "serve_rot", "Rally")),
            recv_side=parse_side(_required(row, "recv_side", "Rally")),
            recv_rot=int(_required(row, "recv_rot", "Rally")),
            point_won_by=_opt_enum(Side, row.get("point_won_by"), "point_won_by"),
            reason=_opt_enum(Reason, row.get("reason"), "reason"),
            s_player_id=_opt_str(row.get("s_player_id")),
            s_code=_opt_int(row.get("s_code")),
            r_player_id=_opt_str(row.get("r_player_id")),
            r_code=_opt_int(row.get("r_code")),
            setter_player_id=_opt_str(row.get("setter_player_id")),
            pass_destination=_opt_enum(Destination, row.get("pass_destination"), "pass_destination"),
            pass_code=_opt_int(row.get("pass_code")),
            a_player_id=_opt_str(row.get("a_player_id")),
            a_code=_opt_int(row.get("a_code")),
            a_pass_quality=_opt_int(row.get("a_pass_quality")),
            kill_type=_opt_enum(KillType, row.get("kill_type"), "kill_type"),
            b1_player_id=_opt_str(row.get("b1_player_id")),
            b2_player_id=_opt_str(row.get("b2_player_id")),
            b3_player_id=_opt_str(row.get("b3_player_id")),
            b_code=_opt_int(row.get("b_code")),
            d_player_id=_opt_str(row.get("d_player_id")),
            d_code=_opt_int(row.get("d_code")),
        )


@dataclass(frozen=True)
class ActionRecord:
    """Granular action-log row: one touch per row."""

    id: str
    rally_id: str
    sequence_no: int
    action_type: ActionType
    side: Side
    player_id: str | None = None
    code: int | None = None
    pass_destination: Destination | None = None
    pass_code: int | None = None
    kill_type: KillType | None = None
    b2_player_id: str | None = None
    b3_player_id: str | None = None

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> ActionRecord:
        raw_type = str(_required(row, "action_type", "Action"))
        try:
            action_type = ActionType.parse(raw_type)
        except ValueError as e:
            raise SnapshotError(
                f"Invalid action_type value: {raw_type!r}",
                hint="Expected serve, reception, setter, attack, block or defense",
            ) from e
        return cls(
            id=str(_required(row, "id", "Action")),
            rally_id=str(_required(row, "rally_id", "Action")),
            sequence_no=int(_required(row, "sequence_no", "Action")),
            action_type=action_type,
            side=parse_side(_required(row, "side", "Action")),
            player_id=_opt_str(row.get("player_id")),
            code=_opt_int(row.get("code")),
            pass_destination=_opt_enum(Destination, row.get("pass_destination"), "pass_destination"),
            pass_code=_opt_int(row.get("pass_code")),
            kill_type=_opt_enum(KillType, row.get("kill_type"), "kill_type"),
            b2_player_id=_opt_str(row.get("b2_player_id")),
            b3_player_id=_opt_str(row.get("b3_player_id")),
        )


def parse_player(row: Mapping[str, Any]) -> Player:
    return Player(
        player_id=str(_required(row, "id", "Player")),
        side=parse_side(_required(row, "side", "Player")),
        number=_opt_int(row.get("jersey_number")),
        name=str(row.get("name") or ""),
        position=_opt_str(row.get("position")),
    )


def parse_lineup(row: Mapping[str, Any]) -> BaseLineup:
    slots: dict[int, str] = {}
    for slot in range(1, 7):
        player_id = _opt_str(row.get(f"rot{slot}"))
        if player_id is not None:
            slots[slot] = player_id
    if len(slots) < 6:
        logger.warning(
            "Lineup for set %s side %s has only %d of 6 slots filled",
            row.get("set_no"), row.get("side"), len(slots),
        )
    return BaseLineup(
        set_no=int(_required(row, "set_no", "Lineup")),
        side=parse_side(_required(row, "side", "Lineup")),
        slots=slots,
    )


def parse_substitution(row: Mapping[str, Any], order: int = 0) -> Substitution:
    return Substitution(
        set_no=int(_required(row, "set_no", "Substitution")),
        side=parse_side(_required(row, "side", "Substitution")),
        rally_no=int(_required(row, "rally_no", "Substitution")),
        player_out=str(_required(row, "player_out_id", "Substitution")),
        player_in=str(_required(row, "player_in_id", "Substitution")),
        is_libero=bool(row.get("is_libero", False)),
        mandatory=bool(row.get("mandatory", False)),
        order=order,
    )


def parse_incomplete(row: Mapping[str, Any]) -> TeamIncomplete:
    return TeamIncomplete(
        set_no=int(_required(row, "set_no", "Incomplete")),
        side=parse_side(_required(row, "side", "Incomplete")),
        rally_no=int(_required(row, "rally_no", "Incomplete")),
    )


def parse_match_config(row: Mapping[str, Any], defaults: MatchConfig | None = None) -> MatchConfig:
    """Overlay the store's match row on the configured defaults."""
    base = (defaults or MatchConfig()).model_dump()
    overrides = {
        "home_name": row.get("home_name"),
        "away_name": row.get("away_name"),
        "first_serve_side": row.get("first_serve_side"),
        "deciding_set_serve_side": row.get("set5_serve_side"),
        "max_substitutions": row.get("max_substitutions"),
        "set_target": row.get("set_target"),
        "fifth_set_target": row.get("fifth_set_target"),
    }
    base.update({k: v for k, v in overrides.items() if v is not None})
    return MatchConfig(**base)


@dataclass
class MatchSnapshot:
    """Point-in-time export of everything the store holds for one match."""

    match_id: str
    match: MatchConfig = field(default_factory=MatchConfig)
    log_version: str | None = None
    players: list[Player] = field(default_factory=list)
    lineups: list[BaseLineup] = field(default_factory=list)
    substitutions: list[Substitution] = field(default_factory=list)
    incomplete: list[TeamIncomplete] = field(default_factory=list)
    rallies: list[RallyRecord] = field(default_factory=list)
    actions: list[ActionRecord] = field(default_factory=list)

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], defaults: MatchConfig | None = None
    ) -> MatchSnapshot:
        match_row = data.get("match") or {}
        rallies = [RallyRecord.from_dict(r) for r in data.get("rallies", [])]
        match_id = match_row.get("id") or (rallies[0].match_id if rallies else None)
        if match_id is None:
            raise SnapshotError(
                "Snapshot has no match id",
                hint="Include a 'match' object with an 'id' field",
            )
        version = data.get("logVersion")
        return cls(
            match_id=str(match_id),
            match=parse_match_config(match_row, defaults),
            log_version=str(version) if version is not None else None,
            players=[parse_player(p) for p in data.get("players", [])],
            lineups=[parse_lineup(row) for row in data.get("lineups", [])],
            substitutions=[
                parse_substitution(row, order=i)
                for i, row in enumerate(data.get("substitutions", []))
            ],
            incomplete=[parse_incomplete(row) for row in data.get("incomplete", [])],
            rallies=rallies,
            actions=[ActionRecord.from_dict(a) for a in data.get("rallyActions", [])],
        )

    @classmethod
    def load(cls, path: Path, defaults: MatchConfig | None = None) -> MatchSnapshot:
        """Load a JSON snapshot exported from the store."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise SnapshotError(
                    f"Snapshot is not valid JSON: {path}",
                    hint=f"Line {e.lineno}: {e.msg}",
                ) from e
        return cls.from_dict(data, defaults)

    @property
    def roster(self) -> dict[str, Player]:
        return {p.player_id: p for p in self.players}
