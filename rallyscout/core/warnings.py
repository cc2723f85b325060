"""Data-quality warnings attached to rallies.

Warnings never stop a replay. They are collected on the affected rally and
surfaced next to the derived state and statistics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class WarningCode(str, Enum):
    """Stable, machine-readable warning codes."""

    PARTIAL_ACTION = "PARTIAL_ACTION"
    MISSING_DESTINATION = "MISSING_DESTINATION"
    MISSING_KILL_TYPE = "MISSING_KILL_TYPE"
    REPRESENTATION_DISCREPANCY = "REPRESENTATION_DISCREPANCY"
    SEQUENCE_CONFLICT = "SEQUENCE_CONFLICT"
    ROTATION_MISMATCH = "ROTATION_MISMATCH"


WARNING_MESSAGES = {
    WarningCode.PARTIAL_ACTION: "{action} {detail}",
    WarningCode.MISSING_DESTINATION: "Distribution resolved by an attack has no destination",
    WarningCode.MISSING_KILL_TYPE: "Kill recorded without a kill type",
    WarningCode.REPRESENTATION_DISCREPANCY: (
        "Action log has {granular} action(s) but the rally record implies {flat}"
    ),
    WarningCode.SEQUENCE_CONFLICT: "Sequence number {sequence_no} used more than once",
    WarningCode.ROTATION_MISMATCH: "Rally header says {recorded}, replay derives {derived}",
}


@dataclass(frozen=True)
class DataQualityWarning:
    """A non-fatal issue found in the recorded log."""

    code: WarningCode
    message: str
    rally_id: str | None = None
    sequence_no: int | None = None

    @classmethod
    def partial_action(
        cls, rally_id: str, sequence_no: int, action: str, has_actor: bool
    ) -> DataQualityWarning:
        detail = "has a player but no quality code" if has_actor else "has a quality code but no player"
        return cls(
            code=WarningCode.PARTIAL_ACTION,
            message=WARNING_MESSAGES[WarningCode.PARTIAL_ACTION].format(
                action=action.capitalize(), detail=detail
            ),
            rally_id=rally_id,
            sequence_no=sequence_no,
        )

    @classmethod
    def missing_destination(cls, rally_id: str, sequence_no: int) -> DataQualityWarning:
        return cls(
            code=WarningCode.MISSING_DESTINATION,
            message=WARNING_MESSAGES[WarningCode.MISSING_DESTINATION],
            rally_id=rally_id,
            sequence_no=sequence_no,
        )

    @classmethod
    def missing_kill_type(cls, rally_id: str, sequence_no: int) -> DataQualityWarning:
        return cls(
            code=WarningCode.MISSING_KILL_TYPE,
            message=WARNING_MESSAGES[WarningCode.MISSING_KILL_TYPE],
            rally_id=rally_id,
            sequence_no=sequence_no,
        )

    @classmethod
    def representation_discrepancy(
        cls, rally_id: str, granular: int, flat: int
    ) -> DataQualityWarning:
        return cls(
            code=WarningCode.REPRESENTATION_DISCREPANCY,
            message=WARNING_MESSAGES[WarningCode.REPRESENTATION_DISCREPANCY].format(
                granular=granular, flat=flat
            ),
            rally_id=rally_id,
        )

    @classmethod
    def sequence_conflict(cls, rally_id: str, sequence_no: int) -> DataQualityWarning:
        return cls(
            code=WarningCode.SEQUENCE_CONFLICT,
            message=WARNING_MESSAGES[WarningCode.SEQUENCE_CONFLICT].format(
                sequence_no=sequence_no
            ),
            rally_id=rally_id,
            sequence_no=sequence_no,
        )

    @classmethod
    def rotation_mismatch(
        cls, rally_id: str, recorded: str, derived: str
    ) -> DataQualityWarning:
        return cls(
            code=WarningCode.ROTATION_MISMATCH,
            message=WARNING_MESSAGES[WarningCode.ROTATION_MISMATCH].format(
                recorded=recorded, derived=derived
            ),
            rally_id=rally_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "rallyId": self.rally_id,
            "sequenceNo": self.sequence_no,
        }
