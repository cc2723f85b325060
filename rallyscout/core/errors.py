"""Exceptions raised by RallyScout."""

from __future__ import annotations

from enum import Enum

from rallyscout.core.models import Side


class RallyScoutError(Exception):
    """Base exception for RallyScout errors."""

    def __init__(self, message: str, hint: str | None = None):
        self.message = message
        self.hint = hint
        super().__init__(message)


class SnapshotError(RallyScoutError):
    """Store rows could not be parsed."""
    pass


class ViolationKind(str, Enum):
    """Reasons a substitution or libero transition is rejected."""

    BUDGET_EXHAUSTED = "budget_exhausted"
    LIBERO_ALREADY_ON_COURT = "libero_already_on_court"
    LIBERO_NOT_ON_COURT = "libero_not_on_court"
    NOT_A_LIBERO = "not_a_libero"
    LIBERO_IN_REGULAR_SUBSTITUTION = "libero_in_regular_substitution"
    NOT_ON_COURT = "not_on_court"
    ALREADY_ON_COURT = "already_on_court"
    NOT_BACK_ROW = "not_back_row"
    NOT_RECEIVING = "not_receiving"
    NO_SECOND_LIBERO = "no_second_libero"
    MANDATORY_EXIT_PENDING = "mandatory_exit_pending"
    LIBERO_LIMIT_EXCEEDED = "libero_limit_exceeded"
    INELIGIBLE_REPLACEMENT = "ineligible_replacement"
    REPLACEMENT_AVAILABLE = "replacement_available"


class SubstitutionViolation(RallyScoutError):
    """A substitution or libero transition that the rules do not allow."""

    def __init__(
        self,
        kind: ViolationKind,
        message: str,
        side: Side | None = None,
        set_no: int | None = None,
        hint: str | None = None,
    ):
        self.kind = kind
        self.side = side
        self.set_no = set_no
        super().__init__(message, hint=hint)
