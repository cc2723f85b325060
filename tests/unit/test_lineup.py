"""Tests for the substitution and libero state machine."""

from __future__ import annotations

import pytest

from rallyscout.analysis.game_state import GameStateReconstructor
from rallyscout.analysis.lineup import (
    LIBERO_OFF,
    LiberoOn,
    ReplacementTier,
    SubstitutionTracker,
    zone_of_slot,
)
from rallyscout.core.config import MatchConfig
from rallyscout.core.errors import RallyScoutError, SubstitutionViolation, ViolationKind
from rallyscout.core.models import BaseLineup, Player, Side, Substitution

POSITIONS = {
    "h1": "S",
    "h2": "OH",
    "h3": "MB",
    "h4": "OP",
    "h5": "OH",
    "h6": "MB",
    "h7": "OH",
    "h8": "MB",
    "h9": "OH",
    "h10": "S",
    "h11": "OP",
    "h12": "MB",
    "L1": "L",
    "L2": "L",
}


def _make_roster(player_ids: list[str] | None = None) -> list[Player]:
    ids = player_ids or list(POSITIONS)
    return [
        Player(
            player_id=pid,
            side=Side.HOME,
            number=90 + i if pid.startswith("L") else int(pid[1:]),
            name=pid.upper(),
            position=POSITIONS[pid],
        )
        for i, pid in enumerate(ids)
    ]


def _make_lineup(set_no: int = 1) -> BaseLineup:
    return BaseLineup(set_no=set_no, side=Side.HOME, slots={i: f"h{i}" for i in range(1, 7)})


def _make_tracker(
    players: list[str] | None = None,
    substitutions: list[Substitution] | None = None,
    max_substitutions: int = 6,
) -> SubstitutionTracker:
    return SubstitutionTracker(
        [_make_lineup()],
        substitutions or [],
        _make_roster(players),
        match=MatchConfig(max_substitutions=max_substitutions),
    )


STARTERS_AND_ONE_LIBERO = ["h1", "h2", "h3", "h4", "h5", "h6", "L1"]


class TestZones:
    def test_rotation_one_is_identity(self) -> None:
        assert [zone_of_slot(slot, 1) for slot in range(1, 7)] == [1, 2, 3, 4, 5, 6]

    def test_slot_six_reaches_zone_four_at_rotation_three(self) -> None:
        assert zone_of_slot(6, 2) == 5
        assert zone_of_slot(6, 3) == 4

    def test_slot_one_moves_to_zone_six(self) -> None:
        assert zone_of_slot(1, 2) == 6


class TestRegularSubstitutions:
    """Tests for budgeted substitutions."""

    def test_active_lineup_applies_from_recorded_rally(self) -> None:
        tracker = _make_tracker()
        tracker.substitute(1, Side.HOME, 3, "h4", "h11", rotation=1)

        assert tracker.active_lineup(1, Side.HOME, 2)[4] == "h4"
        assert tracker.active_lineup(1, Side.HOME, 3)[4] == "h11"
        assert tracker.substitutions_used(1, Side.HOME) == 1
        assert tracker.substitutions_remaining(1, Side.HOME) == 5

    def test_budget_exhausted(self) -> None:
        tracker = _make_tracker(max_substitutions=2)
        tracker.substitute(1, Side.HOME, 2, "h4", "h11", rotation=1)
        tracker.substitute(1, Side.HOME, 5, "h2", "h9", rotation=1)

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.substitute(1, Side.HOME, 8, "h5", "h7", rotation=1)

        assert exc_info.value.kind == ViolationKind.BUDGET_EXHAUSTED
        assert exc_info.value.side == Side.HOME
        assert len(tracker.substitutions) == 2

    def test_libero_exchanges_do_not_use_budget(self) -> None:
        """Test libero entries and exits leave the budget untouched."""
        tracker = _make_tracker(max_substitutions=2)
        tracker.substitute(1, Side.HOME, 2, "h4", "h11", rotation=1)
        tracker.substitute(1, Side.HOME, 5, "h2", "h9", rotation=1)

        tracker.enter_libero(1, Side.HOME, 6, "L1", "h6", rotation=1, receiving=True)
        tracker.exit_libero(1, Side.HOME, 9)

        assert tracker.substitutions_used(1, Side.HOME) == 2
        assert tracker.substitutions_remaining(1, Side.HOME) == 0

    def test_player_out_must_be_on_court(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().substitute(1, Side.HOME, 2, "h7", "h8", rotation=1)
        assert exc_info.value.kind == ViolationKind.NOT_ON_COURT

    def test_player_in_must_be_on_bench(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().substitute(1, Side.HOME, 2, "h3", "h6", rotation=1)
        assert exc_info.value.kind == ViolationKind.ALREADY_ON_COURT

    def test_libero_rejected_in_regular_substitution(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().substitute(1, Side.HOME, 2, "h6", "L1", rotation=1)
        assert exc_info.value.kind == ViolationKind.LIBERO_IN_REGULAR_SUBSTITUTION

    def test_missing_lineup(self) -> None:
        with pytest.raises(RallyScoutError):
            _make_tracker().active_lineup(2, Side.HOME, 1)


class TestLiberoEntry:
    """Tests for libero entry rules."""

    def test_eligible_back_row_players(self) -> None:
        """Test the receiving side may replace anyone in zones 1, 5 and 6."""
        eligibility = _make_tracker().eligibility(1, Side.HOME, 4, rotation=1, receiving=True)

        assert eligibility.can_enter
        assert eligibility.eligible_for_entry == ("h1", "h5", "h6")
        assert eligibility.recommended_for_entry == "h6"
        assert not eligibility.libero_on_court
        assert eligibility.libero_limit == 2

    def test_enter_libero(self) -> None:
        tracker = _make_tracker()
        sub = tracker.enter_libero(1, Side.HOME, 4, "L1", "h6", rotation=1, receiving=True)

        assert sub.is_libero
        assert sub.player_out == "h6"
        assert tracker.libero_state(1, Side.HOME, 4) == LiberoOn("L1", "h6", 4)
        assert tracker.libero_state(1, Side.HOME, 3) == LIBERO_OFF
        assert tracker.active_lineup(1, Side.HOME, 4)[6] == "L1"

    def test_second_entry_rejected(self) -> None:
        tracker = _make_tracker()
        tracker.enter_libero(1, Side.HOME, 4, "L1", "h6", rotation=1, receiving=True)

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.enter_libero(1, Side.HOME, 5, "L2", "h5", rotation=1, receiving=True)
        assert exc_info.value.kind == ViolationKind.LIBERO_ALREADY_ON_COURT

    def test_front_row_player_rejected(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().enter_libero(1, Side.HOME, 4, "L1", "h3", rotation=1, receiving=True)
        assert exc_info.value.kind == ViolationKind.NOT_BACK_ROW

    def test_not_a_libero(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().enter_libero(1, Side.HOME, 4, "h8", "h6", rotation=1, receiving=True)
        assert exc_info.value.kind == ViolationKind.NOT_A_LIBERO

    def test_serving_side_after_first_rally(self) -> None:
        """Test the serving side cannot bring the libero in mid-set."""
        tracker = _make_tracker()

        eligibility = tracker.eligibility(1, Side.HOME, 5, rotation=1, receiving=False)
        assert not eligibility.can_enter
        assert eligibility.eligible_for_entry == ()

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.enter_libero(1, Side.HOME, 5, "L1", "h6", rotation=1, receiving=False)
        assert exc_info.value.kind == ViolationKind.NOT_RECEIVING

    def test_serving_side_at_first_rally(self) -> None:
        """Test the serving side may enter on rally 1, but not for the server."""
        tracker = _make_tracker()

        assert tracker.eligible_for_entry(1, Side.HOME, 1, rotation=1, receiving=False) == ["h5", "h6"]
        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.enter_libero(1, Side.HOME, 1, "L1", "h1", rotation=1, receiving=False)
        assert exc_info.value.kind == ViolationKind.NOT_BACK_ROW

        tracker.enter_libero(1, Side.HOME, 1, "L1", "h5", rotation=1, receiving=False)
        assert tracker.libero_state(1, Side.HOME, 1) == LiberoOn("L1", "h5", 1)


class TestLiberoExit:
    """Tests for the mandatory exit and voluntary exits."""

    def _tracker_with_libero_for_slot_six(self) -> SubstitutionTracker:
        tracker = _make_tracker()
        tracker.enter_libero(1, Side.HOME, 2, "L1", "h6", rotation=1, receiving=True)
        return tracker

    def test_must_exit_when_replaced_player_reaches_zone_four(self) -> None:
        tracker = self._tracker_with_libero_for_slot_six()

        assert not tracker.must_exit(1, Side.HOME, 3, rotation=1)
        assert not tracker.must_exit(1, Side.HOME, 3, rotation=2)
        assert tracker.must_exit(1, Side.HOME, 3, rotation=3)

    def test_eligibility_reports_must_exit(self) -> None:
        tracker = self._tracker_with_libero_for_slot_six()
        eligibility = tracker.eligibility(1, Side.HOME, 10, rotation=3, receiving=False)

        assert eligibility.libero_id == "L1"
        assert eligibility.replaced_player_id == "h6"
        assert eligibility.must_exit
        assert not eligibility.can_enter

    def test_exit_pending_blocks_other_exchanges(self) -> None:
        tracker = self._tracker_with_libero_for_slot_six()

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.substitute(1, Side.HOME, 10, "h2", "h9", rotation=3)
        assert exc_info.value.kind == ViolationKind.MANDATORY_EXIT_PENDING

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.swap_libero(1, Side.HOME, 10, "L2", rotation=3)
        assert exc_info.value.kind == ViolationKind.MANDATORY_EXIT_PENDING

    def test_exchanges_require_rotation(self) -> None:
        """Test a pending exit cannot be skipped by leaving out the rotation."""
        tracker = self._tracker_with_libero_for_slot_six()
        recorded = len(tracker.substitutions)

        with pytest.raises(TypeError):
            tracker.substitute(1, Side.HOME, 10, "h2", "h9")  # type: ignore[call-arg]
        with pytest.raises(TypeError):
            tracker.swap_libero(1, Side.HOME, 10, "L2")  # type: ignore[call-arg]

        assert len(tracker.substitutions) == recorded

    def test_substitution_allowed_before_exit_is_due(self) -> None:
        tracker = self._tracker_with_libero_for_slot_six()
        sub = tracker.substitute(1, Side.HOME, 10, "h2", "h9", rotation=2)

        assert sub.player_in == "h9"
        assert tracker.libero_state(1, Side.HOME, 10) == LiberoOn("L1", "h6", 2)

    def test_exit_returns_replaced_player(self) -> None:
        tracker = self._tracker_with_libero_for_slot_six()
        sub = tracker.exit_libero(1, Side.HOME, 10)

        assert (sub.player_out, sub.player_in) == ("L1", "h6")
        assert tracker.libero_state(1, Side.HOME, 10) == LIBERO_OFF
        assert tracker.active_lineup(1, Side.HOME, 10)[6] == "h6"

    def test_exit_without_libero(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().exit_libero(1, Side.HOME, 3)
        assert exc_info.value.kind == ViolationKind.LIBERO_NOT_ON_COURT


class TestLiberoSwap:
    """Tests for exchanging one libero for the other."""

    def test_swap_keeps_replaced_player(self) -> None:
        tracker = _make_tracker()
        tracker.enter_libero(1, Side.HOME, 2, "L1", "h6", rotation=1, receiving=True)

        assert tracker.eligibility(1, Side.HOME, 5, rotation=1, receiving=True).can_swap
        tracker.swap_libero(1, Side.HOME, 5, "L2", rotation=1)

        assert tracker.libero_state(1, Side.HOME, 5) == LiberoOn("L2", "h6", 5)
        assert tracker.substitutions_used(1, Side.HOME) == 0

    def test_swap_recorded_as_exit_and_entry(self) -> None:
        """Test a stored exit/entry pair in one rally replays as a swap."""
        subs = [
            Substitution(1, Side.HOME, 2, "h6", "L1", is_libero=True, order=0),
            Substitution(1, Side.HOME, 5, "L1", "h6", is_libero=True, order=1),
            Substitution(1, Side.HOME, 5, "h6", "L2", is_libero=True, order=2),
        ]
        tracker = _make_tracker(substitutions=subs)

        assert tracker.libero_state(1, Side.HOME, 5) == LiberoOn("L2", "h6", 5)
        assert tracker.active_lineup(1, Side.HOME, 5)[6] == "L2"

    def test_swap_to_same_libero(self) -> None:
        tracker = _make_tracker()
        tracker.enter_libero(1, Side.HOME, 2, "L1", "h6", rotation=1, receiving=True)

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.swap_libero(1, Side.HOME, 5, "L1", rotation=1)
        assert exc_info.value.kind == ViolationKind.NO_SECOND_LIBERO

    def test_small_roster_single_libero(self) -> None:
        """Test rosters under fourteen may only use one libero."""
        players = ["h1", "h2", "h3", "h4", "h5", "h6", "h7", "L1", "L2"]
        tracker = _make_tracker(players)
        tracker.enter_libero(1, Side.HOME, 2, "L1", "h6", rotation=1, receiving=True)

        eligibility = tracker.eligibility(1, Side.HOME, 5, rotation=1, receiving=True)
        assert eligibility.libero_limit == 1
        assert not eligibility.can_swap

        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.swap_libero(1, Side.HOME, 5, "L2", rotation=1)
        assert exc_info.value.kind == ViolationKind.LIBERO_LIMIT_EXCEEDED

        tracker.exit_libero(1, Side.HOME, 6)
        with pytest.raises(SubstitutionViolation) as exc_info:
            tracker.enter_libero(1, Side.HOME, 8, "L2", "h5", rotation=1, receiving=True)
        assert exc_info.value.kind == ViolationKind.LIBERO_LIMIT_EXCEEDED


class TestUnavailablePlayers:
    """Tests for injury and sanction replacements."""

    def test_same_position_first(self) -> None:
        options = _make_tracker().replacement_options(1, Side.HOME, 4, "h3")

        assert options.tier == ReplacementTier.SAME_POSITION
        assert options.candidates == ("h8", "h12")

    def test_replacement_outside_tier_rejected(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().replace_unavailable(1, Side.HOME, 4, "h3", "h7")
        assert exc_info.value.kind == ViolationKind.INELIGIBLE_REPLACEMENT

    def test_mandatory_replacement_skips_budget(self) -> None:
        tracker = _make_tracker(max_substitutions=1)
        tracker.substitute(1, Side.HOME, 2, "h4", "h11", rotation=1)
        sub = tracker.replace_unavailable(1, Side.HOME, 4, "h3", "h8")

        assert sub.mandatory
        assert tracker.active_lineup(1, Side.HOME, 4)[3] == "h8"
        assert tracker.substitutions_used(1, Side.HOME) == 1

    def test_removed_player_cannot_return(self) -> None:
        tracker = _make_tracker()
        tracker.replace_unavailable(1, Side.HOME, 4, "h3", "h8")
        options = tracker.replacement_options(1, Side.HOME, 6, "h8")

        assert options.candidates == ("h12",)

    def test_exceptional_tier(self) -> None:
        """Test any non-libero bench player when no one shares the position."""
        tracker = _make_tracker(STARTERS_AND_ONE_LIBERO[:-1] + ["h7", "L1"])
        options = tracker.replacement_options(1, Side.HOME, 4, "h3")

        assert options.tier == ReplacementTier.EXCEPTIONAL
        assert options.candidates == ("h7",)

    def test_declare_incomplete(self) -> None:
        tracker = _make_tracker(STARTERS_AND_ONE_LIBERO)
        assert tracker.replacement_options(1, Side.HOME, 4, "h3").tier == ReplacementTier.NONE

        declaration = tracker.declare_incomplete(1, Side.HOME, 4, "h3")

        assert declaration.side == Side.HOME
        assert tracker.incomplete == [declaration]
        result = GameStateReconstructor(MatchConfig(), incomplete=tracker.incomplete).set_result([], 1)
        assert result.winner == Side.AWAY

    def test_declare_incomplete_with_bench(self) -> None:
        with pytest.raises(SubstitutionViolation) as exc_info:
            _make_tracker().declare_incomplete(1, Side.HOME, 4, "h3")
        assert exc_info.value.kind == ViolationKind.REPLACEMENT_AVAILABLE
