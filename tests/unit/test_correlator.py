"""Tests for distribution -> attack correlation."""

from __future__ import annotations

from typing import Any

from rallyscout.analysis.correlator import IDLE, ActionCorrelator, Idle, Pending
from rallyscout.core.models import ActionType, CanonicalAction, Destination, Rally, Side
from rallyscout.core.warnings import WarningCode
from rallyscout.statistics.player_stats import compute_destination_stats


def _make_action(seq: int, action_type: ActionType, side: Side, **fields: Any) -> CanonicalAction:
    return CanonicalAction(
        rally_id="r1",
        sequence_no=seq,
        action_type=action_type,
        side=side,
        **fields,
    )


def _make_rally(actions: list[CanonicalAction], rally_id: str = "r1", rally_no: int = 1) -> Rally:
    return Rally(
        rally_id=rally_id,
        match_id="m1",
        set_no=1,
        rally_no=rally_no,
        serving_side=Side.AWAY,
        serving_rotation=1,
        receiving_side=Side.HOME,
        receiving_rotation=1,
        actions=actions,
    )


def _set(seq: int, side: Side, destination: Destination | None, **fields: Any) -> CanonicalAction:
    return _make_action(
        seq, ActionType.DISTRIBUTION, side, player_id="s1", quality=2,
        destination=destination, **fields,
    )


def _attack(seq: int, side: Side, quality: int, player_id: str = "p4") -> CanonicalAction:
    return _make_action(seq, ActionType.ATTACK, side, player_id=player_id, quality=quality)


class TestPendingState:
    def test_idle_is_a_singleton_value(self) -> None:
        assert IDLE == Idle()
        assert not isinstance(IDLE, Pending)


class TestActionCorrelator:
    """Tests for ActionCorrelator."""

    def test_set_then_kill(self) -> None:
        """Test a set to P4 followed by a kill yields one P4 kill."""
        rally = _make_rally([
            _make_action(1, ActionType.SERVE, Side.AWAY, player_id="x1", quality=2),
            _make_action(2, ActionType.RECEPTION, Side.HOME, player_id="p5", quality=3),
            _set(3, Side.HOME, Destination.P4),
            _attack(4, Side.HOME, 3),
        ])
        result = ActionCorrelator().correlate_rally(rally)

        assert len(result.correlations) == 1
        correlation = result.correlations[0]
        assert correlation.destination == Destination.P4
        assert correlation.outcome == 3
        assert correlation.distribution_seq == 3
        assert correlation.attack_seq == 4
        assert correlation.setter_id == "s1"
        assert correlation.attacker_id == "p4"
        assert result.unresolved == []

        stats = compute_destination_stats(result.correlations)
        p4 = stats[(Side.HOME, Destination.P4)]
        assert p4.attempts == 1
        assert p4.kills == 1
        assert p4.kill_rate == 1.0

    def test_second_set_abandons_first(self) -> None:
        """Test only the later of two sets is credited with the attack."""
        first = _set(1, Side.HOME, Destination.P4)
        rally = _make_rally([first, _set(2, Side.HOME, Destination.P2), _attack(3, Side.HOME, 3)])
        result = ActionCorrelator().correlate_rally(rally)

        assert [c.destination for c in result.correlations] == [Destination.P2]
        assert result.abandoned == [first]

        stats = compute_destination_stats(result.correlations)
        assert (Side.HOME, Destination.P4) not in stats
        assert stats[(Side.HOME, Destination.P2)].attempts == 1

    def test_self_contained_distribution(self) -> None:
        """Test a set carrying its outcome resolves without waiting."""
        rally = _make_rally([
            _set(1, Side.HOME, Destination.OP, outcome=0),
            _attack(2, Side.HOME, 0),
        ])
        result = ActionCorrelator().correlate_rally(rally)

        assert len(result.correlations) == 1
        assert result.correlations[0].attack_seq is None
        assert result.correlations[0].outcome == 0
        assert result.unresolved == []

    def test_unresolved_at_rally_end(self) -> None:
        """Test a set with no attack is reported and not counted."""
        distribution = _set(1, Side.HOME, Destination.P3)
        result = ActionCorrelator().correlate_rally(_make_rally([distribution]))

        assert result.correlations == []
        assert result.unresolved == [distribution]

    def test_attack_without_set(self) -> None:
        """Test an attack off a free ball is not correlated."""
        result = ActionCorrelator().correlate_rally(_make_rally([_attack(1, Side.HOME, 2)]))

        assert result.correlations == []

    def test_sides_tracked_independently(self) -> None:
        """Test the other side's attack does not resolve a pending set."""
        distribution = _set(1, Side.HOME, Destination.P4)
        rally = _make_rally([distribution, _attack(2, Side.AWAY, 3)])
        result = ActionCorrelator().correlate_rally(rally)

        assert result.correlations == []
        assert result.unresolved == [distribution]

    def test_counter_attack(self) -> None:
        """Test each attack in a long rally pairs with its own set."""
        rally = _make_rally([
            _set(1, Side.HOME, Destination.P4),
            _attack(2, Side.HOME, 2),
            _make_action(3, ActionType.DEFENSE, Side.AWAY, player_id="x5", quality=2),
            _set(4, Side.AWAY, Destination.PIPE),
            _attack(5, Side.AWAY, 3, player_id="x2"),
        ])
        result = ActionCorrelator().correlate_rally(rally)

        assert [(c.side, c.destination, c.outcome) for c in result.correlations] == [
            (Side.HOME, Destination.P4, 2),
            (Side.AWAY, Destination.PIPE, 3),
        ]
        assert result.for_attack(5).attacker_id == "x2"
        assert result.for_attack(3) is None

    def test_missing_destination_warns(self) -> None:
        """Test a resolved set without destination is flagged and skipped."""
        rally = _make_rally([_set(1, Side.HOME, None), _attack(2, Side.HOME, 3)])
        result = ActionCorrelator().correlate_rally(rally)

        assert len(result.correlations) == 1
        assert [w.code for w in result.warnings] == [WarningCode.MISSING_DESTINATION]
        assert compute_destination_stats(result.correlations) == {}

    def test_pending_does_not_cross_rallies(self) -> None:
        """Test a set left open in one rally is not resolved by the next."""
        first = _make_rally([_set(1, Side.HOME, Destination.P4)], rally_id="r1", rally_no=1)
        second = _make_rally(
            [
                CanonicalAction(
                    rally_id="r2", sequence_no=1, action_type=ActionType.ATTACK,
                    side=Side.HOME, player_id="p4", quality=3,
                )
            ],
            rally_id="r2",
            rally_no=2,
        )
        results = ActionCorrelator().correlate([first, second])

        assert len(results[0].unresolved) == 1
        assert results[1].correlations == []

    def test_out_of_order_actions_are_sorted(self) -> None:
        """Test actions are scanned by sequence number."""
        rally = _make_rally([_attack(2, Side.HOME, 1), _set(1, Side.HOME, Destination.P2)])
        result = ActionCorrelator().correlate_rally(rally)

        assert [c.attack_seq for c in result.correlations] == [2]

    def test_destination_outcome_buckets(self) -> None:
        """Test blocked and defended attacks fold into their own counters."""
        rally = _make_rally([
            _set(1, Side.HOME, Destination.P4),
            _attack(2, Side.HOME, 1),
            _set(3, Side.HOME, Destination.P4),
            _attack(4, Side.HOME, 2),
            _set(5, Side.HOME, Destination.P4),
            _attack(6, Side.HOME, 0),
        ])
        result = ActionCorrelator().correlate_rally(rally)
        p4 = compute_destination_stats(result.correlations)[(Side.HOME, Destination.P4)]

        assert (p4.attempts, p4.kills, p4.errors, p4.blocked, p4.defended) == (3, 0, 1, 1, 1)
        assert p4.efficiency == -1 / 3
