"""Substitution and libero state machine.

The on-court mapping at any rally is the base lineup with every substitution
recorded up to that rally applied as a slot override, in rally order. Libero
exchanges go through the same override; they only differ in which rules
accept them and in not counting against the substitution budget.

Transitions validate against the replayed state and either return the
``Substitution`` to persist or raise ``SubstitutionViolation``. Nothing is
clamped or reordered.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from rallyscout.core.config import MatchConfig, RotationConfig, get_config
from rallyscout.core.errors import RallyScoutError, SubstitutionViolation, ViolationKind
from rallyscout.core.models import BaseLineup, Player, Side, Substitution, TeamIncomplete

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiberoOff:
    """No libero on court."""


@dataclass(frozen=True)
class LiberoOn:
    libero_id: str
    replaced_player_id: str
    entry_rally: int


LiberoState = Union[LiberoOff, LiberoOn]

LIBERO_OFF = LiberoOff()


class ReplacementTier(str, Enum):
    """Fallback tiers for replacing an injured or sanctioned player."""

    SAME_POSITION = "same_position"
    EXCEPTIONAL = "exceptional"  # any non-libero bench player
    NONE = "none"  # team can only be declared incomplete


@dataclass(frozen=True)
class ReplacementOptions:
    unavailable_id: str
    tier: ReplacementTier
    candidates: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "unavailableId": self.unavailable_id,
            "tier": self.tier.value,
            "candidates": list(self.candidates),
        }


@dataclass(frozen=True)
class Eligibility:
    """Libero and substitution flags for one side at one rally."""

    set_no: int
    side: Side
    rally_no: int
    libero_id: str | None
    replaced_player_id: str | None
    can_enter: bool
    must_exit: bool
    can_swap: bool
    substitutions_used: int
    substitutions_remaining: int
    libero_limit: int
    eligible_for_entry: tuple[str, ...] = ()
    recommended_for_entry: str | None = None

    @property
    def libero_on_court(self) -> bool:
        return self.libero_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "setNo": self.set_no,
            "side": self.side.value,
            "rallyNo": self.rally_no,
            "liberoOnCourt": self.libero_on_court,
            "liberoId": self.libero_id,
            "replacedPlayerId": self.replaced_player_id,
            "canEnter": self.can_enter,
            "mustExit": self.must_exit,
            "canSwap": self.can_swap,
            "substitutionsUsed": self.substitutions_used,
            "substitutionsRemaining": self.substitutions_remaining,
            "liberoLimit": self.libero_limit,
            "eligibleForEntry": list(self.eligible_for_entry),
            "recommendedForEntry": self.recommended_for_entry,
        }


def zone_of_slot(slot: int, rotation: int) -> int:
    """Court zone of a lineup slot after ``rotation - 1`` side-outs."""
    return (slot - rotation) % 6 + 1


class SubstitutionTracker:
    """Replays lineups and substitutions, and validates new exchanges."""

    def __init__(
        self,
        lineups: Iterable[BaseLineup],
        substitutions: Iterable[Substitution] = (),
        players: Iterable[Player] = (),
        match: MatchConfig | None = None,
        rotation: RotationConfig | None = None,
    ):
        config = get_config()
        self.match = match or config.match
        self.rotation = rotation or config.rotation
        self.lineups = {(l.set_no, l.side): l for l in lineups}
        self.substitutions = list(substitutions)
        self.roster = {p.player_id: p for p in players}
        self.incomplete: list[TeamIncomplete] = []

    # -------------------------------------------------------------------------
    # Replay
    # -------------------------------------------------------------------------

    def lineup(self, set_no: int, side: Side) -> BaseLineup:
        lineup = self.lineups.get((set_no, side))
        if lineup is None:
            raise RallyScoutError(
                f"No lineup recorded for {side.value} in set {set_no}",
                hint="Record the starting six before substituting",
            )
        return lineup

    def history(
        self, set_no: int, side: Side, up_to_rally: int | None = None
    ) -> list[Substitution]:
        subs = [
            s for s in self.substitutions
            if s.set_no == set_no and s.side == side
            and (up_to_rally is None or s.rally_no <= up_to_rally)
        ]
        return sorted(subs, key=lambda s: (s.rally_no, s.order))

    def active_lineup(self, set_no: int, side: Side, rally_no: int) -> dict[int, str]:
        """Slot -> player on court at ``rally_no``."""
        slots = dict(self.lineup(set_no, side).slots)
        for sub in self.history(set_no, side, rally_no):
            slot = next((s for s, pid in slots.items() if pid == sub.player_out), None)
            if slot is None:
                logger.warning(
                    "Set %d %s rally %d: %s is not on court, substitution skipped",
                    set_no, side.value, sub.rally_no, sub.player_out,
                )
                continue
            slots[slot] = sub.player_in
        return slots

    def on_court(self, set_no: int, side: Side, rally_no: int) -> list[str]:
        return list(self.active_lineup(set_no, side, rally_no).values())

    def liberos(self, side: Side) -> list[Player]:
        return [p for p in self.roster.values() if p.side == side and p.is_libero]

    def is_libero(self, player_id: str) -> bool:
        player = self.roster.get(player_id)
        return player is not None and player.is_libero

    def libero_limit(self, side: Side) -> int:
        squad = sum(1 for p in self.roster.values() if p.side == side)
        return 2 if squad >= self.rotation.large_roster_size else 1

    def libero_state(self, set_no: int, side: Side, rally_no: int) -> LiberoState:
        state: LiberoState = LIBERO_OFF
        for sub in self.history(set_no, side, rally_no):
            if not sub.is_libero:
                continue
            in_libero = self.is_libero(sub.player_in)
            out_libero = self.is_libero(sub.player_out)
            if in_libero and not out_libero:
                state = LiberoOn(sub.player_in, sub.player_out, sub.rally_no)
            elif out_libero and not in_libero:
                state = LIBERO_OFF
            elif in_libero and out_libero and isinstance(state, LiberoOn):
                state = LiberoOn(sub.player_in, state.replaced_player_id, sub.rally_no)
        return state

    def player_zone(
        self, set_no: int, side: Side, player_id: str, rotation: int, rally_no: int | None = None
    ) -> int | None:
        """Zone a player stands in (or would stand in) at ``rotation``.

        Starters are placed by their base lineup slot, whoever occupies it now.
        Players who entered later are placed by the slot they currently hold.
        """
        slot = self.lineup(set_no, side).slot_of(player_id)
        if slot is None and rally_no is not None:
            active = self.active_lineup(set_no, side, rally_no)
            slot = next((s for s, pid in active.items() if pid == player_id), None)
        return zone_of_slot(slot, rotation) if slot is not None else None

    def substitutions_used(self, set_no: int, side: Side, rally_no: int | None = None) -> int:
        return sum(1 for s in self.history(set_no, side, rally_no) if s.counts_against_budget)

    def substitutions_remaining(self, set_no: int, side: Side, rally_no: int | None = None) -> int:
        return max(0, self.match.max_substitutions - self.substitutions_used(set_no, side, rally_no))

    def must_exit(self, set_no: int, side: Side, rally_no: int, rotation: int) -> bool:
        """Whether the player the libero replaced has reached the front-row exit zone."""
        state = self.libero_state(set_no, side, rally_no)
        if not isinstance(state, LiberoOn):
            return False
        zone = self.player_zone(set_no, side, state.replaced_player_id, rotation)
        if zone is None:
            zone = self.player_zone(set_no, side, state.libero_id, rotation, rally_no)
        return zone == self.rotation.libero_exit_zone

    def entry_zones(self, rally_no: int, receiving: bool) -> tuple[int, ...]:
        if receiving:
            return self.rotation.back_row_zones
        if rally_no == 1:
            return self.rotation.serving_entry_zones
        return ()

    def eligible_for_entry(
        self, set_no: int, side: Side, rally_no: int, rotation: int, receiving: bool
    ) -> list[str]:
        if isinstance(self.libero_state(set_no, side, rally_no), LiberoOn):
            return []
        zones = self.entry_zones(rally_no, receiving)
        eligible = []
        for slot, player_id in sorted(self.active_lineup(set_no, side, rally_no).items()):
            if self.is_libero(player_id):
                continue
            if zone_of_slot(slot, rotation) in zones:
                eligible.append(player_id)
        return eligible

    def recommended_for_entry(self, eligible: list[str]) -> str | None:
        """Middle blockers first, otherwise the first eligible player."""
        for player_id in eligible:
            player = self.roster.get(player_id)
            if player is not None and player.is_middle:
                return player_id
        return eligible[0] if eligible else None

    def available_liberos(self, set_no: int, side: Side, rally_no: int) -> list[str]:
        """Liberos that may still be used without exceeding the side's limit."""
        used = {
            pid
            for s in self.history(set_no, side, rally_no) if s.is_libero
            for pid in (s.player_in, s.player_out) if self.is_libero(pid)
        }
        liberos = [p.player_id for p in self.liberos(side)]
        if len(used) >= self.libero_limit(side):
            return [pid for pid in liberos if pid in used]
        return liberos

    def eligibility(
        self, set_no: int, side: Side, rally_no: int, rotation: int, receiving: bool
    ) -> Eligibility:
        state = self.libero_state(set_no, side, rally_no)
        used = self.substitutions_used(set_no, side, rally_no)
        limit = self.libero_limit(side)
        eligible = self.eligible_for_entry(set_no, side, rally_no, rotation, receiving)

        if isinstance(state, LiberoOn):
            others = [
                pid for pid in self.available_liberos(set_no, side, rally_no)
                if pid != state.libero_id
            ]
            return Eligibility(
                set_no=set_no,
                side=side,
                rally_no=rally_no,
                libero_id=state.libero_id,
                replaced_player_id=state.replaced_player_id,
                can_enter=False,
                must_exit=self.must_exit(set_no, side, rally_no, rotation),
                can_swap=bool(others) and limit >= 2,
                substitutions_used=used,
                substitutions_remaining=max(0, self.match.max_substitutions - used),
                libero_limit=limit,
            )

        can_enter = bool(eligible) and bool(self.available_liberos(set_no, side, rally_no))
        return Eligibility(
            set_no=set_no,
            side=side,
            rally_no=rally_no,
            libero_id=None,
            replaced_player_id=None,
            can_enter=can_enter,
            must_exit=False,
            can_swap=False,
            substitutions_used=used,
            substitutions_remaining=max(0, self.match.max_substitutions - used),
            libero_limit=limit,
            eligible_for_entry=tuple(eligible),
            recommended_for_entry=self.recommended_for_entry(eligible),
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _record(self, sub: Substitution) -> Substitution:
        sub = Substitution(
            set_no=sub.set_no,
            side=sub.side,
            rally_no=sub.rally_no,
            player_out=sub.player_out,
            player_in=sub.player_in,
            is_libero=sub.is_libero,
            mandatory=sub.mandatory,
            order=len(self.substitutions),
        )
        self.substitutions.append(sub)
        logger.debug(
            "Set %d %s rally %d: %s -> %s (libero=%s, mandatory=%s)",
            sub.set_no, sub.side.value, sub.rally_no, sub.player_out, sub.player_in,
            sub.is_libero, sub.mandatory,
        )
        return sub

    def _violation(
        self, kind: ViolationKind, message: str, side: Side, set_no: int, hint: str | None = None
    ) -> SubstitutionViolation:
        logger.info("Rejected %s: %s", kind.value, message)
        return SubstitutionViolation(kind, message, side=side, set_no=set_no, hint=hint)

    def _check_exit_pending(self, set_no: int, side: Side, rally_no: int, rotation: int) -> None:
        if self.must_exit(set_no, side, rally_no, rotation):
            raise self._violation(
                ViolationKind.MANDATORY_EXIT_PENDING,
                "The libero must leave the court before any other exchange",
                side, set_no,
                hint="Record the libero exit first",
            )

    def substitute(
        self,
        set_no: int,
        side: Side,
        rally_no: int,
        player_out: str,
        player_in: str,
        rotation: int,
    ) -> Substitution:
        """Regular substitution, counted against the per-set budget.

        ``rotation`` is the side's current rotation; it decides whether a
        libero on court has to leave first.
        """
        if self.is_libero(player_out) or self.is_libero(player_in):
            raise self._violation(
                ViolationKind.LIBERO_IN_REGULAR_SUBSTITUTION,
                "Liberos are exchanged through libero entries and exits",
                side, set_no,
            )
        on_court = self.on_court(set_no, side, rally_no)
        if player_out not in on_court:
            raise self._violation(
                ViolationKind.NOT_ON_COURT, f"{player_out} is not on court", side, set_no
            )
        if player_in in on_court:
            raise self._violation(
                ViolationKind.ALREADY_ON_COURT, f"{player_in} is already on court", side, set_no
            )
        self._check_exit_pending(set_no, side, rally_no, rotation)
        if self.substitutions_used(set_no, side) >= self.match.max_substitutions:
            raise self._violation(
                ViolationKind.BUDGET_EXHAUSTED,
                f"{side.value} has used all {self.match.max_substitutions} substitutions in set {set_no}",
                side, set_no,
            )
        return self._record(Substitution(set_no, side, rally_no, player_out, player_in))

    def enter_libero(
        self,
        set_no: int,
        side: Side,
        rally_no: int,
        libero_id: str,
        replaced_id: str,
        rotation: int,
        receiving: bool,
    ) -> Substitution:
        if not self.is_libero(libero_id):
            raise self._violation(
                ViolationKind.NOT_A_LIBERO, f"{libero_id} is not a libero", side, set_no
            )
        if isinstance(self.libero_state(set_no, side, rally_no), LiberoOn):
            raise self._violation(
                ViolationKind.LIBERO_ALREADY_ON_COURT,
                "A libero is already on court",
                side, set_no,
                hint="Exit or swap the current libero instead",
            )
        if libero_id not in self.available_liberos(set_no, side, rally_no):
            raise self._violation(
                ViolationKind.LIBERO_LIMIT_EXCEEDED,
                f"{side.value} may use {self.libero_limit(side)} libero(s)",
                side, set_no,
            )
        if not receiving and rally_no != 1:
            raise self._violation(
                ViolationKind.NOT_RECEIVING,
                "The serving side can only bring the libero in at the start of the set",
                side, set_no,
            )
        if replaced_id not in self.on_court(set_no, side, rally_no):
            raise self._violation(
                ViolationKind.NOT_ON_COURT, f"{replaced_id} is not on court", side, set_no
            )
        if replaced_id not in self.eligible_for_entry(set_no, side, rally_no, rotation, receiving):
            raise self._violation(
                ViolationKind.NOT_BACK_ROW,
                f"{replaced_id} is not in an eligible back-row zone",
                side, set_no,
            )
        return self._record(
            Substitution(set_no, side, rally_no, replaced_id, libero_id, is_libero=True)
        )

    def exit_libero(self, set_no: int, side: Side, rally_no: int) -> Substitution:
        """Return the replaced player to the court. Always allowed while a libero is on."""
        state = self.libero_state(set_no, side, rally_no)
        if not isinstance(state, LiberoOn):
            raise self._violation(
                ViolationKind.LIBERO_NOT_ON_COURT, "No libero is on court", side, set_no
            )
        return self._record(
            Substitution(
                set_no, side, rally_no, state.libero_id, state.replaced_player_id, is_libero=True
            )
        )

    def swap_libero(
        self,
        set_no: int,
        side: Side,
        rally_no: int,
        new_libero_id: str,
        rotation: int,
    ) -> Substitution:
        state = self.libero_state(set_no, side, rally_no)
        if not isinstance(state, LiberoOn):
            raise self._violation(
                ViolationKind.LIBERO_NOT_ON_COURT, "No libero is on court", side, set_no
            )
        if not self.is_libero(new_libero_id):
            raise self._violation(
                ViolationKind.NOT_A_LIBERO, f"{new_libero_id} is not a libero", side, set_no
            )
        if new_libero_id == state.libero_id:
            raise self._violation(
                ViolationKind.NO_SECOND_LIBERO,
                f"{new_libero_id} is already the libero on court",
                side, set_no,
            )
        if self.libero_limit(side) < 2 or new_libero_id not in self.available_liberos(
            set_no, side, rally_no
        ):
            raise self._violation(
                ViolationKind.LIBERO_LIMIT_EXCEEDED,
                f"{side.value} may use {self.libero_limit(side)} libero(s)",
                side, set_no,
            )
        self._check_exit_pending(set_no, side, rally_no, rotation)
        return self._record(
            Substitution(set_no, side, rally_no, state.libero_id, new_libero_id, is_libero=True)
        )

    # -------------------------------------------------------------------------
    # Unavailable players
    # -------------------------------------------------------------------------

    def replacement_options(
        self, set_no: int, side: Side, rally_no: int, unavailable_id: str
    ) -> ReplacementOptions:
        """Replacement candidates for an injured or sanctioned player, by tier."""
        on_court = set(self.on_court(set_no, side, rally_no))
        if unavailable_id not in on_court:
            raise self._violation(
                ViolationKind.NOT_ON_COURT, f"{unavailable_id} is not on court", side, set_no
            )
        removed = {s.player_out for s in self.history(set_no, side) if s.mandatory}
        bench = [
            p for p in self.roster.values()
            if p.side == side
            and p.player_id not in on_court
            and p.player_id not in removed
            and not p.is_libero
        ]
        bench.sort(key=lambda p: (p.number is None, p.number or 0, p.player_id))

        unavailable = self.roster.get(unavailable_id)
        position = (unavailable.position or "").upper() if unavailable else ""
        same_position = [
            p.player_id for p in bench if position and (p.position or "").upper() == position
        ]
        if same_position:
            return ReplacementOptions(unavailable_id, ReplacementTier.SAME_POSITION, tuple(same_position))
        if bench:
            return ReplacementOptions(
                unavailable_id, ReplacementTier.EXCEPTIONAL, tuple(p.player_id for p in bench)
            )
        return ReplacementOptions(unavailable_id, ReplacementTier.NONE)

    def replace_unavailable(
        self, set_no: int, side: Side, rally_no: int, unavailable_id: str, replacement_id: str
    ) -> Substitution:
        """Mandatory replacement; exempt from the regular substitution budget."""
        options = self.replacement_options(set_no, side, rally_no, unavailable_id)
        if replacement_id not in options.candidates:
            raise self._violation(
                ViolationKind.INELIGIBLE_REPLACEMENT,
                f"{replacement_id} cannot replace {unavailable_id} ({options.tier.value} tier)",
                side, set_no,
                hint=f"Candidates: {', '.join(options.candidates) or 'none'}",
            )
        return self._record(
            Substitution(set_no, side, rally_no, unavailable_id, replacement_id, mandatory=True)
        )

    def declare_incomplete(
        self, set_no: int, side: Side, rally_no: int, unavailable_id: str
    ) -> TeamIncomplete:
        """Declare the side incomplete; only allowed once every tier is exhausted."""
        options = self.replacement_options(set_no, side, rally_no, unavailable_id)
        if options.tier != ReplacementTier.NONE:
            raise self._violation(
                ViolationKind.REPLACEMENT_AVAILABLE,
                f"{side.value} can still replace {unavailable_id}",
                side, set_no,
                hint=f"Candidates: {', '.join(options.candidates)}",
            )
        declaration = TeamIncomplete(set_no=set_no, side=side, rally_no=rally_no)
        self.incomplete.append(declaration)
        logger.info("Set %d: %s declared incomplete at rally %d", set_no, side.value, rally_no)
        return declaration
