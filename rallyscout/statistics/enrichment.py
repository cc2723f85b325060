"""Per-action context used by the statistics folds.

Enrichment attaches what a single action cannot know on its own: the
quality of the touch it answered, the destination an attack was set to, and
whether an attack was stuffed by a point block.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from rallyscout.analysis.correlator import ActionCorrelator, RallyCorrelation
from rallyscout.core.models import ActionType, CanonicalAction, Destination, Rally, Side

BLOCKED_ATTACK_CODE = 1
POINT_BLOCK_CODE = 3


@dataclass(frozen=True)
class EnrichedAction:
    """A canonical action with its rally and context."""

    action: CanonicalAction
    set_no: int
    rally_no: int
    rotation: int  # rotation of the acting side during the rally
    serving: bool  # acting side served the rally
    rally_winner: Side | None
    context_quality: int | None = None
    destination: Destination | None = None
    blocked_for_point: bool = False

    @property
    def action_type(self) -> ActionType:
        return self.action.action_type

    @property
    def side(self) -> Side:
        return self.action.side

    @property
    def player_id(self) -> str | None:
        return self.action.player_id

    @property
    def player_ids(self) -> tuple[str, ...]:
        return self.action.player_ids

    @property
    def quality(self) -> int | None:
        return self.action.quality


def _latest_before(
    actions: Sequence[CanonicalAction],
    index: int,
    match: Callable[[CanonicalAction], bool],
    stop: Callable[[CanonicalAction], bool] | None = None,
) -> CanonicalAction | None:
    for candidate in reversed(actions[:index]):
        if match(candidate):
            return candidate
        if stop is not None and stop(candidate):
            return None
    return None


def _blocked_for_point(actions: Sequence[CanonicalAction], index: int) -> bool:
    """Attack code 1 answered by an opposing point block before the next attack."""
    attack = actions[index]
    if attack.quality != BLOCKED_ATTACK_CODE:
        return False
    for later in actions[index + 1:]:
        if later.action_type == ActionType.ATTACK:
            return False
        if (
            later.action_type == ActionType.BLOCK
            and later.side != attack.side
            and later.quality == POINT_BLOCK_CODE
        ):
            return True
    return False


def enrich_rally(
    rally: Rally,
    correlation: RallyCorrelation,
    default_distribution_quality: int | None = None,
) -> list[EnrichedAction]:
    actions = sorted(rally.actions, key=lambda a: a.sequence_no)
    winner = rally.winner
    enriched = []

    for index, action in enumerate(actions):
        context: int | None = None
        destination = action.destination
        blocked = False

        if action.action_type == ActionType.RECEPTION:
            serve = _latest_before(
                actions, index,
                lambda a: a.action_type == ActionType.SERVE and a.side != action.side,
            )
            context = serve.quality if serve else None

        elif action.action_type == ActionType.DISTRIBUTION:
            first_touch = _latest_before(
                actions, index,
                lambda a: a.side == action.side
                and a.action_type in (ActionType.RECEPTION, ActionType.DEFENSE),
            )
            context = first_touch.quality if first_touch else None

        elif action.action_type == ActionType.ATTACK:
            linked = correlation.for_attack(action.sequence_no)
            if linked is not None:
                context, destination = linked.distribution_quality, linked.destination
            else:
                # distribution carrying its own outcome, or a free ball
                setter = _latest_before(
                    actions, index,
                    lambda a: a.side == action.side and a.action_type == ActionType.DISTRIBUTION,
                    stop=lambda a: a.side == action.side and a.action_type == ActionType.ATTACK,
                )
                if setter is not None:
                    context, destination = setter.quality, setter.destination
            if action.set_quality is not None:
                context = action.set_quality
            if context is None:
                context = default_distribution_quality
            blocked = _blocked_for_point(actions, index)

        elif action.action_type in (ActionType.BLOCK, ActionType.DEFENSE):
            attack = _latest_before(
                actions, index,
                lambda a: a.action_type == ActionType.ATTACK and a.side != action.side,
            )
            context = attack.quality if attack else None

        enriched.append(
            EnrichedAction(
                action=action,
                set_no=rally.set_no,
                rally_no=rally.rally_no,
                rotation=rally.rotation_of(action.side),
                serving=action.side == rally.serving_side,
                rally_winner=winner,
                context_quality=context,
                destination=destination,
                blocked_for_point=blocked,
            )
        )
    return enriched


def enrich(
    rallies: Iterable[Rally],
    correlations: Iterable[RallyCorrelation] | None = None,
    default_distribution_quality: int | None = None,
) -> list[EnrichedAction]:
    """Enrich every action of every rally, in set/rally/sequence order."""
    rallies = sorted(rallies, key=lambda r: (r.set_no, r.rally_no))
    by_rally = {c.rally_id: c for c in (correlations or [])}
    correlator = ActionCorrelator()
    enriched: list[EnrichedAction] = []
    for rally in rallies:
        correlation = by_rally.get(rally.rally_id) or correlator.correlate_rally(rally)
        enriched.extend(enrich_rally(rally, correlation, default_distribution_quality))
    return enriched


@dataclass(frozen=True)
class StatsFilter:
    """Pre-filters applied to the enriched action list before any fold.

    ``quality`` matches the action's own code; ``context_quality`` matches the
    quality of the touch it followed (e.g. the set an attack came from).
    """

    side: Side | None = None
    player_id: str | None = None
    set_no: int | None = None
    quality: int | None = None
    context_quality: int | None = None
    rotation: int | None = None

    def matches(self, action: EnrichedAction) -> bool:
        if self.side is not None and action.side != self.side:
            return False
        if self.player_id is not None and self.player_id not in action.player_ids:
            return False
        if self.set_no is not None and action.set_no != self.set_no:
            return False
        if self.quality is not None and action.quality != self.quality:
            return False
        if self.context_quality is not None and action.context_quality != self.context_quality:
            return False
        if self.rotation is not None and action.rotation != self.rotation:
            return False
        return True

    def apply(self, actions: Iterable[EnrichedAction]) -> list[EnrichedAction]:
        return [a for a in actions if self.matches(a)]

    def apply_rallies(self, rallies: Iterable[Rally]) -> list[Rally]:
        """Rally-level view of the filter (only set applies to team folds)."""
        return [r for r in rallies if self.set_no is None or r.set_no == self.set_no]
