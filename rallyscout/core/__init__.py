"""Core domain models and configuration."""

from rallyscout.core.models import (
    ActionType,
    BaseLineup,
    CanonicalAction,
    Destination,
    KillType,
    Player,
    Rally,
    Reason,
    Side,
    Substitution,
    TeamIncomplete,
)
from rallyscout.core.config import get_config, RallyScoutConfig

__all__ = [
    "ActionType",
    "BaseLineup",
    "CanonicalAction",
    "Destination",
    "KillType",
    "Player",
    "Rally",
    "Reason",
    "Side",
    "Substitution",
    "TeamIncomplete",
    "get_config",
    "RallyScoutConfig",
]
