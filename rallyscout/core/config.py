"""Configuration management for RallyScout."""

from __future__ import annotations

from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rallyscout.core.models import Side

# =============================================================================
# Nested Configuration Classes
# =============================================================================


class MatchConfig(BaseModel):
    """Per-match settings supplied by the store alongside the rally log."""

    home_name: str = "CASA"
    away_name: str = "FORA"
    first_serve_side: Side = Side.HOME
    deciding_set_serve_side: Side | None = None  # separate coin toss before the last set
    max_substitutions: int = 6
    set_target: int = 25
    fifth_set_target: int = 15
    sets_to_win: int = 3
    min_lead: int = 2

    @property
    def deciding_set(self) -> int:
        return self.sets_to_win * 2 - 1

    def target_for_set(self, set_no: int) -> int:
        """Points needed to close the given set."""
        return self.fifth_set_target if set_no == self.deciding_set else self.set_target


class RotationConfig(BaseModel):
    """Court zones used by the libero rules."""

    back_row_zones: tuple[int, ...] = (1, 5, 6)
    serving_entry_zones: tuple[int, ...] = (5, 6)
    libero_exit_zone: int = 4  # front-row zone reached right after service
    large_roster_size: int = 14  # rosters this large may register two liberos


class RatingConfig(BaseModel):
    """Quality thresholds and rating tables used by the statistics."""

    good_quality_threshold: int = 2
    default_distribution_quality: int = 2
    expected_kill_rate: dict[int, float] = Field(
        default_factory=lambda: {3: 0.55, 2: 0.45, 1: 0.30, 0: 0.15}
    )
    positions_by_reception: dict[int, list[str]] = Field(
        default_factory=lambda: {
            3: ["P2", "P3", "P4", "OP", "PIPE", "BACK"],
            2: ["P2", "P4", "OP", "PIPE"],
            1: ["P4", "OP"],
            0: ["P4"],
        }
    )
    top_attackers: int = 3


class CacheConfig(BaseModel):
    """Replay cache configuration."""

    enabled: bool = True
    max_entries: int = 32


# =============================================================================
# Main Configuration Class
# =============================================================================


class RallyScoutConfig(BaseSettings):
    """Configuration settings for RallyScout."""

    match: MatchConfig = Field(default_factory=MatchConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    rating: RatingConfig = Field(default_factory=RatingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    model_config = SettingsConfigDict(
        env_prefix="RALLYSCOUT_",
        env_nested_delimiter="__",  # Allows RALLYSCOUT_MATCH__MAX_SUBSTITUTIONS
    )

    @classmethod
    def from_yaml(cls, path: Path) -> RallyScoutConfig:
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls(**data) if data else cls()

    @classmethod
    def find_and_load(cls) -> RallyScoutConfig:
        """Find and load config from standard locations."""
        locations = [
            Path.cwd() / "rallyscout.yaml",
            Path(user_config_dir("rallyscout")) / "rallyscout.yaml",
        ]

        for path in locations:
            if path.exists():
                return cls.from_yaml(path)

        # Fall back to defaults + environment variables
        return cls()


# =============================================================================
# Global Config Instance
# =============================================================================

_config: RallyScoutConfig | None = None


def get_config() -> RallyScoutConfig:
    """Get global configuration instance."""
    global _config
    if _config is None:
        _config = RallyScoutConfig.find_and_load()
    return _config


def set_config(config: RallyScoutConfig) -> None:
    """Set global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset global configuration instance (useful for testing)."""
    global _config
    _config = None
