"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from rallyscout.core.config import (
    MatchConfig,
    RallyScoutConfig,
    get_config,
    reset_config,
    set_config,
)
from rallyscout.core.models import Side


class TestMatchConfig:
    def test_defaults(self) -> None:
        match = MatchConfig()

        assert match.first_serve_side == Side.HOME
        assert match.max_substitutions == 6
        assert match.deciding_set == 5

    def test_target_for_set(self) -> None:
        match = MatchConfig()

        assert [match.target_for_set(n) for n in range(1, 6)] == [25, 25, 25, 25, 15]

    def test_best_of_three(self) -> None:
        match = MatchConfig(sets_to_win=2)

        assert match.deciding_set == 3
        assert match.target_for_set(3) == 15

    def test_side_from_stored_value(self) -> None:
        assert MatchConfig(first_serve_side="FORA").first_serve_side == Side.AWAY


class TestRallyScoutConfig:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test nested settings can be set through the environment."""
        monkeypatch.setenv("RALLYSCOUT_MATCH__MAX_SUBSTITUTIONS", "4")

        assert RallyScoutConfig().match.max_substitutions == 4

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "rallyscout.yaml"
        path.write_text(
            "match:\n"
            "  set_target: 21\n"
            "rotation:\n"
            "  large_roster_size: 12\n"
            "cache:\n"
            "  enabled: false\n"
        )
        config = RallyScoutConfig.from_yaml(path)

        assert config.match.set_target == 21
        assert config.rotation.large_roster_size == 12
        assert not config.cache.enabled
        assert config.rating.good_quality_threshold == 2

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "rallyscout.yaml"
        path.write_text("")

        assert RallyScoutConfig.from_yaml(path).match.set_target == 25

    def test_find_and_load_from_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "rallyscout.yaml").write_text("match:\n  fifth_set_target: 11\n")
        monkeypatch.chdir(tmp_path)

        assert RallyScoutConfig.find_and_load().match.fifth_set_target == 11


class TestGlobalConfig:
    def test_set_and_reset(self) -> None:
        custom = RallyScoutConfig(match=MatchConfig(max_substitutions=3))
        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert get_config() is not custom
