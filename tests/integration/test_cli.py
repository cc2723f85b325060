"""Integration tests for the rallyscout CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from rallyscout.cli.main import app

runner = CliRunner()


@pytest.fixture
def snapshot_file(tmp_path: Path, snapshot_data: dict[str, Any]) -> Path:
    path = tmp_path / "match.json"
    path.write_text(json.dumps(snapshot_data))
    return path


@pytest.fixture(autouse=True)
def wide_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep rich tables from wrapping cell text."""
    monkeypatch.setenv("COLUMNS", "200")


class TestStateCommand:
    def test_state(self, snapshot_file: Path) -> None:
        result = runner.invoke(app, ["state", str(snapshot_file)])

        assert result.exit_code == 0, result.output
        assert "Set 1, rally 3, phase 2 (mid_rally)" in result.output
        assert "Score: 1 - 1" in result.output
        assert "Sets won: 0 - 0" in result.output

    def test_state_json(self, snapshot_file: Path) -> None:
        result = runner.invoke(app, ["state", str(snapshot_file), "--json"])

        assert result.exit_code == 0, result.output
        assert '"currentRally": 3' in result.output
        assert '"canEnter": true' in result.output

    def test_state_for_set(self, snapshot_file: Path) -> None:
        result = runner.invoke(app, ["state", str(snapshot_file), "--set", "2"])

        assert result.exit_code == 0, result.output
        assert "Set 2, rally 1, phase 1 (fresh)" in result.output

    def test_invalid_snapshot(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["state", str(path)])

        assert result.exit_code == 1
        assert "not valid JSON" in result.output


class TestStatsCommand:
    def test_stats_to_json(self, snapshot_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "stats.json"
        result = runner.invoke(app, ["stats", str(snapshot_file), "-o", str(output)])

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text())
        assert set(data["teams"]) == {"CASA", "FORA"}
        assert {p["playerId"] for p in data["players"]} >= {"h1", "a1", "a3"}

    def test_stats_filtered(self, snapshot_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "stats.json"
        result = runner.invoke(
            app, ["stats", str(snapshot_file), "--side", "away", "-p", "a3", "-o", str(output)]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text())
        assert data["filters"] == {
            "side": "FORA",
            "playerId": "a3",
            "setNo": None,
            "quality": None,
            "contextQuality": None,
            "rotation": None,
        }
        assert [p["playerId"] for p in data["players"]] == ["a3"]
        assert data["players"][0]["attack"]["kills"] == 1

    def test_invalid_side(self, snapshot_file: Path) -> None:
        result = runner.invoke(app, ["stats", str(snapshot_file), "--side", "left"])

        assert result.exit_code != 0


class TestWarningsCommand:
    def test_no_warnings(self, snapshot_file: Path) -> None:
        result = runner.invoke(app, ["warnings", str(snapshot_file)])

        assert result.exit_code == 0, result.output
        assert "No data-quality warnings" in result.output

    def test_rotation_mismatch_listed(self, tmp_path: Path, snapshot_data: dict[str, Any]) -> None:
        snapshot_data["rallies"][1]["serve_rot"] = 3
        path = tmp_path / "match.json"
        path.write_text(json.dumps(snapshot_data))

        result = runner.invoke(app, ["warnings", str(path), "--code", "rotation_mismatch"])

        assert result.exit_code == 0, result.output
        assert "Data-quality warnings (2)" in result.output
        assert "ROTATION_MISMATCH" in result.output

    def test_filter_by_other_code(self, snapshot_file: Path) -> None:
        result = runner.invoke(app, ["warnings", str(snapshot_file), "-c", "PARTIAL_ACTION"])

        assert result.exit_code == 0, result.output
        assert "No data-quality warnings" in result.output
