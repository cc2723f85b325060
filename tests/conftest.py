"""Pytest configuration and fixtures."""

from typing import Any

import pytest

from rallyscout.core.config import RallyScoutConfig, reset_config, set_config


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests (full-match replays)",
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (run with --run-slow)")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is specified."""
    if config.getoption("--run-slow"):
        return

    skip_slow = pytest.mark.skip(reason="Need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def default_config():
    """Use built-in defaults, ignoring any rallyscout.yaml on the machine."""
    set_config(RallyScoutConfig())
    yield
    reset_config()


def _player_rows(side: str, prefix: str, count: int) -> list[dict[str, Any]]:
    positions = ["S", "OH", "MB", "OP", "OH", "MB"]
    rows = [
        {
            "id": f"{prefix}{i}",
            "side": side,
            "jersey_number": i,
            "name": f"Player {prefix.upper()}{i}",
            "position": positions[(i - 1) % len(positions)],
        }
        for i in range(1, count + 1)
    ]
    rows.append({"id": f"{prefix}L", "side": side, "jersey_number": 99, "name": "Libero", "position": "L"})
    return rows


@pytest.fixture
def snapshot_data() -> dict[str, Any]:
    """Three rallies of set 1: a side-out kill, a serve error, and one still being entered."""
    base = {"match_id": "m1", "set_no": 1, "phase": 1}
    return {
        "match": {
            "id": "m1",
            "home_name": "Benfica",
            "away_name": "Porto",
            "first_serve_side": "CASA",
        },
        "players": _player_rows("CASA", "h", 6) + _player_rows("FORA", "a", 6),
        "lineups": [
            {"set_no": 1, "side": "CASA", **{f"rot{i}": f"h{i}" for i in range(1, 7)}},
            {"set_no": 1, "side": "FORA", **{f"rot{i}": f"a{i}" for i in range(1, 7)}},
        ],
        "substitutions": [],
        "rallies": [
            {
                **base,
                "id": "p1",
                "rally_no": 1,
                "serve_side": "CASA",
                "serve_rot": 1,
                "recv_side": "FORA",
                "recv_rot": 1,
                "s_player_id": "h1",
                "s_code": 2,
                "r_player_id": "a1",
                "r_code": 3,
                "setter_player_id": "a2",
                "pass_destination": "P4",
                "pass_code": 2,
                "a_player_id": "a3",
                "a_code": 3,
                "kill_type": "FLOOR",
                "point_won_by": "FORA",
                "reason": "KILL",
            },
            {
                **base,
                "id": "p2",
                "rally_no": 2,
                "serve_side": "FORA",
                "serve_rot": 2,
                "recv_side": "CASA",
                "recv_rot": 1,
                "s_player_id": "a2",
                "s_code": 0,
                "point_won_by": "CASA",
                "reason": "SE",
            },
            {
                **base,
                "id": "p3",
                "rally_no": 3,
                "serve_side": "CASA",
                "serve_rot": 2,
                "recv_side": "FORA",
                "recv_rot": 2,
                "s_player_id": "h2",
                "s_code": 2,
                "r_player_id": "a1",
                "r_code": 1,
            },
        ],
        "rallyActions": [],
        "logVersion": "7",
    }
