"""
Tests for the Typer command line.
"""

import re
from pathlib import Path

import pendulum
from typer.testing import CliRunner

from bookingslots import __version__
from bookingslots.cli.app import app

runner = CliRunner()

CONFIG_YAML = """
timezone: America/New_York
mock_calendar_file: events.json
defaults:
  min_notice_minutes: 0
users:
  - id: alice
    email: alice@example.com
    rules:
      - days: [0, 1, 2, 3, 4]
        start: "09:00"
        end: "17:00"
    calendars:
      - provider: mock
        calendar_id: alice@example.com
"""


def _config(tmp_path: Path, extra: str = "") -> Path:
    (tmp_path / "events.json").write_text("[]", encoding="utf-8")
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML + extra, encoding="utf-8")
    return path


def _next_monday_at_ten() -> str:
    monday = pendulum.now("America/New_York").next(pendulum.MONDAY)
    return monday.format("YYYY-MM-DD") + " 10:00"


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_users(tmp_path):
    result = runner.invoke(app, ["users", "--config", str(_config(tmp_path))])

    assert result.exit_code == 0
    assert "alice" in result.stdout
    assert "America/New_York" in result.stdout


def test_slots(tmp_path):
    result = runner.invoke(app, ["slots", "alice", "--config", str(_config(tmp_path)), "--count", "3"])

    assert result.exit_code == 0
    assert "Available slots for alice" in result.stdout


def test_slots_unknown_user(tmp_path):
    result = runner.invoke(app, ["slots", "mallory", "--config", str(_config(tmp_path))])

    assert result.exit_code == 1
    assert "Unknown user" in result.stdout


def test_missing_config(tmp_path):
    result = runner.invoke(app, ["users", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.stdout


def test_book(tmp_path):
    result = runner.invoke(app, [
        "book", "alice", _next_monday_at_ten(),
        "--email", "guest@example.com",
        "--config", str(_config(tmp_path)),
    ])

    assert result.exit_code == 0
    assert "Booked" in result.stdout


def test_book_outside_hours(tmp_path):
    monday = pendulum.now("America/New_York").next(pendulum.MONDAY).format("YYYY-MM-DD")
    result = runner.invoke(app, [
        "book", "alice", f"{monday} 20:00",
        "--email", "guest@example.com",
        "--config", str(_config(tmp_path)),
    ])

    assert result.exit_code == 1
    assert "outside" in result.stdout


def test_sync_config_requires_database(tmp_path):
    result = runner.invoke(app, ["sync-config", "--config", str(_config(tmp_path))])

    assert result.exit_code == 1


def test_book_conflict_and_cancel_with_database(tmp_path):
    database = tmp_path / "bookings.db"
    config = str(_config(tmp_path, f"database_url: sqlite:///{database}\n"))
    start = _next_monday_at_ten()

    assert runner.invoke(app, ["sync-config", "--config", config]).exit_code == 0

    booked = runner.invoke(app, ["book", "alice", start, "--email", "a@example.com", "--config", config])
    assert booked.exit_code == 0
    booking_id = re.search(r"id=([0-9a-f]{32})", booked.stdout).group(1)

    conflict = runner.invoke(app, ["book", "alice", start, "--email", "b@example.com", "--config", config])
    assert conflict.exit_code == 2
    assert "just taken" in conflict.stdout

    cancelled = runner.invoke(app, ["cancel", booking_id, "--config", config])
    assert cancelled.exit_code == 0

    rebooked = runner.invoke(app, ["book", "alice", start, "--email", "b@example.com", "--config", config])
    assert rebooked.exit_code == 0


def test_cancel_unknown_booking(tmp_path):
    result = runner.invoke(app, ["cancel", "missing", "--config", str(_config(tmp_path))])

    assert result.exit_code == 1
    assert "Unknown booking" in result.stdout


def test_serve_builds_app_from_config(tmp_path, monkeypatch):
    import uvicorn
    from fastapi import FastAPI

    served = {}
    monkeypatch.setattr(uvicorn, "run", lambda application, **kwargs: served.update(app=application, **kwargs))

    result = runner.invoke(app, ["serve", "--config", str(_config(tmp_path)), "--port", "9000"])

    assert result.exit_code == 0
    assert isinstance(served["app"], FastAPI)
    assert served["port"] == 9000


def test_serve_missing_config(tmp_path):
    result = runner.invoke(app, ["serve", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.stdout
