"""
Smoke tests for the forgepilot CLI.
"""

import json
import tempfile
from pathlib import Path

import pytest

from forgepilot.cli.pilot_cli import build_parser, main
from forgepilot.event_logger import EventLogger


@pytest.fixture
def temp_project_dir():
    """Create a temporary project directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("FORGEPILOT_PR_STRATEGY", "FORGEPILOT_MAX_WORKERS", "FORGEPILOT_WORKER_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


def run(project_dir: Path, *args: str) -> int:
    return main(["--project-dir", str(project_dir), *args])


class TestParser:
    def test_pr_merge_arguments(self):
        args = build_parser().parse_args(["pr", "merge", "5", "--method", "rebase", "--dry-run"])

        assert args.command == "pr"
        assert args.pr_command == "merge"
        assert args.pr_number == 5
        assert args.method == "rebase"
        assert args.dry_run

    def test_pr_wait_defaults(self):
        args = build_parser().parse_args(["pr", "wait", "9"])
        assert args.interval == 30.0
        assert args.timeout == 1800.0

    def test_no_command_prints_help(self, temp_project_dir):
        assert run(temp_project_dir) == 1


class TestEventsCommands:
    def test_list_without_log(self, temp_project_dir, capsys):
        assert run(temp_project_dir, "events", "list") == 1
        assert "No events found" in capsys.readouterr().out

    def test_list_and_filters(self, temp_project_dir, capsys):
        event_logger = EventLogger(temp_project_dir)
        event_logger.log_worker_start(7)
        event_logger.log_pr_created(70, issue_number=7)

        assert run(temp_project_dir, "events", "list") == 0
        out = capsys.readouterr().out
        assert "worker.start" in out
        assert "pr.created" in out

        assert run(temp_project_dir, "events", "list", "--type", "pr.created") == 0
        assert "worker.start" not in capsys.readouterr().out

    def test_stats(self, temp_project_dir, capsys):
        EventLogger(temp_project_dir).log_worker_start(1)

        assert run(temp_project_dir, "events", "stats") == 0
        assert "Active workers" in capsys.readouterr().out

    def test_active_and_pending(self, temp_project_dir, capsys):
        assert run(temp_project_dir, "events", "active") == 0
        assert "No active workers" in capsys.readouterr().out

        EventLogger(temp_project_dir).log_pr_created(12)
        assert run(temp_project_dir, "events", "pending") == 0
        assert "#12" in capsys.readouterr().out

    def test_rotate(self, temp_project_dir):
        EventLogger(temp_project_dir).log_system_start()
        assert run(temp_project_dir, "events", "rotate", "--days", "30") == 0
        assert EventLogger(temp_project_dir).get_stats().total_events == 1

    def test_clear_requires_confirmation(self, temp_project_dir):
        EventLogger(temp_project_dir).log_system_start()

        assert run(temp_project_dir, "events", "clear") == 1
        assert EventLogger(temp_project_dir).get_stats().total_events == 1

        assert run(temp_project_dir, "events", "clear", "--yes") == 0
        assert EventLogger(temp_project_dir).get_stats().total_events == 0


class TestConfigCommands:
    def test_show_defaults(self, temp_project_dir, capsys):
        assert run(temp_project_dir, "config", "show") == 0
        out = capsys.readouterr().out
        assert "review" in out
        assert "using defaults" in out

    def test_validate_ok(self, temp_project_dir):
        assert run(temp_project_dir, "config", "validate") == 0

    def test_validate_reports_errors(self, temp_project_dir, capsys):
        (temp_project_dir / ".forgepilot.json").write_text(
            json.dumps({"autopilot": {"prStrategy": "yolo"}}), encoding="utf-8",
        )
        assert run(temp_project_dir, "config", "validate") == 1
        assert "Invalid prStrategy" in capsys.readouterr().out


class TestAdmitCommand:
    def test_admit(self, temp_project_dir):
        assert run(temp_project_dir, "admit") == 0

    def test_admit_at_capacity(self, temp_project_dir, capsys):
        (temp_project_dir / ".forgepilot.json").write_text(
            json.dumps({"autopilot": {"maxConcurrentWorkers": 1}}), encoding="utf-8",
        )
        EventLogger(temp_project_dir).log_worker_start(1)

        assert run(temp_project_dir, "admit") == 1
        assert "At capacity" in capsys.readouterr().out
