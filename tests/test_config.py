"""
Tests for autopilot configuration.
"""

import json
import logging
import tempfile
from pathlib import Path

import pytest

from forgepilot.config import (
    DEFAULT_AUTOPILOT_CONFIG,
    AutopilotConfig,
    ConfigLoader,
    PRStrategy,
    describe_pr_strategy,
    generate_worker_branch,
    has_autopilot_config,
    load_autopilot_config,
    load_autopilot_config_with_report,
    merge_autopilot_config,
    parse_timeout,
    save_autopilot_config,
    validate_autopilot_config,
)


@pytest.fixture
def temp_project_dir():
    """Create a temporary project directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "FORGEPILOT_PR_STRATEGY",
        "FORGEPILOT_MAX_WORKERS",
        "FORGEPILOT_WORKER_TIMEOUT",
        "FORGEPILOT_REQUIRED_CHECKS",
    ):
        monkeypatch.delenv(name, raising=False)


def write_json(path: Path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


class TestDefaults:
    def test_default_values(self):
        config = AutopilotConfig()

        assert config.pr_strategy == PRStrategy.REVIEW
        assert config.max_concurrent_workers == 3
        assert config.auto_label_non_blocking is False
        assert config.worker_timeout == "30m"
        assert config.required_checks == ("test", "build")
        assert config.branch_pattern == "claude-worker/{feature-id}"
        assert config.worker_label == "ready-for-claude"
        assert config.review_label == "ready-for-review"

    def test_to_dict_uses_camel_case(self):
        data = DEFAULT_AUTOPILOT_CONFIG.to_dict()
        assert data["prStrategy"] == "review"
        assert data["maxConcurrentWorkers"] == 3
        assert data["requiredChecks"] == ["test", "build"]

    def test_from_dict_roundtrip(self):
        config = AutopilotConfig(pr_strategy=PRStrategy.AUTO, max_concurrent_workers=5)
        assert AutopilotConfig.from_dict(config.to_dict()) == config


class TestValidation:
    """Tests for per-field validation."""

    def test_valid_partial(self):
        result = validate_autopilot_config({"prStrategy": "auto", "maxConcurrentWorkers": 10})
        assert result.valid
        assert result.errors == []

    @pytest.mark.parametrize("partial, fragment", [
        ({"prStrategy": "yolo"}, "Invalid prStrategy"),
        ({"maxConcurrentWorkers": 0}, "between 1 and 10"),
        ({"maxConcurrentWorkers": 11}, "between 1 and 10"),
        ({"maxConcurrentWorkers": "3"}, "must be an integer"),
        ({"workerTimeout": "30s"}, "Invalid workerTimeout"),
        ({"requiredChecks": "test"}, "array of strings"),
        ({"requiredChecks": ["test", ""]}, "empty check names"),
        ({"requiredChecks": ["  "]}, "empty check names"),
        ({"autoLabelNonBlocking": "yes"}, "must be a boolean"),
    ])
    def test_invalid_values(self, partial, fragment):
        result = validate_autopilot_config(partial)
        assert not result.valid
        assert fragment in result.errors[0]

    def test_snake_case_keys(self):
        assert not validate_autopilot_config({"max_concurrent_workers": 99}).valid

    def test_unknown_keys_ignored(self):
        assert validate_autopilot_config({"somethingElse": 1}).valid


class TestMerge:
    """Tests for overlaying partial configs."""

    def test_valid_fields_applied(self):
        config = merge_autopilot_config({"prStrategy": "manual", "requiredChecks": ["lint"]})
        assert config.pr_strategy == PRStrategy.MANUAL
        assert config.required_checks == ("lint",)

    def test_invalid_field_keeps_default(self, caplog):
        with caplog.at_level(logging.WARNING, logger="forgepilot.config"):
            config = merge_autopilot_config({"maxConcurrentWorkers": 50, "workerTimeout": "1h"})

        assert config.max_concurrent_workers == 3
        assert config.worker_timeout == "1h"
        assert "maxConcurrentWorkers" in caplog.text

    def test_blank_required_check_keeps_default(self):
        config = merge_autopilot_config({"requiredChecks": ["lint", " "]})
        assert config.required_checks == ("test", "build")

    def test_merge_onto_base(self):
        base = AutopilotConfig(max_concurrent_workers=7)
        config = merge_autopilot_config({"prStrategy": "auto"}, base)
        assert config.max_concurrent_workers == 7
        assert config.pr_strategy == PRStrategy.AUTO


class TestParseTimeout:
    @pytest.mark.parametrize("value, seconds", [
        ("30m", 1800.0),
        ("1h", 3600.0),
        ("90m", 5400.0),
        ("2h", 7200.0),
        ("30s", 1800.0),
        ("", 1800.0),
    ])
    def test_parse_timeout(self, value, seconds):
        assert parse_timeout(value) == seconds

    def test_worker_timeout_seconds(self):
        assert AutopilotConfig(worker_timeout="1h").worker_timeout_seconds == 3600.0


class TestLoading:
    """Tests for reading config files and the environment."""

    def test_no_files_gives_defaults(self, temp_project_dir):
        assert load_autopilot_config(temp_project_dir) == DEFAULT_AUTOPILOT_CONFIG
        assert not has_autopilot_config(temp_project_dir)

    def test_reads_forgepilot_json(self, temp_project_dir):
        write_json(temp_project_dir / ".forgepilot.json", {"autopilot": {"maxConcurrentWorkers": 5}})

        assert load_autopilot_config(temp_project_dir).max_concurrent_workers == 5
        assert has_autopilot_config(temp_project_dir)

    def test_reads_nested_feature_list_section(self, temp_project_dir):
        write_json(temp_project_dir / "feature_list.json", {
            "features": [],
            "config": {"autopilot": {"prStrategy": "auto"}},
        })
        assert load_autopilot_config(temp_project_dir).pr_strategy == PRStrategy.AUTO

    def test_later_file_overrides(self, temp_project_dir):
        write_json(temp_project_dir / ".forgepilot.json", {"autopilot": {"maxConcurrentWorkers": 5}})
        write_json(temp_project_dir / "feature_list.json", {"autopilot": {"maxConcurrentWorkers": 2}})
        assert load_autopilot_config(temp_project_dir).max_concurrent_workers == 2

    def test_unreadable_file_skipped(self, temp_project_dir):
        (temp_project_dir / ".forgepilot.json").write_text("{oops", encoding="utf-8")
        assert load_autopilot_config(temp_project_dir) == DEFAULT_AUTOPILOT_CONFIG

    def test_env_overrides_files(self, temp_project_dir, monkeypatch):
        write_json(temp_project_dir / ".forgepilot.json", {"autopilot": {"maxConcurrentWorkers": 5}})
        monkeypatch.setenv("FORGEPILOT_MAX_WORKERS", "8")
        monkeypatch.setenv("FORGEPILOT_PR_STRATEGY", "AUTO")
        monkeypatch.setenv("FORGEPILOT_REQUIRED_CHECKS", "lint, e2e")

        config = load_autopilot_config(temp_project_dir)

        assert config.max_concurrent_workers == 8
        assert config.pr_strategy == PRStrategy.AUTO
        assert config.required_checks == ("lint", "e2e")

    def test_report_lists_rejected_values(self, temp_project_dir, monkeypatch):
        monkeypatch.setenv("FORGEPILOT_MAX_WORKERS", "many")

        config, report = load_autopilot_config_with_report(temp_project_dir)

        assert config.max_concurrent_workers == 3
        assert not report.valid
        assert "maxConcurrentWorkers" in report.errors[0]

    def test_config_loader_reload(self, temp_project_dir):
        loader = ConfigLoader(temp_project_dir)
        assert loader.config.max_concurrent_workers == 3

        write_json(temp_project_dir / ".forgepilot.json", {"autopilot": {"maxConcurrentWorkers": 4}})
        assert loader.config.max_concurrent_workers == 3

        assert loader.reload().max_concurrent_workers == 4
        assert loader.config.max_concurrent_workers == 4

    def test_save_preserves_other_keys(self, temp_project_dir):
        write_json(temp_project_dir / ".forgepilot.json", {"other": True})

        assert save_autopilot_config(AutopilotConfig(max_concurrent_workers=6), temp_project_dir)

        saved = json.loads((temp_project_dir / ".forgepilot.json").read_text(encoding="utf-8"))
        assert saved["other"] is True
        assert saved["autopilot"]["maxConcurrentWorkers"] == 6
        assert load_autopilot_config(temp_project_dir).max_concurrent_workers == 6


class TestHelpers:
    def test_generate_worker_branch(self):
        assert generate_worker_branch("User Auth_2") == "claude-worker/user-auth-2"

    def test_custom_branch_pattern(self):
        assert generate_worker_branch("f1", "bots/{feature-id}/work") == "bots/f1/work"

    def test_describe_pr_strategy(self):
        assert "merge" in describe_pr_strategy(PRStrategy.AUTO).lower()
        assert "review" in describe_pr_strategy(PRStrategy.REVIEW).lower()
