"""
Configuration Management
========================

Autopilot configuration for distributed workers: merge strategy, worker
limits and timeouts, required CI checks and branch naming.

Loaded from project config files, then environment variables, on top of the
defaults. Invalid values are rejected field by field so a bad entry never
replaces a good one.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".forgepilot.json"

# Searched in order; later files override earlier ones.
CONFIG_FILES = (
    CONFIG_FILENAME,
    "feature_list.json",
)

MIN_WORKERS = 1
MAX_WORKERS = 10
DEFAULT_TIMEOUT_SECONDS = 30 * 60.0

_TIMEOUT_PATTERN = re.compile(r"^(\d+)([mh])$")


class PRStrategy(str, Enum):
    """How pull requests created by workers are handled."""
    AUTO = "auto"
    REVIEW = "review"
    MANUAL = "manual"


class MergeMethod(str, Enum):
    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"


@dataclass(frozen=True)
class AutopilotConfig:
    """Autopilot configuration. Read-only once loaded."""
    pr_strategy: PRStrategy = PRStrategy.REVIEW
    max_concurrent_workers: int = 3
    auto_label_non_blocking: bool = False
    worker_timeout: str = "30m"
    required_checks: Tuple[str, ...] = ("test", "build")
    branch_pattern: str = "claude-worker/{feature-id}"
    worker_label: str = "ready-for-claude"
    review_label: str = "ready-for-review"

    @property
    def worker_timeout_seconds(self) -> float:
        return parse_timeout(self.worker_timeout)

    def to_dict(self) -> dict:
        """Serialize using the camelCase keys of the config file format."""
        return {
            "prStrategy": self.pr_strategy.value,
            "maxConcurrentWorkers": self.max_concurrent_workers,
            "autoLabelNonBlocking": self.auto_label_non_blocking,
            "workerTimeout": self.worker_timeout,
            "requiredChecks": list(self.required_checks),
            "branchPattern": self.branch_pattern,
            "workerLabel": self.worker_label,
            "reviewLabel": self.review_label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutopilotConfig":
        """Build a config from camelCase or snake_case keys, dropping invalid values."""
        return merge_autopilot_config(data)


DEFAULT_AUTOPILOT_CONFIG = AutopilotConfig()

_CAMEL_TO_FIELD = {
    "prStrategy": "pr_strategy",
    "maxConcurrentWorkers": "max_concurrent_workers",
    "autoLabelNonBlocking": "auto_label_non_blocking",
    "workerTimeout": "worker_timeout",
    "requiredChecks": "required_checks",
    "branchPattern": "branch_pattern",
    "workerLabel": "worker_label",
    "reviewLabel": "review_label",
}
_FIELD_NAMES = {f.name for f in fields(AutopilotConfig)}


@dataclass
class ValidationResult:
    """Outcome of validating a (partial) configuration."""
    valid: bool = True
    errors: List[str] = field(default_factory=list)

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        self.valid = not self.errors


def _normalize_keys(partial: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in partial.items():
        name = _CAMEL_TO_FIELD.get(key, key)
        if name in _FIELD_NAMES:
            normalized[name] = value
    return normalized


def _check_field(name: str, value: Any) -> Optional[str]:
    """Return an error message for an invalid value, else None."""
    if name == "pr_strategy":
        allowed = [s.value for s in PRStrategy]
        if (value.value if isinstance(value, PRStrategy) else value) not in allowed:
            return f"Invalid prStrategy: {value}. Must be 'auto', 'review', or 'manual'"
    elif name == "max_concurrent_workers":
        if isinstance(value, bool) or not isinstance(value, int):
            return f"maxConcurrentWorkers must be an integer, got {value!r}"
        if value < MIN_WORKERS or value > MAX_WORKERS:
            return f"maxConcurrentWorkers must be between {MIN_WORKERS} and {MAX_WORKERS}, got {value}"
    elif name == "worker_timeout":
        if not isinstance(value, str) or not _TIMEOUT_PATTERN.match(value):
            return f"Invalid workerTimeout format: {value}. Use format like '30m' or '1h'"
    elif name == "required_checks":
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            return "requiredChecks must be an array of strings"
        if not all(v.strip() for v in value):
            return "requiredChecks must not contain empty check names"
    elif name == "auto_label_non_blocking":
        if not isinstance(value, bool):
            return f"autoLabelNonBlocking must be a boolean, got {value!r}"
    elif name in ("branch_pattern", "worker_label", "review_label"):
        if not isinstance(value, str) or not value:
            return f"{name} must be a non-empty string"
    return None


def validate_autopilot_config(partial: Dict[str, Any]) -> ValidationResult:
    """Validate a partial configuration (camelCase or snake_case keys)."""
    errors = []
    for name, value in _normalize_keys(partial).items():
        error = _check_field(name, value)
        if error:
            errors.append(error)
    return ValidationResult(valid=not errors, errors=errors)


def merge_autopilot_config(
    partial: Dict[str, Any],
    base: AutopilotConfig = DEFAULT_AUTOPILOT_CONFIG,
) -> AutopilotConfig:
    """
    Overlay the valid fields of ``partial`` on ``base``.

    Invalid fields are logged and skipped; the base value is kept.
    """
    updates: Dict[str, Any] = {}
    for name, value in _normalize_keys(partial).items():
        error = _check_field(name, value)
        if error:
            logger.warning("Ignoring config value: %s", error)
            continue
        if name == "pr_strategy":
            value = PRStrategy(value)
        elif name == "required_checks":
            value = tuple(value)
        updates[name] = value
    return replace(base, **updates)


def parse_timeout(timeout: str) -> float:
    """Convert '30m' / '1h' to seconds. Malformed strings give 30 minutes."""
    match = _TIMEOUT_PATTERN.match(timeout or "")
    if not match:
        return DEFAULT_TIMEOUT_SECONDS
    value = int(match.group(1))
    if match.group(2) == "h":
        return value * 3600.0
    return value * 60.0


# =============================================================================
# Loading
# =============================================================================

def _autopilot_section(parsed: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(parsed, dict):
        return None
    if isinstance(parsed.get("autopilot"), dict):
        return parsed["autopilot"]
    nested = parsed.get("config")
    if isinstance(nested, dict) and isinstance(nested.get("autopilot"), dict):
        return nested["autopilot"]
    return None


def _read_config_files(project_dir: Path) -> Dict[str, Any]:
    combined: Dict[str, Any] = {}
    for filename in CONFIG_FILES:
        config_path = project_dir / filename
        if not config_path.exists():
            continue
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                section = _autopilot_section(json.load(f))
        except (OSError, ValueError) as e:
            logger.debug("Skipping unreadable config file %s: %s", config_path, e)
            continue
        if section:
            combined.update(_normalize_keys(section))
    return combined


def _read_env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}

    strategy = os.environ.get("FORGEPILOT_PR_STRATEGY")
    if strategy:
        overrides["pr_strategy"] = strategy.strip().lower()

    max_workers = os.environ.get("FORGEPILOT_MAX_WORKERS")
    if max_workers:
        try:
            overrides["max_concurrent_workers"] = int(max_workers)
        except ValueError:
            overrides["max_concurrent_workers"] = max_workers

    timeout = os.environ.get("FORGEPILOT_WORKER_TIMEOUT")
    if timeout:
        overrides["worker_timeout"] = timeout.strip()

    checks = os.environ.get("FORGEPILOT_REQUIRED_CHECKS")
    if checks is not None:
        overrides["required_checks"] = [c.strip() for c in checks.split(",") if c.strip()]

    return overrides


def load_autopilot_config_with_report(
    project_dir: Optional[Path] = None,
) -> Tuple[AutopilotConfig, ValidationResult]:
    """
    Load configuration and report every rejected value.

    Precedence (lowest to highest): defaults, .forgepilot.json,
    feature_list.json, FORGEPILOT_* environment variables.
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    partial = _read_config_files(project_dir)
    partial.update(_read_env_overrides())

    report = validate_autopilot_config(partial)
    return merge_autopilot_config(partial), report


def load_autopilot_config(project_dir: Optional[Path] = None) -> AutopilotConfig:
    return load_autopilot_config_with_report(project_dir)[0]


class ConfigLoader:
    """
    Holds the configuration for one project directory.

    The value is loaded once at construction and replaced only by an explicit
    ``reload()``; components receive the value, not the loader.
    """

    def __init__(self, project_dir: Optional[Path] = None):
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self._config, self._report = load_autopilot_config_with_report(self.project_dir)

    @property
    def config(self) -> AutopilotConfig:
        return self._config

    @property
    def report(self) -> ValidationResult:
        return self._report

    def reload(self) -> AutopilotConfig:
        self._config, self._report = load_autopilot_config_with_report(self.project_dir)
        return self._config


def save_autopilot_config(config: AutopilotConfig, project_dir: Optional[Path] = None) -> bool:
    """Write the config under the ``autopilot`` key of .forgepilot.json."""
    config_path = (Path(project_dir) if project_dir else Path.cwd()) / CONFIG_FILENAME
    try:
        existing: Dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                existing = loaded
        existing["autopilot"] = config.to_dict()
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(existing, f, indent=2)
        return True
    except (OSError, ValueError) as e:
        logger.warning("Could not save config to %s: %s", config_path, e)
        return False


def has_autopilot_config(project_dir: Optional[Path] = None) -> bool:
    """Whether any candidate file carries an autopilot section."""
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    for filename in CONFIG_FILES:
        config_path = project_dir / filename
        if not config_path.exists():
            continue
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if _autopilot_section(json.load(f)) is not None:
                    return True
        except (OSError, ValueError):
            continue
    return False


def generate_worker_branch(
    feature_id: str,
    pattern: str = DEFAULT_AUTOPILOT_CONFIG.branch_pattern,
) -> str:
    """Fill ``{feature-id}`` with a branch-safe slug of the feature id."""
    slug = re.sub(r"[^a-z0-9-]", "-", feature_id.lower())
    return pattern.replace("{feature-id}", slug)


def describe_pr_strategy(strategy: PRStrategy) -> str:
    descriptions = {
        PRStrategy.AUTO: "Automatically merge when CI passes",
        PRStrategy.REVIEW: "Add review label when CI passes, wait for human approval",
        PRStrategy.MANUAL: "Create PR only, no automatic actions",
    }
    try:
        return descriptions[PRStrategy(strategy)]
    except ValueError:
        return "Unknown strategy"
