"""
Event Logger
============

Records worker, pull request, feature and system lifecycle events and answers
questions about them ("which workers are running?", "which PRs are open?").

Writes go through the EventStore; every query re-reads the log and folds it
with the projector, so there is no index to drift out of date.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from forgepilot import projector
from forgepilot.event_store import DEFAULT_RETENTION_DAYS, EVENT_LOG_FILENAME, EventStore
from forgepilot.event_types import EventFilter, EventType, WorkflowEvent, create_event, type_value

logger = logging.getLogger(__name__)


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset payload fields."""
    return {key: value for key, value in data.items() if value is not None}


class EventLogger:
    """
    Lifecycle event logging for a project directory.

    Typed ``log_*`` helpers build payloads for each event family. Default
    metadata (session id, project dir, actor) is attached to every event for
    diagnostics; it is never used to derive lifecycle state.
    """

    def __init__(
        self,
        project_dir: Path,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        session_id: Optional[str] = None,
        actor: Optional[str] = None,
        store: Optional[EventStore] = None,
    ):
        self.project_dir = Path(project_dir)
        self.store = store or EventStore(self.project_dir, retention_days=retention_days)
        self.session_id = session_id
        self.actor = actor

    @property
    def log_path(self) -> Path:
        return self.store.path

    def _default_metadata(self) -> Dict[str, Any]:
        return _compact({
            "session_id": self.session_id,
            "project_dir": str(self.project_dir),
            "actor": self.actor,
        })

    def log(
        self,
        event_type: Any,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> WorkflowEvent:
        """
        Record an event and return it.

        Raises EventLogWriteError if the log cannot be written.
        """
        event = create_event(
            event_type,
            _compact(data or {}),
            metadata if metadata is not None else self._default_metadata(),
        )
        self.store.append(event)
        logger.info("Recorded %s", projector.format_event_summary(event))
        return event

    # =========================================================================
    # Worker lifecycle
    # =========================================================================

    def log_worker_start(
        self,
        issue_number: int,
        feature_id: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> WorkflowEvent:
        return self.log(EventType.WORKER_START, {
            "issue_number": issue_number,
            "feature_id": feature_id,
            "branch_name": branch_name,
        })

    def log_worker_complete(
        self,
        issue_number: int,
        duration_ms: int,
        feature_id: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> WorkflowEvent:
        return self.log(EventType.WORKER_COMPLETE, {
            "issue_number": issue_number,
            "duration_ms": duration_ms,
            "feature_id": feature_id,
            "branch_name": branch_name,
        })

    def log_worker_fail(
        self,
        issue_number: int,
        error: str,
        duration_ms: Optional[int] = None,
        feature_id: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> WorkflowEvent:
        return self.log(EventType.WORKER_FAIL, {
            "issue_number": issue_number,
            "error": error[:1000] if error else error,
            "duration_ms": duration_ms,
            "feature_id": feature_id,
            "branch_name": branch_name,
        })

    def log_worker_timeout(
        self,
        issue_number: int,
        duration_ms: int,
        feature_id: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> WorkflowEvent:
        return self.log(EventType.WORKER_TIMEOUT, {
            "issue_number": issue_number,
            "duration_ms": duration_ms,
            "feature_id": feature_id,
            "branch_name": branch_name,
        })

    # =========================================================================
    # Pull request lifecycle
    # =========================================================================

    def log_pr_created(
        self,
        pr_number: int,
        issue_number: Optional[int] = None,
        title: Optional[str] = None,
        branch_name: Optional[str] = None,
    ) -> WorkflowEvent:
        return self.log(EventType.PR_CREATED, {
            "pr_number": pr_number,
            "issue_number": issue_number,
            "title": title[:200] if title else title,
            "branch_name": branch_name,
        })

    def log_pr_ci_pass(self, pr_number: int, checks: Optional[List[str]] = None) -> WorkflowEvent:
        return self.log(EventType.PR_CI_PASS, {"pr_number": pr_number, "checks": list(checks or [])})

    def log_pr_ci_fail(self, pr_number: int, checks: Optional[List[str]] = None) -> WorkflowEvent:
        return self.log(EventType.PR_CI_FAIL, {"pr_number": pr_number, "checks": list(checks or [])})

    def log_pr_merged(
        self,
        pr_number: int,
        issue_number: Optional[int] = None,
        merge_method: Optional[str] = None,
    ) -> WorkflowEvent:
        return self.log(EventType.PR_MERGED, {
            "pr_number": pr_number,
            "issue_number": issue_number,
            "merge_method": type_value(merge_method) if merge_method else None,
        })

    def log_pr_closed(self, pr_number: int, issue_number: Optional[int] = None) -> WorkflowEvent:
        return self.log(EventType.PR_CLOSED, {"pr_number": pr_number, "issue_number": issue_number})

    # =========================================================================
    # Features and system
    # =========================================================================

    def log_feature_started(self, feature_id: str, feature_name: Optional[str] = None) -> WorkflowEvent:
        return self.log(EventType.FEATURE_STARTED, {"feature_id": feature_id, "feature_name": feature_name})

    def log_feature_completed(self, feature_id: str, feature_name: Optional[str] = None) -> WorkflowEvent:
        return self.log(EventType.FEATURE_COMPLETED, {"feature_id": feature_id, "feature_name": feature_name})

    def log_sprint_completed(self, sprint_number: int) -> WorkflowEvent:
        return self.log(EventType.SPRINT_COMPLETED, {
            "feature_id": f"sprint-{sprint_number}",
            "sprint_number": sprint_number,
        })

    def log_system_start(self, component: Optional[str] = None) -> WorkflowEvent:
        return self.log(EventType.SYSTEM_START, {"component": component})

    def log_system_error(self, error: str, component: Optional[str] = None) -> WorkflowEvent:
        return self.log(EventType.SYSTEM_ERROR, {"error": error[:1000], "component": component})

    def log_notification_sent(self, target: str, component: Optional[str] = None) -> WorkflowEvent:
        return self.log(EventType.NOTIFICATION_SENT, {
            "notification_target": target,
            "component": component,
        })

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, event_filter: Optional[EventFilter] = None) -> List[WorkflowEvent]:
        return projector.query(self.store.read_all(), event_filter)

    def get_recent_events(self, limit: int = 10) -> List[WorkflowEvent]:
        return projector.recent_events(self.store.read_all(), limit)

    def get_issue_events(self, issue_number: int) -> List[WorkflowEvent]:
        return projector.issue_events(self.store.read_all(), issue_number)

    def get_pr_events(self, pr_number: int) -> List[WorkflowEvent]:
        return projector.pr_events(self.store.read_all(), pr_number)

    def get_active_workers(self) -> List[WorkflowEvent]:
        """Start events for workers that have not completed, failed or timed out."""
        return projector.active_workers(self.store.read_all())

    def get_pending_prs(self) -> List[WorkflowEvent]:
        """Created events for pull requests that are not merged or closed."""
        return projector.pending_prs(self.store.read_all())

    def get_stats(self) -> projector.EventStats:
        return projector.compute_stats(self.store.read_all())

    # =========================================================================
    # Maintenance
    # =========================================================================

    def rotate(self, retention_days: Optional[int] = None) -> int:
        return self.store.rotate(retention_days)

    def clear(self) -> None:
        self.store.clear()


# =============================================================================
# Convenience Functions
# =============================================================================

def create_event_logger(
    project_dir: Optional[Path] = None,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> EventLogger:
    """Create an EventLogger for a project (defaults to the working directory)."""
    return EventLogger(Path(project_dir) if project_dir else Path.cwd(), retention_days=retention_days)


def get_event_log_path(project_dir: Optional[Path] = None) -> Path:
    return (Path(project_dir) if project_dir else Path.cwd()) / EVENT_LOG_FILENAME
