"""
Workflow Event Types
====================

Immutable lifecycle events recorded by the event store, plus the filter and
log container types used to query them.
"""

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

EVENT_LOG_VERSION = "1.0.0"


class EventType(str, Enum):
    """Types of lifecycle events that can be recorded."""
    # Worker lifecycle
    WORKER_START = "worker.start"
    WORKER_COMPLETE = "worker.complete"
    WORKER_FAIL = "worker.fail"
    WORKER_TIMEOUT = "worker.timeout"

    # Pull request lifecycle
    PR_CREATED = "pr.created"
    PR_CI_PASS = "pr.ci_pass"
    PR_CI_FAIL = "pr.ci_fail"
    PR_MERGED = "pr.merged"
    PR_CLOSED = "pr.closed"

    # Feature progress
    FEATURE_STARTED = "feature.started"
    FEATURE_COMPLETED = "feature.completed"
    SPRINT_COMPLETED = "sprint.completed"

    # System
    SYSTEM_START = "system.start"
    SYSTEM_ERROR = "system.error"
    NOTIFICATION_SENT = "notification.sent"


class EventFamily(str, Enum):
    WORKER = "worker"
    PR = "pr"
    FEATURE = "feature"
    SYSTEM = "system"


_FAMILIES: Dict[str, EventFamily] = {
    EventType.WORKER_START.value: EventFamily.WORKER,
    EventType.WORKER_COMPLETE.value: EventFamily.WORKER,
    EventType.WORKER_FAIL.value: EventFamily.WORKER,
    EventType.WORKER_TIMEOUT.value: EventFamily.WORKER,
    EventType.PR_CREATED.value: EventFamily.PR,
    EventType.PR_CI_PASS.value: EventFamily.PR,
    EventType.PR_CI_FAIL.value: EventFamily.PR,
    EventType.PR_MERGED.value: EventFamily.PR,
    EventType.PR_CLOSED.value: EventFamily.PR,
    EventType.FEATURE_STARTED.value: EventFamily.FEATURE,
    EventType.FEATURE_COMPLETED.value: EventFamily.FEATURE,
    EventType.SPRINT_COMPLETED.value: EventFamily.FEATURE,
    EventType.SYSTEM_START.value: EventFamily.SYSTEM,
    EventType.SYSTEM_ERROR.value: EventFamily.SYSTEM,
    EventType.NOTIFICATION_SENT.value: EventFamily.SYSTEM,
}

WORKER_TERMINAL_TYPES: FrozenSet[str] = frozenset({
    EventType.WORKER_COMPLETE.value,
    EventType.WORKER_FAIL.value,
    EventType.WORKER_TIMEOUT.value,
})

PR_TERMINAL_TYPES: FrozenSet[str] = frozenset({
    EventType.PR_MERGED.value,
    EventType.PR_CLOSED.value,
})

# snake_case payload key -> camelCase spelling used by older JavaScript logs
_CAMEL_ALIASES = {
    "issue_number": "issueNumber",
    "pr_number": "prNumber",
    "feature_id": "featureId",
    "feature_name": "featureName",
    "branch_name": "branchName",
    "duration_ms": "durationMs",
    "merge_method": "mergeMethod",
    "sprint_number": "sprintNumber",
    "notification_target": "notificationTarget",
    "session_id": "sessionId",
    "project_dir": "projectDir",
}


def type_value(event_type: Any) -> str:
    """Normalize an EventType or raw string to its string value."""
    return event_type.value if isinstance(event_type, Enum) else str(event_type)


def event_family(event_type: Any) -> Optional[EventFamily]:
    """Family of an event type, or None for types this version doesn't know."""
    return _FAMILIES.get(type_value(event_type))


def payload_field(data: Optional[Dict[str, Any]], key: str) -> Any:
    """Read a payload field by its snake_case key, falling back to camelCase."""
    if not data:
        return None
    if key in data:
        return data[key]
    alias = _CAMEL_ALIASES.get(key)
    if alias is not None:
        return data.get(alias)
    return None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Accepts a trailing 'Z' and treats naive values as UTC.
    Raises ValueError for unparseable input.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _base36(number: int) -> str:
    alphabet = string.digits + string.ascii_lowercase
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(alphabet[rem])
    return "".join(reversed(digits))


def generate_event_id() -> str:
    """Time-prefixed unique event id, e.g. ``evt_m1x2y3z4_k9f0qa``."""
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"evt_{_base36(millis)}_{suffix}"


@dataclass(frozen=True)
class WorkflowEvent:
    """A single recorded lifecycle event. Never mutated after creation."""
    id: str
    type: str
    timestamp: str  # ISO format, UTC
    data: Dict[str, Any] = field(default_factory=dict)
    metadata: Optional[Dict[str, Any]] = None

    @property
    def family(self) -> Optional[EventFamily]:
        return event_family(self.type)

    @property
    def issue_number(self) -> Optional[int]:
        return payload_field(self.data, "issue_number")

    @property
    def pr_number(self) -> Optional[int]:
        return payload_field(self.data, "pr_number")

    @property
    def feature_id(self) -> Optional[str]:
        return payload_field(self.data, "feature_id")

    @property
    def parsed_timestamp(self) -> datetime:
        return parse_timestamp(self.timestamp)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "id": self.id,
            "type": self.type,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowEvent":
        """Create a WorkflowEvent from its serialized form.

        Raises KeyError/TypeError on entries missing required fields.
        """
        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise TypeError("event data must be an object")
        metadata = data.get("metadata")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            data=payload,
            metadata=metadata if isinstance(metadata, dict) and metadata else None,
        )


def create_event(
    event_type: Any,
    data: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> WorkflowEvent:
    """Create an event stamped with a fresh id and the current UTC time."""
    return WorkflowEvent(
        id=generate_event_id(),
        type=type_value(event_type),
        timestamp=utc_now_iso(),
        data=dict(data or {}),
        metadata=dict(metadata) if metadata else None,
    )


@dataclass
class EventFilter:
    """
    Conjunctive filter over the event log.

    A field left as None places no constraint on that dimension.
    """
    types: Optional[List[Any]] = None
    since: Optional[str] = None
    until: Optional[str] = None
    issue_number: Optional[int] = None
    pr_number: Optional[int] = None
    feature_id: Optional[str] = None
    limit: Optional[int] = None
    order: str = "desc"


@dataclass
class EventLog:
    """On-disk container: schema version, last update time and the events."""
    version: str = EVENT_LOG_VERSION
    last_updated: str = field(default_factory=utc_now_iso)
    events: List[WorkflowEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "events": [event.to_dict() for event in self.events],
        }
