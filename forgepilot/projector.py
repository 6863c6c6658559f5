"""
Lifecycle Projector
===================

Pure functions that fold an event sequence into point-in-time views: filtered
queries, active workers, pending pull requests and aggregate statistics.

Status is never stored. An entity's lifecycle is open when its most recent
event is non-terminal and a qualifying "opening" event (``worker.start`` or
``pr.created``) follows the last terminal event. Because the log alone decides
status, a crash can never leave a stale status field behind.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Hashable, List, Optional, Sequence, Tuple

from forgepilot.event_types import (
    EventFamily,
    EventFilter,
    EventType,
    PR_TERMINAL_TYPES,
    WORKER_TERMINAL_TYPES,
    WorkflowEvent,
    parse_timestamp,
    payload_field,
    type_value,
)


@dataclass
class EventStats:
    """Aggregate counts over the event log."""
    total_events: int = 0
    active_workers: int = 0
    pending_prs: int = 0
    events_by_type: Dict[str, int] = field(default_factory=dict)
    oldest_event: Optional[str] = None
    newest_event: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "total_events": self.total_events,
            "active_workers": self.active_workers,
            "pending_prs": self.pending_prs,
            "events_by_type": dict(self.events_by_type),
            "oldest_event": self.oldest_event,
            "newest_event": self.newest_event,
        }


def _ordering_key(event: WorkflowEvent) -> Optional[datetime]:
    try:
        return event.parsed_timestamp
    except ValueError:
        return None


def _chronological(events: Sequence[WorkflowEvent]) -> List[WorkflowEvent]:
    """
    Stable ascending order by timestamp; unparseable timestamps sort first.

    Events are appended in time order, so the log is normally already sorted.
    That case is detected in one pass and returned as-is; only an
    out-of-order log pays for the sort.
    """
    keys = [_sort_key(event, position) for position, event in enumerate(events)]
    if all(keys[i] <= keys[i + 1] for i in range(len(keys) - 1)):
        return list(events)
    order = sorted(range(len(keys)), key=keys.__getitem__)
    return [events[i] for i in order]


def _sort_key(event: WorkflowEvent, position: int) -> Tuple:
    ts = _ordering_key(event)
    if ts is None:
        return (0, 0, position)
    return (1, ts.timestamp(), position)


# =============================================================================
# Queries
# =============================================================================

def query(
    events: Sequence[WorkflowEvent],
    event_filter: Optional[EventFilter] = None,
) -> List[WorkflowEvent]:
    """
    Filter and sort events.

    Every provided predicate must hold (AND). Sorting is by timestamp with
    append order breaking ties; "desc" (the default) reverses that order.
    """
    f = event_filter or EventFilter()
    selected = list(events)

    if f.types:
        wanted = {type_value(t) for t in f.types}
        selected = [e for e in selected if e.type in wanted]

    if f.since:
        since = parse_timestamp(f.since)
        selected = [e for e in selected if _in_bound(e, lambda ts: ts >= since)]

    if f.until:
        until = parse_timestamp(f.until)
        selected = [e for e in selected if _in_bound(e, lambda ts: ts <= until)]

    if f.issue_number is not None:
        selected = [e for e in selected if e.issue_number == f.issue_number]

    if f.pr_number is not None:
        selected = [e for e in selected if e.pr_number == f.pr_number]

    if f.feature_id is not None:
        selected = [e for e in selected if e.feature_id == f.feature_id]

    selected = _chronological(selected)
    if f.order != "asc":
        selected.reverse()

    if f.limit is not None and f.limit > 0:
        selected = selected[:f.limit]

    return selected


def _in_bound(event: WorkflowEvent, predicate) -> bool:
    ts = _ordering_key(event)
    return ts is not None and predicate(ts)


def recent_events(events: Sequence[WorkflowEvent], limit: int = 10) -> List[WorkflowEvent]:
    return query(events, EventFilter(limit=limit, order="desc"))


def issue_events(events: Sequence[WorkflowEvent], issue_number: int) -> List[WorkflowEvent]:
    """All events for one issue, oldest first."""
    return query(events, EventFilter(issue_number=issue_number, order="asc"))


def pr_events(events: Sequence[WorkflowEvent], pr_number: int) -> List[WorkflowEvent]:
    """All events for one pull request, oldest first."""
    return query(events, EventFilter(pr_number=pr_number, order="asc"))


def feature_events(events: Sequence[WorkflowEvent], feature_id: str) -> List[WorkflowEvent]:
    return query(events, EventFilter(feature_id=feature_id, order="asc"))


# =============================================================================
# Lifecycle folds
# =============================================================================

def open_lifecycles(
    events: Sequence[WorkflowEvent],
    family: EventFamily,
    key_field: str,
    opening_type: str,
    terminal_types: FrozenSet[str],
) -> List[WorkflowEvent]:
    """
    Generic "latest event per key" fold.

    Groups events of ``family`` by the payload value named ``key_field``. A
    group is open when its latest event is not terminal and an
    ``opening_type`` event was recorded after the latest terminal event. For
    each open group the opening event of the current lifecycle is returned,
    exactly as it was recorded.
    """
    groups: Dict[Hashable, List[WorkflowEvent]] = {}
    for event in _chronological(events):
        if event.family != family:
            continue
        key = getattr(event, key_field)
        if key is None:
            continue
        groups.setdefault(key, []).append(event)

    opened: List[WorkflowEvent] = []
    for group in groups.values():
        if group[-1].type in terminal_types:
            continue
        current_open: Optional[WorkflowEvent] = None
        for event in group:
            if event.type in terminal_types:
                current_open = None
            elif event.type == opening_type and current_open is None:
                current_open = event
        if current_open is not None:
            opened.append(current_open)

    return opened


def active_workers(events: Sequence[WorkflowEvent]) -> List[WorkflowEvent]:
    """``worker.start`` events for issues whose worker has not finished."""
    return open_lifecycles(
        events,
        EventFamily.WORKER,
        "issue_number",
        EventType.WORKER_START.value,
        WORKER_TERMINAL_TYPES,
    )


def pending_prs(events: Sequence[WorkflowEvent]) -> List[WorkflowEvent]:
    """``pr.created`` events for pull requests not yet merged or closed."""
    return open_lifecycles(
        events,
        EventFamily.PR,
        "pr_number",
        EventType.PR_CREATED.value,
        PR_TERMINAL_TYPES,
    )


def compute_stats(events: Sequence[WorkflowEvent]) -> EventStats:
    """Histogram, time bounds and open-lifecycle counts in linear passes."""
    stats = EventStats(total_events=len(events))

    oldest: Optional[Tuple[datetime, str]] = None
    newest: Optional[Tuple[datetime, str]] = None
    for event in events:
        stats.events_by_type[event.type] = stats.events_by_type.get(event.type, 0) + 1
        ts = _ordering_key(event)
        if ts is None:
            continue
        if oldest is None or ts < oldest[0]:
            oldest = (ts, event.timestamp)
        if newest is None or ts >= newest[0]:
            newest = (ts, event.timestamp)

    stats.oldest_event = oldest[1] if oldest else None
    stats.newest_event = newest[1] if newest else None
    stats.active_workers = len(active_workers(events))
    stats.pending_prs = len(pending_prs(events))
    return stats


# =============================================================================
# Formatting
# =============================================================================

def format_event_summary(event: WorkflowEvent) -> str:
    """Format an event as a single human-readable line."""
    parts = [f"[{event.timestamp[:19]}]", event.type]

    if event.issue_number is not None:
        parts.append(f"issue=#{event.issue_number}")
    if event.pr_number is not None:
        parts.append(f"pr=#{event.pr_number}")
    if event.feature_id:
        parts.append(f"feature={event.feature_id}")
    duration = payload_field(event.data, "duration_ms")
    if duration:
        parts.append(f"({duration}ms)")

    return " ".join(parts)


def format_stats_summary(stats: EventStats) -> str:
    """Format event statistics as a plain-text block."""
    lines = [
        "=" * 50,
        "EVENT LOG SUMMARY",
        "=" * 50,
        f"Total events:        {stats.total_events}",
        f"Active workers:      {stats.active_workers}",
        f"Pending PRs:         {stats.pending_prs}",
        f"Oldest event:        {stats.oldest_event[:19] if stats.oldest_event else 'N/A'}",
        f"Newest event:        {stats.newest_event[:19] if stats.newest_event else 'N/A'}",
        "",
        "Events by type:",
    ]
    for event_type, count in sorted(stats.events_by_type.items()):
        lines.append(f"  - {event_type:<20} {count}")
    lines.append("=" * 50)
    return "\n".join(lines)
