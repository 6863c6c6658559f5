"""
Tests for the JSON event store.
"""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from forgepilot.errors import EventLogWriteError
from forgepilot.event_store import EVENT_LOG_FILENAME, EventStore
from forgepilot.event_types import EventType, WorkflowEvent, create_event


@pytest.fixture
def temp_project_dir():
    """Create a temporary project directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_project_dir):
    return EventStore(temp_project_dir)


def event_at(event_type, when: datetime, **data) -> WorkflowEvent:
    return WorkflowEvent(
        id=f"evt_{int(when.timestamp())}_{len(data):06d}",
        type=event_type.value,
        timestamp=when.isoformat(),
        data=data,
    )


class TestEventStoreReads:
    """Tests for reading the log."""

    def test_missing_file_is_empty(self, store):
        assert not store.exists()
        assert store.read_all() == []

    def test_path(self, store, temp_project_dir):
        assert store.path == temp_project_dir / EVENT_LOG_FILENAME

    def test_corrupt_file_is_empty(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.read_all() == []

    def test_wrong_shape_is_empty(self, store):
        store.path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        assert store.read_all() == []

    def test_malformed_entries_are_skipped(self, store):
        store.path.write_text(json.dumps({
            "version": "1.0.0",
            "lastUpdated": "2025-01-01T00:00:00Z",
            "events": [
                {"id": "evt_1_aaaaaa", "type": "worker.start", "timestamp": "2025-01-01T00:00:00Z",
                 "data": {"issueNumber": 5}},
                {"type": "worker.start"},
                "garbage",
            ],
        }), encoding="utf-8")

        events = store.read_all()

        assert len(events) == 1
        assert events[0].issue_number == 5


class TestEventStoreWrites:
    """Tests for appending and maintenance."""

    def test_append_creates_file(self, store):
        event = create_event(EventType.WORKER_START, {"issue_number": 1})
        returned = store.append(event)

        assert returned is event
        assert store.exists()
        assert store.read_all() == [event]

    def test_append_preserves_order(self, store):
        events = [create_event(EventType.WORKER_START, {"issue_number": n}) for n in range(5)]
        for event in events:
            store.append(event)

        assert [e.id for e in store.read_all()] == [e.id for e in events]

    def test_file_format(self, store):
        store.append(create_event(EventType.PR_CREATED, {"pr_number": 9}))

        raw = json.loads(store.path.read_text(encoding="utf-8"))

        assert raw["version"] == "1.0.0"
        assert "lastUpdated" in raw
        assert raw["events"][0]["type"] == "pr.created"
        assert raw["events"][0]["data"] == {"pr_number": 9}

    def test_no_temp_files_left_behind(self, store, temp_project_dir):
        store.append(create_event(EventType.SYSTEM_START))
        assert sorted(os.listdir(temp_project_dir)) == [EVENT_LOG_FILENAME]

    def test_append_after_corruption_starts_fresh(self, store):
        store.path.write_text("garbage", encoding="utf-8")
        store.append(create_event(EventType.SYSTEM_START))
        assert len(store.read_all()) == 1

    def test_write_failure_raises(self, temp_project_dir):
        blocker = temp_project_dir / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        store = EventStore(blocker / "nested")

        with pytest.raises(EventLogWriteError) as exc_info:
            store.append(create_event(EventType.SYSTEM_START))

        assert exc_info.value.cause is not None

    def test_clear(self, store):
        store.append(create_event(EventType.SYSTEM_START))
        store.clear()

        assert store.exists()
        assert store.read_all() == []


class TestRotation:
    """Tests for retention-based rotation."""

    def test_rotate_removes_old_events(self, store):
        now = datetime.now(timezone.utc)
        store.append(event_at(EventType.WORKER_START, now - timedelta(days=40), issue_number=1))
        store.append(event_at(EventType.WORKER_START, now - timedelta(days=1), issue_number=2))

        removed = store.rotate(30)

        assert removed == 1
        assert [e.issue_number for e in store.read_all()] == [2]

    def test_rotate_is_idempotent(self, store):
        now = datetime.now(timezone.utc)
        store.append(event_at(EventType.WORKER_START, now - timedelta(days=40), issue_number=1))
        store.append(event_at(EventType.WORKER_START, now, issue_number=2))

        assert store.rotate(30) == 1
        assert store.rotate(30) == 0
        assert len(store.read_all()) == 1

    def test_rotate_without_removals_does_not_write(self, store):
        store.append(create_event(EventType.SYSTEM_START))
        before = store.path.read_text(encoding="utf-8")

        assert store.rotate(30) == 0
        assert store.path.read_text(encoding="utf-8") == before

    def test_rotate_keeps_unparseable_timestamps(self, store):
        store.append(WorkflowEvent(id="evt_1_bad000", type="system.start", timestamp="not-a-date"))
        assert store.rotate(0) == 0
        assert len(store.read_all()) == 1

    def test_rotate_uses_configured_retention(self, temp_project_dir):
        store = EventStore(temp_project_dir, retention_days=5)
        now = datetime.now(timezone.utc)
        store.append(event_at(EventType.SYSTEM_START, now - timedelta(days=10)))

        assert store.rotate() == 1
