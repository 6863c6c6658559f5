"""
Event Store
===========

Durable, append-only persistence of workflow events in a single JSON file per
project directory.

Every mutation re-reads the file and rewrites it wholesale through a temporary
file and an atomic rename. Nothing is cached between calls, so readers always
see the latest state. Concurrent writers in separate processes can still lose
updates; the store assumes a single writer.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from forgepilot.errors import EventLogWriteError
from forgepilot.event_types import (
    EVENT_LOG_VERSION,
    EventLog,
    WorkflowEvent,
    parse_timestamp,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

EVENT_LOG_FILENAME = ".forgepilot-events.json"
DEFAULT_RETENTION_DAYS = 30


class EventStore:
    """
    Append-only event log backed by ``<project_dir>/.forgepilot-events.json``.

    Read failures degrade to an empty log. Write failures raise
    EventLogWriteError because a lost append is lost history.
    """

    def __init__(
        self,
        project_dir: Path,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        filename: str = EVENT_LOG_FILENAME,
    ):
        self.project_dir = Path(project_dir)
        self.log_path = self.project_dir / filename
        self.retention_days = retention_days

    @property
    def path(self) -> Path:
        return self.log_path

    def exists(self) -> bool:
        return self.log_path.exists()

    # =========================================================================
    # Reads
    # =========================================================================

    def read_log(self) -> EventLog:
        """Load the full log, or an empty one if the file is absent or unusable."""
        if not self.log_path.exists():
            return EventLog()

        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug("Event log %s unreadable, using empty log: %s", self.log_path, e)
            return EventLog()

        if not isinstance(raw, dict) or not isinstance(raw.get("events", []), list):
            logger.debug("Event log %s has unexpected shape, using empty log", self.log_path)
            return EventLog()

        events: List[WorkflowEvent] = []
        for entry in raw.get("events", []):
            try:
                events.append(WorkflowEvent.from_dict(entry))
            except (KeyError, TypeError, AttributeError) as e:
                logger.debug("Skipping malformed event entry: %s", e)

        return EventLog(
            version=str(raw.get("version") or EVENT_LOG_VERSION),
            last_updated=str(raw.get("lastUpdated") or utc_now_iso()),
            events=events,
        )

    def read_all(self) -> List[WorkflowEvent]:
        """All events in append order."""
        return self.read_log().events

    # =========================================================================
    # Writes
    # =========================================================================

    def append(self, event: WorkflowEvent) -> WorkflowEvent:
        """Append one event and rewrite the log. Returns the event."""
        log = self.read_log()
        log.events.append(event)
        self._write_log(log)
        return event

    def rotate(self, retention_days: Optional[int] = None) -> int:
        """
        Remove events older than the retention window.

        Returns the number of events removed. The file is only rewritten when
        something was removed. Events whose timestamp cannot be parsed are kept.
        """
        days = self.retention_days if retention_days is None else retention_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        log = self.read_log()
        kept: List[WorkflowEvent] = []
        for event in log.events:
            try:
                if event.parsed_timestamp < cutoff:
                    continue
            except ValueError:
                pass
            kept.append(event)

        removed = len(log.events) - len(kept)
        if removed > 0:
            log.events = kept
            self._write_log(log)
            logger.info("Rotated %d event(s) older than %d day(s)", removed, days)

        return removed

    def clear(self) -> None:
        """Reset to an empty log. Intended for tests and debugging."""
        self._write_log(EventLog())

    def _write_log(self, log: EventLog) -> None:
        """Atomically replace the log file."""
        log.last_updated = utc_now_iso()
        tmp_path = None
        try:
            self.project_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.log_path.name}.",
                suffix=".tmp",
                dir=str(self.project_dir),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(log.to_dict(), f, indent=2)
            os.replace(tmp_path, self.log_path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise EventLogWriteError(self.log_path, e) from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
