"""
Error Types
===========

Exceptions surfaced to callers. Transient failures of external tools are
absorbed into safe defaults and never raised; only durable-write failures are.
"""

from pathlib import Path
from typing import Optional


class ForgePilotError(Exception):
    """Base class for Forge Pilot errors."""


class EventLogWriteError(ForgePilotError):
    """The event log could not be written. The pending append was lost."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to write event log {self.path}{detail}")
