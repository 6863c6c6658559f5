"""
Admission Controller
====================

Decides whether another worker may start, from the active-worker count
derived from the event log and the configured concurrency limit.

The check is advisory: two callers that check at the same moment can both be
admitted. The limit is a soft cap, not a lock.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from forgepilot.config import DEFAULT_AUTOPILOT_CONFIG, AutopilotConfig
from forgepilot.event_logger import EventLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    active_count: int
    max_workers: int
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


class AdmissionController:
    """Caps concurrent workers at ``config.max_concurrent_workers``."""

    def __init__(self, event_logger: EventLogger, config: Optional[AutopilotConfig] = None):
        self.event_logger = event_logger
        self.config = config or DEFAULT_AUTOPILOT_CONFIG

    def active_count(self) -> int:
        return len(self.event_logger.get_active_workers())

    def can_admit(self) -> AdmissionDecision:
        """Allowed iff fewer workers are active than the configured maximum."""
        active = self.active_count()
        limit = self.config.max_concurrent_workers

        if active < limit:
            decision = AdmissionDecision(True, active, limit, f"{active}/{limit} workers active")
        else:
            decision = AdmissionDecision(
                False, active, limit,
                f"At capacity: {active}/{limit} workers active",
            )
        logger.debug("Admission check: %s", decision.reason)
        return decision

    def is_issue_active(self, issue_number: int) -> bool:
        """Whether the issue already has a running worker."""
        return any(
            event.issue_number == issue_number
            for event in self.event_logger.get_active_workers()
        )
