"""
Tests for the admission controller.
"""

import tempfile
from pathlib import Path

import pytest

from forgepilot.admission import AdmissionController
from forgepilot.config import AutopilotConfig
from forgepilot.event_logger import EventLogger


@pytest.fixture
def temp_project_dir():
    """Create a temporary project directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def event_logger(temp_project_dir):
    return EventLogger(temp_project_dir)


class TestAdmissionController:
    def test_empty_log_admits(self, event_logger):
        decision = AdmissionController(event_logger).can_admit()

        assert decision
        assert decision.active_count == 0
        assert decision.max_workers == 3

    def test_capacity_scenario(self, event_logger):
        controller = AdmissionController(event_logger, AutopilotConfig(max_concurrent_workers=2))
        event_logger.log_worker_start(1)
        event_logger.log_worker_start(2)

        decision = controller.can_admit()
        assert not decision
        assert decision.active_count == 2
        assert "At capacity" in decision.reason

        event_logger.log_worker_complete(1, duration_ms=100)
        assert controller.can_admit()

    def test_failed_and_timed_out_workers_free_slots(self, event_logger):
        controller = AdmissionController(event_logger, AutopilotConfig(max_concurrent_workers=1))
        event_logger.log_worker_start(1)
        assert not controller.can_admit()

        event_logger.log_worker_fail(1, "boom")
        assert controller.can_admit()

        event_logger.log_worker_start(2)
        event_logger.log_worker_timeout(2, duration_ms=5)
        assert controller.can_admit()

    def test_is_issue_active(self, event_logger):
        controller = AdmissionController(event_logger)
        event_logger.log_worker_start(5)

        assert controller.is_issue_active(5)
        assert not controller.is_issue_active(6)

        event_logger.log_worker_complete(5, duration_ms=1)
        assert not controller.is_issue_active(5)
