"""
Worker Dispatcher
=================

Admits, records and runs a single worker for an issue:

1. refuse if the issue already has an active worker
2. refuse if the concurrency limit is reached
3. record ``worker.start``
4. run the worker process with the configured timeout
5. record ``worker.complete``, ``worker.timeout`` or ``worker.fail``
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from forgepilot.admission import AdmissionController
from forgepilot.config import DEFAULT_AUTOPILOT_CONFIG, AutopilotConfig, generate_worker_branch, parse_timeout
from forgepilot.event_logger import EventLogger
from forgepilot.event_types import WorkflowEvent
from forgepilot.worker_runner import WorkerRunResult, get_exit_code_message, run_worker

logger = logging.getLogger(__name__)

ERROR_TAIL_CHARS = 500

Runner = Callable[..., Awaitable[WorkerRunResult]]


@dataclass
class DispatchResult:
    issue_number: int
    admitted: bool
    reason: str
    branch_name: Optional[str] = None
    run: Optional[WorkerRunResult] = None
    event: Optional[WorkflowEvent] = None

    @property
    def success(self) -> bool:
        return self.admitted and self.run is not None and self.run.success


def failure_message(run: WorkerRunResult) -> str:
    """Tail of stderr, or the exit code's meaning when stderr is empty."""
    tail = run.stderr.strip()[-ERROR_TAIL_CHARS:]
    return tail or get_exit_code_message(run.exit_code)


class WorkerDispatcher:
    """Runs workers for issues while respecting the admission limit."""

    def __init__(
        self,
        event_logger: EventLogger,
        config: Optional[AutopilotConfig] = None,
        runner: Runner = run_worker,
    ):
        self.event_logger = event_logger
        self.config = config or DEFAULT_AUTOPILOT_CONFIG
        self.runner = runner
        self.admission = AdmissionController(event_logger, self.config)

    async def dispatch(
        self,
        issue_number: int,
        prompt: str,
        feature_id: Optional[str] = None,
        cwd: Optional[str] = None,
    ) -> DispatchResult:
        if self.admission.is_issue_active(issue_number):
            reason = f"Issue #{issue_number} already has an active worker"
            logger.info(reason)
            return DispatchResult(issue_number, admitted=False, reason=reason)

        decision = self.admission.can_admit()
        if not decision:
            logger.info("Issue #%s not admitted: %s", issue_number, decision.reason)
            return DispatchResult(issue_number, admitted=False, reason=decision.reason)

        branch = generate_worker_branch(feature_id or f"issue-{issue_number}", self.config.branch_pattern)
        self.event_logger.log_worker_start(issue_number, feature_id=feature_id, branch_name=branch)

        # Every recorded start gets a closing event, including on error or cancellation.
        try:
            run = await self.runner(
                prompt,
                cwd=cwd,
                timeout=parse_timeout(self.config.worker_timeout),
            )
        except BaseException as e:
            self.event_logger.log_worker_fail(
                issue_number, str(e) or type(e).__name__,
                feature_id=feature_id, branch_name=branch,
            )
            raise

        if run.timed_out:
            event = self.event_logger.log_worker_timeout(
                issue_number, run.duration_ms, feature_id=feature_id, branch_name=branch,
            )
            reason = f"Worker timed out after {self.config.worker_timeout}"
        elif run.success:
            event = self.event_logger.log_worker_complete(
                issue_number, run.duration_ms, feature_id=feature_id, branch_name=branch,
            )
            reason = "Worker completed"
        else:
            reason = failure_message(run)
            event = self.event_logger.log_worker_fail(
                issue_number, reason, duration_ms=run.duration_ms,
                feature_id=feature_id, branch_name=branch,
            )

        return DispatchResult(
            issue_number,
            admitted=True,
            reason=reason,
            branch_name=branch,
            run=run,
            event=event,
        )
