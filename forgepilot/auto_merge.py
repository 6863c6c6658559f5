"""
Auto-Merge
==========

Acts on a worker's pull request according to the configured PR strategy:

- ``auto``: merge once CI passes (or ask GitHub to auto-merge while pending)
- ``review``: add the review label once CI passes
- ``manual``: do nothing
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

from forgepilot.ci_gate import (
    CIGateChecker,
    PRStatus,
    PRStatusResult,
    readiness_from_status,
    waiting_checks,
)
from forgepilot.config import DEFAULT_AUTOPILOT_CONFIG, AutopilotConfig, MergeMethod, PRStrategy
from forgepilot.event_logger import EventLogger
from forgepilot.github_client import GhClient
from forgepilot.output import icon

logger = logging.getLogger(__name__)


class MergeAction(str, Enum):
    MERGED = "merged"
    LABELED = "labeled"
    SKIPPED = "skipped"
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class AutoMergeResult:
    success: bool
    action: MergeAction
    message: str
    pr_number: int
    strategy: PRStrategy
    status: Optional[PRStatus] = None
    error: Optional[str] = None


class AutoMerger:
    """Applies the PR strategy to pull requests."""

    def __init__(
        self,
        checker: CIGateChecker,
        gh: GhClient,
        config: Optional[AutopilotConfig] = None,
        event_logger: Optional[EventLogger] = None,
    ):
        self.checker = checker
        self.gh = gh
        self.config = config or DEFAULT_AUTOPILOT_CONFIG
        self.event_logger = event_logger

    async def process(
        self,
        pr_number: int,
        merge_method: MergeMethod = MergeMethod.SQUASH,
        delete_branch: bool = True,
        dry_run: bool = False,
    ) -> AutoMergeResult:
        strategy = self.config.pr_strategy

        if strategy == PRStrategy.MANUAL:
            return AutoMergeResult(
                success=True,
                action=MergeAction.SKIPPED,
                message="Manual strategy - no automatic action taken",
                pr_number=pr_number,
                strategy=strategy,
            )

        status = await self.checker.check_pr_status(pr_number, self.config)
        if not dry_run:
            self._record_verdict(status)

        if strategy == PRStrategy.AUTO:
            result = await self._handle_auto(status, merge_method, delete_branch, dry_run)
        else:
            result = await self._handle_review(status, dry_run)

        logger.info("PR #%s (%s): %s", pr_number, strategy.value, result.message)
        return result

    def _record_verdict(self, status: PRStatus) -> None:
        if self.event_logger is None:
            return
        if status.result == PRStatusResult.PASS:
            self.event_logger.log_pr_ci_pass(status.pr_number, status.passed_checks)
        elif status.result == PRStatusResult.FAIL:
            self.event_logger.log_pr_ci_fail(status.pr_number, status.failed_checks)

    async def _handle_auto(
        self,
        status: PRStatus,
        merge_method: MergeMethod,
        delete_branch: bool,
        dry_run: bool,
    ) -> AutoMergeResult:
        pr_number = status.pr_number
        readiness = readiness_from_status(status)

        def result(success, action, message, error=None):
            return AutoMergeResult(success, action, message, pr_number, PRStrategy.AUTO, status, error)

        if not readiness.ready:
            if status.result == PRStatusResult.PENDING:
                if not dry_run:
                    enabled = await self.gh.enable_auto_merge(pr_number, merge_method, delete_branch)
                    if enabled.success:
                        return result(True, MergeAction.PENDING, "Auto-merge enabled - will merge when CI passes")
                    logger.debug("Could not enable auto-merge for PR #%s: %s", pr_number, enabled.error)
                return result(True, MergeAction.PENDING, f"CI pending: {', '.join(waiting_checks(status))}")
            return result(False, MergeAction.FAILED, readiness.reason, readiness.reason)

        if dry_run:
            return result(True, MergeAction.MERGED, f"[DRY RUN] Would merge PR #{pr_number}")

        merged = await self.gh.merge_pr(pr_number, merge_method, delete_branch)
        if not merged.success:
            return result(False, MergeAction.FAILED, f"Failed to merge: {merged.error}", merged.error)

        if self.event_logger is not None:
            self.event_logger.log_pr_merged(pr_number, merge_method=merge_method)
        return result(True, MergeAction.MERGED, f"Successfully merged PR #{pr_number}")

    async def _handle_review(self, status: PRStatus, dry_run: bool) -> AutoMergeResult:
        pr_number = status.pr_number
        label = self.config.review_label

        def result(success, action, message, error=None):
            return AutoMergeResult(success, action, message, pr_number, PRStrategy.REVIEW, status, error)

        if status.result == PRStatusResult.PENDING:
            return result(True, MergeAction.PENDING, f"CI pending: {', '.join(waiting_checks(status))}")

        if status.result == PRStatusResult.FAIL:
            return result(
                False, MergeAction.FAILED,
                f"CI failed: {', '.join(status.failed_checks)}",
                "CI checks failed",
            )

        if dry_run:
            return result(True, MergeAction.LABELED, f"[DRY RUN] Would add '{label}' label to PR #{pr_number}")

        labeled = await self.gh.add_label(pr_number, label)
        if not labeled.success:
            return result(False, MergeAction.FAILED, f"Failed to add label: {labeled.error}", labeled.error)
        return result(True, MergeAction.LABELED, f"Added '{label}' label to PR #{pr_number}")

    async def process_many(
        self,
        pr_numbers: Iterable[int],
        merge_method: MergeMethod = MergeMethod.SQUASH,
        delete_branch: bool = True,
        dry_run: bool = False,
    ) -> Dict[int, AutoMergeResult]:
        """Process PRs one at a time to stay clear of API rate limits."""
        results: Dict[int, AutoMergeResult] = {}
        for pr_number in pr_numbers:
            results[pr_number] = await self.process(pr_number, merge_method, delete_branch, dry_run)
        return results


_SUMMARY_ROWS = (
    (MergeAction.MERGED, "pass", "Merged"),
    (MergeAction.LABELED, "review", "Labeled"),
    (MergeAction.PENDING, "pending", "Pending"),
    (MergeAction.FAILED, "fail", "Failed"),
    (MergeAction.SKIPPED, "skip", "Skipped"),
)


def summarize_results(results: Dict[int, AutoMergeResult]) -> str:
    """One line per action that occurred, listing the PR numbers."""
    lines = []
    for action, icon_name, label in _SUMMARY_ROWS:
        prs = [f"#{pr}" for pr, res in results.items() if res.action == action]
        if prs:
            lines.append(f"{icon(icon_name)} {label}: {', '.join(prs)}")
    return "\n".join(lines) or "No PRs processed"
