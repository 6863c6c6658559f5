"""
CI Gate Checker
===============

Decides whether a pull request passes its required CI checks and is ready to
merge, from live check and review state fetched through a VCSProvider.

Verdicts are always pass, fail or pending. Missing data resolves to pending,
never to fail.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from forgepilot.config import DEFAULT_AUTOPILOT_CONFIG, AutopilotConfig
from forgepilot.github_client import (
    CheckConclusion,
    CheckStatus,
    CICheck,
    PRDetails,
    ReviewDecision,
    VCSProvider,
)
from forgepilot.output import check_icon

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_WAIT_TIMEOUT = 30 * 60.0
DEFAULT_BATCH_CONCURRENCY = 3

PASSING_CONCLUSIONS = frozenset({
    CheckConclusion.SUCCESS,
    CheckConclusion.NEUTRAL,
    CheckConclusion.SKIPPED,
})

# Variants of a required name that CI providers commonly report,
# e.g. "test" -> "tests", "run test", "npm test", "test / unit".
CHECK_NAME_VARIANTS: Tuple[str, ...] = (
    "{}",
    "{}s",
    "run {}",
    "npm {}",
    "{} /",
)


class PRStatusResult(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"


@dataclass
class PRStatus:
    """Point-in-time CI and review snapshot of one pull request."""
    pr_number: int
    result: PRStatusResult
    checks: List[CICheck] = field(default_factory=list)
    required_checks: List[str] = field(default_factory=list)
    passed_checks: List[str] = field(default_factory=list)
    failed_checks: List[str] = field(default_factory=list)
    pending_checks: List[str] = field(default_factory=list)
    mergeable: Optional[bool] = None
    state: str = "unknown"
    draft: bool = False
    review_decision: Optional[ReviewDecision] = None
    summary: str = ""
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "pr_number": self.pr_number,
            "result": self.result.value,
            "checks": [check.to_dict() for check in self.checks],
            "required_checks": list(self.required_checks),
            "passed_checks": list(self.passed_checks),
            "failed_checks": list(self.failed_checks),
            "pending_checks": list(self.pending_checks),
            "mergeable": self.mergeable,
            "state": self.state,
            "draft": self.draft,
            "review_decision": self.review_decision.value if self.review_decision else None,
            "summary": self.summary,
            "timed_out": self.timed_out,
        }


@dataclass
class MergeReadiness:
    ready: bool
    reason: str
    status: Optional[PRStatus] = None

    def __bool__(self) -> bool:
        return self.ready


# =============================================================================
# Name matching
# =============================================================================

def check_name_variants(pattern: str) -> List[str]:
    """Lowercased variants of a required check name."""
    normalized = pattern.lower()
    return [template.format(normalized) for template in CHECK_NAME_VARIANTS]


def matches_check_name(check_name: str, pattern: str) -> bool:
    """
    Whether a reported check name satisfies a required name.

    Matches case-insensitively on equality, on the required name appearing
    inside the reported name, or on any generated variant appearing inside it.
    """
    normalized_check = check_name.lower()
    normalized_pattern = pattern.lower()

    if normalized_check == normalized_pattern:
        return True
    if normalized_pattern in normalized_check:
        return True
    return any(variant in normalized_check for variant in check_name_variants(pattern))


# =============================================================================
# Evaluation
# =============================================================================

def classify_checks(checks: Sequence[CICheck]) -> Tuple[List[str], List[str], List[str]]:
    """Split check names into (passed, failed, pending)."""
    passed: List[str] = []
    failed: List[str] = []
    pending: List[str] = []
    for check in checks:
        if check.status != CheckStatus.COMPLETED:
            pending.append(check.name)
        elif check.conclusion in PASSING_CONCLUSIONS:
            passed.append(check.name)
        else:
            failed.append(check.name)
    return passed, failed, pending


def _decide(
    details: PRDetails,
    checks: Sequence[CICheck],
    required: Sequence[str],
    passed: Sequence[str],
    failed: Sequence[str],
    pending: Sequence[str],
    include_non_required: bool,
) -> PRStatusResult:
    if details.draft:
        return PRStatusResult.PENDING

    if required:
        required_failed = any(
            any(matches_check_name(name, req) for name in failed) for req in required
        )
        if required_failed:
            return PRStatusResult.FAIL

        # A required check that hasn't been reported yet is treated as queued.
        required_pending = any(
            any(matches_check_name(name, req) for name in pending)
            or not any(matches_check_name(check.name, req) for check in checks)
            for req in required
        )
        if required_pending:
            return PRStatusResult.PENDING

        required_passed = all(
            any(matches_check_name(name, req) for name in passed) for req in required
        )
        if required_passed:
            if include_non_required and failed:
                return PRStatusResult.FAIL
            return PRStatusResult.PASS
        return PRStatusResult.PENDING

    if failed:
        return PRStatusResult.FAIL
    if pending:
        return PRStatusResult.PENDING
    # Passing checks, or no CI at all.
    return PRStatusResult.PASS


def generate_status_summary(
    result: PRStatusResult,
    passed: int,
    failed: int,
    pending: int,
    draft: bool = False,
    review_decision: Optional[ReviewDecision] = None,
) -> str:
    """Human-readable one-line summary of a PR status."""
    parts = []

    if draft:
        parts.append("Draft PR")

    if result == PRStatusResult.PASS:
        parts.append(f"All {passed} checks passed")
    elif result == PRStatusResult.FAIL:
        parts.append(f"{failed} check(s) failed")
        if passed:
            parts.append(f"{passed} passed")
    else:
        parts.append(f"{pending} check(s) pending")
        if passed:
            parts.append(f"{passed} passed")
        if failed:
            parts.append(f"{failed} failed")

    if review_decision:
        parts.append(f"Review: {review_decision.value.lower().replace('_', ' ')}")

    return " | ".join(parts)


def evaluate_status(
    pr_number: int,
    details: PRDetails,
    checks: Sequence[CICheck],
    required_checks: Sequence[str],
    include_non_required: bool = False,
) -> PRStatus:
    """
    Build a PRStatus from fetched data. Pure; no I/O.

    Precedence: draft PRs are pending; with required checks, any failed
    required check fails, any unreported or running one is pending, all passed
    is pass; without required checks, any failure fails, anything running is
    pending, otherwise pass (including no checks at all).
    """
    passed, failed, pending = classify_checks(checks)
    required = list(required_checks)
    result = _decide(details, checks, required, passed, failed, pending, include_non_required)

    return PRStatus(
        pr_number=pr_number,
        result=result,
        checks=list(checks),
        required_checks=required,
        passed_checks=passed,
        failed_checks=failed,
        pending_checks=pending,
        mergeable=details.mergeable,
        state=details.state,
        draft=details.draft,
        review_decision=details.review_decision,
        summary=generate_status_summary(
            result,
            passed=len(passed),
            failed=len(failed),
            pending=len(pending),
            draft=details.draft,
            review_decision=details.review_decision,
        ),
    )


def waiting_checks(status: PRStatus) -> List[str]:
    """Running checks, or the required names no passed check satisfies yet."""
    return status.pending_checks or [
        req for req in status.required_checks
        if not any(matches_check_name(name, req) for name in status.passed_checks)
    ]


def readiness_from_status(status: PRStatus) -> MergeReadiness:
    """Layer PR state and review decision on top of a CI verdict."""
    if status.state != "open":
        return MergeReadiness(False, f"PR is {status.state}", status)
    if status.draft:
        return MergeReadiness(False, "PR is still a draft", status)
    if status.result == PRStatusResult.FAIL:
        return MergeReadiness(False, f"CI checks failed: {', '.join(status.failed_checks)}", status)
    if status.result == PRStatusResult.PENDING:
        return MergeReadiness(False, f"CI checks pending: {', '.join(waiting_checks(status))}", status)
    if status.review_decision == ReviewDecision.CHANGES_REQUESTED:
        return MergeReadiness(False, "Changes have been requested in review", status)
    if status.mergeable is False:
        return MergeReadiness(False, "PR has merge conflicts", status)
    return MergeReadiness(True, "All checks pass and PR is mergeable", status)


# =============================================================================
# Checker
# =============================================================================

class CIGateChecker:
    """
    Evaluates pull requests against the configured required checks.

    The config is passed in explicitly; per-call overrides are allowed.
    """

    def __init__(self, provider: VCSProvider, config: Optional[AutopilotConfig] = None):
        self.provider = provider
        self.config = config or DEFAULT_AUTOPILOT_CONFIG

    async def check_pr_status(
        self,
        pr_number: int,
        config: Optional[AutopilotConfig] = None,
        include_non_required: bool = False,
    ) -> PRStatus:
        """Fetch PR details and checks, then evaluate them."""
        cfg = config or self.config
        details, checks = await asyncio.gather(
            self.provider.get_pr_details(pr_number),
            self.provider.get_pr_checks(pr_number),
        )
        status = evaluate_status(
            pr_number,
            details,
            checks,
            cfg.required_checks,
            include_non_required=include_non_required,
        )
        logger.debug("PR #%s: %s (%s)", pr_number, status.result.value, status.summary)
        return status

    async def is_pr_ready_to_merge(
        self,
        pr_number: int,
        config: Optional[AutopilotConfig] = None,
        include_non_required: bool = False,
    ) -> MergeReadiness:
        status = await self.check_pr_status(pr_number, config, include_non_required)
        return readiness_from_status(status)

    async def wait_for_pr_checks(
        self,
        pr_number: int,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        on_status_update: Optional[Callable[[PRStatus], None]] = None,
        config: Optional[AutopilotConfig] = None,
    ) -> PRStatus:
        """
        Poll until the PR leaves pending or ``timeout`` seconds pass.

        On timeout the last status is returned as pending with
        ``timed_out=True``. Cancel by cancelling the awaiting task.
        """
        deadline = time.monotonic() + timeout

        while True:
            status = await self.check_pr_status(pr_number, config)

            if on_status_update is not None:
                on_status_update(status)

            if status.result != PRStatusResult.PENDING:
                return status

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                minutes = round(timeout / 60)
                return replace(
                    status,
                    result=PRStatusResult.PENDING,
                    summary=f"Timed out waiting for CI checks after {minutes} minutes",
                    timed_out=True,
                )

            await asyncio.sleep(min(poll_interval, remaining))

    async def check_multiple_pr_status(
        self,
        pr_numbers: Sequence[int],
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        config: Optional[AutopilotConfig] = None,
    ) -> Dict[int, PRStatus]:
        """Evaluate PRs in fixed-size windows of ``concurrency`` parallel calls."""
        window = max(1, concurrency)
        results: Dict[int, PRStatus] = {}
        for start in range(0, len(pr_numbers), window):
            batch = list(pr_numbers[start:start + window])
            statuses = await asyncio.gather(
                *(self.check_pr_status(pr, config) for pr in batch)
            )
            for pr, status in zip(batch, statuses):
                results[pr] = status
        return results


# =============================================================================
# Formatting
# =============================================================================

def format_check_list(status: PRStatus) -> str:
    """Plain-text listing of every check on the PR."""
    lines = [f"PR #{status.pr_number}: {status.summary}", ""]

    if not status.checks:
        lines.append("No CI checks found")
    else:
        for check in status.checks:
            lines.append(f"{check_icon(check)} {check.name}")

    return "\n".join(lines)
