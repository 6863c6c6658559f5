"""
GitHub Client
=============

Wrapper around the ``gh`` CLI for pull request details, CI checks and merge
actions. Uses the caller's existing gh authentication.

Every call degrades instead of raising: a missing binary, an auth failure, a
timeout or malformed JSON all produce an unsuccessful GhResult, and the
higher-level getters turn that into "no data" (unknown PR state, no checks).
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

DEFAULT_GH_TIMEOUT = 30.0
KILL_GRACE_SECONDS = 5.0


class CheckStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CheckConclusion(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NEUTRAL = "neutral"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    PENDING = "pending"


class ReviewDecision(str, Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"


@dataclass
class GhResult:
    """Outcome of one gh invocation."""
    success: bool
    data: Any = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CICheck:
    """Status of a single CI check as reported by GitHub."""
    name: str
    status: CheckStatus
    conclusion: Optional[CheckConclusion] = None
    url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "conclusion": self.conclusion.value if self.conclusion else None,
            "url": self.url,
        }


@dataclass(frozen=True)
class PRDetails:
    """PR metadata. ``mergeable`` is None when GitHub hasn't computed it."""
    state: str
    draft: bool = False
    mergeable: Optional[bool] = None
    review_decision: Optional[ReviewDecision] = None

    @classmethod
    def unknown(cls) -> "PRDetails":
        return cls(state="unknown")


class VCSProvider(Protocol):
    """What the CI gate needs from the hosting VCS."""

    async def get_pr_details(self, pr_number: int) -> PRDetails: ...

    async def get_pr_checks(self, pr_number: int) -> List[CICheck]: ...


# =============================================================================
# gh output mapping
# =============================================================================

_COMPLETED_STATES = {
    "COMPLETED", "SUCCESS", "FAILURE", "NEUTRAL", "CANCELLED",
    "SKIPPED", "TIMED_OUT", "ACTION_REQUIRED",
}


def map_check_state(state: Optional[str]) -> CheckStatus:
    """Map a gh check state to a CheckStatus. Unknown states count as queued."""
    value = (state or "").upper()
    if value == "IN_PROGRESS":
        return CheckStatus.IN_PROGRESS
    if value in _COMPLETED_STATES:
        return CheckStatus.COMPLETED
    return CheckStatus.QUEUED


def map_check_conclusion(conclusion: Optional[str]) -> CheckConclusion:
    """Map a gh conclusion. Missing or unrecognised values become pending."""
    if not conclusion:
        return CheckConclusion.PENDING
    try:
        return CheckConclusion(conclusion.lower())
    except ValueError:
        return CheckConclusion.PENDING


def map_mergeable(mergeable: Optional[str]) -> Optional[bool]:
    if mergeable == "MERGEABLE":
        return True
    if mergeable == "CONFLICTING":
        return False
    return None


def map_review_decision(decision: Optional[str]) -> Optional[ReviewDecision]:
    if not decision:
        return None
    try:
        return ReviewDecision(decision.upper())
    except ValueError:
        return None


def parse_pr_details(data: Any) -> PRDetails:
    if not isinstance(data, dict):
        return PRDetails.unknown()
    return PRDetails(
        state=str(data.get("state") or "unknown").lower(),
        draft=bool(data.get("isDraft", False)),
        mergeable=map_mergeable(data.get("mergeable")),
        review_decision=map_review_decision(data.get("reviewDecision")),
    )


def parse_pr_checks(data: Any) -> List[CICheck]:
    if not isinstance(data, list):
        return []
    checks = []
    for item in data:
        if not isinstance(item, dict):
            continue
        state = item.get("state")
        conclusion = item.get("conclusion")
        # Newer gh releases report the outcome in "state" and omit "conclusion".
        if not conclusion and (state or "").upper() in _COMPLETED_STATES - {"COMPLETED"}:
            conclusion = state
        checks.append(CICheck(
            name=item.get("name") or "unknown",
            status=map_check_state(state),
            conclusion=map_check_conclusion(conclusion),
            url=item.get("detailsUrl"),
        ))
    return checks


# =============================================================================
# Subprocess handling
# =============================================================================

async def terminate_process(process: asyncio.subprocess.Process, grace: float = KILL_GRACE_SECONDS) -> None:
    """
    Stop a child process: SIGTERM, then SIGKILL after ``grace`` seconds.

    Failures (already exited, permission) are ignored; the caller has already
    moved on.
    """
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    except OSError as e:
        logger.debug("terminate failed for pid %s: %s", process.pid, e)
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
        return
    except asyncio.TimeoutError:
        pass
    try:
        process.kill()
        await process.wait()
    except (ProcessLookupError, OSError) as e:
        logger.debug("kill failed for pid %s: %s", process.pid, e)


async def run_gh_command(
    args: Sequence[str],
    parse_json: bool = False,
    timeout: float = DEFAULT_GH_TIMEOUT,
    executable: str = "gh",
) -> GhResult:
    """Run ``gh <args>`` and return a GhResult. Never raises."""
    logger.debug("Running: %s %s", executable, " ".join(args))

    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return GhResult(success=False, error="gh CLI not found. Install from https://cli.github.com/")
    except OSError as e:
        return GhResult(success=False, error=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug("gh timed out after %ss, killing process", timeout)
        await terminate_process(process)
        return GhResult(success=False, error="Command timed out")

    out = stdout.decode("utf-8", errors="replace").strip()
    err = stderr.decode("utf-8", errors="replace").strip()
    logger.debug("gh completed, exit code: %s", process.returncode)

    if process.returncode != 0:
        return GhResult(
            success=False,
            error=err or f"gh command failed with exit code {process.returncode}",
        )

    if parse_json and out:
        try:
            return GhResult(success=True, data=json.loads(out))
        except ValueError:
            return GhResult(success=False, error="Failed to parse JSON response")

    return GhResult(success=True, data=out or None)


class GhClient:
    """VCSProvider backed by the gh CLI."""

    def __init__(self, timeout: float = DEFAULT_GH_TIMEOUT, executable: str = "gh"):
        self.timeout = timeout
        self.executable = executable

    async def _run(self, args: Sequence[str], parse_json: bool = False) -> GhResult:
        return await run_gh_command(args, parse_json=parse_json, timeout=self.timeout, executable=self.executable)

    async def is_available(self) -> bool:
        """Whether gh is installed and authenticated."""
        return (await self._run(["auth", "status"])).success

    async def get_pr_details(self, pr_number: int) -> PRDetails:
        result = await self._run(
            ["pr", "view", str(pr_number), "--json", "state,isDraft,mergeable,reviewDecision"],
            parse_json=True,
        )
        if not result.success:
            logger.debug("PR #%s details unavailable: %s", pr_number, result.error)
            return PRDetails.unknown()
        return parse_pr_details(result.data)

    async def get_pr_checks(self, pr_number: int) -> List[CICheck]:
        result = await self._run(
            ["pr", "checks", str(pr_number), "--json", "name,state,conclusion,detailsUrl"],
            parse_json=True,
        )
        if not result.success:
            logger.debug("PR #%s checks unavailable: %s", pr_number, result.error)
            return []
        return parse_pr_checks(result.data)

    async def merge_pr(self, pr_number: int, method: str = "squash", delete_branch: bool = True) -> GhResult:
        args = ["pr", "merge", str(pr_number), f"--{_method_value(method)}"]
        if delete_branch:
            args.append("--delete-branch")
        return await self._run(args)

    async def enable_auto_merge(self, pr_number: int, method: str = "squash", delete_branch: bool = True) -> GhResult:
        """Ask GitHub to merge once required checks pass."""
        args = ["pr", "merge", str(pr_number), "--auto", f"--{_method_value(method)}"]
        if delete_branch:
            args.append("--delete-branch")
        return await self._run(args)

    async def add_label(self, pr_number: int, label: str) -> GhResult:
        return await self._run(["pr", "edit", str(pr_number), "--add-label", label])


def _method_value(method: Any) -> str:
    return method.value if isinstance(method, Enum) else str(method)
