"""
Tests for the gh CLI wrapper.
"""

import sys

import pytest

from forgepilot.github_client import (
    CheckConclusion,
    CheckStatus,
    GhClient,
    PRDetails,
    ReviewDecision,
    map_check_conclusion,
    map_check_state,
    map_mergeable,
    map_review_decision,
    parse_pr_checks,
    parse_pr_details,
    run_gh_command,
)


class TestMapping:
    """Tests for mapping gh JSON onto typed values."""

    @pytest.mark.parametrize("state, expected", [
        ("IN_PROGRESS", CheckStatus.IN_PROGRESS),
        ("COMPLETED", CheckStatus.COMPLETED),
        ("SUCCESS", CheckStatus.COMPLETED),
        ("FAILURE", CheckStatus.COMPLETED),
        ("QUEUED", CheckStatus.QUEUED),
        ("PENDING", CheckStatus.QUEUED),
        (None, CheckStatus.QUEUED),
    ])
    def test_map_check_state(self, state, expected):
        assert map_check_state(state) == expected

    def test_map_check_conclusion(self):
        assert map_check_conclusion("SUCCESS") == CheckConclusion.SUCCESS
        assert map_check_conclusion("timed_out") == CheckConclusion.TIMED_OUT
        assert map_check_conclusion("") == CheckConclusion.PENDING
        assert map_check_conclusion("WEIRD") == CheckConclusion.PENDING

    def test_map_mergeable(self):
        assert map_mergeable("MERGEABLE") is True
        assert map_mergeable("CONFLICTING") is False
        assert map_mergeable("UNKNOWN") is None

    def test_map_review_decision(self):
        assert map_review_decision("APPROVED") == ReviewDecision.APPROVED
        assert map_review_decision("") is None
        assert map_review_decision("SOMETHING") is None

    def test_parse_pr_details(self):
        details = parse_pr_details({
            "state": "OPEN",
            "isDraft": True,
            "mergeable": "MERGEABLE",
            "reviewDecision": "CHANGES_REQUESTED",
        })
        assert details == PRDetails(
            state="open",
            draft=True,
            mergeable=True,
            review_decision=ReviewDecision.CHANGES_REQUESTED,
        )

    def test_parse_pr_details_bad_shape(self):
        assert parse_pr_details(None) == PRDetails.unknown()

    def test_parse_pr_checks(self):
        checks = parse_pr_checks([
            {"name": "build", "state": "COMPLETED", "conclusion": "SUCCESS", "detailsUrl": "https://ci/1"},
            {"name": "test", "state": "IN_PROGRESS", "conclusion": ""},
            {"name": "lint", "state": "FAILURE"},
            "junk",
        ])

        assert [c.name for c in checks] == ["build", "test", "lint"]
        assert checks[0].conclusion == CheckConclusion.SUCCESS
        assert checks[0].url == "https://ci/1"
        assert checks[1].status == CheckStatus.IN_PROGRESS
        assert checks[1].conclusion == CheckConclusion.PENDING
        assert checks[2].status == CheckStatus.COMPLETED
        assert checks[2].conclusion == CheckConclusion.FAILURE

    def test_parse_pr_checks_bad_shape(self):
        assert parse_pr_checks({"not": "a list"}) == []


class TestRunGhCommand:
    """Tests for subprocess degradation, using the Python interpreter as a stand-in."""

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        result = await run_gh_command(["pr", "view"], executable="definitely-not-gh-binary")
        assert not result.success
        assert "not found" in result.error

    @pytest.mark.asyncio
    async def test_parses_json(self):
        result = await run_gh_command(
            ["-c", "print('{\"state\": \"OPEN\"}')"],
            parse_json=True,
            executable=sys.executable,
        )
        assert result.success
        assert result.data == {"state": "OPEN"}

    @pytest.mark.asyncio
    async def test_bad_json(self):
        result = await run_gh_command(["-c", "print('nope')"], parse_json=True, executable=sys.executable)
        assert not result.success
        assert result.error == "Failed to parse JSON response"

    @pytest.mark.asyncio
    async def test_nonzero_exit_uses_stderr(self):
        result = await run_gh_command(
            ["-c", "import sys; sys.stderr.write('auth required'); sys.exit(4)"],
            executable=sys.executable,
        )
        assert not result.success
        assert result.error == "auth required"

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_stderr(self):
        result = await run_gh_command(["-c", "import sys; sys.exit(2)"], executable=sys.executable)
        assert result.error == "gh command failed with exit code 2"

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await run_gh_command(
            ["-c", "import time; time.sleep(30)"],
            timeout=0.5,
            executable=sys.executable,
        )
        assert not result.success
        assert result.error == "Command timed out"


class TestGhClientDegradation:
    """A client whose binary is missing returns safe defaults."""

    @pytest.fixture
    def client(self):
        return GhClient(executable="definitely-not-gh-binary")

    @pytest.mark.asyncio
    async def test_details_unknown(self, client):
        assert await client.get_pr_details(1) == PRDetails.unknown()

    @pytest.mark.asyncio
    async def test_checks_empty(self, client):
        assert await client.get_pr_checks(1) == []

    @pytest.mark.asyncio
    async def test_not_available(self, client):
        assert await client.is_available() is False

    @pytest.mark.asyncio
    async def test_merge_reports_failure(self, client):
        result = await client.merge_pr(1)
        assert not result.success
