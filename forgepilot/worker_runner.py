"""
Worker Runner
=============

Runs a coding worker (``claude --print`` by default) as a child process in
non-interactive mode: the prompt goes to stdin, output is collected from both
streams, and a wall-clock timeout stops the process with SIGTERM then SIGKILL.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from forgepilot.config import DEFAULT_TIMEOUT_SECONDS
from forgepilot.github_client import KILL_GRACE_SECONDS, terminate_process

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COMMAND = ("claude", "--print")
VERSION_CHECK_TIMEOUT = 5.0

EXIT_CODE_MESSAGES = {
    0: "Success",
    1: "Invalid arguments",
    2: "Missing dependencies",
    3: "GitHub API error",
    4: "Claude execution error",
    5: "Git operation error",
}


@dataclass
class WorkerRunResult:
    """Outcome of one worker process run."""
    success: bool
    exit_code: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: int


async def _pump(
    stream: Optional[asyncio.StreamReader],
    sink: list,
    callback: Optional[Callable[[str], None]],
) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        text = chunk.decode("utf-8", errors="replace")
        sink.append(text)
        if callback is not None:
            callback(text)


async def _feed_stdin(process: asyncio.subprocess.Process, prompt: str) -> None:
    if process.stdin is None:
        return
    try:
        process.stdin.write(prompt.encode("utf-8"))
        await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError) as e:
        logger.debug("Worker closed stdin early: %s", e)
    finally:
        process.stdin.close()


async def run_worker(
    prompt: str,
    cwd: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    env: Optional[Dict[str, str]] = None,
    command: Sequence[str] = DEFAULT_WORKER_COMMAND,
    on_stdout: Optional[Callable[[str], None]] = None,
    on_stderr: Optional[Callable[[str], None]] = None,
    kill_grace: float = KILL_GRACE_SECONDS,
) -> WorkerRunResult:
    """
    Run the worker command with ``prompt`` on stdin.

    Never raises. A spawn failure gives ``exit_code=None`` with the error
    appended to stderr; a timeout keeps whatever output arrived before the
    process was stopped.
    """
    started = time.monotonic()
    stdout_parts: list = []
    stderr_parts: list = []

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            env={**os.environ, **(env or {})},
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug("Could not start worker %s: %s", command[0], e)
        return WorkerRunResult(
            success=False,
            exit_code=None,
            stdout="",
            stderr=f"\n{e}",
            timed_out=False,
            duration_ms=elapsed_ms(),
        )

    logger.debug("Worker started (pid %s): %s", process.pid, " ".join(command))

    async def run_to_exit() -> int:
        await asyncio.gather(
            _feed_stdin(process, prompt),
            _pump(process.stdout, stdout_parts, on_stdout),
            _pump(process.stderr, stderr_parts, on_stderr),
        )
        return await process.wait()

    io_task = asyncio.ensure_future(run_to_exit())

    timed_out = False
    try:
        await asyncio.wait_for(asyncio.shield(io_task), timeout=timeout)
    except asyncio.TimeoutError:
        timed_out = True
        logger.info("Worker pid %s exceeded %ss, stopping it", process.pid, timeout)
        await terminate_process(process, grace=kill_grace)
        try:
            await asyncio.wait_for(io_task, timeout=kill_grace)
        except asyncio.TimeoutError:
            io_task.cancel()

    exit_code = process.returncode
    return WorkerRunResult(
        success=exit_code == 0 and not timed_out,
        exit_code=exit_code,
        stdout="".join(stdout_parts),
        stderr="".join(stderr_parts),
        timed_out=timed_out,
        duration_ms=elapsed_ms(),
    )


async def _version_output(executable: str) -> Optional[str]:
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError:
        return None

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=VERSION_CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        await terminate_process(process)
        return None

    if process.returncode != 0:
        return None
    return stdout.decode("utf-8", errors="replace").strip()


async def is_claude_available(executable: str = "claude") -> bool:
    return await _version_output(executable) is not None


async def get_claude_version(executable: str = "claude") -> Optional[str]:
    """Version string reported by the CLI, or None if unavailable."""
    return await _version_output(executable) or None


def get_exit_code_message(exit_code: Optional[int]) -> str:
    if exit_code is None:
        return "Process terminated abnormally"
    return EXIT_CODE_MESSAGES.get(exit_code, f"Unknown error (exit code {exit_code})")
