"""Async subprocess utilities.

Every external tool the engine drives (git, the platform CLI) is invoked
through this module, so a single seam can be replaced in tests.

This module offers:
    - run_command: Execute a command with list arguments (no shell)
    - CommandResult: Captured stdout, stderr and exit code
    - SubprocessRunner: The execution collaborator handed to git and
      platform clients; ``execute`` never raises on non-zero exit codes

Example:
    >>> from repo_fleet.utils.async_subprocess import run_command
    >>> stdout, stderr, code = await run_command("git", "status", cwd="/repo")
    >>> if code == 0:
    ...     print(stdout)

Thread Safety:
    These functions are safe to call concurrently from multiple async tasks.
    Each call creates an independent subprocess with no shared state.
"""

import asyncio
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command invocation."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandExecutor(Protocol):
    """Execution collaborator used by git and platform clients."""

    async def execute(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        stdin: str | None = None,
    ) -> CommandResult: ...


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    stdin: str | None = None,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    Args:
        *args: Command and arguments as separate strings. The first argument
            is the executable.
        cwd: Working directory for command execution. If None, uses the
            current working directory of the parent process.
        check: If True (default), raise CalledProcessError when the command
            returns a non-zero exit code.
        timeout: Maximum seconds to wait for completion. If exceeded, the
            process is killed and TimeoutError is raised.
        stdin: Text written to the process's standard input, if any.

    Returns:
        Tuple of (stdout, stderr, return_code) with stdout and stderr decoded
        as UTF-8 (invalid bytes replaced).

    Raises:
        subprocess.CalledProcessError: If check=True and command returns
            non-zero.
        TimeoutError: If timeout is exceeded. The process is killed first.
        FileNotFoundError: If the executable is not found.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(stdin.encode("utf-8") if stdin is not None else None),
            timeout=timeout,
        )
    except TimeoutError:
        process.kill()
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            args,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0


class SubprocessRunner:
    """Execution collaborator backed by real subprocesses.

    Args:
        timeout: Per-command timeout in seconds, None to wait indefinitely
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    async def execute(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        stdin: str | None = None,
    ) -> CommandResult:
        log.debug("command_started", command=list(command), cwd=str(cwd) if cwd else None)
        stdout, stderr, code = await run_command(
            *command,
            cwd=cwd,
            check=False,
            timeout=self.timeout,
            stdin=stdin,
        )
        if code != 0:
            log.debug("command_failed", command=list(command), exit_code=code, stderr=stderr.strip())
        return CommandResult(stdout=stdout, stderr=stderr, exit_code=code)
