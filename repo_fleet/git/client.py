"""Async git client built on the execution collaborator.

Each method runs one git subcommand inside a repository and raises
GitOperationError when git exits non-zero, unless the method is a query
whose non-zero exit has a meaning (``branch_exists``, ``remote_url``).

Example:
    >>> git = GitClient(SubprocessRunner())
    >>> branch = await git.current_branch(Path("/src/api"))
    >>> await git.checkout_new(Path("/src/api"), "automation/gitignore", "main")
"""

from collections.abc import Sequence
from pathlib import Path

import structlog

from repo_fleet.exceptions import GitOperationError
from repo_fleet.git.status import StatusEntry, parse_porcelain_z
from repo_fleet.utils.async_subprocess import CommandExecutor, CommandResult

log = structlog.get_logger(__name__)


class GitClient:
    """Thin async wrapper over the git CLI.

    Args:
        runner: Execution collaborator
        executable: git executable name or path
    """

    def __init__(self, runner: CommandExecutor, executable: str = "git") -> None:
        self.runner = runner
        self.executable = executable

    async def _run(self, path: Path, *args: str, check: bool = True) -> CommandResult:
        command = [self.executable, *args]
        result = await self.runner.execute(command, cwd=path)
        if check and not result.ok:
            raise GitOperationError(
                operation=args[0],
                repository=str(path),
                command=command,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    async def current_branch(self, path: Path) -> str:
        result = await self._run(path, "rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip()

    async def head_commit(self, path: Path) -> str:
        result = await self._run(path, "rev-parse", "HEAD")
        return result.stdout.strip()

    async def status(self, path: Path) -> list[StatusEntry]:
        """Porcelain status entries, untracked files included.

        Uses the NUL-separated form so paths arrive unquoted.
        """
        result = await self._run(path, "status", "--porcelain", "-z", "--untracked-files=all")
        return parse_porcelain_z(result.stdout)

    async def staged_paths(self, path: Path, paths: Sequence[str] | None = None) -> list[str]:
        """Staged paths, limited to ``paths`` when given."""
        args = ["diff", "--cached", "--name-only", "-z"]
        if paths:
            args.extend(["--", *paths])
        result = await self._run(path, *args)
        return [name for name in result.stdout.split("\0") if name.strip()]

    async def branch_exists(self, path: Path, branch: str) -> bool:
        result = await self._run(path, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}", check=False)
        return result.ok

    async def remote_branch_exists(self, path: Path, remote: str, branch: str) -> bool:
        result = await self._run(
            path, "rev-parse", "--verify", "--quiet", f"refs/remotes/{remote}/{branch}", check=False
        )
        return result.ok

    async def checkout(self, path: Path, ref: str) -> None:
        await self._run(path, "checkout", ref)

    async def checkout_new(self, path: Path, branch: str, start_point: str | None = None) -> None:
        """Create (or reset) ``branch`` at ``start_point`` and check it out."""
        args = ["checkout", "-B", branch]
        if start_point:
            args.append(start_point)
        await self._run(path, *args)

    async def set_upstream(self, path: Path, remote: str, branch: str) -> None:
        await self._run(path, "branch", f"--set-upstream-to={remote}/{branch}", branch)

    async def add(self, path: Path, paths: Sequence[str]) -> None:
        """Stage exactly the given paths."""
        if not paths:
            return
        await self._run(path, "add", "--", *paths)

    async def commit(self, path: Path, message: str, paths: Sequence[str] | None = None) -> None:
        """Commit the index, or only ``paths`` when given.

        With ``paths`` the commit uses ``--only``: other staged entries are
        left in the index untouched.
        """
        args = ["commit", "-m", message]
        if paths:
            args.extend(["--only", "--", *paths])
        await self._run(path, *args)

    async def tag_exists(self, path: Path, tag: str) -> bool:
        result = await self._run(path, "rev-parse", "--verify", "--quiet", f"refs/tags/{tag}", check=False)
        return result.ok

    async def create_tag(self, path: Path, tag: str, message: str) -> None:
        """Create an annotated tag at HEAD."""
        await self._run(path, "tag", "-a", tag, "-m", message)

    async def push_ref(self, path: Path, remote: str, ref: str) -> None:
        await self._run(path, "push", remote, ref)

    async def checkout_tracking(self, path: Path, remote: str, branch: str) -> None:
        """Create local ``branch`` tracking ``remote/branch`` and check it out."""
        await self._run(path, "checkout", "-b", branch, "--track", f"{remote}/{branch}")

    async def create_branch(self, path: Path, branch: str, start_point: str) -> None:
        """Create ``branch`` at ``start_point`` without checking it out."""
        await self._run(path, "branch", branch, start_point)

    async def push(self, path: Path, remote: str, branch: str) -> None:
        await self._run(path, "push", "--set-upstream", remote, branch)

    async def remote_url(self, path: Path, remote: str = "origin") -> str | None:
        """Configured URL of ``remote``, or None when the remote is missing."""
        result = await self._run(path, "remote", "get-url", remote, check=False)
        url = result.stdout.strip()
        return url if result.ok and url else None

    async def set_remote_url(self, path: Path, remote: str, url: str) -> None:
        await self._run(path, "remote", "set-url", remote, url)
        log.debug("remote_url_updated", repository=str(path), remote=remote, url=url)
