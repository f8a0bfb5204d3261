"""Hosting platform calls through the platform CLI (``gh``).

Covers what plain git cannot do: opening pull requests, resolving a
repository's canonical ``owner/name`` after transfers or renames, and
changing the default branch.
"""

from pathlib import Path

import structlog

from repo_fleet.exceptions import CommandExecutionError
from repo_fleet.utils.async_subprocess import CommandExecutor, CommandResult

log = structlog.get_logger(__name__)


class PlatformClient:
    """Talk to the hosting platform with the GitHub CLI.

    Args:
        runner: Execution collaborator
        executable: Platform CLI executable
    """

    def __init__(self, runner: CommandExecutor, executable: str = "gh") -> None:
        self.runner = runner
        self.executable = executable

    async def _run(self, path: Path, description: str, *args: str, stdin: str | None = None) -> CommandResult:
        command = [self.executable, *args]
        result = await self.runner.execute(command, cwd=path, stdin=stdin)
        if not result.ok:
            raise CommandExecutionError(
                f"{description} failed in {path}",
                command=command,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    async def create_pull_request(
        self,
        path: Path,
        *,
        title: str,
        body: str,
        base: str,
        head: str,
        draft: bool = False,
    ) -> str:
        """Open a pull request from ``head`` into ``base``.

        The body is passed on stdin so multi-line bodies survive intact.

        Returns:
            The pull request URL printed by the CLI (may be empty)

        Raises:
            CommandExecutionError: If the CLI exits non-zero
        """
        args = ["pr", "create", "--base", base, "--head", head, "--title", title, "--body-file", "-"]
        if draft:
            args.append("--draft")

        result = await self._run(path, "pull request creation", *args, stdin=body)
        url = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
        log.info("pull_request_created", repository=str(path), head=head, base=base, url=url)
        return url

    async def repository_name(self, path: Path, full_name: str) -> str:
        """Canonical ``owner/name`` of ``full_name``.

        The platform follows redirects left by transfers and renames, so the
        answer can differ from the name the remote URL still carries.

        Raises:
            CommandExecutionError: If the lookup fails or returns nothing
        """
        args = ["repo", "view", full_name, "--json", "nameWithOwner", "--jq", ".nameWithOwner"]
        result = await self._run(path, "repository lookup", *args)
        canonical = result.stdout.strip()
        if "/" not in canonical:
            raise CommandExecutionError(
                f"repository lookup for {full_name} returned {canonical!r}",
                command=[self.executable, *args],
            )
        return canonical

    async def set_default_branch(self, path: Path, full_name: str, branch: str) -> None:
        """Make ``branch`` the platform default branch of ``full_name``."""
        await self._run(path, "default branch update", "repo", "edit", full_name, "--default-branch", branch)
        log.info("default_branch_updated", repository=full_name, branch=branch)
