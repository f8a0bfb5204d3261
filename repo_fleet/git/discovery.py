"""Repository discovery on local disk.

Discovery walks each root for working trees (directories holding a ``.git``
entry) and inspects each one with GitPython to build the RepositoryContext
every workflow step reads.

Example:
    >>> discovery = RepositoryDiscovery()
    >>> paths = discovery.discover([Path("~/src")])
    >>> repositories = [discovery.inspect(path) for path in paths]
    >>> repositories[0].label
    'acme/api'
"""

import os
from collections.abc import Iterable
from pathlib import Path

import git
import structlog
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from repo_fleet.git.exceptions import DiscoveryRootError, NotGitRepositoryError
from repo_fleet.git.models import RepositoryContext
from repo_fleet.git.remote_url import parse_remote_url

log = structlog.get_logger(__name__)

GIT_DIRECTORY = ".git"
DEFAULT_BRANCH_FALLBACK = "main"
PREFERRED_REMOTES = ["origin", "upstream"]


class RepositoryDiscovery:
    """Finds and inspects git repositories under a set of roots.

    Attributes:
        include_nested: Keep descending into a repository once found, so
            repositories nested inside other working trees are returned too
    """

    def __init__(self, include_nested: bool = False) -> None:
        self.include_nested = include_nested

    def discover(self, roots: Iterable[Path | str]) -> list[Path]:
        """Return the absolute paths of every repository under ``roots``.

        Paths are deduplicated and sorted.

        Raises:
            DiscoveryRootError: If a root is missing or not a directory
        """
        roots = list(roots)
        found: set[Path] = set()
        for root in roots:
            root_path = Path(root).expanduser().resolve()
            if not root_path.is_dir():
                raise DiscoveryRootError(str(root))
            found.update(self._walk(root_path))

        repositories = sorted(found)
        log.info("repositories_discovered", count=len(repositories), roots=[str(r) for r in roots])
        return repositories

    def _walk(self, root: Path) -> list[Path]:
        repositories = []
        for directory, subdirectories, files in os.walk(root):
            if GIT_DIRECTORY in subdirectories or GIT_DIRECTORY in files:
                repositories.append(Path(directory))
                if not self.include_nested:
                    subdirectories.clear()
                    continue
            subdirectories[:] = sorted(name for name in subdirectories if name != GIT_DIRECTORY)
        return repositories

    def inspect(self, path: Path | str) -> RepositoryContext:
        """Build the RepositoryContext for one working tree.

        Raises:
            NotGitRepositoryError: If ``path`` is not a repository
        """
        repo_path = Path(path).expanduser().resolve()
        try:
            repo = git.Repo(repo_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotGitRepositoryError(str(repo_path)) from e

        try:
            remote_name, remote_url = self._remote(repo)
            parsed = parse_remote_url(remote_url)
            context = RepositoryContext(
                path=repo_path,
                owner=parsed.owner if parsed else None,
                name=parsed.repo if parsed else None,
                default_branch=self._default_branch(repo, remote_name),
                remote_url=remote_url,
                clean_at_start=not repo.is_dirty(untracked_files=True),
            )
        finally:
            repo.close()

        log.debug(
            "repository_inspected",
            repository=context.label,
            default_branch=context.default_branch,
            clean=context.clean_at_start,
        )
        return context

    def _remote(self, repo: git.Repo) -> tuple[str | None, str | None]:
        remotes = {remote.name: remote for remote in repo.remotes}
        for name in PREFERRED_REMOTES + sorted(remotes):
            remote = remotes.get(name)
            if remote is None:
                continue
            urls = list(remote.urls)
            if urls:
                return name, urls[0]
        return None, None

    def _default_branch(self, repo: git.Repo, remote_name: str | None) -> str:
        if remote_name:
            try:
                prefix = f"refs/remotes/{remote_name}/"
                ref = repo.git.symbolic_ref(f"{prefix}HEAD").strip()
                return ref.removeprefix(prefix)
            except GitCommandError:
                log.debug("remote_head_missing", repository=repo.working_dir, remote=remote_name)
        try:
            return repo.active_branch.name
        except TypeError:
            # detached HEAD
            return DEFAULT_BRANCH_FALLBACK


def discover_repositories(roots: Iterable[Path | str], include_nested: bool = False) -> list[RepositoryContext]:
    """Discover and inspect every repository under ``roots``."""
    discovery = RepositoryDiscovery(include_nested=include_nested)
    return [discovery.inspect(path) for path in discovery.discover(roots)]
