"""Pytest configuration and shared fixtures."""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from repo_fleet.engine.context import ExecutionServices, RunState, StepContext
from repo_fleet.engine.events import MemoryEventSink, OutputSection
from repo_fleet.engine.plan import Step
from repo_fleet.engine.registry import OperationRegistry
from repo_fleet.engine.safeguards import SafeguardSpec
from repo_fleet.exceptions import GitOperationError
from repo_fleet.git.models import RepositoryContext
from repo_fleet.git.status import StatusEntry, parse_porcelain
from repo_fleet.operations import default_registry
from repo_fleet.rendering.engine import TemplateRenderer

FAKE_ID_FILE = "fake-id"


@dataclass
class FakeRepository:
    """In-memory state of one repository behind FakeGitClient."""

    branch: str = "main"
    head: str = "0000000"
    branches: set[str] = field(default_factory=lambda: {"main"})
    remote_branches: set[str] = field(default_factory=set)
    remotes: dict[str, str] = field(default_factory=dict)
    status: list[StatusEntry] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)
    commits: list[str] = field(default_factory=list)
    committed_paths: list[list[str]] = field(default_factory=list)
    pushed: list[tuple[str, str]] = field(default_factory=list)
    upstreams: list[tuple[str, str]] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)


class FakeGitClient:
    """Stand-in for GitClient keeping repository state in memory.

    Repositories are identified by a marker inside their ``.git`` directory,
    so a repository keeps its state when its directory is renamed.
    """

    def __init__(self) -> None:
        self.repositories: dict[str, FakeRepository] = {}
        self.calls: list[tuple[str, Path]] = []

    def register(self, path: Path, **state: Any) -> FakeRepository:
        marker = path / ".git" / FAKE_ID_FILE
        marker.parent.mkdir(parents=True, exist_ok=True)
        identifier = uuid.uuid4().hex
        marker.write_text(identifier)
        repository = FakeRepository(**state)
        repository.branches.add(repository.branch)
        self.repositories[identifier] = repository
        return repository

    def repository(self, path: Path) -> FakeRepository:
        return self.repositories[(path / ".git" / FAKE_ID_FILE).read_text()]

    def _call(self, name: str, path: Path) -> FakeRepository:
        self.calls.append((name, path))
        return self.repository(path)

    async def current_branch(self, path: Path) -> str:
        return self._call("current_branch", path).branch

    async def head_commit(self, path: Path) -> str:
        return self._call("head_commit", path).head

    async def status(self, path: Path) -> list[StatusEntry]:
        return list(self._call("status", path).status)

    async def staged_paths(self, path: Path, paths: list[str] | None = None) -> list[str]:
        staged = self._call("staged_paths", path).staged
        return [item for item in staged if paths is None or item in paths]

    async def branch_exists(self, path: Path, branch: str) -> bool:
        return branch in self._call("branch_exists", path).branches

    async def remote_branch_exists(self, path: Path, remote: str, branch: str) -> bool:
        return f"{remote}/{branch}" in self._call("remote_branch_exists", path).remote_branches

    async def checkout(self, path: Path, ref: str) -> None:
        repository = self._call("checkout", path)
        if ref not in repository.branches and ref != repository.head:
            stderr = f"pathspec '{ref}' did not match"
            raise GitOperationError("checkout", str(path), ["git", "checkout", ref], 1, stderr)
        repository.branch = ref

    async def checkout_new(self, path: Path, branch: str, start_point: str | None = None) -> None:
        repository = self._call("checkout_new", path)
        repository.branches.add(branch)
        repository.branch = branch

    async def set_upstream(self, path: Path, remote: str, branch: str) -> None:
        self._call("set_upstream", path).upstreams.append((remote, branch))

    async def add(self, path: Path, paths: list[str]) -> None:
        repository = self._call("add", path)
        for item in paths:
            if item not in repository.staged:
                repository.staged.append(item)

    async def commit(self, path: Path, message: str, paths: list[str] | None = None) -> None:
        repository = self._call("commit", path)
        selected = [item for item in repository.staged if paths is None or item in paths]
        if not selected:
            raise GitOperationError("commit", str(path), ["git", "commit"], 1, "nothing to commit")
        repository.commits.append(message)
        repository.committed_paths.append(selected)
        repository.staged = [item for item in repository.staged if item not in selected]
        repository.head = f"{len(repository.commits):07d}"

    async def tag_exists(self, path: Path, tag: str) -> bool:
        return tag in self._call("tag_exists", path).tags

    async def create_tag(self, path: Path, tag: str, message: str) -> None:
        repository = self._call("create_tag", path)
        repository.tags[tag] = message

    async def push_ref(self, path: Path, remote: str, ref: str) -> None:
        repository = self._call("push_ref", path)
        if remote not in repository.remotes:
            stderr = f"'{remote}' does not appear to be a git repository"
            raise GitOperationError("push", str(path), ["git", "push"], 128, stderr)
        repository.pushed.append((remote, ref))

    async def checkout_tracking(self, path: Path, remote: str, branch: str) -> None:
        repository = self._call("checkout_tracking", path)
        repository.branches.add(branch)
        repository.upstreams.append((remote, branch))
        repository.branch = branch

    async def create_branch(self, path: Path, branch: str, start_point: str) -> None:
        self._call("create_branch", path).branches.add(branch)

    async def push(self, path: Path, remote: str, branch: str) -> None:
        repository = self._call("push", path)
        if remote not in repository.remotes:
            stderr = f"'{remote}' does not appear to be a git repository"
            raise GitOperationError("push", str(path), ["git", "push"], 128, stderr)
        repository.pushed.append((remote, branch))

    async def remote_url(self, path: Path, remote: str = "origin") -> str | None:
        return self._call("remote_url", path).remotes.get(remote)

    async def set_remote_url(self, path: Path, remote: str, url: str) -> None:
        self._call("set_remote_url", path).remotes[remote] = url


@pytest.fixture
def fake_git() -> FakeGitClient:
    """Fake git client."""
    return FakeGitClient()


@pytest.fixture
def platform_client() -> AsyncMock:
    """Platform client mock returning a fixed pull request URL."""
    client = AsyncMock()
    client.create_pull_request.return_value = "https://github.com/acme/api/pull/7"
    return client


@pytest.fixture
def services(fake_git: FakeGitClient, platform_client: AsyncMock) -> ExecutionServices:
    """Execution services backed by fakes."""
    return ExecutionServices(git=fake_git, platform=platform_client, renderer=TemplateRenderer())


@pytest.fixture
def sink() -> MemoryEventSink:
    """In-memory event sink."""
    return MemoryEventSink()


@pytest.fixture
def registry() -> OperationRegistry:
    """Registry with the built-in operations."""
    return default_registry()


@pytest.fixture
def make_repository(tmp_path: Path, fake_git: FakeGitClient) -> Callable[..., RepositoryContext]:
    """Factory creating a working tree directory registered with the fake git client."""

    def factory(
        folder: str,
        owner: str | None = "acme",
        name: str | None = None,
        dirty: str = "",
        **state: Any,
    ) -> RepositoryContext:
        path = tmp_path / "fleet" / folder
        path.mkdir(parents=True)
        fake_git.register(path, status=parse_porcelain(dirty), **state)
        repo_name = name if name is not None else folder
        return RepositoryContext(
            path=path,
            owner=owner,
            name=repo_name or None,
            remote_url=f"git@github.com:{owner}/{repo_name}.git" if owner and repo_name else None,
            clean_at_start=not dirty,
        )

    return factory


def make_step(
    name: str = "step",
    command: str = "tasks apply",
    options: dict[str, Any] | None = None,
    safeguards: dict[str, Any] | None = None,
    after: tuple[str, ...] = (),
    index: int = 0,
) -> Step:
    """Build a normalized step directly."""
    return Step(
        name=name,
        command=command,
        after=after,
        options=options or {},
        safeguards=SafeguardSpec.from_mapping(safeguards),
        index=index,
    )


def make_context(
    step: Step,
    repository: RepositoryContext,
    services: ExecutionServices,
    sink: MemoryEventSink,
    state: RunState | None = None,
) -> StepContext:
    """StepContext for a single repository."""
    state = state or RunState([repository])
    key = str(repository.path)
    return StepContext(
        step=step,
        repository=state.repository(key),
        repository_key=key,
        state=state,
        services=services,
        section=OutputSection(sink, repository.label, step.name, path=key),
    )
