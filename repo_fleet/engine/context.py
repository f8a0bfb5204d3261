"""Run state and the context handed to operations.

RunState holds everything that lives for exactly one run: the capture store,
the mutation ledger, the confirmation session, the repository skip markers
and the current location of each repository. Repositories are keyed by the
path they were discovered at, which stays stable when a rename moves them.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from repo_fleet.engine.capture import CaptureStore
from repo_fleet.engine.confirmation import ConfirmationSession, Prompter
from repo_fleet.engine.events import OutputSection
from repo_fleet.engine.ledger import MutationLedger
from repo_fleet.engine.plan import Step
from repo_fleet.git.client import GitClient
from repo_fleet.git.models import RepositoryContext
from repo_fleet.git.platform import PlatformClient
from repo_fleet.rendering.engine import TemplateRenderer

log = structlog.get_logger(__name__)


@dataclass
class ExecutionServices:
    """Collaborators shared by every operation."""

    git: GitClient
    platform: PlatformClient
    renderer: TemplateRenderer = field(default_factory=TemplateRenderer)
    push_remote: str = "origin"


class RunState:
    """Mutable state scoped to one run.

    One asyncio lock is created per run and shared by the confirmation
    session and the capture store.

    Args:
        repositories: Repositories taking part in the run
        variables: Runtime variables exposed to templates
        assume_yes: Initial auto-accept flag of the confirmation session
        prompter: Interactive prompter for confirmations, None to decline
    """

    def __init__(
        self,
        repositories: list[RepositoryContext],
        variables: Mapping[str, str] | None = None,
        assume_yes: bool = False,
        prompter: Prompter | None = None,
    ) -> None:
        self.lock = asyncio.Lock()
        self.captures = CaptureStore(self.lock)
        self.ledger = MutationLedger()
        self.session = ConfirmationSession(assume_yes, prompter, lock=self.lock)
        self.variables = dict(variables or {})
        self._repositories: dict[str, RepositoryContext] = {}
        self._halted: dict[str, str] = {}
        for repository in repositories:
            self._repositories.setdefault(str(repository.path), repository)

    @property
    def keys(self) -> list[str]:
        return list(self._repositories)

    @property
    def repositories(self) -> list[RepositoryContext]:
        return list(self._repositories.values())

    def repository(self, key: str) -> RepositoryContext:
        return self._repositories[key]

    def relocate(self, key: str, path: Path) -> RepositoryContext:
        """Point the repository at a new working tree path."""
        relocated = self._repositories[key].relocated(path)
        self._repositories[key] = relocated
        log.debug("repository_relocated", repository=key, path=str(relocated.path))
        return relocated

    def update(self, key: str, **fields: Any) -> RepositoryContext:
        """Replace facts learned mid-run, such as a canonical owner and name."""
        updated = self._repositories[key].model_copy(update=fields)
        self._repositories[key] = updated
        log.debug("repository_updated", repository=key, **{name: str(value) for name, value in fields.items()})
        return updated

    def halt(self, key: str, reason: str) -> None:
        """Mark the repository as skipped for the rest of the run."""
        self._halted.setdefault(key, reason)

    def halted_reason(self, key: str) -> str | None:
        return self._halted.get(key)

    def template_context(self, key: str, **extra: Any) -> dict[str, Any]:
        """Base template context for a repository."""
        context: dict[str, Any] = {
            "repository": self._repositories[key].template_fields(),
            "variables": dict(self.variables),
            "captured": self.captures.snapshot(key),
        }
        context.update(extra)
        return context


@dataclass
class StepContext:
    """Everything an operation handler receives besides its options.

    Attributes:
        step: The step being executed
        repository: Target repository, None for global steps
        repository_key: Stable key of the repository within the run
        state: Run state
        services: Shared collaborators
        section: Buffered output for this (repository, step)
    """

    step: Step
    repository: RepositoryContext | None
    repository_key: str | None
    state: RunState
    services: ExecutionServices
    section: OutputSection

    @property
    def label(self) -> str | None:
        return self.repository.label if self.repository else None
