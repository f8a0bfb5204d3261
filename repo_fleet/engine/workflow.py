"""Workflow engine facade.

Wires settings, discovery, the operation registry and the run coordinator
together so hosts (the CLI, tests) can go from a plan source to a RunSummary
in a few calls.

Example:
    >>> engine = WorkflowEngine(FleetSettings())
    >>> plan = engine.load_plan("folder-rename")
    >>> summary = await engine.run(plan, engine.discover())
    >>> summary.raise_for_failures()
"""

import asyncio
from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog

from repo_fleet.config.settings import FleetSettings
from repo_fleet.engine.confirmation import Prompter
from repo_fleet.engine.context import ExecutionServices, RunState
from repo_fleet.engine.events import EventSink, StructlogEventSink
from repo_fleet.engine.executor import StepExecutor
from repo_fleet.engine.outcome import RunSummary
from repo_fleet.engine.plan import WorkflowPlan, load_plan
from repo_fleet.engine.registry import OperationRegistry
from repo_fleet.engine.runner import RunCoordinator
from repo_fleet.engine.scheduler import Stage, plan_stages
from repo_fleet.git.client import GitClient
from repo_fleet.git.discovery import RepositoryDiscovery
from repo_fleet.git.models import RepositoryContext
from repo_fleet.git.platform import PlatformClient
from repo_fleet.utils.async_subprocess import CommandExecutor, SubprocessRunner

log = structlog.get_logger(__name__)


def build_services(settings: FleetSettings, runner: CommandExecutor | None = None) -> ExecutionServices:
    """Create the git and platform collaborators from settings."""
    runner = runner or SubprocessRunner()
    return ExecutionServices(
        git=GitClient(runner, settings.git.executable),
        platform=PlatformClient(runner, settings.git.platform_executable),
        push_remote=settings.git.push_remote,
    )


class WorkflowEngine:
    """Plans and runs workflows over a fleet of repositories.

    Args:
        settings: Fleet settings
        registry: Operation registry, the built-in operations by default
        services: Shared collaborators, built from settings by default
        sink: Event stream destination, structlog by default
        prompter: Interactive prompter for confirmations, None to decline
    """

    def __init__(
        self,
        settings: FleetSettings,
        registry: OperationRegistry | None = None,
        services: ExecutionServices | None = None,
        sink: EventSink | None = None,
        prompter: Prompter | None = None,
    ) -> None:
        if registry is None:
            from repo_fleet.operations import default_registry

            registry = default_registry()

        self.settings = settings
        self.registry = registry
        self.services = services or build_services(settings)
        self.sink = sink or StructlogEventSink()
        self.prompter = prompter
        self.executor = StepExecutor(registry, self.services, settings.execution.step_timeout)
        self.coordinator = RunCoordinator(self.executor, self.sink, settings.execution.workers)

    def load_plan(self, source: str | Path, variables: Mapping[str, str] | None = None) -> WorkflowPlan:
        """Load a plan file or preset, validated against the registry."""
        return load_plan(source, variables, self.registry)

    def stages(self, plan: WorkflowPlan) -> list[Stage]:
        return plan_stages(plan)

    def discover(self, roots: Iterable[Path | str] | None = None) -> list[RepositoryContext]:
        """Discover and inspect repositories under ``roots`` (settings roots by default)."""
        discovery = RepositoryDiscovery(self.settings.discovery.include_nested)
        search = list(roots) if roots is not None else self.settings.root_paths
        return [discovery.inspect(path) for path in discovery.discover(search)]

    def cancel(self) -> None:
        self.coordinator.cancel()

    async def run(
        self,
        plan: WorkflowPlan,
        repositories: list[RepositoryContext],
        variables: Mapping[str, str] | None = None,
    ) -> RunSummary:
        """Schedule the plan and run it against ``repositories``.

        Plan errors surface before any repository is touched. Step failures
        are recorded in the summary; call ``raise_for_failures`` on it to
        turn them into a WorkflowRunError.
        """
        stages = plan_stages(plan)
        state = RunState(repositories, variables, self.settings.execution.assume_yes, self.prompter)

        loop = asyncio.get_running_loop()
        timer = None
        if self.settings.execution.run_timeout:
            timer = loop.call_later(self.settings.execution.run_timeout, self._on_run_timeout)
        try:
            return await self.coordinator.run(stages, state)
        finally:
            if timer is not None:
                timer.cancel()

    def _on_run_timeout(self) -> None:
        log.warning("run_timeout_reached", timeout=self.settings.execution.run_timeout)
        self.coordinator.cancel()
