"""Repository-scoped step executor.

Executes one step against one repository (or once, for global steps) and
always returns an ExecutionOutcome:

1. Resolve the operation and parse the step's options.
2. For repository-scoped steps, check the step's safeguards: a hard-stop
   violation returns the repository skip sentinel, a soft-skip violation a
   plain skip. The operation is not invoked in either case.
3. Invoke the handler, bounded by the optional step timeout. Any exception
   is wrapped in StepExecutionError with the command and repository path
   and returned as a failed outcome.
"""

import asyncio

import structlog

from repo_fleet.engine.context import ExecutionServices, RunState, StepContext
from repo_fleet.engine.events import OutputSection
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.engine.plan import Step
from repo_fleet.engine.registry import OperationRegistry
from repo_fleet.engine.safeguards import check_safeguards
from repo_fleet.enums import SafeguardClass
from repo_fleet.exceptions import StepExecutionError

log = structlog.get_logger(__name__)


class StepExecutor:
    """Dispatches steps to registered operations.

    Args:
        registry: Command path lookup table
        services: Collaborators handed to every operation
        step_timeout: Seconds one operation may run, None for no limit
    """

    def __init__(
        self,
        registry: OperationRegistry,
        services: ExecutionServices,
        step_timeout: float | None = None,
    ) -> None:
        self.registry = registry
        self.services = services
        self.step_timeout = step_timeout

    def is_repository_scoped(self, step: Step) -> bool:
        return self.registry.resolve(step.command).repository_scoped

    async def execute(
        self,
        step: Step,
        repository_key: str | None,
        state: RunState,
        section: OutputSection,
    ) -> ExecutionOutcome:
        """Execute ``step`` for ``repository_key`` (None for global steps)."""
        repository = state.repository(repository_key) if repository_key is not None else None
        label = repository.label if repository else None
        location = str(repository.path) if repository else None

        try:
            spec = self.registry.resolve(step.command)
            options = spec.parse_options(step.options)

            if repository is not None:
                verdict = await check_safeguards(self.services.git, repository.path, step.safeguards)
                if verdict is not None:
                    section.add(
                        "safeguard_violated",
                        condition=verdict.condition,
                        classification=verdict.classification.value,
                        reason=verdict.reason,
                    )
                    if verdict.classification == SafeguardClass.HARD_STOP:
                        return ExecutionOutcome.repository_skip(step.name, label, verdict.reason)
                    return ExecutionOutcome.skipped(step.name, label, verdict.reason, code="soft_skip")

            context = StepContext(
                step=step,
                repository=repository,
                repository_key=repository_key,
                state=state,
                services=self.services,
                section=section,
            )
            async with asyncio.timeout(self.step_timeout):
                return await spec.handler(context, options)
        except TimeoutError:
            error = StepExecutionError(
                step.command, location, TimeoutError(f"step timed out after {self.step_timeout}s")
            )
            log.warning("step_timed_out", step=step.name, repository=label, timeout=self.step_timeout)
            return ExecutionOutcome.failed(step.name, label, error, code="timeout")
        except Exception as e:
            error = StepExecutionError(step.command, location, e)
            log.debug("step_failed", step=step.name, repository=label, error=error.message, exc_info=True)
            return ExecutionOutcome.failed(step.name, label, error)
