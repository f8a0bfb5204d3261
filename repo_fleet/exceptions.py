"""Custom exception hierarchy for repo-fleet.

Exception Hierarchy:
    RepoFleetError (base)
    ├── ConfigurationError
    ├── PlanError
    │   ├── DuplicateStepError
    │   ├── UnknownStepReferenceError
    │   ├── CyclicDependencyError
    │   ├── UnknownCommandError
    │   └── InvalidStepOptionsError
    ├── DiscoveryError
    ├── CommandExecutionError
    │   └── GitOperationError
    ├── TemplateError
    ├── CaptureError
    ├── StepExecutionError
    └── WorkflowRunError

Plan errors are raised before any repository is touched. Everything raised
while a step runs is wrapped in StepExecutionError by the step executor and
recorded as a failed outcome instead of aborting the run.

Example Usage:
    >>> from repo_fleet.exceptions import PlanError
    >>> try:
    ...     stages = plan_stages(plan)
    ... except PlanError as e:
    ...     click.echo(f"Error: {e.message}", err=True)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from repo_fleet.engine.outcome import RunSummary


class RepoFleetError(Exception):
    """Base exception for all repo-fleet errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(RepoFleetError):
    """Settings file missing, unreadable or invalid."""

    pass


class PlanError(RepoFleetError):
    """Workflow plan could not be turned into an execution order.

    Examples:
        - Invalid YAML or missing ``workflow`` list
        - Unresolved ``${variable}`` reference
        - Step referencing an unknown command
    """

    pass


class DuplicateStepError(PlanError):
    """Two steps in one plan share a name."""

    def __init__(self, step_name: str) -> None:
        self.step_name = step_name
        super().__init__(f"duplicate step name {step_name!r}")


class UnknownStepReferenceError(PlanError):
    """A step depends on a name that is not in the plan."""

    def __init__(self, step_name: str, reference: str) -> None:
        self.step_name = step_name
        self.reference = reference
        super().__init__(f"step {step_name!r} depends on unknown step {reference!r}")


class CyclicDependencyError(PlanError):
    """The step dependency graph contains a cycle.

    Attributes:
        steps: Names of the steps that could not be scheduled
    """

    def __init__(self, steps: list[str]) -> None:
        self.steps = steps
        super().__init__(f"workflow steps contain a dependency cycle: {', '.join(steps)}")


class UnknownCommandError(PlanError):
    """No operation is registered for a command path."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"unknown workflow command {command!r}")


class InvalidStepOptionsError(PlanError):
    """Step options failed validation against the operation's options model."""

    def __init__(self, step_name: str, details: str) -> None:
        self.step_name = step_name
        self.details = details
        super().__init__(f"invalid options for step {step_name!r}: {details}")


class DiscoveryError(RepoFleetError):
    """Repository discovery failed. Aborts the run."""

    pass


class CommandExecutionError(RepoFleetError):
    """An external command exited with a non-zero status.

    Attributes:
        command: Command line that was executed
        exit_code: Process exit status
        stderr: Captured standard error
    """

    def __init__(self, message: str, command: list[str] | None = None, exit_code: int = 1, stderr: str = "") -> None:
        self.command = command or []
        self.exit_code = exit_code
        self.stderr = stderr.strip()

        full_message = message
        if self.stderr:
            full_message = f"{message}: {self.stderr}"
        super().__init__(full_message)


class GitOperationError(CommandExecutionError):
    """A git subcommand failed.

    Attributes:
        operation: The git subcommand (``checkout``, ``push``, ...)
        repository: Repository path the command ran in
    """

    def __init__(
        self,
        operation: str,
        repository: str,
        command: list[str] | None = None,
        exit_code: int = 1,
        stderr: str = "",
    ) -> None:
        self.operation = operation
        self.repository = repository
        super().__init__(f"git {operation} failed in {repository}", command, exit_code, stderr)


class TemplateError(RepoFleetError):
    """Template rendering failed.

    Attributes:
        template: The template source that failed to render
    """

    def __init__(self, message: str, template: str | None = None) -> None:
        self.template = template
        super().__init__(message)


class CaptureError(RepoFleetError):
    """A restore referenced a capture that was never recorded."""

    pass


class StepExecutionError(RepoFleetError):
    """Failure of one operation against one repository.

    Wraps the underlying error (available as ``__cause__``) with the operation
    name and repository path.

    Attributes:
        operation: Command path or action name
        repository: Repository path, or None for global steps
    """

    def __init__(self, operation: str, repository: str | None, error: BaseException) -> None:
        self.operation = operation
        self.repository = repository
        detail = error.message if isinstance(error, RepoFleetError) else str(error) or type(error).__name__
        location = f" in {repository}" if repository else ""
        super().__init__(f"{operation}{location}: {detail}")
        self.__cause__ = error

    def caused_by(self, kind: type[BaseException]) -> bool:
        """Check whether any error in the cause chain is an instance of ``kind``."""
        current: BaseException | None = self.__cause__
        while current is not None:
            if isinstance(current, kind):
                return True
            current = current.__cause__
        return False


class WorkflowRunError(RepoFleetError):
    """Aggregate error returned when at least one step failed.

    Attributes:
        summary: The run summary holding every outcome
        failures: Failure messages in the order they were recorded
    """

    def __init__(self, summary: RunSummary, failures: list[str]) -> None:
        self.summary = summary
        self.failures = failures
        message = failures[0] if failures else "workflow failed"
        if len(failures) > 1:
            message = f"{message} (and {len(failures) - 1} more failures)"
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"failures": list(self.failures), "counts": self.summary.counts}
