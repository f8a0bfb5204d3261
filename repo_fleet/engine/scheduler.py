"""DAG stage scheduler.

Turns a normalized WorkflowPlan into ordered stages with Kahn's algorithm:
each round removes every step whose dependencies were all removed in
earlier rounds, and that round becomes one stage. Stage membership keeps
declaration order so logs are reproducible.

Because normalization gives a step without ``after`` an edge to the step
declared before it, a plan with no explicit edges runs one step per stage.

Example:
    >>> stages = plan_stages(plan)
    >>> [[step.name for step in stage.steps] for stage in stages]
    [['rename'], ['gitignore', 'license'], ['push']]
"""

from dataclasses import dataclass

import structlog

from repo_fleet.engine.plan import Step, WorkflowPlan
from repo_fleet.exceptions import CyclicDependencyError, UnknownStepReferenceError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Stage:
    """Steps whose dependencies are all satisfied by earlier stages."""

    index: int
    steps: tuple[Step, ...]

    @property
    def names(self) -> list[str]:
        return [step.name for step in self.steps]


def validate_references(plan: WorkflowPlan) -> None:
    """Raise UnknownStepReferenceError for the first dependency not in the plan."""
    names = set(plan.names)
    for step in plan.steps:
        for reference in step.after:
            if reference not in names:
                raise UnknownStepReferenceError(step.name, reference)


def plan_stages(plan: WorkflowPlan) -> list[Stage]:
    """Partition the plan into ordered stages.

    Raises:
        UnknownStepReferenceError: A dependency names a step not in the plan
        CyclicDependencyError: The dependency graph has a cycle; no stages
            are returned
    """
    validate_references(plan)

    indegree = {step.name: len(step.after) for step in plan.steps}
    dependents: dict[str, list[str]] = {step.name: [] for step in plan.steps}
    for step in plan.steps:
        for reference in step.after:
            dependents[reference].append(step.name)

    order = {step.name: position for position, step in enumerate(plan.steps)}
    by_name = {step.name: step for step in plan.steps}

    stages: list[Stage] = []
    ready = [name for name in order if indegree[name] == 0]
    processed = 0

    while ready:
        ready.sort(key=order.__getitem__)
        stages.append(Stage(index=len(stages), steps=tuple(by_name[name] for name in ready)))
        processed += len(ready)

        next_ready = []
        for name in ready:
            for dependent in dependents[name]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    next_ready.append(dependent)
        ready = next_ready

    if processed != len(plan.steps):
        remaining = [name for name in order if indegree[name] > 0]
        raise CyclicDependencyError(remaining)

    log.debug("stages_planned", stages=[stage.names for stage in stages])
    return stages
