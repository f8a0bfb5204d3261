"""``tasks apply``: run task definitions through the action pipeline."""

from dataclasses import replace

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.engine.pipeline import TaskPipeline, TaskResult
from repo_fleet.engine.tasks import TasksApplyOptions


def summarize_tasks(context: StepContext, results: list[TaskResult]) -> ExecutionOutcome:
    """Fold task results into one step outcome.

    A halted task makes the outcome the repository skip sentinel. Otherwise
    any failed action fails the step, any applied action applies it, and a
    step where everything skipped reports the first skip reason.
    """
    step, label = context.step.name, context.label
    details = {"tasks": [{"task": r.task, "actions": [a.to_dict() for a in r.actions]} for r in results]}

    for result in results:
        if result.halted:
            return replace(ExecutionOutcome.repository_skip(step, label, result.reason), details=details)
    for result in results:
        if result.failed:
            error = result.error if result.error is not None else RuntimeError(result.reason)
            return ExecutionOutcome.failed(step, label, error, details=details)
    if any(result.applied for result in results):
        applied = [result.task for result in results if result.applied]
        return ExecutionOutcome.applied(step, label, f"applied {', '.join(applied)}", details=details)

    reason = next((result.reason for result in results if result.reason), "nothing to apply")
    return ExecutionOutcome.skipped(step, label, reason, details=details)


async def apply_tasks(context: StepContext, options: TasksApplyOptions) -> ExecutionOutcome:
    """Run each task in order; a hard stop ends the step immediately."""
    pipeline = TaskPipeline(context)
    results = []
    for task in options.tasks:
        result = await pipeline.run(task)
        results.append(result)
        if result.halted:
            break
    return summarize_tasks(context, results)
