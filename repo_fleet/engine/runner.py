"""Concurrent run coordinator.

Runs the scheduler's stages in order. Within a stage:

- global steps (``repository_scoped=False``) run once, before the
  repository fan-out
- every repository gets one asyncio task that runs the stage's
  repository-scoped steps one after another, in declaration order
- an ``asyncio.Semaphore`` of size ``workers`` bounds how many repositories
  are in flight at once
- the stage ends only when every repository has an outcome for every step
  (``asyncio.gather`` is the barrier)

Before each step the coordinator checks the repository skip marker set by an
earlier hard-stop; a halted repository gets a skipped outcome without the
executor being called. ``cancel()`` stops new dispatches: steps already
running finish and report, everything after them is recorded as skipped.
Nothing is rolled back.

Example:
    >>> coordinator = RunCoordinator(executor, StructlogEventSink(), workers=4)
    >>> summary = await coordinator.run(plan_stages(plan), state)
    >>> summary.format_counts()
    'applied=4, skipped=2, failed=0'
"""

import asyncio
from dataclasses import replace

import structlog

from repo_fleet.engine.context import RunState
from repo_fleet.engine.events import EventSink, OutputSection, WorkflowEvent
from repo_fleet.engine.executor import StepExecutor
from repo_fleet.engine.outcome import ExecutionOutcome, RunSummary
from repo_fleet.engine.plan import Step
from repo_fleet.engine.scheduler import Stage

log = structlog.get_logger(__name__)

CANCELLED_REASON = "run cancelled"


class RunCoordinator:
    """Drives stages across repositories with bounded concurrency.

    Args:
        executor: Step executor
        sink: Destination of the workflow event stream
        workers: Maximum repositories with a step in flight (>= 1)
    """

    def __init__(self, executor: StepExecutor, sink: EventSink, workers: int = 1) -> None:
        self.executor = executor
        self.sink = sink
        self.workers = max(1, workers)
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        """Stop dispatching new steps."""
        if not self._cancelled.is_set():
            log.warning("run_cancellation_requested")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self, stages: list[Stage], state: RunState) -> RunSummary:
        """Execute every stage and return the run summary."""
        summary = RunSummary()
        keys = state.keys
        workers = min(self.workers, max(1, len(keys)))

        log.info("run_started", stages=len(stages), repositories=len(keys), workers=workers)

        for stage in stages:
            global_steps = [step for step in stage.steps if not self.executor.is_repository_scoped(step)]
            repository_steps = [step for step in stage.steps if self.executor.is_repository_scoped(step)]
            log.info("stage_started", stage=stage.index, steps=stage.names)

            for step in global_steps:
                await self._run_step(step, None, state, summary)

            if repository_steps and keys:
                semaphore = asyncio.Semaphore(workers)
                tasks = [
                    asyncio.create_task(self._run_repository(semaphore, key, repository_steps, state, summary))
                    for key in keys
                ]
                await asyncio.gather(*tasks)

            log.info("stage_completed", stage=stage.index)

        summary.finish()
        self.sink.emit([WorkflowEvent("run_summary", summary.to_event())])
        log.info("run_completed", cancelled=self.cancelled, **summary.counts)
        return summary

    async def _run_repository(
        self,
        semaphore: asyncio.Semaphore,
        key: str,
        steps: list[Step],
        state: RunState,
        summary: RunSummary,
    ) -> None:
        async with semaphore:
            for step in steps:
                await self._run_step(step, key, state, summary)

    async def _run_step(self, step: Step, key: str | None, state: RunState, summary: RunSummary) -> None:
        label = state.repository(key).label if key is not None else None
        section = OutputSection(self.sink, label, step.name, path=key)

        outcome = await self._dispatch(step, key, label, state, section)
        if key is not None and outcome.repository_key is None:
            outcome = replace(outcome, repository_key=key)
        if outcome.halt_repository and key is not None:
            state.halt(key, outcome.reason)

        summary.record(outcome)
        fields = outcome.to_event()
        for bound in ("repository", "step", "repository_path"):
            fields.pop(bound, None)
        section.add("step_outcome", level="warning" if outcome.is_failed else "info", **fields)
        section.flush()

    async def _dispatch(
        self,
        step: Step,
        key: str | None,
        label: str | None,
        state: RunState,
        section: OutputSection,
    ) -> ExecutionOutcome:
        if self.cancelled:
            return ExecutionOutcome.skipped(step.name, label, CANCELLED_REASON, code="cancelled")

        if key is not None:
            halted = state.halted_reason(key)
            if halted is not None:
                return ExecutionOutcome.skipped(step.name, label, halted, code="repository_skipped")

        with structlog.contextvars.bound_contextvars(repository=label, repository_path=key, step=step.name):
            return await self.executor.execute(step, key, state, section)
