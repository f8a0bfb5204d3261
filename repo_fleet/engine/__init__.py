"""Workflow execution engine.

Key Components:
    - plan: Plan loading, variable substitution and normalization
    - scheduler: Dependency stages (Kahn's algorithm, declaration order)
    - runner: RunCoordinator, bounded-concurrency stage execution
    - executor: StepExecutor, safeguard gate and outcome translation
    - pipeline: TaskPipeline, the per-task action sequence
    - safeguards: Hard-stop / soft-skip condition evaluation
    - capture, ledger, confirmation: Run-scoped shared state
    - workflow: WorkflowEngine facade used by the CLI
"""

from repo_fleet.engine.outcome import ExecutionOutcome, RunSummary
from repo_fleet.engine.plan import Step, WorkflowPlan, load_plan, normalize_plan
from repo_fleet.engine.scheduler import Stage, plan_stages
from repo_fleet.engine.workflow import WorkflowEngine, build_services

__all__ = [
    "ExecutionOutcome",
    "RunSummary",
    "Step",
    "WorkflowPlan",
    "load_plan",
    "normalize_plan",
    "Stage",
    "plan_stages",
    "WorkflowEngine",
    "build_services",
]
