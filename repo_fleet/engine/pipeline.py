"""Task action pipeline.

Runs one TaskDefinition against one repository as a fixed sequence of
actions, restricted by the task's ``steps`` allow-list:

    branch-prepare → files-apply → git-stage → git-commit → git-push
    → pull-request-create

Before the first action the task's safeguards are checked: a hard-stop
violation yields the repository skip sentinel and no action runs; a
soft-skip violation skips the task. Each action then applies its own soft
conditions (nothing to commit, no push remote, push skipped) and reports an
ActionOutcome. A failed action ends the pipeline for this task; nothing
already done is undone.

A ``capture`` block runs before the first action, a ``restore`` block after
the last one.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.files import apply_file_edit
from repo_fleet.engine.safeguards import (
    RepositoryObservation,
    SafeguardConditions,
    check_safeguards,
    evaluate_conditions,
)
from repo_fleet.engine.tasks import BranchBlock, CaptureBlock, RestoreBlock, TaskDefinition
from repo_fleet.enums import CaptureKind, OutcomeStatus, PipelineAction, SafeguardClass
from repo_fleet.exceptions import RepoFleetError, StepExecutionError

log = structlog.get_logger(__name__)

SAFEGUARDS_ACTION = "safeguards"
CAPTURE_ACTION = "capture"
RESTORE_ACTION = "restore"


@dataclass(frozen=True)
class ActionOutcome:
    """Outcome of one pipeline action."""

    action: str
    status: OutcomeStatus
    reason: str = ""
    halt_repository: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "status": self.status.value, "reason": self.reason}


def _applied(action: PipelineAction | str, reason: str) -> ActionOutcome:
    return ActionOutcome(str(action), OutcomeStatus.APPLIED, reason)


def _skipped(action: PipelineAction | str, reason: str) -> ActionOutcome:
    return ActionOutcome(str(action), OutcomeStatus.SKIPPED, reason)


@dataclass
class TaskResult:
    """Every action outcome of one task run."""

    task: str
    actions: list[ActionOutcome] = field(default_factory=list)
    error: StepExecutionError | None = None

    @property
    def halted(self) -> bool:
        return any(action.halt_repository for action in self.actions)

    @property
    def failed(self) -> bool:
        return any(action.status == OutcomeStatus.FAILED for action in self.actions)

    @property
    def applied(self) -> bool:
        return any(action.status == OutcomeStatus.APPLIED for action in self.actions)

    @property
    def reason(self) -> str:
        """Reason of the deciding action: failure, then halt, then first skip."""
        for predicate in (
            lambda a: a.status == OutcomeStatus.FAILED,
            lambda a: a.halt_repository,
            lambda a: a.status == OutcomeStatus.SKIPPED,
        ):
            for action in self.actions:
                if predicate(action):
                    return action.reason
        return ""


@dataclass
class PipelineProgress:
    """Facts later actions need from earlier ones; None means not attempted."""

    branch: str | None = None
    staged: list[str] | None = None
    committed: bool | None = None
    pushed: bool | None = None


class TaskPipeline:
    """Executes task definitions against the repository of a step context."""

    def __init__(self, context: StepContext) -> None:
        if context.repository_key is None:
            raise ValueError("task pipeline requires a repository-scoped step")
        self.context = context
        self.key = context.repository_key
        self.git = context.services.git
        self.renderer = context.services.renderer
        self._actions = {
            PipelineAction.BRANCH_PREPARE: self._prepare_branch,
            PipelineAction.FILES_APPLY: self._apply_files,
            PipelineAction.GIT_STAGE: self._stage,
            PipelineAction.GIT_COMMIT: self._commit,
            PipelineAction.GIT_PUSH: self._push,
            PipelineAction.PULL_REQUEST_CREATE: self._open_pull_request,
        }

    @property
    def path(self) -> Path:
        return self.context.state.repository(self.key).path

    def _render(self, template: str, task: TaskDefinition) -> str:
        context = self.context.state.template_context(self.key, task={"name": task.name})
        return self.renderer.render(template, context)

    def _remote(self, task: TaskDefinition) -> str:
        return task.push.remote or self.context.services.push_remote

    async def run(self, task: TaskDefinition) -> TaskResult:
        result = TaskResult(task.name)

        verdict = await check_safeguards(self.git, self.path, task.safeguards)
        if verdict is not None:
            halt = verdict.classification == SafeguardClass.HARD_STOP
            self._record(task, result, ActionOutcome(SAFEGUARDS_ACTION, OutcomeStatus.SKIPPED, verdict.reason, halt))
            return result

        if task.capture is not None:
            if not await self._guarded(task, result, CAPTURE_ACTION, self._capture, task.capture):
                return result

        progress = PipelineProgress()
        for action in task.selected_actions():
            handler = self._actions[action]
            if not await self._guarded(task, result, str(action), handler, task, progress):
                return result

        if task.restore is not None:
            await self._guarded(task, result, RESTORE_ACTION, self._restore, task.restore)
        return result

    async def _guarded(self, task: TaskDefinition, result: TaskResult, name: str, handler: Any, *args: Any) -> bool:
        """Run one action; returns False when the pipeline must stop."""
        try:
            outcome = await handler(*args)
        except (RepoFleetError, OSError) as e:
            error = StepExecutionError(name, str(self.path), e)
            result.error = error
            outcome = ActionOutcome(name, OutcomeStatus.FAILED, error.message)
        self._record(task, result, outcome)
        return outcome.status != OutcomeStatus.FAILED and not outcome.halt_repository

    def _record(self, task: TaskDefinition, result: TaskResult, outcome: ActionOutcome) -> None:
        result.actions.append(outcome)
        level = "warning" if outcome.status == OutcomeStatus.FAILED else "info"
        self.context.section.add("action_outcome", level=level, task=task.name, **outcome.to_dict())

    async def _capture(self, block: CaptureBlock) -> ActionOutcome:
        if block.value == CaptureKind.BRANCH:
            value = await self.git.current_branch(self.path)
        else:
            value = await self.git.head_commit(self.path)
        captures = self.context.state.captures
        captured = await captures.record(self.key, block.variable, block.value, value, block.overwrite)
        if captured.value != value:
            return _skipped(CAPTURE_ACTION, f"{block.variable} already captured ({captured.value})")
        return _applied(CAPTURE_ACTION, f"captured {block.value.value} {value} as {block.variable}")

    async def _restore(self, block: RestoreBlock) -> ActionOutcome:
        captured = await self.context.state.captures.require(self.key, block.variable)
        await self.git.checkout(self.path, captured.value)
        return _applied(RESTORE_ACTION, f"restored {captured.kind.value} {captured.value}")

    async def _prepare_branch(self, task: TaskDefinition, progress: PipelineProgress) -> ActionOutcome:
        action = PipelineAction.BRANCH_PREPARE
        block = task.branch or BranchBlock()
        repository = self.context.state.repository(self.key)

        branch = self._render(block.name or task.default_branch_name, task).strip()
        start_point = self._render(block.start_point, task).strip() if block.start_point else ""
        start_point = start_point or repository.default_branch
        if not branch:
            raise RepoFleetError(f"branch name for task {task.name!r} rendered empty")

        if await self.git.current_branch(self.path) == branch:
            progress.branch = branch
            return _skipped(action, f"already on branch {branch}")

        if await self.git.branch_exists(self.path, branch):
            await self.git.checkout(self.path, branch)
            progress.branch = branch
            return _applied(action, f"checked out branch {branch}")

        if not block.create_if_missing:
            return _skipped(action, f"branch {branch} does not exist")

        await self.git.checkout_new(self.path, branch, start_point)
        progress.branch = branch

        remote = self._remote(task)
        if await self.git.remote_branch_exists(self.path, remote, branch):
            await self.git.set_upstream(self.path, remote, branch)
        else:
            self.context.section.add("upstream_skipped", level="debug", branch=branch, remote=remote)
        return _applied(action, f"created branch {branch} from {start_point}")

    async def _apply_files(self, task: TaskDefinition, progress: PipelineProgress) -> ActionOutcome:
        action = PipelineAction.FILES_APPLY
        if not task.files:
            return _skipped(action, "no file edits configured")

        changed: list[str] = []
        for edit in task.files:
            content = self._render(edit.content, task)
            changed.extend(await apply_file_edit(self.path, edit, content))

        if not changed:
            return _skipped(action, "files already up to date")
        self.context.state.ledger.record(self.key, changed)
        return _applied(action, f"updated {', '.join(changed)}")

    def _task_paths(self, task: TaskDefinition) -> list[str]:
        """Paths the task owns: ledger entries plus existing ``stage_paths``."""
        extra = [path for path in task.stage_paths if (self.path / path).exists()]
        return list(dict.fromkeys(self.context.state.ledger.paths(self.key) + extra))

    async def _stage(self, task: TaskDefinition, progress: PipelineProgress) -> ActionOutcome:
        action = PipelineAction.GIT_STAGE
        touched = self.context.state.ledger.has_changes(self.key)
        paths = self._task_paths(task) if touched or task.stage_paths else []
        progress.staged = paths
        if not paths:
            return _skipped(action, "no changes to stage")
        await self.git.add(self.path, paths)
        return _applied(action, f"staged {len(paths)} path(s)")

    async def _commit(self, task: TaskDefinition, progress: PipelineProgress) -> ActionOutcome:
        # Only the task's own paths are committed; unrelated staged entries stay staged.
        action = PipelineAction.GIT_COMMIT
        scope = progress.staged if progress.staged is not None else self._task_paths(task)
        staged = await self.git.staged_paths(self.path, scope) if scope else []
        if task.commit.require_changes:
            observation = RepositoryObservation(staged_paths=tuple(staged))
            conditions = SafeguardConditions(require_changes=True)
            for verdict in evaluate_conditions(conditions, SafeguardClass.SOFT_SKIP, observation):
                if not verdict.satisfied:
                    progress.committed = False
                    return _skipped(action, verdict.reason)
        if not scope:
            progress.committed = False
            return _skipped(action, "no task paths to commit")

        message = self._render(task.commit.message or task.default_commit_message, task)
        await self.git.commit(self.path, message, scope)
        progress.committed = True
        return _applied(action, f"committed {len(staged)} path(s)")

    async def _push(self, task: TaskDefinition, progress: PipelineProgress) -> ActionOutcome:
        action = PipelineAction.GIT_PUSH
        if progress.committed is False:
            progress.pushed = False
            return _skipped(action, "no changes to push")

        remote = self._remote(task)
        if await self.git.remote_url(self.path, remote) is None:
            progress.pushed = False
            self.context.section.warning("push_remote_missing", remote=remote)
            return _skipped(action, f"push remote {remote} not configured")

        branch = progress.branch or await self.git.current_branch(self.path)
        await self.git.push(self.path, remote, branch)
        progress.branch = branch
        progress.pushed = True
        return _applied(action, f"pushed {branch} to {remote}")

    async def _open_pull_request(self, task: TaskDefinition, progress: PipelineProgress) -> ActionOutcome:
        action = PipelineAction.PULL_REQUEST_CREATE
        request = task.pull_request
        if request is None:
            return _skipped(action, "pull request not configured")
        if progress.pushed is False:
            return _skipped(action, "push skipped")

        repository = self.context.state.repository(self.key)
        head = progress.branch or await self.git.current_branch(self.path)
        base = self._render(request.base, task).strip() if request.base else repository.default_branch
        if head == base:
            return _skipped(action, f"branch {head} is the pull request base")

        url = await self.context.services.platform.create_pull_request(
            self.path,
            title=self._render(request.title, task).strip(),
            body=self._render(request.body, task),
            base=base,
            head=head,
            draft=request.draft,
        )
        return _applied(action, f"opened pull request {url}".strip())
