"""Branch operations: ``branch change`` and ``branch default``.

``branch change`` switches every repository to one branch: an existing local
branch is checked out, a branch that only exists on the remote is checked
out tracking it, and a missing branch is created only when asked. It can
capture the branch it leaves and restore a captured one, so a workflow can
return repositories to where they started.

``branch default`` moves a repository's default branch (``main`` to
``master`` by default): the target branch is created from the source when
missing, pushed, and made the platform default.
"""

import structlog
from pydantic import BaseModel, ConfigDict, model_validator

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.engine.tasks import CaptureBlock, RestoreBlock
from repo_fleet.enums import CaptureKind
from repo_fleet.exceptions import RepoFleetError

log = structlog.get_logger(__name__)

DEFAULT_MIGRATION_TARGET = "master"


class BranchChangeOptions(BaseModel):
    """Options of the ``branch change`` operation.

    ``branch`` is a template; it defaults to the repository's default
    branch. ``restore`` switches to a captured value instead.
    """

    model_config = ConfigDict(extra="forbid")

    branch: str | None = None
    remote: str = "origin"
    create_if_missing: bool = False
    capture: CaptureBlock | None = None
    restore: RestoreBlock | None = None

    @model_validator(mode="after")
    def validate_target(self) -> "BranchChangeOptions":
        if self.branch and self.restore is not None:
            raise ValueError("'branch' and 'restore' are mutually exclusive")
        return self


class DefaultBranchOptions(BaseModel):
    """Options of the ``branch default`` operation."""

    model_config = ConfigDict(extra="forbid")

    target: str = DEFAULT_MIGRATION_TARGET
    source: str | None = None
    remote: str = "origin"
    push: bool = True


async def change_branch(context: StepContext, options: BranchChangeOptions) -> ExecutionOutcome:
    step, label = context.step.name, context.label
    repository, key = context.repository, context.repository_key
    if repository is None or key is None:
        raise RepoFleetError("branch change requires a repository")

    git = context.services.git
    path = repository.path
    current = await git.current_branch(path)

    if options.restore is not None:
        captured = await context.state.captures.require(key, options.restore.variable)
        target = captured.value
    else:
        template = options.branch or repository.default_branch
        target = context.services.renderer.render(template, context.state.template_context(key)).strip()
    if not target:
        raise RepoFleetError("branch name rendered empty")

    if options.capture is not None:
        if options.capture.value == CaptureKind.BRANCH:
            value = current
        else:
            value = await git.head_commit(path)
        block = options.capture
        await context.state.captures.record(key, block.variable, block.value, value, block.overwrite)

    if current == target:
        return ExecutionOutcome.skipped(step, label, f"already on branch {target}", code="already_on_branch")

    if options.restore is not None or await git.branch_exists(path, target):
        await git.checkout(path, target)
        reason = f"checked out {target}"
    elif await git.remote_branch_exists(path, options.remote, target):
        await git.checkout_tracking(path, options.remote, target)
        reason = f"checked out {target} tracking {options.remote}/{target}"
    elif options.create_if_missing:
        await git.checkout_new(path, target)
        reason = f"created branch {target}"
    else:
        return ExecutionOutcome.skipped(
            step, label, f"branch {target} not found locally or on {options.remote}", code="branch_missing"
        )

    context.section.add("branch_changed", old_branch=current, new_branch=target)
    return ExecutionOutcome.applied(step, label, reason, details={"old_branch": current, "new_branch": target})


async def migrate_default_branch(context: StepContext, options: DefaultBranchOptions) -> ExecutionOutcome:
    step, label = context.step.name, context.label
    repository, key = context.repository, context.repository_key
    if repository is None or key is None:
        raise RepoFleetError("branch default requires a repository")

    git = context.services.git
    path = repository.path
    target = options.target.strip()
    source = (options.source or repository.default_branch).strip()
    if target.lower() == repository.default_branch.lower():
        return ExecutionOutcome.skipped(step, label, f"already defaults to {target}", code="already_default")

    confirmation = await context.state.session.confirm(f"Move default branch of {label} from {source} to {target}?")
    if not confirmation.confirmed:
        return ExecutionOutcome.skipped(step, label, "default branch change declined", code="declined")

    remote_available = await git.remote_url(path, options.remote) is not None
    if not await git.branch_exists(path, target):
        start_point = source
        if remote_available and await git.remote_branch_exists(path, options.remote, source):
            start_point = f"{options.remote}/{source}"
        await git.create_branch(path, target, start_point)
    await git.checkout(path, target)

    pushed = platform_updated = False
    if remote_available and options.push:
        await git.push(path, options.remote, target)
        pushed = True
        if repository.full_name:
            await context.services.platform.set_default_branch(path, repository.full_name, target)
            platform_updated = True
    elif not remote_available:
        context.section.warning("push_remote_missing", remote=options.remote)

    context.state.update(key, default_branch=target)
    log.info("default_branch_migrated", source=source, target=target, pushed=pushed)
    details = {"source": source, "target": target, "pushed": pushed, "platform_updated": platform_updated}
    return ExecutionOutcome.applied(step, label, f"default branch {source} -> {target}", details=details)
