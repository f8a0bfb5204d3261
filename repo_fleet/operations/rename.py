"""``folder rename``: align repository directory names with their remotes."""

import asyncio
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.exceptions import RepoFleetError

log = structlog.get_logger(__name__)


class FolderRenameOptions(BaseModel):
    """Options of the ``folder rename`` operation."""

    model_config = ConfigDict(extra="forbid")

    include_owner: bool = False


def target_path(path: Path, owner: str | None, name: str, include_owner: bool) -> Path:
    """Directory a repository should live in, next to its current location.

    With ``include_owner`` the layout is ``<root>/<owner>/<name>``. A
    repository already inside a directory named after its owner keeps that
    directory instead of gaining a second owner level.
    """
    if include_owner and owner:
        parent = path.parent.parent if path.parent.name == owner else path.parent
        return parent / owner / name
    return path.parent / name


def _is_case_only_rename(source: Path, target: Path) -> bool:
    return source != target and str(source).lower() == str(target).lower()


async def rename_folder(context: StepContext, options: FolderRenameOptions) -> ExecutionOutcome:
    step, label = context.step.name, context.label
    repository = context.repository
    key = context.repository_key
    if repository is None or key is None:
        raise RepoFleetError("folder rename requires a repository")

    if not repository.name:
        return ExecutionOutcome.skipped(step, label, "repository name unknown", code="name_unknown")

    source = repository.path
    target = target_path(source, repository.owner, repository.name, options.include_owner)
    if source == target:
        return ExecutionOutcome.skipped(step, label, f"already named {target.name}", code="already_normalized")

    if target.exists() and not _is_case_only_rename(source, target):
        raise RepoFleetError(f"target exists: {target}")

    confirmation = await context.state.session.confirm(f"Rename {source} to {target}?")
    if not confirmation.confirmed:
        return ExecutionOutcome.skipped(step, label, "rename declined", code="declined")

    await asyncio.to_thread(_move, source, target)
    context.state.relocate(key, target)
    context.section.add("folder_renamed", old_path=str(source), new_path=str(target))
    log.info("folder_renamed", old_path=str(source), new_path=str(target))
    return ExecutionOutcome.applied(
        step,
        label,
        f"renamed {source.name} to {target.relative_to(source.parent)}",
        details={"old_path": str(source), "new_path": str(target)},
    )


def _move(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if _is_case_only_rename(source, target):
        # Case-insensitive filesystems need an intermediate name
        intermediate = source.with_name(f"{source.name}.rename-tmp")
        source.rename(intermediate)
        intermediate.rename(target)
        return
    source.rename(target)
