"""``release tag``: create an annotated tag at HEAD and push it."""

import structlog
from pydantic import BaseModel, ConfigDict, field_validator

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.exceptions import RepoFleetError

log = structlog.get_logger(__name__)

DEFAULT_RELEASE_MESSAGE = "Release {{ tag }}"


class ReleaseTagOptions(BaseModel):
    """Options of the ``release tag`` operation.

    ``tag`` and ``message`` are templates; the message also sees the
    rendered tag as ``tag``.
    """

    model_config = ConfigDict(extra="forbid")

    tag: str
    message: str = DEFAULT_RELEASE_MESSAGE
    remote: str = "origin"
    push: bool = True

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tag must not be empty")
        return value


async def create_release_tag(context: StepContext, options: ReleaseTagOptions) -> ExecutionOutcome:
    step, label = context.step.name, context.label
    repository, key = context.repository, context.repository_key
    if repository is None or key is None:
        raise RepoFleetError("release tag requires a repository")

    git = context.services.git
    renderer = context.services.renderer
    path = repository.path
    tag = renderer.render(options.tag, context.state.template_context(key)).strip()
    if not tag or any(char.isspace() for char in tag):
        raise RepoFleetError(f"invalid tag name {tag!r}")

    if await git.tag_exists(path, tag):
        return ExecutionOutcome.skipped(step, label, f"tag {tag} already exists", code="tag_exists")

    message = renderer.render(options.message, context.state.template_context(key, tag=tag)).strip() or tag
    await git.create_tag(path, tag, message)

    pushed = False
    if options.push:
        if await git.remote_url(path, options.remote) is None:
            context.section.warning("push_remote_missing", remote=options.remote)
        else:
            await git.push_ref(path, options.remote, tag)
            pushed = True

    log.info("release_tagged", tag=tag, pushed=pushed)
    reason = f"tagged {tag}" + (f" and pushed to {options.remote}" if pushed else "")
    return ExecutionOutcome.applied(step, label, reason, details={"tag": tag, "message": message, "pushed": pushed})
