"""``remote update-to-canonical``: follow repository transfers and renames.

The hosting platform keeps redirects for transferred or renamed
repositories, so stale remotes keep working until the redirect disappears.
This operation asks the platform for the canonical ``owner/name`` and
points the remote at it, keeping the URL's protocol and host.
"""

import structlog
from pydantic import BaseModel, ConfigDict

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.exceptions import RepoFleetError
from repo_fleet.git.remote_url import parse_remote_url

log = structlog.get_logger(__name__)


class CanonicalRemoteOptions(BaseModel):
    """Options of the ``remote update-to-canonical`` operation.

    ``owner`` restricts updates to repositories whose canonical owner
    matches it (case-insensitive).
    """

    model_config = ConfigDict(extra="forbid")

    remote: str = "origin"
    owner: str | None = None


async def update_remote_to_canonical(context: StepContext, options: CanonicalRemoteOptions) -> ExecutionOutcome:
    step, label = context.step.name, context.label
    repository, key = context.repository, context.repository_key
    if repository is None or key is None:
        raise RepoFleetError("remote update-to-canonical requires a repository")

    git = context.services.git
    path = repository.path
    current = await git.remote_url(path, options.remote)
    if current is None:
        return ExecutionOutcome.skipped(step, label, f"remote {options.remote} not configured", code="remote_missing")
    remote = parse_remote_url(current)
    if remote is None:
        return ExecutionOutcome.skipped(
            step, label, f"remote {options.remote} is not a recognized URL", code="remote_unrecognized"
        )

    canonical = await context.services.platform.repository_name(path, remote.full_name)
    owner, _, name = canonical.rpartition("/")
    if options.owner and owner.lower() != options.owner.lower():
        return ExecutionOutcome.skipped(step, label, f"canonical owner is {owner}", code="owner_mismatch")
    if canonical == remote.full_name:
        return ExecutionOutcome.skipped(step, label, f"already canonical ({canonical})", code="already_canonical")

    updated = remote.with_full_name(canonical)
    confirmation = await context.state.session.confirm(f"Update {options.remote} of {label} to {updated}?")
    if not confirmation.confirmed:
        return ExecutionOutcome.skipped(step, label, "canonical update declined", code="declined")

    await git.set_remote_url(path, options.remote, updated)
    fields = {"owner": owner, "name": name}
    if repository.remote_url == current:
        fields["remote_url"] = updated
    context.state.update(key, **fields)
    log.info("remote_canonicalized", remote=options.remote, old_url=current, new_url=updated)
    return ExecutionOutcome.applied(
        step,
        label,
        f"updated {options.remote} to {updated}",
        details={"old_url": current, "new_url": updated, "canonical": canonical},
    )
