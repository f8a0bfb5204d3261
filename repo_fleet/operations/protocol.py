"""``remote update-protocol``: switch remotes between HTTPS and SSH."""

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.enums import RemoteProtocol
from repo_fleet.exceptions import RepoFleetError
from repo_fleet.git.remote_url import RemoteUrl

log = structlog.get_logger(__name__)


class RemoteProtocolOptions(BaseModel):
    """Options of the ``remote update-protocol`` operation."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: RemoteProtocol = Field(alias="from")
    target: RemoteProtocol = Field(alias="to")
    remote: str = "origin"

    @model_validator(mode="after")
    def validate_protocols(self) -> "RemoteProtocolOptions":
        if self.source == self.target:
            raise ValueError(f"'from' and 'to' are both {self.source}")
        return self


async def update_remote_protocol(context: StepContext, options: RemoteProtocolOptions) -> ExecutionOutcome:
    step, label = context.step.name, context.label
    if context.repository is None:
        raise RepoFleetError("remote update-protocol requires a repository")

    git = context.services.git
    path = context.repository.path
    current = await git.remote_url(path, options.remote)
    if current is None:
        return ExecutionOutcome.skipped(step, label, f"remote {options.remote} not configured", code="remote_missing")

    remote = RemoteUrl.parse(current)
    if remote.protocol != options.source:
        return ExecutionOutcome.skipped(
            step, label, f"remote {options.remote} uses {remote.protocol}", code="protocol_mismatch"
        )

    updated = remote.to_protocol(options.target)
    confirmation = await context.state.session.confirm(f"Update {options.remote} of {label} to {updated}?")
    if not confirmation.confirmed:
        return ExecutionOutcome.skipped(step, label, "protocol update declined", code="declined")

    await git.set_remote_url(path, options.remote, updated)
    log.info("remote_protocol_updated", remote=options.remote, old_url=current, new_url=updated)
    return ExecutionOutcome.applied(
        step,
        label,
        f"updated {options.remote} to {updated}",
        details={"old_url": current, "new_url": updated},
    )
