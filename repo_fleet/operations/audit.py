"""``audit report``: CSV inventory of every repository in the run."""

import csv
import io
from pathlib import Path

import aiofiles
import structlog
from pydantic import BaseModel, ConfigDict

from repo_fleet.engine.context import StepContext
from repo_fleet.engine.outcome import ExecutionOutcome
from repo_fleet.exceptions import GitOperationError
from repo_fleet.git.models import RepositoryContext
from repo_fleet.git.remote_url import parse_remote_url
from repo_fleet.git.status import filter_status_entries

log = structlog.get_logger(__name__)

CSV_HEADER = [
    "folder_name",
    "repository",
    "name_matches",
    "default_branch",
    "current_branch",
    "remote_protocol",
    "dirty",
]


class AuditOptions(BaseModel):
    """Options of the ``audit report`` operation."""

    model_config = ConfigDict(extra="forbid")

    output: Path | None = None


async def audit_row(context: StepContext, repository: RepositoryContext) -> list[str]:
    git = context.services.git
    try:
        current_branch = await git.current_branch(repository.path)
    except GitOperationError:
        current_branch = ""
    try:
        dirty = bool(filter_status_entries(await git.status(repository.path)))
    except GitOperationError:
        dirty = not repository.clean_at_start

    remote = parse_remote_url(repository.remote_url)
    if repository.name:
        name_matches = "yes" if repository.folder_name == repository.name else "no"
    else:
        name_matches = "n/a"

    return [
        repository.folder_name,
        repository.full_name or "",
        name_matches,
        repository.default_branch,
        current_branch,
        remote.protocol.value if remote else "",
        "yes" if dirty else "no",
    ]


def render_csv(rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    writer.writerows(rows)
    return buffer.getvalue()


async def audit_report(context: StepContext, options: AuditOptions) -> ExecutionOutcome:
    rows = [await audit_row(context, repository) for repository in context.state.repositories]
    report = render_csv(rows)

    if options.output is not None:
        output = options.output.expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(output, "w", encoding="utf-8") as f:
            await f.write(report)
        log.info("audit_report_written", path=str(output), repositories=len(rows))
        return ExecutionOutcome.applied(
            context.step.name, None, f"wrote {len(rows)} row(s) to {output}", details={"output": str(output)}
        )

    context.section.add("audit_report", csv=report, repositories=len(rows))
    return ExecutionOutcome.applied(context.step.name, None, f"reported {len(rows)} repositories")
