"""Built-in workflow operations."""

from repo_fleet.engine.registry import OperationRegistry
from repo_fleet.engine.tasks import TasksApplyOptions
from repo_fleet.operations.audit import AuditOptions, audit_report
from repo_fleet.operations.branches import (
    BranchChangeOptions,
    DefaultBranchOptions,
    change_branch,
    migrate_default_branch,
)
from repo_fleet.operations.canonical import CanonicalRemoteOptions, update_remote_to_canonical
from repo_fleet.operations.protocol import RemoteProtocolOptions, update_remote_protocol
from repo_fleet.operations.release import ReleaseTagOptions, create_release_tag
from repo_fleet.operations.rename import FolderRenameOptions, rename_folder
from repo_fleet.operations.tasks import apply_tasks


def default_registry() -> OperationRegistry:
    """Registry holding every built-in operation."""
    registry = OperationRegistry()
    registry.register("tasks apply", apply_tasks, TasksApplyOptions, aliases=("repo tasks apply",))
    registry.register("folder rename", rename_folder, FolderRenameOptions, aliases=("repo folder rename",))
    registry.register(
        "remote update-protocol",
        update_remote_protocol,
        RemoteProtocolOptions,
        aliases=("repo remote update-protocol",),
    )
    registry.register(
        "remote update-to-canonical",
        update_remote_to_canonical,
        CanonicalRemoteOptions,
        aliases=("repo remote update-to-canonical",),
    )
    registry.register("branch change", change_branch, BranchChangeOptions, aliases=("branch cd",))
    registry.register(
        "branch default",
        migrate_default_branch,
        DefaultBranchOptions,
        aliases=("default", "branch-default"),
    )
    registry.register("release tag", create_release_tag, ReleaseTagOptions, aliases=("repo release tag",))
    registry.register("audit report", audit_report, AuditOptions, repository_scoped=False)
    return registry


__all__ = ["default_registry"]
