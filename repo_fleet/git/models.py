"""Repository data models.

Example:
    >>> from repo_fleet.git.models import RepositoryContext
    >>> context = RepositoryContext(path=Path("/src/api"), owner="acme", name="api")
    >>> context.label
    'acme/api'
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RepositoryContext(BaseModel):
    """One discovered repository.

    Created once at discovery time and read by every step. The engine never
    mutates it; a rename produces a copy pointing at the new path.

    Attributes:
        path: Absolute path of the working tree
        owner: Repository owner/organization, when the origin URL resolves
        name: Repository name, when the origin URL resolves
        default_branch: Remote default branch (falls back to the local branch)
        remote_url: Origin URL as configured
        clean_at_start: Whether the worktree was clean when the run started
        fields: Free-form values exposed to templates
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    owner: str | None = None
    name: str | None = None
    default_branch: str = "main"
    remote_url: str | None = None
    clean_at_start: bool = True
    fields: dict[str, str] = Field(default_factory=dict)

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: Path) -> Path:
        return value.expanduser().absolute()

    @property
    def full_name(self) -> str | None:
        """owner/name when both are known."""
        if self.owner and self.name:
            return f"{self.owner}/{self.name}"
        return None

    @property
    def label(self) -> str:
        """Display label: owner/name when known, otherwise the path."""
        return self.full_name or str(self.path)

    @property
    def folder_name(self) -> str:
        return self.path.name

    def relocated(self, path: Path) -> "RepositoryContext":
        """Copy of this context pointing at a new working tree path."""
        return self.model_copy(update={"path": path.expanduser().absolute()})

    def template_fields(self) -> dict[str, Any]:
        """Values exposed to templates as ``repository``."""
        return {
            "path": str(self.path),
            "folder": self.folder_name,
            "owner": self.owner or "",
            "name": self.name or self.folder_name,
            "full_name": self.full_name or "",
            "label": self.label,
            "default_branch": self.default_branch,
            "remote_url": self.remote_url or "",
            "fields": dict(self.fields),
        }
