"""Task definitions for the ``tasks apply`` operation.

Example:
    tasks:
      - name: Ignore env files
        branch:
          name: "automation/ignore-env"
        files:
          - path: .gitignore
            mode: append-if-missing
            content: |
              .env
        commit:
          message: "Ignore local env files"
        pull_request:
          title: "Ignore env files"
        safeguards:
          hard_stop: {require_clean: true}
        capture: {variable: original_branch, value: branch}
        steps: [branch-prepare, files-apply, git-stage, git-commit]

All string fields except names are Jinja2 templates rendered per repository.
"""

from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from repo_fleet.engine.safeguards import SafeguardSpec
from repo_fleet.enums import CaptureKind, FileMode, PipelineAction
from repo_fleet.rendering.engine import slugify

DEFAULT_PERMISSIONS = 0o644
DEFAULT_BRANCH_PREFIX = "automation"


class BranchBlock(BaseModel):
    """Branch the task works on."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    start_point: str | None = None
    create_if_missing: bool = True


class FileEdit(BaseModel):
    """One file edit.

    ``path`` names a single file. For ``replace`` mode, ``paths`` holds glob
    patterns (``**`` recursive) and ``find`` is required.
    """

    model_config = ConfigDict(extra="forbid")

    path: str | None = None
    paths: list[str] = Field(default_factory=list)
    content: str = ""
    mode: FileMode = FileMode.OVERWRITE
    permissions: int = DEFAULT_PERMISSIONS
    find: str | None = None
    replace: str = ""

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, value: Any) -> Any:
        return FileMode.parse(value) if isinstance(value, str) else value

    @field_validator("permissions", mode="before")
    @classmethod
    def parse_permissions(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(value, 8)
        return value

    @field_validator("paths", mode="before")
    @classmethod
    def wrap_paths(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_targets(self) -> "FileEdit":
        for candidate in ([self.path] if self.path else []) + self.paths:
            _require_relative(candidate)
        if self.mode == FileMode.REPLACE:
            if not self.find:
                raise ValueError("replace edits require 'find'")
            if not self.path and not self.paths:
                raise ValueError("replace edits require 'path' or 'paths'")
        elif not self.path:
            raise ValueError(f"{self.mode.value} edits require 'path'")
        elif self.paths:
            raise ValueError("'paths' is only valid for replace edits")
        return self

    @property
    def targets(self) -> list[str]:
        return ([self.path] if self.path else []) + self.paths


class CommitBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str | None = None
    require_changes: bool = True


class PushBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    remote: str | None = None


class PullRequestBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    body: str = ""
    base: str | None = None
    draft: bool = False

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("pull request title must not be empty")
        return value


class CaptureBlock(BaseModel):
    """Record the current branch or commit before the pipeline runs."""

    model_config = ConfigDict(extra="forbid")

    variable: str
    value: CaptureKind = CaptureKind.BRANCH
    overwrite: bool = False

    @field_validator("variable")
    @classmethod
    def validate_variable(cls, value: str) -> str:
        return _variable_name(value)


class RestoreBlock(BaseModel):
    """Check out a previously captured branch or commit."""

    model_config = ConfigDict(extra="forbid")

    variable: str

    @field_validator("variable")
    @classmethod
    def validate_variable(cls, value: str) -> str:
        return _variable_name(value)


class TaskDefinition(BaseModel):
    """A named unit of repository work run by the task pipeline."""

    model_config = ConfigDict(extra="forbid")

    name: str
    branch: BranchBlock | None = None
    files: list[FileEdit] = Field(default_factory=list)
    stage_paths: list[str] = Field(default_factory=list)
    safeguards: SafeguardSpec = Field(default_factory=SafeguardSpec)
    capture: CaptureBlock | None = None
    restore: RestoreBlock | None = None
    steps: list[PipelineAction] | None = None
    commit: CommitBlock = Field(default_factory=CommitBlock)
    push: PushBlock = Field(default_factory=PushBlock)
    pull_request: PullRequestBlock | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task name must not be empty")
        return value.strip()

    @field_validator("safeguards", mode="before")
    @classmethod
    def parse_safeguards(cls, value: Any) -> Any:
        return SafeguardSpec.from_mapping(value) if value is None or isinstance(value, dict) else value

    @field_validator("stage_paths")
    @classmethod
    def validate_stage_paths(cls, value: list[str]) -> list[str]:
        for path in value:
            _require_relative(path)
        return value

    @model_validator(mode="after")
    def validate_unique_files(self) -> "TaskDefinition":
        seen: set[str] = set()
        for edit in self.files:
            for target in edit.targets:
                if target in seen:
                    raise ValueError(f"file {target!r} is edited more than once")
                seen.add(target)
        return self

    def selected_actions(self) -> list[PipelineAction]:
        """Actions to run, in pipeline order, honoring ``steps``."""
        if self.steps is None:
            return list(PipelineAction)
        allowed = set(self.steps)
        return [action for action in PipelineAction if action in allowed]

    @property
    def default_branch_name(self) -> str:
        return f"{DEFAULT_BRANCH_PREFIX}/{slugify(self.name)}"

    @property
    def default_commit_message(self) -> str:
        return f"Apply task {self.name}"


class TasksApplyOptions(BaseModel):
    """Options of the ``tasks apply`` operation."""

    model_config = ConfigDict(extra="forbid")

    tasks: list[TaskDefinition]

    @field_validator("tasks")
    @classmethod
    def validate_tasks(cls, value: list[TaskDefinition]) -> list[TaskDefinition]:
        if not value:
            raise ValueError("at least one task is required")
        return value


def _require_relative(path: str) -> None:
    pure = PurePosixPath(path)
    if not path.strip() or pure.is_absolute() or ".." in pure.parts:
        raise ValueError(f"path {path!r} must be relative to the repository root")


def _variable_name(value: str) -> str:
    cleaned = value.strip()
    if not cleaned or not all(char.isalnum() or char in "_.-" for char in cleaned):
        raise ValueError(f"invalid variable name {value!r}")
    return cleaned
