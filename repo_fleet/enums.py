"""Enumerations shared across the workflow engine."""

from enum import Enum


class OutcomeStatus(str, Enum):
    """Result of one step against one repository."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class SafeguardClass(str, Enum):
    """How a violated safeguard condition affects the run.

    - hard_stop: no further step runs against the repository
    - soft_skip: only the current action or step is skipped
    """

    HARD_STOP = "hard_stop"
    SOFT_SKIP = "soft_skip"

    def __str__(self) -> str:
        return self.value


class CaptureKind(str, Enum):
    """What a capture block records."""

    BRANCH = "branch"
    COMMIT = "commit"

    def __str__(self) -> str:
        return self.value


class FileMode(str, Enum):
    """How a file edit treats the target file."""

    OVERWRITE = "overwrite"
    SKIP_IF_EXISTS = "skip-if-exists"
    APPEND_IF_MISSING = "append-if-missing"
    REPLACE = "replace"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | FileMode") -> "FileMode":
        """Parse a mode name, accepting the legacy ``line-edit`` alias."""
        if isinstance(value, FileMode):
            return value
        normalized = value.strip().lower()
        if normalized == "line-edit":
            return cls.APPEND_IF_MISSING
        return cls(normalized)


class PipelineAction(str, Enum):
    """Actions of the task pipeline, declared in execution order."""

    BRANCH_PREPARE = "branch-prepare"
    FILES_APPLY = "files-apply"
    GIT_STAGE = "git-stage"
    GIT_COMMIT = "git-commit"
    GIT_PUSH = "git-push"
    PULL_REQUEST_CREATE = "pull-request-create"

    def __str__(self) -> str:
        return self.value


class RemoteProtocol(str, Enum):
    """Transport protocol of a git remote URL."""

    HTTPS = "https"
    SSH = "ssh"

    def __str__(self) -> str:
        return self.value
