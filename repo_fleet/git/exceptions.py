"""Git discovery and remote URL exceptions.

Discovery errors carry an optional hint for resolution, rendered after the
message when the error is printed.

Example:
    >>> from repo_fleet.git.exceptions import NotGitRepositoryError
    >>> raise NotGitRepositoryError("/tmp/not-a-repo")
    Traceback (most recent call last):
        ...
    NotGitRepositoryError: Not a Git repository: /tmp/not-a-repo

    Hint: Discovery only returns directories containing a .git entry.
"""

from repo_fleet.exceptions import DiscoveryError, RepoFleetError


class GitDiscoveryError(DiscoveryError):
    """Base exception for repository discovery errors.

    Attributes:
        message: Error message
        hint: Optional hint for resolution
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n\nHint: {self.hint}"
        return self.message


class NotGitRepositoryError(GitDiscoveryError):
    """Raised when a path is not a Git repository.

    Attributes:
        path: Path to the directory that is not a Git repository
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            message=f"Not a Git repository: {path}",
            hint="Discovery only returns directories containing a .git entry.",
        )
        self.path = path


class DiscoveryRootError(GitDiscoveryError):
    """Raised when a discovery root does not exist or is not a directory."""

    def __init__(self, root: str) -> None:
        super().__init__(
            message=f"Discovery root is not a directory: {root}",
            hint="Pass existing directories with --root or discovery.roots.",
        )
        self.root = root


class InvalidRemoteUrlError(RepoFleetError):
    """Raised when a remote URL cannot be parsed.

    Attributes:
        url: The URL that failed to parse
        reason: Why parsing failed
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid Git URL {url!r}: {reason}")
