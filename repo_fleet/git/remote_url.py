"""Git remote URL parsing.

Supported URL formats:
    SSH:
        - git@github.com:owner/repo.git
        - user@gitlab.com:group/project
        - ssh://git@github.com/owner/repo.git

    HTTPS:
        - https://github.com/owner/repo.git
        - https://gitea.example.com:3000/owner/repo

Example:
    >>> from repo_fleet.git.remote_url import RemoteUrl
    >>> url = RemoteUrl.parse("git@github.com:owner/repo.git")
    >>> url.full_name
    'owner/repo'
    >>> url.to_protocol(RemoteProtocol.HTTPS)
    'https://github.com/owner/repo.git'
"""

import re
from dataclasses import dataclass, replace

from repo_fleet.enums import RemoteProtocol
from repo_fleet.git.exceptions import InvalidRemoteUrlError

# user@host:path, requiring the user@ prefix so https://host:port is not matched
SSH_PATTERN = re.compile(r"^(?P<user>[\w.-]+)@(?P<host>[a-zA-Z0-9._-]+):(?P<path>[^/].*?)(?:\.git)?/?$")
SSH_SCHEME_PATTERN = re.compile(
    r"^ssh://(?:(?P<user>[\w.-]+)@)?(?P<host>[a-zA-Z0-9._-]+)(?::(?P<port>\d+))?/(?P<path>.+?)(?:\.git)?/?$"
)
HTTPS_PATTERN = re.compile(
    r"^https?://(?:[^@/]+@)?(?P<host>[a-zA-Z0-9._-]+)(?::(?P<port>\d+))?/(?P<path>.+?)(?:\.git)?/?$"
)


@dataclass(frozen=True)
class RemoteUrl:
    """Parsed git remote URL.

    Attributes:
        url: Original URL (whitespace trimmed)
        protocol: SSH or HTTPS
        host: Hostname of the git server
        owner: Owner or group path (everything before the last segment)
        repo: Repository name without ``.git``
        port: Explicit port, when present
        user: SSH user, ``git`` by default
    """

    url: str
    protocol: RemoteProtocol
    host: str
    owner: str
    repo: str
    port: int | None = None
    user: str = "git"

    @classmethod
    def parse(cls, url: str) -> "RemoteUrl":
        """Parse an SSH or HTTPS remote URL.

        Raises:
            InvalidRemoteUrlError: If the format is unrecognized or the path
                does not contain owner/repo
        """
        cleaned = url.strip()

        for pattern, protocol in (
            (SSH_SCHEME_PATTERN, RemoteProtocol.SSH),
            (HTTPS_PATTERN, RemoteProtocol.HTTPS),
            (SSH_PATTERN, RemoteProtocol.SSH),
        ):
            match = pattern.match(cleaned)
            if match is None:
                continue
            owner, repo = _split_path(cleaned, match.group("path"))
            groups = match.groupdict()
            port = int(groups["port"]) if groups.get("port") else None
            return cls(
                url=cleaned,
                protocol=protocol,
                host=match.group("host"),
                owner=owner,
                repo=repo,
                port=port,
                user=groups.get("user") or "git",
            )

        raise InvalidRemoteUrlError(cleaned, "must be SSH (git@host:path) or HTTPS (https://host/path)")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def ssh_url(self) -> str:
        return f"{self.user}@{self.host}:{self.full_name}.git"

    @property
    def https_url(self) -> str:
        # SSH ports do not carry over to HTTPS
        if self.protocol == RemoteProtocol.HTTPS and self.port:
            return f"https://{self.host}:{self.port}/{self.full_name}.git"
        return f"https://{self.host}/{self.full_name}.git"

    def to_protocol(self, protocol: RemoteProtocol) -> str:
        """Render this remote in the given protocol."""
        if protocol == RemoteProtocol.SSH:
            return self.ssh_url
        return self.https_url

    def with_full_name(self, full_name: str) -> str:
        """This URL pointing at ``full_name``, keeping scheme, user, host and port.

        Raises:
            InvalidRemoteUrlError: If ``full_name`` is not owner/name
        """
        owner, _, repo = full_name.strip().rpartition("/")
        if not owner or not repo:
            raise InvalidRemoteUrlError(full_name, "must be owner/name")
        start = self.url.rfind(self.full_name)
        if start < 0:
            return replace(self, owner=owner, repo=repo).to_protocol(self.protocol)
        return self.url[:start] + f"{owner}/{repo}" + self.url[start + len(self.full_name) :]


def _split_path(url: str, path: str) -> tuple[str, str]:
    parts = [part for part in path.strip("/").split("/") if part]
    if len(parts) < 2:
        raise InvalidRemoteUrlError(url, "path must contain owner/repo")
    return "/".join(parts[:-1]), parts[-1]


def parse_remote_url(url: str | None) -> RemoteUrl | None:
    """Parse a remote URL, returning None for empty or unparseable input."""
    if not url or not url.strip():
        return None
    try:
        return RemoteUrl.parse(url)
    except InvalidRemoteUrlError:
        return None
