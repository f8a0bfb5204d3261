"""Git collaborators: discovery, status parsing, CLI clients.

Example:
    >>> from repo_fleet.git import RepositoryDiscovery
    >>> discovery = RepositoryDiscovery()
    >>> contexts = [discovery.inspect(p) for p in discovery.discover(["~/src"])]
"""

from repo_fleet.git.client import GitClient
from repo_fleet.git.discovery import RepositoryDiscovery, discover_repositories
from repo_fleet.git.exceptions import (
    DiscoveryRootError,
    GitDiscoveryError,
    InvalidRemoteUrlError,
    NotGitRepositoryError,
)
from repo_fleet.git.models import RepositoryContext
from repo_fleet.git.platform import PlatformClient
from repo_fleet.git.remote_url import RemoteUrl, parse_remote_url
from repo_fleet.git.status import StatusEntry, parse_porcelain, parse_porcelain_z

__all__ = [
    "GitClient",
    "PlatformClient",
    "RepositoryDiscovery",
    "discover_repositories",
    "RepositoryContext",
    "RemoteUrl",
    "parse_remote_url",
    "StatusEntry",
    "parse_porcelain",
    "parse_porcelain_z",
    "GitDiscoveryError",
    "DiscoveryRootError",
    "NotGitRepositoryError",
    "InvalidRemoteUrlError",
]
