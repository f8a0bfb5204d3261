"""Configuration system for repo-fleet.

Key Components:
    - FleetSettings: Main settings container with YAML loading support
    - ExecutionConfig: Worker count, confirmation default and timeouts
    - DiscoveryConfig: Roots searched for repositories
    - GitConfig: git / platform executables and the default push remote
"""

from repo_fleet.config.settings import (
    DiscoveryConfig,
    ExecutionConfig,
    FleetSettings,
    GitConfig,
    interpolate_variables,
)

__all__ = [
    "DiscoveryConfig",
    "ExecutionConfig",
    "FleetSettings",
    "GitConfig",
    "interpolate_variables",
]
