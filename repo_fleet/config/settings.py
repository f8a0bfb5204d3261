"""
Configuration system using Pydantic for type-safe settings management.

Settings cover how a run is executed (worker count, confirmation default,
timeouts), where repositories are discovered, and which executables are used
for git and platform operations. Every field has a default so the CLI works
without a settings file.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from repo_fleet.exceptions import ConfigurationError

# ${VAR_NAME} or ${VAR_NAME:-default}
ENV_REFERENCE_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


class ExecutionConfig(BaseModel):
    """Run execution behavior."""

    workers: int = Field(default=1, ge=1, le=64, description="Repositories processed concurrently")
    assume_yes: bool = Field(default=False, description="Auto-accept every confirmation prompt")
    step_timeout: float | None = Field(default=None, gt=0, description="Seconds allowed per step")
    run_timeout: float | None = Field(default=None, gt=0, description="Seconds before the run stops dispatching")


class DiscoveryConfig(BaseModel):
    """Repository discovery configuration."""

    roots: list[str] = Field(default_factory=lambda: ["."], description="Directories searched for repositories")
    include_nested: bool = Field(default=False, description="Descend into discovered repositories")

    @field_validator("roots")
    @classmethod
    def validate_roots(cls, value: list[str]) -> list[str]:
        cleaned = [root.strip() for root in value if root.strip()]
        if not cleaned:
            raise ValueError("at least one discovery root is required")
        return cleaned


class GitConfig(BaseModel):
    """Executables and remotes used for git and platform operations."""

    executable: str = Field(default="git", description="git executable")
    platform_executable: str = Field(default="gh", description="Platform CLI used to open pull requests")
    push_remote: str = Field(default="origin", description="Remote pushed to when a task does not name one")


class FleetSettings(BaseSettings):
    """Main repo-fleet settings.

    Values come from the YAML file passed to ``from_yaml`` and can be
    overridden through ``REPO_FLEET_*`` environment variables, for example
    ``REPO_FLEET_EXECUTION__WORKERS=4``.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPO_FLEET_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    log_level: str = Field(default="INFO", description="Minimum log level")
    json_logs: bool = Field(default=True, description="Render logs as JSON lines")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return normalized

    @property
    def root_paths(self) -> list[Path]:
        """Discovery roots as absolute paths."""
        return [Path(root).expanduser().resolve() for root in self.discovery.roots]

    @classmethod
    def from_yaml(cls, config_path: str) -> FleetSettings:
        """Load settings from YAML file with environment variable interpolation.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            FleetSettings instance

        Raises:
            ConfigurationError: If the file is missing, unreadable, not valid
                YAML, references an unset variable, or fails validation
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = interpolate_variables(yaml_content, os.environ, ENV_REFERENCE_PATTERN)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e


def interpolate_variables(content: str, values: Mapping[str, str], pattern: re.Pattern[str]) -> str:
    """Replace ``${NAME}`` and ``${NAME:-default}`` placeholders.

    YAML comment lines (starting with #) are preserved unchanged, allowing
    documentation examples like ${VAR_NAME} in comments.

    Args:
        content: Text containing placeholders
        values: Mapping consulted for each name
        pattern: Placeholder pattern; group 1 is the name, group 2 the default

    Raises:
        ValueError: If a name has no value and no default
    """

    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default_value = match.group(2)
        value = values.get(var_name)

        if value is not None:
            return value
        elif default_value is not None:
            return default_value
        else:
            raise ValueError(f"Variable {var_name} is not set")

    def process_line(line: str) -> str:
        if line.lstrip().startswith("#"):
            return line
        return pattern.sub(replace_var, line)

    return "\n".join(process_line(line) for line in content.split("\n"))
