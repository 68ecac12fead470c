"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the git adapter, the checkout
root, the task queue log, the sync engine, project definitions and the
categorization rule table.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from worktree_orchestrator.enums import ResolutionStrategy
from worktree_orchestrator.exceptions import ConfigurationError


class GitConfig(BaseModel):
    """Settings for invoking the git command-line tool."""

    executable: str = Field(default="git", description="git executable name or path")
    remote: str = Field(default="origin", description="Remote checkouts are reconciled against")
    command_timeout: float = Field(default=120.0, gt=0, description="Timeout in seconds for local git commands")
    fetch_timeout: float = Field(default=300.0, gt=0, description="Timeout in seconds for network git commands")


class CheckoutConfig(BaseModel):
    """Hierarchical checkout root configuration."""

    root: str = Field(default="repositories", description="Root directory holding <project>/<branch> checkouts")
    max_branch_length: int = Field(default=50, ge=8, le=200, description="Maximum branch name length")
    default_base_branch: str = Field(default="main", description="Base branch for new checkouts")


class QueueConfig(BaseModel):
    """Task queue persistence configuration."""

    state_directory: str = Field(default=".worktree/queues", description="Directory for queue logs")
    compact_after: int = Field(default=50, ge=1, description="Log entries before the log is compacted")


class SyncConfig(BaseModel):
    """Background sync configuration."""

    interval_seconds: float = Field(default=300.0, gt=0, description="Seconds between sync cycles")
    max_workers: int = Field(default=4, ge=1, le=32, description="Checkouts reconciled concurrently")
    merge_on_sync: bool = Field(default=True, description="Merge remote changes when the checkout is behind")
    default_strategy: ResolutionStrategy = Field(
        default=ResolutionStrategy.AUTO_MERGE, description="Strategy used when none is given"
    )


class ProjectConfig(BaseModel):
    """A named repository under the checkout root."""

    name: str = Field(..., description="Project directory name")
    default_branch: str = Field(default="main", description="Branch of the primary checkout")
    repo_url: str | None = Field(default=None, description="Clone URL used by the clone command")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure the project name is a single path component."""
        v = v.strip()
        if not v or v in (".", "..") or "/" in v or "\\" in v:
            raise ValueError(f"Project name must be a single directory name, got: {v!r}")
        return v


class CategoryConfig(BaseModel):
    """One categorization rule."""

    id: str
    label: str
    team: str
    prefix: str = Field(..., description="Branch-name prefix, e.g. 'fix-'")
    keywords: list[str] = Field(default_factory=list)

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefixes are lowercase and end with a hyphen."""
        if not re.fullmatch(r"[a-z0-9]+-", v):
            raise ValueError(f"Category prefix must look like 'feat-', got: {v!r}")
        return v


class OrchestratorSettings(BaseSettings):
    """Main orchestrator settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKTREE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    git: GitConfig = Field(default_factory=GitConfig)
    checkouts: CheckoutConfig = Field(default_factory=CheckoutConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    projects: list[ProjectConfig] = Field(default_factory=list)
    categories: list[CategoryConfig] | None = Field(
        default=None, description="Ordered rule table; the built-in table is used when omitted"
    )

    @property
    def root_dir(self) -> Path:
        """Get the checkout root as Path object."""
        return Path(self.checkouts.root)

    @property
    def queue_dir(self) -> Path:
        """Get the queue log directory as Path object."""
        return Path(self.queue.state_directory)

    def get_project(self, name: str) -> ProjectConfig:
        """Return the configured project, or a default definition for it."""
        for project in self.projects:
            if project.name == name:
                return project
        return ProjectConfig(name=name, default_branch=self.checkouts.default_base_branch)

    @classmethod
    def from_yaml(cls, config_path: str) -> OrchestratorSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            OrchestratorSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
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
        except TypeError as e:
            raise ConfigurationError(f"Missing or invalid configuration fields: {e}") from e
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
