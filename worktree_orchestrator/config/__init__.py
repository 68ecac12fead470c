"""Configuration system for the worktree orchestrator.

This package provides type-safe configuration management using Pydantic,
including settings for the git adapter, checkout root, queue persistence,
background sync, projects and categorization rules.

Key Components:
    - OrchestratorSettings: Main configuration container with YAML loading support
    - GitConfig: git executable, remote name and command timeouts
    - CheckoutConfig: checkout root and branch-name limits
    - QueueConfig: queue log location and compaction threshold
    - SyncConfig: sync interval, worker pool size and merge behavior
    - ProjectConfig / CategoryConfig: project and rule-table entries

Example:
    >>> from worktree_orchestrator.config import OrchestratorSettings
    >>> settings = OrchestratorSettings.from_yaml("worktree.yaml")
    >>> settings.root_dir
    PosixPath('repositories')
"""

from worktree_orchestrator.config.settings import (
    CategoryConfig,
    CheckoutConfig,
    GitConfig,
    OrchestratorSettings,
    ProjectConfig,
    QueueConfig,
    SyncConfig,
)

__all__ = [
    "CategoryConfig",
    "CheckoutConfig",
    "GitConfig",
    "OrchestratorSettings",
    "ProjectConfig",
    "QueueConfig",
    "SyncConfig",
]
