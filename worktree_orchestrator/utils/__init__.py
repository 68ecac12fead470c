"""Shared utilities: structured logging setup and async subprocess execution."""

from worktree_orchestrator.utils.async_subprocess import run_command
from worktree_orchestrator.utils.logging_config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger", "run_command"]
