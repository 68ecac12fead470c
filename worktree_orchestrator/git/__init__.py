"""Git adapter for the worktree orchestrator.

This package is the only place that talks to git or reads its output:

- ``commands.GitRunner`` runs git asynchronously with bounded timeouts
- ``parser`` turns porcelain output into structured values
- ``paths`` resolves checkout paths and validates branch names
- ``discovery.RemoteDiscovery`` picks the remote a project syncs against

Example:
    >>> from worktree_orchestrator.git import resolve_path, validate_branch_name
    >>> resolve_path("repositories", "shop", "feat-cart")
    PosixPath('repositories/shop/feat-cart')
    >>> validate_branch_name("feat-cart").is_valid
    True
"""

from worktree_orchestrator.git.commands import GitRunner
from worktree_orchestrator.git.discovery import RemoteDiscovery
from worktree_orchestrator.git.exceptions import GitDiscoveryError, NoRemotesError, NotGitRepositoryError
from worktree_orchestrator.git.models import AheadBehind, BranchValidation, GitResult, MergeOutcome, WorktreeEntry
from worktree_orchestrator.git.paths import KNOWN_PREFIXES, resolve_path, slugify, validate_branch_name

__all__ = [
    # Command adapter
    "GitRunner",
    "RemoteDiscovery",
    # Paths and names
    "KNOWN_PREFIXES",
    "resolve_path",
    "slugify",
    "validate_branch_name",
    # Models
    "AheadBehind",
    "BranchValidation",
    "GitResult",
    "MergeOutcome",
    "WorktreeEntry",
    # Exceptions
    "GitDiscoveryError",
    "NoRemotesError",
    "NotGitRepositoryError",
]
