"""Git discovery exceptions.

Errors raised while inspecting a project's repository configuration. All
inherit from GitDiscoveryError and carry a hint for resolution.

Example:
    >>> from worktree_orchestrator.git.exceptions import NoRemotesError
    >>> print(NoRemotesError("/srv/repos/shop/main"))
    No Git remotes configured in /srv/repos/shop/main
    <BLANKLINE>
    Hint: Add a remote with: git remote add origin <url>
"""

from worktree_orchestrator.exceptions import GitOperationError


class GitDiscoveryError(GitOperationError):
    """Base exception for Git discovery errors.

    Attributes:
        message: Error message
        hint: Optional hint for resolution
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n\nHint: {self.hint}"
        return self.message


class NotGitRepositoryError(GitDiscoveryError):
    """Raised when a directory is not a Git repository.

    Attributes:
        path: Path to the directory that is not a Git repository
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            message=f"Not a Git repository: {path}",
            hint="Clone the project first or check the checkout root.",
        )
        self.path = path


class NoRemotesError(GitDiscoveryError):
    """Raised when a repository has no remotes configured."""

    def __init__(self, path: str) -> None:
        super().__init__(
            message=f"No Git remotes configured in {path}",
            hint="Add a remote with: git remote add origin <url>",
        )
        self.path = path
