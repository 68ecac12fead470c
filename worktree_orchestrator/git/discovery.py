"""Remote discovery for project repositories.

Checkouts are reconciled against a remote branch. Projects normally use the
configured remote (``origin`` by default), but repositories cloned by hand
sometimes only have ``upstream`` or a differently named remote. This module
inspects the repository configuration and picks the remote to sync with.

Dependencies:
    Requires GitPython (gitpython) package for repository access. GitPython
    reads ``.git/config`` directly, so discovery runs no subprocess; callers
    in async code wrap it with ``asyncio.to_thread``.

Example:
    >>> discovery = RemoteDiscovery("/srv/repos/shop/main")
    >>> discovery.select_remote(preferred="origin")
    'origin'
"""

from pathlib import Path

try:
    import git
    from git.exc import InvalidGitRepositoryError, NoSuchPathError
except ImportError as e:
    raise ImportError("GitPython is required for remote discovery. Install it with: pip install gitpython") from e

from worktree_orchestrator.git.exceptions import NoRemotesError, NotGitRepositoryError


class RemoteDiscovery:
    """Discover remotes of a local repository.

    The git.Repo object is created lazily on first use and cached.

    Attributes:
        repo_path: Resolved path inside the repository
        PREFERRED_REMOTES: Remote names tried in order when the preferred
            remote is absent
    """

    PREFERRED_REMOTES = ["origin", "upstream"]

    def __init__(self, repo_path: str | Path) -> None:
        self.repo_path = Path(repo_path).resolve()
        self._repo: git.Repo | None = None

    def _get_repo(self) -> git.Repo:
        """Get the Git repository object, initializing if needed.

        Raises:
            NotGitRepositoryError: If the path is not within a Git repository.
        """
        if self._repo is None:
            try:
                self._repo = git.Repo(self.repo_path, search_parent_directories=True)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise NotGitRepositoryError(str(self.repo_path)) from e
        return self._repo

    def list_remotes(self) -> list[str]:
        """List names of all configured remotes.

        Raises:
            NotGitRepositoryError: If not within a Git repository.
        """
        return [remote.name for remote in self._get_repo().remotes]

    def select_remote(self, preferred: str | None = None) -> str:
        """Pick the remote checkouts of this repository sync against.

        Selection order:
            1. ``preferred`` when configured
            2. ``origin``, then ``upstream``
            3. the first remote listed

        Args:
            preferred: Remote name from configuration

        Returns:
            Name of the selected remote

        Raises:
            NotGitRepositoryError: If not within a Git repository.
            NoRemotesError: If no remotes are configured.
        """
        remotes = self.list_remotes()
        if not remotes:
            raise NoRemotesError(str(self.repo_path))

        candidates = ([preferred] if preferred else []) + self.PREFERRED_REMOTES
        for name in candidates:
            if name in remotes:
                return name
        return remotes[0]
