"""
Checkout lifecycle management.

Every project lives under the hierarchical checkout root::

    <root>/
        <project>/
            <default_branch>/   primary checkout, hosts the repository
            <branch>/           git worktree of the primary checkout
            ...

The manager creates and removes worktrees, lists them, and reports which
repository branches are available for reuse. Directory names alone are
never trusted: listings are cross-checked against
``git worktree list --porcelain``.

Concurrency Model:
    Creation and removal of a checkout hold the checkout lock of its
    (project, branch) key, shared with the sync engine, so a checkout is
    never reconciled while it is being created or deleted.
"""

import asyncio
import shutil
from datetime import UTC, datetime
from pathlib import Path

import structlog

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.engine.locks import KeyedLocks
from worktree_orchestrator.engine.task_queue import TaskQueueService
from worktree_orchestrator.enums import CheckoutStatus
from worktree_orchestrator.exceptions import (
    AlreadyExists,
    CheckoutBusy,
    CheckoutCreationFailed,
    CheckoutNotFound,
    ConfigurationError,
    DirtyCheckout,
    GitOperationError,
    InvalidBranchName,
    ProtectedCheckout,
)
from worktree_orchestrator.git.commands import GitRunner
from worktree_orchestrator.git.discovery import RemoteDiscovery
from worktree_orchestrator.git.exceptions import GitDiscoveryError
from worktree_orchestrator.git.models import WorktreeEntry
from worktree_orchestrator.git.paths import resolve_path, validate_branch_name
from worktree_orchestrator.models.domain import BranchListing, Checkout, Project, QueueKey

log = structlog.get_logger(__name__)


class CheckoutManager:
    """Create, list and remove the checkouts of every project.

    Attributes:
        settings: Orchestrator settings
        git: Git command adapter
        root: Hierarchical checkout root
    """

    def __init__(
        self,
        settings: OrchestratorSettings,
        git: GitRunner,
        locks: KeyedLocks,
        queue: TaskQueueService | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            settings: Orchestrator settings
            git: Git command adapter
            locks: Checkout lock registry shared with the sync engine
            queue: Task queue consulted before removing a checkout
        """
        self.settings = settings
        self.git = git
        self.locks = locks
        self.queue = queue
        self.root = settings.root_dir
        self._remotes: dict[str, str | None] = {}

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def project(self, name: str) -> Project:
        """Describe a project from configuration.

        Raises:
            ConfigurationError: If the name is not a single directory name
        """
        try:
            config = self.settings.get_project(name)
        except ValueError as e:
            raise ConfigurationError(f"Invalid project name: {name!r}") from e
        return Project(name=config.name, default_branch=config.default_branch, path=self.root / config.name)

    def checkout_path(self, project: str, branch: str) -> Path:
        return resolve_path(self.root, project, branch)

    async def initialize(self) -> None:
        """Create the checkout root. Safe to call repeatedly."""
        self.root.mkdir(parents=True, exist_ok=True)
        log.info("checkout_root_initialized", root=str(self.root))

    def project_exists(self, project: str) -> bool:
        """Check if the primary checkout of a project is present on disk."""
        primary = self.project(project).primary_path
        return (primary / ".git").exists()

    def list_projects(self) -> list[str]:
        """List projects whose primary checkout exists."""
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir() and self.project_exists(p.name))

    def _require_project(self, project: str) -> Project:
        info = self.project(project)
        if not self.project_exists(project):
            raise CheckoutNotFound(
                f"Project {project} has no primary checkout at {info.primary_path}",
                project=project,
                branch=info.default_branch,
            )
        return info

    async def clone_project(self, project: str, repo_url: str | None = None, default_branch: str | None = None) -> Project:
        """Clone a project's repository into its primary checkout.

        Raises:
            ConfigurationError: If no repository URL is known
            AlreadyExists: If the primary checkout directory exists
            CheckoutCreationFailed: If git clone fails or times out
        """
        info = self.project(project)
        url = repo_url or self.settings.get_project(project).repo_url
        if not url:
            raise ConfigurationError(f"No repository URL configured for project {project}")
        branch = default_branch or info.default_branch
        info = Project(name=info.name, default_branch=branch, path=info.path)
        path = info.primary_path

        async with self.locks.hold(QueueKey(project, branch)):
            if path.exists():
                raise AlreadyExists(f"Project {project} already exists at {path}", project=project, branch=branch)

            path.parent.mkdir(parents=True, exist_ok=True)
            log.info("project_cloning", project=project, url=url, branch=branch)
            result = await self.git.clone(url, path, branch)

            if not result.ok:
                if path.exists():
                    shutil.rmtree(path, ignore_errors=True)
                log.error("project_clone_failed", project=project, error=result.diagnostic)
                raise CheckoutCreationFailed(
                    f"Failed to clone {url} into {path}", project=project, branch=branch, output=result.diagnostic
                )

        self._remotes.pop(project, None)
        log.info("project_cloned", project=project, path=str(path))
        return info

    async def remote_for(self, project: str) -> str | None:
        """Return the remote a project's checkouts sync against.

        Resolved once per project with RemoteDiscovery. Returns None when the
        repository has no remote.
        """
        if project not in self._remotes:
            discovery = RemoteDiscovery(self.project(project).primary_path)
            try:
                remote = await asyncio.to_thread(discovery.select_remote, self.settings.git.remote)
            except GitDiscoveryError as e:
                log.warning("remote_not_found", project=project, error=e.message)
                return None
            if remote != self.settings.git.remote:
                log.info("remote_fallback_selected", project=project, configured=self.settings.git.remote, remote=remote)
            self._remotes[project] = remote
        return self._remotes[project]

    # ------------------------------------------------------------------
    # Checkouts
    # ------------------------------------------------------------------

    async def _registered(self, info: Project) -> dict[str, WorktreeEntry]:
        """Map branch names to the worktrees git has registered for them."""
        entries = await self.git.worktree_list(info.primary_path)
        return {e.branch: e for e in entries if e.branch and not e.bare}

    def _matches_layout(self, project: str, entry: WorktreeEntry) -> bool:
        expected = self.checkout_path(project, entry.branch or "")
        return entry.path.resolve() == expected.resolve()

    @staticmethod
    def _created_at(path: Path) -> datetime | None:
        try:
            return datetime.fromtimestamp(path.stat().st_ctime, UTC)
        except OSError:
            return None

    async def create_checkout(self, project: str, branch: str, base_branch: str | None = None) -> Checkout:
        """Materialize a checkout of ``branch`` at its canonical path.

        An existing local branch is checked out as is; a branch that only
        exists on the remote is created tracking it; otherwise the branch is
        created from ``base_branch`` (the project's default branch when
        omitted).

        Raises:
            InvalidBranchName: If the name breaks the naming rules
            CheckoutNotFound: If the project has no primary checkout
            AlreadyExists: If a checkout for the pair is already active
            CheckoutCreationFailed: If git fails or times out
        """
        async with self.locks.hold(QueueKey(project, branch)):
            return await self.materialize(project, branch, base_branch)

    async def materialize(self, project: str, branch: str, base_branch: str | None = None) -> Checkout:
        """Create a checkout while the caller holds its checkout lock.

        Same rules and errors as ``create_checkout``, which wraps this in the
        lock. Callers that must keep the checkout stable across a further
        step (starting a task on it) hold the lock themselves.
        """
        validation = validate_branch_name(branch, self.settings.checkouts.max_branch_length)
        if not validation.is_valid:
            raise InvalidBranchName(validation, project=project)

        info = self._require_project(project)
        base = base_branch or info.default_branch
        path = self.checkout_path(project, branch)

        registered = await self._registered(info)
        entry = registered.get(branch)

        if path.exists():
            if entry is not None:
                raise AlreadyExists(f"Checkout {project}/{branch} already exists", project=project, branch=branch)
            raise AlreadyExists(
                f"Directory {path} exists but is not a registered checkout", project=project, branch=branch
            )
        if entry is not None:
            # Registered but the directory is gone
            await self.git.worktree_prune(info.primary_path)

        remote = await self.remote_for(project)
        track = None
        if not await self.git.branch_exists(info.primary_path, branch):
            if remote and await self.git.remote_branch_exists(info.primary_path, remote, branch):
                track = f"{remote}/{branch}"
                result = await self.git.worktree_add(info.primary_path, path, branch, track=track)
            else:
                result = await self.git.worktree_add(info.primary_path, path, branch, base=base)
        else:
            result = await self.git.worktree_add(info.primary_path, path, branch)

        if not result.ok:
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
            await self.git.worktree_prune(info.primary_path)
            log.error("checkout_creation_failed", project=project, branch=branch, error=result.diagnostic)
            raise CheckoutCreationFailed(
                f"Failed to create checkout {project}/{branch}",
                project=project,
                branch=branch,
                output=result.diagnostic,
            )

        log.info("checkout_created", project=project, branch=branch, path=str(path), base=base, track=track)
        return Checkout(
            project=project,
            branch=branch,
            path=path,
            status=CheckoutStatus.ACTIVE,
            created_at=self._created_at(path),
        )

    async def remove_checkout(
        self,
        project: str,
        branch: str,
        force: bool = False,
        delete_branch: bool = False,
    ) -> Checkout:
        """Remove a checkout's directory and its worktree registration.

        Args:
            project: Project name
            branch: Branch of the checkout
            force: Discard uncommitted changes
            delete_branch: Also delete the local branch

        Raises:
            CheckoutBusy: If the checkout's queue has an ACTIVE task
            ProtectedCheckout: If the checkout is the primary checkout
            CheckoutNotFound: If no checkout is registered for the pair
            DirtyCheckout: If there are uncommitted changes and not ``force``
            GitOperationError: If git refuses to remove the worktree
        """
        info = self._require_project(project)
        if branch == info.default_branch:
            raise ProtectedCheckout(
                f"Checkout {project}/{branch} hosts the repository and cannot be removed",
                project=project,
                branch=branch,
            )

        path = self.checkout_path(project, branch)

        async with self.locks.hold(QueueKey(project, branch)):
            if self.queue is not None:
                active = await self.queue.active_task(project, branch)
                if active is not None:
                    raise CheckoutBusy(project, branch, active.id)

            registered = await self._registered(info)
            if branch not in registered:
                raise CheckoutNotFound(f"No checkout registered for {project}/{branch}", project=project, branch=branch)

            if path.exists():
                dirty = await self.git.status_paths(path)
                if dirty and not force:
                    raise DirtyCheckout(project, branch, dirty)

                result = await self.git.worktree_remove(info.primary_path, path, force=force)
                if not result.ok:
                    raise GitOperationError(
                        f"Failed to remove checkout {project}/{branch}: {result.diagnostic}",
                        command=result.args,
                        returncode=result.returncode,
                        stderr=result.stderr,
                    )

            await self.git.worktree_prune(info.primary_path)
            if path.exists():
                shutil.rmtree(path)

            if delete_branch:
                deleted = await self.git.delete_branch(info.primary_path, branch, force=force)
                if not deleted.ok:
                    log.warning("branch_delete_failed", project=project, branch=branch, error=deleted.diagnostic)

        log.info("checkout_removed", project=project, branch=branch, path=str(path), forced=force)
        return Checkout(project=project, branch=branch, path=path, status=CheckoutStatus.REMOVED)

    async def list_checkouts(self, project: str) -> list[Checkout]:
        """List the checkouts of a project, primary checkout included.

        A worktree git knows about whose directory is present is ACTIVE; one
        whose directory is gone is INACTIVE. Directories under the project
        that git does not know about are ignored.
        """
        if not self.project_exists(project):
            return []
        info = self.project(project)
        registered = await self._registered(info)

        checkouts: list[Checkout] = []
        for branch, entry in sorted(registered.items()):
            if not self._matches_layout(project, entry):
                log.debug("worktree_outside_layout", project=project, branch=branch, path=str(entry.path))
                continue
            path = self.checkout_path(project, branch)
            present = path.is_dir() and not entry.prunable
            checkouts.append(
                Checkout(
                    project=project,
                    branch=branch,
                    path=path,
                    status=CheckoutStatus.ACTIVE if present else CheckoutStatus.INACTIVE,
                    created_at=self._created_at(path) if present else None,
                )
            )

        known = {c.branch for c in checkouts}
        for child in sorted(info.path.iterdir()):
            if child.is_dir() and child.name not in known:
                log.debug("unregistered_directory_ignored", project=project, path=str(child))

        return checkouts

    async def get_checkout(self, project: str, branch: str) -> Checkout | None:
        for checkout in await self.list_checkouts(project):
            if checkout.branch == branch:
                return checkout
        return None

    async def all_checkouts(self) -> list[Checkout]:
        """List the ACTIVE checkouts of every project."""
        checkouts: list[Checkout] = []
        for project in self.list_projects():
            checkouts.extend(c for c in await self.list_checkouts(project) if c.status == CheckoutStatus.ACTIVE)
        return checkouts

    async def list_branches(self, project: str) -> BranchListing:
        """Split the project's branches by whether they have a checkout.

        Inactive branches are local or remote branches without an ACTIVE
        checkout, i.e. available for reuse.
        """
        info = self._require_project(project)
        remote = await self.remote_for(project) or self.settings.git.remote
        local, remote_branches = await self.git.list_branches(info.primary_path, remote)

        active = [c.branch for c in await self.list_checkouts(project) if c.status == CheckoutStatus.ACTIVE]
        inactive = sorted((set(local) | set(remote_branches)) - set(active))
        return BranchListing(active=active, inactive=inactive)

    async def is_dirty(self, project: str, branch: str) -> list[str]:
        """Return the uncommitted paths of a checkout.

        Raises:
            CheckoutNotFound: If the checkout directory does not exist
        """
        path = self.checkout_path(project, branch)
        if not path.is_dir():
            raise CheckoutNotFound(f"No checkout at {path}", project=project, branch=branch)
        return await self.git.status_paths(path)
