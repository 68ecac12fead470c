"""
Worktree orchestrator wiring and routing.

This module provides the WorktreeOrchestrator class, the composition root of
the engine. It constructs each service exactly once and passes them to each
other by reference, then implements the routing flow that spans them:

    work item -> categorizer suggests a branch -> task queue enqueues it
    -> start_next materializes the checkout if missing -> task becomes ACTIVE

The sync engine runs independently on its own timer and shares the
checkout locks with the checkout manager.

Example:
    >>> orchestrator = WorktreeOrchestrator.from_settings(settings)
    >>> await orchestrator.startup()
    >>> routed = await orchestrator.route_work_item("shop", work_item)
    >>> task = await orchestrator.start_next("shop", routed.branch)
"""

from dataclasses import dataclass
from typing import Any

import structlog

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.engine.categorizer import Categorizer, Suggestion
from worktree_orchestrator.engine.checkout_manager import CheckoutManager
from worktree_orchestrator.engine.locks import KeyedLocks
from worktree_orchestrator.engine.queue_log import QueueLog
from worktree_orchestrator.engine.sync_engine import SyncEngine
from worktree_orchestrator.engine.task_queue import TaskQueueService
from worktree_orchestrator.enums import CheckoutStatus
from worktree_orchestrator.exceptions import InvalidBranchName
from worktree_orchestrator.git.commands import GitRunner
from worktree_orchestrator.git.paths import validate_branch_name
from worktree_orchestrator.models.domain import QueueKey, Task
from worktree_orchestrator.work_items import WorkItem

log = structlog.get_logger(__name__)


@dataclass
class RoutedTask:
    """A work item queued against a checkout.

    Attributes:
        task: The enqueued task
        branch: Branch of the checkout the task was routed to
        suggestion: Categorizer output, None when the branch was given
    """

    task: Task
    branch: str
    suggestion: Suggestion | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "branch": self.branch,
            "suggestion": self.suggestion.to_dict() if self.suggestion else None,
        }


class WorktreeOrchestrator:
    """Route work items to checkouts and start their tasks.

    Attributes:
        settings: Orchestrator settings
        git: Git command adapter shared by all services
        checkouts: Checkout manager
        queue: Task queue service
        sync: Sync engine
        categorizer: Branch-name categorizer
    """

    def __init__(
        self,
        settings: OrchestratorSettings,
        git: GitRunner,
        checkouts: CheckoutManager,
        queue: TaskQueueService,
        sync: SyncEngine,
        categorizer: Categorizer,
    ) -> None:
        self.settings = settings
        self.git = git
        self.checkouts = checkouts
        self.queue = queue
        self.sync = sync
        self.categorizer = categorizer

    @classmethod
    def from_settings(cls, settings: OrchestratorSettings) -> "WorktreeOrchestrator":
        """Construct every service once and wire them together."""
        git = GitRunner(
            executable=settings.git.executable,
            command_timeout=settings.git.command_timeout,
            fetch_timeout=settings.git.fetch_timeout,
        )
        checkout_locks = KeyedLocks()
        queue = TaskQueueService(QueueLog(settings.queue_dir, compact_after=settings.queue.compact_after))
        checkouts = CheckoutManager(settings, git, checkout_locks, queue)
        sync = SyncEngine(settings, git, checkouts, checkout_locks)
        return cls(settings, git, checkouts, queue, sync, Categorizer.from_config(settings))

    async def startup(self) -> None:
        """Create the checkout root and replay persisted queues."""
        await self.checkouts.initialize()
        await self.queue.recover()

    async def existing_branch_names(self, project: str) -> set[str]:
        """Branch names already taken in a project.

        Includes repository branches and branches that only have a queue so
        far, so two work items are never routed to one fresh name.
        """
        names: set[str] = set()
        if self.checkouts.project_exists(project):
            listing = await self.checkouts.list_branches(project)
            names.update(listing.active)
            names.update(listing.inactive)
        names.update(key.branch for key in self.queue.keys() if key.project == project)
        return names

    async def suggest_branch(self, project: str, item: WorkItem) -> Suggestion:
        existing = await self.existing_branch_names(project)
        return self.categorizer.suggest(
            item.title,
            item.description,
            item.type,
            item.functional_area,
            existing_names=existing,
        )

    async def route_work_item(self, project: str, item: WorkItem, branch: str | None = None) -> RoutedTask:
        """Enqueue a work item against a checkout.

        An explicit branch (argument, else the work item's own) is validated
        and used as is; otherwise the categorizer picks an unused name.

        Raises:
            InvalidBranchName: If the explicit branch breaks the naming rules
            DuplicateTask: If the work item is already queued on that branch
        """
        target = branch or item.branch
        suggestion = None

        if target:
            validation = validate_branch_name(target, self.settings.checkouts.max_branch_length)
            if not validation.is_valid:
                raise InvalidBranchName(validation, project=project)
        else:
            suggestion = await self.suggest_branch(project, item)
            target = suggestion.branch_name

        task = await self.queue.enqueue(project, target, item.id, item.title, item.type, item.priority)
        log.info(
            "work_item_routed",
            project=project,
            branch=target,
            task_id=item.id,
            category=suggestion.category.id if suggestion else None,
        )
        return RoutedTask(task=task, branch=target, suggestion=suggestion)

    async def start_next(self, project: str, branch: str, base_branch: str | None = None) -> Task | None:
        """Start the next task of a checkout, creating the checkout first if needed.

        Returns None without touching the repository when nothing is queued.
        The checkout lock is held from the existence check until the task is
        ACTIVE, so a concurrent ``remove_checkout`` either runs first (and the
        checkout is created again) or sees the ACTIVE task and refuses.

        Raises:
            CheckoutError: If the checkout cannot be created
        """
        async with self.checkouts.locks.hold(QueueKey(project, branch)):
            if not await self.queue.has_work(project, branch):
                return None

            checkout = await self.checkouts.get_checkout(project, branch)
            if checkout is None or checkout.status != CheckoutStatus.ACTIVE:
                await self.checkouts.materialize(project, branch, base_branch)

            return await self.queue.start_next(project, branch)

    async def complete(self, project: str, branch: str, task_id: str, success: bool = True) -> Task:
        return await self.queue.complete(project, branch, task_id, success)

    async def cancel(self, project: str, branch: str, task_id: str) -> Task:
        return await self.queue.cancel(project, branch, task_id)
