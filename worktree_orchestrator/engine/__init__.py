"""Checkout orchestration and synchronization engine.

This package routes work items to checkouts, serializes the tasks of each
checkout through a durable queue, manages the checkouts themselves and
periodically reconciles them with their remote branches.

Key Components:
    - WorktreeOrchestrator: Composition root and routing flow
    - Categorizer: Rule-based branch-name suggestions
    - CheckoutManager: Create, list and remove checkouts
    - TaskQueueService: Per-checkout task queues with at most one active task
    - QueueLog: Append-only JSON-lines persistence for the queues
    - SyncEngine: Reconciliation, conflict resolution and project health
    - KeyedLocks: Per-(project, branch) asyncio locks

Example:
    >>> from worktree_orchestrator.engine import WorktreeOrchestrator
    >>> orchestrator = WorktreeOrchestrator.from_settings(settings)
    >>> await orchestrator.startup()
    >>> records = await orchestrator.sync.sync_all()
"""

from worktree_orchestrator.engine.categorizer import Categorizer, Category, Suggestion
from worktree_orchestrator.engine.checkout_manager import CheckoutManager
from worktree_orchestrator.engine.locks import KeyedLocks
from worktree_orchestrator.engine.orchestrator import RoutedTask, WorktreeOrchestrator
from worktree_orchestrator.engine.queue_log import QueueLog, QueueState
from worktree_orchestrator.engine.sync_engine import SyncEngine, aggregate_project_status
from worktree_orchestrator.engine.task_queue import TaskQueueService

__all__ = [
    "Categorizer",
    "Category",
    "CheckoutManager",
    "KeyedLocks",
    "QueueLog",
    "QueueState",
    "RoutedTask",
    "Suggestion",
    "SyncEngine",
    "TaskQueueService",
    "WorktreeOrchestrator",
    "aggregate_project_status",
]
