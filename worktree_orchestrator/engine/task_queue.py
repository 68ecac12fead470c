"""
Task queue service partitioned by checkout.

One ordered queue exists per (project, branch) key. At most one task per key
is ACTIVE at any time; ``start_next`` is idempotent while a task is active
and otherwise serves the highest non-empty priority bucket in FIFO order.

Concurrency Model:
    Every operation on a key runs under that key's lock, so two concurrent
    ``start_next`` calls for one checkout cannot both start a task. Keys are
    independent and proceed in parallel.

Persistence:
    Every mutation is appended to the key's ``QueueLog`` before the call
    returns. State is loaded lazily on first access to a key, or eagerly for
    every logged key by ``recover()`` at startup.

Pausing:
    A paused queue keeps accepting tasks but ``start_next`` starts none of
    them until it is resumed. The paused flag is persisted like any other
    mutation.

Example:
    >>> queue = TaskQueueService(QueueLog(".worktree/queues"))
    >>> await queue.enqueue("shop", "feat-cart", "T1", "Add cart", "FEATURE", "high")
    >>> task = await queue.start_next("shop", "feat-cart")
    >>> task.status
    <TaskStatus.ACTIVE: 'ACTIVE'>
"""

from datetime import UTC, datetime

import structlog

from worktree_orchestrator.engine.locks import KeyedLocks
from worktree_orchestrator.engine.queue_log import QueueLog, QueueState
from worktree_orchestrator.enums import TaskPriority, TaskStatus, TaskType
from worktree_orchestrator.exceptions import DuplicateTask, InvalidTaskTransition, TaskNotFound
from worktree_orchestrator.models.domain import QueueKey, QueueStats, Task

log = structlog.get_logger(__name__)


class TaskQueueService:
    """Per-checkout task queues with durable state.

    Constructed once per process and handed to every component that needs
    it; there is no module-level instance.
    """

    def __init__(self, queue_log: QueueLog, locks: KeyedLocks | None = None) -> None:
        """Initialize the service.

        Args:
            queue_log: Durable log used to persist every mutation
            locks: Lock registry for queue keys; a private one is created
                when omitted
        """
        self.queue_log = queue_log
        self._locks = locks or KeyedLocks()
        self._states: dict[QueueKey, QueueState] = {}

    async def _state(self, key: QueueKey) -> QueueState:
        """Return the state of a key, loading it from the log on first use.

        Caller MUST hold the key lock.
        """
        if key not in self._states:
            self._states[key] = await self.queue_log.load(key)
        return self._states[key]

    async def _persist(self, key: QueueKey, state: QueueState, entry: dict) -> None:
        """Append an entry and compact the log when it has grown too long.

        Caller MUST hold the key lock.
        """
        await self.queue_log.append(key, entry)
        if self.queue_log.needs_compaction(key):
            await self.queue_log.compact(key, state)

    @staticmethod
    def _find(state: QueueState, key: QueueKey, task_id: str) -> Task:
        task = state.tasks.get(task_id)
        if task is None:
            raise TaskNotFound(f"Task {task_id} is not queued for {key}", task_id=task_id)
        return task

    async def enqueue(
        self,
        project: str,
        branch: str,
        task_id: str,
        title: str,
        task_type: str | TaskType = TaskType.TASK,
        priority: str | int | TaskPriority = TaskPriority.MEDIUM,
    ) -> Task:
        """Append a task to the queue of a checkout.

        A queue that does not exist yet is created implicitly.

        Raises:
            DuplicateTask: If the id is already present in this queue
            ValueError: If the priority names no known priority
        """
        key = QueueKey(project, branch)
        parsed_priority = TaskPriority.parse(priority)

        async with self._locks.hold(key):
            state = await self._state(key)
            if task_id in state.tasks:
                raise DuplicateTask(f"Task {task_id} is already queued for {key}", task_id=task_id)

            state.sequence += 1
            task = Task(
                id=task_id,
                title=title,
                type=TaskType.parse(task_type),
                priority=parsed_priority,
                project=project,
                branch=branch,
                sequence=state.sequence,
            )
            state.tasks[task_id] = task
            await self._persist(key, state, {"op": "enqueue", "task": task.to_dict()})

        log.info(
            "task_enqueued",
            project=project,
            branch=branch,
            task_id=task_id,
            priority=str(parsed_priority),
            sequence=task.sequence,
        )
        return task

    async def start_next(self, project: str, branch: str) -> Task | None:
        """Start the next task of a checkout.

        Returns the already ACTIVE task unchanged when there is one.
        Otherwise the head of the highest non-empty priority bucket becomes
        ACTIVE. Returns None when nothing is pending or the queue is paused.
        """
        key = QueueKey(project, branch)

        async with self._locks.hold(key):
            state = await self._state(key)
            active = state.active()
            if active is not None:
                log.debug("task_already_active", project=project, branch=branch, task_id=active.id)
                return active

            if state.paused:
                log.debug("queue_paused_start_skipped", project=project, branch=branch)
                return None

            pending = state.pending()
            if not pending:
                return None

            task = pending[0]
            task.status = TaskStatus.ACTIVE
            task.started_at = datetime.now(UTC)
            await self._persist(key, state, {"op": "start", "task_id": task.id, "at": task.started_at.isoformat()})

        log.info("task_started", project=project, branch=branch, task_id=task.id, priority=str(task.priority))
        return task

    async def complete(self, project: str, branch: str, task_id: str, success: bool = True) -> Task:
        """Finish the active task as COMPLETED or FAILED.

        Raises:
            TaskNotFound: If the id is not in this queue
            InvalidTaskTransition: If the task is not ACTIVE
        """
        key = QueueKey(project, branch)

        async with self._locks.hold(key):
            state = await self._state(key)
            task = self._find(state, key, task_id)
            if task.status != TaskStatus.ACTIVE:
                raise InvalidTaskTransition(
                    f"Task {task_id} is {task.status}; only an ACTIVE task can be completed",
                    task_id=task_id,
                )
            await self._finish(key, state, task, TaskStatus.COMPLETED if success else TaskStatus.FAILED)

        log.info("task_completed", project=project, branch=branch, task_id=task_id, status=str(task.status))
        return task

    async def _finish(self, key: QueueKey, state: QueueState, task: Task, status: TaskStatus) -> None:
        task.status = status
        task.finished_at = datetime.now(UTC)
        await self._persist(
            key,
            state,
            {"op": "complete", "task_id": task.id, "status": status.value, "at": task.finished_at.isoformat()},
        )

    async def remove(self, project: str, branch: str, task_id: str) -> Task:
        """Remove a task whatever its status.

        Removing the ACTIVE task frees the checkout for ``start_next``.

        Raises:
            TaskNotFound: If the id is not in this queue
        """
        key = QueueKey(project, branch)

        async with self._locks.hold(key):
            state = await self._state(key)
            task = self._find(state, key, task_id)
            del state.tasks[task_id]
            await self._persist(key, state, {"op": "remove", "task_id": task_id})

        log.info("task_removed", project=project, branch=branch, task_id=task_id, status=str(task.status))
        return task

    async def cancel(self, project: str, branch: str, task_id: str) -> Task:
        """Cancel a task.

        A PENDING task is removed from the queue. An ACTIVE task is marked
        FAILED; whatever process is working on it is not touched.

        Raises:
            TaskNotFound: If the id is not in this queue
            InvalidTaskTransition: If the task already finished
        """
        key = QueueKey(project, branch)

        async with self._locks.hold(key):
            state = await self._state(key)
            task = self._find(state, key, task_id)
            if task.status.is_terminal:
                raise InvalidTaskTransition(f"Task {task_id} already finished as {task.status}", task_id=task_id)

            if task.status == TaskStatus.PENDING:
                del state.tasks[task_id]
                await self._persist(key, state, {"op": "remove", "task_id": task_id})
            else:
                await self._finish(key, state, task, TaskStatus.FAILED)

        log.info("task_cancelled", project=project, branch=branch, task_id=task_id, status=str(task.status))
        return task

    async def stats(self, project: str, branch: str) -> QueueStats:
        """Count the tasks of a queue by status."""
        key = QueueKey(project, branch)
        async with self._locks.hold(key):
            state = await self._state(key)
            counts = {status: 0 for status in TaskStatus}
            for task in state.tasks.values():
                counts[task.status] += 1

        return QueueStats(
            pending=counts[TaskStatus.PENDING],
            active=counts[TaskStatus.ACTIVE],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
        )

    async def get_tasks(self, project: str, branch: str, status: TaskStatus | None = None) -> list[Task]:
        """List the tasks of a queue in enqueue order, optionally by status."""
        key = QueueKey(project, branch)
        async with self._locks.hold(key):
            state = await self._state(key)
            tasks = sorted(state.tasks.values(), key=lambda t: t.sequence)
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        return tasks

    async def active_task(self, project: str, branch: str) -> Task | None:
        """Return the ACTIVE task of a checkout, if any."""
        key = QueueKey(project, branch)
        async with self._locks.hold(key):
            state = await self._state(key)
            return state.active()

    async def has_work(self, project: str, branch: str) -> bool:
        """Check if a checkout has an active task, or a pending one it may start."""
        key = QueueKey(project, branch)
        async with self._locks.hold(key):
            state = await self._state(key)
            return state.active() is not None or (not state.paused and bool(state.pending()))

    async def pause(self, project: str, branch: str) -> bool:
        """Stop starting new tasks on a queue.

        An already ACTIVE task is unaffected and can still be completed.

        Returns:
            True if the queue was running before the call
        """
        return await self._set_paused(QueueKey(project, branch), True)

    async def resume(self, project: str, branch: str) -> bool:
        """Let a paused queue start tasks again.

        Returns:
            True if the queue was paused before the call
        """
        return await self._set_paused(QueueKey(project, branch), False)

    async def _set_paused(self, key: QueueKey, paused: bool) -> bool:
        async with self._locks.hold(key):
            state = await self._state(key)
            if state.paused == paused:
                return False
            state.paused = paused
            await self._persist(key, state, {"op": "pause" if paused else "resume"})

        log.info("queue_paused" if paused else "queue_resumed", project=key.project, branch=key.branch)
        return True

    async def is_paused(self, project: str, branch: str) -> bool:
        key = QueueKey(project, branch)
        async with self._locks.hold(key):
            return (await self._state(key)).paused

    async def active_queues(self, project: str) -> list[str]:
        """List the branches of a project whose queue is not paused.

        Only queues with state in memory or a log on disk are considered.
        """
        branches = []
        for key in self.keys():
            if key.project == project and not await self.is_paused(key.project, key.branch):
                branches.append(key.branch)
        return sorted(branches)

    async def queue_position(self, project: str, branch: str, task_id: str) -> int | None:
        """Return how many pending tasks will start before ``task_id``.

        Returns None when the task is not pending.

        Raises:
            TaskNotFound: If the id is not in this queue
        """
        key = QueueKey(project, branch)
        async with self._locks.hold(key):
            state = await self._state(key)
            self._find(state, key, task_id)
            for position, task in enumerate(state.pending()):
                if task.id == task_id:
                    return position
        return None

    def keys(self) -> list[QueueKey]:
        """List keys with state in memory or a log on disk."""
        known = dict.fromkeys(self._states)
        known.update(dict.fromkeys(self.queue_log.keys()))
        return list(known)

    async def recover(self) -> int:
        """Load every queue that has a log on disk.

        Called once at startup so active tasks are visible before any
        checkout is touched.

        Returns:
            Number of queues loaded
        """
        loaded = 0
        for key in self.queue_log.keys():
            async with self._locks.hold(key):
                if key in self._states:
                    continue
                self._states[key] = await self.queue_log.load(key)
                loaded += 1

        log.info("queues_recovered", count=loaded)
        return loaded
