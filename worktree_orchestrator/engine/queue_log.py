"""
Durable append-only log for task queues.

Each (project, branch) queue is persisted as a JSON-lines file at
``<state_dir>/<project>/<branch>.jsonl``. Every mutation appends one entry;
once a log holds ``compact_after`` entries it is rewritten as a single
snapshot entry.

Log Entry Format:
    One JSON object per line, discriminated by ``op``::

        {"op": "enqueue", "task": {...Task.to_dict()...}}
        {"op": "start", "task_id": "T1", "at": "2024-01-15T10:30:00+00:00"}
        {"op": "complete", "task_id": "T1", "status": "COMPLETED", "at": "..."}
        {"op": "remove", "task_id": "T2"}
        {"op": "pause"}
        {"op": "resume"}
        {"op": "snapshot", "sequence": 7, "paused": false, "tasks": [{...}, ...]}

Recovery:
    A missing log is an empty queue. A log that cannot be replayed is logged
    as ``queue_log_corrupted``, moved aside to ``<branch>.jsonl.corrupt`` and
    also treated as an empty queue. A final line without its trailing newline
    that does not parse is an interrupted append: it alone is dropped and the
    log is compacted.

Atomicity:
    Compaction writes the snapshot to a ``.tmp`` file and renames it over the
    log, so a crash leaves either the old log or the new snapshot.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

import aiofiles
import structlog

from worktree_orchestrator.enums import TaskStatus
from worktree_orchestrator.exceptions import QueueCorrupted
from worktree_orchestrator.models.domain import QueueKey, Task

log = structlog.get_logger(__name__)

LOG_SUFFIX = ".jsonl"


@dataclass
class QueueState:
    """In-memory state of one queue.

    Attributes:
        tasks: Tasks by id, in enqueue order
        sequence: Last sequence number handed out
        paused: No new task is started while set
    """

    tasks: dict[str, Task] = field(default_factory=dict)
    sequence: int = 0
    paused: bool = False

    def active(self) -> Task | None:
        for task in self.tasks.values():
            if task.status == TaskStatus.ACTIVE:
                return task
        return None

    def pending(self) -> list[Task]:
        """Pending tasks in service order: highest priority first, FIFO within a priority."""
        waiting = [t for t in self.tasks.values() if t.status == TaskStatus.PENDING]
        return sorted(waiting, key=lambda t: (-int(t.priority), t.sequence))

    def snapshot(self) -> dict[str, Any]:
        return {
            "op": "snapshot",
            "sequence": self.sequence,
            "paused": self.paused,
            "tasks": [task.to_dict() for task in self.tasks.values()],
        }


class QueueLog:
    """Append-only JSON-lines persistence for task queues.

    Attributes:
        state_dir: Directory holding one sub-directory per project
        compact_after: Entry count that triggers compaction
    """

    def __init__(self, state_dir: str | Path, compact_after: int = 50) -> None:
        self.state_dir = Path(state_dir)
        self.compact_after = compact_after
        # Entries currently in each log file
        self._entries: dict[QueueKey, int] = {}

    def path_for(self, key: QueueKey) -> Path:
        """Compute the log file of a queue.

        Names are percent-encoded so any project or branch string maps to a
        single file inside ``state_dir``.
        """
        return self.state_dir / quote(key.project, safe="") / f"{quote(key.branch, safe='')}{LOG_SUFFIX}"

    def keys(self) -> list[QueueKey]:
        """List the queues that have a log on disk."""
        if not self.state_dir.is_dir():
            return []
        found: list[QueueKey] = []
        for path in sorted(self.state_dir.glob(f"*/*{LOG_SUFFIX}")):
            branch = path.name[: -len(LOG_SUFFIX)]
            found.append(QueueKey(unquote(path.parent.name), unquote(branch)))
        return found

    async def load(self, key: QueueKey) -> QueueState:
        """Replay the log of a queue.

        Never raises for log content: missing and corrupted logs both yield
        an empty state.
        """
        path = self.path_for(key)
        if not path.exists():
            self._entries[key] = 0
            return QueueState()

        async with aiofiles.open(path) as f:
            content = await f.read()

        try:
            state, entries = self._replay(content, path)
        except QueueCorrupted as e:
            quarantine = path.with_name(path.name + ".corrupt")
            log.error(
                "queue_log_corrupted",
                project=key.project,
                branch=key.branch,
                path=str(path),
                quarantine=str(quarantine),
                error=e.message,
            )
            path.replace(quarantine)
            self._entries[key] = 0
            return QueueState()

        self._entries[key] = entries
        if content and not content.endswith("\n"):
            # Later appends must not land on the interrupted line
            await self.compact(key, state)
        log.debug("queue_log_loaded", project=key.project, branch=key.branch, tasks=len(state.tasks))
        return state

    def _replay(self, content: str, path: Path) -> tuple[QueueState, int]:
        """Rebuild queue state from log content.

        Returns:
            Tuple of (state, number of entries replayed)

        Raises:
            QueueCorrupted: If an entry cannot be parsed or applied
        """
        lines = content.split("\n")
        # Content ending in a newline leaves one empty trailing element
        complete_lines, tail = lines[:-1], lines[-1]
        state = QueueState()
        entries = 0

        for number, line in enumerate(complete_lines, start=1):
            if not line.strip():
                continue
            try:
                self._apply(state, json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise QueueCorrupted(f"Line {number}: {e}", path=str(path)) from e
            entries += 1

        if tail.strip():
            try:
                self._apply(state, json.loads(tail))
                entries += 1
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                log.warning("queue_log_truncated_entry", path=str(path), line=len(complete_lines) + 1)

        return state, entries

    @staticmethod
    def _apply(state: QueueState, entry: dict[str, Any]) -> None:
        op = entry["op"]

        if op == "snapshot":
            tasks = [Task.from_dict(item) for item in entry["tasks"]]
            state.tasks = {task.id: task for task in tasks}
            state.sequence = int(entry["sequence"])
            state.paused = bool(entry.get("paused", False))
        elif op == "enqueue":
            task = Task.from_dict(entry["task"])
            state.tasks[task.id] = task
            state.sequence = max(state.sequence, task.sequence)
        elif op == "start":
            task = state.tasks[entry["task_id"]]
            task.status = TaskStatus.ACTIVE
            task.started_at = datetime.fromisoformat(entry["at"])
        elif op == "complete":
            task = state.tasks[entry["task_id"]]
            task.status = TaskStatus(entry["status"])
            task.finished_at = datetime.fromisoformat(entry["at"])
        elif op == "remove":
            del state.tasks[entry["task_id"]]
        elif op in ("pause", "resume"):
            state.paused = op == "pause"
        else:
            raise ValueError(f"Unknown log operation: {op!r}")

    async def append(self, key: QueueKey, entry: dict[str, Any]) -> int:
        """Append one entry to a queue's log.

        Returns:
            Number of entries now in the log
        """
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(path, "a") as f:
            await f.write(json.dumps(entry) + "\n")

        count = self._entries.get(key, 0) + 1
        self._entries[key] = count
        return count

    def needs_compaction(self, key: QueueKey) -> bool:
        return self._entries.get(key, 0) >= self.compact_after

    async def compact(self, key: QueueKey, state: QueueState) -> None:
        """Replace a queue's log with a single snapshot entry."""
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(state.snapshot()) + "\n")

        # Atomic rename - safe on POSIX when same filesystem
        tmp_path.replace(path)

        previous = self._entries.get(key, 0)
        self._entries[key] = 1
        log.info("queue_log_compacted", project=key.project, branch=key.branch, entries=previous)
