"""Tests for the durable queue log."""

import json
from pathlib import Path

import pytest

from worktree_orchestrator.engine.queue_log import QueueLog, QueueState
from worktree_orchestrator.enums import TaskPriority, TaskStatus, TaskType
from worktree_orchestrator.models.domain import QueueKey, Task

KEY = QueueKey("shop", "feat-cart")


def make_task(task_id: str, sequence: int, priority: TaskPriority = TaskPriority.MEDIUM) -> Task:
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        type=TaskType.FEATURE,
        priority=priority,
        project=KEY.project,
        branch=KEY.branch,
        sequence=sequence,
    )


def enqueue_entry(task: Task) -> dict:
    return {"op": "enqueue", "task": task.to_dict()}


class TestPaths:
    """Tests for log file naming."""

    def test_path_layout(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path)
        assert queue_log.path_for(KEY) == tmp_path / "shop" / "feat-cart.jsonl"

    def test_names_are_encoded(self, tmp_path: Path):
        """Test odd names stay inside the state directory."""
        queue_log = QueueLog(tmp_path)
        path = queue_log.path_for(QueueKey("../etc", "a/b"))

        assert path.parent.parent == tmp_path
        assert "/" not in path.name

    @pytest.mark.asyncio
    async def test_keys_round_trip_names(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path)
        odd = QueueKey("my project", "a/b")
        await queue_log.append(odd, enqueue_entry(make_task("T1", 1)))
        await queue_log.append(KEY, enqueue_entry(make_task("T1", 1)))

        assert set(queue_log.keys()) == {odd, KEY}

    def test_keys_without_directory(self, tmp_path: Path):
        assert QueueLog(tmp_path / "missing").keys() == []


class TestLoad:
    """Tests for replaying logs."""

    @pytest.mark.asyncio
    async def test_missing_log_is_empty(self, tmp_path: Path):
        state = await QueueLog(tmp_path).load(KEY)

        assert state.tasks == {}
        assert state.sequence == 0

    @pytest.mark.asyncio
    async def test_replays_all_operations(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path)
        for entry in [
            enqueue_entry(make_task("T1", 1)),
            enqueue_entry(make_task("T2", 2)),
            enqueue_entry(make_task("T3", 3)),
            {"op": "start", "task_id": "T1", "at": "2024-01-15T10:30:00+00:00"},
            {"op": "complete", "task_id": "T1", "status": "COMPLETED", "at": "2024-01-15T11:00:00+00:00"},
            {"op": "remove", "task_id": "T2"},
        ]:
            await queue_log.append(KEY, entry)

        state = await QueueLog(tmp_path).load(KEY)

        assert list(state.tasks) == ["T1", "T3"]
        assert state.tasks["T1"].status == TaskStatus.COMPLETED
        assert state.tasks["T1"].finished_at is not None
        assert state.tasks["T3"].status == TaskStatus.PENDING
        assert state.sequence == 3

    @pytest.mark.asyncio
    async def test_corrupt_log_is_quarantined(self, tmp_path: Path):
        """Test an unreadable log yields an empty queue and is moved aside."""
        queue_log = QueueLog(tmp_path)
        path = queue_log.path_for(KEY)
        path.parent.mkdir(parents=True)
        path.write_text("this is not json\n")

        state = await queue_log.load(KEY)

        assert state.tasks == {}
        assert not path.exists()
        assert path.with_name("feat-cart.jsonl.corrupt").read_text() == "this is not json\n"

    @pytest.mark.asyncio
    async def test_unknown_operation_is_corruption(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path)
        path = queue_log.path_for(KEY)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"op": "explode"}) + "\n")

        state = await queue_log.load(KEY)

        assert state.tasks == {}
        assert path.with_name("feat-cart.jsonl.corrupt").exists()

    @pytest.mark.asyncio
    async def test_truncated_tail_is_dropped(self, tmp_path: Path):
        """Test an interrupted final append loses only that entry."""
        queue_log = QueueLog(tmp_path)
        await queue_log.append(KEY, enqueue_entry(make_task("T1", 1)))
        path = queue_log.path_for(KEY)
        with path.open("a") as f:
            f.write('{"op": "enqueue", "task": {"id": "T2"')

        state = await QueueLog(tmp_path).load(KEY)

        assert list(state.tasks) == ["T1"]
        assert path.read_text().endswith("\n")
        assert len(path.read_text().splitlines()) == 1

    @pytest.mark.asyncio
    async def test_appends_after_truncated_tail_are_readable(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path)
        await queue_log.append(KEY, enqueue_entry(make_task("T1", 1)))
        with queue_log.path_for(KEY).open("a") as f:
            f.write('{"op": "sta')

        reloaded = QueueLog(tmp_path)
        await reloaded.load(KEY)
        await reloaded.append(KEY, enqueue_entry(make_task("T2", 2)))

        state = await QueueLog(tmp_path).load(KEY)
        assert list(state.tasks) == ["T1", "T2"]


class TestCompaction:
    """Tests for snapshot compaction."""

    @pytest.mark.asyncio
    async def test_needs_compaction_after_threshold(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path, compact_after=2)

        assert await queue_log.append(KEY, enqueue_entry(make_task("T1", 1))) == 1
        assert not queue_log.needs_compaction(KEY)
        assert await queue_log.append(KEY, enqueue_entry(make_task("T2", 2))) == 2
        assert queue_log.needs_compaction(KEY)

    @pytest.mark.asyncio
    async def test_compact_writes_single_snapshot(self, tmp_path: Path):
        queue_log = QueueLog(tmp_path, compact_after=2)
        state = QueueState()
        for sequence, task_id in enumerate(["T1", "T2", "T3"], start=1):
            task = make_task(task_id, sequence, TaskPriority.HIGH)
            state.tasks[task_id] = task
            state.sequence = sequence
            await queue_log.append(KEY, enqueue_entry(task))

        await queue_log.compact(KEY, state)

        lines = queue_log.path_for(KEY).read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["op"] == "snapshot"
        assert not queue_log.needs_compaction(KEY)
        assert not queue_log.path_for(KEY).with_suffix(".tmp").exists()

        reloaded = await QueueLog(tmp_path).load(KEY)
        assert list(reloaded.tasks) == ["T1", "T2", "T3"]
        assert reloaded.sequence == 3
        assert reloaded.tasks["T2"].priority == TaskPriority.HIGH


class TestQueueState:
    def test_pending_order(self):
        state = QueueState()
        state.tasks = {
            "A": make_task("A", 1, TaskPriority.MEDIUM),
            "B": make_task("B", 2, TaskPriority.HIGH),
            "C": make_task("C", 3, TaskPriority.MEDIUM),
        }

        assert [t.id for t in state.pending()] == ["B", "A", "C"]

    def test_active(self):
        state = QueueState()
        task = make_task("A", 1)
        state.tasks["A"] = task
        assert state.active() is None

        task.status = TaskStatus.ACTIVE
        assert state.active() is task
