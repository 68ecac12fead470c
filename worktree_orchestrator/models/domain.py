"""
Domain models for the worktree orchestrator.

This module contains the data classes representing the core entities of the
orchestrator: projects, checkouts, queued tasks and sync records. They are
the structured records every public operation returns; raw tool output
only ever appears inside a ``message`` field for operator display.

Example:
    Describing a freshly created checkout::

        checkout = Checkout(
            project="shop",
            branch="feat-cart",
            path=Path("repositories/shop/feat-cart"),
            status=CheckoutStatus.ACTIVE,
        )
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from worktree_orchestrator.enums import CheckoutStatus, SyncStatus, TaskPriority, TaskStatus, TaskType


def utcnow() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class QueueKey:
    """Identifies one checkout and the queue partition belonging to it."""

    project: str
    branch: str

    def __str__(self) -> str:
        return f"{self.project}/{self.branch}"


@dataclass
class Project:
    """A named repository under the checkout root.

    The primary checkout at ``<root>/<name>/<default_branch>`` hosts the
    repository; every other checkout of the project is a worktree of it.
    """

    name: str
    """Project directory name."""

    default_branch: str
    """Branch of the primary checkout."""

    path: Path
    """Project directory, ``<root>/<name>``."""

    @property
    def primary_path(self) -> Path:
        """Path of the checkout hosting the repository."""
        return self.path / self.default_branch


@dataclass
class Checkout:
    """One working directory bound to a single branch of a project.

    The path is always ``resolve_path(root, project, branch)``; it is
    carried here for convenience, never chosen independently.
    """

    project: str
    branch: str
    path: Path
    status: CheckoutStatus = CheckoutStatus.ACTIVE
    created_at: datetime | None = None
    """Directory creation time when known."""

    @property
    def key(self) -> QueueKey:
        return QueueKey(self.project, self.branch)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "branch": self.branch,
            "path": str(self.path),
            "status": str(self.status),
            "created_at": _isoformat(self.created_at),
        }


@dataclass
class Task:
    """A unit of work performed inside exactly one checkout.

    Status transitions are driven only by the task queue service:
    PENDING -> ACTIVE -> COMPLETED | FAILED. A PENDING task may also be
    removed outright.
    """

    id: str
    """Caller-supplied identifier, unique within its queue."""

    title: str
    type: TaskType
    priority: TaskPriority
    project: str
    branch: str

    sequence: int
    """Monotonic enqueue counter of the queue; orders tasks within a bucket."""

    status: TaskStatus = TaskStatus.PENDING
    enqueued_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def key(self) -> QueueKey:
        return QueueKey(self.project, self.branch)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the queue log and CLI output."""
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "priority": str(self.priority),
            "project": self.project,
            "branch": self.branch,
            "sequence": self.sequence,
            "status": self.status.value,
            "enqueued_at": self.enqueued_at.isoformat(),
            "started_at": _isoformat(self.started_at),
            "finished_at": _isoformat(self.finished_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Rebuild a task from ``to_dict`` output.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field holds an unknown value
        """

        def parse_time(value: str | None) -> datetime | None:
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            type=TaskType(data["type"]),
            priority=TaskPriority.parse(data["priority"]),
            project=str(data["project"]),
            branch=str(data["branch"]),
            sequence=int(data["sequence"]),
            status=TaskStatus(data["status"]),
            enqueued_at=datetime.fromisoformat(data["enqueued_at"]),
            started_at=parse_time(data.get("started_at")),
            finished_at=parse_time(data.get("finished_at")),
        )


@dataclass(frozen=True)
class QueueStats:
    """Task counts of one queue by status."""

    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
        }


@dataclass
class BranchListing:
    """Branches of a project split by whether a checkout exists.

    ``inactive`` branches are known to the repository (locally or on the
    remote) but have no checkout, so they are available for reuse.
    """

    active: list[str] = field(default_factory=list)
    inactive: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"active": self.active, "inactive": self.inactive}


class SyncRecord(BaseModel):
    """Reconciliation result of one checkout.

    Each sync cycle produces a fresh record that fully replaces the previous
    one; records are never patched in place.
    """

    project: str
    branch: str
    status: SyncStatus = SyncStatus.UNKNOWN
    message: str = ""
    conflict_files: list[str] = Field(default_factory=list)
    last_sync: datetime = Field(default_factory=utcnow)
    needs_attention: bool = False
    ahead: int = 0
    behind: int = 0

    @model_validator(mode="after")
    def validate_conflict_files(self) -> "SyncRecord":
        """Only a CONFLICT record lists conflicting files."""
        if self.conflict_files and self.status != SyncStatus.CONFLICT:
            raise ValueError(f"conflict_files must be empty for status {self.status.value}, got: {self.conflict_files}")
        return self

    @property
    def key(self) -> QueueKey:
        return QueueKey(self.project, self.branch)


class ResolutionResult(BaseModel):
    """Outcome of a conflict resolution attempt.

    Attributes:
        success: Every conflicted file was resolved and the merge committed
        strategy: Strategy that was applied
        resolved_files: Files resolved by this attempt
        record: Sync record after the attempt
    """

    success: bool
    strategy: str
    resolved_files: list[str] = Field(default_factory=list)
    record: SyncRecord
