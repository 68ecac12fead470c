"""Enumerations for checkout, task and sync state."""

from enum import Enum


class CheckoutStatus(str, Enum):
    """Lifecycle of a checkout.

    - ACTIVE: registered with git and present on disk
    - INACTIVE: registered with git but the directory is gone
    - REMOVED: removed by the checkout manager
    """

    INACTIVE = "INACTIVE"
    ACTIVE = "ACTIVE"
    REMOVED = "REMOVED"

    def __str__(self) -> str:
        return self.value


class TaskStatus(str, Enum):
    """Queue status of a task. COMPLETED and FAILED are terminal."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is allowed."""
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class TaskType(str, Enum):
    """Kinds of work items routed to checkouts."""

    FEATURE = "FEATURE"
    BUG = "BUG"
    EPIC = "EPIC"
    STORY = "STORY"
    TASK = "TASK"
    SUBTASK = "SUBTASK"
    CHORE = "CHORE"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | TaskType") -> "TaskType":
        """Parse a case-insensitive type name, defaulting to TASK."""
        if isinstance(value, TaskType):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.TASK


class TaskPriority(int, Enum):
    """Priority buckets, higher value is served first."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4
    CRITICAL = 5

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | int | TaskPriority") -> "TaskPriority":
        """Parse a priority from its name (any case) or numeric value.

        Raises:
            ValueError: If the value names no priority
        """
        if isinstance(value, TaskPriority):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError as e:
            valid = ", ".join(p.name.lower() for p in cls)
            raise ValueError(f"Unknown priority '{value}'. Valid: {valid}") from e


class SyncStatus(str, Enum):
    """Reconciliation status of a checkout against its remote branch."""

    UNKNOWN = "UNKNOWN"
    SYNCED = "SYNCED"
    PENDING = "PENDING"
    CONFLICT = "CONFLICT"
    ERROR = "ERROR"

    def __str__(self) -> str:
        return self.value


class ProjectHealth(str, Enum):
    """Project-level aggregate of all sync records."""

    ERROR = "error"
    CONFLICT = "conflict"
    ATTENTION = "attention"
    SYNCED = "synced"
    PENDING = "pending"

    def __str__(self) -> str:
        return self.value


class ResolutionStrategy(str, Enum):
    """Conflict resolution strategies.

    - auto-merge: content-level three-way merge of each conflicted file,
      files with overlapping hunks stay conflicted
    - prefer-local: keep the local side of every conflicted file
    - prefer-remote: take the remote side of every conflicted file
    - manual-review: resolve nothing, leave the files for an operator
    """

    AUTO_MERGE = "auto-merge"
    PREFER_LOCAL = "prefer-local"
    PREFER_REMOTE = "prefer-remote"
    MANUAL_REVIEW = "manual-review"

    def __str__(self) -> str:
        return self.value
