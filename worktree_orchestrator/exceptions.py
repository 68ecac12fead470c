"""Custom exception hierarchy for the worktree orchestrator.

This module defines a structured exception hierarchy that lets callers tell
correctable input problems (bad branch names, busy checkouts) apart from tool
failures, and keeps the verbatim diagnostic output of the version-control tool
attached to the error for operator visibility.

Exception Hierarchy:
    WorktreeOrchestratorError (base)
    ├── ConfigurationError
    ├── GitOperationError
    ├── CheckoutError
    │   ├── InvalidBranchName
    │   ├── AlreadyExists
    │   ├── CheckoutCreationFailed
    │   ├── DirtyCheckout
    │   ├── CheckoutBusy
    │   ├── CheckoutNotFound
    │   └── ProtectedCheckout
    ├── QueueError
    │   ├── DuplicateTask
    │   ├── TaskNotFound
    │   ├── InvalidTaskTransition
    │   └── QueueCorrupted
    ├── SyncError
    └── WorkItemError

Merge conflicts are deliberately absent: a conflict is a normal sync status
(``SyncStatus.CONFLICT``), not an exception.

Example Usage:
    >>> from worktree_orchestrator.exceptions import CheckoutBusy
    >>> try:
    ...     await manager.remove_checkout("shop", "feat-cart")
    ... except CheckoutBusy as e:
    ...     print(f"drain {e.task_id} first")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from worktree_orchestrator.git.models import BranchValidation


class WorktreeOrchestratorError(Exception):
    """Base exception for all worktree orchestrator errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(WorktreeOrchestratorError):
    """Configuration-related errors.

    Raised when configuration files are invalid, missing, or contain
    incompatible settings.
    """

    pass


class GitOperationError(WorktreeOrchestratorError):
    """A git invocation failed in a way the caller has to know about.

    Attributes:
        command: The git arguments that were executed
        returncode: Exit code of the process (None on timeout)
        stderr: Verbatim diagnostic output of the tool
    """

    def __init__(
        self,
        message: str,
        command: tuple[str, ...] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


# =============================================================================
# Checkout Errors
# =============================================================================


class CheckoutError(WorktreeOrchestratorError):
    """Base exception for checkout lifecycle errors.

    Attributes:
        project: Project the checkout belongs to
        branch: Branch the checkout is bound to
    """

    def __init__(self, message: str, project: str | None = None, branch: str | None = None) -> None:
        self.project = project
        self.branch = branch
        super().__init__(message)


class InvalidBranchName(CheckoutError):
    """Branch name does not satisfy the naming rules.

    The attached validation carries the rule violations and suggested
    replacements; callers must re-validate a suggestion before using it.
    """

    def __init__(self, validation: BranchValidation, project: str | None = None) -> None:
        self.validation = validation
        message = f"Invalid branch name '{validation.name}': {'; '.join(validation.errors)}"
        if validation.suggestions:
            message = f"{message}\nSuggestion: {validation.suggestions[0]}"
        super().__init__(message, project=project, branch=validation.name)


class AlreadyExists(CheckoutError):
    """A checkout for the (project, branch) pair is already active."""

    pass


class CheckoutCreationFailed(CheckoutError):
    """The version-control tool failed to materialize a checkout.

    Attributes:
        output: Verbatim diagnostic output of the tool
    """

    def __init__(self, message: str, project: str, branch: str, output: str = "") -> None:
        self.output = output
        full_message = message
        if output:
            full_message = f"{message}\n{output.strip()}"
        super().__init__(full_message, project=project, branch=branch)
        self.message = message


class DirtyCheckout(CheckoutError):
    """Checkout has uncommitted changes and removal was not forced.

    Attributes:
        dirty_files: Paths reported as modified or untracked
    """

    def __init__(self, project: str, branch: str, dirty_files: list[str]) -> None:
        self.dirty_files = dirty_files
        super().__init__(
            f"Checkout {project}/{branch} has {len(dirty_files)} uncommitted change(s); use force to discard",
            project=project,
            branch=branch,
        )


class CheckoutBusy(CheckoutError):
    """Checkout has an active task in its queue.

    Attributes:
        task_id: Identifier of the active task
    """

    def __init__(self, project: str, branch: str, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(
            f"Checkout {project}/{branch} is busy with task {task_id}; complete or cancel it first",
            project=project,
            branch=branch,
        )


class CheckoutNotFound(CheckoutError):
    """No checkout is registered for the (project, branch) pair."""

    pass


class ProtectedCheckout(CheckoutError):
    """The primary checkout hosts the repository and cannot be removed."""

    pass


# =============================================================================
# Queue Errors
# =============================================================================


class QueueError(WorktreeOrchestratorError):
    """Base exception for task queue errors."""

    def __init__(self, message: str, task_id: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message)


class DuplicateTask(QueueError):
    """Task id is already present in the queue for this checkout."""

    pass


class TaskNotFound(QueueError):
    """Task id is not present in the queue for this checkout."""

    pass


class InvalidTaskTransition(QueueError):
    """Requested status change is not allowed from the task's current status."""

    pass


class QueueCorrupted(QueueError):
    """Durable queue log could not be parsed.

    Never surfaced to callers: the queue log quarantines the file, logs
    the error and treats the queue as empty.

    Attributes:
        path: Location of the corrupted log
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


# =============================================================================
# Sync Errors
# =============================================================================


class SyncError(WorktreeOrchestratorError):
    """Network or tool failure while reconciling a checkout.

    The sync engine converts this into an ``ERROR`` sync record for the
    affected pair; it never aborts a sweep.

    Attributes:
        project: Project being synced
        branch: Branch being synced
        output: Verbatim diagnostic output of the tool
    """

    def __init__(self, message: str, project: str, branch: str, output: str = "") -> None:
        self.project = project
        self.branch = branch
        self.output = output
        super().__init__(message)


# =============================================================================
# Work Item Errors
# =============================================================================


class WorkItemError(WorktreeOrchestratorError):
    """A work item file could not be read or lacks required metadata.

    Attributes:
        path: Location of the work item file
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)
