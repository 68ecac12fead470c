"""Tests for the exception hierarchy."""

import pytest

from worktree_orchestrator.exceptions import (
    AlreadyExists,
    CheckoutBusy,
    CheckoutCreationFailed,
    CheckoutError,
    CheckoutNotFound,
    ConfigurationError,
    DirtyCheckout,
    DuplicateTask,
    GitOperationError,
    InvalidBranchName,
    InvalidTaskTransition,
    ProtectedCheckout,
    QueueCorrupted,
    QueueError,
    SyncError,
    TaskNotFound,
    WorkItemError,
    WorktreeOrchestratorError,
)
from worktree_orchestrator.git.paths import validate_branch_name


class TestHierarchy:
    """Every error derives from WorktreeOrchestratorError."""

    @pytest.mark.parametrize(
        "exc_class,parent",
        [
            (ConfigurationError, WorktreeOrchestratorError),
            (GitOperationError, WorktreeOrchestratorError),
            (CheckoutError, WorktreeOrchestratorError),
            (AlreadyExists, CheckoutError),
            (CheckoutCreationFailed, CheckoutError),
            (DirtyCheckout, CheckoutError),
            (CheckoutBusy, CheckoutError),
            (CheckoutNotFound, CheckoutError),
            (ProtectedCheckout, CheckoutError),
            (InvalidBranchName, CheckoutError),
            (QueueError, WorktreeOrchestratorError),
            (DuplicateTask, QueueError),
            (TaskNotFound, QueueError),
            (InvalidTaskTransition, QueueError),
            (QueueCorrupted, QueueError),
            (SyncError, WorktreeOrchestratorError),
            (WorkItemError, WorktreeOrchestratorError),
        ],
    )
    def test_subclass(self, exc_class, parent):
        assert issubclass(exc_class, parent)


class TestMessages:
    def test_base_keeps_message(self):
        error = WorktreeOrchestratorError("boom")

        assert error.message == "boom"
        assert str(error) == "boom"

    def test_invalid_branch_name_carries_suggestion(self):
        validation = validate_branch_name("Fix Login Bug!!")
        error = InvalidBranchName(validation, project="shop")

        assert error.validation is validation
        assert error.branch == "Fix Login Bug!!"
        assert "Suggestion: fix-login-bug" in error.message

    def test_creation_failed_appends_tool_output(self):
        error = CheckoutCreationFailed(
            "git worktree add failed",
            project="shop",
            branch="feat-cart",
            output="fatal: invalid reference: nope\n",
        )

        assert error.message == "git worktree add failed"
        assert str(error).endswith("fatal: invalid reference: nope")
        assert error.output.startswith("fatal:")

    def test_dirty_checkout_lists_files(self):
        error = DirtyCheckout("shop", "feat-cart", ["a.txt", "b.txt"])

        assert error.dirty_files == ["a.txt", "b.txt"]
        assert "2 uncommitted change(s)" in error.message

    def test_busy_names_task(self):
        error = CheckoutBusy("shop", "feat-cart", "T-1")

        assert error.task_id == "T-1"
        assert "T-1" in str(error)

    def test_git_operation_error_fields(self):
        error = GitOperationError("fatal: x", command=("status",), returncode=128, stderr="fatal: x\n")

        assert error.command == ("status",)
        assert error.returncode == 128
        assert error.stderr == "fatal: x\n"

    def test_sync_error_fields(self):
        error = SyncError("fetch failed", "shop", "main", output="could not resolve host")

        assert (error.project, error.branch) == ("shop", "main")
        assert error.output == "could not resolve host"
