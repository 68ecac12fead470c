"""Git adapter data models.

Structured results of git invocations. Nothing outside
``worktree_orchestrator.git`` looks at raw command output: callers receive
these objects instead.

Example:
    >>> from worktree_orchestrator.git.models import BranchValidation
    >>> result = BranchValidation(name="feat-cart", is_valid=True, normalized_name="feat-cart")
    >>> result.is_valid
    True
"""

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class GitResult:
    """Outcome of one git invocation.

    Attributes:
        args: Arguments passed to git (without the executable)
        returncode: Process exit code, None when the command timed out
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: Whether the command was killed after its timeout
    """

    args: tuple[str, ...]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """Return True when the command exited with status 0."""
        return not self.timed_out and self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """Return the tool's diagnostic text for operator display."""
        if self.timed_out:
            return f"git {' '.join(self.args)} timed out"
        text = self.stderr.strip() or self.stdout.strip()
        return text or f"git {' '.join(self.args)} exited with status {self.returncode}"


@dataclass(frozen=True)
class WorktreeEntry:
    """One record of ``git worktree list --porcelain``.

    Attributes:
        path: Absolute path of the working directory
        head: Commit checked out, empty for bare entries
        branch: Short branch name, None when detached or bare
        bare: Entry is the bare repository itself
        prunable: git reports the directory as missing
    """

    path: Path
    head: str = ""
    branch: str | None = None
    bare: bool = False
    prunable: bool = False
    locked: bool = False


@dataclass(frozen=True)
class AheadBehind:
    """Commit counts between a local branch and its remote counterpart."""

    ahead: int = 0
    behind: int = 0

    @property
    def diverged(self) -> bool:
        """Return True when both sides have commits the other lacks."""
        return self.ahead > 0 and self.behind > 0


@dataclass(frozen=True)
class MergeOutcome:
    """Result of merging the remote branch into a checkout.

    Attributes:
        merged: Merge completed (fast-forward or merge commit)
        conflict_files: Paths left with conflict markers
        result: Underlying git invocation
    """

    merged: bool
    conflict_files: list[str] = field(default_factory=list)
    result: GitResult | None = None


class BranchValidation(BaseModel):
    """Result of validating a branch name.

    Attributes:
        name: The name as given by the caller
        is_valid: Whether the name satisfies every rule
        normalized_name: Candidate obtained by normalizing the name
        errors: Human-readable rule violations
        suggestions: Replacement names, each matching ``^[a-z0-9-]+$``
    """

    name: str
    is_valid: bool
    normalized_name: str
    errors: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
