"""Pytest configuration and shared fixtures."""

import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.engine.locks import KeyedLocks
from worktree_orchestrator.engine.queue_log import QueueLog
from worktree_orchestrator.engine.task_queue import TaskQueueService
from worktree_orchestrator.git.commands import GitRunner


def run_git(*args: str, cwd: Path) -> str:
    """Run git synchronously for test setup and return stdout."""
    result = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    """Write a file in ``repo`` and commit it."""
    (repo / name).write_text(content)
    run_git("add", name, cwd=repo)
    run_git("commit", "-m", message, cwd=repo)


@dataclass
class GitProject:
    """A bare remote, a scratch clone for pushing, and the primary checkout."""

    name: str
    remote: Path
    seed: Path
    primary: Path

    def push_commit(self, branch: str, name: str, content: str, message: str = "Remote change") -> None:
        """Commit on ``branch`` from the scratch clone and push it to the remote."""
        run_git("fetch", "origin", cwd=self.seed)
        remote_refs = run_git("branch", "-r", cwd=self.seed)
        start = f"origin/{branch}" if f"origin/{branch}" in remote_refs else "main"
        run_git("checkout", "-B", branch, start, cwd=self.seed)
        commit_file(self.seed, name, content, message)
        run_git("push", "origin", branch, cwd=self.seed)

    @staticmethod
    def git(*args: str, cwd: Path) -> str:
        return run_git(*args, cwd=cwd)

    @staticmethod
    def commit_in(checkout: Path, name: str, content: str, message: str = "Local change") -> None:
        """Commit a file inside one of the orchestrator's checkouts."""
        commit_file(checkout, name, content, message)


@pytest.fixture(autouse=True)
def git_identity(monkeypatch):
    """Give git a committer identity without touching global config."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


@pytest.fixture
def checkout_root(tmp_path: Path) -> Path:
    """Hierarchical checkout root."""
    return tmp_path / "repositories"


@pytest.fixture
def queue_dir(tmp_path: Path) -> Path:
    """Queue log directory."""
    return tmp_path / "queues"


@pytest.fixture
def settings(checkout_root: Path, queue_dir: Path) -> OrchestratorSettings:
    """Settings pointing at temporary directories."""
    return OrchestratorSettings(
        checkouts={"root": str(checkout_root)},
        queue={"state_directory": str(queue_dir)},
        git={"command_timeout": 30, "fetch_timeout": 60},
        projects=[{"name": "shop", "default_branch": "main"}],
    )


@pytest.fixture
def git_runner() -> GitRunner:
    """Git adapter with short timeouts."""
    return GitRunner(command_timeout=30, fetch_timeout=60)


@pytest.fixture
def checkout_locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def queue_log(queue_dir: Path) -> QueueLog:
    """Queue log with the default compaction threshold."""
    return QueueLog(queue_dir)


@pytest.fixture
def task_queue(queue_log: QueueLog) -> TaskQueueService:
    """Task queue backed by a temporary log directory."""
    return TaskQueueService(queue_log)


@pytest.fixture
def git_project(tmp_path: Path, checkout_root: Path) -> GitProject:
    """Create project ``shop`` with a bare remote and a primary checkout.

    Layout::

        tmp/remote.git                   bare "remote"
        tmp/seed                         clone used to push remote changes
        tmp/repositories/shop/main       primary checkout
    """
    remote = tmp_path / "remote.git"
    run_git("init", "--bare", "--initial-branch=main", str(remote), cwd=tmp_path)

    seed = tmp_path / "seed"
    run_git("init", "--initial-branch=main", str(seed), cwd=tmp_path)
    commit_file(seed, "README.md", "# Shop\n", "Initial commit")
    commit_file(seed, "shared.txt", "base\n", "Add shared file")
    run_git("remote", "add", "origin", str(remote), cwd=seed)
    run_git("push", "origin", "main", cwd=seed)

    primary = checkout_root / "shop" / "main"
    primary.parent.mkdir(parents=True)
    run_git("clone", str(remote), str(primary), cwd=tmp_path)

    return GitProject(name="shop", remote=remote, seed=seed, primary=primary)
