"""Tests for the click CLI.

Commands that need a real repository are covered in tests/git.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from worktree_orchestrator.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    config = tmp_path / "worktree.yaml"
    config.write_text(
        f"checkouts:\n"
        f"  root: {tmp_path / 'repositories'}\n"
        f"queue:\n"
        f"  state_directory: {tmp_path / 'queues'}\n"
        f"projects:\n"
        f"  - name: shop\n"
    )
    return config


def invoke(runner: CliRunner, config_file: Path, *args: str):
    return runner.invoke(cli, ["--config", str(config_file), "--log-level", "CRITICAL", *args])


class TestConfigLoading:
    """Tests for the --config option."""

    def test_missing_explicit_config(self, runner, tmp_path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "validate", "feat-cart"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_invalid_config(self, runner, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("- not\n- a mapping\n")

        result = runner.invoke(cli, ["--config", str(config), "validate", "feat-cart"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_defaults_without_config(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(cli, ["--log-level", "CRITICAL", "validate", "feat-cart"])

        assert result.exit_code == 0


class TestValidate:
    def test_valid(self, runner, config_file):
        result = invoke(runner, config_file, "validate", "feat-cart")

        assert result.exit_code == 0
        assert json.loads(result.stdout)["is_valid"] is True

    def test_invalid_exits_1_with_suggestion(self, runner, config_file):
        result = invoke(runner, config_file, "validate", "Fix Login Bug!!")

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["is_valid"] is False
        assert data["suggestions"][0] == "fix-login-bug"


class TestSuggest:
    def test_suggest(self, runner, config_file):
        result = invoke(runner, config_file, "suggest", "Fix login bug", "--type", "BUG")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["branch_name"] == "fix-login-bug"
        assert data["category"]["id"] == "bug-fixing"

    def test_suggest_avoids_queued_names(self, runner, config_file):
        invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "Fix login bug")

        result = invoke(runner, config_file, "suggest", "Fix login bug", "--project", "shop")

        assert json.loads(result.stdout)["branch_name"] == "fix-login-bug-2"


class TestQueueCommands:
    """Tests for enqueue, stats, complete and cancel."""

    def test_enqueue_and_stats(self, runner, config_file):
        result = invoke(
            runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "Add cart", "--priority", "HIGH",
            "--branch", "feat-cart",
        )

        assert result.exit_code == 0
        routed = json.loads(result.stdout)
        assert routed["branch"] == "feat-cart"
        assert routed["task"]["priority"] == "high"

        stats = json.loads(invoke(runner, config_file, "stats", "shop", "feat-cart").stdout)
        assert stats == {"pending": 1, "active": 0, "completed": 0, "failed": 0}

    def test_enqueue_from_file(self, runner, config_file, tmp_path):
        item = tmp_path / "login.md"
        item.write_text("---\nid: 7f3c\ntitle: Fix login redirect\ntype: BUG\n---\n")

        result = invoke(runner, config_file, "enqueue", "shop", "--file", str(item))

        assert result.exit_code == 0
        routed = json.loads(result.stdout)
        assert routed["branch"] == "fix-login-redirect"
        assert routed["task"]["id"] == "7f3c"

    def test_enqueue_requires_item(self, runner, config_file):
        result = invoke(runner, config_file, "enqueue", "shop", "--title", "No id")

        assert result.exit_code == 1
        assert "--file or both --id and --title" in result.output

    def test_enqueue_invalid_branch(self, runner, config_file):
        result = invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "x", "--branch", "Bad Name")

        assert result.exit_code == 1
        assert "Error: Invalid branch name" in result.output

    def test_enqueue_duplicate(self, runner, config_file):
        args = ("enqueue", "shop", "--id", "T1", "--title", "x", "--branch", "feat-cart")
        invoke(runner, config_file, *args)

        result = invoke(runner, config_file, *args)

        assert result.exit_code == 1
        assert "already queued" in result.output

    def test_enqueue_bad_priority(self, runner, config_file):
        result = invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "x", "--priority", "soon")
        assert result.exit_code == 2

    def test_complete_unknown_task(self, runner, config_file):
        result = invoke(runner, config_file, "complete", "shop", "feat-cart", "nope")

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_cancel_pending(self, runner, config_file):
        invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "x", "--branch", "feat-cart")

        result = invoke(runner, config_file, "cancel", "shop", "feat-cart", "T1")

        assert result.exit_code == 0
        stats = json.loads(invoke(runner, config_file, "stats", "shop", "feat-cart").stdout)
        assert stats["pending"] == 0

    def test_dequeue_pending_task(self, runner, config_file):
        invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "x", "--branch", "feat-cart")

        result = invoke(runner, config_file, "dequeue", "shop", "feat-cart", "T1")

        assert result.exit_code == 0
        assert json.loads(result.stdout)["id"] == "T1"
        stats = json.loads(invoke(runner, config_file, "stats", "shop", "feat-cart").stdout)
        assert stats == {"pending": 0, "active": 0, "completed": 0, "failed": 0}

    def test_dequeue_unknown_task(self, runner, config_file):
        result = invoke(runner, config_file, "dequeue", "shop", "feat-cart", "nope")

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_pause_resume_and_queues(self, runner, config_file):
        invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "x", "--branch", "feat-cart")
        invoke(runner, config_file, "enqueue", "shop", "--id", "T2", "--title", "y", "--branch", "fix-login")

        paused = json.loads(invoke(runner, config_file, "pause", "shop", "fix-login").stdout)
        assert paused == {"project": "shop", "branch": "fix-login", "paused": True, "changed": True}
        assert json.loads(invoke(runner, config_file, "queues", "shop").stdout) == ["feat-cart"]

        started = invoke(runner, config_file, "start-next", "shop", "fix-login")
        assert json.loads(started.stdout) is None

        resumed = json.loads(invoke(runner, config_file, "resume", "shop", "fix-login").stdout)
        assert resumed["changed"] is True
        assert json.loads(invoke(runner, config_file, "queues", "shop").stdout) == ["feat-cart", "fix-login"]

    def test_start_next_empty_queue(self, runner, config_file):
        result = invoke(runner, config_file, "start-next", "shop", "feat-cart")

        assert result.exit_code == 0
        assert json.loads(result.stdout) is None

    def test_start_next_without_project(self, runner, config_file):
        """Test a queued task on a project that was never cloned."""
        invoke(runner, config_file, "enqueue", "shop", "--id", "T1", "--title", "x", "--branch", "feat-cart")

        result = invoke(runner, config_file, "start-next", "shop", "feat-cart")

        assert result.exit_code == 1
        assert "has no primary checkout" in result.output


class TestInit:
    def test_init_creates_root(self, runner, config_file, tmp_path):
        result = invoke(runner, config_file, "init")

        assert result.exit_code == 0
        assert (tmp_path / "repositories").is_dir()
        assert json.loads(result.stdout)["queues"] == []


class TestClone:
    def test_clone_without_url(self, runner, config_file):
        result = invoke(runner, config_file, "clone", "shop")

        assert result.exit_code == 1
        assert "No repository URL configured" in result.output


class TestStatus:
    def test_unknown_project_is_pending(self, runner, config_file):
        result = invoke(runner, config_file, "status", "shop")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "pending"
        assert data["checkouts"] == []


class TestResolve:
    def test_rejects_unknown_strategy(self, runner, config_file):
        result = invoke(runner, config_file, "resolve", "shop", "main", "--strategy", "coin-flip")
        assert result.exit_code == 2
