"""Async git command adapter.

``GitRunner`` is the single gateway between the orchestrator and the git
binary. Every invocation:

- runs without a shell through ``run_command``
- carries a timeout (``command_timeout``, or ``fetch_timeout`` for network
  operations); a timed-out command is reported as a failed ``GitResult``
- runs with ``LC_ALL=C`` and ``GIT_TERMINAL_PROMPT=0`` so output is stable
  and nothing waits for credentials on a terminal

Raw output is handed to ``worktree_orchestrator.git.parser`` and callers get
structured values back.

Example:
    >>> git = GitRunner(command_timeout=30)
    >>> entries = await git.worktree_list(Path("/srv/repos/shop/main"))
    >>> [e.branch for e in entries]
    ['main', 'feat-cart']
"""

import tempfile
from pathlib import Path

import structlog

from worktree_orchestrator.exceptions import GitOperationError
from worktree_orchestrator.git.models import AheadBehind, GitResult, MergeOutcome, WorktreeEntry
from worktree_orchestrator.git.parser import (
    parse_ahead_behind,
    parse_path_list,
    parse_ref_names,
    parse_status_paths,
    parse_worktree_list,
)
from worktree_orchestrator.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)

GIT_ENV = {"LC_ALL": "C", "GIT_TERMINAL_PROMPT": "0"}


class GitRunner:
    """Run git commands asynchronously with bounded timeouts.

    Attributes:
        executable: git binary to invoke
        command_timeout: Seconds allowed for local commands
        fetch_timeout: Seconds allowed for network commands (fetch, clone)
    """

    def __init__(
        self,
        executable: str = "git",
        command_timeout: float = 120.0,
        fetch_timeout: float = 300.0,
    ) -> None:
        self.executable = executable
        self.command_timeout = command_timeout
        self.fetch_timeout = fetch_timeout

    async def run(self, *args: str, cwd: Path | str | None = None, timeout: float | None = None) -> GitResult:
        """Run one git command and capture its outcome.

        Never raises for tool failures: non-zero exits, timeouts and a
        missing executable are all reported through the returned result.

        Args:
            *args: git arguments (without the executable)
            cwd: Working directory
            timeout: Override for ``command_timeout``

        Returns:
            GitResult describing the invocation
        """
        effective_timeout = timeout if timeout is not None else self.command_timeout
        try:
            stdout, stderr, code = await run_command(
                self.executable,
                *args,
                cwd=cwd,
                check=False,
                timeout=effective_timeout,
                env=GIT_ENV,
            )
        except TimeoutError:
            log.warning("git_command_timeout", args=args, cwd=str(cwd), timeout=effective_timeout)
            return GitResult(args=args, returncode=None, timed_out=True)
        except OSError as e:
            log.error("git_command_not_started", args=args, cwd=str(cwd), error=str(e))
            return GitResult(args=args, returncode=127, stderr=str(e))

        result = GitResult(args=args, returncode=code, stdout=stdout, stderr=stderr)
        if not result.ok:
            log.debug("git_command_failed", args=args, cwd=str(cwd), returncode=code, stderr=stderr.strip())
        return result

    async def check(self, *args: str, cwd: Path | str | None = None, timeout: float | None = None) -> GitResult:
        """Run a git command that is expected to succeed.

        Raises:
            GitOperationError: If the command fails or times out
        """
        result = await self.run(*args, cwd=cwd, timeout=timeout)
        if not result.ok:
            raise GitOperationError(
                result.diagnostic,
                command=args,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    # ------------------------------------------------------------------
    # Repository and worktree metadata
    # ------------------------------------------------------------------

    async def clone(self, url: str, dest: Path, branch: str | None = None) -> GitResult:
        """Clone ``url`` into ``dest``, checking out ``branch`` when given."""
        args = ["clone"]
        if branch:
            args += ["--branch", branch]
        args += [url, str(dest)]
        return await self.run(*args, timeout=self.fetch_timeout)

    async def worktree_list(self, repo: Path) -> list[WorktreeEntry]:
        """List worktrees registered with the repository at ``repo``."""
        result = await self.check("worktree", "list", "--porcelain", cwd=repo)
        return parse_worktree_list(result.stdout)

    async def worktree_add(
        self,
        repo: Path,
        path: Path,
        branch: str,
        base: str | None = None,
        track: str | None = None,
    ) -> GitResult:
        """Materialize a worktree for ``branch`` at ``path``.

        Args:
            repo: Primary checkout hosting the repository
            path: Directory to create
            branch: Branch to check out
            base: Create ``branch`` from this start point
            track: Create ``branch`` tracking this remote ref

        With neither ``base`` nor ``track`` the existing local branch is
        checked out.
        """
        if track:
            args = ("worktree", "add", "--track", "-b", branch, str(path), track)
        elif base:
            args = ("worktree", "add", "-b", branch, str(path), base)
        else:
            args = ("worktree", "add", str(path), branch)
        return await self.run(*args, cwd=repo)

    async def worktree_remove(self, repo: Path, path: Path, force: bool = False) -> GitResult:
        """Remove the worktree at ``path``."""
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))
        return await self.run(*args, cwd=repo)

    async def worktree_prune(self, repo: Path) -> GitResult:
        """Drop metadata of worktrees whose directories are gone."""
        return await self.run("worktree", "prune", cwd=repo)

    async def ref_exists(self, repo: Path, ref: str) -> bool:
        """Check if a fully qualified ref exists."""
        result = await self.run("show-ref", "--verify", "--quiet", ref, cwd=repo)
        return result.ok

    async def branch_exists(self, repo: Path, branch: str) -> bool:
        """Check if a local branch exists."""
        return await self.ref_exists(repo, f"refs/heads/{branch}")

    async def remote_branch_exists(self, repo: Path, remote: str, branch: str) -> bool:
        """Check if a remote-tracking branch exists."""
        return await self.ref_exists(repo, f"refs/remotes/{remote}/{branch}")

    async def list_branches(self, repo: Path, remote: str) -> tuple[list[str], list[str]]:
        """List local branches and branches of ``remote``."""
        result = await self.check(
            "for-each-ref",
            "--format=%(refname)",
            "refs/heads",
            f"refs/remotes/{remote}",
            cwd=repo,
        )
        return parse_ref_names(result.stdout, remote)

    async def delete_branch(self, repo: Path, branch: str, force: bool = False) -> GitResult:
        """Delete a local branch."""
        return await self.run("branch", "-D" if force else "-d", branch, cwd=repo)

    # ------------------------------------------------------------------
    # Working directory state
    # ------------------------------------------------------------------

    async def status_paths(self, path: Path) -> list[str]:
        """List modified, staged and untracked paths of a checkout."""
        result = await self.check("status", "--porcelain", cwd=path)
        return parse_status_paths(result.stdout)

    async def conflict_files(self, path: Path) -> list[str]:
        """List paths that are still unmerged in a checkout."""
        result = await self.check("diff", "--name-only", "--diff-filter=U", cwd=path)
        return parse_path_list(result.stdout)

    async def fetch(self, path: Path, remote: str) -> GitResult:
        """Fetch ``remote`` (network operation, uses ``fetch_timeout``)."""
        return await self.run("fetch", "--prune", remote, cwd=path, timeout=self.fetch_timeout)

    async def ahead_behind(self, path: Path, upstream: str) -> AheadBehind:
        """Count commits unique to HEAD and to ``upstream``."""
        result = await self.check("rev-list", "--left-right", "--count", f"HEAD...{upstream}", cwd=path)
        return parse_ahead_behind(result.stdout)

    # ------------------------------------------------------------------
    # Merging and conflict resolution
    # ------------------------------------------------------------------

    async def merge(self, path: Path, ref: str) -> MergeOutcome:
        """Merge ``ref`` into the checkout's current branch.

        Returns:
            MergeOutcome. When the merge stops on conflicts the unmerged
            paths are listed and the merge is left in progress.
        """
        result = await self.run("merge", "--no-edit", ref, cwd=path)
        if result.ok:
            return MergeOutcome(merged=True, result=result)
        if result.timed_out:
            return MergeOutcome(merged=False, result=result)
        unmerged = await self.run("diff", "--name-only", "--diff-filter=U", cwd=path)
        conflicts = parse_path_list(unmerged.stdout) if unmerged.ok else []
        return MergeOutcome(merged=False, conflict_files=conflicts, result=result)

    async def merge_abort(self, path: Path) -> GitResult:
        """Abort an in-progress merge."""
        return await self.run("merge", "--abort", cwd=path)

    async def merge_in_progress(self, path: Path) -> bool:
        """Check if the checkout is in the middle of a merge."""
        result = await self.run("rev-parse", "-q", "--verify", "MERGE_HEAD", cwd=path)
        return result.ok

    async def checkout_side(self, path: Path, file: str, side: str) -> GitResult:
        """Replace a conflicted file with one side (``ours`` or ``theirs``)."""
        return await self.run("checkout", f"--{side}", "--", file, cwd=path)

    async def add(self, path: Path, *files: str) -> GitResult:
        """Stage files, marking conflicts as resolved."""
        return await self.run("add", "--", *files, cwd=path)

    async def commit_merge(self, path: Path) -> GitResult:
        """Conclude an in-progress merge with the prepared message."""
        return await self.run("commit", "--no-edit", cwd=path)

    async def show_stage(self, path: Path, stage: int, file: str) -> str | None:
        """Return one index stage of an unmerged file, None when absent.

        Stage 1 is the common ancestor, 2 the local side, 3 the remote side.
        """
        result = await self.run("show", f":{stage}:{file}", cwd=path)
        return result.stdout if result.ok else None

    async def merge_file(
        self, path: Path, local: str, base: str, remote: str, union: bool = False
    ) -> tuple[bool, str]:
        """Three-way merge file contents with ``git merge-file``.

        Args:
            path: Checkout used as working directory
            local: Local side content
            base: Common ancestor content
            remote: Remote side content
            union: Keep the lines of both sides for overlapping hunks
                instead of leaving conflict markers

        Returns:
            Tuple of (clean, merged content). ``clean`` is False when
            overlapping hunks remain or the tool failed; the content is
            only meaningful when clean.
        """
        with tempfile.TemporaryDirectory(prefix="worktree-merge-") as tmp:
            tmp_dir = Path(tmp)
            local_file = tmp_dir / "local"
            base_file = tmp_dir / "base"
            remote_file = tmp_dir / "remote"
            local_file.write_text(local)
            base_file.write_text(base)
            remote_file.write_text(remote)

            flags = ("-p", "--union") if union else ("-p",)
            result = await self.run(
                "merge-file",
                *flags,
                "-L",
                "local",
                "-L",
                "base",
                "-L",
                "remote",
                str(local_file),
                str(base_file),
                str(remote_file),
                cwd=path,
            )

        return result.ok, result.stdout
