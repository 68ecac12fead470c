"""
Background reconciliation of checkouts against their remote branches.

Each (project, branch) pair moves through a per-cycle state machine::

    UNKNOWN -> SYNCED | PENDING | CONFLICT | ERROR

There is no terminal state: every cycle recomputes the status from scratch
and replaces the previous ``SyncRecord`` of the pair.

Status Rules:
    - checkout directory, remote or fetch unavailable -> ERROR
    - unmerged paths left from an earlier merge -> CONFLICT
    - branch not on the remote -> PENDING (needs to be pushed)
    - behind, clean tree, merging enabled -> merge the remote branch:
      merged -> SYNCED, conflicts -> CONFLICT, other failure -> ERROR
    - behind but merge deferred, or only ahead -> PENDING
    - neither ahead nor behind -> SYNCED

Failure Isolation:
    ``sync_all`` reconciles pairs concurrently up to ``max_workers``. Any
    failure of one pair becomes that pair's ERROR record and never aborts
    the sweep.

Locking:
    Reconciling and resolving a checkout hold the same checkout lock the
    checkout manager takes for creation and removal.
"""

import asyncio
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

import aiofiles
import structlog

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.engine.checkout_manager import CheckoutManager
from worktree_orchestrator.engine.locks import KeyedLocks
from worktree_orchestrator.enums import CheckoutStatus, ProjectHealth, ResolutionStrategy, SyncStatus
from worktree_orchestrator.exceptions import GitOperationError, SyncError
from worktree_orchestrator.git.commands import GitRunner
from worktree_orchestrator.models.domain import Checkout, QueueKey, ResolutionResult, SyncRecord

log = structlog.get_logger(__name__)

# Auto-merged by keeping the lines of both sides
UNION_MERGE_SUFFIXES = (".md",)


def aggregate_project_status(records: Iterable[SyncRecord]) -> ProjectHealth:
    """Derive one project-level status from its sync records.

    Precedence: any ERROR -> error; any CONFLICT -> conflict; any record
    needing attention -> attention; all SYNCED -> synced; else pending.
    A project without records is pending.
    """
    records = list(records)
    if any(r.status == SyncStatus.ERROR for r in records):
        return ProjectHealth.ERROR
    if any(r.status == SyncStatus.CONFLICT for r in records):
        return ProjectHealth.CONFLICT
    if any(r.needs_attention for r in records):
        return ProjectHealth.ATTENTION
    if records and all(r.status == SyncStatus.SYNCED for r in records):
        return ProjectHealth.SYNCED
    return ProjectHealth.PENDING


def make_record(project: str, branch: str, status: SyncStatus, message: str, **fields) -> SyncRecord:
    """Build a sync record; CONFLICT and ERROR always need attention."""
    fields.setdefault("needs_attention", status in (SyncStatus.CONFLICT, SyncStatus.ERROR))
    return SyncRecord(project=project, branch=branch, status=status, message=message, **fields)


class SyncEngine:
    """Reconcile checkouts with their remote branches.

    Attributes:
        settings: Orchestrator settings
        git: Git command adapter
        checkouts: Checkout manager used to enumerate and locate checkouts
    """

    def __init__(
        self,
        settings: OrchestratorSettings,
        git: GitRunner,
        checkouts: CheckoutManager,
        locks: KeyedLocks,
    ) -> None:
        self.settings = settings
        self.git = git
        self.checkouts = checkouts
        self.locks = locks
        self._records: dict[QueueKey, SyncRecord] = {}
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Single checkout
    # ------------------------------------------------------------------

    async def sync_one(self, project: str, branch: str) -> SyncRecord:
        """Reconcile one checkout and store its fresh record.

        Tool failures become an ERROR record; only unexpected exceptions
        propagate.
        """
        key = QueueKey(project, branch)
        async with self.locks.hold(key):
            try:
                record = await self._reconcile(project, branch)
            except SyncError as e:
                message = f"{e.message}: {e.output.strip()}" if e.output.strip() else e.message
                record = make_record(project, branch, SyncStatus.ERROR, message)
            except GitOperationError as e:
                record = make_record(project, branch, SyncStatus.ERROR, e.message)
            except ValueError as e:
                record = make_record(project, branch, SyncStatus.ERROR, f"Unexpected git output: {e}")

        self._records[key] = record
        log.info(
            "checkout_synced",
            project=project,
            branch=branch,
            status=str(record.status),
            ahead=record.ahead,
            behind=record.behind,
            conflicts=len(record.conflict_files),
        )
        return record

    async def _reconcile(self, project: str, branch: str) -> SyncRecord:
        """Compute the record of one checkout. Caller MUST hold its lock.

        Raises:
            SyncError: If fetching the remote fails or times out
            GitOperationError: If a local git command fails
        """
        path = self.checkouts.checkout_path(project, branch)
        if not path.is_dir():
            return make_record(project, branch, SyncStatus.ERROR, f"Checkout directory {path} does not exist")

        remote = await self.checkouts.remote_for(project)
        if remote is None:
            return make_record(project, branch, SyncStatus.ERROR, "Repository has no remote to sync with")

        fetched = await self.git.fetch(path, remote)
        if not fetched.ok:
            raise SyncError(f"Fetch from {remote} failed", project=project, branch=branch, output=fetched.diagnostic)

        existing = await self.git.conflict_files(path)
        if existing:
            return make_record(
                project,
                branch,
                SyncStatus.CONFLICT,
                f"{len(existing)} file(s) still conflicted from an earlier merge",
                conflict_files=existing,
            )

        if not await self.git.remote_branch_exists(path, remote, branch):
            return make_record(
                project,
                branch,
                SyncStatus.PENDING,
                f"Branch {branch} does not exist on {remote}; needs to be pushed",
            )

        upstream = f"{remote}/{branch}"
        counts = await self.git.ahead_behind(path, upstream)

        if counts.behind:
            if not self.settings.sync.merge_on_sync:
                return make_record(
                    project,
                    branch,
                    SyncStatus.PENDING,
                    f"Behind {upstream} by {counts.behind} commit(s)",
                    ahead=counts.ahead,
                    behind=counts.behind,
                )

            dirty = await self.git.status_paths(path)
            if dirty:
                return make_record(
                    project,
                    branch,
                    SyncStatus.PENDING,
                    f"Behind {upstream} by {counts.behind} commit(s); merge deferred, "
                    f"{len(dirty)} uncommitted change(s)",
                    ahead=counts.ahead,
                    behind=counts.behind,
                )

            return await self._merge(project, branch, upstream, counts.ahead, counts.behind)

        if counts.ahead:
            return make_record(
                project,
                branch,
                SyncStatus.PENDING,
                f"Ahead of {upstream} by {counts.ahead} commit(s); needs to be pushed",
                ahead=counts.ahead,
            )

        return make_record(project, branch, SyncStatus.SYNCED, f"Up to date with {upstream}")

    async def _merge(self, project: str, branch: str, upstream: str, ahead: int, behind: int) -> SyncRecord:
        path = self.checkouts.checkout_path(project, branch)
        outcome = await self.git.merge(path, upstream)

        if outcome.merged:
            after = await self.git.ahead_behind(path, upstream)
            return make_record(
                project,
                branch,
                SyncStatus.SYNCED,
                f"Merged {behind} commit(s) from {upstream}",
                ahead=after.ahead,
                behind=after.behind,
            )

        if outcome.conflict_files:
            log.warning("merge_conflict", project=project, branch=branch, files=outcome.conflict_files)
            return make_record(
                project,
                branch,
                SyncStatus.CONFLICT,
                f"Merge of {upstream} stopped on conflicts in {len(outcome.conflict_files)} file(s)",
                conflict_files=outcome.conflict_files,
                ahead=ahead,
                behind=behind,
            )

        if await self.git.merge_in_progress(path):
            await self.git.merge_abort(path)
        diagnostic = outcome.result.diagnostic if outcome.result else "merge failed"
        return make_record(
            project,
            branch,
            SyncStatus.ERROR,
            f"Merge of {upstream} failed: {diagnostic}",
            ahead=ahead,
            behind=behind,
        )

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def _known_checkouts(self, projects: list[str]) -> tuple[list[Checkout], list[SyncRecord]]:
        """Enumerate checkouts, turning an unreadable project into an ERROR record."""
        checkouts: list[Checkout] = []
        failures: list[SyncRecord] = []
        for project in projects:
            try:
                listed = await self.checkouts.list_checkouts(project)
                checkouts.extend(c for c in listed if c.status == CheckoutStatus.ACTIVE)
            except GitOperationError as e:
                info = self.checkouts.project(project)
                log.error("project_listing_failed", project=project, error=e.message)
                record = make_record(project, info.default_branch, SyncStatus.ERROR, e.message)
                self._records[record.key] = record
                failures.append(record)
        return checkouts, failures

    async def sync_all(self, project: str | None = None) -> list[SyncRecord]:
        """Reconcile every known checkout with bounded concurrency.

        Returns:
            One record per checkout; a failing pair yields an ERROR record
        """
        projects = [project] if project else self.checkouts.list_projects()
        checkouts, failures = await self._known_checkouts(projects)
        semaphore = asyncio.Semaphore(self.settings.sync.max_workers)

        async def run(checkout: Checkout) -> SyncRecord:
            async with semaphore:
                try:
                    return await self.sync_one(checkout.project, checkout.branch)
                except Exception as e:
                    log.exception("checkout_sync_failed", project=checkout.project, branch=checkout.branch)
                    record = make_record(checkout.project, checkout.branch, SyncStatus.ERROR, f"Sync failed: {e}")
                    self._records[record.key] = record
                    return record

        records = failures + list(await asyncio.gather(*(run(c) for c in checkouts)))

        counts = Counter(str(r.status) for r in records)
        log.info("sync_cycle_completed", checkouts=len(records), **counts)
        return records

    # ------------------------------------------------------------------
    # Conflict resolution
    # ------------------------------------------------------------------

    async def resolve_conflicts(
        self,
        project: str,
        branch: str,
        strategy: str | ResolutionStrategy | None = None,
    ) -> ResolutionResult:
        """Try to resolve the conflicted files of a checkout.

        Strategies:
            - auto-merge: three-way merge each file with ``git merge-file``;
              files with overlapping hunks stay conflicted, except markdown
              work items, which keep the lines of both sides
            - prefer-local: keep the local side of each file
            - prefer-remote: take the remote side of each file
            - manual-review: resolve nothing

        The files still conflicted afterwards are always a subset of the
        files conflicted before. When none remain the merge is committed and
        the record becomes SYNCED.

        Raises:
            ValueError: If the strategy name is unknown
        """
        chosen = ResolutionStrategy(strategy or self.settings.sync.default_strategy)
        key = QueueKey(project, branch)

        async with self.locks.hold(key):
            try:
                result = await self._resolve(project, branch, chosen)
            except GitOperationError as e:
                record = make_record(project, branch, SyncStatus.ERROR, e.message)
                result = ResolutionResult(success=False, strategy=chosen.value, record=record)

        self._records[key] = result.record
        log.info(
            "conflicts_resolution_attempted",
            project=project,
            branch=branch,
            strategy=chosen.value,
            success=result.success,
            resolved=len(result.resolved_files),
            remaining=len(result.record.conflict_files),
        )
        return result

    async def _resolve(self, project: str, branch: str, strategy: ResolutionStrategy) -> ResolutionResult:
        path = self.checkouts.checkout_path(project, branch)
        if not path.is_dir():
            record = make_record(project, branch, SyncStatus.ERROR, f"Checkout directory {path} does not exist")
            return ResolutionResult(success=False, strategy=strategy.value, record=record)

        conflicts = await self.git.conflict_files(path)
        resolved: list[str] = []

        try:
            if strategy == ResolutionStrategy.AUTO_MERGE:
                for file in conflicts:
                    if await self._auto_merge_file(path, file):
                        resolved.append(file)
            elif strategy in (ResolutionStrategy.PREFER_LOCAL, ResolutionStrategy.PREFER_REMOTE):
                side = "ours" if strategy == ResolutionStrategy.PREFER_LOCAL else "theirs"
                for file in conflicts:
                    taken = await self.git.checkout_side(path, file, side)
                    if taken.ok and (await self.git.add(path, file)).ok:
                        resolved.append(file)
                    else:
                        log.debug("conflict_side_unavailable", project=project, branch=branch, file=file, side=side)

            still_unmerged = set(await self.git.conflict_files(path))
        except GitOperationError as e:
            # Files not confirmed resolved are still reported as conflicted
            unconfirmed = [f for f in conflicts if f not in resolved]
            log.warning("conflict_resolution_interrupted", project=project, branch=branch, error=e.message)
            if not unconfirmed:
                record = make_record(project, branch, SyncStatus.ERROR, e.message)
            else:
                record = make_record(
                    project,
                    branch,
                    SyncStatus.CONFLICT,
                    f"{strategy.value} interrupted: {e.message}",
                    conflict_files=unconfirmed,
                )
            return ResolutionResult(success=False, strategy=strategy.value, resolved_files=resolved, record=record)

        remaining = [f for f in conflicts if f in still_unmerged]

        if remaining:
            record = make_record(
                project,
                branch,
                SyncStatus.CONFLICT,
                f"{len(remaining)} of {len(conflicts)} file(s) still conflicted after {strategy.value}",
                conflict_files=remaining,
            )
            return ResolutionResult(success=False, strategy=strategy.value, resolved_files=resolved, record=record)

        if await self.git.merge_in_progress(path):
            committed = await self.git.commit_merge(path)
            if not committed.ok:
                record = make_record(
                    project, branch, SyncStatus.ERROR, f"Committing the merge failed: {committed.diagnostic}"
                )
                return ResolutionResult(success=False, strategy=strategy.value, resolved_files=resolved, record=record)

        message = f"Resolved {len(resolved)} file(s) with {strategy.value}" if conflicts else "No conflicts to resolve"
        record = make_record(project, branch, SyncStatus.SYNCED, message)
        return ResolutionResult(success=True, strategy=strategy.value, resolved_files=resolved, record=record)

    async def _auto_merge_file(self, path: Path, file: str) -> bool:
        local = await self.git.show_stage(path, 2, file)
        remote = await self.git.show_stage(path, 3, file)
        if local is None or remote is None:
            # Deleted on one side; no content to merge
            return False
        base = await self.git.show_stage(path, 1, file) or ""

        union = Path(file).suffix.lower() in UNION_MERGE_SUFFIXES
        clean, content = await self.git.merge_file(path, local, base, remote, union=union)
        if not clean:
            return False

        async with aiofiles.open(path / file, "w") as f:
            await f.write(content)
        return (await self.git.add(path, file)).ok

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def latest(self, project: str, branch: str) -> SyncRecord | None:
        return self._records.get(QueueKey(project, branch))

    def records(self, project: str | None = None) -> list[SyncRecord]:
        """Latest record of every synced checkout, optionally for one project."""
        ordered = sorted(self._records.items(), key=lambda item: (item[0].project, item[0].branch))
        return [record for key, record in ordered if project is None or key.project == project]

    def project_status(self, project: str) -> ProjectHealth:
        return aggregate_project_status(self.records(project))

    def needing_attention(self) -> list[SyncRecord]:
        """Records flagged for operator attention."""
        return [r for r in self.records() if r.needs_attention]

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float | None = None) -> None:
        """Run ``sync_all`` every ``interval`` seconds in a background task."""
        if self.running:
            log.warning("sync_scheduler_already_running")
            return
        seconds = interval if interval is not None else self.settings.sync.interval_seconds
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(seconds, self._stop_event))
        log.info("sync_scheduler_started", interval=seconds)

    async def _run(self, interval: float, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.sync_all()
            except Exception:
                log.exception("sync_cycle_failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except TimeoutError:
                continue

    async def stop(self) -> None:
        """Stop the scheduler and wait for the running cycle to finish."""
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None
        log.info("sync_scheduler_stopped")
