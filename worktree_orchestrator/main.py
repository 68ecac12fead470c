"""CLI entry point for the worktree orchestrator."""

import asyncio
import json
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import click
import structlog

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.engine.orchestrator import WorktreeOrchestrator
from worktree_orchestrator.engine.sync_engine import aggregate_project_status
from worktree_orchestrator.enums import ResolutionStrategy, TaskPriority, TaskType
from worktree_orchestrator.exceptions import ConfigurationError, WorktreeOrchestratorError
from worktree_orchestrator.git.paths import validate_branch_name
from worktree_orchestrator.utils.logging_config import configure_logging
from worktree_orchestrator.work_items import WorkItem, load_work_item

log = structlog.get_logger(__name__)

DEFAULT_CONFIG = "worktree.yaml"


@click.group()
@click.option(
    "--config",
    default=None,
    help=f"Path to configuration file (default: {DEFAULT_CONFIG} when present)",
)
@click.option("--log-level", default="WARNING", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str) -> None:
    """worktree-orchestrator: one checkout per unit of work."""
    configure_logging(log_level)

    config_path = Path(config or DEFAULT_CONFIG)
    if config is not None and not config_path.exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        if config_path.exists():
            settings = OrchestratorSettings.from_yaml(str(config_path))
        else:
            settings = OrchestratorSettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error loading configuration: {e}", err=True)
        log.error("config_error_unexpected", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


def _orchestrator(ctx: click.Context) -> WorktreeOrchestrator:
    return WorktreeOrchestrator.from_settings(ctx.obj["settings"])


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _execute(command: str, coroutine: Coroutine[Any, Any, Any]) -> Any:
    """Run a command coroutine, turning failures into an exit status."""
    try:
        return asyncio.run(coroutine)
    except WorktreeOrchestratorError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{command}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error(f"{command}_unexpected", exc_info=True)
        sys.exit(1)


# ----------------------------------------------------------------------
# Checkouts
# ----------------------------------------------------------------------


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the checkout root and recover persisted queues."""

    async def run() -> None:
        orchestrator = _orchestrator(ctx)
        await orchestrator.startup()
        _echo_json(
            {
                "root": str(orchestrator.checkouts.root),
                "queues": [str(key) for key in orchestrator.queue.keys()],
            }
        )

    _execute("init", run())


@cli.command()
@click.argument("project")
@click.option("--url", help="Repository URL (defaults to the configured repo_url)")
@click.option("--branch", help="Default branch to check out")
@click.pass_context
def clone(ctx: click.Context, project: str, url: str | None, branch: str | None) -> None:
    """Clone a project's repository into its primary checkout."""

    async def run() -> None:
        orchestrator = _orchestrator(ctx)
        await orchestrator.checkouts.initialize()
        info = await orchestrator.checkouts.clone_project(project, url, branch)
        _echo_json({"project": info.name, "default_branch": info.default_branch, "path": str(info.primary_path)})

    _execute("clone", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.option("--base", help="Base branch (defaults to the project's default branch)")
@click.pass_context
def create(ctx: click.Context, project: str, branch: str, base: str | None) -> None:
    """Create a checkout for BRANCH."""

    async def run() -> None:
        checkout = await _orchestrator(ctx).checkouts.create_checkout(project, branch, base)
        _echo_json(checkout.to_dict())

    _execute("create", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.option("--force", is_flag=True, help="Discard uncommitted changes")
@click.option("--delete-branch", is_flag=True, help="Also delete the local branch")
@click.pass_context
def remove(ctx: click.Context, project: str, branch: str, force: bool, delete_branch: bool) -> None:
    """Remove the checkout of BRANCH."""

    async def run() -> None:
        checkout = await _orchestrator(ctx).checkouts.remove_checkout(project, branch, force, delete_branch)
        _echo_json(checkout.to_dict())

    _execute("remove", run())


@cli.command(name="list")
@click.argument("project")
@click.pass_context
def list_checkouts(ctx: click.Context, project: str) -> None:
    """List the checkouts of PROJECT."""

    async def run() -> None:
        checkouts = await _orchestrator(ctx).checkouts.list_checkouts(project)
        _echo_json([c.to_dict() for c in checkouts])

    _execute("list", run())


@cli.command()
@click.argument("project")
@click.pass_context
def branches(ctx: click.Context, project: str) -> None:
    """List branches with and without a checkout."""

    async def run() -> None:
        listing = await _orchestrator(ctx).checkouts.list_branches(project)
        _echo_json(listing.to_dict())

    _execute("branches", run())


@cli.command()
@click.argument("name")
@click.pass_context
def validate(ctx: click.Context, name: str) -> None:
    """Validate a branch name. Exits 1 when it is invalid."""
    settings: OrchestratorSettings = ctx.obj["settings"]
    result = validate_branch_name(name, settings.checkouts.max_branch_length)
    _echo_json(result.model_dump())
    if not result.is_valid:
        sys.exit(1)


@cli.command()
@click.argument("title")
@click.option("--description", default="", help="Work item description")
@click.option("--type", "task_type", default="TASK", help="Work item type (FEATURE, BUG, ...)")
@click.option("--area", default="", help="Functional area")
@click.option("--project", help="Avoid names already used in this project")
@click.pass_context
def suggest(
    ctx: click.Context,
    title: str,
    description: str,
    task_type: str,
    area: str,
    project: str | None,
) -> None:
    """Suggest a branch name for a work item."""

    async def run() -> None:
        orchestrator = _orchestrator(ctx)
        existing = await orchestrator.existing_branch_names(project) if project else set()
        suggestion = orchestrator.categorizer.suggest(title, description, task_type, area, existing_names=existing)
        _echo_json(suggestion.to_dict())

    _execute("suggest", run())


# ----------------------------------------------------------------------
# Queue
# ----------------------------------------------------------------------


@cli.command()
@click.argument("project")
@click.option("--file", "item_file", type=click.Path(exists=True, dir_okay=False), help="Markdown work item")
@click.option("--id", "task_id", help="Task id (when no file is given)")
@click.option("--title", help="Task title (when no file is given)")
@click.option("--type", "task_type", default="TASK", help="Task type")
@click.option(
    "--priority",
    type=click.Choice([str(p) for p in TaskPriority], case_sensitive=False),
    default="medium",
    help="Task priority",
)
@click.option("--branch", help="Route to this branch instead of a suggested one")
@click.pass_context
def enqueue(
    ctx: click.Context,
    project: str,
    item_file: str | None,
    task_id: str | None,
    title: str | None,
    task_type: str,
    priority: str,
    branch: str | None,
) -> None:
    """Route a work item to a checkout and enqueue it."""
    if item_file:
        item_source = None
    elif task_id and title:
        item_source = WorkItem(
            id=task_id,
            title=title,
            type=TaskType.parse(task_type),
            priority=TaskPriority.parse(priority),
        )
    else:
        click.echo("Error: Provide --file or both --id and --title", err=True)
        sys.exit(1)

    async def run() -> None:
        item = item_source or load_work_item(item_file)
        routed = await _orchestrator(ctx).route_work_item(project, item, branch)
        _echo_json(routed.to_dict())

    _execute("enqueue", run())


@cli.command(name="start-next")
@click.argument("project")
@click.argument("branch")
@click.option("--base", help="Base branch for a checkout created on demand")
@click.pass_context
def start_next(ctx: click.Context, project: str, branch: str, base: str | None) -> None:
    """Start the next task of BRANCH, creating its checkout if needed."""

    async def run() -> None:
        task = await _orchestrator(ctx).start_next(project, branch, base)
        _echo_json(task.to_dict() if task else None)

    _execute("start_next", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.argument("task_id")
@click.option("--failed", is_flag=True, help="Mark the task FAILED instead of COMPLETED")
@click.pass_context
def complete(ctx: click.Context, project: str, branch: str, task_id: str, failed: bool) -> None:
    """Finish the active task of BRANCH."""

    async def run() -> None:
        task = await _orchestrator(ctx).complete(project, branch, task_id, success=not failed)
        _echo_json(task.to_dict())

    _execute("complete", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.argument("task_id")
@click.pass_context
def cancel(ctx: click.Context, project: str, branch: str, task_id: str) -> None:
    """Cancel a pending or active task."""

    async def run() -> None:
        task = await _orchestrator(ctx).cancel(project, branch, task_id)
        _echo_json(task.to_dict())

    _execute("cancel", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.argument("task_id")
@click.pass_context
def dequeue(ctx: click.Context, project: str, branch: str, task_id: str) -> None:
    """Drop a task from BRANCH's queue whatever its status."""

    async def run() -> None:
        task = await _orchestrator(ctx).queue.remove(project, branch, task_id)
        _echo_json(task.to_dict())

    _execute("dequeue", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.pass_context
def pause(ctx: click.Context, project: str, branch: str) -> None:
    """Stop starting new tasks from BRANCH's queue."""

    async def run() -> None:
        changed = await _orchestrator(ctx).queue.pause(project, branch)
        _echo_json({"project": project, "branch": branch, "paused": True, "changed": changed})

    _execute("pause", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.pass_context
def resume(ctx: click.Context, project: str, branch: str) -> None:
    """Start tasks from a paused queue again."""

    async def run() -> None:
        changed = await _orchestrator(ctx).queue.resume(project, branch)
        _echo_json({"project": project, "branch": branch, "paused": False, "changed": changed})

    _execute("resume", run())


@cli.command()
@click.argument("project")
@click.pass_context
def queues(ctx: click.Context, project: str) -> None:
    """List the branches of PROJECT whose queue is not paused."""

    async def run() -> None:
        _echo_json(await _orchestrator(ctx).queue.active_queues(project))

    _execute("queues", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.pass_context
def stats(ctx: click.Context, project: str, branch: str) -> None:
    """Show task counts of BRANCH's queue."""

    async def run() -> None:
        queue_stats = await _orchestrator(ctx).queue.stats(project, branch)
        _echo_json(queue_stats.to_dict())

    _execute("stats", run())


# ----------------------------------------------------------------------
# Sync
# ----------------------------------------------------------------------


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.pass_context
def sync(ctx: click.Context, project: str, branch: str) -> None:
    """Reconcile one checkout with its remote branch."""

    async def run() -> None:
        record = await _orchestrator(ctx).sync.sync_one(project, branch)
        _echo_json(record.model_dump(mode="json"))

    _execute("sync", run())


@cli.command(name="sync-all")
@click.pass_context
def sync_all(ctx: click.Context) -> None:
    """Reconcile every checkout of every project."""

    async def run() -> None:
        records = await _orchestrator(ctx).sync.sync_all()
        _echo_json([r.model_dump(mode="json") for r in records])

    _execute("sync_all", run())


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in ResolutionStrategy]),
    default=None,
    help="Resolution strategy (defaults to sync.default_strategy)",
)
@click.pass_context
def resolve(ctx: click.Context, project: str, branch: str, strategy: str | None) -> None:
    """Try to resolve the merge conflicts of a checkout."""

    async def run() -> None:
        result = await _orchestrator(ctx).sync.resolve_conflicts(project, branch, strategy)
        _echo_json(result.model_dump(mode="json"))

    _execute("resolve", run())


@cli.command()
@click.argument("project")
@click.pass_context
def status(ctx: click.Context, project: str) -> None:
    """Sync every checkout of PROJECT and show its overall health."""

    async def run() -> None:
        records = await _orchestrator(ctx).sync.sync_all(project)
        _echo_json(
            {
                "project": project,
                "status": str(aggregate_project_status(records)),
                "checkouts": [r.model_dump(mode="json") for r in records],
            }
        )

    _execute("status", run())


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between sync cycles")
@click.pass_context
def daemon(ctx: click.Context, interval: float | None) -> None:
    """Run the sync engine on a timer until interrupted."""
    settings: OrchestratorSettings = ctx.obj["settings"]
    seconds = interval if interval is not None else settings.sync.interval_seconds

    async def run() -> None:
        orchestrator = _orchestrator(ctx)
        await orchestrator.startup()
        log.info("daemon_mode_started", interval=seconds)
        click.echo(f"Starting sync daemon (every {seconds}s)")
        orchestrator.sync.start(seconds)
        try:
            await asyncio.Event().wait()
        finally:
            await orchestrator.sync.stop()

    _execute("daemon", run())


if __name__ == "__main__":
    cli()
