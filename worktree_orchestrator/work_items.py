"""
Read-only access to markdown work items.

Work items are markdown files with YAML front matter::

    ---
    id: 7f3c
    title: "Fix login redirect"
    type: BUG
    priority: HIGH
    functionalArea: SOFTWARE
    ---

    # Fix login redirect

    Users land on a blank page after signing in.

Only the fields the categorizer and the task queue need are read; the files
are never written.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from worktree_orchestrator.enums import TaskPriority, TaskType
from worktree_orchestrator.exceptions import WorkItemError

log = structlog.get_logger(__name__)

FRONT_MATTER_DELIMITER = "---"


@dataclass(frozen=True)
class WorkItem:
    """Fields of a work item used for routing."""

    id: str
    title: str
    description: str = ""
    type: TaskType = TaskType.TASK
    priority: TaskPriority = TaskPriority.MEDIUM
    functional_area: str = ""
    branch: str | None = None


def split_front_matter(content: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into front matter and body.

    Returns:
        Tuple of (metadata, body). Documents without front matter yield an
        empty mapping and the whole content as body.

    Raises:
        ValueError: If the front matter is not closed or not a YAML mapping
    """
    lines = content.splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return {}, content

    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == FRONT_MATTER_DELIMITER:
            break
    else:
        raise ValueError("Front matter is not closed")

    try:
        metadata = yaml.safe_load("\n".join(lines[1:index])) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML front matter: {e}") from e
    if not isinstance(metadata, dict):
        raise ValueError("Front matter must be a YAML mapping")

    return metadata, "\n".join(lines[index + 1 :])


def _body_description(body: str) -> str:
    """Body text without headings."""
    lines = [line for line in body.splitlines() if not line.lstrip().startswith("#")]
    return "\n".join(lines).strip()


def parse_work_item(content: str, default_id: str) -> WorkItem:
    """Build a work item from markdown content.

    Raises:
        ValueError: If the front matter is malformed or the title is missing
    """
    metadata, body = split_front_matter(content)

    title = str(metadata.get("title") or "").strip()
    if not title:
        raise ValueError("Work item has no title")

    raw_priority = metadata.get("priority", TaskPriority.MEDIUM)
    try:
        priority = TaskPriority.parse(raw_priority)
    except ValueError:
        log.warning("work_item_priority_unknown", id=default_id, priority=raw_priority)
        priority = TaskPriority.MEDIUM

    description = metadata.get("description")
    if description is None:
        description = _body_description(body)

    branch = metadata.get("branch") or metadata.get("worktree")

    return WorkItem(
        id=str(metadata.get("id") or default_id),
        title=title,
        description=str(description),
        type=TaskType.parse(metadata.get("type", TaskType.TASK)),
        priority=priority,
        functional_area=str(metadata.get("functionalArea") or metadata.get("functional_area") or ""),
        branch=str(branch) if branch else None,
    )


def load_work_item(path: str | Path) -> WorkItem:
    """Read a work item file.

    The file name (without extension) is the id when the front matter has
    none.

    Raises:
        WorkItemError: If the file cannot be read or parsed
    """
    item_path = Path(path)
    try:
        content = item_path.read_text(encoding="utf-8")
    except OSError as e:
        raise WorkItemError(f"Cannot read work item {item_path}: {e}", path=str(item_path)) from e

    try:
        return parse_work_item(content, default_id=item_path.stem)
    except ValueError as e:
        raise WorkItemError(f"Invalid work item {item_path}: {e}", path=str(item_path)) from e
