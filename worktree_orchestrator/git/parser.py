"""Parsers for git command output.

This is the only module that reads git's textual output. Each function
understands one porcelain format and turns it into structured values; the
rest of the package works with those values and never scans free text.

Recognized formats (``OUTPUT_FORMAT_VERSION`` 1):
    - ``git worktree list --porcelain``
    - ``git status --porcelain`` (v1)
    - ``git diff --name-only`` and other one-path-per-line listings
    - ``git rev-list --left-right --count A...B``
    - ``git for-each-ref --format=%(refname)``

Example:
    >>> parse_ahead_behind("2\\t5\\n")
    AheadBehind(ahead=2, behind=5)
"""

from pathlib import Path

from worktree_orchestrator.git.models import AheadBehind, WorktreeEntry

OUTPUT_FORMAT_VERSION = 1

_HEADS = "refs/heads/"
_REMOTES = "refs/remotes/"


def parse_worktree_list(output: str) -> list[WorktreeEntry]:
    """Parse ``git worktree list --porcelain``.

    Records are separated by blank lines; each starts with a
    ``worktree <path>`` line followed by attribute lines.

    Args:
        output: Raw stdout of the command

    Returns:
        One WorktreeEntry per record, in git's order
    """
    entries: list[WorktreeEntry] = []
    record: dict[str, str | bool] = {}

    def flush() -> None:
        if "worktree" in record:
            branch = record.get("branch")
            entries.append(
                WorktreeEntry(
                    path=Path(str(record["worktree"])),
                    head=str(record.get("HEAD", "")),
                    branch=str(branch).removeprefix(_HEADS) if branch else None,
                    bare=bool(record.get("bare", False)),
                    prunable=bool(record.get("prunable", False)),
                    locked=bool(record.get("locked", False)),
                )
            )
        record.clear()

    for line in output.splitlines():
        if not line.strip():
            flush()
            continue
        key, _, value = line.partition(" ")
        if key in ("bare", "detached", "prunable", "locked"):
            record[key] = True
        else:
            record[key] = value

    flush()
    return entries


def parse_path_list(output: str) -> list[str]:
    """Parse a one-path-per-line listing, dropping blanks and duplicates."""
    seen: dict[str, None] = {}
    for line in output.splitlines():
        path = line.strip()
        if path:
            seen.setdefault(path, None)
    return list(seen)


def parse_status_paths(output: str) -> list[str]:
    """Parse ``git status --porcelain`` into the affected paths.

    Renames (``R  old -> new``) report the new path.
    """
    paths: list[str] = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        path = line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        paths.append(path.strip('"'))
    return paths


def parse_ahead_behind(output: str) -> AheadBehind:
    """Parse ``git rev-list --left-right --count HEAD...<remote>``.

    The left count is commits only on the local side, the right count
    commits only on the remote side.

    Raises:
        ValueError: If the output is not two integers
    """
    parts = output.split()
    if len(parts) != 2:
        raise ValueError(f"Unexpected rev-list output: {output!r}")
    return AheadBehind(ahead=int(parts[0]), behind=int(parts[1]))


def parse_ref_names(output: str, remote: str) -> tuple[list[str], list[str]]:
    """Split ``git for-each-ref --format=%(refname)`` output.

    Args:
        output: Raw stdout listing full ref names
        remote: Remote whose branches should be reported

    Returns:
        Tuple of (local branch names, remote branch names without the
        remote prefix). The remote ``HEAD`` symbolic ref is skipped.
    """
    local: list[str] = []
    remote_branches: list[str] = []
    remote_prefix = f"{_REMOTES}{remote}/"

    for line in output.splitlines():
        ref = line.strip()
        if ref.startswith(_HEADS):
            local.append(ref.removeprefix(_HEADS))
        elif ref.startswith(remote_prefix):
            name = ref.removeprefix(remote_prefix)
            if name != "HEAD":
                remote_branches.append(name)

    return local, remote_branches
