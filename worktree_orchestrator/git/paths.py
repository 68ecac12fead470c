"""Checkout path resolution and branch-name rules.

Every checkout lives at ``<root>/<project>/<branch>``. The path is a pure
function of its inputs so any component can compute it without consulting
the filesystem or a registry.

Branch names are restricted to lowercase ASCII letters, digits and single
hyphens. Names that break a rule are reported back with suggestions instead
of being rewritten silently.

Example:
    >>> resolve_path("/srv/repos", "shop", "feat-cart")
    PosixPath('/srv/repos/shop/feat-cart')
    >>> validate_branch_name("Fix Login Bug!!").suggestions[0]
    'fix-login-bug'
"""

import re
from pathlib import Path

from worktree_orchestrator.git.models import BranchValidation

DEFAULT_MAX_LENGTH = 50

# Prefix conventions used by the categorizer, in suggestion order
KNOWN_PREFIXES = ("feat-", "fix-", "task-")

_SEPARATORS = re.compile(r"[\s_/\\.]+")
_DISALLOWED = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUNS = re.compile(r"-{2,}")
_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9-]")


def resolve_path(root: str | Path, project: str, branch: str) -> Path:
    """Return the checkout path for a (project, branch) pair.

    Args:
        root: Hierarchical checkout root
        project: Project directory name
        branch: Branch name

    Returns:
        ``<root>/<project>/<branch>``
    """
    return Path(root) / project / branch


def slugify(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Reduce free text to a name made of ``[a-z0-9-]``.

    Separators become hyphens, other punctuation is dropped, hyphen runs
    collapse and the result is cut to ``max_length`` without a dangling
    hyphen.

    Args:
        text: Arbitrary text
        max_length: Maximum length of the result

    Returns:
        Slug, possibly empty when the text holds no usable characters
    """
    slug = _SEPARATORS.sub("-", text.lower())
    slug = _DISALLOWED.sub("", slug)
    slug = _HYPHEN_RUNS.sub("-", slug).strip("-")
    return slug[:max_length].rstrip("-")


def has_known_prefix(name: str) -> bool:
    """Check if a name already follows a prefix convention."""
    return name.startswith(KNOWN_PREFIXES)


def validate_branch_name(name: str, max_length: int = DEFAULT_MAX_LENGTH) -> BranchValidation:
    """Validate a branch name against the naming rules.

    Rules:
        - not empty
        - lowercase
        - only ``a-z``, ``0-9`` and ``-``
        - no leading, trailing or consecutive hyphens
        - at most ``max_length`` characters

    Args:
        name: Proposed branch name
        max_length: Maximum allowed length

    Returns:
        BranchValidation with the violations found and, for invalid names,
        suggested replacements that each satisfy the rules
    """
    errors: list[str] = []

    if not name.strip():
        errors.append("Branch name must not be empty")
    else:
        if name != name.lower():
            errors.append("Branch name must be lowercase")
        invalid = sorted(set(_INVALID_CHARS.findall(name)))
        if invalid:
            shown = " ".join(repr(c) for c in invalid)
            errors.append(f"Branch name may only contain a-z, 0-9 and '-' (found {shown})")
        if name.startswith("-") or name.endswith("-"):
            errors.append("Branch name must not start or end with a hyphen")
        if "--" in name:
            errors.append("Branch name must not contain consecutive hyphens")
        if len(name) > max_length:
            errors.append(f"Branch name must be at most {max_length} characters (got {len(name)})")

    normalized = slugify(name, max_length)

    if not errors:
        return BranchValidation(name=name, is_valid=True, normalized_name=name)

    suggestions: list[str] = []
    if normalized:
        suggestions.append(normalized)
        if not has_known_prefix(normalized):
            for prefix in KNOWN_PREFIXES:
                candidate = slugify(prefix + normalized, max_length)
                if candidate not in suggestions:
                    suggestions.append(candidate)

    return BranchValidation(
        name=name,
        is_valid=False,
        normalized_name=normalized,
        errors=errors,
        suggestions=suggestions,
    )
