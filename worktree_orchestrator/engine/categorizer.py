"""
Rule-based categorization of work items.

Turns the free text of a work item into an owning category and a suggested
branch name. The rule table is ordered and the first rule with any keyword
present wins; there is no scoring. Items matching no rule fall back to a
category derived from the work-item type.

Keywords are matched against whole words of the lowercased title,
description and functional area, so ``"fix"`` matches "Fix login" but not
"prefix".
"""

import re
from dataclasses import dataclass, field
from typing import Any

import structlog

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.enums import TaskType
from worktree_orchestrator.git.paths import DEFAULT_MAX_LENGTH, slugify

log = structlog.get_logger(__name__)

_WORDS = re.compile(r"[a-z0-9]+")

UNTITLED_SLUG = "untitled"


@dataclass(frozen=True)
class Category:
    """A static categorization rule."""

    id: str
    label: str
    team: str
    prefix: str
    keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "team": self.team, "prefix": self.prefix}


@dataclass(frozen=True)
class Suggestion:
    """Suggested branch name and the category that produced it."""

    branch_name: str
    category: Category
    matched_keywords: tuple[str, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch_name": self.branch_name,
            "category": self.category.to_dict(),
            "matched_keywords": list(self.matched_keywords),
        }


# Evaluated top to bottom; the first rule with a matching keyword wins
DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(
        id="bug-fixing",
        label="Bug Fixing",
        team="Maintenance",
        prefix="fix-",
        keywords=("bug", "bugs", "fix", "broken", "crash", "error", "regression", "hotfix"),
    ),
    Category(
        id="security",
        label="Security",
        team="Security",
        prefix="sec-",
        keywords=("security", "vulnerability", "auth", "authentication", "permission", "xss", "csrf", "encryption"),
    ),
    Category(
        id="frontend",
        label="Frontend",
        team="Frontend",
        prefix="ui-",
        keywords=("ui", "ux", "frontend", "css", "layout", "button", "page", "component", "responsive"),
    ),
    Category(
        id="data",
        label="Data",
        team="Data",
        prefix="data-",
        keywords=("database", "migration", "schema", "query", "sql", "etl", "analytics", "report"),
    ),
    Category(
        id="platform",
        label="Platform",
        team="Platform",
        prefix="ops-",
        keywords=("deploy", "deployment", "infrastructure", "ci", "pipeline", "docker", "kubernetes", "monitoring"),
    ),
    Category(
        id="testing",
        label="Testing",
        team="Quality Assurance",
        prefix="test-",
        keywords=("test", "tests", "testing", "coverage", "qa", "e2e"),
    ),
    Category(
        id="documentation",
        label="Documentation",
        team="Documentation",
        prefix="docs-",
        keywords=("docs", "documentation", "readme", "guide", "tutorial"),
    ),
    Category(
        id="features",
        label="Features",
        team="Product Development",
        prefix="feat-",
        keywords=("feature", "implement", "enhancement", "introduce"),
    ),
)

TYPE_PREFIXES: dict[TaskType, str] = {
    TaskType.BUG: "fix-",
    TaskType.SUBTASK: "fix-",
    TaskType.FEATURE: "feat-",
    TaskType.STORY: "feat-",
    TaskType.EPIC: "feat-",
}

DEFAULT_PREFIX = "task-"


def fallback_category(task_type: TaskType) -> Category:
    """Category used when no rule matches, keyed off the work-item type."""
    return Category(
        id="general",
        label="General",
        team="Development",
        prefix=TYPE_PREFIXES.get(task_type, DEFAULT_PREFIX),
    )


class Categorizer:
    """Suggest categories and branch names for work items.

    All methods are pure: the categorizer never reads the filesystem or the
    repository, and callers persist whatever name they choose.
    """

    def __init__(self, categories: tuple[Category, ...] = DEFAULT_CATEGORIES, max_length: int = DEFAULT_MAX_LENGTH):
        self.categories = tuple(categories)
        self.max_length = max_length
        self._keyword_words = {
            category.id: [tuple(_WORDS.findall(keyword.lower())) for keyword in category.keywords]
            for category in self.categories
        }

    @classmethod
    def from_config(cls, settings: OrchestratorSettings) -> "Categorizer":
        """Build a categorizer from settings.

        The configured category list replaces the built-in table when given.
        """
        if settings.categories is None:
            categories = DEFAULT_CATEGORIES
        else:
            categories = tuple(
                Category(
                    id=c.id,
                    label=c.label,
                    team=c.team,
                    prefix=c.prefix,
                    keywords=tuple(c.keywords),
                )
                for c in settings.categories
            )
        return cls(categories, max_length=settings.checkouts.max_branch_length)

    def _match(self, title: str, description: str, functional_area: str) -> tuple[Category, tuple[str, ...]] | None:
        words = _WORDS.findall(f"{title} {description} {functional_area}".lower())
        text = f" {' '.join(words)} "

        for category in self.categories:
            matched = tuple(
                keyword
                for keyword, keyword_words in zip(category.keywords, self._keyword_words[category.id], strict=True)
                if keyword_words and f" {' '.join(keyword_words)} " in text
            )
            if matched:
                return category, matched
        return None

    def categorize(
        self,
        title: str,
        description: str = "",
        task_type: str | TaskType = TaskType.TASK,
        functional_area: str = "",
    ) -> Category:
        """Return the category owning a work item."""
        match = self._match(title, description or "", functional_area or "")
        if match is None:
            return fallback_category(TaskType.parse(task_type))
        return match[0]

    def branch_name(self, prefix: str, title: str) -> str:
        """Build ``<prefix><slug>`` within the length limit.

        A title that already starts with the prefix word is not prefixed
        twice ("Fix login bug" -> ``fix-login-bug``).
        """
        slug = slugify(title, self.max_length)
        if slug.startswith(prefix):
            slug = slug[len(prefix) :]
        slug = slug[: self.max_length - len(prefix)].rstrip("-") or UNTITLED_SLUG
        return f"{prefix}{slug}"

    def unique_name(self, name: str, existing_names: list[str] | set[str]) -> str:
        """Append ``-2``, ``-3``, ... until ``name`` is not taken."""
        taken = set(existing_names)
        if name not in taken:
            return name

        counter = 2
        while True:
            suffix = f"-{counter}"
            candidate = f"{name[: self.max_length - len(suffix)].rstrip('-')}{suffix}"
            if candidate not in taken:
                return candidate
            counter += 1

    def suggest(
        self,
        title: str,
        description: str = "",
        task_type: str | TaskType = TaskType.TASK,
        functional_area: str = "",
        existing_names: list[str] | set[str] | None = None,
    ) -> Suggestion:
        """Suggest a category and an unused branch name for a work item.

        Args:
            title: Work item title, used for the branch slug
            description: Work item description
            task_type: Work item type, used when no rule matches
            functional_area: Free-text functional area
            existing_names: Branch names already in use

        Returns:
            Suggestion whose branch name is not in ``existing_names``
        """
        match = self._match(title, description or "", functional_area or "")
        if match is None:
            category, matched = fallback_category(TaskType.parse(task_type)), ()
        else:
            category, matched = match

        name = self.unique_name(self.branch_name(category.prefix, title), existing_names or [])
        log.debug("branch_name_suggested", title=title, branch=name, category=category.id, keywords=matched)
        return Suggestion(branch_name=name, category=category, matched_keywords=matched)
