"""Tests for rule-based categorization and branch-name suggestion."""

import re

import pytest

from worktree_orchestrator.config.settings import OrchestratorSettings
from worktree_orchestrator.engine.categorizer import (
    DEFAULT_CATEGORIES,
    Categorizer,
    Category,
    fallback_category,
)
from worktree_orchestrator.enums import TaskType
from worktree_orchestrator.git.paths import validate_branch_name

BRANCH_PATTERN = re.compile(r"^[a-z0-9-]+$")


@pytest.fixture
def categorizer() -> Categorizer:
    return Categorizer()


class TestCategorize:
    """Tests for category selection."""

    def test_bug_keywords(self, categorizer):
        assert categorizer.categorize("Fix login bug").id == "bug-fixing"

    def test_first_rule_wins(self, categorizer):
        """Test an item matching several rules takes the earliest one."""
        category = categorizer.categorize("Broken layout on checkout page")

        assert category.id == "bug-fixing"

    def test_description_and_area_are_considered(self, categorizer):
        category = categorizer.categorize("Nightly job", description="Move the ETL to the new schema")
        assert category.id == "data"

        category = categorizer.categorize("Nightly job", functional_area="Kubernetes")
        assert category.id == "platform"

    def test_whole_word_matching(self, categorizer):
        """Test keywords do not match inside longer words."""
        category = categorizer.categorize("Debug prefix handling", task_type="CHORE")

        assert category.id == "general"

    def test_fallback_by_type(self, categorizer):
        assert categorizer.categorize("Update dependencies", task_type="FEATURE").prefix == "feat-"
        assert categorizer.categorize("Update dependencies", task_type="BUG").prefix == "fix-"
        assert categorizer.categorize("Update dependencies", task_type="TASK").prefix == "task-"

    def test_fallback_category_fields(self):
        category = fallback_category(TaskType.CHORE)

        assert (category.label, category.team, category.prefix) == ("General", "Development", "task-")


class TestBranchName:
    """Tests for branch-name construction."""

    def test_prefix_not_doubled(self, categorizer):
        assert categorizer.branch_name("fix-", "Fix login bug") == "fix-login-bug"

    def test_prefix_added(self, categorizer):
        assert categorizer.branch_name("ui-", "Add shopping cart page") == "ui-add-shopping-cart-page"

    def test_empty_title(self, categorizer):
        assert categorizer.branch_name("task-", "!!!") == "task-untitled"

    def test_length_cap(self, categorizer):
        name = categorizer.branch_name("feat-", "Implement " + "very long words " * 20)

        assert len(name) <= 50
        assert not name.endswith("-")
        assert validate_branch_name(name).is_valid

    def test_custom_max_length(self):
        categorizer = Categorizer(max_length=20)
        name = categorizer.branch_name("feat-", "Implement the shopping cart for everyone")

        assert len(name) <= 20


class TestSuggest:
    """Tests for Categorizer.suggest."""

    def test_fix_login_bug(self, categorizer):
        suggestion = categorizer.suggest("Fix login bug", task_type="BUG")

        assert suggestion.branch_name == "fix-login-bug"
        assert suggestion.category.id == "bug-fixing"
        assert set(suggestion.matched_keywords) == {"fix", "bug"}

    def test_collision_gets_suffix(self, categorizer):
        suggestion = categorizer.suggest("Fix login bug", existing_names=["fix-login-bug"])
        assert suggestion.branch_name == "fix-login-bug-2"

    def test_collision_counts_up(self, categorizer):
        suggestion = categorizer.suggest(
            "Fix login bug",
            existing_names={"fix-login-bug", "fix-login-bug-2", "fix-login-bug-3"},
        )
        assert suggestion.branch_name == "fix-login-bug-4"

    def test_suffix_respects_length_cap(self):
        categorizer = Categorizer(max_length=20)
        first = categorizer.suggest("Implement shopping cart checkout")

        second = categorizer.suggest("Implement shopping cart checkout", existing_names=[first.branch_name])

        assert second.branch_name != first.branch_name
        assert len(second.branch_name) <= 20
        assert second.branch_name.endswith("-2")

    @pytest.mark.parametrize(
        "title",
        [
            "Fix login bug",
            "Add: Payment Gateway (Stripe)",
            "   ",
            "Ünïcödé title with émojis 🚀",
            "Refactor the ORM layer__now",
        ],
    )
    def test_suggestions_are_valid_names(self, categorizer, title):
        suggestion = categorizer.suggest(title)

        assert BRANCH_PATTERN.match(suggestion.branch_name)
        assert validate_branch_name(suggestion.branch_name).is_valid

    def test_deterministic(self, categorizer):
        first = categorizer.suggest("Add shopping cart page", existing_names=["ui-add-shopping-cart-page"])
        second = categorizer.suggest("Add shopping cart page", existing_names=["ui-add-shopping-cart-page"])

        assert first == second

    def test_to_dict(self, categorizer):
        data = categorizer.suggest("Fix login bug").to_dict()

        assert data["branch_name"] == "fix-login-bug"
        assert data["category"]["team"] == "Maintenance"


class TestFromConfig:
    def test_default_table(self):
        categorizer = Categorizer.from_config(OrchestratorSettings())
        assert categorizer.categories == DEFAULT_CATEGORIES

    def test_configured_table_replaces_default(self):
        settings = OrchestratorSettings(
            categories=[
                {"id": "billing", "label": "Billing", "team": "Payments", "prefix": "pay-", "keywords": ["invoice"]},
            ],
            checkouts={"max_branch_length": 30},
        )

        categorizer = Categorizer.from_config(settings)

        assert categorizer.categories == (
            Category(id="billing", label="Billing", team="Payments", prefix="pay-", keywords=("invoice",)),
        )
        assert categorizer.max_length == 30
        assert categorizer.suggest("Invoice totals are off").branch_name == "pay-invoice-totals-are-off"
        assert categorizer.suggest("Fix login bug", task_type="BUG").category.id == "general"
