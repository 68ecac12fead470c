"""Tests for checkout path resolution and branch-name validation."""

import re
from pathlib import Path

import pytest

from worktree_orchestrator.git.paths import (
    KNOWN_PREFIXES,
    has_known_prefix,
    resolve_path,
    slugify,
    validate_branch_name,
)

BRANCH_PATTERN = re.compile(r"^[a-z0-9-]+$")


class TestResolvePath:
    """Tests for resolve_path."""

    def test_joins_root_project_branch(self):
        assert resolve_path("/srv/repos", "shop", "feat-cart") == Path("/srv/repos/shop/feat-cart")

    @pytest.mark.parametrize(
        "project,branch",
        [("shop", "main"), ("shop", "feat-cart"), ("billing", "fix-login-bug")],
    )
    def test_is_deterministic(self, project, branch):
        """Same inputs always give the same path."""
        first = resolve_path("repositories", project, branch)
        second = resolve_path("repositories", project, branch)
        assert first == second

    def test_does_not_touch_filesystem(self, tmp_path: Path):
        path = resolve_path(tmp_path, "shop", "feat-cart")
        assert not path.exists()
        assert not (tmp_path / "shop").exists()


class TestSlugify:
    """Tests for slugify."""

    def test_lowercases_and_hyphenates(self):
        assert slugify("Fix Login Bug") == "fix-login-bug"

    def test_drops_punctuation(self):
        assert slugify("Fix Login Bug!!") == "fix-login-bug"

    def test_separators_become_hyphens(self):
        assert slugify("feature/cart_page.v2") == "feature-cart-page-v2"

    def test_collapses_and_strips_hyphens(self):
        assert slugify("--a   --  b--") == "a-b"

    def test_truncates_without_trailing_hyphen(self):
        assert slugify("abcd efgh", max_length=5) == "abcd"

    def test_empty_when_nothing_usable(self):
        assert slugify("!!!") == ""


class TestValidateBranchName:
    """Tests for validate_branch_name."""

    def test_valid_name(self):
        result = validate_branch_name("feat-cart")

        assert result.is_valid
        assert result.errors == []
        assert result.suggestions == []
        assert result.normalized_name == "feat-cart"

    def test_invalid_name_gets_suggestion(self):
        result = validate_branch_name("Fix Login Bug!!")

        assert not result.is_valid
        assert result.suggestions
        assert result.suggestions[0] == "fix-login-bug"
        assert all(BRANCH_PATTERN.match(s) for s in result.suggestions)

    def test_invalid_name_is_not_mutated(self):
        result = validate_branch_name("Fix Login Bug!!")
        assert result.name == "Fix Login Bug!!"

    def test_uppercase_reported(self):
        result = validate_branch_name("Feat-cart")
        assert any("lowercase" in e for e in result.errors)

    def test_invalid_characters_reported(self):
        result = validate_branch_name("feat_cart")
        assert any("may only contain" in e for e in result.errors)

    @pytest.mark.parametrize("name", ["-feat", "feat-", "feat--cart"])
    def test_hyphen_rules(self, name):
        result = validate_branch_name(name)
        assert not result.is_valid

    def test_empty_name(self):
        result = validate_branch_name("  ")

        assert not result.is_valid
        assert "must not be empty" in result.errors[0]
        assert result.suggestions == []

    def test_too_long(self):
        name = "feat-" + "a" * 60
        result = validate_branch_name(name, max_length=50)

        assert not result.is_valid
        assert all(len(s) <= 50 for s in result.suggestions)

    def test_prefixed_variants_suggested_without_known_prefix(self):
        result = validate_branch_name("Shopping Cart")

        assert result.suggestions[0] == "shopping-cart"
        for prefix in KNOWN_PREFIXES:
            assert f"{prefix}shopping-cart" in result.suggestions

    def test_suggestions_revalidate(self):
        """Every suggestion passes validation itself."""
        result = validate_branch_name("  Add: Payment Gateway (Stripe) ")
        for suggestion in result.suggestions:
            assert validate_branch_name(suggestion).is_valid


def test_has_known_prefix():
    assert has_known_prefix("fix-login")
    assert not has_known_prefix("login-fix")
