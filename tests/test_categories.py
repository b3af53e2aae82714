"""Tests for the category registry."""

import pytest

from finfree.categories import (
    DEFAULT_CATEGORIES,
    UNCATEGORIZED,
    CategoryError,
    CategoryRegistry,
    DuplicateCategoryError,
    UnknownCategoryError,
)
from finfree.models import CategoryDefinition, ExpenseType


class TestResolution:

    def test_resolves_registered_category(self, registry):
        """Test that a registered id resolves to its definition."""
        definition = registry.resolve("RENT")
        assert definition.name == "Rent"
        assert definition.default_type == ExpenseType.NEED

    def test_unknown_category_degrades_to_uncategorized(self, registry):
        """Test that an unknown id resolves to the uncategorized fallback."""
        assert registry.resolve("PONIES") == UNCATEGORIZED

    def test_strict_resolution_raises(self, registry):
        """Test that strict resolution refuses unknown ids."""
        with pytest.raises(UnknownCategoryError):
            registry.resolve("PONIES", strict=True)

    def test_unknown_category_error_is_key_error(self, registry):
        with pytest.raises(KeyError):
            registry.resolve("PONIES", strict=True)

    def test_no_fallback_raises(self):
        registry = CategoryRegistry(DEFAULT_CATEGORIES, fallback=None)
        with pytest.raises(UnknownCategoryError):
            registry.resolve("PONIES")

    def test_container_protocol(self, registry):
        assert "FOOD" in registry
        assert "PONIES" not in registry
        assert len(registry) == len(DEFAULT_CATEGORIES)
        assert [d.id for d in registry] == registry.ids

    def test_duplicate_ids_refused(self):
        food = CategoryDefinition(id="FOOD", name="Food")
        with pytest.raises(DuplicateCategoryError):
            CategoryRegistry([food, food])


class TestClassification:

    def test_registry_default_type(self, registry):
        """Test that classification falls back to the category's default type."""
        assert registry.classify("FOOD") == ExpenseType.NEED
        assert registry.classify("EAT OUT") == ExpenseType.WANT
        assert registry.classify("DEBT") == ExpenseType.DEBT

    def test_override_wins(self, registry):
        """Test that an explicit override replaces the default."""
        assert registry.classify("FOOD", ExpenseType.WANT) == ExpenseType.WANT

    def test_missing_category_uses_fallback_type(self, registry):
        assert registry.classify(None) == UNCATEGORIZED.default_type
        assert registry.classify("PONIES") == UNCATEGORIZED.default_type


class TestCustomCategories:

    def test_add_returns_new_registry(self, registry):
        """Test that adding a category leaves the original registry untouched."""
        pets = CategoryDefinition(id="PETS", name="Pets", icon="Heart", default_type=ExpenseType.NEED)
        updated = registry.add(pets)

        assert "PETS" in updated
        assert "PETS" not in registry
        assert updated.ids[-1] == "PETS"

    def test_add_duplicate_refused(self, registry):
        with pytest.raises(DuplicateCategoryError):
            registry.add(CategoryDefinition(id="FOOD", name="Food again", icon="Heart"))

    def test_add_unknown_icon_refused(self, registry):
        with pytest.raises(CategoryError):
            registry.add(CategoryDefinition(id="PETS", name="Pets", icon="Unicorn"))

    def test_update_changes_display_fields_only(self, registry):
        """Test that an update keeps the id and position."""
        updated = registry.update("FOOD", name="Groceries", default_type=ExpenseType.WANT)

        assert updated.resolve("FOOD").name == "Groceries"
        assert updated.classify("FOOD") == ExpenseType.WANT
        assert updated.ids == registry.ids
        assert registry.resolve("FOOD").name == "Food"

    def test_update_unknown_category_raises(self, registry):
        with pytest.raises(UnknownCategoryError):
            registry.update("PONIES", name="Ponies")

    def test_builtin_category_cannot_be_removed(self, registry):
        assert registry.is_builtin("RENT")
        with pytest.raises(CategoryError):
            registry.remove("RENT")

    def test_custom_category_can_be_removed(self, registry):
        updated = registry.add(CategoryDefinition(id="PETS", name="Pets", icon="Heart"))
        assert "PETS" not in updated.remove("PETS")
