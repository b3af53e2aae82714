"""Tests for the budget resolver."""

from decimal import Decimal

import pytest

from finfree.budgets import (
    BudgetResolver,
    InvalidMonthKeyError,
    current_month_key,
    percentage_of_salary,
    shift_month,
    validate_month_key,
)
from finfree.categories import CategoryRegistry, UnknownCategoryError
from finfree.models import (
    CategoryBudget,
    ConfigDocument,
    ExpenseType,
    MonthlyBudget,
)


@pytest.fixture
def document():
    return ConfigDocument()


@pytest.fixture
def resolver(document):
    return BudgetResolver(CategoryRegistry(document.categories))


class TestMonthKeys:

    def test_valid_month_key(self):
        assert validate_month_key("2024-01") == "2024-01"

    @pytest.mark.parametrize("key", ["2024-13", "2024-1", "24-01", "2024/01", ""])
    def test_invalid_month_key(self, key):
        with pytest.raises(InvalidMonthKeyError):
            validate_month_key(key)

    def test_shift_month_across_years(self):
        assert shift_month("2024-01", -1) == "2023-12"
        assert shift_month("2024-12", 1) == "2025-01"
        assert shift_month("2024-05", 0) == "2024-05"

    def test_current_month_key(self):
        from datetime import date
        assert current_month_key(date(2024, 3, 9)) == "2024-03"


class TestGetBudget:

    def test_missing_month_is_synthesized(self, document, resolver):
        """Test that reading an unknown month builds a zero budget without storing it."""
        budget = resolver.get_budget(document, "2024-01")

        assert budget.salary == 0
        assert set(budget.categories) == {c.id for c in document.categories}
        assert all(entry.amount == 0 for entry in budget.categories.values())
        assert budget.categories["EAT OUT"].expense_type == ExpenseType.WANT
        assert document.budgets == {}
        assert not resolver.has_budget(document, "2024-01")

    def test_stored_budget_gains_missing_categories_on_read(self, document, resolver):
        """Test that categories added after a month was stored read as 0."""
        stored = MonthlyBudget(
            salary=Decimal("1000"),
            categories={"RENT": CategoryBudget(amount=Decimal("400"))},
        )
        document = document.model_copy(update={"budgets": {"2024-01": stored}})

        budget = resolver.get_budget(document, "2024-01")

        assert budget.categories["RENT"].amount == Decimal("400")
        assert budget.categories["FOOD"].amount == 0
        assert budget.categories["FOOD"].expense_type == ExpenseType.NEED
        assert "FOOD" not in document.budgets["2024-01"].categories


class TestEdits:

    def test_salary_and_rent_example(self, document, resolver):
        """Test a salary of 300000 with rent of 80000."""
        document = resolver.set_salary(document, "2024-01", 300000)
        document = resolver.set_category_amount(document, "2024-01", "RENT", 80000)

        assert resolver.total_budgeted(document, "2024-01") == Decimal("80000")
        assert resolver.available(document, "2024-01") == Decimal("220000")
        assert resolver.percentage(document, "2024-01", "RENT") == Decimal("26.7")

    def test_edit_does_not_touch_original_document(self, document, resolver):
        updated = resolver.set_salary(document, "2024-01", 5000)
        assert document.budgets == {}
        assert updated.budgets["2024-01"].salary == Decimal("5000")

    def test_edit_shares_other_months(self, document, resolver):
        """Test that editing one month leaves every other month the same object."""
        first = resolver.set_category_amount(document, "2024-01", "FOOD", 300)
        second = resolver.set_category_amount(first, "2024-02", "FOOD", 500)

        assert second.budgets["2024-01"] is first.budgets["2024-01"]
        assert second.budgets["2024-01"].categories["FOOD"].amount == Decimal("300")
        assert second.budgets["2024-02"].categories["FOOD"].amount == Decimal("500")

    @pytest.mark.parametrize("value", [-5, "-5", "abc", "nan", "Infinity", None, ""])
    def test_unusable_amounts_become_zero(self, document, resolver, value):
        """Test that bad budget input is clamped to zero, never rejected."""
        document = resolver.set_category_amount(document, "2024-01", "FOOD", value)
        assert document.budgets["2024-01"].categories["FOOD"].amount == 0

    def test_unusable_salary_becomes_zero(self, document, resolver):
        document = resolver.set_salary(document, "2024-01", "lots")
        assert document.budgets["2024-01"].salary == 0

    def test_stored_negative_amounts_are_clamped_on_read(self):
        budget = MonthlyBudget.model_validate({
            "salary": "-100",
            "categories": {"FOOD": {"amount": -20, "type": "NEED"}},
        })
        assert budget.salary == 0
        assert budget.categories["FOOD"].amount == 0

    def test_unknown_category_refused(self, document, resolver):
        with pytest.raises(UnknownCategoryError):
            resolver.set_category_amount(document, "2024-01", "PONIES", 100)

    def test_invalid_month_refused(self, document, resolver):
        with pytest.raises(InvalidMonthKeyError):
            resolver.set_salary(document, "2024-13", 100)

    def test_copy_month_seeds_target(self, document, resolver):
        document = resolver.set_category_amount(document, "2024-01", "RENT", 800)
        copied = resolver.copy_month(document, "2024-01", "2024-02")

        assert copied.budgets["2024-02"].categories["RENT"].amount == Decimal("800")
        assert "2024-02" not in document.budgets

    def test_copy_month_keeps_existing_target(self, document, resolver):
        document = resolver.set_category_amount(document, "2024-01", "RENT", 800)
        document = resolver.set_category_amount(document, "2024-02", "RENT", 900)

        assert resolver.copy_month(document, "2024-01", "2024-02") is document


class TestDerivedValues:

    def test_percentage_without_salary_is_zero(self):
        assert percentage_of_salary(Decimal("100"), Decimal("0")) == 0

    def test_percentage_rounds_half_up(self):
        assert percentage_of_salary(Decimal("1"), Decimal("8")) == Decimal("12.5")
        assert percentage_of_salary(Decimal("1"), Decimal("3")) == Decimal("33.3")

    def test_available_can_go_negative(self, document, resolver):
        document = resolver.set_salary(document, "2024-01", 100)
        document = resolver.set_category_amount(document, "2024-01", "RENT", 150)
        assert resolver.available(document, "2024-01") == Decimal("-50")

    def test_summary_groups_by_type(self, document, resolver):
        document = resolver.set_salary(document, "2024-01", 1000)
        document = resolver.set_category_amount(document, "2024-01", "RENT", 400)
        document = resolver.set_category_amount(document, "2024-01", "EAT OUT", 100)
        document = resolver.set_category_amount(document, "2024-01", "SAVE", 200)

        summary = resolver.summary(document, "2024-01")

        assert summary.by_type[ExpenseType.NEED] == Decimal("400")
        assert summary.by_type[ExpenseType.WANT] == Decimal("100")
        assert summary.by_type[ExpenseType.SAVE] == Decimal("200")
        assert summary.percentages["RENT"] == Decimal("40.0")
        assert summary.available == Decimal("300")
