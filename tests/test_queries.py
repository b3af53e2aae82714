"""Tests for monthly summaries."""

from datetime import date
from decimal import Decimal

import pytest

from finfree.models import (
    CategoryBudget,
    Expense,
    ExpenseType,
    Income,
    MonthlyBudget,
)
from finfree.queries import (
    category_progress,
    daily_allowance,
    days_remaining,
    monthly_expenses,
    monthly_income,
    net_cash_flow,
    spent_by_category,
    spent_by_type,
)


def expense(day, amount, category="FOOD", expense_type=ExpenseType.NEED):
    return Expense(
        transaction_date=day,
        amount=Decimal(str(amount)),
        category=category,
        expense_type=expense_type,
    )


@pytest.fixture
def expenses():
    return [
        expense(date(2024, 2, 5), 10000),
        expense(date(2024, 2, 7), 1500, "EAT OUT", ExpenseType.WANT),
        expense(date(2024, 2, 9), 500, "FOOD", ExpenseType.WANT),
        expense(date(2024, 1, 31), 999),
    ]


@pytest.fixture
def budget():
    return MonthlyBudget(
        salary=Decimal("100000"),
        categories={
            "FOOD": CategoryBudget(amount=Decimal("30000")),
            "EAT OUT": CategoryBudget(amount=Decimal("1000"), expense_type=ExpenseType.WANT),
        },
    )


class TestMonthlyTotals:

    def test_only_records_in_month_count(self, expenses):
        assert monthly_expenses(expenses, "2024-02") == Decimal("12000")
        assert monthly_expenses(expenses, "2024-01") == Decimal("999")
        assert monthly_expenses(expenses, "2024-03") == 0

    def test_net_cash_flow(self, expenses):
        incomes = [Income(transaction_date=date(2024, 2, 25), amount=Decimal("300000"))]
        assert monthly_income(incomes, "2024-02") == Decimal("300000")
        assert net_cash_flow(incomes, expenses, "2024-02") == Decimal("288000")

    def test_spent_by_category(self, expenses):
        assert spent_by_category(expenses, "2024-02") == {
            "FOOD": Decimal("10500"),
            "EAT OUT": Decimal("1500"),
        }

    def test_spent_by_recorded_type(self, expenses):
        """Test that each expense counts under its own recorded classification."""
        assert spent_by_type(expenses, "2024-02") == {
            ExpenseType.NEED: Decimal("10000"),
            ExpenseType.WANT: Decimal("2000"),
        }


class TestDaysRemaining:

    def test_current_month_counts_today(self):
        assert days_remaining("2024-02", date(2024, 2, 10)) == 20
        assert days_remaining("2024-02", date(2024, 2, 29)) == 1

    def test_future_month_has_all_days(self):
        assert days_remaining("2024-04", date(2024, 2, 10)) == 30

    def test_past_month_has_none(self):
        assert days_remaining("2024-01", date(2024, 2, 10)) == 0


class TestDailyAllowance:

    def test_allowance_spreads_remaining_budget(self, budget, expenses):
        allowance = daily_allowance(budget, expenses, "2024-02", today=date(2024, 2, 10))

        # 31000 budgeted - 12000 spent = 19000 over 20 days
        assert allowance.days_remaining == 20
        assert allowance.budget_remaining == Decimal("19000")
        assert allowance.overall == Decimal("950.00")
        assert allowance.by_category["FOOD"] == Decimal("975.00")
        assert allowance.by_category["EAT OUT"] == Decimal("-25.00")

    def test_past_month_allows_nothing_per_day(self, budget, expenses):
        allowance = daily_allowance(budget, expenses, "2024-02", today=date(2024, 3, 1))
        assert allowance.days_remaining == 0
        assert allowance.overall == 0

    def test_no_budget(self, expenses):
        allowance = daily_allowance(None, expenses, "2024-02", today=date(2024, 2, 10))
        assert allowance.overall == 0
        assert allowance.by_category == {}


class TestCategoryProgress:

    def test_progress_per_category(self, budget, expenses):
        progress = {p.category_id: p for p in category_progress(budget, expenses, "2024-02")}

        food = progress["FOOD"]
        assert food.spent == Decimal("10500")
        assert food.remaining == Decimal("19500")
        assert food.percent_used == Decimal("35.0")
        assert not food.over_budget

        eat_out = progress["EAT OUT"]
        assert eat_out.over_budget
        assert eat_out.percent_used == Decimal("150.0")

    def test_unbudgeted_category_reads_zero_percent(self, expenses):
        budget = MonthlyBudget(categories={"FOOD": CategoryBudget()})
        progress = category_progress(budget, expenses, "2024-02")
        assert progress[0].percent_used == 0
        assert progress[0].over_budget
