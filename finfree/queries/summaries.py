"""
Monthly Summaries

DESIGN DECISION: Summaries are DETERMINISTIC functions of stored records.
They never estimate and never read the balances cache: every figure is
summed from the expense and income records passed in.

A month's records are those whose date falls in the month key.
"""

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from finfree.budgets.resolver import percentage_of_salary, validate_month_key
from finfree.models.budget import (
    ZERO,
    CategoryProgress,
    DailyAllowance,
    MonthlyBudget,
)
from finfree.models.transactions import Expense, ExpenseType, Income


CENT = Decimal("0.01")


def in_month(record_date: date, month_key: str) -> bool:
    return f"{record_date.year:04d}-{record_date.month:02d}" == month_key


def monthly_income(incomes: Iterable[Income], month_key: str) -> Decimal:
    validate_month_key(month_key)
    return sum((i.amount for i in incomes if in_month(i.transaction_date, month_key)), ZERO)


def monthly_expenses(expenses: Iterable[Expense], month_key: str) -> Decimal:
    validate_month_key(month_key)
    return sum((e.amount for e in expenses if in_month(e.transaction_date, month_key)), ZERO)


def net_cash_flow(
    incomes: Iterable[Income],
    expenses: Iterable[Expense],
    month_key: str,
) -> Decimal:
    """Income minus expenses for the month. Transfers do not count."""
    return monthly_income(incomes, month_key) - monthly_expenses(expenses, month_key)


def spent_by_category(expenses: Iterable[Expense], month_key: str) -> dict[str, Decimal]:
    validate_month_key(month_key)
    spent: dict[str, Decimal] = {}
    for expense in expenses:
        if in_month(expense.transaction_date, month_key):
            spent[expense.category] = spent.get(expense.category, ZERO) + expense.amount
    return spent


def spent_by_type(expenses: Iterable[Expense], month_key: str) -> dict[ExpenseType, Decimal]:
    """Spending per classification, using each expense's recorded type."""
    validate_month_key(month_key)
    spent: dict[ExpenseType, Decimal] = {}
    for expense in expenses:
        if in_month(expense.transaction_date, month_key):
            spent[expense.expense_type] = spent.get(expense.expense_type, ZERO) + expense.amount
    return spent


def days_remaining(month_key: str, today: date) -> int:
    """
    Days left in the month, today included.

    A future month has all of its days left, a past month none.
    """
    validate_month_key(month_key)
    year, month = (int(part) for part in month_key.split("-"))
    days_in_month = calendar.monthrange(year, month)[1]
    if (today.year, today.month) == (year, month):
        return days_in_month - today.day + 1
    if (year, month) > (today.year, today.month):
        return days_in_month
    return 0


def _per_day(amount: Decimal, days: int) -> Decimal:
    if days <= 0:
        return ZERO
    return (amount / days).quantize(CENT, rounding=ROUND_HALF_UP)


def daily_allowance(
    budget: Optional[MonthlyBudget],
    expenses: Iterable[Expense],
    month_key: str,
    today: Optional[date] = None,
) -> DailyAllowance:
    """
    What can still be spent per day, overall and per category.

    Remaining amounts can go negative when a budget is overspent.
    """
    if budget is None:
        return DailyAllowance(overall=ZERO, days_remaining=0, budget_remaining=ZERO)

    days = days_remaining(month_key, today or date.today())
    spent = spent_by_category(expenses, month_key)
    budget_remaining = budget.total_budgeted - sum(spent.values(), ZERO)

    return DailyAllowance(
        overall=_per_day(budget_remaining, days),
        by_category={
            category_id: _per_day(entry.amount - spent.get(category_id, ZERO), days)
            for category_id, entry in budget.categories.items()
        },
        days_remaining=days,
        budget_remaining=budget_remaining,
    )


def category_progress(
    budget: MonthlyBudget,
    expenses: Iterable[Expense],
    month_key: str,
) -> list[CategoryProgress]:
    """Spent vs budgeted for every category in the month's budget."""
    spent = spent_by_category(expenses, month_key)
    progress = []
    for category_id, entry in budget.categories.items():
        category_spent = spent.get(category_id, ZERO)
        progress.append(CategoryProgress(
            category_id=category_id,
            expense_type=entry.expense_type,
            budgeted=entry.amount,
            spent=category_spent,
            remaining=entry.amount - category_spent,
            percent_used=percentage_of_salary(category_spent, entry.amount),
        ))
    return progress
