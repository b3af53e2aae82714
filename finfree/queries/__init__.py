"""Deterministic monthly summaries over stored records."""

from finfree.queries.summaries import (
    category_progress,
    daily_allowance,
    days_remaining,
    monthly_expenses,
    monthly_income,
    net_cash_flow,
    spent_by_category,
    spent_by_type,
)

__all__ = [
    "category_progress",
    "daily_allowance",
    "days_remaining",
    "monthly_expenses",
    "monthly_income",
    "net_cash_flow",
    "spent_by_category",
    "spent_by_type",
]
