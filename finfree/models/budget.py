"""
Budget and Category Models

DESIGN DECISION: Budget amounts follow a permissive input policy.
Negative, non-numeric, NaN or infinite values are coerced to 0 rather than
rejected, both when a user edits a budget and when a stored budget is read.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator

from finfree.models.base import DocumentModel
from finfree.models.transactions import ExpenseType


ZERO = Decimal("0")


def coerce_amount(value: Any) -> Decimal:
    """Coerce any budget input to a non-negative Decimal, 0 when unusable."""
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not amount.is_finite() or amount < 0:
        return ZERO
    return amount


class CategoryDefinition(DocumentModel):
    """
    A spending category.

    Ids are stable uppercase-style identifiers (e.g. "RENT", "EAT OUT").
    Once transactions reference an id it must never change.
    """

    id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="ShoppingBag", max_length=50)
    default_type: ExpenseType = ExpenseType.NEED


class CategoryBudget(DocumentModel):
    """Planned amount for one category in one month."""

    amount: Decimal = ZERO
    expense_type: ExpenseType = Field(default=ExpenseType.NEED, alias="type")

    @field_validator("amount", mode="before")
    @classmethod
    def clamp_amount(cls, v: Any) -> Decimal:
        return coerce_amount(v)


class MonthlyBudget(DocumentModel):
    """A month's salary and per-category allocation, keyed by `YYYY-MM`."""

    salary: Decimal = ZERO
    categories: dict[str, CategoryBudget] = Field(default_factory=dict)

    @field_validator("salary", mode="before")
    @classmethod
    def clamp_salary(cls, v: Any) -> Decimal:
        return coerce_amount(v)

    @property
    def total_budgeted(self) -> Decimal:
        return sum((c.amount for c in self.categories.values()), ZERO)

    @property
    def available(self) -> Decimal:
        return self.salary - self.total_budgeted


# =============================================================================
# DERIVED READ MODELS
# =============================================================================

class BudgetSummary(BaseModel):
    """Planning view of one month."""

    month_key: str
    salary: Decimal
    total_budgeted: Decimal
    available: Decimal
    by_type: dict[ExpenseType, Decimal] = Field(default_factory=dict)
    percentages: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Percent of salary per category, one decimal place"
    )


class CategoryProgress(BaseModel):
    """Spent vs budgeted for one category in one month."""

    category_id: str
    expense_type: ExpenseType
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: Decimal

    @property
    def over_budget(self) -> bool:
        return self.spent > self.budgeted


class DailyAllowance(BaseModel):
    """How much can still be spent per day for the rest of a month."""

    overall: Decimal
    by_category: dict[str, Decimal] = Field(default_factory=dict)
    days_remaining: int = Field(ge=0)
    budget_remaining: Decimal
