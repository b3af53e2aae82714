"""
Budget Resolver

Answers "what is the plan for month M?" and applies edits to it.

DESIGN DECISION: Edits are copy-on-write with structural sharing by month
key. An edit rebuilds only the edited MonthlyBudget; the new document's
budgets mapping points at the very same (immutable) objects for every
other month. No edit can therefore alias or disturb another month, and an
edit costs O(edited month) rather than a deep copy of every month.

Reads never persist anything. A month without a stored budget is
synthesized on the fly (salary 0, every registry category at 0 with its
default type) and only becomes stored once it is edited.
"""

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from finfree.categories import CategoryRegistry
from finfree.models.budget import (
    ZERO,
    BudgetSummary,
    CategoryBudget,
    MonthlyBudget,
    coerce_amount,
)
from finfree.models.document import ConfigDocument


MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

ONE_DECIMAL = Decimal("0.1")
HUNDRED = Decimal("100")


class InvalidMonthKeyError(ValueError):
    """Month keys must look like `YYYY-MM`."""
    pass


def validate_month_key(month_key: str) -> str:
    if not isinstance(month_key, str) or not MONTH_KEY_PATTERN.match(month_key):
        raise InvalidMonthKeyError(f"Month key must be YYYY-MM, got {month_key!r}")
    return month_key


def current_month_key(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def shift_month(month_key: str, delta: int) -> str:
    """Move a month key forward or back by `delta` months."""
    validate_month_key(month_key)
    year, month = (int(part) for part in month_key.split("-"))
    index = year * 12 + (month - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def percentage_of_salary(amount: Decimal, salary: Decimal) -> Decimal:
    """`amount / salary * 100` to one decimal place; 0 when there is no salary."""
    if salary <= 0:
        return ZERO
    return (amount / salary * HUNDRED).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


class BudgetResolver:
    """
    Reads and edits monthly budgets in a ConfigDocument.

    Every method is a pure function of its arguments. Edits return a new
    document; the one passed in is never touched.
    """

    def __init__(self, registry: CategoryRegistry):
        self._registry = registry

    def empty_budget(self) -> MonthlyBudget:
        """Salary 0 and every registry category at 0 with its default type."""
        return MonthlyBudget(
            salary=ZERO,
            categories={
                definition.id: CategoryBudget(amount=ZERO, expense_type=definition.default_type)
                for definition in self._registry
            },
        )

    def get_budget(self, document: ConfigDocument, month_key: str) -> MonthlyBudget:
        """
        Return the month's budget.

        Registry categories missing from a stored budget read as amount 0
        with the registry's default type. Nothing is written.
        """
        validate_month_key(month_key)
        stored = document.budgets.get(month_key)
        if stored is None:
            return self.empty_budget()

        missing = {
            definition.id: CategoryBudget(amount=ZERO, expense_type=definition.default_type)
            for definition in self._registry
            if definition.id not in stored.categories
        }
        if not missing:
            return stored
        return stored.model_copy(update={"categories": {**stored.categories, **missing}})

    def has_budget(self, document: ConfigDocument, month_key: str) -> bool:
        return validate_month_key(month_key) in document.budgets

    # -------------------------------------------------------------------------
    # Copy-on-write edits
    # -------------------------------------------------------------------------

    def set_salary(
        self,
        document: ConfigDocument,
        month_key: str,
        amount: Any,
    ) -> ConfigDocument:
        """Set a month's salary. Unusable amounts become 0."""
        month = self._editable(document, month_key)
        updated = month.model_copy(update={"salary": coerce_amount(amount)})
        return self._replace_month(document, month_key, updated)

    def set_category_amount(
        self,
        document: ConfigDocument,
        month_key: str,
        category_id: str,
        amount: Any,
    ) -> ConfigDocument:
        """
        Set one category's amount for a month. Unusable amounts become 0.

        Raises:
            UnknownCategoryError: If the category is neither registered nor
                                  already part of this month's budget.
        """
        month = self._editable(document, month_key)
        current = month.categories.get(category_id)
        if current is None:
            definition = self._registry.resolve(category_id, strict=True)
            current = CategoryBudget(expense_type=definition.default_type)

        entry = current.model_copy(update={"amount": coerce_amount(amount)})
        updated = month.model_copy(
            update={"categories": {**month.categories, category_id: entry}}
        )
        return self._replace_month(document, month_key, updated)

    def copy_month(
        self,
        document: ConfigDocument,
        source_key: str,
        target_key: str,
    ) -> ConfigDocument:
        """
        Seed `target_key` from `source_key`'s plan.

        A no-op when the target month already has a stored budget.
        """
        validate_month_key(target_key)
        if target_key in document.budgets:
            return document
        return self._replace_month(
            document, target_key, self.get_budget(document, source_key)
        )

    def _editable(self, document: ConfigDocument, month_key: str) -> MonthlyBudget:
        validate_month_key(month_key)
        stored = document.budgets.get(month_key)
        return stored if stored is not None else self.empty_budget()

    @staticmethod
    def _replace_month(
        document: ConfigDocument,
        month_key: str,
        month: MonthlyBudget,
    ) -> ConfigDocument:
        return document.model_copy(
            update={"budgets": {**document.budgets, month_key: month}}
        )

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    def total_budgeted(self, document: ConfigDocument, month_key: str) -> Decimal:
        return self.get_budget(document, month_key).total_budgeted

    def available(self, document: ConfigDocument, month_key: str) -> Decimal:
        return self.get_budget(document, month_key).available

    def percentage(
        self,
        document: ConfigDocument,
        month_key: str,
        category_id: str,
    ) -> Decimal:
        budget = self.get_budget(document, month_key)
        entry = budget.categories.get(category_id)
        if entry is None:
            return ZERO
        return percentage_of_salary(entry.amount, budget.salary)

    def summary(self, document: ConfigDocument, month_key: str) -> BudgetSummary:
        budget = self.get_budget(document, month_key)
        by_type: dict = {}
        for entry in budget.categories.values():
            by_type[entry.expense_type] = by_type.get(entry.expense_type, ZERO) + entry.amount
        return BudgetSummary(
            month_key=month_key,
            salary=budget.salary,
            total_budgeted=budget.total_budgeted,
            available=budget.available,
            by_type=by_type,
            percentages={
                category_id: percentage_of_salary(entry.amount, budget.salary)
                for category_id, entry in budget.categories.items()
            },
        )
