"""Monthly budget planning package."""

from finfree.budgets.resolver import (
    BudgetResolver,
    InvalidMonthKeyError,
    current_month_key,
    percentage_of_salary,
    shift_month,
    validate_month_key,
)

__all__ = [
    "BudgetResolver",
    "InvalidMonthKeyError",
    "current_month_key",
    "percentage_of_salary",
    "shift_month",
    "validate_month_key",
]
