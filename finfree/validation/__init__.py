"""Draft validation before records are appended."""

from finfree.validation.validator import (
    InvalidTransactionError,
    TransactionValidator,
    get_user_friendly_summary,
    issues_from_validation_error,
)

__all__ = [
    "InvalidTransactionError",
    "TransactionValidator",
    "get_user_friendly_summary",
    "issues_from_validation_error",
]
