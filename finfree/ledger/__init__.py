"""Accounts, starting balances and balance computation."""

from finfree.ledger.accounts import (
    CASH_ACCOUNT_NAME,
    AccountDirectory,
    AccountError,
    AccountInUseError,
    UnknownAccountError,
)
from finfree.ledger.balances import AccountLedger, signed_effects
from finfree.ledger.migration import (
    DEFAULT_LEGACY_BANK_ID,
    MigrationReport,
    StartingBalanceSource,
    load_document,
    normalize_account_balances,
    normalize_starting_balance,
    normalize_transaction_payload,
    resolve_legacy_account,
)

__all__ = [
    "CASH_ACCOUNT_NAME",
    "DEFAULT_LEGACY_BANK_ID",
    "AccountDirectory",
    "AccountError",
    "AccountInUseError",
    "AccountLedger",
    "MigrationReport",
    "StartingBalanceSource",
    "UnknownAccountError",
    "load_document",
    "normalize_account_balances",
    "normalize_starting_balance",
    "normalize_transaction_payload",
    "resolve_legacy_account",
    "signed_effects",
]
