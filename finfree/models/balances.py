"""
Balance Models

StartingBalance is the anchor: per account, a balance as of a date.
AccountBalances is a cache derived from the anchor plus the transactions
after it. It is never a source of truth and can always be recomputed.

DESIGN DECISION: StartingBalance only knows the current per-account shape.
Legacy shapes are normalized by finfree.ledger.migration before a
StartingBalance is built, and unknown fields are refused so a legacy
payload can never be silently dropped.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from finfree.models.base import DocumentModel
from finfree.models.transactions import CASH_ACCOUNT_ID, TransactionKind


EPOCH = date(1970, 1, 1)


class AccountStartingPoint(DocumentModel):
    balance: Decimal = Field(default=Decimal("0"), allow_inf_nan=False)
    as_of_date: date = EPOCH


class StartingBalance(DocumentModel):
    """Per-account anchors, each independently dated."""

    model_config = ConfigDict(extra="forbid")

    account_balances: dict[str, AccountStartingPoint] = Field(default_factory=dict)

    def get(self, account_id: str) -> Optional[AccountStartingPoint]:
        return self.account_balances.get(account_id)

    def with_account(
        self,
        account_id: str,
        point: AccountStartingPoint,
    ) -> "StartingBalance":
        """Return a copy with one account's anchor replaced."""
        return self.model_copy(
            update={"account_balances": {**self.account_balances, account_id: point}}
        )

    def without_account(self, account_id: str) -> "StartingBalance":
        remaining = {
            k: v for k, v in self.account_balances.items() if k != account_id
        }
        return self.model_copy(update={"account_balances": remaining})


class AccountBalances(DocumentModel):
    """Cached balances as last computed."""

    cash: Decimal = Decimal("0")
    accounts: dict[str, Decimal] = Field(default_factory=dict)
    last_updated: Optional[datetime] = None
    starting_balance: StartingBalance = Field(default_factory=StartingBalance)

    @property
    def total(self) -> Decimal:
        return self.cash + sum(self.accounts.values(), Decimal("0"))

    def balance_of(self, account_id: str) -> Decimal:
        if account_id == CASH_ACCOUNT_ID:
            return self.cash
        return self.accounts.get(account_id, Decimal("0"))


class LedgerEntry(BaseModel):
    """One signed movement on one account."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    kind: TransactionKind
    account_id: str
    transaction_date: date
    sort_key: tuple
    amount: Decimal = Field(description="Signed: negative leaves the account")
    description: str = ""


class FutureBalanceWarning(BaseModel):
    """A future-dated transaction projected to take its account below zero."""

    transaction_id: str
    transaction_kind: TransactionKind
    account_id: str
    account_name: str
    projected_balance: Decimal
    shortfall: Decimal
    transaction_date: date
