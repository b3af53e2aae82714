"""
Account Ledger

Computes an account's balance from its anchor (the starting balance) and
the transactions recorded after it.

The rules, for account A with anchor (balance B, as-of date D):

    balance(A) = B
               + income into A
               - expenses paid from A
               - transfers out of A
               + transfers into A

counting only transactions dated strictly after D. A transaction dated on
D itself is already reflected in B. An account without an anchor starts at
0 as of 1970-01-01.

DESIGN DECISION: Balances are always recomputed from facts. The cached
AccountBalances in the document is a convenience for display and is
overwritten on every refresh, never read back as an input.

CRITICAL: Each account's anchor date is independent. Editing one account's
anchor can never move another account's balance.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

import structlog

from finfree.models.balances import (
    EPOCH,
    AccountBalances,
    AccountStartingPoint,
    FutureBalanceWarning,
    LedgerEntry,
    StartingBalance,
)
from finfree.models.transactions import (
    CASH_ACCOUNT_ID,
    Expense,
    Income,
    TransactionKind,
    TransactionRecord,
    Transfer,
    utc_now,
)


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
NO_ANCHOR = AccountStartingPoint(balance=ZERO, as_of_date=EPOCH)


def signed_effects(record: TransactionRecord) -> list[tuple[str, Decimal]]:
    """(account id, signed amount) pairs a record applies."""
    if isinstance(record, Expense):
        return [(record.account_id, -record.amount)]
    if isinstance(record, Income):
        return [(record.account_id, record.amount)]
    if isinstance(record, Transfer):
        return [
            (record.from_account_id, -record.amount),
            (record.to_account_id, record.amount),
        ]
    raise TypeError(f"Not a transaction record: {type(record).__name__}")


def _describe(record: TransactionRecord) -> str:
    if isinstance(record, Expense):
        return record.store or record.category
    return record.description or record.notes


class AccountLedger:
    """
    Read-only balance computations over one snapshot of the data.

    Args:
        starting_balance: Per-account anchors.
        records: Every expense, income and transfer.
    """

    def __init__(
        self,
        starting_balance: StartingBalance,
        records: Iterable[TransactionRecord],
    ):
        self._starting = starting_balance
        self._records = sorted(records, key=lambda r: r.sort_key)

    def starting_point(self, account_id: str) -> AccountStartingPoint:
        return self._starting.get(account_id) or NO_ANCHOR

    def entries(
        self,
        account_id: str,
        as_of: Optional[date] = None,
    ) -> list[LedgerEntry]:
        """
        Movements on one account after its anchor, in display order.

        Args:
            as_of: Inclusive upper bound on transaction date. None means all.
        """
        anchor = self.starting_point(account_id)
        entries = []
        for record in self._records:
            if record.transaction_date <= anchor.as_of_date:
                continue
            if as_of is not None and record.transaction_date > as_of:
                continue
            for effect_account, amount in signed_effects(record):
                if effect_account != account_id:
                    continue
                entries.append(LedgerEntry(
                    record_id=record.id,
                    kind=record.kind,
                    account_id=account_id,
                    transaction_date=record.transaction_date,
                    sort_key=record.sort_key,
                    amount=amount,
                    description=_describe(record),
                ))
        return entries

    def running_balance(self, account_id: str, as_of: Optional[date] = None) -> Decimal:
        """Anchor balance plus every movement after the anchor date."""
        anchor = self.starting_point(account_id)
        return anchor.balance + sum(
            (entry.amount for entry in self.entries(account_id, as_of)),
            ZERO,
        )

    def referenced_accounts(self) -> list[str]:
        """Account ids with an anchor or at least one movement."""
        seen = dict.fromkeys(self._starting.account_balances)
        for record in self._records:
            for account_id, _ in signed_effects(record):
                seen.setdefault(account_id)
        return list(seen)

    def balances(
        self,
        account_ids: Sequence[str] = (),
        as_of: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> AccountBalances:
        """
        Recompute the balances cache.

        Every id in `account_ids` appears, plus any account that has an
        anchor or transactions. Cash is reported separately.
        """
        ids = dict.fromkeys([*account_ids, *self.referenced_accounts()])
        ids.pop(CASH_ACCOUNT_ID, None)
        result = AccountBalances(
            cash=self.running_balance(CASH_ACCOUNT_ID, as_of),
            accounts={account_id: self.running_balance(account_id, as_of) for account_id in ids},
            last_updated=now or utc_now(),
            starting_balance=self._starting,
        )
        logger.debug(
            "balances_computed",
            cash=str(result.cash),
            accounts={k: str(v) for k, v in result.accounts.items()},
        )
        return result

    def future_balance_warnings(
        self,
        today: date,
        account_names: Optional[Mapping[str, str]] = None,
    ) -> dict[str, FutureBalanceWarning]:
        """
        Project each account forward through its future-dated transactions.

        Starting from every account's balance as of `today`, records dated
        after `today` are applied in display order. An expense (or the
        outgoing side of a transfer) that leaves its account below zero is
        flagged, keyed by transaction id.
        """
        names = account_names or {}
        projected: dict[str, Decimal] = {}
        warnings: dict[str, FutureBalanceWarning] = {}

        for record in self._records:
            if record.transaction_date <= today:
                continue
            for account_id, amount in signed_effects(record):
                anchor = self.starting_point(account_id)
                if record.transaction_date <= anchor.as_of_date:
                    continue
                if account_id not in projected:
                    projected[account_id] = self.running_balance(account_id, today)
                projected[account_id] += amount

                outgoing = amount < 0 and record.kind != TransactionKind.INCOME
                if outgoing and projected[account_id] < 0 and record.id not in warnings:
                    warnings[record.id] = FutureBalanceWarning(
                        transaction_id=record.id,
                        transaction_kind=record.kind,
                        account_id=account_id,
                        account_name=names.get(account_id, account_id),
                        projected_balance=projected[account_id],
                        shortfall=-projected[account_id],
                        transaction_date=record.transaction_date,
                    )
        if warnings:
            logger.info("future_balance_warnings", count=len(warnings))
        return warnings
