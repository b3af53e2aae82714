"""
Account Directory

The set of accounts money can live in: the reserved `cash` account plus
the user's bank accounts. At most one bank account is the default, the one
card payments are charged to.

Like the category registry, the directory is immutable; every edit returns
a new directory.
"""

from typing import Iterable, Iterator, Optional

import structlog

from finfree.models.transactions import CASH_ACCOUNT_ID, BankAccount
from finfree.ledger.migration import DEFAULT_LEGACY_BANK_ID, resolve_legacy_account


logger = structlog.get_logger(__name__)

CASH_ACCOUNT_NAME = "Cash"


class AccountError(Exception):
    """Base exception for account directory errors."""
    pass


class UnknownAccountError(AccountError, KeyError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Unknown account: {account_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class AccountInUseError(AccountError):
    """The account is still referenced by transactions."""
    pass


class AccountDirectory:
    """
    Bank accounts in display order, plus the implicit cash account.

    Args:
        accounts: Stored bank accounts.
        legacy_bank_id: Account id legacy "Card"/"Bank" payments resolve to
                        when no bank account exists yet.
    """

    def __init__(
        self,
        accounts: Iterable[BankAccount] = (),
        legacy_bank_id: str = DEFAULT_LEGACY_BANK_ID,
    ):
        self._accounts: dict[str, BankAccount] = {}
        for account in accounts:
            if account.id in self._accounts:
                raise AccountError(f"Account id registered twice: {account.id!r}")
            self._accounts[account.id] = account
        self._legacy_bank_id = legacy_bank_id

    def __contains__(self, account_id: object) -> bool:
        return account_id == CASH_ACCOUNT_ID or account_id in self._accounts

    def __iter__(self) -> Iterator[BankAccount]:
        return iter(self._accounts.values())

    def __len__(self) -> int:
        return len(self._accounts)

    @property
    def accounts(self) -> list[BankAccount]:
        return list(self._accounts.values())

    def known_ids(self) -> list[str]:
        """Every account id a transaction may reference, cash first."""
        return [CASH_ACCOUNT_ID, *self._accounts]

    def get(self, account_id: str) -> BankAccount:
        try:
            return self._accounts[account_id]
        except KeyError:
            raise UnknownAccountError(account_id) from None

    def name_of(self, account_id: str) -> str:
        if account_id == CASH_ACCOUNT_ID:
            return CASH_ACCOUNT_NAME
        account = self._accounts.get(account_id)
        return account.name if account else account_id

    def names(self) -> dict[str, str]:
        return {account_id: self.name_of(account_id) for account_id in self.known_ids()}

    @property
    def default_account(self) -> Optional[BankAccount]:
        return next((a for a in self._accounts.values() if a.is_default), None)

    @property
    def card_account_id(self) -> str:
        """
        Account card payments are charged to.

        The default account, else the first account, else the legacy id
        so old records still land somewhere stable.
        """
        if self.default_account is not None:
            return self.default_account.id
        if self._accounts:
            return next(iter(self._accounts))
        return self._legacy_bank_id

    def resolve_payment_method(self, method: str) -> str:
        """Map "Cash"/"Card"/"Bank" or an account id to an account id."""
        return resolve_legacy_account(method, self.card_account_id)

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    def add(
        self,
        name: str,
        account_id: Optional[str] = None,
        is_default: bool = False,
    ) -> tuple["AccountDirectory", BankAccount]:
        """
        Add a bank account. The first account added becomes the default.

        Returns:
            (new directory, the account created)
        """
        data = {"name": name, "is_default": is_default or not self._accounts}
        if account_id is not None:
            data["id"] = account_id
        account = BankAccount.model_validate(data)
        if account.id in self._accounts:
            raise AccountError(f"Account already exists: {account.id!r}")

        existing = list(self._accounts.values())
        if account.is_default:
            existing = [_with_default(a, False) for a in existing]
        logger.info("account_added", account_id=account.id, is_default=account.is_default)
        return self._derive([*existing, account]), account

    def rename(self, account_id: str, name: str) -> "AccountDirectory":
        current = self.get(account_id)
        renamed = BankAccount.model_validate({**current.model_dump(), "name": name})
        return self._derive(
            [renamed if a.id == account_id else a for a in self._accounts.values()]
        )

    def set_default(self, account_id: str) -> "AccountDirectory":
        self.get(account_id)
        return self._derive(
            [_with_default(a, a.id == account_id) for a in self._accounts.values()]
        )

    def remove(self, account_id: str, in_use: bool) -> "AccountDirectory":
        """
        Remove a bank account.

        If it was the default, the first remaining account becomes the
        default.

        Raises:
            AccountError: For the cash account.
            UnknownAccountError: If no such account exists.
            AccountInUseError: If transactions still reference it.
        """
        if account_id == CASH_ACCOUNT_ID:
            raise AccountError("The cash account cannot be removed")
        removed = self.get(account_id)
        if in_use:
            raise AccountInUseError(
                f"Account {account_id!r} is referenced by transactions"
            )

        remaining = [a for a in self._accounts.values() if a.id != account_id]
        if removed.is_default and remaining:
            remaining = [remaining[0].model_copy(update={"is_default": True}), *remaining[1:]]
        logger.info("account_removed", account_id=account_id)
        return self._derive(remaining)

    def _derive(self, accounts: Iterable[BankAccount]) -> "AccountDirectory":
        return AccountDirectory(accounts, self._legacy_bank_id)


def _with_default(account: BankAccount, is_default: bool) -> BankAccount:
    if account.is_default == is_default:
        return account
    return account.model_copy(update={"is_default": is_default})
