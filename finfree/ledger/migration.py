"""
Load-Time Migration of Legacy Data

The document has carried its starting balance in several shapes over time:

    CURRENT              {"accountBalances": {id: {"balance", "asOfDate"}}}
                         {"cash": {"balance", "asOfDate"}}     (cash only)
    LEGACY_SHARED_DATE   {"accounts": {id: balance}, "asOfDate": ...}
    DEPRECATED_SCALAR    {"cash": balance, "bank": balance, "asOfDate": ...}

Transactions likewise used `paymentMethod` values "Cash"/"Card"/"Bank" and
transfers a `direction` instead of explicit account ids.

DESIGN DECISION: All of this is parsed exactly once, when data is loaded,
into the current shape. Nothing downstream ever branches on a legacy shape
again, and nothing is ever written back in a legacy shape. The source each
account's anchor came from is kept only so it can be logged.

When several shapes are present at once (MigrationAmbiguous), each account
takes its anchor from the highest-priority shape that has it:
current > legacy shared-date > deprecated scalar. This is logged, not raised.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional

import structlog
from pydantic import BaseModel, Field

from finfree.models.balances import (
    EPOCH,
    AccountBalances,
    AccountStartingPoint,
    StartingBalance,
)
from finfree.models.document import ConfigDocument
from finfree.models.transactions import (
    CASH_ACCOUNT_ID,
    TransactionKind,
    TransferDirection,
)


logger = structlog.get_logger(__name__)

DEFAULT_LEGACY_BANK_ID = "bank"


class StartingBalanceSource(str, Enum):
    """Provenance of an account's anchor. Used for logging only."""
    CURRENT = "current"
    LEGACY_SHARED_DATE = "legacy_shared_date"
    DEPRECATED_SCALAR = "deprecated_scalar"

    @property
    def priority(self) -> int:
        return {
            "current": 0,
            "legacy_shared_date": 1,
            "deprecated_scalar": 2,
        }[self.value]


class MigrationReport(BaseModel):
    """What the load-time migration found and decided."""

    paths: dict[str, StartingBalanceSource] = Field(
        default_factory=dict,
        description="Account id -> shape its anchor was taken from"
    )
    shapes_present: list[StartingBalanceSource] = Field(default_factory=list)
    ambiguous: bool = False
    skipped: list[str] = Field(
        default_factory=list,
        description="Unusable legacy entries that were ignored"
    )

    @property
    def migrated(self) -> bool:
        """True when anything had to be converted from a legacy shape."""
        return any(s != StartingBalanceSource.CURRENT for s in self.shapes_present)


# =============================================================================
# STARTING BALANCE
# =============================================================================

def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _get(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def normalize_starting_balance(
    raw: Any,
    legacy_bank_id: str = DEFAULT_LEGACY_BANK_ID,
) -> tuple[StartingBalance, MigrationReport]:
    """
    Parse any known starting-balance shape into the current one.

    Args:
        raw: The stored `startingBalance` value (mapping, model or None).
        legacy_bank_id: Account id the deprecated `bank` scalar maps to.

    Returns:
        (current-shape StartingBalance, report)
    """
    report = MigrationReport()
    if raw is None:
        return StartingBalance(), report
    if isinstance(raw, StartingBalance):
        report.paths = {k: StartingBalanceSource.CURRENT for k in raw.account_balances}
        return raw, report
    if not isinstance(raw, Mapping):
        report.skipped.append(f"startingBalance: {raw!r}")
        logger.warning("starting_balance_unreadable", value=repr(raw))
        return StartingBalance(), report

    candidates: dict[str, list[tuple[StartingBalanceSource, AccountStartingPoint]]] = {}
    shapes: set[StartingBalanceSource] = set()

    def offer(source: StartingBalanceSource, account_id: str, balance: Any, as_of: Any) -> None:
        amount = _parse_decimal(balance)
        if amount is None:
            report.skipped.append(f"{source.value}:{account_id}")
            return
        point = AccountStartingPoint(balance=amount, as_of_date=_parse_date(as_of) or EPOCH)
        candidates.setdefault(account_id, []).append((source, point))
        shapes.add(source)

    shared_date = _get(raw, "asOfDate", "as_of_date")

    # Current per-account shape
    per_account = _get(raw, "accountBalances", "account_balances")
    if isinstance(per_account, Mapping):
        for account_id, entry in per_account.items():
            if isinstance(entry, Mapping):
                offer(
                    StartingBalanceSource.CURRENT,
                    account_id,
                    entry.get("balance"),
                    _get(entry, "asOfDate", "as_of_date"),
                )
            else:
                report.skipped.append(f"current:{account_id}")

    # Cash as its own dated object is per-account as well
    cash = raw.get("cash")
    if isinstance(cash, Mapping):
        offer(
            StartingBalanceSource.CURRENT,
            CASH_ACCOUNT_ID,
            cash.get("balance"),
            _get(cash, "asOfDate", "as_of_date"),
        )

    # Legacy flat map sharing one date
    shared = raw.get("accounts")
    if isinstance(shared, Mapping):
        for account_id, balance in shared.items():
            offer(StartingBalanceSource.LEGACY_SHARED_DATE, account_id, balance, shared_date)

    # Deprecated scalars, only for their reserved ids
    if cash is not None and not isinstance(cash, Mapping):
        offer(StartingBalanceSource.DEPRECATED_SCALAR, CASH_ACCOUNT_ID, cash, shared_date)
    if raw.get("bank") is not None:
        offer(StartingBalanceSource.DEPRECATED_SCALAR, legacy_bank_id, raw["bank"], shared_date)

    chosen: dict[str, AccountStartingPoint] = {}
    for account_id, offers in candidates.items():
        source, point = min(offers, key=lambda o: o[0].priority)
        chosen[account_id] = point
        report.paths[account_id] = source

    report.shapes_present = sorted(shapes, key=lambda s: s.priority)
    report.ambiguous = len(shapes) > 1

    if report.ambiguous:
        logger.warning(
            "starting_balance_migration_ambiguous",
            shapes=[s.value for s in report.shapes_present],
            paths={k: v.value for k, v in report.paths.items()},
        )
    elif report.migrated:
        logger.info(
            "starting_balance_migrated",
            paths={k: v.value for k, v in report.paths.items()},
        )
    if report.skipped:
        logger.warning("starting_balance_entries_skipped", entries=report.skipped)

    return StartingBalance(account_balances=chosen), report


def normalize_account_balances(
    raw: Any,
    legacy_bank_id: str = DEFAULT_LEGACY_BANK_ID,
) -> tuple[AccountBalances, MigrationReport]:
    """
    Parse the stored balances cache.

    The deprecated `bank` cache total is dropped; it is recomputable.
    """
    if not isinstance(raw, Mapping):
        return AccountBalances(), MigrationReport()

    starting, report = normalize_starting_balance(
        _get(raw, "startingBalance", "starting_balance"),
        legacy_bank_id,
    )
    cache = {
        key: value
        for key, value in raw.items()
        if key in {"cash", "accounts", "lastUpdated", "last_updated"}
    }
    # Legacy documents stored '' for "never"
    if cache.get("lastUpdated") == "":
        cache.pop("lastUpdated")
    if _parse_decimal(cache.get("cash")) is None:
        cache.pop("cash", None)
    if not isinstance(cache.get("accounts"), Mapping):
        cache.pop("accounts", None)
    else:
        cache["accounts"] = {
            k: v for k, v in cache["accounts"].items() if _parse_decimal(v) is not None
        }
    balances = AccountBalances.model_validate({**cache, "startingBalance": starting})
    return balances, report


# =============================================================================
# DOCUMENT
# =============================================================================

def load_document(
    raw: Optional[Mapping[str, Any]],
    legacy_bank_id: str = DEFAULT_LEGACY_BANK_ID,
) -> tuple[ConfigDocument, MigrationReport]:
    """
    Build a ConfigDocument from its stored form, migrating legacy fields.

    Missing optional fields take their defaults; a document without
    categories is seeded with the built-in set.
    """
    if not raw:
        return ConfigDocument(), MigrationReport()

    data = dict(raw)
    balances, report = normalize_account_balances(data.pop("balances", None), legacy_bank_id)
    if not data.get("categories"):
        data.pop("categories", None)
    for key in ("geminiKey", "sheetsUrl", "sheetsSecret"):
        if data.get(key) is None:
            data.pop(key, None)

    document = ConfigDocument.model_validate({**data, "balances": balances})
    return document, report


# =============================================================================
# TRANSACTIONS
# =============================================================================

LEGACY_PAYMENT_METHODS = {"card", "bank"}


def resolve_legacy_account(value: Any, bank_account_id: str) -> Any:
    """
    Map a legacy payment method to an account id.

    "Cash" -> cash; "Card" and "Bank" -> the bank account cards are charged
    to. Anything else is already an account id and passes through.
    """
    if not isinstance(value, str):
        return value
    lowered = value.strip().lower()
    if lowered == CASH_ACCOUNT_ID:
        return CASH_ACCOUNT_ID
    if lowered in LEGACY_PAYMENT_METHODS:
        return bank_account_id
    return value


def normalize_transaction_payload(
    kind: TransactionKind,
    raw: Mapping[str, Any],
    bank_account_id: str = DEFAULT_LEGACY_BANK_ID,
) -> dict[str, Any]:
    """Rewrite one stored record into the current field shape."""
    data = dict(raw)

    if kind in (TransactionKind.EXPENSE, TransactionKind.INCOME):
        if "paymentMethod" in data:
            data["paymentMethod"] = resolve_legacy_account(data["paymentMethod"], bank_account_id)
        elif kind == TransactionKind.EXPENSE:
            data["paymentMethod"] = CASH_ACCOUNT_ID
        return data

    # Transfers
    if data.get("fromAccountId") and data.get("toAccountId"):
        return data
    direction = data.get("direction")
    if direction == TransferDirection.BANK_TO_CASH.value:
        data["fromAccountId"], data["toAccountId"] = bank_account_id, CASH_ACCOUNT_ID
    elif direction == TransferDirection.CASH_TO_BANK.value:
        data["fromAccountId"], data["toAccountId"] = CASH_ACCOUNT_ID, bank_account_id
    return data
