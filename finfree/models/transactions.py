"""
Transaction Models for FinFree

Expenses, income and transfers are the only facts the ledger knows about.
They are designed to:
1. Be immutable once appended (only `synced` ever flips, via a copy)
2. Carry enough context to rebuild any balance from scratch
3. Round-trip through the JSON document and the sync sheets unchanged

DESIGN DECISION: Amounts are Decimal in a single implicit currency.
There is no multi-currency support and no floating point arithmetic.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from finfree.models.base import DocumentModel, strict_iso_date


CASH_ACCOUNT_ID = "cash"


def new_record_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class ExpenseType(str, Enum):
    """Classification used for budgeting analysis, independent of the category."""
    NEED = "NEED"
    WANT = "WANT"
    SAVE = "SAVE"
    DEBT = "DEBT"


class TransactionSource(str, Enum):
    """Where an expense came from."""
    MANUAL = "manual"
    RECEIPT = "receipt"


class IncomeCategory(str, Enum):
    SALARY = "SALARY"
    FREELANCE = "FREELANCE"
    BONUS = "BONUS"
    REFUND = "REFUND"
    GIFT = "GIFT"
    OTHER = "OTHER"


class TransferDirection(str, Enum):
    """
    Legacy transfer direction.

    Only present on records created before transfers carried explicit
    account ids. Migrated to from/to ids at load time.
    """
    BANK_TO_CASH = "BANK_TO_CASH"
    CASH_TO_BANK = "CASH_TO_BANK"


class TransactionKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


# =============================================================================
# ACCOUNTS
# =============================================================================

class BankAccount(DocumentModel):
    """
    A user bank account.

    `cash` is reserved and can never be a BankAccount.
    """

    id: str = Field(
        default_factory=lambda: f"bank_{uuid4().hex[:8]}",
        min_length=1,
        max_length=64,
    )
    name: str = Field(..., min_length=1, max_length=100)
    is_default: bool = Field(
        default=False,
        description="Default account for card-type payments (at most one)"
    )
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("id")
    @classmethod
    def reject_reserved_id(cls, v: str) -> str:
        if v.lower() == CASH_ACCOUNT_ID:
            raise ValueError("'cash' is a reserved account id")
        return v


# =============================================================================
# RECORDS
# =============================================================================

class _TransactionRecord(DocumentModel):
    """Fields shared by every appended record."""

    id: str = Field(default_factory=new_record_id, min_length=1)
    created_at: datetime = Field(
        default_factory=utc_now,
        alias="timestamp",
        description="When the record was appended"
    )
    transaction_date: date = Field(..., alias="date")
    transaction_time: Optional[time] = Field(
        default=None,
        alias="time",
        description="Optional time of day, used for same-day ordering"
    )
    amount: Decimal = Field(..., gt=0, allow_inf_nan=False)
    notes: str = Field(default="", max_length=1000)
    synced: bool = Field(
        default=False,
        description="Confirmed persisted by the remote sync collaborator"
    )

    @field_validator("transaction_date", mode="before")
    @classmethod
    def validate_date_format(cls, v):
        return strict_iso_date(v)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # Legacy records were written without an offset
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def sort_key(self) -> tuple:
        """
        Display order: date, then time when present, then creation, then id.

        Timed records sort before untimed ones on the same day. The id only
        breaks ties between records appended at the same instant.
        """
        return (
            self.transaction_date,
            self.transaction_time is None,
            self.transaction_time or time.min,
            self.created_at,
            self.id,
        )


class Expense(_TransactionRecord):
    """An amount paid out of one account."""

    category: str = Field(..., min_length=1, max_length=50)
    expense_type: ExpenseType = Field(..., alias="type")
    account_id: str = Field(
        default=CASH_ACCOUNT_ID,
        alias="paymentMethod",
        min_length=1,
    )
    store: str = Field(default="", max_length=200)
    source: TransactionSource = TransactionSource.MANUAL

    @property
    def kind(self) -> TransactionKind:
        return TransactionKind.EXPENSE


class Income(_TransactionRecord):
    """An amount received into cash or a bank account (never a card)."""

    category: IncomeCategory = IncomeCategory.OTHER
    account_id: str = Field(
        default=CASH_ACCOUNT_ID,
        alias="paymentMethod",
        min_length=1,
    )
    description: str = Field(default="", max_length=200)

    @property
    def kind(self) -> TransactionKind:
        return TransactionKind.INCOME


class Transfer(_TransactionRecord):
    """An amount moved between two different accounts."""

    from_account_id: str = Field(..., min_length=1)
    to_account_id: str = Field(..., min_length=1)
    description: str = Field(default="", max_length=200)
    direction: Optional[TransferDirection] = Field(
        default=None,
        description="Legacy tag, kept only on migrated records"
    )

    @model_validator(mode="after")
    def validate_accounts_differ(self) -> "Transfer":
        if self.from_account_id == self.to_account_id:
            raise ValueError("Transfer source and destination must differ")
        return self

    @property
    def kind(self) -> TransactionKind:
        return TransactionKind.TRANSFER


TransactionRecord = Union[Expense, Income, Transfer]


# =============================================================================
# DRAFTS - what a form (or a receipt) proposes, before the store accepts it
# =============================================================================

class _Draft(DocumentModel):
    amount: Optional[Decimal] = None
    transaction_date: Optional[date] = Field(default=None, alias="date")
    transaction_time: Optional[time] = Field(default=None, alias="time")
    notes: str = ""

    @field_validator("transaction_date", mode="before")
    @classmethod
    def validate_date_format(cls, v):
        return strict_iso_date(v)


class ExpenseDraft(_Draft):
    """
    An unsaved expense.

    Category and classification may be left empty; the store resolves them
    through the category registry.
    """

    category: Optional[str] = None
    expense_type: Optional[ExpenseType] = Field(default=None, alias="type")
    account_id: str = Field(default=CASH_ACCOUNT_ID, alias="paymentMethod")
    store: str = ""
    source: TransactionSource = TransactionSource.MANUAL


class IncomeDraft(_Draft):
    category: IncomeCategory = IncomeCategory.OTHER
    account_id: str = Field(default=CASH_ACCOUNT_ID, alias="paymentMethod")
    description: str = ""


class TransferDraft(_Draft):
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    description: str = ""
    direction: Optional[TransferDirection] = None


TransactionDraft = Union[ExpenseDraft, IncomeDraft, TransferDraft]


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found while validating a draft."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unknown_account')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of validating one draft."""

    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
