"""
Data Models Package

This package contains all Pydantic models used by FinFree.
All data flowing through the ledger must conform to these schemas.
"""

from finfree.models.transactions import (
    CASH_ACCOUNT_ID,
    BankAccount,
    Expense,
    ExpenseDraft,
    ExpenseType,
    Income,
    IncomeCategory,
    IncomeDraft,
    TransactionDraft,
    TransactionKind,
    TransactionRecord,
    TransactionSource,
    Transfer,
    TransferDirection,
    TransferDraft,
    ValidationIssue,
    ValidationResult,
)
from finfree.models.budget import (
    BudgetSummary,
    CategoryBudget,
    CategoryDefinition,
    CategoryProgress,
    DailyAllowance,
    MonthlyBudget,
    coerce_amount,
)
from finfree.models.balances import (
    EPOCH,
    AccountBalances,
    AccountStartingPoint,
    FutureBalanceWarning,
    LedgerEntry,
    StartingBalance,
)
from finfree.models.receipt import (
    ExtractionConfidence,
    ReceiptExtraction,
    ReceiptItem,
)
from finfree.models.document import ConfigDocument
from finfree.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "CASH_ACCOUNT_ID",
    "BankAccount",
    "Expense",
    "ExpenseDraft",
    "ExpenseType",
    "Income",
    "IncomeCategory",
    "IncomeDraft",
    "TransactionDraft",
    "TransactionKind",
    "TransactionRecord",
    "TransactionSource",
    "Transfer",
    "TransferDirection",
    "TransferDraft",
    "ValidationIssue",
    "ValidationResult",
    # Budget models
    "BudgetSummary",
    "CategoryBudget",
    "CategoryDefinition",
    "CategoryProgress",
    "DailyAllowance",
    "MonthlyBudget",
    "coerce_amount",
    # Balance models
    "EPOCH",
    "AccountBalances",
    "AccountStartingPoint",
    "FutureBalanceWarning",
    "LedgerEntry",
    "StartingBalance",
    # Receipt models
    "ExtractionConfidence",
    "ReceiptExtraction",
    "ReceiptItem",
    # Document
    "ConfigDocument",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
