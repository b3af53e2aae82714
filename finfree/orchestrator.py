"""
Main Orchestrator for FinFree

This module ties together all the components and defines the flows the
UI calls:
1. Ledger session (record, plan, reconcile, on one in-memory document)
2. Sync (push unsynced records, merge remote ones, mirror the document)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Records only enter through the Transaction Store's validation
- Records are marked synced only for ids the backend confirmed
- The document leaves the device only in its for_remote() shape
- Every significant step is audited

There is exactly one logical writer. Every method here is synchronous
except the network-bound sync flow and receipt extraction.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finfree.audit import AuditLogger, create_correlation_id
from finfree.budgets import BudgetResolver
from finfree.categories import CategoryError, CategoryRegistry
from finfree.config import get_settings
from finfree.ledger import (
    AccountDirectory,
    AccountLedger,
    UnknownAccountError,
)
from finfree.models.audit import AuditEventBuilder, AuditEventType
from finfree.models.balances import AccountBalances, AccountStartingPoint, FutureBalanceWarning
from finfree.models.budget import (
    BudgetSummary,
    CategoryDefinition,
    CategoryProgress,
    DailyAllowance,
    MonthlyBudget,
)
from finfree.models.document import ConfigDocument
from finfree.models.receipt import ExtractionConfidence
from finfree.models.transactions import (
    CASH_ACCOUNT_ID,
    BankAccount,
    Expense,
    ExpenseDraft,
    Income,
    IncomeDraft,
    TransactionKind,
    TransactionRecord,
    Transfer,
    TransferDraft,
)
from finfree.queries import category_progress, daily_allowance
from finfree.services.receipt import (
    GeminiReceiptExtractor,
    ReceiptDraftSession,
    ReceiptExtractorInterface,
)
from finfree.services.storage import (
    DocumentStorageInterface,
    LocalJsonStorage,
    StorageError,
    TransactionSyncInterface,
)
from finfree.store import MergeResult, TransactionStore
from finfree.validation import InvalidTransactionError


logger = structlog.get_logger(__name__)


class LedgerSession:
    """
    One user's ledger, open for reading and editing.

    The document is immutable; every edit swaps in a new one. When a
    DocumentStorageInterface is given, each change is written through.

    Args:
        document: The user's configuration document.
        store: Transaction store. A fresh, empty one when None.
        audit_logger: Audit sink. Local-only logging when None.
        storage: Local persistence. Nothing is written when None.
    """

    def __init__(
        self,
        document: ConfigDocument,
        store: Optional[TransactionStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        storage: Optional[DocumentStorageInterface] = None,
        legacy_bank_id: Optional[str] = None,
    ):
        self._legacy_bank_id = legacy_bank_id or get_settings().app.legacy_bank_account_id
        self._audit = audit_logger or AuditLogger()
        self._storage = storage
        self._document = document
        self._registry = CategoryRegistry(document.categories)
        self._accounts = AccountDirectory(document.bank_accounts, self._legacy_bank_id)
        self._store = store or TransactionStore(self._registry, self._accounts)
        self._store.bind(self._registry, self._accounts)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def document(self) -> ConfigDocument:
        return self._document

    @property
    def registry(self) -> CategoryRegistry:
        return self._registry

    @property
    def accounts(self) -> AccountDirectory:
        return self._accounts

    @property
    def store(self) -> TransactionStore:
        return self._store

    @property
    def budgets(self) -> BudgetResolver:
        return BudgetResolver(self._registry)

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    def _replace_document(self, document: ConfigDocument) -> None:
        self._document = document
        self._registry = CategoryRegistry(document.categories)
        self._accounts = AccountDirectory(document.bank_accounts, self._legacy_bank_id)
        self._store.bind(self._registry, self._accounts)
        if self._storage is not None:
            self._storage.save_document(document)

    def persist_transactions(self, kind: TransactionKind) -> None:
        if self._storage is not None:
            self._storage.save_transactions(kind, self._store.to_documents(kind))

    def save(self) -> None:
        """Write the document and every transaction list."""
        if self._storage is None:
            return
        self._storage.save_document(self._document)
        for kind in TransactionKind:
            self.persist_transactions(kind)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _record(
        self,
        kind: TransactionKind,
        draft: Any,
        correlation_id: Optional[UUID],
    ) -> TransactionRecord:
        try:
            record = self._store.append(draft, kind)
        except InvalidTransactionError as e:
            self._audit.log_transaction_rejected(
                kind.value,
                [issue.model_dump() for issue in e.issues],
                correlation_id,
            )
            raise
        self._audit.log_transaction_appended(kind.value, record.id, str(record.amount), correlation_id)
        self.persist_transactions(kind)
        return record

    def record_expense(
        self,
        draft: Union[ExpenseDraft, Mapping[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Save a confirmed expense draft.

        Raises:
            InvalidTransactionError: Nothing was recorded.
        """
        return self._record(TransactionKind.EXPENSE, draft, correlation_id)

    def record_income(
        self,
        draft: Union[IncomeDraft, Mapping[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Income:
        return self._record(TransactionKind.INCOME, draft, correlation_id)

    def record_transfer(
        self,
        draft: Union[TransferDraft, Mapping[str, Any]],
        fee: Any = None,
    ) -> tuple[Transfer, Optional[Expense]]:
        """
        Save a transfer, plus a fee expense on the source account when
        `fee` is positive. Both share one correlation id.
        """
        correlation_id = create_correlation_id()
        try:
            transfer, fee_expense = self._store.append_transfer_with_fee(draft, fee)
        except InvalidTransactionError as e:
            self._audit.log_transaction_rejected(
                TransactionKind.TRANSFER.value,
                [issue.model_dump() for issue in e.issues],
                correlation_id,
            )
            raise

        self._audit.log_transaction_appended(
            TransactionKind.TRANSFER.value, transfer.id, str(transfer.amount), correlation_id
        )
        self.persist_transactions(TransactionKind.TRANSFER)
        if fee_expense is not None:
            self._audit.log_transaction_appended(
                TransactionKind.EXPENSE.value, fee_expense.id, str(fee_expense.amount), correlation_id
            )
            self.persist_transactions(TransactionKind.EXPENSE)
        return transfer, fee_expense

    def receipt_session(
        self,
        extractor: Optional[ReceiptExtractorInterface] = None,
        payment_account: str = CASH_ACCOUNT_ID,
    ) -> ReceiptDraftSession:
        """A receipt scan session for a newly opened expense form."""
        app = get_settings().app
        if extractor is None:
            extractor = GeminiReceiptExtractor(
                api_key=self._document.gemini_key or None,
                categories=self._registry.definitions,
            )
        return ReceiptDraftSession(
            extractor=extractor,
            registry=self._registry,
            draft=ExpenseDraft(account_id=payment_account),
            audit_logger=self._audit,
            min_confidence=ExtractionConfidence(app.min_extraction_confidence),
            currency_symbol=app.currency_symbol,
        )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def set_salary(self, month_key: str, amount: Any) -> None:
        document = self.budgets.set_salary(self._document, month_key, amount)
        self._replace_document(document)
        salary = document.budgets[month_key].salary
        self._audit.log(AuditEventBuilder.budget_updated(month_key, "salary", str(salary)))

    def set_category_amount(self, month_key: str, category_id: str, amount: Any) -> None:
        document = self.budgets.set_category_amount(self._document, month_key, category_id, amount)
        self._replace_document(document)
        stored = document.budgets[month_key].categories[category_id].amount
        self._audit.log(AuditEventBuilder.budget_updated(month_key, category_id, str(stored)))

    def copy_month(self, source_key: str, target_key: str) -> None:
        document = self.budgets.copy_month(self._document, source_key, target_key)
        if document is not self._document:
            self._replace_document(document)

    def adopt_remote_plan(
        self,
        budgets: Mapping[str, MonthlyBudget],
        categories: Sequence[CategoryDefinition],
    ) -> list[str]:
        """
        Take remote budget months this device does not have.

        A month present locally is never overwritten: local edits win.
        Remote categories are adopted only when an adopted month allocates
        to them, so a category removed here is not resurrected.

        Returns:
            The adopted month keys.
        """
        adopted = sorted(key for key in budgets if key not in self._document.budgets)
        if not adopted:
            return []

        needed = {
            category_id
            for key in adopted
            for category_id in budgets[key].categories
        }
        registry = self._registry
        for definition in categories:
            if definition.id in needed and definition.id not in registry:
                try:
                    registry = registry.add(definition)
                except CategoryError as e:
                    logger.warning("remote_category_skipped", category_id=definition.id, error=str(e))

        merged = dict(self._document.budgets)
        merged.update((key, budgets[key]) for key in adopted)
        self._replace_document(self._document.model_copy(update={
            "budgets": merged,
            "categories": registry.definitions,
        }))
        for key in adopted:
            self._audit.log(AuditEventBuilder.budget_updated(key, "salary", str(budgets[key].salary)))
        return adopted

    def monthly_summary(self, month_key: str) -> BudgetSummary:
        return self.budgets.summary(self._document, month_key)

    def category_progress(self, month_key: str) -> list[CategoryProgress]:
        budget = self.budgets.get_budget(self._document, month_key)
        return category_progress(budget, self._store.expenses, month_key)

    def daily_allowance(self, month_key: str, today: Optional[date] = None) -> DailyAllowance:
        budget = self.budgets.get_budget(self._document, month_key)
        return daily_allowance(budget, self._store.expenses, month_key, today)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def add_category(self, definition: CategoryDefinition) -> None:
        registry = self._registry.add(definition)
        self._replace_document(self._document.model_copy(update={"categories": registry.definitions}))
        self._audit.log(AuditEventBuilder.category_changed(definition.id, added=True))

    def update_category(self, category_id: str, **changes: Any) -> None:
        registry = self._registry.update(category_id, **changes)
        self._replace_document(self._document.model_copy(update={"categories": registry.definitions}))
        self._audit.log(AuditEventBuilder.category_changed(category_id, added=False))

    def remove_category(self, category_id: str) -> None:
        """
        Raises:
            CategoryError: Built-in, or still used by expenses.
        """
        if self._store.references_category(category_id):
            raise CategoryError(f"Category {category_id!r} is used by expenses")
        registry = self._registry.remove(category_id)
        self._replace_document(self._document.model_copy(update={"categories": registry.definitions}))

    # -------------------------------------------------------------------------
    # Accounts and balances
    # -------------------------------------------------------------------------

    def _replace_accounts(self, accounts: AccountDirectory, **updates: Any) -> None:
        self._replace_document(
            self._document.model_copy(update={"bank_accounts": accounts.accounts, **updates})
        )

    def add_account(self, name: str, is_default: bool = False) -> BankAccount:
        accounts, account = self._accounts.add(name, is_default=is_default)
        self._replace_accounts(accounts)
        self._audit.log(AuditEventBuilder.account_changed(
            AuditEventType.ACCOUNT_ADDED, account.id, account.name
        ))
        return account

    def rename_account(self, account_id: str, name: str) -> None:
        self._replace_accounts(self._accounts.rename(account_id, name))

    def set_default_account(self, account_id: str) -> None:
        self._replace_accounts(self._accounts.set_default(account_id))
        self._audit.log(AuditEventBuilder.account_changed(
            AuditEventType.DEFAULT_ACCOUNT_CHANGED, account_id
        ))

    def remove_account(self, account_id: str) -> None:
        """
        Remove a bank account and its starting point.

        Raises:
            AccountError: Cash, unknown, or referenced by transactions.
        """
        accounts = self._accounts.remove(
            account_id,
            in_use=self._store.references_account(account_id),
        )
        balances = self._document.balances
        starting = balances.starting_balance.without_account(account_id)
        self._replace_accounts(
            accounts,
            balances=balances.model_copy(update={"starting_balance": starting}),
        )
        self._audit.log(AuditEventBuilder.account_changed(
            AuditEventType.ACCOUNT_REMOVED, account_id
        ))

    def update_starting_point(
        self,
        account_id: str,
        balance: Decimal,
        as_of_date: date,
    ) -> AccountBalances:
        """
        Set one account's anchor. Other accounts' anchors are untouched.

        Returns:
            The refreshed balances.
        """
        if account_id not in self._accounts:
            raise UnknownAccountError(account_id)
        point = AccountStartingPoint(balance=balance, as_of_date=as_of_date)
        balances = self._document.balances
        starting = balances.starting_balance.with_account(account_id, point)
        self._replace_document(self._document.model_copy(update={
            "balances": balances.model_copy(update={"starting_balance": starting})
        }))
        self._audit.log(AuditEventBuilder.starting_balance_updated(
            account_id, str(point.balance), point.as_of_date.isoformat()
        ))
        return self.refresh_balances()

    def ledger(self) -> AccountLedger:
        return AccountLedger(self._document.balances.starting_balance, self._store.records())

    def running_balance(self, account_id: str, as_of: Optional[date] = None) -> Decimal:
        return self.ledger().running_balance(account_id, as_of)

    def refresh_balances(self, as_of: Optional[date] = None) -> AccountBalances:
        """Recompute the balances cache from the anchor and every record."""
        balances = self.ledger().balances(
            [account.id for account in self._accounts],
            as_of,
        )
        self._replace_document(self._document.model_copy(update={"balances": balances}))
        self._audit.log(AuditEventBuilder.balances_refreshed(
            as_of.isoformat() if as_of else "all",
            str(balances.total),
        ))
        return balances

    def future_balance_warnings(self, today: Optional[date] = None) -> dict[str, FutureBalanceWarning]:
        return self.ledger().future_balance_warnings(
            today or date.today(),
            self._accounts.names(),
        )


class SyncReport(BaseModel):
    """Outcome of one sync run."""
    pushed: dict[TransactionKind, int] = Field(default_factory=dict)
    merged: list[MergeResult] = Field(default_factory=list)
    failed: dict[TransactionKind, str] = Field(default_factory=dict)
    adopted_months: list[str] = Field(default_factory=list)
    document_saved: bool = False


class SyncFlow:
    """
    Orchestrates sync with the remote backend.

    Flow:
    1. Push each kind's unsynced records
    2. Mark synced exactly the ids the backend confirmed
    3. Fetch remote records and merge (local edits always win)
    4. Adopt remote budget months missing here (local months win)
    5. Mirror budgets, categories and the secret-free document

    A failure for one kind is audited and does not stop the others.
    """

    def __init__(
        self,
        session: LedgerSession,
        backend: TransactionSyncInterface,
    ):
        self._session = session
        self._backend = backend

    @property
    def _audit(self) -> AuditLogger:
        return self._session.audit_logger

    async def push(self, kind: TransactionKind, correlation_id: Optional[UUID] = None) -> int:
        """
        Push one kind's unsynced records.

        Returns:
            Number of records newly marked synced.

        Raises:
            StorageError: The backend failed; nothing was marked.
        """
        store = self._session.store
        pending = store.unsynced(kind)
        if not pending:
            return 0

        confirmed = await self._backend.push(kind, pending)
        pending_ids = {record.id for record in pending}
        accepted = [record_id for record_id in confirmed if record_id in pending_ids]
        changed = store.mark_synced(kind, accepted)
        if changed:
            self._session.persist_transactions(kind)
        self._audit.log_transactions_synced(kind.value, accepted, correlation_id)
        return changed

    async def pull(self, kind: TransactionKind) -> MergeResult:
        store = self._session.store
        raw_records = await self._backend.fetch(kind)
        records, _ = store.parse_records(kind, raw_records)
        result = store.merge_remote(kind, records)
        if result.added or result.replaced:
            self._session.persist_transactions(kind)
        self._audit.log(AuditEventBuilder.transactions_merged(
            kind.value, result.added, result.replaced, result.kept_local
        ))
        return result

    async def pull_document(self) -> list[str]:
        """Adopt remote budget months this device lacks. Returns their keys."""
        budgets = await self._backend.fetch_budgets()
        if not any(key not in self._session.document.budgets for key in budgets):
            return []
        categories = await self._backend.fetch_categories()
        return self._session.adopt_remote_plan(budgets, categories)

    async def push_document(self) -> bool:
        document = self._session.document
        saved = await self._backend.save_config(document.for_remote())
        saved = await self._backend.save_budgets(document.budgets) and saved
        saved = await self._backend.save_categories(document.categories) and saved
        return saved

    async def sync(self) -> SyncReport:
        correlation_id = create_correlation_id()
        report = SyncReport()

        for kind in TransactionKind:
            try:
                report.pushed[kind] = await self.push(kind, correlation_id)
                report.merged.append(await self.pull(kind))
            except StorageError as e:
                report.failed[kind] = str(e)
                self._audit.log_sync_failed(kind.value, str(e), correlation_id)
                logger.warning("sync_failed", kind=kind.value, error=str(e))

        try:
            report.adopted_months = await self.pull_document()
            report.document_saved = await self.push_document()
        except StorageError as e:
            self._audit.log_sync_failed("document", str(e), correlation_id)
            logger.warning("document_sync_failed", error=str(e))

        return report


def create_session(
    storage: Optional[DocumentStorageInterface] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> LedgerSession:
    """
    Factory function to open a ledger session from local storage.

    The document and transactions are loaded (and migrated) once here.
    If legacy data was migrated, the current shape is written back
    immediately so it is never read in a legacy shape again.
    """
    legacy_bank_id = get_settings().app.legacy_bank_account_id
    storage = storage or LocalJsonStorage(legacy_bank_id=legacy_bank_id)
    audit_logger = audit_logger or AuditLogger()

    document = storage.load_document()
    session = LedgerSession(
        document,
        audit_logger=audit_logger,
        storage=storage,
        legacy_bank_id=legacy_bank_id,
    )
    for kind in TransactionKind:
        result = session.store.load(kind, storage.load_transactions(kind))
        if result.skipped:
            audit_logger.log_error(
                "stored_transactions_skipped",
                f"{len(result.skipped)} stored {kind.value} records could not be read",
                details={"kind": kind.value, "ids": result.skipped},
            )

    report = getattr(storage, "last_migration", None)
    if report is not None and report.migrated:
        audit_logger.log(AuditEventBuilder.starting_balance_migrated(
            {account_id: source.value for account_id, source in report.paths.items()},
            report.ambiguous,
        ))
        session.save()

    return session
