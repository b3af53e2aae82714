"""
Transaction Store

Holds expenses, income and transfers as append-mostly records.

DESIGN DECISION: The store is the only way a record comes into existence.
`append` takes a draft, validates it, and only then assigns identity and a
creation timestamp. A refused draft leaves no trace.

After append, a record's business fields never change. The one permitted
mutation is flipping `synced` to True, and only when the sync collaborator
has confirmed persistence (`mark_synced`). Since records are frozen, that
flip is a replacement by a copy under the same id.

Remote merge rule: the local store is authoritative. A remote copy replaces
a local record only if the local one is already synced (last write wins on
synced records). An unsynced local record is never overwritten.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

from finfree.categories import FEES_CATEGORY_ID, UNCATEGORIZED, CategoryRegistry
from finfree.ledger.accounts import AccountDirectory
from finfree.ledger.migration import normalize_transaction_payload
from finfree.models.transactions import (
    Expense,
    ExpenseDraft,
    Income,
    IncomeDraft,
    TransactionDraft,
    TransactionKind,
    TransactionRecord,
    Transfer,
    TransferDraft,
    ValidationIssue,
    new_record_id,
    utc_now,
)
from finfree.validation import (
    InvalidTransactionError,
    TransactionValidator,
    issues_from_validation_error,
)


logger = structlog.get_logger(__name__)


RECORD_TYPES: dict[TransactionKind, type] = {
    TransactionKind.EXPENSE: Expense,
    TransactionKind.INCOME: Income,
    TransactionKind.TRANSFER: Transfer,
}

DRAFT_TYPES: dict[TransactionKind, type] = {
    TransactionKind.EXPENSE: ExpenseDraft,
    TransactionKind.INCOME: IncomeDraft,
    TransactionKind.TRANSFER: TransferDraft,
}


def kind_of(item: Union[TransactionRecord, TransactionDraft]) -> TransactionKind:
    if isinstance(item, (Expense, ExpenseDraft)):
        return TransactionKind.EXPENSE
    if isinstance(item, (Income, IncomeDraft)):
        return TransactionKind.INCOME
    if isinstance(item, (Transfer, TransferDraft)):
        return TransactionKind.TRANSFER
    raise TypeError(f"Not a transaction: {type(item).__name__}")


class MergeResult(BaseModel):
    """Counts from one remote merge."""
    kind: TransactionKind
    added: int = 0
    replaced: int = 0
    kept_local: int = 0


class LoadResult(BaseModel):
    kind: TransactionKind
    loaded: int = 0
    skipped: list[str] = []


class TransactionStore:
    """
    In-memory record store, one ordered collection per kind.

    Args:
        registry: Resolves expense categories and classification.
        accounts: Known accounts, for validation and legacy payment methods.
        clock: Source of creation timestamps (UTC).
        id_factory: Source of record ids.
    """

    def __init__(
        self,
        registry: CategoryRegistry,
        accounts: AccountDirectory,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_record_id,
    ):
        self._registry = registry
        self._accounts = accounts
        self._clock = clock
        self._id_factory = id_factory
        self._records: dict[TransactionKind, dict[str, TransactionRecord]] = {
            kind: {} for kind in TransactionKind
        }

    def bind(
        self,
        registry: Optional[CategoryRegistry] = None,
        accounts: Optional[AccountDirectory] = None,
    ) -> None:
        """Point validation at an updated registry or account directory."""
        if registry is not None:
            self._registry = registry
        if accounts is not None:
            self._accounts = accounts

    @property
    def validator(self) -> TransactionValidator:
        return TransactionValidator(self._accounts, self._registry)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def expenses(self) -> list[Expense]:
        return list(self._records[TransactionKind.EXPENSE].values())

    @property
    def incomes(self) -> list[Income]:
        return list(self._records[TransactionKind.INCOME].values())

    @property
    def transfers(self) -> list[Transfer]:
        return list(self._records[TransactionKind.TRANSFER].values())

    def records(self, kind: Optional[TransactionKind] = None) -> list[TransactionRecord]:
        if kind is not None:
            return list(self._records[kind].values())
        return [r for kind in TransactionKind for r in self._records[kind].values()]

    def get(self, kind: TransactionKind, record_id: str) -> Optional[TransactionRecord]:
        return self._records[kind].get(record_id)

    def ordered(self, kind: Optional[TransactionKind] = None) -> list[TransactionRecord]:
        """Records in display order: date, time when present, then creation."""
        return sorted(self.records(kind), key=lambda r: r.sort_key)

    def unsynced(self, kind: TransactionKind) -> list[TransactionRecord]:
        return [r for r in self._records[kind].values() if not r.synced]

    def references_account(self, account_id: str) -> bool:
        for record in self.records():
            if isinstance(record, Transfer):
                if account_id in (record.from_account_id, record.to_account_id):
                    return True
            elif record.account_id == account_id:
                return True
        return False

    def references_category(self, category_id: str) -> bool:
        return any(e.category == category_id for e in self.expenses)

    def to_documents(self, kind: TransactionKind) -> list[dict[str, Any]]:
        return [record.to_document() for record in self._records[kind].values()]

    # -------------------------------------------------------------------------
    # Append
    # -------------------------------------------------------------------------

    def append(
        self,
        draft: Union[TransactionDraft, Mapping[str, Any]],
        kind: Optional[TransactionKind] = None,
        today: Optional[date] = None,
    ) -> TransactionRecord:
        """
        Validate a draft and store it as a new, unsynced record.

        Args:
            draft: A draft model, or a mapping plus `kind`.
            kind: Required when `draft` is a mapping.
            today: Reference date for future-date checks.

        Raises:
            InvalidTransactionError: The draft was refused; nothing stored.
        """
        record = self._prepare(self._coerce_draft(draft, kind), today)
        self._store(record)
        return record

    def append_transfer_with_fee(
        self,
        draft: Union[TransferDraft, Mapping[str, Any]],
        fee: Any = None,
        fee_category: str = FEES_CATEGORY_ID,
        today: Optional[date] = None,
    ) -> tuple[Transfer, Optional[Expense]]:
        """
        Record a transfer and, when `fee` is positive, a separate fee
        expense charged to the source account on the same date.

        Both records are validated before either is stored.
        """
        transfer_draft = self._coerce_draft(draft, TransactionKind.TRANSFER)
        transfer = self._prepare(transfer_draft, today)

        fee_expense = None
        fee_amount = Decimal("0") if fee in (None, "") else self._parse_fee(fee)
        if fee_amount > 0:
            fee_draft = ExpenseDraft(
                amount=fee_amount,
                transaction_date=transfer.transaction_date,
                transaction_time=transfer.transaction_time,
                category=fee_category,
                account_id=transfer.from_account_id,
                store=transfer.description,
                notes=f"Transfer fee ({transfer.id})",
            )
            fee_expense = self._prepare(fee_draft, today)

        self._store(transfer)
        if fee_expense is not None:
            self._store(fee_expense)
        return transfer, fee_expense

    @staticmethod
    def _parse_fee(fee: Any) -> Decimal:
        try:
            amount = Decimal(str(fee))
        except ArithmeticError:
            amount = None
        if amount is None or not amount.is_finite() or amount < 0:
            raise InvalidTransactionError([ValidationIssue(
                field="fee",
                issue_type="invalid_value",
                message="Fee must be zero or a positive number",
            )])
        return amount

    def _coerce_draft(
        self,
        draft: Union[TransactionDraft, Mapping[str, Any]],
        kind: Optional[TransactionKind],
    ) -> TransactionDraft:
        if isinstance(draft, (ExpenseDraft, IncomeDraft, TransferDraft)):
            if kind is not None and kind_of(draft) != kind:
                raise TypeError(f"Expected a {kind.value} draft, got {type(draft).__name__}")
            return draft
        if kind is None:
            raise TypeError("kind is required when appending a mapping")
        try:
            return DRAFT_TYPES[kind].model_validate(dict(draft))
        except ValidationError as e:
            raise InvalidTransactionError(issues_from_validation_error(e)) from e

    def _resolve_accounts(self, draft: TransactionDraft) -> TransactionDraft:
        if isinstance(draft, (ExpenseDraft, IncomeDraft)):
            # Income on a card stays as is so validation refuses it
            if isinstance(draft, IncomeDraft) and draft.account_id.lower() == "card":
                return draft
            resolved = self._accounts.resolve_payment_method(draft.account_id)
            if resolved != draft.account_id:
                return draft.model_copy(update={"account_id": resolved})
        elif isinstance(draft, TransferDraft):
            if draft.direction and not (draft.from_account_id and draft.to_account_id):
                data = normalize_transaction_payload(
                    TransactionKind.TRANSFER,
                    {"direction": draft.direction.value},
                    self._accounts.card_account_id,
                )
                return draft.model_copy(update={
                    "from_account_id": data["fromAccountId"],
                    "to_account_id": data["toAccountId"],
                })
        return draft

    def _prepare(self, draft: TransactionDraft, today: Optional[date]) -> TransactionRecord:
        """Validate a draft and build its record without storing it."""
        kind = kind_of(draft)
        draft = self._resolve_accounts(draft)
        try:
            self.validator.check(draft, today)
        except InvalidTransactionError as e:
            logger.warning(
                "transaction_rejected",
                kind=kind.value,
                issues=[f"{i.field}:{i.issue_type}" for i in e.issues],
            )
            raise

        data = draft.model_dump(exclude={"direction"} if kind != TransactionKind.TRANSFER else set())
        data.update(id=self._id_factory(), created_at=self._clock(), synced=False)
        if isinstance(draft, ExpenseDraft):
            category = draft.category or UNCATEGORIZED.id
            data["category"] = category
            data["expense_type"] = self._registry.classify(category, draft.expense_type)

        try:
            return RECORD_TYPES[kind].model_validate(data)
        except ValidationError as e:
            raise InvalidTransactionError(issues_from_validation_error(e)) from e

    def _store(self, record: TransactionRecord) -> None:
        self._records[record.kind][record.id] = record
        logger.info(
            "transaction_appended",
            kind=record.kind.value,
            transaction_id=record.id,
            amount=str(record.amount),
            date=record.transaction_date.isoformat(),
        )

    # -------------------------------------------------------------------------
    # Sync state
    # -------------------------------------------------------------------------

    def mark_synced(self, kind: TransactionKind, record_ids: Iterable[str]) -> int:
        """
        Flip `synced` on confirmed records. Unknown ids are ignored.

        Returns:
            Number of records that changed state.
        """
        collection = self._records[kind]
        changed = 0
        for record_id in record_ids:
            record = collection.get(record_id)
            if record is not None and not record.synced:
                collection[record_id] = record.model_copy(update={"synced": True})
                changed += 1
        return changed

    def merge_remote(
        self,
        kind: TransactionKind,
        remote_records: Iterable[TransactionRecord],
    ) -> MergeResult:
        """
        Merge a remote snapshot into the local store.

        Unknown remote records are added as synced. A remote copy replaces
        a local record only when the local one is synced.
        """
        collection = self._records[kind]
        result = MergeResult(kind=kind)
        for remote in remote_records:
            if kind_of(remote) != kind:
                raise TypeError(f"Expected {kind.value} records, got {type(remote).__name__}")
            local = collection.get(remote.id)
            if local is None:
                collection[remote.id] = remote.model_copy(update={"synced": True})
                result.added += 1
            elif local.synced:
                collection[remote.id] = remote.model_copy(update={"synced": True})
                result.replaced += 1
            else:
                result.kept_local += 1
        logger.info("transactions_merged", **result.model_dump(mode="json"))
        return result

    def parse_records(
        self,
        kind: TransactionKind,
        raw_records: Iterable[Mapping[str, Any]],
    ) -> tuple[list[TransactionRecord], list[str]]:
        """
        Build records from stored or remote payloads.

        Legacy payment methods and transfer directions are migrated on the
        way in. Malformed payloads are skipped and logged.

        Returns:
            (records, ids of skipped payloads)
        """
        record_type = RECORD_TYPES[kind]
        records, skipped = [], []
        for raw in raw_records:
            payload = normalize_transaction_payload(kind, raw, self._accounts.card_account_id)
            try:
                records.append(record_type.model_validate(payload))
            except ValidationError as e:
                skipped.append(str(raw.get("id", "?")))
                logger.warning(
                    "stored_transaction_skipped",
                    kind=kind.value,
                    transaction_id=raw.get("id"),
                    errors=e.error_count(),
                )
        return records, skipped

    def load(
        self,
        kind: TransactionKind,
        raw_records: Iterable[Mapping[str, Any]],
    ) -> LoadResult:
        """Replace one kind's records with persisted payloads."""
        records, skipped = self.parse_records(kind, raw_records)
        self._records[kind] = {record.id: record for record in records}
        return LoadResult(kind=kind, loaded=len(self._records[kind]), skipped=skipped)
