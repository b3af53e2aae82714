"""
Integration tests for the ledger session and the sync flow.

Local storage is real (a temp directory); the sync backend is a fake and
the audit logger a mock.
"""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from finfree.audit import AuditLogger
from finfree.categories import CategoryError
from finfree.ledger import AccountInUseError, UnknownAccountError
from finfree.models import (
    AuditEventType,
    BankAccount,
    CategoryBudget,
    CategoryDefinition,
    ConfigDocument,
    ExpenseDraft,
    ExpenseType,
    IncomeDraft,
    MonthlyBudget,
    TransactionKind,
    TransferDraft,
)
from finfree.orchestrator import LedgerSession, SyncFlow, create_session
from finfree.services.storage import (
    LocalJsonStorage,
    StorageError,
    TransactionSyncInterface,
)
from finfree.validation import InvalidTransactionError


class FakeBackend(TransactionSyncInterface):
    """In-memory sync backend with controllable confirmations and failures."""

    def __init__(self, confirm=None, remote=None, failing=(), budgets=None, categories=None):
        self.confirm = confirm
        self.remote = remote or {}
        self.failing = set(failing)
        self.pushed = {}
        self.config = None
        self.budgets = dict(budgets or {})
        self.categories = list(categories or [])

    async def push(self, kind, records):
        if kind in self.failing:
            raise StorageError("sheet unavailable")
        ids = [record.id for record in records]
        self.pushed[kind] = ids
        return self.confirm(ids) if self.confirm else ids

    async def fetch(self, kind):
        return self.remote.get(kind, [])

    async def fetch_budgets(self):
        return dict(self.budgets)

    async def fetch_categories(self):
        return list(self.categories)

    async def save_budgets(self, budgets):
        self.budgets.update(budgets)
        return True

    async def save_categories(self, categories):
        self.categories = list(categories)
        return True

    async def save_config(self, remote_document):
        self.config = dict(remote_document)
        return True


def logged_types(audit):
    return [c.args[0].event_type for c in audit.log.call_args_list]


@pytest.fixture
def audit():
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def local(tmp_path):
    return LocalJsonStorage(data_dir=tmp_path, legacy_bank_id="bank")


@pytest.fixture
def session(store, audit, local):
    document = ConfigDocument(bank_accounts=[
        BankAccount(id="bank_main", name="Main Bank", is_default=True),
        BankAccount(id="bank_savings", name="Savings"),
    ])
    return LedgerSession(document, store=store, audit_logger=audit, storage=local, legacy_bank_id="bank")


def expense(amount="2000", day=date(2024, 1, 5), **overrides):
    return ExpenseDraft(amount=Decimal(amount), transaction_date=day, category="FOOD", **overrides)


class TestRecording:

    def test_expense_is_audited_and_persisted(self, session, audit, local):
        record = session.record_expense(expense())

        audit.log_transaction_appended.assert_called_once_with("expense", record.id, "2000", None)
        assert [r["id"] for r in local.load_transactions(TransactionKind.EXPENSE)] == [record.id]

    def test_rejected_expense_is_audited(self, session, audit, local):
        with pytest.raises(InvalidTransactionError):
            session.record_expense(expense(amount="0"))

        audit.log_transaction_rejected.assert_called_once()
        assert local.load_transactions(TransactionKind.EXPENSE) == []

    def test_transfer_with_fee_shares_correlation_id(self, session, audit):
        transfer, fee = session.record_transfer(
            TransferDraft(
                amount=Decimal("10000"),
                transaction_date=date(2024, 1, 6),
                from_account_id="bank_main",
                to_account_id="cash",
            ),
            fee="220",
        )

        calls = audit.log_transaction_appended.call_args_list
        assert [c.args[1] for c in calls] == [transfer.id, fee.id]
        assert calls[0].args[3] == calls[1].args[3]
        assert session.running_balance("bank_main") == Decimal("-10220")

    def test_receipt_session_starts_from_payment_account(self, session):
        receipt = session.receipt_session(extractor=MagicMock(), payment_account="bank_main")
        assert receipt.draft.account_id == "bank_main"
        assert not receipt.closed


class TestBalances:

    def test_starting_point_and_running_balance(self, session, local):
        """Test the cash example end to end, including the persisted cache."""
        session.record_expense(expense())
        session.record_income(IncomeDraft(amount=Decimal("5000"), transaction_date=date(2024, 1, 10)))

        balances = session.update_starting_point("cash", Decimal("10000"), date(2024, 1, 1))

        assert balances.cash == Decimal("13000")
        assert session.document.balances.cash == Decimal("13000")
        stored = local.load_document()
        assert stored.balances.starting_balance.get("cash").balance == Decimal("10000")
        assert stored.balances.cash == Decimal("13000")

    def test_unknown_account_anchor_refused(self, session):
        with pytest.raises(UnknownAccountError):
            session.update_starting_point("bank_nope", Decimal("1"), date(2024, 1, 1))

    def test_future_balance_warning(self, session):
        session.update_starting_point("bank_savings", Decimal("100"), date(2024, 1, 1))
        record = session.record_expense(
            expense(amount="500", day=date(2024, 2, 1), account_id="bank_savings")
        )

        warnings = session.future_balance_warnings(today=date(2024, 1, 15))

        assert warnings[record.id].account_name == "Savings"
        assert warnings[record.id].shortfall == Decimal("400")


class TestPlanningAndSettings:

    def test_budget_edits_are_saved(self, session, local, audit):
        session.set_salary("2024-01", 300000)
        session.set_category_amount("2024-01", "RENT", 80000)

        summary = session.monthly_summary("2024-01")
        assert summary.available == Decimal("220000")
        assert summary.percentages["RENT"] == Decimal("26.7")
        assert local.load_document().budgets["2024-01"].salary == Decimal("300000")
        assert logged_types(audit).count(AuditEventType.BUDGET_UPDATED) == 2

    def test_copy_month(self, session):
        session.set_category_amount("2024-01", "RENT", 80000)
        session.copy_month("2024-01", "2024-02")
        assert session.document.budgets["2024-02"].categories["RENT"].amount == Decimal("80000")

    def test_monthly_views(self, session):
        session.set_category_amount("2024-01", "FOOD", 31000)
        session.record_expense(expense(amount="1000"))

        progress = {p.category_id: p for p in session.category_progress("2024-01")}
        assert progress["FOOD"].spent == Decimal("1000")
        allowance = session.daily_allowance("2024-01", today=date(2024, 1, 1))
        assert allowance.by_category["FOOD"] == Decimal("967.74")

    def test_new_category_classifies_new_expenses(self, session):
        session.add_category(CategoryDefinition(
            id="PETS", name="Pets", icon="Heart", default_type=ExpenseType.SAVE
        ))
        record = session.record_expense(ExpenseDraft(
            amount=Decimal("30"), transaction_date=date(2024, 1, 2), category="PETS"
        ))
        assert record.expense_type == ExpenseType.SAVE

    def test_category_edit_keeps_recorded_types(self, session, local):
        """Test that a new default type applies to new expenses only."""
        before = session.record_expense(expense(amount="10"))
        session.update_category("FOOD", name="Groceries", default_type=ExpenseType.WANT)
        after = session.record_expense(expense(amount="20"))

        assert session.store.get(TransactionKind.EXPENSE, before.id).expense_type == ExpenseType.NEED
        assert after.expense_type == ExpenseType.WANT
        assert session.registry.resolve("FOOD").name == "Groceries"
        stored = {c.id: c for c in local.load_document().categories}
        assert stored["FOOD"].name == "Groceries"

    def test_category_in_use_cannot_be_removed(self, session):
        session.add_category(CategoryDefinition(id="PETS", name="Pets", icon="Heart"))
        session.record_expense(ExpenseDraft(
            amount=Decimal("30"), transaction_date=date(2024, 1, 2), category="PETS"
        ))
        with pytest.raises(CategoryError):
            session.remove_category("PETS")

    def test_account_lifecycle(self, session):
        account = session.add_account("Travel Card")
        assert not account.is_default

        session.update_starting_point(account.id, Decimal("50"), date(2024, 1, 1))
        session.remove_account(account.id)

        assert account.id not in session.accounts
        assert session.document.balances.starting_balance.get(account.id) is None

    def test_rename_keeps_account_id(self, session):
        session.rename_account("bank_savings", "Rainy Day")

        assert session.accounts.name_of("bank_savings") == "Rainy Day"
        assert session.document.bank_accounts[1].id == "bank_savings"

    def test_account_in_use_cannot_be_removed(self, session):
        session.record_expense(expense(account_id="bank_main"))
        with pytest.raises(AccountInUseError):
            session.remove_account("bank_main")

    def test_default_account_change_reroutes_card_payments(self, session):
        session.set_default_account("bank_savings")
        record = session.record_expense(expense(account_id="Card"))
        assert record.account_id == "bank_savings"


class TestSyncFlow:

    @pytest.mark.asyncio
    async def test_only_confirmed_records_marked_synced(self, session, audit):
        first = session.record_expense(expense())
        second = session.record_expense(expense(amount="10"))
        backend = FakeBackend(confirm=lambda ids: [ids[0], "bogus"])

        changed = await SyncFlow(session, backend).push(TransactionKind.EXPENSE)

        assert changed == 1
        assert session.store.get(TransactionKind.EXPENSE, first.id).synced
        assert not session.store.get(TransactionKind.EXPENSE, second.id).synced
        assert audit.log_transactions_synced.call_args.args[1] == [first.id]

    @pytest.mark.asyncio
    async def test_pull_merges_and_persists(self, session, local):
        backend = FakeBackend(remote={TransactionKind.EXPENSE: [{
            "id": "remote-1",
            "date": "2024-03-05",
            "amount": "10",
            "category": "FOOD",
            "type": "NEED",
            "paymentMethod": "Cash",
        }]})

        result = await SyncFlow(session, backend).pull(TransactionKind.EXPENSE)

        assert result.added == 1
        assert session.store.get(TransactionKind.EXPENSE, "remote-1").synced
        assert [r["id"] for r in local.load_transactions(TransactionKind.EXPENSE)] == ["remote-1"]

    @pytest.mark.asyncio
    async def test_sync_continues_past_failing_kind(self, session, audit):
        session.record_expense(expense())
        session.record_income(IncomeDraft(amount=Decimal("5"), transaction_date=date(2024, 1, 2)))
        backend = FakeBackend(failing={TransactionKind.INCOME})

        report = await SyncFlow(session, backend).sync()

        assert report.pushed[TransactionKind.EXPENSE] == 1
        assert TransactionKind.INCOME in report.failed
        assert session.store.unsynced(TransactionKind.INCOME)
        audit.log_sync_failed.assert_called_once()
        assert report.document_saved

    @pytest.mark.asyncio
    async def test_document_leaves_without_secrets(self, session):
        session._replace_document(session.document.model_copy(update={"gemini_key": "gk-123"}))
        backend = FakeBackend()

        assert await SyncFlow(session, backend).push_document()
        assert backend.config["geminiKey"] == ""
        assert backend.categories == session.registry.definitions

    @pytest.mark.asyncio
    async def test_remote_months_survive_and_local_months_win(self, session, local):
        """Test that another device's months are adopted without overwriting ours."""
        session.set_salary("2024-01", 300000)
        backend = FakeBackend(
            budgets={
                "2024-01": MonthlyBudget(salary=1),
                "2023-12": MonthlyBudget(
                    salary=250000,
                    categories={"GYM": CategoryBudget(amount=8000, expense_type=ExpenseType.WANT)},
                ),
            },
            categories=[
                CategoryDefinition(id="GYM", name="Gym", icon="Heart"),
                CategoryDefinition(id="UNUSED", name="Unused"),
            ],
        )

        report = await SyncFlow(session, backend).sync()

        assert report.adopted_months == ["2023-12"]
        assert session.document.budgets["2024-01"].salary == Decimal("300000")
        assert session.document.budgets["2023-12"].categories["GYM"].amount == Decimal("8000")
        assert "GYM" in session.registry
        assert "UNUSED" not in session.registry
        assert set(local.load_document().budgets) == {"2023-12", "2024-01"}
        assert backend.budgets["2024-01"].salary == Decimal("300000")
        assert backend.budgets["2023-12"].salary == Decimal("250000")

    @pytest.mark.asyncio
    async def test_nothing_adopted_when_every_month_is_local(self, session):
        session.set_salary("2024-01", 300000)
        backend = FakeBackend(budgets={"2024-01": MonthlyBudget(salary=1)})
        before = session.document

        assert await SyncFlow(session, backend).pull_document() == []
        assert session.document is before

    @pytest.mark.asyncio
    async def test_sync_writes_through_public_persistence(self, session, local):
        session.record_expense(expense())

        await SyncFlow(session, FakeBackend()).sync()

        stored = local.load_transactions(TransactionKind.EXPENSE)
        assert [r["synced"] for r in stored] == [True]


class TestCreateSession:

    def test_legacy_data_is_migrated_once_and_written_back(self, tmp_path, audit):
        (tmp_path / "config.json").write_text(json.dumps({
            "bankAccounts": [{"id": "bank_main", "name": "Main", "isDefault": True}],
            "balances": {"startingBalance": {"cash": 1000, "bank": 5000, "asOfDate": "2024-01-01"}},
        }))
        (tmp_path / "expenses.json").write_text(json.dumps([{
            "id": "old-1",
            "date": "2024-01-03",
            "timestamp": "2024-01-03T12:00:00",
            "amount": "300",
            "category": "FOOD",
            "type": "NEED",
            "paymentMethod": "Card",
        }]))

        session = create_session(LocalJsonStorage(data_dir=tmp_path, legacy_bank_id="bank"), audit)

        assert session.store.get(TransactionKind.EXPENSE, "old-1").account_id == "bank_main"
        assert session.running_balance("cash") == Decimal("1000")
        assert AuditEventType.STARTING_BALANCE_MIGRATED in logged_types(audit)

        stored = json.loads((tmp_path / "config.json").read_text())
        starting = stored["balances"]["startingBalance"]
        assert set(starting) == {"accountBalances"}
        assert starting["accountBalances"]["bank"]["balance"] == "5000"
        expenses = json.loads((tmp_path / "expenses.json").read_text())
        assert expenses[0]["paymentMethod"] == "bank_main"

    def test_unreadable_records_are_audited(self, tmp_path, audit):
        (tmp_path / "income.json").write_text(json.dumps([
            {"id": "ok", "date": "2024-01-03", "amount": "10"},
            {"id": "broken", "date": "03/01/2024", "amount": "10"},
        ]))

        session = create_session(LocalJsonStorage(data_dir=tmp_path, legacy_bank_id="bank"), audit)

        assert [r.id for r in session.store.incomes] == ["ok"]
        audit.log_error.assert_called_once()
        assert audit.log_error.call_args.kwargs["details"]["ids"] == ["broken"]

    def test_current_data_is_not_rewritten(self, tmp_path, audit):
        session = create_session(LocalJsonStorage(data_dir=tmp_path, legacy_bank_id="bank"), audit)

        assert session.document.bank_accounts == []
        assert not (tmp_path / "config.json").exists()
        audit.log.assert_not_called()
