"""
Tests for local JSON storage and the Google Sheets backend.

The Sheets client is always a mock; nothing leaves the machine.
"""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from finfree.models import (
    AuditEventBuilder,
    AuditEventType,
    BankAccount,
    CategoryBudget,
    ConfigDocument,
    Expense,
    ExpenseType,
    MonthlyBudget,
    TransactionKind,
)
from finfree.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsTransactionSync,
    LocalJsonStorage,
    StorageError,
    record_to_row,
    row_to_payload,
)
from finfree.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    CATEGORY_COLUMNS,
    SHEET_LAYOUTS,
)


def make_expense(record_id="tx-1", amount="1200"):
    return Expense(
        id=record_id,
        transaction_date=date(2024, 3, 1),
        amount=Decimal(amount),
        category="FOOD",
        expense_type=ExpenseType.NEED,
        store="Lawson",
    )


@pytest.fixture
def storage(tmp_path):
    return LocalJsonStorage(data_dir=tmp_path, legacy_bank_id="bank")


class TestLocalJsonStorage:

    def test_missing_files_give_fresh_document(self, storage):
        document = storage.load_document()

        assert document.bank_accounts == []
        assert document.categories
        assert not storage.last_migration.migrated
        assert storage.load_transactions(TransactionKind.EXPENSE) == []

    def test_document_round_trip(self, storage):
        document = ConfigDocument(
            gemini_key="secret",
            bank_accounts=[BankAccount(id="bank_main", name="Main", is_default=True)],
        )
        storage.save_document(document)

        assert storage.load_document() == document
        assert list(storage.data_dir.glob(".*.tmp")) == []

    def test_legacy_document_is_migrated_on_load(self, storage):
        (storage.data_dir / "config.json").write_text(json.dumps({
            "balances": {"startingBalance": {"cash": 100, "bank": 5000, "asOfDate": "2024-01-01"}},
        }))

        document = storage.load_document()

        assert document.balances.starting_balance.get("bank").balance == Decimal("5000")
        assert storage.last_migration.migrated

    def test_transactions_round_trip(self, storage):
        records = [make_expense().to_document()]
        storage.save_transactions(TransactionKind.EXPENSE, records)

        assert storage.load_transactions(TransactionKind.EXPENSE) == records
        assert (storage.data_dir / "expenses.json").exists()

    def test_corrupt_file_raises(self, storage):
        (storage.data_dir / "config.json").write_text("{not json")
        with pytest.raises(StorageError):
            storage.load_document()

    def test_wrong_shape_raises(self, storage):
        (storage.data_dir / "income.json").write_text('{"id": "x"}')
        with pytest.raises(StorageError):
            storage.load_transactions(TransactionKind.INCOME)


class TestSheetRows:

    def test_expense_row_follows_layout(self):
        row = record_to_row(TransactionKind.EXPENSE, make_expense())
        headers = [header for header, _ in SHEET_LAYOUTS[TransactionKind.EXPENSE]]
        cells = dict(zip(headers, row))

        assert cells["ID"] == "tx-1"
        assert cells["Date"] == "2024-03-01"
        assert cells["Time"] == ""
        assert cells["Amount"] == "1200"
        assert cells["Payment Method"] == "cash"
        assert cells["Store"] == "Lawson"

    def test_row_back_to_payload_skips_blanks(self):
        row = record_to_row(TransactionKind.EXPENSE, make_expense())
        payload = row_to_payload(TransactionKind.EXPENSE, row)

        assert "time" not in payload
        assert payload["paymentMethod"] == "cash"
        assert Expense.model_validate(payload).amount == Decimal("1200")


class TestGoogleSheetsTransactionSync:

    @pytest.fixture
    def sheet(self):
        return MagicMock()

    @pytest.fixture
    def backend(self, sheet):
        client = MagicMock()
        client.transactions_sheet.return_value = sheet
        client.get_worksheet.return_value = sheet
        return GoogleSheetsTransactionSync(client=client)

    @pytest.mark.asyncio
    async def test_push_upserts_by_id(self, backend, sheet):
        """Test that known ids are rewritten in place and new ones appended."""
        sheet.col_values.return_value = ["ID", "tx-1"]

        confirmed = await backend.push(
            TransactionKind.EXPENSE, [make_expense("tx-1"), make_expense("tx-2")]
        )

        assert confirmed == ["tx-1", "tx-2"]
        sheet.update.assert_called_once()
        assert sheet.update.call_args.kwargs["range_name"] == "A2"
        appended = sheet.append_rows.call_args.args[0]
        assert [row[0] for row in appended] == ["tx-2"]

    @pytest.mark.asyncio
    async def test_push_nothing(self, backend, sheet):
        assert await backend.push(TransactionKind.EXPENSE, []) == []
        sheet.col_values.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_skips_header_and_blank_rows(self, backend, sheet):
        headers = [header for header, _ in SHEET_LAYOUTS[TransactionKind.EXPENSE]]
        sheet.get_all_values.return_value = [
            headers,
            record_to_row(TransactionKind.EXPENSE, make_expense()),
            [""] * len(headers),
        ]

        payloads = await backend.fetch(TransactionKind.EXPENSE)

        assert len(payloads) == 1
        assert payloads[0]["id"] == "tx-1"

    @pytest.mark.asyncio
    async def test_save_config_writes_remote_shape(self, backend, sheet):
        document = ConfigDocument(gemini_key="gk-123", sheets_secret="s3cret")

        assert await backend.save_config(document.for_remote())

        values = sheet.update.call_args.kwargs["values"]
        stored = json.loads(values[0][1])
        assert stored["geminiKey"] == ""
        assert stored["sheetsSecret"] == ""
        assert "gk-123" not in values[0][1]
        assert "s3cret" not in values[0][1]

    @pytest.mark.asyncio
    async def test_save_budgets_keeps_months_it_was_not_given(self, backend, sheet):
        """Test that rewriting one month leaves the other months' rows in place."""
        sheet.get_all_values.return_value = [
            BUDGET_COLUMNS,
            ["2023-05", "RENT", "NEED", "80000", "250000"],
            ["2024-01", "FOOD", "NEED", "1", "1"],
        ]
        budgets = {"2024-01": MonthlyBudget(
            salary=300000,
            categories={"FOOD": CategoryBudget(amount=40000, expense_type=ExpenseType.NEED)},
        )}

        assert await backend.save_budgets(budgets)

        sheet.clear.assert_called_once()
        written = sheet.append_rows.call_args.args[0]
        assert written == [
            BUDGET_COLUMNS,
            ["2023-05", "RENT", "NEED", "80000", "250000"],
            ["2024-01", "FOOD", "NEED", "40000", "300000"],
        ]

    @pytest.mark.asyncio
    async def test_fetch_budgets_groups_rows_by_month(self, backend, sheet):
        sheet.get_all_values.return_value = [
            BUDGET_COLUMNS,
            ["2023-05", "RENT", "NEED", "80000", "250000"],
            ["2023-05", "TRIP", "WANT", "-5", "250000"],
            ["2023-06", "", "", "", "260000"],
            ["2023-07", "RENT", "LUXURY", "1", "1"],
            ["", "RENT", "NEED", "1", "1"],
        ]

        budgets = await backend.fetch_budgets()

        assert set(budgets) == {"2023-05", "2023-06"}
        assert budgets["2023-05"].salary == Decimal("250000")
        assert budgets["2023-05"].categories["TRIP"].amount == Decimal("0")
        assert budgets["2023-05"].categories["TRIP"].expense_type == ExpenseType.WANT
        assert budgets["2023-06"].categories == {}

    @pytest.mark.asyncio
    async def test_salary_only_month_keeps_a_row(self, backend, sheet):
        sheet.get_all_values.return_value = [BUDGET_COLUMNS]

        await backend.save_budgets({"2024-02": MonthlyBudget(salary=300000)})

        written = sheet.append_rows.call_args.args[0]
        assert written[1] == ["2024-02", "", "", "", "300000"]

    @pytest.mark.asyncio
    async def test_fetch_categories_skips_unusable_rows(self, backend, sheet):
        sheet.get_all_values.return_value = [
            CATEGORY_COLUMNS,
            ["GYM", "Gym", "Heart", "WANT"],
            ["", "Nameless", "Heart", "NEED"],
            ["ODD", "Odd", "Heart", "SOMETIMES"],
        ]

        categories = await backend.fetch_categories()

        assert [c.id for c in categories] == ["GYM"]
        assert categories[0].default_type == ExpenseType.WANT

    @pytest.mark.asyncio
    async def test_unreadable_budget_sheet_raises_storage_error(self, backend, sheet):
        sheet.get_all_values.side_effect = RuntimeError("quota")
        with pytest.raises(StorageError, match="quota"):
            await backend.save_budgets({})
        sheet.clear.assert_not_called()


class TestGoogleSheetsAuditStorage:

    def test_append_and_read_by_correlation_id(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_appended("expense", "tx-1", "1200", correlation_id)
        other = AuditEventBuilder.transaction_appended("expense", "tx-2", "5")

        sheet = MagicMock()
        sheet.get_all_values.return_value = [
            AUDIT_COLUMNS,
            event.to_sheets_row(),
            other.to_sheets_row(),
            ["not-a-uuid", "garbage"],
        ]
        client = MagicMock()
        client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(client=client)

        assert storage.append_event(event)
        sheet.append_row.assert_called_once()

        found = storage.get_events_by_correlation_id(correlation_id)
        assert [e.entity_id for e in found] == ["tx-1"]
        assert found[0].event_type == AuditEventType.TRANSACTION_APPENDED
        assert len(storage.get_recent_events(limit=10)) == 2
