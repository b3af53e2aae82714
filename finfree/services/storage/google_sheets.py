"""
Google Sheets Sync Backend

DESIGN DECISION: The remote copy is a spreadsheet the user already owns,
so every expense, income and transfer can be read there without this app.
One worksheet per record kind; budgets, categories and the secret-free
document get their own sheets.

TRADEOFFS:
- A push is a per-row upsert, not atomic. It confirms every id or raises;
  rows written before a failure are rewritten in place on the next push.
- Reads pull whole sheets; filtering happens here.

The local store remains authoritative. This backend only ever receives
what the sync flow pushes, and the configuration document only in its
for_remote() shape, without secrets.
"""

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finfree.config import GoogleSheetsSettings, get_settings
from finfree.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finfree.models.budget import CategoryDefinition, MonthlyBudget
from finfree.models.transactions import ExpenseType, TransactionKind, TransactionRecord
from finfree.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
    TransactionSyncInterface,
)


logger = structlog.get_logger(__name__)


# (sheet header, document key) per transaction kind
SHEET_LAYOUTS: dict[TransactionKind, list[tuple[str, str]]] = {
    TransactionKind.EXPENSE: [
        ("ID", "id"),
        ("Date", "date"),
        ("Time", "time"),
        ("Timestamp", "timestamp"),
        ("Amount", "amount"),
        ("Category", "category"),
        ("Type", "type"),
        ("Payment Method", "paymentMethod"),
        ("Store", "store"),
        ("Notes", "notes"),
        ("Source", "source"),
    ],
    TransactionKind.INCOME: [
        ("ID", "id"),
        ("Date", "date"),
        ("Time", "time"),
        ("Timestamp", "timestamp"),
        ("Amount", "amount"),
        ("Category", "category"),
        ("Account", "paymentMethod"),
        ("Description", "description"),
        ("Notes", "notes"),
    ],
    TransactionKind.TRANSFER: [
        ("ID", "id"),
        ("Date", "date"),
        ("Time", "time"),
        ("Timestamp", "timestamp"),
        ("Amount", "amount"),
        ("From Account", "fromAccountId"),
        ("To Account", "toAccountId"),
        ("Description", "description"),
        ("Notes", "notes"),
    ],
}

BUDGET_COLUMNS = ["Month", "Category", "Type", "Amount", "Salary"]
CATEGORY_COLUMNS = ["ID", "Name", "Icon", "Type"]

# Audit trail sheet, one event per row
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


def record_to_row(kind: TransactionKind, record: TransactionRecord) -> list[str]:
    """Convert a record to a spreadsheet row."""
    document = record.to_document()
    return [
        "" if document.get(key) is None else str(document[key])
        for _, key in SHEET_LAYOUTS[kind]
    ]


def row_to_payload(kind: TransactionKind, row: Sequence[str]) -> dict[str, Any]:
    """Convert a spreadsheet row to a document-shape payload. Blank cells are omitted."""
    return {
        key: value
        for (_, key), value in zip(SHEET_LAYOUTS[kind], row)
        if value != ""
    }


def budgets_to_rows(budgets: Mapping[str, MonthlyBudget]) -> list[list[str]]:
    """One row per month and category; a month with no categories keeps its salary row."""
    rows = []
    for month_key, budget in sorted(budgets.items()):
        if not budget.categories:
            rows.append([month_key, "", "", "", str(budget.salary)])
        for category_id, entry in budget.categories.items():
            rows.append([
                month_key,
                category_id,
                entry.expense_type.value,
                str(entry.amount),
                str(budget.salary),
            ])
    return rows


def rows_to_budgets(rows: Sequence[Sequence[str]]) -> dict[str, MonthlyBudget]:
    months: dict[str, dict[str, Any]] = {}
    for row in rows:
        cells = dict(zip(BUDGET_COLUMNS, row))
        month_key = cells.get("Month")
        if not month_key:
            continue
        month = months.setdefault(month_key, {"salary": cells.get("Salary"), "categories": {}})
        if cells.get("Category"):
            month["categories"][cells["Category"]] = {
                "amount": cells.get("Amount"),
                "type": cells.get("Type") or ExpenseType.NEED,
            }
    budgets = {}
    for month_key, month in months.items():
        try:
            budgets[month_key] = MonthlyBudget.model_validate(month)
        except ValidationError as e:
            logger.warning("budget_row_skipped", month=month_key, error=str(e))
    return budgets


class GoogleSheetsClient:
    """
    Service-account access to the one spreadsheet the ledger syncs to.

    The gspread client and spreadsheet handle are opened on first use.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Authorize gspread with the service account key file."""
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Open the ledger spreadsheet by id, once."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, headers: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing headers when creating it."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=max(len(headers), 2),
            )
            if headers:
                sheet.append_row(headers)
        return sheet

    def transactions_sheet(self, kind: TransactionKind) -> gspread.Worksheet:
        title = {
            TransactionKind.EXPENSE: self._settings.expenses_sheet_name,
            TransactionKind.INCOME: self._settings.income_sheet_name,
            TransactionKind.TRANSFER: self._settings.transfers_sheet_name,
        }[kind]
        return self.get_worksheet(title, [header for header, _ in SHEET_LAYOUTS[kind]])

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsTransactionSync(TransactionSyncInterface):
    """
    Google Sheets implementation of the sync backend.

    One worksheet per transaction kind, one record per row, keyed by the id
    in column A.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True,
    )
    async def push(
        self,
        kind: TransactionKind,
        records: Sequence[TransactionRecord],
    ) -> list[str]:
        """Upsert records: rewrite rows whose id exists, append the rest."""
        if not records:
            return []
        try:
            sheet = self._client.transactions_sheet(kind)
            existing_ids = sheet.col_values(1)
            row_numbers = {
                record_id: index
                for index, record_id in enumerate(existing_ids, start=1)
                if index > 1 and record_id
            }

            new_rows = []
            for record in records:
                row = record_to_row(kind, record)
                row_number = row_numbers.get(record.id)
                if row_number is not None:
                    sheet.update(values=[row], range_name=f"A{row_number}")
                else:
                    new_rows.append(row)
            if new_rows:
                sheet.append_rows(new_rows, value_input_option="RAW")
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to push {kind.value} records: {e}")

        confirmed = [record.id for record in records]
        logger.info("sheets_push_confirmed", kind=kind.value, count=len(confirmed))
        return confirmed

    async def fetch(self, kind: TransactionKind) -> list[dict[str, Any]]:
        try:
            sheet = self._client.transactions_sheet(kind)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to fetch {kind.value} records: {e}")
        return [row_to_payload(kind, row) for row in all_rows if row and row[0]]

    async def fetch_budgets(self) -> dict[str, MonthlyBudget]:
        rows = self._read_rows(self._client.settings.budgets_sheet_name, BUDGET_COLUMNS)
        return rows_to_budgets(rows)

    async def fetch_categories(self) -> list[CategoryDefinition]:
        rows = self._read_rows(self._client.settings.categories_sheet_name, CATEGORY_COLUMNS)
        categories = []
        for row in rows:
            cells = dict(zip(CATEGORY_COLUMNS, row))
            if not cells.get("ID") or not cells.get("Name"):
                continue
            try:
                categories.append(CategoryDefinition(
                    id=cells["ID"],
                    name=cells["Name"],
                    icon=cells.get("Icon") or "ShoppingBag",
                    default_type=cells.get("Type") or ExpenseType.NEED,
                ))
            except ValidationError as e:
                logger.warning("category_row_skipped", category_id=cells["ID"], error=str(e))
        return categories

    async def save_budgets(self, budgets: Mapping[str, MonthlyBudget]) -> bool:
        """
        Rewrite the Budgets sheet, one row per month and category.

        Rows for months not in `budgets` are carried over, so a device that
        only knows some months never wipes the others.
        """
        title = self._client.settings.budgets_sheet_name
        kept = [
            row for row in self._read_rows(title, BUDGET_COLUMNS)
            if row and row[0] and row[0] not in budgets
        ]
        return self._replace_sheet(title, BUDGET_COLUMNS, kept + budgets_to_rows(budgets))

    async def save_categories(self, categories: Sequence[CategoryDefinition]) -> bool:
        rows = [[c.id, c.name, c.icon, c.default_type.value] for c in categories]
        return self._replace_sheet(self._client.settings.categories_sheet_name, CATEGORY_COLUMNS, rows)

    async def save_config(self, remote_document: Mapping[str, Any]) -> bool:
        """Config JSON in B1, last-updated timestamp in B2."""
        try:
            sheet = self._client.get_worksheet(self._client.settings.config_sheet_name, [], rows=10)
            sheet.update(
                values=[
                    ["Config JSON", json.dumps(dict(remote_document), ensure_ascii=False)],
                    ["Last Updated", datetime.now(timezone.utc).isoformat()],
                ],
                range_name="A1:B2",
            )
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save config: {e}")

    def _read_rows(self, title: str, headers: list[str]) -> list[list[str]]:
        try:
            sheet = self._client.get_worksheet(title, headers)
            return sheet.get_all_values()[1:]  # Skip header
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {title}: {e}")

    def _replace_sheet(self, title: str, headers: list[str], rows: list[list[str]]) -> bool:
        try:
            sheet = self._client.get_worksheet(title, headers)
            sheet.clear()
            sheet.append_rows([headers, *rows], value_input_option="RAW")
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write {title}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Ledger audit trail kept in the AuditLog worksheet.

    Rows are only ever appended; reads skip rows that no longer parse.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: Sequence[str]) -> AuditEvent:
        cells = dict(zip(AUDIT_COLUMNS, row))
        correlation_id = cells.get("correlation_id")
        details = cells.get("details_json")
        return AuditEvent(
            event_id=UUID(cells["event_id"]),
            timestamp=datetime.fromisoformat(cells["timestamp"]),
            event_type=AuditEventType(cells["event_type"]),
            severity=AuditSeverity(cells["severity"]),
            entity_type=cells.get("entity_type") or None,
            entity_id=cells.get("entity_id") or None,
            correlation_id=UUID(correlation_id) if correlation_id else None,
            description=cells.get("description", ""),
            details=json.loads(details) if details else {},
            error_message=cells.get("error_message") or None,
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (KeyError, ValueError):
                logger.debug("audit_row_skipped", event_id=row[0])
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
