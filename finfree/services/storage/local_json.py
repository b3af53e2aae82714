"""
Local JSON Storage

The device-local, authoritative copy: one JSON file for the configuration
document and one per transaction kind.

Files are replaced atomically (write to a temporary file, then rename) so
a crash mid-write never leaves a half-written document behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

import structlog

from finfree.config import get_settings
from finfree.ledger.migration import MigrationReport, load_document
from finfree.models.document import ConfigDocument
from finfree.models.transactions import TransactionKind
from finfree.services.storage.interface import DocumentStorageInterface, StorageError


logger = structlog.get_logger(__name__)

DOCUMENT_FILE = "config.json"
TRANSACTION_FILES = {
    TransactionKind.EXPENSE: "expenses.json",
    TransactionKind.INCOME: "income.json",
    TransactionKind.TRANSFER: "transfers.json",
}


class LocalJsonStorage(DocumentStorageInterface):
    """
    JSON files under one data directory.

    Args:
        data_dir: Directory to use. Defaults to the configured data dir.
        legacy_bank_id: Account id legacy `bank` balances migrate to.
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        legacy_bank_id: Optional[str] = None,
    ):
        if data_dir is None or legacy_bank_id is None:
            app = get_settings().app
            data_dir = data_dir if data_dir is not None else app.data_path
            legacy_bank_id = legacy_bank_id or app.legacy_bank_account_id
        self._dir = Path(data_dir).expanduser()
        self._legacy_bank_id = legacy_bank_id
        self.last_migration: Optional[MigrationReport] = None

    @property
    def data_dir(self) -> Path:
        return self._dir

    def _read(self, filename: str) -> Any:
        path = self._dir / filename
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def _write(self, filename: str, data: Any) -> None:
        path = self._dir / filename
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=f".{filename}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    # -------------------------------------------------------------------------
    # Document
    # -------------------------------------------------------------------------

    def load_document(self) -> ConfigDocument:
        raw = self._read(DOCUMENT_FILE)
        if raw is not None and not isinstance(raw, dict):
            raise StorageError(f"{DOCUMENT_FILE} does not hold a JSON object")
        document, report = load_document(raw, self._legacy_bank_id)
        self.last_migration = report
        logger.debug("document_loaded", path=str(self._dir / DOCUMENT_FILE), migrated=report.migrated)
        return document

    def save_document(self, document: ConfigDocument) -> None:
        self._write(DOCUMENT_FILE, document.to_document())
        logger.debug("document_saved", path=str(self._dir / DOCUMENT_FILE))

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def load_transactions(self, kind: TransactionKind) -> list[dict[str, Any]]:
        raw = self._read(TRANSACTION_FILES[kind])
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StorageError(f"{TRANSACTION_FILES[kind]} does not hold a JSON list")
        return [item for item in raw if isinstance(item, dict)]

    def save_transactions(
        self,
        kind: TransactionKind,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        self._write(TRANSACTION_FILES[kind], [dict(r) for r in records])
