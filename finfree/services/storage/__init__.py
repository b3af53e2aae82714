"""
Storage Services Package

Local JSON persistence (authoritative) and Google Sheets sync (remote copy),
both behind abstract interfaces.
"""

from finfree.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DocumentStorageInterface,
    StorageError,
    TransactionSyncInterface,
)
from finfree.services.storage.local_json import LocalJsonStorage
from finfree.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionSync,
    record_to_row,
    row_to_payload,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStorageInterface",
    "TransactionSyncInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionSync",
    "LocalJsonStorage",
    "record_to_row",
    "row_to_payload",
]
