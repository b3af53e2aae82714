"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for every persistence
boundary. This allows us to:
1. Keep the ledger core free of any file or network code
2. Use in-memory fakes for testing
3. Swap the sync backend without touching business logic

Three boundaries exist:
- DocumentStorageInterface: the local, authoritative copy (synchronous)
- TransactionSyncInterface: the remote copy (asynchronous, may fail)
- AuditStorageInterface: an append-only audit sink (synchronous)
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence
from uuid import UUID

from finfree.models.audit import AuditEvent
from finfree.models.budget import CategoryDefinition, MonthlyBudget
from finfree.models.document import ConfigDocument
from finfree.models.transactions import TransactionKind, TransactionRecord


class DocumentStorageInterface(ABC):
    """
    Local persistence of the configuration document and transactions.

    The local copy is authoritative. Implementations run the load-time
    migration on read and always write the current shape.
    """

    @abstractmethod
    def load_document(self) -> ConfigDocument:
        """
        Load the configuration document.

        Returns:
            The stored document, or a fresh one if nothing is stored yet.

        Raises:
            StorageError: If stored data cannot be read.
        """
        pass

    @abstractmethod
    def save_document(self, document: ConfigDocument) -> None:
        """Replace the stored document as a whole."""
        pass

    @abstractmethod
    def load_transactions(self, kind: TransactionKind) -> list[dict[str, Any]]:
        """
        Load raw stored records of one kind.

        Records are returned in stored (document) shape; legacy fields are
        normalized by the transaction store, not here.
        """
        pass

    @abstractmethod
    def save_transactions(
        self,
        kind: TransactionKind,
        records: Sequence[Mapping[str, Any]],
    ) -> None:
        """Replace the stored records of one kind."""
        pass


class TransactionSyncInterface(ABC):
    """
    Remote sync backend.

    CRITICAL: `push` returns only the ids the backend confirmed. Callers
    mark exactly those records synced, never optimistically.
    """

    @abstractmethod
    async def push(
        self,
        kind: TransactionKind,
        records: Sequence[TransactionRecord],
    ) -> list[str]:
        """
        Upsert records keyed by id.

        Returns:
            Ids confirmed persisted.

        Raises:
            StorageError: If the backend could not be written.
        """
        pass

    @abstractmethod
    async def fetch(self, kind: TransactionKind) -> list[dict[str, Any]]:
        """Remote records of one kind, in document shape."""
        pass

    @abstractmethod
    async def fetch_budgets(self) -> dict[str, MonthlyBudget]:
        """Remote budgets keyed by "YYYY-MM"."""
        pass

    @abstractmethod
    async def fetch_categories(self) -> list[CategoryDefinition]:
        pass

    @abstractmethod
    async def save_budgets(self, budgets: Mapping[str, MonthlyBudget]) -> bool:
        """
        Write budgets for the given months.

        Months the backend holds that are absent from `budgets` are kept.
        """
        pass

    @abstractmethod
    async def save_categories(self, categories: Sequence[CategoryDefinition]) -> bool:
        pass

    @abstractmethod
    async def save_config(self, remote_document: Mapping[str, Any]) -> bool:
        """
        Store the document copy produced by ConfigDocument.for_remote().

        Never pass the full document: it carries secrets.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing one correlation id, in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
