"""
Audit Models for FinFree

Every significant change to the ledger is logged for audit purposes.
This provides:
1. Traceability of every appended, rejected and synced record
2. A record of which migration path legacy data took
3. Debugging information when sync or extraction fails

DESIGN DECISION: Events are immutable once built. A correction to the
ledger is a new event, never an edit of an old one.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finfree.models.transactions import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_APPENDED = "transaction_appended"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTIONS_SYNCED = "transactions_synced"
    TRANSACTIONS_MERGED = "transactions_merged"

    # Planning
    BUDGET_UPDATED = "budget_updated"
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"

    # Accounts and balances
    ACCOUNT_ADDED = "account_added"
    ACCOUNT_REMOVED = "account_removed"
    DEFAULT_ACCOUNT_CHANGED = "default_account_changed"
    STARTING_BALANCE_UPDATED = "starting_balance_updated"
    STARTING_BALANCE_MIGRATED = "starting_balance_migrated"
    BALANCES_REFRESHED = "balances_refreshed"

    # Receipt extraction
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    EXTRACTION_DISCARDED = "extraction_discarded"

    # System events
    SYNC_FAILED = "sync_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """How loudly an event is logged locally."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    One ledger change, rejection or failure.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # The record, account, category or month affected
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'budget', 'account')"
    )
    entity_id: Optional[str] = None

    # Shared by events of one user action, e.g. a transfer and its fee
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Row for the AuditLog worksheet.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Factory methods, one per ledger event.

    Usage:
        event = AuditEventBuilder.transaction_appended("expense", expense.id, "2000")
        event = AuditEventBuilder.budget_updated("2024-06", "salary", "300000")
    """

    @staticmethod
    def transaction_appended(
        kind: str,
        record_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_APPENDED,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} recorded: {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def transaction_rejected(
        kind: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def transactions_synced(
        kind: str,
        record_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_SYNCED,
            entity_type=kind,
            correlation_id=correlation_id,
            description=f"{len(record_ids)} {kind} records confirmed by remote",
            details={"record_ids": record_ids},
        )

    @staticmethod
    def transactions_merged(
        kind: str,
        added: int,
        replaced: int,
        kept_local: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_MERGED,
            entity_type=kind,
            description=f"Merged remote {kind} records",
            details={"added": added, "replaced": replaced, "kept_local": kept_local},
        )

    @staticmethod
    def budget_updated(
        month_key: str,
        target: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=month_key,
            description=f"Budget {month_key}: {target} set to {amount}",
            details={"target": target, "amount": amount},
        )

    @staticmethod
    def category_changed(
        category_id: str,
        added: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CATEGORY_ADDED if added
                else AuditEventType.CATEGORY_UPDATED
            ),
            entity_type="category",
            entity_id=category_id,
            description=f"Category {'added' if added else 'updated'}: {category_id}",
        )

    @staticmethod
    def account_changed(
        event_type: AuditEventType,
        account_id: str,
        name: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {account_id}: {event_type.value.replace('_', ' ')}",
            details={"name": name} if name else {},
        )

    @staticmethod
    def starting_balance_updated(
        account_id: str,
        balance: str,
        as_of_date: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STARTING_BALANCE_UPDATED,
            entity_type="account",
            entity_id=account_id,
            description=f"Starting balance for {account_id}: {balance} as of {as_of_date}",
            details={"balance": balance, "as_of_date": as_of_date},
        )

    @staticmethod
    def starting_balance_migrated(
        paths: dict[str, str],
        ambiguous: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STARTING_BALANCE_MIGRATED,
            severity=AuditSeverity.WARNING if ambiguous else AuditSeverity.INFO,
            entity_type="starting_balance",
            description=(
                "Legacy starting balance migrated"
                + (" (ambiguous, resolved by priority)" if ambiguous else "")
            ),
            details={"paths": paths, "ambiguous": ambiguous},
        )

    @staticmethod
    def extraction_completed(
        request_id: int,
        confidence: str,
        total: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="receipt",
            entity_id=str(request_id),
            correlation_id=correlation_id,
            description=f"Receipt extracted with {confidence} confidence",
            details={"confidence": confidence, "total": total},
        )

    @staticmethod
    def extraction_failed(
        request_id: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            entity_id=str(request_id),
            correlation_id=correlation_id,
            description="Receipt extraction failed; manual entry required",
            error_message=error_message,
        )

    @staticmethod
    def extraction_discarded(
        request_id: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_DISCARDED,
            entity_type="receipt",
            entity_id=str(request_id),
            correlation_id=correlation_id,
            description=f"Receipt extraction result discarded: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def sync_failed(
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=kind,
            correlation_id=correlation_id,
            description=f"Sync of {kind} records failed",
            error_message=error_message,
        )

    @staticmethod
    def balances_refreshed(
        as_of: str,
        total: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_REFRESHED,
            severity=AuditSeverity.DEBUG,
            entity_type="balances",
            description=f"Balances recomputed as of {as_of}",
            details={"as_of": as_of, "total": total},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_message=error_message,
        )
