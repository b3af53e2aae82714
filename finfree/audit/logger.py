"""
Audit Logger

DESIGN DECISION: Every significant change to the ledger is logged.
This provides:
1. Complete traceability of appended, rejected and synced records
2. A record of which migration path legacy data took
3. Debugging capability when sync or extraction fails

The audit logger:
- Is synchronous, like every other ledger mutation
- Gracefully handles failures (a failing audit sink never fails the action)
- Groups the events of one user action under a correlation id
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finfree.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finfree.services.storage.interface import AuditStorageInterface


# JSON lines to the stdlib root logger; the level is set by the host app
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Records ledger events.

    Every event goes to the local structured log; when a sink such as the
    AuditLog worksheet is configured it is appended there as well.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Sink for persistence. If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finfree.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log locally, then append to the sink if there is one.

        Returns:
            False only when a configured sink failed to store the event.
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage is None:
            return True
        try:
            return self._storage.append_event(event)
        except Exception as e:
            # A failing sink must not fail the action being audited
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def log_transaction_appended(
        self,
        kind: str,
        record_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_appended(kind, record_id, amount, correlation_id))

    def log_transaction_rejected(
        self,
        kind: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_rejected(kind, issues, correlation_id))

    def log_transactions_synced(
        self,
        kind: str,
        record_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transactions_synced(kind, record_ids, correlation_id))

    def log_sync_failed(
        self,
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.sync_failed(kind, error_message, correlation_id))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Audit a failure not tied to a single record."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    A fresh id for one user action.

    Create it at the start of a user action (e.g. recording a transfer with
    its fee) and pass it through all subsequent operations.
    """
    return uuid4()
