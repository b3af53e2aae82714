"""
Receipt Drafts

Turns an extraction into an unsaved ExpenseDraft, and runs the one
asynchronous call in the system on behalf of an expense form.

DESIGN DECISION: The extraction call is a cancellable task owned by a
ReceiptDraftSession (one per open form). Each call gets a request id.
A result is applied only if, when it arrives:
1. Its request is still the latest one for the form
2. The user has not edited the draft since the request started
3. The form has not been closed

Anything else is discarded and logged. A failure or cancellation never
touches the draft. Nothing here ever appends to the Transaction Store;
saving still takes an explicit user confirmation.
"""

import asyncio
from datetime import time
from typing import Any, Optional

import structlog

from finfree.audit import AuditLogger
from finfree.categories import CategoryRegistry
from finfree.models.audit import AuditEventBuilder
from finfree.models.base import ISO_DATE_PATTERN
from finfree.models.receipt import ExtractionConfidence, ReceiptExtraction
from finfree.models.transactions import (
    CASH_ACCOUNT_ID,
    ExpenseDraft,
    TransactionSource,
)
from finfree.services.receipt.interface import (
    ExtractionFailedError,
    ReceiptExtractorInterface,
)


logger = structlog.get_logger(__name__)


def _parse_time(value: Optional[str]) -> Optional[time]:
    if not value:
        return None
    try:
        return time.fromisoformat(value.strip()[:5])
    except ValueError:
        return None


def apply_extraction(
    draft: ExpenseDraft,
    extraction: ReceiptExtraction,
    registry: CategoryRegistry,
    currency_symbol: str = "",
) -> ExpenseDraft:
    """
    Map an extraction onto an existing draft.

    - amount = total
    - store as read
    - date only if it is a `YYYY-MM-DD` date, else the draft keeps its own
    - notes = itemized list
    - category only if registered
    - suggested type only as a classification override
    - source = receipt

    The draft's payment account is never changed.
    """
    changes: dict[str, Any] = {
        "amount": extraction.total,
        "store": extraction.store,
        "source": TransactionSource.RECEIPT,
    }

    if extraction.date and ISO_DATE_PATTERN.match(extraction.date.strip()):
        changes["transaction_date"] = extraction.date.strip()
    extraction_time = _parse_time(extraction.time)
    if extraction_time is not None:
        changes["transaction_time"] = extraction_time

    notes = extraction.itemized_notes(currency_symbol)
    if notes:
        changes["notes"] = notes

    if extraction.suggested_category and extraction.suggested_category in registry:
        changes["category"] = extraction.suggested_category
    if extraction.suggested_type is not None:
        changes["expense_type"] = extraction.suggested_type

    try:
        return ExpenseDraft.model_validate({**draft.model_dump(), **changes})
    except ValueError:
        # A date that matches the pattern but is not a real date
        changes.pop("transaction_date", None)
        return ExpenseDraft.model_validate({**draft.model_dump(), **changes})


def draft_from_extraction(
    extraction: ReceiptExtraction,
    registry: CategoryRegistry,
    payment_account: str = CASH_ACCOUNT_ID,
    currency_symbol: str = "",
) -> ExpenseDraft:
    """A fresh draft built from an extraction. Nothing is persisted."""
    return apply_extraction(
        ExpenseDraft(account_id=payment_account),
        extraction,
        registry,
        currency_symbol,
    )


class ReceiptDraftSession:
    """
    The receipt scan state of one expense form.

    Args:
        extractor: The extraction collaborator.
        registry: Used to accept only registered suggested categories.
        draft: The form's starting draft.
        audit_logger: Optional audit sink for extraction outcomes.
        min_confidence: Extractions below this are treated as failures.
        currency_symbol: Prefix for prices in itemized notes.
    """

    def __init__(
        self,
        extractor: ReceiptExtractorInterface,
        registry: CategoryRegistry,
        draft: Optional[ExpenseDraft] = None,
        audit_logger: Optional[AuditLogger] = None,
        min_confidence: ExtractionConfidence = ExtractionConfidence.LOW,
        currency_symbol: str = "",
    ):
        self._extractor = extractor
        self._registry = registry
        self._draft = draft or ExpenseDraft()
        self._audit = audit_logger
        self._min_confidence = min_confidence
        self._currency_symbol = currency_symbol

        self._request_id = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def draft(self) -> ExpenseDraft:
        return self._draft

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def edit(self, **changes: Any) -> ExpenseDraft:
        """
        Apply a manual edit.

        Any extraction still outstanding is superseded: its result will
        not overwrite what the user typed.
        """
        self._supersede("manual_edit")
        self._draft = ExpenseDraft.model_validate({**self._draft.model_dump(), **changes})
        return self._draft

    async def extract(self, image_bytes: bytes, mime_type: str) -> Optional[ExpenseDraft]:
        """
        Run an extraction and apply it to the draft if still wanted.

        Returns:
            The updated draft, or None if the result was discarded.

        Raises:
            ExtractionFailedError: The extraction failed while still the
                                   latest request. The draft is unchanged.
            RuntimeError: The session is closed.
        """
        if self._closed:
            raise RuntimeError("Receipt session is closed")

        self._supersede("superseded")
        self._request_id += 1
        request_id = self._request_id
        task = asyncio.ensure_future(self._extractor.extract(image_bytes, mime_type))
        self._task = task

        try:
            extraction = await task
        except asyncio.CancelledError:
            if task.cancelled() and not self._is_current(request_id):
                return None
            raise
        except ExtractionFailedError as e:
            if not self._is_current(request_id):
                self._discard(request_id, "failed_after_superseded")
                return None
            self._log_failure(request_id, str(e))
            raise
        finally:
            if self._task is task:
                self._task = None

        if not self._is_current(request_id):
            self._discard(request_id, "stale")
            return None

        if extraction.confidence.rank < self._min_confidence.rank:
            message = f"Extraction confidence {extraction.confidence.value} is below the minimum"
            self._log_failure(request_id, message)
            raise ExtractionFailedError(message)

        self._draft = apply_extraction(
            self._draft, extraction, self._registry, self._currency_symbol
        )
        if self._audit:
            self._audit.log(AuditEventBuilder.extraction_completed(
                request_id=request_id,
                confidence=extraction.confidence.value,
                total=str(extraction.total),
            ))
        return self._draft

    def cancel(self) -> None:
        """
        The form was closed. Cancels any outstanding extraction and
        guarantees no result will be applied.
        """
        self._closed = True
        self._supersede("cancelled")

    def _is_current(self, request_id: int) -> bool:
        return request_id == self._request_id and not self._closed

    def _supersede(self, reason: str) -> None:
        if self.pending:
            self._discard(self._request_id, reason)
            self._task.cancel()
        # Results of any request issued before now are stale
        self._request_id += 1

    def _discard(self, request_id: int, reason: str) -> None:
        logger.info("receipt_extraction_discarded", request_id=request_id, reason=reason)
        if self._audit:
            self._audit.log(AuditEventBuilder.extraction_discarded(request_id, reason))

    def _log_failure(self, request_id: int, message: str) -> None:
        logger.warning("receipt_extraction_failed", request_id=request_id, error=message)
        if self._audit:
            self._audit.log(AuditEventBuilder.extraction_failed(request_id, message))
