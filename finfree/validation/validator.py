"""
Two-Stage Transaction Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount, date, transfer accounts)
- Amount is a finite number greater than zero
- Date is a real `YYYY-MM-DD` calendar date
- This catches malformed form input and bad receipt extractions

STAGE 2 - SEMANTIC VALIDATION:
- Every referenced account is `cash` or a known bank account
- Transfer source and destination differ
- Income never lands on a card
- Unknown expense categories and future dates are flagged, not refused
- This catches records that are well-formed but impossible

Stage 2 only runs if stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the store refuses a draft with any error.
"""

from datetime import date
from typing import Iterable, Optional

import structlog
from pydantic import ValidationError

from finfree.categories import CategoryRegistry
from finfree.ledger.accounts import AccountDirectory
from finfree.models.transactions import (
    ExpenseDraft,
    IncomeDraft,
    TransactionDraft,
    TransferDraft,
    ValidationIssue,
    ValidationResult,
)


logger = structlog.get_logger(__name__)

CARD_PAYMENT_METHOD = "card"


class InvalidTransactionError(ValueError):
    """
    A draft was refused at the store boundary.

    Nothing is stored when this is raised.
    """

    def __init__(self, issues: Iterable[ValidationIssue]):
        self.issues = list(issues)
        summary = "; ".join(f"{i.field}: {i.message}" for i in self.issues if i.severity == "error")
        super().__init__(f"Invalid transaction: {summary or 'unknown reason'}")


def issues_from_validation_error(error: ValidationError) -> list[ValidationIssue]:
    """Translate pydantic's errors into ValidationIssues."""
    return [
        ValidationIssue(
            field=".".join(str(part) for part in err["loc"]) or "record",
            issue_type=err["type"],
            message=err["msg"],
        )
        for err in error.errors()
    ]


class TransactionValidator:
    """
    Validates drafts before the store turns them into records.

    Args:
        accounts: Directory used to check account references.
        registry: Category registry used to flag unknown categories.
                  If None, category checks are skipped.
    """

    def __init__(
        self,
        accounts: AccountDirectory,
        registry: Optional[CategoryRegistry] = None,
    ):
        self._accounts = accounts
        self._registry = registry

    def _validate_schema(self, draft: TransactionDraft) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                suggested_fix="Enter the amount paid",
            ))
        elif not draft.amount.is_finite():
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be a finite number",
            ))
        elif draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                suggested_fix="Record refunds as income instead",
            ))

        if draft.transaction_date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Date is required",
                suggested_fix="Use the YYYY-MM-DD format",
            ))

        if isinstance(draft, TransferDraft):
            for field in ("from_account_id", "to_account_id"):
                if not getattr(draft, field):
                    issues.append(ValidationIssue(
                        field=field,
                        issue_type="missing",
                        message="Transfer needs both a source and a destination account",
                    ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        draft: TransactionDraft,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if isinstance(draft, TransferDraft):
            if draft.from_account_id == draft.to_account_id:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="same_account",
                    message="Transfer source and destination must differ",
                ))
            for field in ("from_account_id", "to_account_id"):
                issues.extend(self._check_account(field, getattr(draft, field)))

        elif isinstance(draft, IncomeDraft):
            if draft.account_id.strip().lower() == CARD_PAYMENT_METHOD:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="invalid_value",
                    message="Income cannot be received on a card",
                    suggested_fix="Choose cash or a bank account",
                ))
            else:
                issues.extend(self._check_account("account_id", draft.account_id))

        elif isinstance(draft, ExpenseDraft):
            issues.extend(self._check_account("account_id", draft.account_id))
            if (
                self._registry is not None
                and draft.category
                and draft.category not in self._registry
            ):
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="unknown_category",
                    message=f"Category {draft.category!r} is not registered",
                    severity="warning",
                    suggested_fix="It will be shown as uncategorized",
                ))

        if draft.transaction_date and draft.transaction_date > today:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({draft.transaction_date}) is in the future",
                severity="info",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _check_account(self, field: str, account_id: Optional[str]) -> list[ValidationIssue]:
        if not account_id or account_id in self._accounts:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="unknown_account",
            message=f"Account {account_id!r} does not exist",
            suggested_fix=f"Use one of: {', '.join(self._accounts.known_ids())}",
        )]

    def validate(
        self,
        draft: TransactionDraft,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage pipeline.

        Args:
            draft: The draft to validate
            today: Reference date for future-date checks (default: today)
        """
        schema_valid, issues = self._validate_schema(draft)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                draft, today or date.today()
            )
            issues.extend(semantic_issues)

        result = ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=issues,
        )
        if not result.is_valid:
            logger.info(
                "draft_invalid",
                draft_type=type(draft).__name__,
                errors=[f"{i.field}:{i.issue_type}" for i in result.errors],
            )
        return result

    def check(self, draft: TransactionDraft, today: Optional[date] = None) -> ValidationResult:
        """Validate and raise InvalidTransactionError on any error."""
        result = self.validate(draft, today)
        if not result.is_valid:
            raise InvalidTransactionError(result.issues)
        return result


def get_user_friendly_summary(result: ValidationResult) -> str:
    """A short human-readable account of a validation result."""
    if result.is_valid and not result.warnings:
        return "All checks passed."

    lines = []
    if result.errors:
        lines.append("This transaction cannot be saved:")
        for issue in result.errors:
            lines.append(f"  - {issue.message}")
            if issue.suggested_fix:
                lines.append(f"    ({issue.suggested_fix})")
    if result.warnings:
        lines.append("Please check:")
        for warning in result.warnings:
            lines.append(f"  - {warning}")
    return "\n".join(lines)
