"""
Receipt Extraction Models

CRITICAL: A ReceiptExtraction is PROPOSED data, NOT verified.
It becomes an ExpenseDraft and must still be confirmed by the user
before the Transaction Store will accept it.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finfree.models.transactions import ExpenseType


class ExtractionConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class ReceiptItem(BaseModel):
    """A line on a receipt."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., max_length=200)
    price: Decimal = Field(..., allow_inf_nan=False)


class ReceiptExtraction(BaseModel):
    """
    What the extraction collaborator thinks the receipt says.

    `date` is kept as the raw string; it is only used when it is a valid
    `YYYY-MM-DD` date.
    """

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    store: str = Field(default="", max_length=200)
    date: Optional[str] = None
    time: Optional[str] = None
    total: Decimal = Field(..., ge=0, allow_inf_nan=False)
    items: list[ReceiptItem] = Field(default_factory=list)
    confidence: ExtractionConfidence = ExtractionConfidence.LOW
    suggested_category: Optional[str] = Field(default=None, alias="suggestedCategory")
    suggested_type: Optional[ExpenseType] = Field(default=None, alias="suggestedType")

    @field_validator("confidence", mode="before")
    @classmethod
    def lenient_confidence(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in {c.value for c in ExtractionConfidence}:
                return ExtractionConfidence.LOW
        return v

    @field_validator("suggested_type", mode="before")
    @classmethod
    def drop_unknown_type(cls, v: Any) -> Any:
        """The model sometimes invents types; treat those as no suggestion."""
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in {t.value for t in ExpenseType}:
                return None
        return v

    @field_validator("suggested_category", mode="before")
    @classmethod
    def normalize_category(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    def itemized_notes(self, currency_symbol: str = "") -> str:
        """Render items as one `name: price` line each."""
        return "\n".join(
            f"{item.name}: {currency_symbol}{item.price}" for item in self.items
        )
