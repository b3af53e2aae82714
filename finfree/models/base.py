"""
Shared model configuration.

Every persisted entity is read from and written to the user's document in
camelCase (`asOfDate`, `isDefault`, ...) while Python code uses snake_case.
Both spellings are accepted on input.
"""

import re
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class DocumentModel(BaseModel):
    """Immutable model stored in the configuration document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    def to_document(self) -> dict:
        """Serialize in document (camelCase, JSON-safe) shape."""
        return self.model_dump(mode="json", by_alias=True)


def strict_iso_date(value: Any) -> Any:
    """
    Only accept `YYYY-MM-DD` strings for transaction dates.

    Pydantic on its own would also accept timestamps and datetime strings.
    Non-string values (date objects) pass through untouched.
    """
    if isinstance(value, str):
        value = value.strip()
        if not ISO_DATE_PATTERN.match(value):
            raise ValueError(f"Date must be in YYYY-MM-DD format, got {value!r}")
        date.fromisoformat(value)
    return value
