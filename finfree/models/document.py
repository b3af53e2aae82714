"""
The Configuration Document

Everything a user owns besides the transaction lists lives in one
document, read and written as a whole: integration settings, categories,
monthly budgets, balances and bank accounts.

DESIGN DECISION: The document is immutable. Every edit produces a new
document that shares every untouched part with the old one.
"""

from typing import Literal, Optional

from pydantic import Field

from finfree.models.balances import AccountBalances
from finfree.models.base import DocumentModel
from finfree.models.budget import CategoryDefinition, MonthlyBudget
from finfree.models.transactions import BankAccount


# Never leave the device
SENSITIVE_FIELDS = ("geminiKey", "sheetsUrl", "sheetsSecret")


def _seed_categories() -> list[CategoryDefinition]:
    from finfree.categories.defaults import DEFAULT_CATEGORIES
    return list(DEFAULT_CATEGORIES)


class ConfigDocument(DocumentModel):
    """A single user's configuration document."""

    gemini_key: str = ""
    sheets_url: str = ""
    sheets_secret: str = ""
    spreadsheet_id: Optional[str] = None

    categories: list[CategoryDefinition] = Field(default_factory=_seed_categories)
    budgets: dict[str, MonthlyBudget] = Field(default_factory=dict)
    balances: AccountBalances = Field(default_factory=AccountBalances)
    bank_accounts: list[BankAccount] = Field(default_factory=list)

    theme: Literal["dark", "light"] = "dark"

    def for_remote(self) -> dict:
        """
        Document shape safe to send to the sync backend.

        The API key, sheets URL and sync secret are blanked.
        """
        data = self.to_document()
        for key in SENSITIVE_FIELDS:
            data[key] = ""
        return data
