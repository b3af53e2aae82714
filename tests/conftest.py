"""Shared fixtures. No test talks to Google Sheets or Gemini."""

import itertools
from datetime import datetime, timezone

import pytest

from finfree.categories import DEFAULT_CATEGORIES, CategoryRegistry
from finfree.ledger import AccountDirectory
from finfree.models import BankAccount
from finfree.store import TransactionStore


FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def registry():
    return CategoryRegistry(DEFAULT_CATEGORIES)


@pytest.fixture
def accounts():
    return AccountDirectory([
        BankAccount(id="bank_main", name="Main Bank", is_default=True),
        BankAccount(id="bank_savings", name="Savings"),
    ])


@pytest.fixture
def store(registry, accounts):
    ids = itertools.count(1)
    return TransactionStore(
        registry,
        accounts,
        clock=lambda: FIXED_NOW,
        id_factory=lambda: f"tx-{next(ids)}",
    )
