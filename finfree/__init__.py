"""
FinFree - Source Package

Personal ledger core: expenses, income and transfers between accounts,
monthly category budgets, and reconciled running balances.

DESIGN PRINCIPLES:
1. Balances are derived, never stored as truth
2. Records are append-only; only the sync flag ever changes
3. Legacy data is migrated once, at load time
4. Budget input is permissive (clamped), transaction input is strict
5. External services (receipt extraction, sync) stay behind interfaces
"""

__version__ = "1.0.0"
__author__ = "FinFree Team"
