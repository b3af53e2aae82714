"""Append-mostly transaction storage with sync-state tracking."""

from finfree.store.transactions import (
    DRAFT_TYPES,
    RECORD_TYPES,
    LoadResult,
    MergeResult,
    TransactionStore,
    kind_of,
)

__all__ = [
    "DRAFT_TYPES",
    "RECORD_TYPES",
    "LoadResult",
    "MergeResult",
    "TransactionStore",
    "kind_of",
]
