"""
Document store abstraction for docarchive.

This module provides a pluggable store interface supporting:
- SQLite (one file, all collections)
- In-memory (for testing and embedding)

The archive engine only depends on the Collection and DocumentStore
protocols; any backend that honors their atomicity contract can be used.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    ID_FIELD,
    Collection,
    Document,
    DocumentStore,
    Selector,
    Transaction,
    ensure_active,
    run_in_transaction,
)
from .memory import InMemoryStore
from .selector import matches, normalize_selector
from .sqlite import SqliteStore

if TYPE_CHECKING:
    from ..config import StorageConfig


def create_store(config: "StorageConfig") -> DocumentStore:
    """Factory function to create a document store from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend

    if config.backend == StoreBackend.SQLITE:
        return SqliteStore(
            config.db_path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    elif config.backend == StoreBackend.MEMORY:
        return InMemoryStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")


__all__ = [
    # Protocols and types
    "Collection",
    "Document",
    "DocumentStore",
    "Selector",
    "Transaction",
    "ID_FIELD",
    "ensure_active",
    "run_in_transaction",
    # Selectors
    "matches",
    "normalize_selector",
    # Factory
    "create_store",
    # Implementations
    "InMemoryStore",
    "SqliteStore",
]
