"""
docarchive - soft delete for document collections.

Instead of permanently deleting documents, archive() moves them into an
archive collection, tagged with where they came from and when; restore()
moves them back. Both moves are single transactions: every matched
document moves or none does.

Architecture:
    ┌──────────────────────┐
    │ ArchivableCollection │── delete() ──▶ DeletePolicy
    └──────────┬───────────┘                    │
               │                  ARCHIVE ◀─────┴────▶ PERMANENT
               ▼                     │                     │
    ┌──────────────────────┐         ▼                     ▼
    │    ArchiveEngine     │──▶ Archiver / Restorer   delete_by_ids
    └──────────┬───────────┘         │
               ▼                     ▼
    ┌──────────────────────────────────────────┐
    │  DocumentStore.with_transaction(work)    │
    │  (SqliteStore, InMemoryStore)            │
    └──────────────────────────────────────────┘

Invariants:
    - A document is never in its origin collection and the archive at once
    - Restored documents equal the originals on every field but `id`
    - Archive-local identifiers never leak into restored documents
    - `originalId`, `originCollection` and `archivedAt` are reserved
"""

from ._version import __version__
from .archive import Archiver, Restorer
from .config import ArchiveConfig, ConfigHolder, ConfigureOptions
from .engine import ArchiveEngine
from .errors import (
    ArchiveError,
    DuplicateDocumentError,
    ReservedFieldError,
    SelectorError,
    StoreError,
    TransactionError,
    ValidationError,
)
from .policy import ArchivableCollection, DeleteMode, DeletePolicy
from .store import InMemoryStore, SqliteStore

__all__ = [
    "__version__",
    # Engine
    "ArchiveEngine",
    "ArchivableCollection",
    "Archiver",
    "Restorer",
    "DeleteMode",
    "DeletePolicy",
    # Configuration
    "ArchiveConfig",
    "ConfigHolder",
    "ConfigureOptions",
    # Stores
    "InMemoryStore",
    "SqliteStore",
    # Errors
    "ArchiveError",
    "DuplicateDocumentError",
    "ReservedFieldError",
    "SelectorError",
    "StoreError",
    "TransactionError",
    "ValidationError",
]
