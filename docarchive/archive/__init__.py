"""
Archive and restore transactions.

This module provides:
- Archiver: move documents into the archive collection
- Restorer: move archived documents back to their origin collection
- transform: the provenance tagging both directions share
"""

from .archiver import Archiver
from .restorer import Restorer, scope_to_origin
from .transform import (
    ARCHIVED_AT_FIELD,
    ORIGIN_COLLECTION_FIELD,
    ORIGINAL_ID_FIELD,
    RESERVED_FIELDS,
    from_archived,
    reserved_fields_in,
    to_archived,
)

__all__ = [
    "Archiver",
    "Restorer",
    "scope_to_origin",
    "ARCHIVED_AT_FIELD",
    "ORIGIN_COLLECTION_FIELD",
    "ORIGINAL_ID_FIELD",
    "RESERVED_FIELDS",
    "from_archived",
    "reserved_fields_in",
    "to_archived",
]
