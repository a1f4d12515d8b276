"""
Provenance tagging for archived documents.

Archived form of a document:
    - `id` moves to `originalId`
    - `id` is a fresh identifier owned by the archive collection
    - `originCollection` names the collection it was removed from
    - `archivedAt` records when it was archived

Invariants:
    - from_archived(to_archived(doc, ...)) equals doc on every field but `id`
    - The archive-local `id` never appears in a restored document
    - Reserved fields are never overwritten; callers must reject documents
      that already carry them
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from ..store.base import ID_FIELD, Document

ORIGINAL_ID_FIELD = "originalId"
ORIGIN_COLLECTION_FIELD = "originCollection"
ARCHIVED_AT_FIELD = "archivedAt"

RESERVED_FIELDS = (ORIGINAL_ID_FIELD, ORIGIN_COLLECTION_FIELD, ARCHIVED_AT_FIELD)


def reserved_fields_in(document: Document) -> List[str]:
    """Reserved field names present on `document`, in a stable order."""
    return [name for name in RESERVED_FIELDS if name in document]


def to_archived(
    document: Document,
    origin: str,
    archive_id: Any,
    archived_at: datetime,
) -> Document:
    """Build the archived form of `document`.

    Args:
        document: Document as stored in its origin collection
        origin: Name of the origin collection
        archive_id: Identifier issued by the archive collection
        archived_at: Archival timestamp

    Returns:
        New document; `document` is not modified
    """
    archived: Dict[str, Any] = {ID_FIELD: archive_id}
    archived.update((key, value) for key, value in document.items() if key != ID_FIELD)
    archived[ORIGINAL_ID_FIELD] = document.get(ID_FIELD)
    archived[ORIGIN_COLLECTION_FIELD] = origin
    archived[ARCHIVED_AT_FIELD] = archived_at
    return archived


def from_archived(archived: Document, preserve_id: bool = True) -> Document:
    """Reverse to_archived().

    With `preserve_id` the original identifier becomes `id` again; otherwise
    the document is returned without an `id` so the origin collection
    assigns a new one.
    """
    document: Dict[str, Any] = {}
    original_id = archived.get(ORIGINAL_ID_FIELD)
    if preserve_id and original_id is not None:
        document[ID_FIELD] = original_id
    document.update(
        (key, value)
        for key, value in archived.items()
        if key != ID_FIELD and key not in RESERVED_FIELDS
    )
    return document
