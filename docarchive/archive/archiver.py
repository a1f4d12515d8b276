"""
Archiver: moves documents from a collection into the archive collection.

Within one transaction the archiver:
1. Reads the documents matching the selector
2. Builds their archived form (id renamed, provenance stamped)
3. Permanently deletes them from the source collection
4. Inserts the archived forms into the archive collection in one bulk call

Delete is ordered before insert so a document is never visible in both
collections, even under weak isolation. Atomicity comes from the
transaction, not from the ordering.

Invariants:
    - Either every matched document moves or none does
    - An empty match performs no writes and returns 0
    - The returned count equals the number of matched documents
    - Documents already carrying provenance fields are rejected
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from ..config import ArchiveConfig, ConfigHolder, as_holder
from ..errors import ArchiveError, ReservedFieldError, StoreError
from ..store.base import (
    ID_FIELD,
    Collection,
    DocumentStore,
    Selector,
    Transaction,
    run_in_transaction,
)
from ..store.selector import normalize_selector
from .transform import reserved_fields_in, to_archived

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Archiver:
    """Archives documents matching a selector.

    Attributes:
        store: Store holding both the source and the archive collection

    Example:
        >>> archiver = Archiver(store)
        >>> await archiver.archive("things", {"name": "test"})
        2
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Union[ArchiveConfig, ConfigHolder, None] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the archiver.

        Args:
            store: Document store
            config: Static config or a holder read at call time
            clock: Source of archival timestamps (defaults to UTC now)
        """
        self.store = store
        self._config = as_holder(config)
        self._clock = clock or utcnow

    @property
    def config(self) -> ArchiveConfig:
        return self._config.get()

    def _resolve(self, source: Union[Collection, str]) -> Collection:
        if isinstance(source, str):
            return self.store.collection(source)
        return source

    async def archive(
        self,
        source: Union[Collection, str],
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Move matching documents from `source` into the archive collection.

        Args:
            source: Collection (or its name) to archive from
            selector: Which documents to archive
            txn: Existing transaction to join; a new one is opened if None

        Returns:
            Number of documents archived

        Raises:
            ArchiveError: If `source` is the archive collection itself
            ReservedFieldError: If a matched document uses a provenance field
            StoreError: If the store fails (nothing is moved)
            TransactionError: If the commit fails (nothing is moved)
        """
        collection = self._resolve(source)
        config = self.config
        if collection.name == config.name:
            raise ArchiveError(
                f"Cannot archive from the archive collection '{config.name}'",
                code="INVALID_SOURCE",
            )
        archive_collection = self.store.collection(config.name)
        selector = normalize_selector(selector)

        async def work(t: Transaction) -> int:
            docs = [doc async for doc in collection.find(selector, t)]
            if not docs:
                return 0

            archived_at = self._clock()
            archived = []
            for doc in docs:
                reserved = reserved_fields_in(doc)
                if reserved:
                    raise ReservedFieldError(collection.name, doc.get(ID_FIELD), reserved)
                archived.append(
                    to_archived(
                        doc,
                        collection.name,
                        archive_collection.new_identifier(),
                        archived_at,
                    )
                )

            deleted = await collection.delete_by_ids([doc[ID_FIELD] for doc in docs], t)
            if deleted != len(docs):
                raise StoreError(
                    f"Expected to delete {len(docs)} document(s), deleted {deleted}",
                    collection=collection.name,
                )
            await archive_collection.insert_many(archived, t)
            return len(docs)

        count = await run_in_transaction(self.store, work, txn)

        logger.info(
            f"Archived {count} document(s) from '{collection.name}' into '{config.name}'",
            extra={
                "collection": collection.name,
                "archive_collection": config.name,
                "count": count,
            },
        )
        return count
