"""
Delete interception policy.

Instead of patching every collection's delete method, callers opt in by
using an ArchivableCollection. Its delete() asks the DeletePolicy whether
to archive or permanently delete, and returns a count either way.

Decision order for a delete on collection C:
    1. permanent=True                      -> PERMANENT
    2. C is the archive collection         -> PERMANENT
    3. C is in config.exclude              -> PERMANENT
    4. config.override_remove is False     -> PERMANENT
    5. otherwise                           -> ARCHIVE

Invariants:
    - The policy reads configuration at call time
    - delete() returns the number of affected documents in both modes
    - Permanent deletes never create archive entries
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, AsyncIterator, Iterable, List, Optional, Union

from .archive import Archiver, Restorer
from .archive.restorer import scope_to_origin
from .config import ArchiveConfig, ConfigHolder, as_holder
from .store.base import (
    ID_FIELD,
    Collection,
    Document,
    DocumentStore,
    Selector,
    Transaction,
    run_in_transaction,
)

logger = logging.getLogger(__name__)


class DeleteMode(Enum):
    """How a delete call is carried out."""

    ARCHIVE = "archive"
    PERMANENT = "permanent"


class DeletePolicy:
    """Decides whether a delete is intercepted."""

    def __init__(self, config: Union[ArchiveConfig, ConfigHolder, None] = None) -> None:
        self._config = as_holder(config)

    def mode_for(self, collection_name: str, permanent: bool = False) -> DeleteMode:
        config = self._config.get()
        if permanent:
            return DeleteMode.PERMANENT
        if collection_name == config.name or config.is_excluded(collection_name):
            return DeleteMode.PERMANENT
        if not config.override_remove:
            return DeleteMode.PERMANENT
        return DeleteMode.ARCHIVE


async def delete_permanently(
    store: DocumentStore,
    collection: Collection,
    selector: Selector = None,
    txn: Optional[Transaction] = None,
) -> int:
    """Delete every document matching `selector`, bypassing the archive."""

    async def work(t: Transaction) -> int:
        ids = [doc[ID_FIELD] async for doc in collection.find(selector, t)]
        if not ids:
            return 0
        return await collection.delete_by_ids(ids, t)

    count = await run_in_transaction(store, work, txn)
    logger.info(
        f"Permanently deleted {count} document(s) from '{collection.name}'",
        extra={"collection": collection.name, "count": count},
    )
    return count


class ArchivableCollection:
    """Collection wrapper whose delete() goes through the archive policy.

    All other Collection operations are forwarded unchanged, so an
    ArchivableCollection can be used wherever a Collection is expected.

    Example:
        >>> things = engine.collection("things")
        >>> await things.insert_one({"name": "test"})
        >>> await things.delete({"name": "test"})  # archived
        1
        >>> await things.restore({"name": "test"})
        1
        >>> await things.delete({"name": "test"}, permanent=True)
        1
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: Collection,
        archiver: Archiver,
        restorer: Restorer,
        policy: DeletePolicy,
    ) -> None:
        self._store = store
        self._inner = collection
        self._archiver = archiver
        self._restorer = restorer
        self._policy = policy

    @property
    def name(self) -> str:
        return self._inner.name

    @property
    def inner(self) -> Collection:
        """The wrapped collection."""
        return self._inner

    def __repr__(self) -> str:
        return f"ArchivableCollection({self._inner!r})"

    def find(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> AsyncIterator[Document]:
        return self._inner.find(selector, txn)

    async def fetch(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> List[Document]:
        """Matching documents as a list."""
        return [doc async for doc in self._inner.find(selector, txn)]

    async def count(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        return await self._inner.count(selector, txn)

    async def insert_many(
        self,
        documents: Iterable[Document],
        txn: Optional[Transaction] = None,
    ) -> List[Any]:
        return await self._inner.insert_many(documents, txn)

    async def insert_one(
        self,
        document: Document,
        txn: Optional[Transaction] = None,
    ) -> Any:
        return await self._inner.insert_one(document, txn)

    async def delete_by_ids(
        self,
        ids: Iterable[Any],
        txn: Optional[Transaction] = None,
    ) -> int:
        return await self._inner.delete_by_ids(ids, txn)

    def new_identifier(self) -> str:
        return self._inner.new_identifier()

    async def delete(
        self,
        selector: Selector = None,
        permanent: bool = False,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Delete matching documents, archiving them unless exempt.

        Args:
            selector: Which documents to delete
            permanent: Skip the archive regardless of configuration
            txn: Existing transaction to join

        Returns:
            Number of documents archived or deleted
        """
        mode = self._policy.mode_for(self.name, permanent)
        logger.debug(
            "Delete routed",
            extra={"collection": self.name, "mode": mode.value},
        )
        if mode is DeleteMode.ARCHIVE:
            return await self._archiver.archive(self._inner, selector, txn)
        return await delete_permanently(self._store, self._inner, selector, txn)

    async def archive(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Archive matching documents regardless of the delete policy."""
        return await self._archiver.archive(self._inner, selector, txn)

    async def restore(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Restore this collection's archived documents matching `selector`."""
        return await self._restorer.restore(self._inner, selector, txn)

    async def archived(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> List[Document]:
        """Archive entries that were removed from this collection."""
        archive_collection = self._store.collection(self._archiver.config.name)
        scoped = scope_to_origin(self.name, selector)
        return [doc async for doc in archive_collection.find(scoped, txn)]
