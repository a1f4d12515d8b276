"""
Restorer: moves archived documents back into their origin collection.

Within one transaction the restorer:
1. Reads archive entries whose `originCollection` is the target and that
   match the selector
2. Reverses the archive transform
3. Inserts the documents into the target collection in one bulk call
4. Permanently deletes the consumed archive entries by their archive ids

Insert runs before delete because the archive entry is the only standing
record until the insert succeeds.

Identifier handling:
    With `preserve_ids` (the default) a restored document gets its original
    identifier back. If that identifier was reused in the meantime the
    insert fails with DuplicateDocumentError and nothing is restored. With
    `preserve_ids` off the target collection assigns a fresh identifier.

Selectors:
    Selectors address the original document. An `id` condition, at the top
    level or inside `$and`/`$or`/`$nor`, refers to the original identifier
    (stored as `originalId`); archive-local ids are never addressable.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from ..config import ArchiveConfig, ConfigHolder, as_holder
from ..errors import ArchiveError, StoreError
from ..store.base import (
    ID_FIELD,
    Collection,
    DocumentStore,
    Selector,
    Transaction,
    run_in_transaction,
)
from ..store.selector import logical_clauses, normalize_selector
from .transform import ORIGIN_COLLECTION_FIELD, ORIGINAL_ID_FIELD, from_archived

logger = logging.getLogger(__name__)


def _address_original(selector: Dict[str, Any]) -> Dict[str, Any]:
    """Point every `id` condition, at any depth, at `originalId`."""
    clauses = []
    for key, condition in selector.items():
        if key in ("$and", "$or", "$nor"):
            condition = [_address_original(clause) for clause in logical_clauses(key, condition)]
        elif key == ID_FIELD:
            key = ORIGINAL_ID_FIELD
        clauses.append({key: condition})

    if len(clauses) == 1:
        return clauses[0]
    if not clauses:
        return {}
    return {"$and": clauses}


def scope_to_origin(origin: str, selector: Selector) -> Dict[str, Any]:
    """Restrict an archive selector to entries archived from `origin`.

    The origin constraint is always ANDed in, so a caller-supplied
    `originCollection` can narrow the match but never widen it.
    """
    origin_clause = {ORIGIN_COLLECTION_FIELD: origin}
    user = _address_original(normalize_selector(selector))
    if not user:
        return origin_clause
    return {"$and": [origin_clause, user]}


class Restorer:
    """Restores archived documents to their origin collection.

    Example:
        >>> restorer = Restorer(store)
        >>> await restorer.restore("things", {"name": "test"})
        2
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Union[ArchiveConfig, ConfigHolder, None] = None,
    ) -> None:
        self.store = store
        self._config = as_holder(config)

    @property
    def config(self) -> ArchiveConfig:
        return self._config.get()

    def _resolve(self, target: Union[Collection, str]) -> Collection:
        if isinstance(target, str):
            return self.store.collection(target)
        return target

    async def restore(
        self,
        target: Union[Collection, str],
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Move matching archive entries back into `target`.

        Args:
            target: Collection (or its name) the documents were archived from
            selector: Which archived documents to restore
            txn: Existing transaction to join; a new one is opened if None

        Returns:
            Number of documents restored

        Raises:
            ArchiveError: If `target` is the archive collection itself
            DuplicateDocumentError: If an original id is taken again
            StoreError: If the store fails (nothing is moved)
            TransactionError: If the commit fails (nothing is moved)
        """
        collection = self._resolve(target)
        config = self.config
        if collection.name == config.name:
            raise ArchiveError(
                f"Cannot restore into the archive collection '{config.name}'",
                code="INVALID_TARGET",
            )
        archive_collection = self.store.collection(config.name)
        scoped = scope_to_origin(collection.name, selector)

        async def work(t: Transaction) -> int:
            entries = [doc async for doc in archive_collection.find(scoped, t)]
            if not entries:
                return 0

            docs = [from_archived(entry, preserve_id=config.preserve_ids) for entry in entries]
            await collection.insert_many(docs, t)

            deleted = await archive_collection.delete_by_ids(
                [entry[ID_FIELD] for entry in entries], t
            )
            if deleted != len(entries):
                raise StoreError(
                    f"Expected to delete {len(entries)} archive entries, deleted {deleted}",
                    collection=archive_collection.name,
                )
            return len(entries)

        count = await run_in_transaction(self.store, work, txn)

        logger.info(
            f"Restored {count} document(s) from '{config.name}' into '{collection.name}'",
            extra={
                "collection": collection.name,
                "archive_collection": config.name,
                "count": count,
            },
        )
        return count
