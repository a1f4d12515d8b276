"""
In-memory document store implementation.

This module provides a simple in-memory store for:
- Unit tests
- Integration tests
- Embedding the archive engine without a database

Invariants:
    - All data is lost on process exit
    - A transaction works on a private copy of the committed data and
      publishes it in one assignment on commit
    - Writers are serialized with an asyncio lock
    - Reads without a transaction see committed data only

How to change safely:
    - Keep interface compatible with the Collection/DocumentStore protocols
    - Never hand out references to stored documents; always copy
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import uuid
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    TypeVar,
)

from ..errors import DuplicateDocumentError, StoreError, TransactionError
from .base import ID_FIELD, Document, Selector, Transaction, ensure_active
from .selector import matches, normalize_selector

logger = logging.getLogger(__name__)

T = TypeVar("T")

_Data = Dict[str, Dict[Any, Document]]

_txn_counter = itertools.count(1)


class MemoryTransaction:
    """Unit of work over a private copy of the store's data."""

    def __init__(self, store: InMemoryStore, data: _Data) -> None:
        self.store = store
        self.data = data
        self.txn_id = next(_txn_counter)
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def close(self) -> None:
        self._active = False

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"MemoryTransaction(id={self.txn_id}, {state})"


class InMemoryCollection:
    """Collection handle backed by an InMemoryStore."""

    def __init__(self, store: InMemoryStore, name: str) -> None:
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"InMemoryCollection({self._name!r})"

    def _documents(self, txn: Optional[Transaction]) -> Dict[Any, Document]:
        if txn is None:
            return self._store._committed.get(self._name, {})
        return self._store._transaction_data(txn).get(self._name, {})

    async def find(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> AsyncIterator[Document]:
        """Yield copies of matching documents in insertion order."""
        selector = normalize_selector(selector)
        documents = self._documents(txn)
        found = [copy.deepcopy(doc) for doc in list(documents.values()) if matches(doc, selector)]
        for doc in found:
            yield doc

    async def count(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        selector = normalize_selector(selector)
        return sum(1 for doc in self._documents(txn).values() if matches(doc, selector))

    async def insert_many(
        self,
        documents: Iterable[Document],
        txn: Optional[Transaction] = None,
    ) -> List[Any]:
        staged = [copy.deepcopy(dict(doc)) for doc in documents]
        return await self._store._write(txn, lambda data: self._insert(data, staged))

    async def insert_one(
        self,
        document: Document,
        txn: Optional[Transaction] = None,
    ) -> Any:
        ids = await self.insert_many([document], txn)
        return ids[0]

    async def delete_by_ids(
        self,
        ids: Iterable[Any],
        txn: Optional[Transaction] = None,
    ) -> int:
        targets = list(ids)
        return await self._store._write(txn, lambda data: self._delete(data, targets))

    def new_identifier(self) -> str:
        return str(uuid.uuid4())

    def _insert(self, data: _Data, documents: List[Document]) -> List[Any]:
        existing = data.get(self._name, {})
        staged: Dict[Any, Document] = {}

        for doc in documents:
            if doc.get(ID_FIELD) is None:
                doc[ID_FIELD] = self.new_identifier()
            doc_id = doc[ID_FIELD]
            try:
                hash(doc_id)
            except TypeError:
                raise StoreError(
                    f"Identifier {doc_id!r} is not hashable",
                    collection=self._name,
                )
            if doc_id in existing or doc_id in staged:
                raise DuplicateDocumentError(self._name, doc_id)
            staged[doc_id] = doc

        data.setdefault(self._name, {}).update(staged)
        return list(staged)

    def _delete(self, data: _Data, ids: List[Any]) -> int:
        documents = data.get(self._name)
        if not documents:
            return 0
        deleted = 0
        for doc_id in set(ids):
            if documents.pop(doc_id, None) is not None:
                deleted += 1
        return deleted


class InMemoryStore:
    """In-memory implementation of DocumentStore.

    Thread safety:
        Uses an asyncio lock to serialize transactions. Safe to use from
        multiple coroutines on one event loop. Calling a write without a
        transaction handle from inside with_transaction() would wait on the
        same lock; pass the handle instead.

    Example:
        >>> store = InMemoryStore()
        >>> things = store.collection("things")
        >>> await things.insert_one({"name": "test"})
        >>> await store.with_transaction(lambda txn: things.count({}, txn))
        1
    """

    def __init__(self) -> None:
        self._committed: _Data = {}
        self._collections: Dict[str, InMemoryCollection] = {}
        self._lock = asyncio.Lock()

    def collection(self, name: str) -> InMemoryCollection:
        if name not in self._collections:
            self._collections[name] = InMemoryCollection(self, name)
        return self._collections[name]

    def collection_names(self) -> List[str]:
        """Names of collections that currently hold documents."""
        return sorted(name for name, docs in self._committed.items() if docs)

    async def with_transaction(
        self,
        work: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        """Run `work` against a private copy and publish it on success."""
        async with self._lock:
            txn = MemoryTransaction(self, copy.deepcopy(self._committed))
            logger.debug("Transaction started", extra={"txn_id": txn.txn_id})
            try:
                result = await work(txn)
                self._commit(txn)
            except Exception as e:
                logger.warning(
                    f"Transaction {txn.txn_id} rolled back: {e}",
                    extra={"txn_id": txn.txn_id},
                )
                raise
            finally:
                txn.close()

        logger.debug("Transaction committed", extra={"txn_id": txn.txn_id})
        return result

    async def close(self) -> None:
        """Clear all data."""
        self._committed = {}
        self._collections.clear()

    def _commit(self, txn: MemoryTransaction) -> None:
        ensure_active(txn)
        self._committed = txn.data

    def _transaction_data(self, txn: Transaction) -> _Data:
        if not isinstance(txn, MemoryTransaction) or txn.store is not self:
            raise TransactionError("Transaction belongs to a different store")
        ensure_active(txn)
        return txn.data

    async def _write(
        self,
        txn: Optional[Transaction],
        apply: Callable[[_Data], T],
    ) -> T:
        if txn is not None:
            return apply(self._transaction_data(txn))

        async def work(implicit: Transaction) -> T:
            return apply(self._transaction_data(implicit))

        return await self.with_transaction(work)
