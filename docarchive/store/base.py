"""
Base protocols and types for the document store abstraction.

The archive engine never talks to a concrete database. It consumes a
DocumentStore that hands out Collections and runs units of work inside
transactions. Every store operation takes an optional Transaction handle so
the unit-of-work boundary is visible in the call signatures.

Invariants:
    - Every stored document has an `id` key unique within its collection
    - Writes made with a transaction handle become visible only on commit
    - If the work passed to with_transaction() raises, none of its writes
      are observable and the exception propagates unchanged
    - A transaction handle cannot be used after its transaction ends

How to change safely:
    - Protocol changes require updating every store implementation
    - Keep find() free of side effects; archive/restore re-read freely
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    TypeVar,
    Union,
    runtime_checkable,
)

from ..errors import TransactionError

ID_FIELD = "id"

Document = Dict[str, Any]
Selector = Union[Mapping[str, Any], str, None]

T = TypeVar("T")


@runtime_checkable
class Transaction(Protocol):
    """Handle for one unit of work.

    Store operations that receive a handle perform their reads and writes
    inside that unit of work.
    """

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """Whether the transaction can still be used."""
        ...


def ensure_active(txn: Transaction) -> None:
    """Raise TransactionError if `txn` has already committed or rolled back."""
    if not txn.is_active:
        raise TransactionError("Transaction is no longer active")


@runtime_checkable
class Collection(Protocol):
    """Protocol for a named set of documents.

    Example:
        >>> things = store.collection("things")
        >>> await things.insert_one({"name": "test"})
        >>> async for doc in things.find({"name": "test"}):
        ...     print(doc["id"])
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Collection name."""
        ...

    @abstractmethod
    def find(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> AsyncIterator[Document]:
        """Yield copies of the documents matching `selector`.

        Restartable and free of side effects.

        Raises:
            SelectorError: If the selector is malformed
            StoreError: If the read fails
        """
        ...

    @abstractmethod
    async def insert_many(
        self,
        documents: Iterable[Document],
        txn: Optional[Transaction] = None,
    ) -> List[Any]:
        """Insert documents as one bulk operation.

        Documents without an `id` get one from new_identifier().

        Returns:
            Identifiers of the inserted documents, in order

        Raises:
            DuplicateDocumentError: If an identifier is already taken
            StoreError: If the write fails
        """
        ...

    @abstractmethod
    async def insert_one(
        self,
        document: Document,
        txn: Optional[Transaction] = None,
    ) -> Any:
        """Insert a single document and return its identifier."""
        ...

    @abstractmethod
    async def delete_by_ids(
        self,
        ids: Iterable[Any],
        txn: Optional[Transaction] = None,
    ) -> int:
        """Permanently delete documents by identifier.

        Returns:
            Number of documents deleted

        Raises:
            StoreError: If the delete fails
        """
        ...

    @abstractmethod
    async def count(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Number of documents matching `selector`."""
        ...

    @abstractmethod
    def new_identifier(self) -> str:
        """Generate a fresh identifier unique within this collection."""
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    Atomicity contract:
        with_transaction(work) calls `work(txn)`. If `work` returns, every
        write made with `txn` is committed atomically. If `work` raises, the
        writes are discarded and the exception propagates. A failed commit
        raises TransactionError with nothing applied.

    Isolation contract:
        Writers are serialized, so two units of work never interleave their
        writes. Reads without a transaction only see committed data.
    """

    @abstractmethod
    def collection(self, name: str) -> Collection:
        """Get a handle to the named collection (created on first write)."""
        ...

    @abstractmethod
    async def with_transaction(
        self,
        work: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        """Run `work` inside a transaction and return its result."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by the store."""
        ...


async def run_in_transaction(
    store: DocumentStore,
    work: Callable[[Transaction], Awaitable[T]],
    txn: Optional[Transaction] = None,
) -> T:
    """Run `work` in `txn` if given, otherwise in a new transaction of `store`."""
    if txn is None:
        return await store.with_transaction(work)
    ensure_active(txn)
    return await work(txn)
