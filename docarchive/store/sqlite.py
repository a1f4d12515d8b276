"""
SQLite document store for docarchive.

All collections live in one SQLite file, one row per document:

    documents:
        - collection TEXT
        - doc_id TEXT (JSON-encoded identifier)
        - body_json TEXT (JSON-encoded document)
        - created_at INTEGER (Unix ms)
        - PRIMARY KEY (collection, doc_id)

Invariants:
    - Every write runs inside BEGIN IMMEDIATE ... COMMIT
    - Writers in this process are serialized by an asyncio lock, writers
      in other processes by SQLite's reserved lock
    - datetime values survive a round trip (tagged as {"$date": iso})
    - Mappings with "$"-prefixed keys are wrapped as {"$literal": {...}}
      so user data is never read back as a tag
    - sqlite3 errors surface as StoreError, failed commits as TransactionError

How to change safely:
    - Schema migrations must be backward compatible
    - Keep the body encoding reversible for every type archive writes
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
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
    TypeVar,
)

from ..errors import DuplicateDocumentError, StoreError, TransactionError
from .base import ID_FIELD, Document, Selector, Transaction, ensure_active
from .selector import matches, normalize_selector

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite's default host parameter limit is 999
_DELETE_CHUNK = 500

_txn_counter = itertools.count(1)


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    if isinstance(value, Mapping):
        encoded = {key: _encode(item) for key, item in value.items()}
        if any(isinstance(key, str) and key.startswith("$") for key in value):
            # User keys that could read as a tag
            return {"$literal": encoded}
        return encoded
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and "$date" in value:
            return datetime.fromisoformat(value["$date"])
        if len(value) == 1 and "$literal" in value:
            return {key: _decode(item) for key, item in value["$literal"].items()}
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    return value


def _dumps(value: Any, collection: str) -> str:
    try:
        return json.dumps(_encode(value), sort_keys=True)
    except (TypeError, ValueError) as e:
        raise StoreError(f"Document is not JSON serializable: {e}", collection=collection) from e


class SqliteTransaction:
    """Unit of work bound to one open SQLite connection."""

    def __init__(self, store: SqliteStore, conn: sqlite3.Connection) -> None:
        self.store = store
        self.conn = conn
        self.txn_id = next(_txn_counter)
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def close(self) -> None:
        self._active = False

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"SqliteTransaction(id={self.txn_id}, {state})"


class SqliteCollection:
    """Collection handle backed by a SqliteStore."""

    def __init__(self, store: SqliteStore, name: str) -> None:
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"SqliteCollection({self._name!r})"

    def _select(self, conn: sqlite3.Connection) -> sqlite3.Cursor:
        return self._store._execute(
            conn,
            "SELECT body_json FROM documents WHERE collection = ? ORDER BY rowid",
            (self._name,),
            collection=self._name,
        )

    async def find(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> AsyncIterator[Document]:
        """Yield matching documents in insertion order."""
        selector = normalize_selector(selector)

        if txn is not None:
            conn = self._store._transaction_conn(txn)
            for row in self._select(conn):
                doc = _decode(json.loads(row["body_json"]))
                if matches(doc, selector):
                    yield doc
            return

        with self._store._get_connection() as conn:
            rows = self._select(conn).fetchall()
        for row in rows:
            doc = _decode(json.loads(row["body_json"]))
            if matches(doc, selector):
                yield doc

    async def count(
        self,
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        total = 0
        async for _ in self.find(selector, txn):
            total += 1
        return total

    async def insert_many(
        self,
        documents: Iterable[Document],
        txn: Optional[Transaction] = None,
    ) -> List[Any]:
        staged = [dict(doc) for doc in documents]
        return await self._store._write(txn, lambda conn: self._insert(conn, staged))

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
        return await self._store._write(txn, lambda conn: self._delete(conn, targets))

    def new_identifier(self) -> str:
        return str(uuid.uuid4())

    def _insert(self, conn: sqlite3.Connection, documents: List[Document]) -> List[Any]:
        now = int(time.time() * 1000)
        ids = []
        for doc in documents:
            if doc.get(ID_FIELD) is None:
                doc[ID_FIELD] = self.new_identifier()
            doc_id = doc[ID_FIELD]
            try:
                conn.execute(
                    """
                    INSERT INTO documents (collection, doc_id, body_json, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (self._name, _dumps(doc_id, self._name), _dumps(doc, self._name), now),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateDocumentError(self._name, doc_id) from e
            except sqlite3.Error as e:
                raise StoreError(f"Insert failed: {e}", collection=self._name) from e
            ids.append(doc_id)

        logger.debug(
            "Inserted documents",
            extra={"collection": self._name, "count": len(ids)},
        )
        return ids

    def _delete(self, conn: sqlite3.Connection, ids: List[Any]) -> int:
        keys = sorted({_dumps(doc_id, self._name) for doc_id in ids})
        deleted = 0
        for start in range(0, len(keys), _DELETE_CHUNK):
            chunk = keys[start : start + _DELETE_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = self._store._execute(
                conn,
                f"DELETE FROM documents WHERE collection = ? AND doc_id IN ({placeholders})",
                (self._name, *chunk),
                collection=self._name,
            )
            deleted += cursor.rowcount

        logger.debug(
            "Deleted documents",
            extra={"collection": self._name, "count": deleted},
        )
        return deleted


class SqliteStore:
    """SQLite implementation of DocumentStore.

    Thread safety:
        Each transaction gets its own connection. In-process writers are
        serialized with an asyncio lock; calling a write without a handle
        from inside with_transaction() would wait on that lock, so pass
        the handle instead.

    Example:
        >>> store = SqliteStore("/var/lib/docarchive/docs.db")
        >>> things = store.collection("things")
        >>> await things.insert_one({"name": "test"})
    """

    # SQLite schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str | Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: SQLite database file (created on first use)
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._collections: Dict[str, SqliteCollection] = {}
        self._schema_ready = False
        self._lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, creating the schema on first use.

        Yields:
            SQLite connection in autocommit mode

        Raises:
            StoreError: If the database cannot be opened
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row

        try:
            self._execute(conn, f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                self._execute(conn, "PRAGMA journal_mode = WAL")
            self._execute(conn, "PRAGMA synchronous = NORMAL")
            if not self._schema_ready:
                self._create_schema(conn)
                self._schema_ready = True

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    body_json TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                );

                CREATE INDEX IF NOT EXISTS idx_documents_collection
                    ON documents(collection, created_at);

                INSERT OR IGNORE INTO schema_version (version, applied_at)
                VALUES (1, strftime('%s', 'now') * 1000);
            """)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot create schema in {self.db_path}: {e}") from e
        logger.info(f"Initialized document store: {self.db_path}")

    def _execute(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: tuple = (),
        collection: str | None = None,
    ) -> sqlite3.Cursor:
        try:
            return conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}", collection=collection) from e

    def _rollback(self, conn: sqlite3.Connection, txn_id: int) -> None:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # Closing the connection discards the transaction regardless
            logger.error(f"Rollback of transaction {txn_id} failed: {e}")

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        async with self._lock:
            with self._get_connection():
                pass

    def collection(self, name: str) -> SqliteCollection:
        if name not in self._collections:
            self._collections[name] = SqliteCollection(self, name)
        return self._collections[name]

    def collection_names(self) -> List[str]:
        """Names of collections that currently hold documents."""
        with self._get_connection() as conn:
            cursor = self._execute(
                conn, "SELECT DISTINCT collection FROM documents ORDER BY collection"
            )
            return [row[0] for row in cursor.fetchall()]

    async def with_transaction(
        self,
        work: Callable[[Transaction], Awaitable[T]],
    ) -> T:
        """Run `work` inside BEGIN IMMEDIATE and commit if it returns.

        Raises:
            TransactionError: If COMMIT fails; nothing is applied
        """
        async with self._lock:
            with self._get_connection() as conn:
                self._execute(conn, "BEGIN IMMEDIATE")
                txn = SqliteTransaction(self, conn)
                logger.debug("Transaction started", extra={"txn_id": txn.txn_id})

                try:
                    try:
                        result = await work(txn)
                    except Exception as e:
                        self._rollback(conn, txn.txn_id)
                        logger.warning(
                            f"Transaction {txn.txn_id} rolled back: {e}",
                            extra={"txn_id": txn.txn_id},
                        )
                        raise

                    try:
                        conn.execute("COMMIT")
                    except sqlite3.Error as e:
                        self._rollback(conn, txn.txn_id)
                        raise TransactionError(
                            f"Commit of transaction {txn.txn_id} failed: {e}"
                        ) from e
                finally:
                    txn.close()

        logger.debug("Transaction committed", extra={"txn_id": txn.txn_id})
        return result

    async def close(self) -> None:
        """Forget collection handles (connections are per operation)."""
        self._collections.clear()

    def _transaction_conn(self, txn: Transaction) -> sqlite3.Connection:
        if not isinstance(txn, SqliteTransaction) or txn.store is not self:
            raise TransactionError("Transaction belongs to a different store")
        ensure_active(txn)
        return txn.conn

    async def _write(
        self,
        txn: Optional[Transaction],
        apply: Callable[[sqlite3.Connection], T],
    ) -> T:
        if txn is not None:
            return apply(self._transaction_conn(txn))

        async def work(implicit: Transaction) -> T:
            return apply(self._transaction_conn(implicit))

        return await self.with_transaction(work)
