"""
ArchiveEngine: the public face of docarchive.

Wires one DocumentStore, one ConfigHolder, an Archiver, a Restorer and a
DeletePolicy together and exposes:

- configure(): merge options into the live configuration
- archive() / restore(): the two transactional moves
- delete(): policy-routed delete
- collection(): an ArchivableCollection bound to this engine

Example:
    >>> engine = ArchiveEngine(InMemoryStore())
    >>> things = engine.collection("things")
    >>> await things.insert_many([{"name": "test"}, {"name": "test"}])
    >>> await engine.archive("things", {"name": "test"})
    2
    >>> await engine.restore("things", {"name": "test"})
    2
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .archive import Archiver, Restorer
from .config import ArchiveConfig, ConfigHolder, ConfigureOptions, Settings, as_holder
from .policy import ArchivableCollection, DeletePolicy
from .store import create_store
from .store.base import Collection, DocumentStore, Selector, Transaction

logger = logging.getLogger(__name__)


class ArchiveEngine:
    """Archive/restore engine over one document store.

    Attributes:
        store: Document store holding every collection
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Union[ArchiveConfig, ConfigHolder, None] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Document store
            config: Initial configuration, or a holder shared with others
            clock: Source of archival timestamps
        """
        self.store = store
        self._config = as_holder(config)
        self.archiver = Archiver(store, self._config, clock=clock)
        self.restorer = Restorer(store, self._config)
        self.policy = DeletePolicy(self._config)
        self._collections: Dict[str, ArchivableCollection] = {}

    @classmethod
    def from_env(cls) -> ArchiveEngine:
        """Build store and configuration from environment variables."""
        settings = Settings.from_env()
        return cls(create_store(settings.storage), settings.archive)

    @property
    def config(self) -> ArchiveConfig:
        """Current configuration."""
        return self._config.get()

    def configure(
        self,
        options: Union[Mapping[str, Any], ConfigureOptions, None] = None,
        **kwargs: Any,
    ) -> ArchiveConfig:
        """Merge options into the configuration and return the result.

        Accepts `name`, `overrideRemove`/`override_remove`, `exclude` and
        `preserveIds`/`preserve_ids`.

        Raises:
            ValidationError: If an option has the wrong shape; nothing changes
        """
        return self._config.configure(options, **kwargs)

    @property
    def archive_collection(self) -> Collection:
        """The collection archived documents currently go to."""
        return self.store.collection(self.config.name)

    def collection(self, name: str) -> ArchivableCollection:
        """Get an ArchivableCollection for `name`."""
        if name not in self._collections:
            self._collections[name] = ArchivableCollection(
                self.store,
                self.store.collection(name),
                self.archiver,
                self.restorer,
                self.policy,
            )
        return self._collections[name]

    def _unwrap(self, collection: Union[Collection, str]) -> Union[Collection, str]:
        if isinstance(collection, ArchivableCollection):
            return collection.inner
        return collection

    async def archive(
        self,
        collection: Union[Collection, str],
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Archive documents of `collection` matching `selector`."""
        return await self.archiver.archive(self._unwrap(collection), selector, txn)

    async def restore(
        self,
        collection: Union[Collection, str],
        selector: Selector = None,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Restore archived documents of `collection` matching `selector`."""
        return await self.restorer.restore(self._unwrap(collection), selector, txn)

    async def delete(
        self,
        collection: Union[Collection, str],
        selector: Selector = None,
        permanent: bool = False,
        txn: Optional[Transaction] = None,
    ) -> int:
        """Delete through the archive policy."""
        name = collection if isinstance(collection, str) else collection.name
        return await self.collection(name).delete(selector, permanent=permanent, txn=txn)

    async def close(self) -> None:
        self._collections.clear()
        await self.store.close()
