"""
Configuration management for docarchive.

Configuration is held in frozen dataclasses that are threaded into the
archiver, restorer and delete policy at construction time. Runtime
reconfiguration goes through ConfigHolder, which validates options with
pydantic and swaps in a new frozen config under a lock.

Invariants:
    - ArchiveConfig instances are immutable
    - configure() either applies every option or none of them
    - Components read the holder at call time, so a change applies to the
      next archive/restore/delete call
    - Concurrent configure() calls are last-write-wins

How to change safely:
    - Add new settings with defaults that keep current behavior
    - Mirror every new ArchiveConfig field in ConfigureOptions and from_env()
"""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_COLLECTION = "archives"
DEFAULT_EXCLUDED_COLLECTIONS = ("roles", "role-assignment")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.getenv(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(env_name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(env_name)
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class ArchiveConfig:
    """Archive behavior configuration.

    Attributes:
        name: Name of the archive collection
        override_remove: Route ordinary deletes through archive
        exclude: Collection names whose deletes are always permanent
        preserve_ids: Re-insert restored documents with their original id
    """

    name: str = DEFAULT_ARCHIVE_COLLECTION
    override_remove: bool = True
    exclude: tuple[str, ...] = DEFAULT_EXCLUDED_COLLECTIONS
    preserve_ids: bool = True

    @classmethod
    def from_env(cls) -> ArchiveConfig:
        """Load configuration from environment variables."""
        return cls(
            name=os.getenv("DOCARCHIVE_COLLECTION", DEFAULT_ARCHIVE_COLLECTION),
            override_remove=_get_bool("DOCARCHIVE_OVERRIDE_REMOVE", True),
            exclude=_get_list("DOCARCHIVE_EXCLUDE", DEFAULT_EXCLUDED_COLLECTIONS),
            preserve_ids=_get_bool("DOCARCHIVE_PRESERVE_IDS", True),
        )

    def merged(self, options: ConfigureOptions) -> ArchiveConfig:
        """Return a copy with every option that was explicitly given applied."""
        changes = options.model_dump(exclude_none=True)
        if "exclude" in changes:
            changes["exclude"] = tuple(changes["exclude"])
        return dataclasses.replace(self, **changes)

    def is_excluded(self, collection_name: str) -> bool:
        return collection_name in self.exclude


class ConfigureOptions(BaseModel):
    """Options accepted by configure().

    Both the camelCase names (`overrideRemove`) and the snake_case field
    names are accepted. Types are checked strictly, so `"false"` is not a
    boolean and `1` is not a name.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, strict=True)

    name: str | None = Field(default=None, min_length=1, description="Archive collection name")
    override_remove: bool | None = Field(
        default=None,
        alias="overrideRemove",
        description="Route ordinary deletes through archive",
    )
    exclude: list[str] | tuple[str, ...] | None = Field(
        default=None,
        description="Collections that always delete permanently",
    )
    preserve_ids: bool | None = Field(
        default=None,
        alias="preserveIds",
        description="Restore documents under their original id",
    )


def validate_options(
    options: Mapping[str, Any] | ConfigureOptions | None = None,
    **kwargs: Any,
) -> ConfigureOptions:
    """Validate configure() input.

    Args:
        options: Mapping of options (or an already validated model)
        **kwargs: Options given as keyword arguments, merged over `options`

    Returns:
        Validated ConfigureOptions

    Raises:
        ValidationError: If any option has the wrong shape
    """
    if isinstance(options, ConfigureOptions) and not kwargs:
        return options

    if options is None:
        raw: dict[str, Any] = {}
    elif isinstance(options, ConfigureOptions):
        raw = options.model_dump(exclude_none=True)
    elif isinstance(options, Mapping):
        raw = dict(options)
    else:
        raise ValidationError(
            f"Configuration options must be a mapping, got {type(options).__name__}",
            errors=["options: must be a mapping"],
        )
    raw.update(kwargs)

    try:
        return ConfigureOptions.model_validate(raw)
    except PydanticValidationError as e:
        errors = []
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"])
            errors.append(f"{location}: {err['msg']}")
        first = e.errors()[0]["loc"]
        raise ValidationError(
            "Invalid archive configuration: " + "; ".join(errors),
            field_name=str(first[0]) if first else None,
            errors=errors,
        ) from e


class ConfigHolder:
    """Thread-safe container for the current ArchiveConfig.

    Example:
        >>> holder = ConfigHolder()
        >>> holder.configure({"name": "trash", "exclude": ["sessions"]})
        ArchiveConfig(name='trash', override_remove=True, exclude=('sessions',), preserve_ids=True)
    """

    def __init__(self, config: ArchiveConfig | None = None) -> None:
        self._config = config or ArchiveConfig()
        self._lock = threading.Lock()

    def get(self) -> ArchiveConfig:
        """Current configuration."""
        return self._config

    def set(self, config: ArchiveConfig) -> None:
        """Replace the configuration wholesale."""
        with self._lock:
            self._config = config

    def configure(
        self,
        options: Mapping[str, Any] | ConfigureOptions | None = None,
        **kwargs: Any,
    ) -> ArchiveConfig:
        """Merge options into the current configuration.

        Returns:
            The resulting configuration

        Raises:
            ValidationError: If options are invalid; the configuration is
                left unchanged
        """
        validated = validate_options(options, **kwargs)
        with self._lock:
            self._config = self._config.merged(validated)
            config = self._config

        logger.info(
            "Archive configuration updated",
            extra={
                "archive_collection": config.name,
                "override_remove": config.override_remove,
                "exclude": list(config.exclude),
            },
        )
        return config


def as_holder(config: ArchiveConfig | ConfigHolder | None) -> ConfigHolder:
    """Wrap a plain config (or nothing) in a ConfigHolder."""
    if isinstance(config, ConfigHolder):
        return config
    return ConfigHolder(config)


class StoreBackend(Enum):
    """Supported document store backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


@dataclass(frozen=True)
class StorageConfig:
    """Document store configuration.

    Attributes:
        backend: Which store implementation to use
        db_path: SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend = StoreBackend.SQLITE
    db_path: str = "docarchive.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("DOCARCHIVE_BACKEND", "sqlite").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid DOCARCHIVE_BACKEND '{backend_str}'. Must be one of: sqlite, memory"
            )
        return cls(
            backend=backend,
            db_path=os.getenv("DOCARCHIVE_DB_PATH", "docarchive.db"),
            wal_mode=_get_bool("DOCARCHIVE_WAL_MODE", True),
            busy_timeout_ms=int(os.getenv("DOCARCHIVE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> LoggingConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class Settings:
    """Complete configuration for tools that build their own engine.

    Attributes:
        archive: Archive behavior
        storage: Document store
        logging: Logging output
    """

    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> Settings:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        settings = cls(
            archive=ArchiveConfig.from_env(),
            storage=StorageConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.archive.name:
            raise ValueError("DOCARCHIVE_COLLECTION must not be empty")
        if self.archive.name in self.archive.exclude:
            logger.warning(
                f"Archive collection '{self.archive.name}' is listed in DOCARCHIVE_EXCLUDE; "
                "deletes from it are always permanent anyway."
            )
        if self.storage.backend == StoreBackend.SQLITE and not self.storage.db_path:
            raise ValueError("DOCARCHIVE_DB_PATH is required when DOCARCHIVE_BACKEND=sqlite")
