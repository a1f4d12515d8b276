"""
Unit tests for configuration.

Tests cover:
- ArchiveConfig defaults and environment loading
- configure() validation and merging
- StorageConfig and Settings validation
"""

import pytest

from docarchive.config import (
    ArchiveConfig,
    ConfigHolder,
    ConfigureOptions,
    LoggingConfig,
    Settings,
    StorageConfig,
    StoreBackend,
    validate_options,
)
from docarchive.errors import ArchiveError, ValidationError


class TestArchiveConfig:
    """Tests for ArchiveConfig."""

    def test_defaults(self):
        """Defaults archive into 'archives' and exclude role collections."""
        config = ArchiveConfig()
        assert config.name == "archives"
        assert config.override_remove is True
        assert config.exclude == ("roles", "role-assignment")
        assert config.preserve_ids is True

    def test_is_excluded(self):
        config = ArchiveConfig(exclude=("sessions",))
        assert config.is_excluded("sessions")
        assert not config.is_excluded("roles")

    def test_from_env(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("DOCARCHIVE_COLLECTION", "trash")
        monkeypatch.setenv("DOCARCHIVE_OVERRIDE_REMOVE", "false")
        monkeypatch.setenv("DOCARCHIVE_EXCLUDE", "sessions, tokens,")
        monkeypatch.setenv("DOCARCHIVE_PRESERVE_IDS", "0")

        config = ArchiveConfig.from_env()

        assert config.name == "trash"
        assert config.override_remove is False
        assert config.exclude == ("sessions", "tokens")
        assert config.preserve_ids is False

    def test_from_env_defaults(self, monkeypatch):
        for name in (
            "DOCARCHIVE_COLLECTION",
            "DOCARCHIVE_OVERRIDE_REMOVE",
            "DOCARCHIVE_EXCLUDE",
            "DOCARCHIVE_PRESERVE_IDS",
        ):
            monkeypatch.delenv(name, raising=False)

        assert ArchiveConfig.from_env() == ArchiveConfig()

    def test_empty_exclude_env(self, monkeypatch):
        """An empty DOCARCHIVE_EXCLUDE excludes nothing."""
        monkeypatch.setenv("DOCARCHIVE_EXCLUDE", "")
        assert ArchiveConfig.from_env().exclude == ()


class TestValidateOptions:
    """Tests for configure() option validation."""

    def test_camel_case_aliases(self):
        options = validate_options({"overrideRemove": False, "preserveIds": False})
        assert options.override_remove is False
        assert options.preserve_ids is False

    def test_snake_case_names(self):
        options = validate_options(override_remove=False, name="trash")
        assert options.override_remove is False
        assert options.name == "trash"

    def test_kwargs_merge_over_mapping(self):
        options = validate_options({"name": "one"}, name="two")
        assert options.name == "two"

    def test_model_passthrough(self):
        model = ConfigureOptions(name="trash")
        assert validate_options(model) is model

    @pytest.mark.parametrize(
        "options",
        [
            {"name": 1},
            {"name": ""},
            {"overrideRemove": "false"},
            {"overrideRemove": 0},
            {"exclude": "roles"},
            {"exclude": ["roles", 3]},
            {"preserveIds": "yes"},
            {"unknown": True},
        ],
    )
    def test_invalid_options(self, options):
        """Wrong types and unknown keys are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_options(options)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.errors

    def test_non_mapping(self):
        with pytest.raises(ValidationError):
            validate_options(["name", "trash"])

    def test_reports_field(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_options({"overrideRemove": "false"})
        assert exc_info.value.field_name == "overrideRemove"

    def test_validation_error_is_archive_error(self):
        with pytest.raises(ArchiveError):
            validate_options({"name": 5})


class TestConfigHolder:
    """Tests for ConfigHolder."""

    def test_configure_merges(self):
        """Only given options change."""
        holder = ConfigHolder()

        config = holder.configure({"name": "trash"})

        assert config.name == "trash"
        assert config.override_remove is True
        assert config.exclude == ("roles", "role-assignment")
        assert holder.get() is config

    def test_exclude_replaces_list(self):
        """exclude replaces the default list instead of extending it."""
        holder = ConfigHolder()

        holder.configure(exclude=["sessions"])

        assert holder.get().exclude == ("sessions",)

    def test_empty_exclude(self):
        holder = ConfigHolder()
        holder.configure(exclude=[])
        assert holder.get().exclude == ()

    def test_empty_configure_is_noop(self):
        holder = ConfigHolder()
        assert holder.configure() == ArchiveConfig()
        assert holder.configure({}) == ArchiveConfig()

    def test_invalid_options_leave_config_unchanged(self):
        """A rejected configure() applies nothing."""
        holder = ConfigHolder(ArchiveConfig(name="trash"))

        with pytest.raises(ValidationError):
            holder.configure({"name": "other", "overrideRemove": "false"})

        assert holder.get() == ArchiveConfig(name="trash")

    def test_set_replaces(self):
        holder = ConfigHolder()
        holder.set(ArchiveConfig(override_remove=False))
        assert holder.get().override_remove is False


class TestStorageConfig:
    """Tests for StorageConfig."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DOCARCHIVE_BACKEND", "MEMORY")
        monkeypatch.setenv("DOCARCHIVE_DB_PATH", "/tmp/docs.db")
        monkeypatch.setenv("DOCARCHIVE_WAL_MODE", "no")
        monkeypatch.setenv("DOCARCHIVE_BUSY_TIMEOUT_MS", "250")

        config = StorageConfig.from_env()

        assert config.backend == StoreBackend.MEMORY
        assert config.db_path == "/tmp/docs.db"
        assert config.wal_mode is False
        assert config.busy_timeout_ms == 250

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("DOCARCHIVE_BACKEND", "postgres")
        with pytest.raises(ValueError, match="DOCARCHIVE_BACKEND"):
            StorageConfig.from_env()


class TestSettings:
    """Tests for Settings."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DOCARCHIVE_BACKEND", "memory")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOG_FORMAT", "json")

        settings = Settings.from_env()

        assert settings.storage.backend == StoreBackend.MEMORY
        assert settings.logging == LoggingConfig(log_level="DEBUG", log_format="json")

    def test_empty_archive_name(self):
        settings = Settings(archive=ArchiveConfig(name=""))
        with pytest.raises(ValueError, match="DOCARCHIVE_COLLECTION"):
            settings.validate()

    def test_sqlite_requires_path(self):
        settings = Settings(storage=StorageConfig(db_path=""))
        with pytest.raises(ValueError, match="DOCARCHIVE_DB_PATH"):
            settings.validate()

    def test_memory_ignores_path(self):
        settings = Settings(storage=StorageConfig(backend=StoreBackend.MEMORY, db_path=""))
        settings.validate()
