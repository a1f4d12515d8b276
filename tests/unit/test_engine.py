"""
Unit tests for ArchiveEngine wiring.

Tests cover:
- Construction from the environment
- configure() sharing state across components
"""

import pytest

from docarchive import ArchiveEngine, InMemoryStore, SqliteStore
from docarchive.config import ArchiveConfig
from docarchive.errors import ValidationError


class TestArchiveEngine:
    """Tests for ArchiveEngine."""

    @pytest.fixture
    def engine(self):
        return ArchiveEngine(InMemoryStore())

    def test_default_config(self, engine):
        assert engine.config == ArchiveConfig()
        assert engine.archive_collection.name == "archives"

    def test_configure_reaches_every_component(self, engine):
        """Archiver, restorer and policy share one configuration."""
        config = engine.configure({"name": "trash", "overrideRemove": False})

        assert engine.config is config
        assert engine.archiver.config.name == "trash"
        assert engine.restorer.config.name == "trash"
        assert engine.archive_collection.name == "trash"

    def test_invalid_configure(self, engine):
        with pytest.raises(ValidationError):
            engine.configure(exclude="roles")
        assert engine.config == ArchiveConfig()

    def test_from_env_memory(self, monkeypatch):
        monkeypatch.setenv("DOCARCHIVE_BACKEND", "memory")
        monkeypatch.setenv("DOCARCHIVE_COLLECTION", "trash")

        engine = ArchiveEngine.from_env()

        assert isinstance(engine.store, InMemoryStore)
        assert engine.config.name == "trash"

    def test_from_env_sqlite(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DOCARCHIVE_BACKEND", "sqlite")
        monkeypatch.setenv("DOCARCHIVE_DB_PATH", str(tmp_path / "docs.db"))

        engine = ArchiveEngine.from_env()

        assert isinstance(engine.store, SqliteStore)

    @pytest.mark.asyncio
    async def test_close(self, engine):
        await engine.collection("things").insert_one({"id": "1"})
        await engine.close()
        assert await engine.collection("things").count() == 0
