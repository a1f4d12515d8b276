"""
Integration test fixtures for docarchive.

Every engine test runs against both store backends.
"""

import os
import tempfile
from datetime import datetime, timezone

import pytest

from docarchive import ArchiveEngine
from docarchive.store import InMemoryStore, SqliteStore

FIXED_NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(params=["memory", "sqlite"])
def store(request, data_dir):
    """Document store for each backend."""
    if request.param == "memory":
        return InMemoryStore()
    return SqliteStore(os.path.join(data_dir, "docs.db"), wal_mode=False)


@pytest.fixture
def fixed_now():
    """Timestamp the engine fixture stamps on archive entries."""
    return FIXED_NOW


@pytest.fixture
def engine(store, fixed_now):
    """Engine with default configuration and a fixed clock."""
    return ArchiveEngine(store, clock=lambda: fixed_now)
