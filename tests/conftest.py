"""Shared test fixtures for clipgraph tests."""

import tempfile
from pathlib import Path

import pytest

from clipgraph.engine import ClipGraph
from clipgraph.storage import InMemoryBackend, SQLiteBackend
from clipgraph.store import MemoryStore


@pytest.fixture
def temp_dir():
    """Provide a temporary directory, cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store():
    """Provide a MemoryStore over an in-memory backend."""
    return MemoryStore(InMemoryBackend())


@pytest.fixture
def sqlite_store(temp_dir):
    """Provide a MemoryStore over a fresh SQLite database."""
    s = MemoryStore(SQLiteBackend(temp_dir / "clipgraph.db"))
    yield s
    s.close()


@pytest.fixture
def graph(store):
    """Provide a ClipGraph with no embedding provider."""
    return ClipGraph(store)
