"""Shared pytest fixtures for TusStore tests.

The ``backend`` fixture is parametrized over every backend that runs without
network access (memory, local filesystem, SQLite), so store-level tests
exercise each of them. The cloud backends are tested separately with mocked
clients.
"""

import pytest

from tusstore.storage.local import LocalStorageBackend
from tusstore.storage.memory import MemoryStorageBackend
from tusstore.storage.sqlite import SQLiteStorageBackend
from tusstore.store import TusStore


def _make_backend(kind: str, tmp_path):
    if kind == "memory":
        return MemoryStorageBackend()
    if kind == "local":
        return LocalStorageBackend(str(tmp_path / "uploads"))
    if kind == "sqlite":
        return SQLiteStorageBackend(str(tmp_path / "uploads.db"))
    raise ValueError(kind)


@pytest.fixture(params=["memory", "local", "sqlite"])
async def backend(request, tmp_path):
    """An initialized storage backend, one per supported local engine."""
    b = _make_backend(request.param, tmp_path)
    await b.init()
    yield b
    await b.close()


@pytest.fixture
async def store(backend):
    """A TusStore with a small chunk size so tests cross chunk boundaries."""
    return TusStore(backend, chunk_size=16)


@pytest.fixture
async def memory_store():
    """A TusStore over the in-memory backend only."""
    s = TusStore(MemoryStorageBackend(), chunk_size=16)
    await s.init()
    yield s
    await s.close()
