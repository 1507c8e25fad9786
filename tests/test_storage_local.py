"""Unit tests for the local filesystem storage backend.

Covers the behaviour beyond the shared contract: directory creation,
id validation, durability across instances, and rollback of a failed write.
"""

import os
from unittest.mock import patch

import pytest

from tusstore.errors import BackendError
from tusstore.storage.local import LocalStorageBackend


@pytest.fixture
async def storage(tmp_path):
    """Create and initialize a local storage backend in a temp directory."""
    backend = LocalStorageBackend(str(tmp_path / "uploads"))
    await backend.init()
    yield backend
    await backend.close()


class TestInit:
    """Tests for LocalStorageBackend.init()."""

    async def test_creates_root_directory(self, tmp_path):
        """init() creates the root directory if it does not exist."""
        root = tmp_path / "new-root"
        assert not root.exists()

        backend = LocalStorageBackend(str(root))
        await backend.init()

        assert root.is_dir()

    async def test_idempotent_init(self, tmp_path):
        """init() can be called twice without error (crash-only)."""
        backend = LocalStorageBackend(str(tmp_path / "idempotent"))
        await backend.init()
        await backend.init()
        assert backend.root.exists()


class TestBlobPath:
    """Blob ids map to files directly under the root."""

    def test_plain_id(self, tmp_path):
        backend = LocalStorageBackend(str(tmp_path))
        assert backend._blob_path("abc.info") == tmp_path / "abc.info"

    @pytest.mark.parametrize("blob_id", ["", "../escape", "a/b", ".hidden", "a\\b"])
    def test_unsafe_ids_rejected(self, tmp_path, blob_id):
        backend = LocalStorageBackend(str(tmp_path))
        with pytest.raises(ValueError):
            backend._blob_path(blob_id)


class TestDurability:
    """Data written by one instance is visible to the next."""

    async def test_reopen_sees_committed_bytes(self, tmp_path):
        root = tmp_path / "uploads"
        first = LocalStorageBackend(str(root))
        await first.init()
        await first.create_empty("blob")
        await first.append_atomic("blob", 0, b"persisted")

        second = LocalStorageBackend(str(root))
        await second.init()
        assert await second.size("blob") == 9
        assert await second.read_range("blob", 0, 9) == b"persisted"

    async def test_blob_is_plain_file(self, storage):
        await storage.create_empty("blob")
        await storage.append_atomic("blob", 0, b"abc")
        assert (storage.root / "blob").read_bytes() == b"abc"


class TestRollback:
    """A failed write leaves the file at its previous size."""

    async def test_partial_write_truncated(self, storage):
        await storage.create_empty("blob")
        await storage.append_atomic("blob", 0, b"keep")

        real_write = os.write
        calls = {"n": 0}

        def flaky_write(fd, data):
            calls["n"] += 1
            if calls["n"] == 1:
                # Half the chunk lands, then the disk fails
                return real_write(fd, bytes(data[: len(data) // 2]))
            raise OSError(5, "Input/output error")

        with patch("tusstore.storage.local.os.write", side_effect=flaky_write):
            with pytest.raises(BackendError):
                await storage.append_atomic("blob", 4, b"discarded")

        assert await storage.size("blob") == 4
        assert await storage.read_range("blob", 0, 4) == b"keep"

    async def test_no_space_reported(self, storage):
        await storage.create_empty("blob")
        with patch("tusstore.storage.local.os.write", side_effect=OSError(28, "No space left")):
            with pytest.raises(BackendError, match="No space left"):
                await storage.append_atomic("blob", 0, b"data")
        assert await storage.size("blob") == 0
