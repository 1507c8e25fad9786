"""Local filesystem storage backend for TusStore.

Implements the StorageBackend protocol using one file per blob under
``{root}/{blob_id}``.

Crash-only design:
    - Blobs are created with ``O_CREAT | O_EXCL`` so an id is never reused.
    - Appends hold an exclusive ``flock`` while checking the size, writing
      and fsyncing. Never acknowledge before data is fsync'd to disk.
    - A failed write truncates the file back to the expected offset, so no
      partial chunk stays visible.
"""

import errno
import fcntl
import logging
import os
from pathlib import Path

from tusstore.errors import AppendConflict, BackendError
from tusstore.storage.backend import check_range

logger = logging.getLogger(__name__)


class LocalStorageBackend:
    """Storage backend that persists blobs on the local filesystem.

    Attributes:
        root: The root directory for all stored blobs.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the local storage backend.

        Args:
            root: Root directory path for blob storage.
        """
        self.root = Path(root)

    def _blob_path(self, blob_id: str) -> Path:
        """Return the filesystem path for a blob.

        Raises:
            ValueError: If the id would escape the root directory.
        """
        if not blob_id or "/" in blob_id or "\\" in blob_id or blob_id.startswith("."):
            raise ValueError(f"Invalid blob id: {blob_id!r}")
        return self.root / blob_id

    async def init(self) -> None:
        """Create the root directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("Local storage backend initialized at %s", self.root)

    async def close(self) -> None:
        """No-op for local filesystem backend."""
        pass

    async def create_empty(self, blob_id: str) -> None:
        """Create an empty file for the blob.

        Raises:
            FileExistsError: If the blob already exists.
        """
        path = self._blob_path(blob_id)
        try:
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            raise
        except OSError as e:
            raise BackendError(f"Cannot create blob {blob_id}: {e}") from e
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    async def append_atomic(self, blob_id: str, expected_offset: int, data: bytes) -> None:
        """Append a chunk to the blob file.

        The size check, write and fsync all happen under an exclusive
        ``flock``. On any write failure the file is truncated back to
        ``expected_offset`` before the error propagates.

        Raises:
            FileNotFoundError: If the blob does not exist.
            AppendConflict: If the file size differs from ``expected_offset``.
            BackendError: If the write fails.
        """
        path = self._blob_path(blob_id)
        fd = os.open(str(path), os.O_WRONLY | os.O_APPEND)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                current = os.fstat(fd).st_size
                if current != expected_offset:
                    raise AppendConflict(blob_id, expected_offset, current)
                try:
                    view = memoryview(data)
                    while view:
                        written = os.write(fd, view)
                        view = view[written:]
                    os.fsync(fd)
                except OSError as e:
                    # Roll back whatever part of the chunk reached the file
                    try:
                        os.ftruncate(fd, expected_offset)
                        os.fsync(fd)
                    except OSError:
                        logger.exception("Failed to roll back partial append on %s", blob_id)
                    if e.errno == errno.ENOSPC:
                        raise BackendError(f"No space left writing to {blob_id}") from e
                    raise BackendError(f"Cannot append to blob {blob_id}: {e}") from e
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    async def read_range(self, blob_id: str, start: int, length: int) -> bytes:
        """Read a byte range from the blob file.

        Raises:
            FileNotFoundError: If the blob does not exist.
            ValueError: If the range lies outside the file.
        """
        path = self._blob_path(blob_id)
        with open(path, "rb") as f:
            check_range(blob_id, os.fstat(f.fileno()).st_size, start, length)
            if start > 0:
                f.seek(start)
            return f.read(length)

    async def size(self, blob_id: str) -> int:
        return self._blob_path(blob_id).stat().st_size

    async def exists(self, blob_id: str) -> bool:
        return self._blob_path(blob_id).is_file()

    async def delete(self, blob_id: str) -> None:
        """Delete the blob file. Silently ignores missing files (idempotent)."""
        try:
            self._blob_path(blob_id).unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise BackendError(f"Cannot delete blob {blob_id}: {e}") from e
