"""In-memory storage backend for TusStore.

Implements the StorageBackend protocol using a Python dictionary of
``bytearray`` buffers. Nothing is persisted; intended for tests and
ephemeral deployments.

Appends never await between the size check and the write, so each append is
atomic with respect to every other coroutine on the event loop.
"""

import logging

from tusstore.errors import AppendConflict, CapacityError
from tusstore.storage.backend import check_range

logger = logging.getLogger(__name__)


class MemoryStorageBackend:
    """Storage backend that holds all blobs in memory.

    Attributes:
        max_size_bytes: Maximum total bytes allowed (0 = unlimited).
    """

    def __init__(self, max_size_bytes: int = 0) -> None:
        """Initialize the memory storage backend.

        Args:
            max_size_bytes: Maximum total bytes of blob data to hold in memory.
                0 means unlimited.
        """
        self.max_size_bytes = max_size_bytes
        self._blobs: dict[str, bytearray] = {}
        # Track total bytes stored
        self._current_size: int = 0

    def _check_capacity(self, additional_bytes: int) -> None:
        """Check whether storing additional_bytes would exceed max_size_bytes.

        Raises:
            CapacityError: If the store would exceed capacity.
        """
        if self.max_size_bytes > 0:
            if self._current_size + additional_bytes > self.max_size_bytes:
                raise CapacityError(
                    f"Cannot store {additional_bytes} bytes: would exceed "
                    f"max_size_bytes ({self._current_size} + {additional_bytes} "
                    f"> {self.max_size_bytes})"
                )

    def _get(self, blob_id: str) -> bytearray:
        try:
            return self._blobs[blob_id]
        except KeyError:
            raise FileNotFoundError(f"Blob not found: {blob_id}") from None

    async def init(self) -> None:
        logger.info(
            "Memory storage backend initialized (max_size=%s)",
            self.max_size_bytes if self.max_size_bytes > 0 else "unlimited",
        )

    async def close(self) -> None:
        self._blobs.clear()
        self._current_size = 0

    async def create_empty(self, blob_id: str) -> None:
        if blob_id in self._blobs:
            raise FileExistsError(f"Blob already exists: {blob_id}")
        self._blobs[blob_id] = bytearray()

    async def append_atomic(self, blob_id: str, expected_offset: int, data: bytes) -> None:
        buf = self._get(blob_id)
        if len(buf) != expected_offset:
            raise AppendConflict(blob_id, expected_offset, len(buf))
        self._check_capacity(len(data))
        buf.extend(data)
        self._current_size += len(data)

    async def read_range(self, blob_id: str, start: int, length: int) -> bytes:
        buf = self._get(blob_id)
        check_range(blob_id, len(buf), start, length)
        return bytes(buf[start:start + length])

    async def size(self, blob_id: str) -> int:
        return len(self._get(blob_id))

    async def exists(self, blob_id: str) -> bool:
        return blob_id in self._blobs

    async def delete(self, blob_id: str) -> None:
        """Delete a blob from memory. Silently ignores missing blobs."""
        buf = self._blobs.pop(blob_id, None)
        if buf is not None:
            self._current_size -= len(buf)
