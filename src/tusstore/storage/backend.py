"""Abstract storage backend protocol for TusStore."""

from typing import Protocol


class StorageBackend(Protocol):
    """Protocol defining the blob storage backend interface.

    All storage backends (memory, local filesystem, SQLite, AWS S3, Azure
    Blob) must implement this interface. Blobs are opaque, append-only byte
    sequences addressed by a string id. Every append is atomic: either the
    whole chunk becomes visible to readers or none of it does.
    """

    async def init(self) -> None:
        """Initialize the storage backend (create directories, connect, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the storage backend."""
        ...

    async def create_empty(self, blob_id: str) -> None:
        """Allocate a new, zero-length blob.

        Args:
            blob_id: The blob identifier.

        Raises:
            FileExistsError: If a blob with this id already exists.
        """
        ...

    async def append_atomic(self, blob_id: str, expected_offset: int, data: bytes) -> None:
        """Append bytes to a blob if its size equals ``expected_offset``.

        Args:
            blob_id: The blob identifier.
            expected_offset: The size the blob must currently have.
            data: The chunk to append.

        Raises:
            FileNotFoundError: If the blob does not exist.
            AppendConflict: If the blob size differs from ``expected_offset``.
        """
        ...

    async def read_range(self, blob_id: str, start: int, length: int) -> bytes:
        """Read ``length`` bytes starting at ``start``.

        Args:
            blob_id: The blob identifier.
            start: Byte offset to start reading from.
            length: Number of bytes to read.

        Returns:
            Exactly ``length`` bytes.

        Raises:
            FileNotFoundError: If the blob does not exist.
            ValueError: If the range lies outside the blob.
        """
        ...

    async def size(self, blob_id: str) -> int:
        """Return the current size of a blob in bytes.

        Raises:
            FileNotFoundError: If the blob does not exist.
        """
        ...

    async def exists(self, blob_id: str) -> bool:
        """Check if a blob exists.

        Args:
            blob_id: The blob identifier.

        Returns:
            True if the blob exists.
        """
        ...

    async def delete(self, blob_id: str) -> None:
        """Delete a blob. Deleting a missing blob is not an error.

        Args:
            blob_id: The blob identifier.
        """
        ...


def check_range(blob_id: str, size: int, start: int, length: int) -> None:
    """Validate a read range against a blob size.

    Raises:
        ValueError: If the range is negative or extends past ``size``.
    """
    if start < 0 or length < 0 or start + length > size:
        raise ValueError(
            f"Range {start}+{length} is out of bounds for {blob_id} (size {size})"
        )
