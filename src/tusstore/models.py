"""Data model types for TusStore.

``FileInfo`` is the persisted record of an upload (identity, declared length,
metadata header). ``FileRecord`` is the read accessor handed to consumers: a
snapshot of the upload at fetch time that can stream its content and decode
its metadata.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tusstore.metadata import MetadataValue, parse_metadata

if TYPE_CHECKING:
    from tusstore.storage.backend import StorageBackend


@dataclass
class FileInfo:
    """Persisted record of an upload.

    Attributes:
        file_id: The upload identifier (32 lowercase hex characters).
        upload_length: Declared total size in bytes, or None while deferred.
        metadata: The metadata header text as supplied, or None.
        created_at: ISO 8601 creation timestamp.
    """

    file_id: str
    upload_length: int | None = None
    metadata: str | None = None
    created_at: str = ""


class FileRecord:
    """Snapshot accessor for an upload's content and metadata.

    ``upload_offset`` is captured when the record is fetched. Content is
    append-only, so ``get_content()`` always yields exactly the first
    ``upload_offset`` bytes even while further appends are in flight.
    """

    def __init__(
        self,
        info: FileInfo,
        upload_offset: int,
        backend: StorageBackend,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self._info = info
        self._backend = backend
        self._chunk_size = chunk_size
        self.upload_offset = upload_offset

    @property
    def file_id(self) -> str:
        return self._info.file_id

    @property
    def upload_length(self) -> int | None:
        return self._info.upload_length

    @property
    def created_at(self) -> str:
        return self._info.created_at

    @property
    def is_complete(self) -> bool:
        """True when the declared length is known and fully written."""
        return (
            self._info.upload_length is not None
            and self.upload_offset == self._info.upload_length
        )

    def get_metadata(self) -> dict[str, MetadataValue]:
        """Return the decoded metadata, keyed in header order."""
        return parse_metadata(self._info.metadata)

    async def get_content(self) -> AsyncIterator[bytes]:
        """Stream the content written so far in fixed-size chunks.

        Raises:
            FileNotFoundError: If the upload is deleted while streaming.
        """
        pos = 0
        while pos < self.upload_offset:
            length = min(self._chunk_size, self.upload_offset - pos)
            yield await self._backend.read_range(self.file_id, pos, length)
            pos += length

    async def read_all(self) -> bytes:
        """Read the whole content into memory. Intended for small uploads."""
        return b"".join([chunk async for chunk in self.get_content()])

    def __repr__(self) -> str:
        return (
            f"FileRecord(file_id={self.file_id!r}, upload_offset={self.upload_offset}, "
            f"upload_length={self.upload_length})"
        )
