"""TusStore facade.

The public entry point used by protocol handlers. Composes the record
repository, the append engine and a per-upload lock table on top of a single
storage backend.

Read operations (``file_exists``, ``get_upload_length``, ``get_upload_offset``,
``get_upload_metadata``, ``get_file``) never raise for unknown ids: they
return ``None`` or ``False``. Mutating operations on the same id are
serialized; operations on distinct ids run concurrently.
"""

import asyncio
import logging
from types import TracebackType

from tusstore import metrics
from tusstore.engine import DEFAULT_CHUNK_SIZE, AppendEngine, DataSource
from tusstore.errors import FileNotFound, TusStoreError, UploadLengthExceeded
from tusstore.locking import KeyedLock
from tusstore.models import FileRecord
from tusstore.repository import FileRepository
from tusstore.storage.backend import StorageBackend

logger = logging.getLogger(__name__)


class TusStore:
    """Resumable-upload store over a pluggable storage backend.

    Usage::

        async with TusStore(LocalStorageBackend("./data/uploads")) as store:
            file_id = await store.create_file(len(payload), "filename aGVsbG8=")
            await store.append_data(file_id, payload)

    Attributes:
        backend: The storage backend.
        repository: Record repository (identity, length, metadata).
        engine: Append engine (offset, content).
    """

    def __init__(self, backend: StorageBackend, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.backend = backend
        self.repository = FileRepository(backend)
        self.engine = AppendEngine(backend, self.repository, chunk_size=chunk_size)
        self._locks = KeyedLock()

    async def init(self) -> None:
        """Initialize the underlying backend."""
        await self.backend.init()

    async def close(self) -> None:
        """Release the underlying backend."""
        await self.backend.close()

    async def __aenter__(self) -> "TusStore":
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- Creation and lookup -----------------------------------------------

    async def create_file(self, upload_length: int | None, metadata: str | None = None) -> str:
        """Create a new, empty upload.

        Args:
            upload_length: Declared total size in bytes, or None to defer it.
            metadata: Metadata header text (``key base64,key2``), or None.

        Returns:
            The new upload id.

        Raises:
            ValueError: If ``upload_length`` is negative.
            InvalidMetadata: If the metadata header is malformed.
        """
        try:
            file_id = await self.repository.create_file(upload_length, metadata)
        except (TusStoreError, ValueError):
            metrics.record_operation("create", "error")
            raise
        metrics.record_operation("create", "ok")
        metrics.record_upload_created()
        return file_id

    async def file_exists(self, file_id: str) -> bool:
        return await self.repository.exists(file_id)

    async def get_upload_length(self, file_id: str) -> int | None:
        """Return the declared length, or None if unknown or deferred."""
        return await self.repository.get_upload_length(file_id)

    async def get_upload_offset(self, file_id: str) -> int | None:
        """Return the number of bytes written so far, or None if unknown."""
        return await self.engine.get_offset(file_id)

    async def get_upload_metadata(self, file_id: str) -> str | None:
        """Return the metadata header text, or None if absent or unknown."""
        return await self.repository.get_metadata(file_id)

    async def is_complete(self, file_id: str) -> bool:
        """True if the upload exists and has received its declared length."""
        record = await self.get_file(file_id)
        return record is not None and record.is_complete

    async def get_file(self, file_id: str) -> FileRecord | None:
        """Return an accessor for the upload's content and metadata.

        The accessor is a snapshot: its offset and content agree with each
        other as of this call.
        """
        info = await self.repository.get_info(file_id)
        if info is None:
            return None
        try:
            offset = await self.backend.size(file_id)
        except FileNotFoundError:
            return None
        return FileRecord(info, offset, self.backend, chunk_size=self.engine.chunk_size)

    # -- Mutation ----------------------------------------------------------

    async def append_data(
        self,
        file_id: str,
        data: DataSource,
        content_length: int | None = None,
        *,
        expected_offset: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> int:
        """Append bytes to an upload. See ``AppendEngine.append``.

        Concurrent appends to the same upload are queued and run one after
        another in arrival order.

        Returns:
            Bytes durably written by this call (0 if already complete).

        Raises:
            FileNotFound: If the upload does not exist.
            UploadLengthExceeded: If the data overruns the declared length.
            OffsetMismatch: If ``expected_offset`` is stale.
            asyncio.CancelledError: If the calling task is cancelled; bytes
                committed before that point remain.
        """
        status = "error"
        try:
            async with self._locks.hold(file_id):
                written = await self.engine.append(
                    file_id,
                    data,
                    content_length,
                    expected_offset=expected_offset,
                    cancel=cancel,
                )
            status = "ok"
            return written
        except asyncio.CancelledError:
            status = "cancelled"
            raise
        finally:
            metrics.record_operation("append", status)

    async def set_upload_length(self, file_id: str, upload_length: int) -> None:
        """Declare the length of an upload created with a deferred length.

        Raises:
            FileNotFound: If the upload does not exist.
            UploadLengthAlreadySet: If the length is already known.
            UploadLengthExceeded: If more bytes than ``upload_length`` have
                already been written.
        """
        if upload_length < 0:
            raise ValueError(f"Upload length must not be negative: {upload_length}")
        async with self._locks.hold(file_id):
            offset = await self.engine.get_offset(file_id)
            if offset is None:
                raise FileNotFound(file_id)
            if upload_length < offset:
                raise UploadLengthExceeded(offset, upload_length, file_id)
            await self.repository.set_upload_length(file_id, upload_length)
        metrics.record_operation("set_length", "ok")

    async def delete_file(self, file_id: str) -> bool:
        """Delete an upload and its content.

        Waits for any in-flight append on the same upload to finish first.
        Deleting an unknown upload is not an error.

        Returns:
            True if the upload existed.
        """
        async with self._locks.hold(file_id):
            deleted = await self.repository.delete_file(file_id)
        metrics.record_operation("delete", "ok" if deleted else "not_found")
        return deleted
