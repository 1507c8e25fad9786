"""Offset-tracked append engine.

The engine is the only writer of upload content. The offset of an upload is
never stored separately: it is the size of the content blob, and the backend
grows that blob one atomic chunk at a time. The two therefore cannot
disagree, whatever happens to the writer between chunks.

Appends are re-chunked into ``chunk_size`` commits. Between commits the
engine checks the caller's cancel event; a cancelled append returns the
number of bytes committed so far. Native task cancellation surfaces as
``asyncio.CancelledError`` at the next await and likewise never leaves a
partial chunk behind.

Callers must serialize appends per upload (``TusStore`` does this with a
``KeyedLock``).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from contextlib import aclosing
from typing import Union

from tusstore import metrics
from tusstore.errors import (
    AppendConflict,
    FileNotFound,
    OffsetMismatch,
    UploadLengthExceeded,
)
from tusstore.repository import FileRepository, is_valid_file_id
from tusstore.storage.backend import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

BytesLike = Union[bytes, bytearray, memoryview]
DataSource = Union[BytesLike, AsyncIterable[bytes], Iterable[bytes]]


def declared_size(data: DataSource, content_length: int | None = None) -> int | None:
    """Return the size of ``data`` if it is known before reading it."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        return memoryview(data).nbytes
    return content_length


async def _iter_pieces(data: DataSource, read_size: int) -> AsyncIterator[bytes]:
    """Yield raw pieces from any supported data source."""
    if hasattr(data, "read"):
        while True:
            piece = data.read(read_size)
            if inspect.isawaitable(piece):
                piece = await piece
            if not piece:
                return
            yield piece
    elif hasattr(data, "__aiter__"):
        async for piece in data:
            yield piece
    else:
        for piece in data:
            yield piece


class AppendEngine:
    """Streams bytes into upload content blobs at the correct offset.

    Attributes:
        backend: The storage backend holding the content blobs.
        repository: The record repository (for lengths and existence).
        chunk_size: Size of each atomic commit in bytes.
    """

    def __init__(
        self,
        backend: StorageBackend,
        repository: FileRepository,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        self.backend = backend
        self.repository = repository
        self.chunk_size = chunk_size

    async def get_offset(self, file_id: str) -> int | None:
        """Return the number of bytes durably written, or None if unknown."""
        if await self.repository.get_info(file_id) is None:
            return None
        try:
            return await self.backend.size(file_id)
        except FileNotFoundError:
            return None

    async def _chunks(self, data: DataSource) -> AsyncIterator[bytes]:
        """Re-cut a data source into commits of at most ``chunk_size`` bytes."""
        size = self.chunk_size
        if isinstance(data, (bytes, bytearray, memoryview)):
            view = memoryview(data).cast("B")
            for pos in range(0, len(view), size):
                yield bytes(view[pos:pos + size])
            return

        buf = bytearray()
        async with aclosing(_iter_pieces(data, size)) as pieces:
            async for piece in pieces:
                buf.extend(piece)
                while len(buf) >= size:
                    yield bytes(buf[:size])
                    del buf[:size]
        if buf:
            yield bytes(buf)

    async def _commit(self, file_id: str, offset: int, chunk: bytes) -> None:
        try:
            await self.backend.append_atomic(file_id, offset, chunk)
        except FileNotFoundError as e:
            raise FileNotFound(file_id) from e
        except AppendConflict as e:
            actual = e.actual
            if actual is None:
                try:
                    actual = await self.backend.size(file_id)
                except FileNotFoundError:
                    raise FileNotFound(file_id) from e
            raise OffsetMismatch(offset, actual, file_id) from e

    async def append(
        self,
        file_id: str,
        data: DataSource,
        content_length: int | None = None,
        *,
        expected_offset: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> int:
        """Append ``data`` to an upload at its current offset.

        Args:
            file_id: The upload id.
            data: Bytes-like object, async iterable or iterable of bytes, or
                a (sync or async) binary reader with ``read(size)``.
            content_length: Size of ``data`` when it cannot be measured up
                front (e.g. the request's Content-Length).
            expected_offset: If given, the offset the caller believes the
                upload is at.
            cancel: Event checked between chunk commits; once set, no
                further chunks are written.

        Returns:
            Bytes durably committed by this call. ``0`` if the upload was
            already complete.

        Raises:
            FileNotFound: If the upload does not exist.
            OffsetMismatch: If ``expected_offset`` is stale.
            UploadLengthExceeded: If the data would run past the declared
                length. A known-size append is rejected before any write;
                for a stream of unknown size, the chunk that would overrun
                is rejected, earlier chunks stay committed and the error is
                raised with ``lower_bound`` set.
        """
        info = await self.repository.get_info(file_id) if is_valid_file_id(file_id) else None
        if info is None:
            raise FileNotFound(file_id)
        try:
            offset = await self.backend.size(file_id)
        except FileNotFoundError as e:
            raise FileNotFound(file_id) from e

        upload_length = info.upload_length
        if upload_length is not None and offset >= upload_length:
            logger.debug("Upload %s already complete, ignoring append", file_id)
            return 0
        if expected_offset is not None and expected_offset != offset:
            raise OffsetMismatch(expected_offset, offset, file_id)

        size = declared_size(data, content_length)
        if upload_length is not None and size is not None and size > upload_length - offset:
            raise UploadLengthExceeded(size, upload_length, file_id)

        written = 0
        cancelled = False
        try:
            async with aclosing(self._chunks(data)) as chunks:
                async for chunk in chunks:
                    if cancel is not None and cancel.is_set():
                        cancelled = True
                        break
                    if upload_length is not None and len(chunk) > upload_length - offset:
                        raise UploadLengthExceeded(
                            written + len(chunk), upload_length, file_id, lower_bound=True
                        )
                    await self._commit(file_id, offset, chunk)
                    offset += len(chunk)
                    written += len(chunk)
        finally:
            metrics.record_bytes_written(written)
            logger.debug(
                "Appended %d bytes to %s (offset now %d)",
                written,
                file_id,
                offset,
                extra={"operation": "append", "file_id": file_id,
                       "offset": offset, "bytes_written": written},
            )

        if cancelled:
            logger.warning(
                "Append to %s cancelled after %d bytes",
                file_id,
                written,
                extra={"operation": "append", "file_id": file_id,
                       "offset": offset, "bytes_written": written},
            )
        if upload_length is not None and offset == upload_length and written > 0:
            metrics.record_upload_completed()
            logger.info(
                "Upload %s complete (%d bytes)",
                file_id,
                upload_length,
                extra={"operation": "complete", "file_id": file_id,
                       "upload_length": upload_length},
            )
        return written
