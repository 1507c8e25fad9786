"""File record repository.

Owns upload identity, declared length and metadata. Each upload ``F`` is
persisted as two blobs in the storage backend:

    F       — the content blob, written only by the append engine
    F.info  — the record blob: JSON lines, append-only

The first line of ``F.info`` is the creation record. Declaring a deferred
length later appends ``{"upload_length": N}``. Readers fold the lines in
order, so the record is never rewritten in place.
"""

import json
import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Any

from tusstore.errors import (
    AppendConflict,
    BackendError,
    FileNotFound,
    UploadLengthAlreadySet,
)
from tusstore.metadata import decode_metadata
from tusstore.models import FileInfo
from tusstore.storage.backend import StorageBackend

logger = logging.getLogger(__name__)

INFO_SUFFIX = ".info"

_FILE_ID_RE = re.compile(r"^[0-9a-f]{32}$")
_MAX_ID_ATTEMPTS = 5


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def new_file_id() -> str:
    """Return a fresh random upload id (128 bits, hex encoded)."""
    return secrets.token_hex(16)


def is_valid_file_id(file_id: str) -> bool:
    return isinstance(file_id, str) and _FILE_ID_RE.match(file_id) is not None


def info_blob_id(file_id: str) -> str:
    return f"{file_id}{INFO_SUFFIX}"


def _encode_line(record: dict[str, Any]) -> bytes:
    return (json.dumps(record, separators=(",", ":")) + "\n").encode("utf-8")


class FileRepository:
    """Creates, looks up and deletes upload records.

    Ids that are not 32 lowercase hex characters are reported as unknown
    without touching the backend.
    """

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend

    async def create_file(self, upload_length: int | None, metadata: str | None = None) -> str:
        """Create an empty upload.

        Args:
            upload_length: Declared total size, or None to defer it.
            metadata: Metadata header text, or None.

        Returns:
            The new upload id.

        Raises:
            ValueError: If ``upload_length`` is negative.
            InvalidMetadata: If ``metadata`` is malformed.
            BackendError: If no unique id could be allocated.
        """
        if upload_length is not None and upload_length < 0:
            raise ValueError(f"Upload length must not be negative: {upload_length}")
        decode_metadata(metadata)
        header = metadata if metadata and metadata.strip() else None

        for _ in range(_MAX_ID_ATTEMPTS):
            file_id = new_file_id()
            try:
                await self.backend.create_empty(file_id)
            except FileExistsError:
                logger.warning("Upload id collision on %s, retrying", file_id)
                continue
            break
        else:
            raise BackendError("Could not allocate a unique upload id")

        record = {"upload_length": upload_length, "metadata": header, "created_at": _now_iso()}
        info_id = info_blob_id(file_id)
        try:
            await self.backend.create_empty(info_id)
            await self.backend.append_atomic(info_id, 0, _encode_line(record))
        except BaseException:
            # Do not leave a content blob without a record
            await self.backend.delete(info_id)
            await self.backend.delete(file_id)
            raise

        logger.info(
            "Created upload %s (length=%s)",
            file_id,
            upload_length,
            extra={"operation": "create", "file_id": file_id, "upload_length": upload_length},
        )
        return file_id

    async def get_info(self, file_id: str) -> FileInfo | None:
        """Return the folded record for ``file_id``, or None if unknown."""
        if not is_valid_file_id(file_id):
            return None
        info_id = info_blob_id(file_id)
        try:
            size = await self.backend.size(info_id)
            if size == 0:
                return None
            raw = await self.backend.read_range(info_id, 0, size)
        except FileNotFoundError:
            return None

        fields: dict[str, Any] = {}
        for line in raw.decode("utf-8").splitlines():
            if line:
                fields.update(json.loads(line))
        return FileInfo(
            file_id=file_id,
            upload_length=fields.get("upload_length"),
            metadata=fields.get("metadata"),
            created_at=fields.get("created_at", ""),
        )

    async def exists(self, file_id: str) -> bool:
        return await self.get_info(file_id) is not None

    async def get_upload_length(self, file_id: str) -> int | None:
        info = await self.get_info(file_id)
        return None if info is None else info.upload_length

    async def get_metadata(self, file_id: str) -> str | None:
        info = await self.get_info(file_id)
        return None if info is None else info.metadata

    async def set_upload_length(self, file_id: str, upload_length: int) -> None:
        """Declare the length of an upload created with a deferred length.

        The caller must hold the upload's lock.

        Raises:
            ValueError: If ``upload_length`` is negative.
            FileNotFound: If the upload does not exist.
            UploadLengthAlreadySet: If the length is already known.
        """
        if upload_length < 0:
            raise ValueError(f"Upload length must not be negative: {upload_length}")
        info = await self.get_info(file_id)
        if info is None:
            raise FileNotFound(file_id)
        if info.upload_length is not None:
            raise UploadLengthAlreadySet(file_id)

        info_id = info_blob_id(file_id)
        try:
            size = await self.backend.size(info_id)
            await self.backend.append_atomic(
                info_id, size, _encode_line({"upload_length": upload_length})
            )
        except FileNotFoundError as e:
            raise FileNotFound(file_id) from e
        except AppendConflict as e:
            raise UploadLengthAlreadySet(file_id) from e
        logger.info(
            "Declared length %d for upload %s",
            upload_length,
            file_id,
            extra={"operation": "set_length", "file_id": file_id, "upload_length": upload_length},
        )

    async def delete_file(self, file_id: str) -> bool:
        """Delete the record and the content of an upload.

        The record blob goes first so the upload stops existing before its
        content is removed.

        Returns:
            True if the upload existed.
        """
        if not await self.exists(file_id):
            return False
        await self.backend.delete(info_blob_id(file_id))
        await self.backend.delete(file_id)
        logger.info(
            "Deleted upload %s", file_id, extra={"operation": "delete", "file_id": file_id}
        )
        return True
