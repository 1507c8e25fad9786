"""AWS S3 storage backend for TusStore.

S3 objects are immutable, so a growing blob is kept as a directory of
chunk objects via aiobotocore:

Key mapping:
    Marker:  {prefix}{blob_id}/.blob
    Chunks:  {prefix}{blob_id}/{start:020d}

The blob size is the end of the last chunk. Appends check the size and then
write the next chunk with ``If-None-Match: *``; two writers racing for the
same offset cannot both succeed, and a single chunk PUT is atomic.

Committed chunks never change, so the chunk layout of each blob is cached
and later listings only ask for keys after the last chunk already known
(``StartAfter``). Zero-padded offsets make S3's lexicographic key order the
append order. The marker is checked on every lookup so a blob deleted
elsewhere is noticed.

Credentials are resolved via the standard AWS credential chain
(env vars, ~/.aws/credentials, IAM role, etc.).
"""

import bisect
import logging
from collections import OrderedDict

from aiobotocore.session import AioSession
from botocore.exceptions import BotoCoreError, ClientError

from tusstore.errors import AppendConflict, BackendError
from tusstore.storage.backend import check_range

logger = logging.getLogger(__name__)

_MARKER = ".blob"

# Number of blobs whose chunk layout is kept in memory
_LAYOUT_CACHE_SIZE = 1024


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class AWSGatewayBackend:
    """Storage backend that keeps blobs as chunk objects in an S3 bucket.

    Attributes:
        bucket_name: The upstream AWS S3 bucket name.
        region: The AWS region for the bucket.
        prefix: Key prefix for all objects in the upstream bucket.
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        prefix: str = "",
        endpoint_url: str = "",
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.prefix = prefix
        self.endpoint_url = endpoint_url
        self._session = AioSession()
        self._client = None
        self._client_ctx = None
        # blob_id -> sorted (start, length) of the chunks seen so far
        self._layouts: OrderedDict[str, list[tuple[int, int]]] = OrderedDict()

    def _blob_dir(self, blob_id: str) -> str:
        """Return the key prefix under which a blob's objects live."""
        return f"{self.prefix}{blob_id}/"

    def _marker_key(self, blob_id: str) -> str:
        return f"{self._blob_dir(blob_id)}{_MARKER}"

    def _chunk_key(self, blob_id: str, start: int) -> str:
        return f"{self._blob_dir(blob_id)}{start:020d}"

    async def init(self) -> None:
        """Create the aiobotocore S3 client and verify the upstream bucket exists.

        Raises:
            ValueError: If the upstream bucket does not exist or is inaccessible.
        """
        client_kwargs: dict = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        try:
            await self._client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None
            raise ValueError(
                f"Cannot access upstream S3 bucket '{self.bucket_name}': {_error_code(e)}"
            ) from e

        logger.info(
            "AWS gateway backend initialized: bucket=%s region=%s prefix='%s'",
            self.bucket_name,
            self.region,
            self.prefix,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        self._layouts.clear()
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def _list_keys(self, blob_id: str, start_after: str = "") -> list[tuple[str, int]]:
        """List (key, size) for objects stored under a blob, after ``start_after``."""
        keys: list[tuple[str, int]] = []
        kwargs: dict = {"Bucket": self.bucket_name, "Prefix": self._blob_dir(blob_id)}
        if start_after:
            kwargs["StartAfter"] = start_after
        while True:
            resp = await self._client.list_objects_v2(**kwargs)
            for obj in resp.get("Contents", []):
                keys.append((obj["Key"], obj["Size"]))
            if not resp.get("IsTruncated"):
                return keys
            kwargs["ContinuationToken"] = resp["NextContinuationToken"]

    def _remember(self, blob_id: str, chunks: list[tuple[int, int]]) -> None:
        self._layouts[blob_id] = chunks
        self._layouts.move_to_end(blob_id)
        while len(self._layouts) > _LAYOUT_CACHE_SIZE:
            self._layouts.popitem(last=False)

    async def _list_chunks(self, blob_id: str) -> list[tuple[int, int]]:
        """Return sorted (start, length) pairs of a blob's chunks.

        Only chunks after the last one already cached are listed.

        Raises:
            FileNotFoundError: If the blob marker is missing.
        """
        if not await self.exists(blob_id):
            self._layouts.pop(blob_id, None)
            raise FileNotFoundError(f"Blob not found: {blob_id}")

        chunks = self._layouts.get(blob_id, [])
        if chunks:
            start_after = self._chunk_key(blob_id, chunks[-1][0])
        else:
            start_after = self._marker_key(blob_id)
        try:
            keys = await self._list_keys(blob_id, start_after)
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Cannot list blob {blob_id}: {e}") from e

        base = self._blob_dir(blob_id)
        found = sorted(
            (int(key[len(base):]), size)
            for key, size in keys
            if key[len(base):].isdigit()
        )
        # A concurrent lookup may have extended the layout meanwhile
        chunks = self._layouts.get(blob_id, chunks)
        for start, size in found:
            if not chunks or start > chunks[-1][0]:
                chunks.append((start, size))
        self._remember(blob_id, chunks)
        return chunks

    async def create_empty(self, blob_id: str) -> None:
        try:
            await self._client.put_object(
                Bucket=self.bucket_name,
                Key=self._marker_key(blob_id),
                Body=b"",
                IfNoneMatch="*",
            )
        except ClientError as e:
            if _error_code(e) in ("PreconditionFailed", "412", "ConditionalRequestConflict"):
                raise FileExistsError(f"Blob already exists: {blob_id}") from e
            raise BackendError(f"Cannot create blob {blob_id}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Cannot create blob {blob_id}: {e}") from e
        self._remember(blob_id, [])

    async def append_atomic(self, blob_id: str, expected_offset: int, data: bytes) -> None:
        """Write the next chunk object if the blob ends at ``expected_offset``.

        Raises:
            FileNotFoundError: If the blob does not exist.
            AppendConflict: If the blob size differs or another writer
                claimed the same offset first.
            BackendError: For any other S3 failure.
        """
        current = await self.size(blob_id)
        if current != expected_offset:
            raise AppendConflict(blob_id, expected_offset, current)
        if not data:
            return
        try:
            await self._client.put_object(
                Bucket=self.bucket_name,
                Key=self._chunk_key(blob_id, expected_offset),
                Body=bytes(data),
                IfNoneMatch="*",
            )
        except ClientError as e:
            if _error_code(e) in ("PreconditionFailed", "412", "ConditionalRequestConflict"):
                raise AppendConflict(blob_id, expected_offset) from e
            raise BackendError(f"Cannot append to blob {blob_id}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Cannot append to blob {blob_id}: {e}") from e

        chunks = self._layouts.get(blob_id)
        if chunks is not None and (sum(chunks[-1]) if chunks else 0) == expected_offset:
            chunks.append((expected_offset, len(data)))

    async def read_range(self, blob_id: str, start: int, length: int) -> bytes:
        chunks = await self._list_chunks(blob_id)
        size = sum(chunks[-1]) if chunks else 0
        check_range(blob_id, size, start, length)
        if length == 0:
            return b""
        end = start + length
        # First chunk that ends after ``start``
        first = max(bisect.bisect_right(chunks, (start, float("inf"))) - 1, 0)
        parts: list[bytes] = []
        for chunk_start, chunk_len in chunks[first:]:
            if chunk_start >= end:
                break
            chunk_end = chunk_start + chunk_len
            if chunk_end <= start:
                continue
            lo = max(start, chunk_start) - chunk_start
            hi = min(end, chunk_end) - chunk_start
            try:
                resp = await self._client.get_object(
                    Bucket=self.bucket_name,
                    Key=self._chunk_key(blob_id, chunk_start),
                    Range=f"bytes={lo}-{hi - 1}",
                )
                async with resp["Body"] as stream:
                    parts.append(await stream.read())
            except ClientError as e:
                if _error_code(e) in ("NoSuchKey", "404"):
                    self._layouts.pop(blob_id, None)
                    raise FileNotFoundError(f"Blob not found: {blob_id}") from e
                raise BackendError(f"Cannot read blob {blob_id}: {e}") from e
            except BotoCoreError as e:
                raise BackendError(f"Cannot read blob {blob_id}: {e}") from e
        return b"".join(parts)

    async def size(self, blob_id: str) -> int:
        chunks = await self._list_chunks(blob_id)
        if not chunks:
            return 0
        last_start, last_len = chunks[-1]
        return last_start + last_len

    async def exists(self, blob_id: str) -> bool:
        """Check for the blob's marker object."""
        try:
            await self._client.head_object(
                Bucket=self.bucket_name, Key=self._marker_key(blob_id)
            )
            return True
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            raise BackendError(f"Cannot check blob {blob_id}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Cannot check blob {blob_id}: {e}") from e

    async def delete(self, blob_id: str) -> None:
        """Delete the marker first, then every chunk object.

        Idempotent — S3 delete_object does not error on missing keys.
        """
        self._layouts.pop(blob_id, None)
        try:
            await self._client.delete_object(
                Bucket=self.bucket_name, Key=self._marker_key(blob_id)
            )
            for key, _size in await self._list_keys(blob_id):
                await self._client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Cannot delete blob {blob_id}: {e}") from e
