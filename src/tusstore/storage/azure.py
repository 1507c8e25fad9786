"""Azure Blob Storage backend for TusStore.

Stores every blob as an Azure *append blob* inside a single container via
azure-storage-blob (async). Append blobs provide exactly the atomic
primitive the store needs:

    create_empty()  → create_append_blob() with If-None-Match: *
    append_atomic() → append_block() with the append-position condition
                      set to the expected offset; the service rejects the
                      block with 412 if the blob has a different length

Key mapping:
    Blobs:  {prefix}{blob_id}

Credentials come from a connection string when configured, otherwise from
DefaultAzureCredential (env vars, managed identity, Azure CLI, etc.).
"""

import logging

from azure.core import MatchConditions
from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential
from azure.storage.blob.aio import ContainerClient

from tusstore.errors import AppendConflict, BackendError
from tusstore.storage.backend import check_range

logger = logging.getLogger(__name__)


class AzureBlobBackend:
    """Storage backend that keeps blobs as Azure append blobs.

    Attributes:
        container_name: The Azure Blob container name.
        account_url: The Azure Storage account URL (e.g. https://account.blob.core.windows.net).
        connection_string: Optional connection string; takes precedence over account_url.
        prefix: Name prefix for all blobs in the container.
    """

    def __init__(
        self,
        container_name: str,
        account_url: str = "",
        connection_string: str = "",
        prefix: str = "",
    ) -> None:
        self.container_name = container_name
        self.account_url = account_url
        self.connection_string = connection_string
        self.prefix = prefix
        self._container_client: ContainerClient | None = None
        self._credential: DefaultAzureCredential | None = None

    def _blob_name(self, blob_id: str) -> str:
        """Map a TusStore blob id to an Azure blob name."""
        return f"{self.prefix}{blob_id}"

    def _blob_client(self, blob_id: str):
        if self._container_client is None:
            raise RuntimeError("AzureBlobBackend not initialized — call init() first")
        return self._container_client.get_blob_client(self._blob_name(blob_id))

    async def init(self) -> None:
        """Create the Azure ContainerClient and verify the container exists.

        Raises:
            ValueError: If the container does not exist or is inaccessible.
        """
        if self.connection_string:
            self._container_client = ContainerClient.from_connection_string(
                self.connection_string, self.container_name
            )
        else:
            self._credential = DefaultAzureCredential()
            self._container_client = ContainerClient(
                self.account_url,
                self.container_name,
                credential=self._credential,
            )

        try:
            exists = await self._container_client.exists()
        except Exception as e:
            await self.close()
            raise ValueError(
                f"Cannot access Azure container '{self.container_name}': {e}"
            ) from e

        if not exists:
            await self.close()
            raise ValueError(f"Azure container '{self.container_name}' does not exist")

        logger.info(
            "Azure blob backend initialized: container=%s prefix='%s'",
            self.container_name,
            self.prefix,
        )

    async def close(self) -> None:
        """Close the Azure client session."""
        if self._container_client is not None:
            await self._container_client.close()
            self._container_client = None
        if self._credential is not None:
            await self._credential.close()
            self._credential = None

    async def create_empty(self, blob_id: str) -> None:
        """Create a zero-length append blob, failing if it already exists."""
        blob_client = self._blob_client(blob_id)
        try:
            await blob_client.create_append_blob(match_condition=MatchConditions.IfMissing)
        except ResourceExistsError as e:
            raise FileExistsError(f"Blob already exists: {blob_id}") from e
        except HttpResponseError as e:
            if e.status_code in (409, 412):
                raise FileExistsError(f"Blob already exists: {blob_id}") from e
            raise BackendError(f"Cannot create blob {blob_id}: {e}") from e
        except AzureError as e:
            raise BackendError(f"Cannot create blob {blob_id}: {e}") from e

    async def append_atomic(self, blob_id: str, expected_offset: int, data: bytes) -> None:
        """Append a block at exactly ``expected_offset``.

        Raises:
            FileNotFoundError: If the blob does not exist.
            AppendConflict: If the service reports a different append position.
            BackendError: For any other service failure.
        """
        blob_client = self._blob_client(blob_id)
        try:
            await blob_client.append_block(
                bytes(data), length=len(data), appendpos_condition=expected_offset
            )
        except ResourceNotFoundError as e:
            raise FileNotFoundError(f"Blob not found: {blob_id}") from e
        except HttpResponseError as e:
            if e.status_code == 412 or getattr(e, "error_code", None) == "AppendPositionConditionNotMet":
                raise AppendConflict(blob_id, expected_offset) from e
            raise BackendError(f"Cannot append to blob {blob_id}: {e}") from e
        except AzureError as e:
            raise BackendError(f"Cannot append to blob {blob_id}: {e}") from e

    async def read_range(self, blob_id: str, start: int, length: int) -> bytes:
        blob_client = self._blob_client(blob_id)
        size = await self.size(blob_id)
        check_range(blob_id, size, start, length)
        if length == 0:
            return b""
        try:
            downloader = await blob_client.download_blob(offset=start, length=length)
            return await downloader.readall()
        except ResourceNotFoundError as e:
            raise FileNotFoundError(f"Blob not found: {blob_id}") from e
        except AzureError as e:
            raise BackendError(f"Cannot read blob {blob_id}: {e}") from e

    async def size(self, blob_id: str) -> int:
        blob_client = self._blob_client(blob_id)
        try:
            props = await blob_client.get_blob_properties()
        except ResourceNotFoundError as e:
            raise FileNotFoundError(f"Blob not found: {blob_id}") from e
        except AzureError as e:
            raise BackendError(f"Cannot stat blob {blob_id}: {e}") from e
        return props.size

    async def exists(self, blob_id: str) -> bool:
        blob_client = self._blob_client(blob_id)
        try:
            return await blob_client.exists()
        except AzureError as e:
            raise BackendError(f"Cannot check blob {blob_id}: {e}") from e

    async def delete(self, blob_id: str) -> None:
        """Delete a blob. Idempotent — catches ResourceNotFoundError silently."""
        blob_client = self._blob_client(blob_id)
        try:
            await blob_client.delete_blob()
        except ResourceNotFoundError:
            pass  # Idempotent: treat as success
        except AzureError as e:
            raise BackendError(f"Cannot delete blob {blob_id}: {e}") from e
