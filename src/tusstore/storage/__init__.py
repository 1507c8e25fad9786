"""Blob storage backends for TusStore."""

from typing import TYPE_CHECKING

from tusstore.storage.backend import StorageBackend

if TYPE_CHECKING:
    from tusstore.config import StorageConfig

__all__ = [
    "create_storage_backend",
    "StorageBackend",
]


def create_storage_backend(config: "StorageConfig") -> StorageBackend:
    """Create a storage backend instance based on configuration.

    Args:
        config: The storage configuration.

    Returns:
        A storage backend implementing the StorageBackend protocol.
        ``init()`` has not been called yet.

    Raises:
        ValueError: If the backend is unknown or required config is missing.
    """
    backend = config.backend

    if backend == "memory":
        from tusstore.storage.memory import MemoryStorageBackend

        return MemoryStorageBackend(max_size_bytes=config.memory_max_size_bytes)

    elif backend == "local":
        from tusstore.storage.local import LocalStorageBackend

        return LocalStorageBackend(config.local_root)

    elif backend == "sqlite":
        from tusstore.storage.sqlite import SQLiteStorageBackend

        return SQLiteStorageBackend(config.sqlite_path)

    elif backend == "aws":
        from tusstore.storage.aws import AWSGatewayBackend

        if not config.aws_bucket:
            raise ValueError("storage.aws.bucket is required when backend is 'aws'")
        return AWSGatewayBackend(
            bucket_name=config.aws_bucket,
            region=config.aws_region,
            prefix=config.aws_prefix,
            endpoint_url=config.aws_endpoint_url,
        )

    elif backend == "azure":
        from tusstore.storage.azure import AzureBlobBackend

        if not config.azure_container:
            raise ValueError("storage.azure.container is required when backend is 'azure'")
        if not config.azure_account_url and not config.azure_connection_string:
            raise ValueError(
                "storage.azure.account_url or storage.azure.connection_string is required "
                "when backend is 'azure'"
            )
        return AzureBlobBackend(
            container_name=config.azure_container,
            account_url=config.azure_account_url,
            connection_string=config.azure_connection_string,
            prefix=config.azure_prefix,
        )

    else:
        raise ValueError(f"Unknown storage backend: {backend}")
