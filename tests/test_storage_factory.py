"""Tests for create_storage_backend()."""

import pytest

from tusstore.config import StorageConfig
from tusstore.storage import create_storage_backend
from tusstore.storage.aws import AWSGatewayBackend
from tusstore.storage.azure import AzureBlobBackend
from tusstore.storage.local import LocalStorageBackend
from tusstore.storage.memory import MemoryStorageBackend
from tusstore.storage.sqlite import SQLiteStorageBackend


class TestCreateStorageBackend:

    def test_memory(self):
        backend = create_storage_backend(
            StorageConfig(backend="memory", memory_max_size_bytes=512)
        )
        assert isinstance(backend, MemoryStorageBackend)
        assert backend.max_size_bytes == 512

    def test_local(self, tmp_path):
        backend = create_storage_backend(
            StorageConfig(backend="local", local_root=str(tmp_path))
        )
        assert isinstance(backend, LocalStorageBackend)

    def test_sqlite(self, tmp_path):
        backend = create_storage_backend(
            StorageConfig(backend="sqlite", sqlite_path=str(tmp_path / "u.db"))
        )
        assert isinstance(backend, SQLiteStorageBackend)

    def test_aws(self):
        backend = create_storage_backend(StorageConfig(
            backend="aws", aws_bucket="uploads", aws_region="eu-west-1", aws_prefix="tus/",
        ))
        assert isinstance(backend, AWSGatewayBackend)
        assert backend.bucket_name == "uploads"
        assert backend.region == "eu-west-1"
        assert backend.prefix == "tus/"

    def test_aws_requires_bucket(self):
        with pytest.raises(ValueError, match="bucket"):
            create_storage_backend(StorageConfig(backend="aws"))

    def test_azure(self):
        backend = create_storage_backend(StorageConfig(
            backend="azure",
            azure_container="uploads",
            azure_connection_string="UseDevelopmentStorage=true",
        ))
        assert isinstance(backend, AzureBlobBackend)
        assert backend.container_name == "uploads"

    def test_azure_requires_container_and_credentials(self):
        with pytest.raises(ValueError, match="container"):
            create_storage_backend(StorageConfig(backend="azure"))
        with pytest.raises(ValueError, match="account_url"):
            create_storage_backend(StorageConfig(backend="azure", azure_container="c"))

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage_backend(StorageConfig(backend="gcp"))
