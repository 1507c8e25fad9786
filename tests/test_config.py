"""Tests for TusStore configuration loading."""

import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from tusstore.config import StoreConfig, TusStoreConfig, load_config


def _write_config(data) -> Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
    return Path(f.name)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load_example_config(self):
        """Loading the example config file populates all fields."""
        config = load_config(
            Path(__file__).resolve().parent.parent / "tusstore.example.yaml"
        )
        assert config.store.chunk_size == 65536
        assert config.storage.backend == "local"
        assert config.storage.local_root == "./data/uploads"
        assert config.storage.sqlite_path == "./data/uploads.db"
        assert config.storage.aws_region == "us-east-1"
        assert config.logging.level == "INFO"
        assert config.logging.format == "text"
        assert config.metrics.enabled is False

    def test_load_minimal_config(self):
        """Loading a minimal YAML uses defaults for all fields."""
        config = load_config(_write_config({}))
        assert config == TusStoreConfig()
        assert config.store.chunk_size == 64 * 1024
        assert config.storage.backend == "local"

    def test_empty_file(self, tmp_path):
        """An empty file is treated like an empty mapping."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == TusStoreConfig()

    def test_nested_storage_sections(self):
        """storage.<backend>.* sections are flattened onto StorageConfig."""
        config = load_config(_write_config({
            "storage": {
                "backend": "sqlite",
                "local": {"root_dir": "/srv/uploads"},
                "sqlite": {"path": "/srv/uploads.db"},
                "memory": {"max_size_bytes": 1024},
                "aws": {
                    "bucket": "uploads",
                    "region": "eu-west-1",
                    "prefix": "tus/",
                    "endpoint_url": "http://localhost:9000",
                },
                "azure": {
                    "container": "uploads",
                    "account_url": "https://acct.blob.core.windows.net",
                    "prefix": "tus/",
                },
            }
        }))
        storage = config.storage
        assert storage.backend == "sqlite"
        assert storage.local_root == "/srv/uploads"
        assert storage.sqlite_path == "/srv/uploads.db"
        assert storage.memory_max_size_bytes == 1024
        assert storage.aws_bucket == "uploads"
        assert storage.aws_region == "eu-west-1"
        assert storage.aws_prefix == "tus/"
        assert storage.aws_endpoint_url == "http://localhost:9000"
        assert storage.azure_container == "uploads"
        assert storage.azure_account_url == "https://acct.blob.core.windows.net"
        assert storage.azure_connection_string == ""
        assert storage.azure_prefix == "tus/"

    def test_logging_and_metrics_sections(self):
        config = load_config(_write_config({
            "logging": {"level": "DEBUG", "format": "json"},
            "metrics": {"enabled": True},
        }))
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.metrics.enabled is True

    def test_custom_chunk_size(self):
        config = load_config(_write_config({"store": {"chunk_size": 4096}}))
        assert config.store.chunk_size == 4096

    def test_non_positive_chunk_size_rejected(self):
        with pytest.raises(ValidationError):
            load_config(_write_config({"store": {"chunk_size": 0}}))
        with pytest.raises(ValidationError):
            StoreConfig(chunk_size=-1)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")
