"""Configuration loading and Pydantic models for TusStore."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    """Append engine configuration."""

    chunk_size: int = Field(default=64 * 1024, gt=0)


class StorageConfig(BaseModel):
    """Blob storage backend configuration."""

    backend: str = "local"
    local_root: str = "./data/uploads"
    sqlite_path: str = "./data/uploads.db"
    memory_max_size_bytes: int = 0
    aws_bucket: str = ""
    aws_region: str = "us-east-1"
    aws_prefix: str = ""
    aws_endpoint_url: str = ""
    azure_container: str = ""
    azure_account_url: str = ""
    azure_connection_string: str = ""
    azure_prefix: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "text"


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = False


class TusStoreConfig(BaseModel):
    """Top-level TusStore configuration."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def _parse_store(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the store section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {"chunk_size": data.get("chunk_size", 64 * 1024)}


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.local.root_dir -> local_root, etc.
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "local")}

    local_section = data.get("local")
    if isinstance(local_section, dict):
        result["local_root"] = local_section.get("root_dir", "./data/uploads")

    sqlite_section = data.get("sqlite")
    if isinstance(sqlite_section, dict):
        result["sqlite_path"] = sqlite_section.get("path", "./data/uploads.db")

    memory_section = data.get("memory")
    if isinstance(memory_section, dict):
        result["memory_max_size_bytes"] = memory_section.get("max_size_bytes", 0)

    aws_section = data.get("aws")
    if isinstance(aws_section, dict):
        result["aws_bucket"] = aws_section.get("bucket", "")
        result["aws_region"] = aws_section.get("region", "us-east-1")
        result["aws_prefix"] = aws_section.get("prefix", "")
        result["aws_endpoint_url"] = aws_section.get("endpoint_url", "")

    azure_section = data.get("azure")
    if isinstance(azure_section, dict):
        result["azure_container"] = azure_section.get("container", "")
        result["azure_account_url"] = azure_section.get("account_url", "")
        result["azure_connection_string"] = azure_section.get("connection_string", "")
        result["azure_prefix"] = azure_section.get("prefix", "")

    return result


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {"enabled": data.get("enabled", False)}


def load_config(path: Path) -> TusStoreConfig:
    """Load a TusStoreConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated TusStoreConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value has the wrong type or range.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return TusStoreConfig(
        store=StoreConfig(**_parse_store(raw.get("store"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
    )
