"""TusStore: a resumable-upload storage engine."""

from tusstore.errors import (
    BackendError,
    FileNotFound,
    InvalidMetadata,
    OffsetMismatch,
    TusStoreError,
    UploadLengthAlreadySet,
    UploadLengthExceeded,
)
from tusstore.metadata import MetadataValue, decode_metadata, encode_metadata, parse_metadata
from tusstore.models import FileInfo, FileRecord
from tusstore.store import TusStore

__version__ = "0.1.0"

__all__ = [
    "BackendError",
    "decode_metadata",
    "encode_metadata",
    "FileInfo",
    "FileNotFound",
    "FileRecord",
    "InvalidMetadata",
    "MetadataValue",
    "OffsetMismatch",
    "parse_metadata",
    "TusStore",
    "TusStoreError",
    "UploadLengthAlreadySet",
    "UploadLengthExceeded",
]
