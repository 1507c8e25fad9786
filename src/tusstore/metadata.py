"""Upload metadata header codec.

The header is a comma-separated list of entries. Each entry is either a bare
key (empty value) or a key and the base64 encoding of its value separated by a
single space::

    filename d29ybGRfZG9taW5hdGlvbl9wbGFuLnBkZg==,is_confidential

Values are kept as raw bytes. Text interpretation happens only on read, with
an encoding the caller names explicitly.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass

from tusstore.errors import InvalidMetadata


@dataclass(frozen=True)
class MetadataValue:
    """A single metadata value as stored: raw bytes.

    Attributes:
        data: The decoded value bytes.
    """

    data: bytes

    def get_bytes(self) -> bytes:
        """Return the raw value bytes."""
        return self.data

    def get_string(self, encoding: str) -> str:
        """Decode the value bytes as text.

        Args:
            encoding: Name of the codec to interpret the bytes with
                (e.g. "utf-8", "latin-1").

        Returns:
            The value as text under ``encoding``.

        Raises:
            UnicodeDecodeError: If the bytes are not valid in ``encoding``.
            LookupError: If ``encoding`` is not a known codec.
        """
        return self.data.decode(encoding)


def _check_key(key: str) -> None:
    if not key:
        raise InvalidMetadata("Metadata keys must not be empty.")
    if " " in key or "," in key:
        raise InvalidMetadata(f"Metadata key {key!r} must not contain spaces or commas.")


def encode_metadata(mapping: Mapping[str, bytes | str | None]) -> str:
    """Encode a metadata mapping into header text.

    Keys keep the mapping's insertion order. ``str`` values are encoded as
    UTF-8 first; ``None`` and empty values produce a bare key.

    Args:
        mapping: Key to value mapping.

    Returns:
        The header text (empty string for an empty mapping).

    Raises:
        InvalidMetadata: If a key is empty or contains a space or comma.
    """
    entries: list[str] = []
    for key, value in mapping.items():
        _check_key(key)
        if isinstance(value, str):
            value = value.encode("utf-8")
        if not value:
            entries.append(key)
        else:
            entries.append(f"{key} {base64.b64encode(value).decode('ascii')}")
    return ",".join(entries)


def decode_metadata(header: str | None) -> dict[str, bytes]:
    """Decode header text into a key to raw-bytes mapping.

    Args:
        header: The header text, or None.

    Returns:
        An ordered dict of key to value bytes. Empty for a None or blank
        header.

    Raises:
        InvalidMetadata: If an entry has an empty or duplicate key, more than
            two tokens, or a value that is not valid base64.
    """
    result: dict[str, bytes] = {}
    if header is None or not header.strip():
        return result

    for entry in header.split(","):
        entry = entry.strip()
        key, sep, encoded = entry.partition(" ")
        if not key:
            raise InvalidMetadata("Metadata keys must not be empty.")
        if key in result:
            raise InvalidMetadata(f"Duplicate metadata key {key!r}.")
        if sep and " " in encoded:
            raise InvalidMetadata(f"Metadata entry for {key!r} has too many parts.")
        if not encoded:
            result[key] = b""
            continue
        try:
            result[key] = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidMetadata(
                f"Metadata value for {key!r} is not valid base64."
            ) from exc
    return result


def parse_metadata(header: str | None) -> dict[str, MetadataValue]:
    """Decode header text into MetadataValue accessors."""
    return {key: MetadataValue(value) for key, value in decode_metadata(header).items()}
