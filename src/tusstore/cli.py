"""CLI entry point for TusStore.

Administrative access to a store configured by YAML: create uploads, append a
local file to one, inspect, dump or delete it.

Usage:
    tusstore --config tusstore.yaml create --length 1024 --metadata "filename aGVsbG8="
    tusstore --config tusstore.yaml upload <file_id> ./payload.bin
    tusstore --config tusstore.yaml info <file_id>
    tusstore --config tusstore.yaml cat <file_id> > out.bin
    tusstore --config tusstore.yaml delete <file_id>
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tusstore import metrics
from tusstore.config import TusStoreConfig, load_config
from tusstore.errors import TusStoreError
from tusstore.logging_config import configure_logging
from tusstore.storage import create_storage_backend
from tusstore.store import TusStore

logger = logging.getLogger("tusstore")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="tusstore",
        description="TusStore - resumable-upload storage engine",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: built-in defaults)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create an empty upload")
    length = create.add_mutually_exclusive_group(required=True)
    length.add_argument("--length", type=int, help="Declared upload length in bytes")
    length.add_argument("--deferred", action="store_true", help="Leave the length unknown")
    create.add_argument("--metadata", type=str, default=None, help="Metadata header text")

    upload = sub.add_parser("upload", help="Append a local file to an upload")
    upload.add_argument("file_id")
    upload.add_argument("path", type=Path)

    info = sub.add_parser("info", help="Show an upload's length, offset and metadata")
    info.add_argument("file_id")

    cat = sub.add_parser("cat", help="Write an upload's content to stdout")
    cat.add_argument("file_id")

    delete = sub.add_parser("delete", help="Delete an upload")
    delete.add_argument("file_id")

    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, store: TusStore) -> int:
    """Execute one subcommand against an initialized store.

    Returns:
        The process exit status.
    """
    if args.command == "create":
        file_id = await store.create_file(None if args.deferred else args.length, args.metadata)
        print(file_id)
        return 0

    if args.command == "upload":
        with open(args.path, "rb") as fh:
            written = await store.append_data(
                args.file_id, fh, content_length=args.path.stat().st_size
            )
        offset = await store.get_upload_offset(args.file_id)
        print(json.dumps({"bytes_written": written, "upload_offset": offset}))
        return 0

    if args.command == "info":
        record = await store.get_file(args.file_id)
        if record is None:
            logger.error("Upload not found: %s", args.file_id)
            return 1
        metadata = {
            key: value.get_string("utf-8") if _is_utf8(value.get_bytes()) else None
            for key, value in record.get_metadata().items()
        }
        print(json.dumps({
            "file_id": record.file_id,
            "upload_length": record.upload_length,
            "upload_offset": record.upload_offset,
            "complete": record.is_complete,
            "created_at": record.created_at,
            "metadata": metadata,
        }, indent=2))
        return 0

    if args.command == "cat":
        record = await store.get_file(args.file_id)
        if record is None:
            logger.error("Upload not found: %s", args.file_id)
            return 1
        out = sys.stdout.buffer
        async for chunk in record.get_content():
            out.write(chunk)
        out.flush()
        return 0

    if args.command == "delete":
        if not await store.delete_file(args.file_id):
            logger.error("Upload not found: %s", args.file_id)
            return 1
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def _is_utf8(data: bytes) -> bool:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


async def _main_async(args: argparse.Namespace, config: TusStoreConfig) -> int:
    backend = create_storage_backend(config.storage)
    async with TusStore(backend, chunk_size=config.store.chunk_size) as store:
        try:
            return await _run(args, store)
        except TusStoreError as exc:
            logger.error("%s: %s", exc.code, exc.message)
            return 1


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the TusStore CLI.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    if args.config is None:
        config = TusStoreConfig()
    else:
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            logger.error("Config file not found: %s", args.config)
            sys.exit(1)
        except Exception as exc:
            logger.error("Failed to load config: %s", exc)
            sys.exit(1)

    # Apply CLI overrides
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format

    configure_logging(level=config.logging.level, fmt=config.logging.format)
    if config.metrics.enabled:
        metrics.init_metrics()

    sys.exit(asyncio.run(_main_async(args, config)))


if __name__ == "__main__":
    main()
