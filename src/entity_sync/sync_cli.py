#!/usr/bin/env python3
"""
CLI for loading and reading entity datasets in Snowflake.

Usage:
    python -m entity_sync.sync_cli --config config/sync.yaml load --dataset people --file people.json
    python -m entity_sync.sync_cli --config config/sync.yaml load --dataset people --file all.json --full-sync-id 42
    python -m entity_sync.sync_cli --config config/sync.yaml read --dataset people [--since TOKEN] [--out page.json]
    python -m entity_sync.sync_cli --config config/sync.yaml datasets
    python -m entity_sync.sync_cli encode --input rsa_key.p8
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from entity_sync.config.config_loader import SyncConfig
from entity_sync.core.exceptions import EntitySyncError
from entity_sync.core.logging import configure_logging, level_from_name
from entity_sync.metrics import InMemoryMetrics
from entity_sync.service import (
    HEADER_FULL_SYNC_END,
    HEADER_FULL_SYNC_ID,
    HEADER_FULL_SYNC_START,
    EntitySyncService,
)
from entity_sync.warehouse.connection import SnowflakeConnectionProvider, encode_private_key


logger = logging.getLogger("entity_sync.sync_cli")


def load_dotenv_if_available() -> None:
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except ImportError:
        # dotenv is optional
        pass


def setup_logging(verbose: bool = False, config: Optional[SyncConfig] = None) -> None:
    """Configure logging from the flags and the layer config."""
    level = logging.INFO
    structured = False
    service = None
    if config is not None:
        level = level_from_name(config.get("layer_config.log_level"), logging.INFO)
        structured = str(config.get("layer_config.log_format", "text")).lower() == "json"
        service = config.get("layer_config.service_name")
    if verbose:
        level = logging.DEBUG
    configure_logging(level=level, structured=structured, service=service)


def build_service(config: SyncConfig) -> EntitySyncService:
    """Build the service with a Snowflake connection provider."""
    config.validate()
    provider = SnowflakeConnectionProvider.from_system_config(config.get_system_config())
    return EntitySyncService(config, provider, metrics=InMemoryMetrics())


def cmd_load(args, config: SyncConfig) -> int:
    """Stream a wire-format file into a dataset."""
    path = Path(args.file)
    if not path.exists():
        logger.error(f"Input file not found: {path}")
        return 1

    headers = {}
    if args.full_sync_id:
        # the whole file is one full sync: start and end in the same request
        headers = {
            HEADER_FULL_SYNC_ID: args.full_sync_id,
            HEADER_FULL_SYNC_START: "true",
            HEADER_FULL_SYNC_END: "true",
        }

    service = build_service(config)
    try:
        with open(path, "rb") as f:
            count = service.write(args.dataset, f, headers)
        logger.debug(f"Metrics: {service.metrics.summary()}")
    finally:
        service.close()

    logger.info(f"Loaded {count} entities into {args.dataset}")
    print(count)
    return 0


def cmd_read(args, config: SyncConfig) -> int:
    """Write one page of a dataset."""
    service = build_service(config)
    try:
        if args.out:
            with open(args.out, "w", encoding="utf-8") as out:
                token = service.read(args.dataset, since=args.since or "", out=out)
        else:
            token = service.read(args.dataset, since=args.since or "", out=sys.stdout)
    finally:
        service.close()

    logger.info(f"Next since token: {token}")
    return 0


def cmd_encode(args) -> int:
    """Print a PEM private key as base64 DER PKCS8."""
    path = Path(args.input)
    if not path.exists():
        logger.error(f"Key file not found: {path}")
        return 1

    passphrase = os.environ.get("SNOWFLAKE_PRIVATE_KEY_PASSPHRASE")
    try:
        encoded = encode_private_key(
            path.read_bytes(), passphrase.encode("utf-8") if passphrase else None
        )
    except (ValueError, TypeError) as e:
        logger.error(f"Failed to read private key {path}: {e}")
        return 1

    print(encoded)
    return 0


def cmd_datasets(args, config: SyncConfig) -> int:
    """List configured datasets."""
    for definition in config.get_dataset_definitions():
        print(definition.name)
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Entity Sync CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c", "--config",
        default=os.environ.get("ENTITY_SYNC_CONFIG"),
        help="Path or URL of the config document (default: $ENTITY_SYNC_CONFIG)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    load_parser = subparsers.add_parser("load", help="Load a wire-format file into a dataset")
    load_parser.add_argument("--dataset", required=True, help="Dataset name")
    load_parser.add_argument("--file", required=True, help="Path to the entity JSON file")
    load_parser.add_argument("--full-sync-id", help="Replace the whole dataset as one full sync")

    read_parser = subparsers.add_parser("read", help="Read a page of a dataset")
    read_parser.add_argument("--dataset", required=True, help="Dataset name")
    read_parser.add_argument("--since", help="Continuation token of the previous page")
    read_parser.add_argument("--out", help="Output file (default: stdout)")

    encode_parser = subparsers.add_parser("encode", help="Encode a PEM private key for SNOWFLAKE_PRIVATE_KEY")
    encode_parser.add_argument("--input", required=True, help="Path to the PEM private key")

    subparsers.add_parser("datasets", help="List configured datasets")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv_if_available()
    args = parse_args(argv)

    if args.command is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1

    if args.command == "encode":
        setup_logging(verbose=args.verbose)
        return cmd_encode(args)

    try:
        config = SyncConfig(args.config) if args.config else SyncConfig()
    except (EntitySyncError, OSError) as e:
        setup_logging(verbose=args.verbose)
        logger.error(f"Failed to load config: {e}")
        return 1
    setup_logging(verbose=args.verbose, config=config)

    try:
        if args.command == "load":
            return cmd_load(args, config)
        elif args.command == "read":
            return cmd_read(args, config)
        elif args.command == "datasets":
            return cmd_datasets(args, config)
    except EntitySyncError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    print(f"Unknown command: {args.command}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
