from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from schoolsync.config import DEFAULT_STORE_PATH, get_settings
from schoolsync.logging_config import configure_logging
from schoolsync.storage import DatabaseStore, DurableStore, JsonFileStore


logger = logging.getLogger("backfill")


def backfill_store(source: DurableStore, target: DurableStore, *, overwrite: bool = False) -> int:
    copied = 0
    existing = set(target.keys())
    for key in source.keys():
        if key in existing and not overwrite:
            logger.info("Skipping %s; already present in target store", key)
            continue
        value = source.get(key)
        if value is None:
            continue
        target.set(key, value)
        copied += 1
    logger.info("Copied %d keys", copied)
    return copied


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Copy a file key-value store into the database store.")
    parser.add_argument("--source", type=Path, default=DEFAULT_STORE_PATH)
    parser.add_argument("--database-url", default=None, help="Defaults to SCHOOLSYNC_DATABASE_URL.")
    parser.add_argument("--overwrite", action="store_true", help="Replace keys that already exist in the database.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    configure_logging()
    args = parse_args(argv)
    if not args.source.exists():
        logger.info("No file store found at %s", args.source)
        return 0
    database_url = args.database_url or get_settings().database_url
    total = backfill_store(JsonFileStore(args.source), DatabaseStore.from_url(database_url), overwrite=args.overwrite)
    logger.info("Backfill completed: %d keys", total)
    return total


if __name__ == "__main__":
    main()
