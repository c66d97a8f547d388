#!/usr/bin/env python3
"""Create the students, teachers and games tables (DynamoDB Local or AWS)."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hoyu.records.repository import create_dynamodb_resource  # noqa: E402
from hoyu.records.tables import table_definitions  # noqa: E402
from hoyu.settings import Settings, SettingsError  # noqa: E402

logger = logging.getLogger("init_dynamodb")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "-r",
        "--reset",
        action="store_true",
        help="Delete existing tables before creating them",
    )
    parser.add_argument("--wait-seconds", type=int, default=60, help="Max wait for each table to become active")
    return parser.parse_args(argv)


def table_exists(client: Any, table_name: str) -> bool:
    try:
        client.describe_table(TableName=table_name)
    except client.exceptions.ResourceNotFoundException:
        return False
    return True


def _wait(client: Any, waiter_name: str, table_name: str, wait_seconds: int) -> None:
    attempts = max(1, wait_seconds // 2)
    client.get_waiter(waiter_name).wait(
        TableName=table_name,
        WaiterConfig={"Delay": 2, "MaxAttempts": attempts},
    )


def initialize_tables(client: Any, settings: Settings, *, reset: bool = False, wait_seconds: int = 60) -> list[str]:
    """Create any missing table; returns the names that were created."""
    existing = client.list_tables().get("TableNames", [])
    logger.info("Existing tables: %s", ", ".join(existing) or "none")

    created: list[str] = []
    for definition in table_definitions(settings.tables):
        name = definition["TableName"]
        if table_exists(client, name):
            if not reset:
                logger.info("Table %s already exists, skipping creation", name)
                continue
            logger.info("Deleting existing table %s", name)
            client.delete_table(TableName=name)
            _wait(client, "table_not_exists", name, wait_seconds)

        logger.info("Creating table %s", name)
        client.create_table(**definition)
        _wait(client, "table_exists", name, wait_seconds)
        created.append(name)
    return created


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
    except SettingsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    resource = create_dynamodb_resource(
        region=settings.region,
        endpoint_url=settings.dynamodb_endpoint,
        local=settings.is_local,
    )
    try:
        created = initialize_tables(resource.meta.client, settings, reset=args.reset, wait_seconds=args.wait_seconds)
    except Exception as exc:
        logger.exception("Failed to initialize tables")
        print(f"error: cannot initialize tables at {settings.dynamodb_endpoint or 'AWS'}: {exc}", file=sys.stderr)
        return 1

    print(f"Created {len(created)} table(s): {', '.join(created) or 'none'}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
