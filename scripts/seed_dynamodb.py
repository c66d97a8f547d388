#!/usr/bin/env python3
"""Load fixtures/seed_data.json into the students, teachers and games tables."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Mapping

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.tables import record_stores  # noqa: E402
from hoyu.conversion import utc_now_rfc3339  # noqa: E402
from hoyu.records.model import RecordValidationError, record_type_for  # noqa: E402
from hoyu.records.repository import RecordStore  # noqa: E402
from hoyu.settings import Settings, SettingsError  # noqa: E402

logger = logging.getLogger("seed_dynamodb")

DEFAULT_SEED_FILE = ROOT / "fixtures" / "seed_data.json"
SEED_ORDER = ("teachers", "students", "games")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed-file", default=str(DEFAULT_SEED_FILE), help="Path to the seed JSON document")
    return parser.parse_args(argv)


def load_seed_data(path: Path) -> dict[str, list[dict[str, Any]]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"seed file {path} must contain a JSON object")
    for entity in SEED_ORDER:
        if not isinstance(payload.get(entity, []), list):
            raise ValueError(f"seed file {path}: '{entity}' must be a list")
    return payload


def seed_items(entity: str, rows: list[Mapping[str, Any]], *, now: str | None = None) -> list[dict[str, Any]]:
    """Validate seed rows through the record model and stamp timestamps."""
    record_type = record_type_for(entity)
    timestamp = now or utc_now_rfc3339()
    items: list[dict[str, Any]] = []
    for row in rows:
        stamped = {"created_at": timestamp, "updated_at": timestamp, **row}
        items.append(record_type.from_item(stamped).to_item())
    return items


def seed_tables(
    stores: Mapping[str, RecordStore],
    data: Mapping[str, list[Mapping[str, Any]]],
    *,
    now: str | None = None,
) -> dict[str, int]:
    """Write every seed row; returns the number written per entity."""
    counts: dict[str, int] = {}
    for entity in SEED_ORDER:
        items = seed_items(entity, list(data.get(entity, [])), now=now)
        failures = stores[entity].batch_put(items)
        for key, error in failures:
            logger.error("Failed to seed %s %s: %s", entity, key, error)
        counts[entity] = len(items) - len(failures)
        logger.info("Seeded %s %s", counts[entity], entity)
    return counts


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
        data = load_seed_data(Path(args.seed_file).resolve())
    except (SettingsError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        counts = seed_tables(record_stores(settings), data)
    except RecordValidationError as exc:
        print(f"error: invalid seed row: {exc}", file=sys.stderr)
        return 2
    except Exception:
        logger.exception("Failed to seed tables")
        return 1

    print("Seeded " + ", ".join(f"{count} {entity}" for entity, count in counts.items()))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
