"""Spreadsheet-to-DynamoDB upsert pipeline for roster uploads."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from hoyu.conversion import is_blank, to_string, utc_now_rfc3339
from hoyu.records.model import Game, RecordValidationError
from hoyu.records.repository import RecordStore

from .schema import EntitySchema
from .spreadsheet import ParsedSheet, SheetRow

logger = logging.getLogger(__name__)

_TRAILING_DIGITS_RE = re.compile(r"(\d+)/*$")


@dataclass
class UpsertResult:
    """Counts and row-level errors from one upload."""

    processed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)

    def add_error(self, row_number: int, message: str) -> None:
        self.errors.append(f"Row {row_number}: {message}")


@dataclass(frozen=True)
class PlannedWrite:
    row_number: int
    key: str
    item: dict[str, Any]
    is_update: bool


def scratch_project_id(url: str) -> str:
    """Numeric suffix of a Scratch project URL, or ``""`` when there is none."""
    match = _TRAILING_DIGITS_RE.search(url.strip())
    return match.group(1) if match else ""


def _row_changes(schema: EntitySchema, row: SheetRow, *, is_update: bool) -> dict[str, Any]:
    """Typed values for every non-blank, writable cell in the row."""
    skipped = set(schema.stamped) | {schema.key}
    if is_update:
        skipped.update(schema.preserved_on_update)

    changes: dict[str, Any] = {}
    for column, raw in row.cells.items():
        if column in skipped or column not in schema.expected_headers:
            continue
        if is_blank(raw):
            continue
        changes[column] = schema.convert(column, raw)
    return changes


def _apply_game_conventions(changes: dict[str, Any], key: str, row_number: int) -> None:
    scratch_api = changes.get("scratch_api")
    if not isinstance(scratch_api, str) or not scratch_api:
        return
    project_id = scratch_project_id(scratch_api)
    if not project_id:
        return
    if "scratch_id" not in changes:
        changes["scratch_id"] = project_id
    if project_id != key:
        logger.warning(
            "Row %s: game_id %s does not match scratch_api project id %s",
            row_number,
            key,
            project_id,
        )


def _missing_references(
    schema: EntitySchema,
    rows: list[tuple[SheetRow, str]],
    reference_stores: Mapping[str, RecordStore],
) -> dict[str, set[str]]:
    """Referenced keys, per foreign-key column, that do not exist."""
    missing: dict[str, set[str]] = {}
    for column, entity in schema.foreign_keys.items():
        wanted = {
            to_string(row.cells.get(column)).strip()
            for row, _key in rows
            if not is_blank(row.cells.get(column))
        }
        if not wanted:
            continue
        store = reference_stores.get(entity)
        if store is None:
            logger.warning("No %s store available; skipping %s reference checks", entity, column)
            continue
        found = store.batch_get(sorted(wanted))
        missing[column] = wanted - set(found)
    return missing


def plan_writes(
    schema: EntitySchema,
    sheet: ParsedSheet,
    *,
    store: RecordStore,
    reference_stores: Mapping[str, RecordStore] | None = None,
    now: str | None = None,
) -> tuple[list[PlannedWrite], UpsertResult]:
    """Validate rows and merge them onto existing items without writing anything."""
    timestamp = now or utc_now_rfc3339()
    outcome = UpsertResult()

    candidates: list[tuple[SheetRow, str]] = []
    first_seen: dict[str, int] = {}
    for row in sheet.rows:
        raw_key = row.cells.get(schema.key)
        if is_blank(raw_key):
            outcome.add_error(row.row_number, f"Missing {schema.key}")
            continue
        key = to_string(raw_key).strip()
        if key in first_seen:
            outcome.add_error(
                row.row_number,
                f"Duplicate {schema.key} {key} (already in row {first_seen[key]})",
            )
            continue
        first_seen[key] = row.row_number
        candidates.append((row, key))

    existing = store.batch_get([key for _row, key in candidates])
    missing_refs = _missing_references(schema, candidates, reference_stores or {})

    planned: list[PlannedWrite] = []
    for row, key in candidates:
        bad_refs = [
            f"{column} {to_string(row.cells.get(column)).strip()} does not exist"
            for column in schema.foreign_keys
            if to_string(row.cells.get(column)).strip() in missing_refs.get(column, set())
        ]
        if bad_refs:
            outcome.add_error(row.row_number, "; ".join(bad_refs))
            continue

        current = existing.get(key)
        is_update = current is not None
        changes = _row_changes(schema, row, is_update=is_update)
        if schema.record_type is Game:
            _apply_game_conventions(changes, key, row.row_number)
        for attribute in schema.stamped:
            changes[attribute] = timestamp

        try:
            if current is not None:
                record = schema.record_type.from_item(current).merged(changes)
            else:
                changes["created_at"] = timestamp
                record = schema.record_type(key).merged(changes)
        except RecordValidationError as exc:
            outcome.add_error(row.row_number, str(exc))
            continue

        item = record.to_item()
        if is_update:
            # Only supplied cells and stamps are written; counters may have moved since the read.
            item = {
                attribute: item[attribute]
                for attribute in changes
                if attribute in item and attribute not in schema.preserved_on_update
            }
        planned.append(PlannedWrite(row_number=row.row_number, key=key, item=item, is_update=is_update))

    return planned, outcome


def upsert_rows(
    schema: EntitySchema,
    sheet: ParsedSheet,
    *,
    store: RecordStore,
    reference_stores: Mapping[str, RecordStore] | None = None,
    now: str | None = None,
) -> UpsertResult:
    """
    Upsert every valid row of ``sheet`` into ``store``.

    New keys are written with batched puts; existing keys are updated in
    place with a SET over only the attributes the row supplies plus the
    stamped timestamps, so stored counters and ``created_at`` are never
    rewritten.
    Records absent from the sheet are left untouched.
    """
    planned, result = plan_writes(
        schema,
        sheet,
        store=store,
        reference_stores=reference_stores,
        now=now,
    )

    inserts = [write for write in planned if not write.is_update]
    updates = [write for write in planned if write.is_update]

    rows_by_key = {write.key: write.row_number for write in inserts}
    failures = dict(store.batch_put([write.item for write in inserts]))
    for write in inserts:
        if write.key in failures:
            result.add_error(rows_by_key[write.key], f"Write failed: {failures[write.key]}")
            continue
        result.inserted += 1
        result.processed += 1

    for write in updates:
        try:
            store.update_fields(write.key, write.item)
        except Exception as exc:
            logger.exception("Update failed for %s %s", schema.key, write.key)
            result.add_error(write.row_number, f"Write failed: {exc}")
            continue
        result.updated += 1
        result.processed += 1

    result.errors.sort(key=_error_row_number)
    logger.info(
        "Upserted %s %s (%s inserted, %s updated, %s errors)",
        result.processed,
        schema.entity,
        result.inserted,
        result.updated,
        len(result.errors),
    )
    return result


def _error_row_number(message: str) -> int:
    match = re.match(r"Row (\d+):", message)
    return int(match.group(1)) if match else 0
