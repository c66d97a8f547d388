"""Excel exports of the students, teachers and games tables."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Sequence

from backend import api_gateway
from backend.tables import record_stores
from hoyu.records.model import from_dynamodb_number
from hoyu.records.repository import DynamoDbRecordStore
from roster.schema import EntitySchema, schema_for
from roster.spreadsheet import XLSX_CONTENT_TYPE, build_workbook

logger = logging.getLogger(__name__)

_DOWNLOAD_PATH_RE = re.compile(r"/([^/]+)/download")


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return from_dynamodb_number(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        values = sorted(value) if isinstance(value, (set, frozenset)) else list(value)
        return json.dumps([str(entry) for entry in values])
    return value


def _class_number(value: Any) -> tuple[int, float, str]:
    text = str(value or "").strip()
    if text.isdigit():
        return (0, float(text), text)
    return (1, 0.0, text)


def _sort_key(schema: EntitySchema):
    if schema.entity == "students":
        return lambda item: (str(item.get("class") or ""), _class_number(item.get("class_no")))
    return lambda item: str(item.get(schema.key) or "")


def parse_class_filter(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [code.strip() for code in raw.split(",") if code.strip()]


def export_rows(
    schema: EntitySchema,
    items: Iterable[Mapping[str, Any]],
    *,
    classes: Sequence[str] | None = None,
) -> list[dict[str, Any]]:
    """Sorted workbook rows for ``items``, limited to ``classes`` for students."""
    selected = list(items)
    if classes and schema.entity == "students":
        wanted = set(classes)
        selected = [item for item in selected if str(item.get("class") or "") in wanted]

    selected.sort(key=_sort_key(schema))
    return [{column: _cell(item.get(column)) for column in schema.export_columns} for item in selected]


def export_filename(entity: str, today: date | None = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    return f"{entity}_{day.isoformat()}.xlsx"


def build_export(
    schema: EntitySchema,
    store: DynamoDbRecordStore,
    *,
    classes: Sequence[str] | None = None,
) -> bytes:
    rows = export_rows(schema, store.scan_all(), classes=classes)
    logger.info("Exporting %s %s", len(rows), schema.entity)
    return build_workbook(
        rows,
        schema.export_columns,
        sheet_name=schema.sheet_name,
        column_widths=schema.column_widths,
    )


def _entity_from_event(event: Mapping[str, Any]) -> str | None:
    params = api_gateway.path_params(event)
    if params.get("entity"):
        return params["entity"]
    match = _DOWNLOAD_PATH_RE.fullmatch(api_gateway.normalized_path(event))
    if match:
        return match.group(1)
    return None


def lambda_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    entity: str | None = None,
    stores: Mapping[str, DynamoDbRecordStore] | None = None,
    today: date | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for GET /{entity}/download."""
    schema = schema_for((entity or _entity_from_event(event) or "").strip().lower())
    if schema is None:
        return api_gateway.error_response(400, "entity must be one of: students, teachers, games")

    classes = parse_class_filter(api_gateway.query_params(event).get("classes"))
    try:
        active = stores if stores is not None else record_stores()
        data = build_export(schema, active[schema.entity], classes=classes)
    except Exception:
        logger.exception("Failed to export %s", schema.entity)
        return api_gateway.internal_error_response()

    return api_gateway.file_response(
        data,
        filename=export_filename(schema.entity, today),
        content_type=XLSX_CONTENT_TYPE,
    )
