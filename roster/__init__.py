"""Spreadsheet import and export for the roster tables."""

from .pipeline import PlannedWrite, UpsertResult, plan_writes, scratch_project_id, upsert_rows
from .schema import GAMES, SCHEMAS, STUDENTS, TEACHERS, EntitySchema, schema_for
from .spreadsheet import (
    XLSX_CONTENT_TYPE,
    HeaderValidationError,
    ParsedSheet,
    SheetRow,
    SpreadsheetError,
    build_workbook,
    decode_base64_file,
    parse_sheet,
    validate_headers,
)

__all__ = [
    "EntitySchema",
    "GAMES",
    "HeaderValidationError",
    "ParsedSheet",
    "PlannedWrite",
    "SCHEMAS",
    "STUDENTS",
    "SheetRow",
    "SpreadsheetError",
    "TEACHERS",
    "UpsertResult",
    "XLSX_CONTENT_TYPE",
    "build_workbook",
    "decode_base64_file",
    "parse_sheet",
    "plan_writes",
    "schema_for",
    "scratch_project_id",
    "upsert_rows",
    "validate_headers",
]
