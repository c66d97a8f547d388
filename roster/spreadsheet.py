"""Spreadsheet decoding, header validation and workbook export."""

from __future__ import annotations

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import pandas as pd
from openpyxl.utils import get_column_letter

from hoyu.conversion import is_blank

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
_ZIP_SIGNATURE = b"PK\x03\x04"
_OLE_SIGNATURE = b"\xd0\xcf\x11\xe0"


class SpreadsheetError(ValueError):
    """Raised when an uploaded file cannot be read as a roster spreadsheet."""


class HeaderValidationError(SpreadsheetError):
    """Raised when required columns are missing from the header row."""

    def __init__(self, message: str, expected_headers: Sequence[str]) -> None:
        super().__init__(message)
        self.expected_headers = list(expected_headers)


@dataclass(frozen=True)
class SheetRow:
    """One non-blank data row with its 1-based spreadsheet row number."""

    row_number: int
    cells: dict[str, Any]


@dataclass(frozen=True)
class ParsedSheet:
    headers: tuple[str, ...]
    rows: tuple[SheetRow, ...]


def decode_base64_file(payload: str) -> bytes:
    """Decode the base64 ``file`` field of an upload request."""
    if "," in payload and payload.lstrip().startswith("data:"):
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise SpreadsheetError("file must be base64 encoded") from exc


def read_rows(data: bytes) -> list[list[Any]]:
    """Read the first worksheet (or a CSV file) as a list of raw rows."""
    if not data:
        raise SpreadsheetError("File is empty or contains no data rows")
    if data.startswith(_OLE_SIGNATURE):
        raise SpreadsheetError("Unsupported file format: save legacy .xls files as .xlsx or .csv")

    try:
        if data.startswith(_ZIP_SIGNATURE):
            frame = pd.read_excel(
                io.BytesIO(data),
                sheet_name=0,
                header=None,
                dtype=object,
                engine="openpyxl",
            )
        else:
            text = data.decode("utf-8-sig")
            frame = pd.read_csv(
                io.StringIO(text),
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
    except pd.errors.EmptyDataError as exc:
        raise SpreadsheetError("File is empty or contains no data rows") from exc
    except UnicodeDecodeError as exc:
        raise SpreadsheetError("CSV files must be UTF-8 encoded") from exc
    except (pd.errors.ParserError, ValueError, KeyError) as exc:
        raise SpreadsheetError(f"Unable to read spreadsheet: {exc}") from exc

    frame = frame.astype(object).where(frame.notna(), None)
    return [list(row) for row in frame.itertuples(index=False, name=None)]


def normalize_header(value: Any) -> str:
    if is_blank(value):
        return ""
    text = str(value).strip().lower()
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return text


def parse_sheet(data: bytes) -> ParsedSheet:
    """Split raw rows into normalized headers and non-blank data rows."""
    raw_rows = read_rows(data)
    if len(raw_rows) < 2:
        raise SpreadsheetError("File is empty or contains no data rows")

    headers = tuple(normalize_header(value) for value in raw_rows[0])
    rows: list[SheetRow] = []
    for offset, raw in enumerate(raw_rows[1:]):
        if all(is_blank(cell) for cell in raw):
            continue
        cells: dict[str, Any] = {}
        for index, header in enumerate(headers):
            if not header or header in cells:
                continue
            cells[header] = raw[index] if index < len(raw) else None
        rows.append(SheetRow(row_number=offset + 2, cells=cells))

    if not rows:
        raise SpreadsheetError("File is empty or contains no data rows")
    return ParsedSheet(headers=headers, rows=tuple(rows))


def validate_headers(
    headers: Sequence[str],
    required: Sequence[str],
    expected: Sequence[str],
) -> None:
    """Raise ``HeaderValidationError`` when any required column is missing."""
    missing = [header for header in required if header not in headers]
    if missing:
        raise HeaderValidationError(
            f"Missing required column(s): {', '.join(missing)}. Please check your Excel file headers.",
            expected,
        )

    unexpected = [header for header in headers if header and header not in expected]
    if unexpected:
        logger.warning("Ignoring unexpected spreadsheet headers: %s", ", ".join(unexpected))


def build_workbook(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    *,
    sheet_name: str,
    column_widths: Mapping[str, int] | None = None,
) -> bytes:
    """Render ``rows`` into a single-sheet .xlsx workbook."""
    frame = pd.DataFrame([[row.get(column) for column in columns] for row in rows], columns=list(columns))
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=sheet_name, index=False)
        worksheet = writer.sheets[sheet_name]
        for index, column in enumerate(columns, start=1):
            width = (column_widths or {}).get(column)
            if width:
                worksheet.column_dimensions[get_column_letter(index)].width = width
    return buffer.getvalue()
