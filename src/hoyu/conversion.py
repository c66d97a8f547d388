"""Cell value coercion for spreadsheet rows headed to DynamoDB.

Every converter accepts a raw cell value (string, number, boolean, datetime
or ``None``) together with a default, and never raises: anything it cannot
interpret falls back to the default.
"""

from __future__ import annotations

import json
import math
import numbers
from datetime import date, datetime, timezone
from typing import Any, Sequence

_TRUE_STRINGS = frozenset({"true", "1", "yes"})


def utc_now_rfc3339() -> str:
    """Return the current UTC timestamp in RFC3339 form with trailing Z."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_rfc3339_utc(value: datetime) -> str:
    """Render a datetime as RFC3339 UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def is_blank(value: Any) -> bool:
    """True for cells that carry no value: ``None`` or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    return False


def to_string(value: Any, default: str = "") -> str:
    """
    Convert a cell to a string.

    Integral floats drop their ``.0`` (spreadsheets store ``123`` as ``123.0``),
    booleans render lower-case and datetimes render as RFC3339 UTC.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return default
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        return format_rfc3339_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def to_number(value: Any, default: int | float = 0) -> int | float:
    """
    Convert a cell to a number.

    ``to_number("123") == 123``, ``to_number("123.45") == 123.45``,
    ``to_number(None, 100) == 100`` and ``to_number("invalid") == 0``.
    Integral results are returned as ``int``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, numbers.Real):
        parsed = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            parsed = float(text)
        except ValueError:
            return default
    else:
        return default

    if not math.isfinite(parsed):
        return default
    if parsed.is_integer():
        return int(parsed)
    return parsed


def to_boolean(value: Any, default: bool = False) -> bool:
    """
    Convert a cell to a boolean.

    Strings are true for ``true``/``1``/``yes`` (any case), numbers are true
    when non-zero, and ``None`` yields the default.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, numbers.Real):
        if isinstance(value, float) and math.isnan(value):
            return default
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return default


def to_string_array(value: Any, default: Sequence[str] | None = None) -> list[str]:
    """
    Convert a cell to a list of strings.

    ``'["1A", "2B"]'`` parses as JSON, a list passes through element-wise, and
    any other scalar (including text that is not valid JSON) becomes a
    one-element list.
    """
    fallback = list(default) if default is not None else []
    if value is None:
        return fallback
    if isinstance(value, str) and value == "":
        return fallback
    if isinstance(value, float) and math.isnan(value):
        return fallback

    if isinstance(value, (list, tuple)):
        return [to_string(item) for item in value]

    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        if isinstance(parsed, list):
            return [to_string(item) for item in parsed]
        return [to_string(parsed)]

    return [to_string(value)]


def _parse_timestamp(text: str) -> datetime | None:
    candidate = text.strip()
    if not candidate:
        return None
    if candidate.endswith("Z") or candidate.endswith("z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


def to_date_string(value: Any, use_current_if_invalid: bool = True) -> str:
    """
    Normalize a cell to an RFC3339 UTC timestamp.

    Missing values become the current time (or ``""`` when
    ``use_current_if_invalid`` is false); unparseable values become the
    current time (or are returned unchanged).
    """
    if value is None or (isinstance(value, str) and value == ""):
        return utc_now_rfc3339() if use_current_if_invalid else ""

    if isinstance(value, datetime):
        return format_rfc3339_utc(value)
    if isinstance(value, date):
        return format_rfc3339_utc(datetime(value.year, value.month, value.day))

    text = to_string(value)
    parsed = _parse_timestamp(text) if isinstance(value, str) else None
    if parsed is not None:
        return format_rfc3339_utc(parsed)

    if use_current_if_invalid:
        return utc_now_rfc3339()
    return text


def map_row_to_object(headers: Sequence[Any], row: Sequence[Any]) -> dict[str, Any]:
    """Pair each non-empty header with the cell in the same position."""
    record: dict[str, Any] = {}
    for index, header in enumerate(headers):
        if is_blank(header):
            continue
        record[str(header)] = row[index] if index < len(row) else None
    return record


def validate_required_field(value: Any, field_name: str) -> tuple[bool, str | None]:
    """Return ``(True, None)`` or ``(False, "Missing <field_name>")``."""
    if is_blank(value):
        return False, f"Missing {field_name}"
    return True, None

