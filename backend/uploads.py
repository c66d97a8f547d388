"""Upload flow for roster spreadsheets (students, teachers, games)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from backend import api_gateway
from backend.tables import record_stores
from hoyu.records.repository import RecordStore
from hoyu.settings import DEFAULT_MAX_UPLOAD_RECORDS, Settings
from roster.pipeline import UpsertResult, upsert_rows
from roster.schema import EntitySchema, schema_for
from roster.spreadsheet import (
    HeaderValidationError,
    SpreadsheetError,
    decode_base64_file,
    parse_sheet,
    validate_headers,
)

logger = logging.getLogger(__name__)

_UPLOAD_PATH_RE = re.compile(r"/upload/([^/]+)")


class UploadValidationError(ValueError):
    """Raised when upload requests violate API constraints."""


@dataclass(frozen=True)
class UploadRequest:
    """Validated upload request payload."""

    schema: EntitySchema
    file_bytes: bytes


def parse_upload_request(entity: str | None, payload: Mapping[str, Any]) -> UploadRequest:
    """Validate the target entity and decode the base64 ``file`` field."""
    schema = schema_for((entity or "").strip().lower())
    if schema is None:
        raise UploadValidationError("entity must be one of: students, teachers, games")

    encoded = payload.get("file")
    if not isinstance(encoded, str) or not encoded.strip():
        raise UploadValidationError("No file uploaded")

    return UploadRequest(schema=schema, file_bytes=decode_base64_file(encoded))


def process_upload(
    upload: UploadRequest,
    *,
    stores: Mapping[str, RecordStore],
    max_records: int = DEFAULT_MAX_UPLOAD_RECORDS,
    now: str | None = None,
) -> UpsertResult:
    """Parse, validate and upsert one uploaded spreadsheet."""
    schema = upload.schema
    sheet = parse_sheet(upload.file_bytes)
    validate_headers(sheet.headers, schema.required_headers, schema.expected_headers)

    if len(sheet.rows) > max_records:
        raise UploadValidationError(
            f"File contains {len(sheet.rows)} records. Maximum allowed is {max_records:,} records."
        )

    return upsert_rows(
        schema,
        sheet,
        store=stores[schema.entity],
        reference_stores=stores,
        now=now,
    )


def upload_response_payload(entity: str, result: UpsertResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "message": (
            f"Successfully processed {result.processed} {entity} "
            f"({result.inserted} inserted, {result.updated} updated)"
        ),
        "processed": result.processed,
        "inserted": result.inserted,
        "updated": result.updated,
    }
    if result.errors:
        payload["errors"] = list(result.errors)
    return payload


def _entity_from_event(event: Mapping[str, Any]) -> str | None:
    params = api_gateway.path_params(event)
    if params.get("entity"):
        return params["entity"]
    match = _UPLOAD_PATH_RE.fullmatch(api_gateway.normalized_path(event))
    if match:
        return match.group(1)
    return None


def lambda_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    entity: str | None = None,
    stores: Mapping[str, RecordStore] | None = None,
    settings: Settings | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for POST /upload/{entity}."""
    try:
        active = settings or Settings.from_env()
        payload: Mapping[str, Any] = {}
        if event.get("body") not in (None, ""):
            parsed, error = api_gateway.parse_json_body(event)
            if error is not None:
                return api_gateway.error_response(400, error)
            payload = parsed or {}

        upload = parse_upload_request(entity or _entity_from_event(event), payload)
        result = process_upload(
            upload,
            stores=stores if stores is not None else record_stores(active),
            max_records=active.max_upload_records,
        )
        return api_gateway.success_response(upload_response_payload(upload.schema.entity, result))
    except HeaderValidationError as exc:
        return api_gateway.error_response(400, str(exc), expectedHeaders=exc.expected_headers)
    except (UploadValidationError, SpreadsheetError) as exc:
        return api_gateway.error_response(400, str(exc))
    except Exception:
        logger.exception("Upload failed")
        return api_gateway.internal_error_response()
