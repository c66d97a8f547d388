"""API Gateway proxy event parsing and response builders shared by every handler."""

from __future__ import annotations

import base64
import json
import os
from decimal import Decimal
from typing import Any, Dict, Mapping

from hoyu.records.model import from_dynamodb_number

_DEFAULT_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"


def cors_headers() -> dict[str, str]:
    origin = os.getenv("CORS_ALLOW_ORIGIN", "*").strip() or "*"
    methods = os.getenv("CORS_ALLOW_METHODS", "GET,POST,OPTIONS").strip() or "GET,POST,OPTIONS"
    allow_headers = os.getenv("CORS_ALLOW_HEADERS", _DEFAULT_ALLOW_HEADERS).strip() or _DEFAULT_ALLOW_HEADERS
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": allow_headers,
    }


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return from_dynamodb_number(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_response(status_code: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Build API Gateway Lambda proxy response."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **cors_headers()},
        "body": json.dumps(payload, default=_json_default),
    }


def success_response(payload: Mapping[str, Any], status_code: int = 200) -> Dict[str, Any]:
    return json_response(status_code, {"success": True, **payload})


def error_response(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    return json_response(status_code, {"success": False, "message": message, **extra})


def internal_error_response() -> Dict[str, Any]:
    return error_response(500, "Internal server error")


def file_response(data: bytes, *, filename: str, content_type: str) -> Dict[str, Any]:
    """Binary download response; API Gateway decodes the base64 body."""
    return {
        "statusCode": 200,
        "headers": {
            "Content-Type": content_type,
            "Content-Disposition": f'attachment; filename="{filename}"',
            **cors_headers(),
        },
        "body": base64.b64encode(data).decode("ascii"),
        "isBase64Encoded": True,
    }


def _http_context(event: Mapping[str, Any]) -> Mapping[str, Any]:
    context = event.get("requestContext")
    http = context.get("http") if isinstance(context, dict) else None
    return http if isinstance(http, dict) else {}


def request_method(event: Mapping[str, Any]) -> str:
    """Upper-cased method from an HTTP API or REST API event."""
    method = _http_context(event).get("method") or event.get("httpMethod")
    return method.upper() if isinstance(method, str) else ""


def request_path(event: Mapping[str, Any]) -> str:
    for candidate in (event.get("rawPath"), event.get("path")):
        if isinstance(candidate, str) and candidate:
            return candidate
    return "/"


def _stage(event: Mapping[str, Any]) -> str:
    context = event.get("requestContext")
    stage = context.get("stage") if isinstance(context, dict) else None
    if not isinstance(stage, str) or stage.strip() == "$default":
        return ""
    return stage.strip()


def normalized_path(event: Mapping[str, Any]) -> str:
    """Request path without a trailing slash or a stage prefix such as ``/dev``."""
    path = request_path(event)
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    stage = _stage(event)
    if not stage:
        return path
    prefix = f"/{stage}"
    if path == prefix:
        return "/"
    return path[len(prefix) :] if path.startswith(prefix + "/") else path


def query_params(event: Mapping[str, Any]) -> dict[str, str]:
    raw = event.get("queryStringParameters") or {}
    return {key: value for key, value in raw.items() if isinstance(value, str)}


def path_params(event: Mapping[str, Any]) -> dict[str, str]:
    raw = event.get("pathParameters") or {}
    return {key: value for key, value in raw.items() if isinstance(value, str)}


def parse_json_body(event: Mapping[str, Any]) -> tuple[dict[str, Any] | None, str | None]:
    """Decode a JSON object body, base64 or plain; returns ``(payload, error)``."""
    text = event.get("body")
    if isinstance(text, str) and event.get("isBase64Encoded") is True:
        try:
            text = base64.b64decode(text).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            text = None
    if not isinstance(text, str):
        return None, "request body must be a JSON object"

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return None, "request body must be valid JSON"
    if not isinstance(decoded, dict):
        return None, "request body must be a JSON object"
    return decoded, None


def optional_json_body(event: Mapping[str, Any]) -> dict[str, Any]:
    """Parse a body that may be absent; anything unreadable counts as empty."""
    body = event.get("body")
    if body is None or body == "":
        return {}
    payload, _error = parse_json_body(event)
    return payload or {}
