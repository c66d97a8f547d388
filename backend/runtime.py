"""API Gateway Lambda runtime handler dispatching every portal route."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping

from backend import api_gateway, auth, downloads, games, uploads
from hoyu.records.repository import DynamoDbRecordStore
from hoyu.settings import Settings, SettingsError

logger = logging.getLogger(__name__)

_LOGGER_NAMES = ("backend", "hoyu", "roster")
_UPLOAD_RE = re.compile(r"/upload/(students|teachers|games)")
_DOWNLOAD_RE = re.compile(r"/(students|teachers|games)/download")
_GAME_RE = re.compile(r"/games/([^/]+)")
_CLICK_RE = re.compile(r"/games/([^/]+)/click")


def configure_logging(settings: Settings) -> None:
    """Apply ``LOG_LEVEL`` to the application loggers."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s %(message)s")
    for name in _LOGGER_NAMES:
        logging.getLogger(name).setLevel(settings.log_level)


def _with_path_param(event: Mapping[str, Any], name: str, value: str) -> dict[str, Any]:
    routed = dict(event)
    params = api_gateway.path_params(event)
    params.setdefault(name, value)
    routed["pathParameters"] = params
    return routed


def route(
    event: Mapping[str, Any],
    context: Any,
    *,
    settings: Settings,
    stores: Mapping[str, DynamoDbRecordStore] | None = None,
) -> Dict[str, Any]:
    method = api_gateway.request_method(event)
    path = api_gateway.normalized_path(event)

    if method == "OPTIONS":
        return api_gateway.json_response(200, {})

    if method == "GET" and path == "/health":
        return api_gateway.json_response(200, {"status": "ok"})

    if method == "POST" and path == "/auth/login":
        return auth.lambda_handler(event, context, stores=stores)

    if method == "POST":
        match = _UPLOAD_RE.fullmatch(path)
        if match:
            return uploads.lambda_handler(
                event,
                context,
                entity=match.group(1),
                stores=stores,
                settings=settings,
            )

        match = _CLICK_RE.fullmatch(path)
        if match:
            return games.click_handler(_with_path_param(event, "gameId", match.group(1)), context, stores=stores)

    if method == "GET":
        match = _DOWNLOAD_RE.fullmatch(path)
        if match:
            return downloads.lambda_handler(event, context, entity=match.group(1), stores=stores)

        if path == "/games":
            return games.list_handler(event, context, stores=stores)

        match = _GAME_RE.fullmatch(path)
        if match:
            return games.get_handler(_with_path_param(event, "gameId", match.group(1)), context, stores=stores)

    return api_gateway.error_response(404, "Not found")


def lambda_handler(event: Mapping[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway Lambda entrypoint for the portal API."""
    try:
        settings = Settings.from_env()
    except SettingsError:
        logger.exception("Invalid runtime configuration")
        return api_gateway.internal_error_response()

    configure_logging(settings)
    try:
        return route(event, context, settings=settings)
    except Exception:
        logger.exception("Unhandled error for %s %s", api_gateway.request_method(event), api_gateway.request_path(event))
        return api_gateway.internal_error_response()
