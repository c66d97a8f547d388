"""Game browsing and click tracking."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from backend import api_gateway
from backend.tables import record_stores
from hoyu.conversion import to_number
from hoyu.records.model import MARKS_MAX, Game, RecordValidationError, Role, from_dynamodb_number
from hoyu.records.repository import DynamoDbRecordStore, RecordNotFoundError
from hoyu.records.tables import STUDENT_INDEX, TEACHER_INDEX

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000

# Flat award per play when the client does not report time spent.
MARKS_BY_DIFFICULTY = {"Beginner": 5, "Intermediate": 10, "Advanced": 15}
# Marks per started minute of play.
DIFFICULTY_MULTIPLIERS = {"Beginner": 1, "Intermediate": 2, "Advanced": 3}

_GAME_PATH_RE = re.compile(r"/games/([^/]+)(?:/click)?")


class GameNotFoundError(LookupError):
    """Raised when a game id does not exist in the games table."""


class GameQueryError(ValueError):
    """Raised when listing parameters are malformed."""


@dataclass
class GamePage:
    items: list[dict[str, Any]] = field(default_factory=list)
    last_key: dict[str, Any] | None = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "items": self.items,
            "count": len(self.items),
            "hasMore": self.last_key is not None,
        }
        if self.last_key is not None:
            payload["lastKey"] = encode_page_token(self.last_key)
        return payload


def encode_page_token(last_key: Mapping[str, Any]) -> str:
    raw = json.dumps(dict(last_key), sort_keys=True, default=from_dynamodb_number)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_page_token(token: str) -> dict[str, Any]:
    try:
        decoded = json.loads(base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise GameQueryError("lastKey is not a valid pagination token") from exc
    if not isinstance(decoded, dict):
        raise GameQueryError("lastKey is not a valid pagination token")
    return decoded


def _parse_limit(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        limit = int(raw)
    except ValueError as exc:
        raise GameQueryError("limit must be a positive integer") from exc
    if limit <= 0:
        raise GameQueryError("limit must be a positive integer")
    return min(limit, MAX_PAGE_SIZE)


def _game_payload(item: Mapping[str, Any]) -> dict[str, Any] | None:
    try:
        return Game.from_item(item).to_api_dict()
    except RecordValidationError as exc:
        logger.warning("Skipping malformed game %s: %s", item.get("game_id"), exc)
        return None


def list_games(
    store: DynamoDbRecordStore,
    *,
    teacher_id: str | None = None,
    student_id: str | None = None,
    subject: str | None = None,
    difficulty: str | None = None,
    limit: int | None = None,
    last_key: Mapping[str, Any] | None = None,
) -> GamePage:
    """
    List games, optionally narrowed by owner, subject or difficulty.

    ``teacher_id`` and ``student_id`` go through their GSIs; the remaining
    filters are applied to each page. Without ``limit`` every page is read.
    """
    filters = {"subject": subject, "difficulty": difficulty}
    if teacher_id:
        filters["student_id"] = student_id

    def fetch(**kwargs: Any) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
        if teacher_id:
            return store.query_index(TEACHER_INDEX, "teacher_id", teacher_id, **kwargs)
        if student_id:
            return store.query_index(STUDENT_INDEX, "student_id", student_id, **kwargs)
        return store.scan_page(**kwargs)

    page = GamePage()
    kwargs: dict[str, Any] = {}
    if limit is not None:
        kwargs["Limit"] = limit
    start_key = dict(last_key) if last_key else None

    while True:
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key
        items, start_key = fetch(**kwargs)
        for item in items:
            if any(value and item.get(name) != value for name, value in filters.items()):
                continue
            payload = _game_payload(item)
            if payload is not None:
                page.items.append(payload)
        if limit is not None or not start_key:
            break

    page.last_key = start_key if limit is not None else None
    return page


def get_game(store: DynamoDbRecordStore, game_id: str) -> dict[str, Any]:
    item = store.get(game_id)
    if item is None:
        raise GameNotFoundError(game_id)
    return Game.from_item(item).to_api_dict()


def record_click(store: DynamoDbRecordStore, game_id: str) -> dict[str, Any]:
    """Atomically add one play to ``accumulated_click``; returns the updated item."""
    try:
        return store.increment(game_id, "accumulated_click", 1)
    except RecordNotFoundError as exc:
        raise GameNotFoundError(game_id) from exc


def _time_spent(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    seconds = to_number(value, default=-1)
    if seconds < 0:
        return None
    return float(seconds)


def marks_for_play(difficulty: str, time_spent: float | None = None) -> int:
    """
    Marks earned for one play of a game of ``difficulty``.

    With ``time_spent`` (seconds) the award is the number of started minutes,
    at least one, times the difficulty multiplier. Without it a flat award
    per difficulty applies. Unknown difficulties earn nothing.
    """
    if time_spent is None:
        return MARKS_BY_DIFFICULTY.get(difficulty, 0)
    multiplier = DIFFICULTY_MULTIPLIERS.get(difficulty, 0)
    minutes = max(1, math.ceil(time_spent / 60))
    return minutes * multiplier


def award_marks(store: DynamoDbRecordStore, student_id: str, amount: int) -> int | float:
    """Add ``amount`` to a student's marks, capped at the marks ceiling."""
    updated = store.increment_capped(student_id, "marks", amount, MARKS_MAX)
    return from_dynamodb_number(updated.get("marks"))


def _game_id_from_event(event: Mapping[str, Any]) -> str | None:
    params = api_gateway.path_params(event)
    if params.get("gameId", "").strip():
        return params["gameId"].strip()
    match = _GAME_PATH_RE.fullmatch(api_gateway.normalized_path(event))
    if match and match.group(1) != "download":
        return match.group(1)
    return None


def _active_stores(stores: Mapping[str, DynamoDbRecordStore] | None) -> Mapping[str, DynamoDbRecordStore]:
    return stores if stores is not None else record_stores()


def list_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    stores: Mapping[str, DynamoDbRecordStore] | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for GET /games."""
    params = api_gateway.query_params(event)
    try:
        limit = _parse_limit(params.get("limit"))
        last_key = decode_page_token(params["lastKey"]) if params.get("lastKey") else None
        page = list_games(
            _active_stores(stores)["games"],
            teacher_id=params.get("teacherId", "").strip() or None,
            student_id=params.get("studentId", "").strip() or None,
            subject=params.get("subject", "").strip() or None,
            difficulty=params.get("difficulty", "").strip() or None,
            limit=limit,
            last_key=last_key,
        )
    except GameQueryError as exc:
        return api_gateway.error_response(400, str(exc))
    except Exception:
        logger.exception("Failed to list games")
        return api_gateway.internal_error_response()
    return api_gateway.success_response(page.to_payload())


def get_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    stores: Mapping[str, DynamoDbRecordStore] | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for GET /games/{gameId}."""
    game_id = _game_id_from_event(event)
    if not game_id:
        return api_gateway.error_response(400, "Missing gameId parameter")
    try:
        game = get_game(_active_stores(stores)["games"], game_id)
    except GameNotFoundError:
        return api_gateway.error_response(404, "Game not found")
    except Exception:
        logger.exception("Failed to read game %s", game_id)
        return api_gateway.internal_error_response()
    return api_gateway.success_response({"game": game})


def click_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    stores: Mapping[str, DynamoDbRecordStore] | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for POST /games/{gameId}/click."""
    game_id = _game_id_from_event(event)
    if not game_id:
        logger.warning("Click request missing gameId parameter")
        return api_gateway.error_response(400, "Missing gameId parameter")

    body = api_gateway.optional_json_body(event)
    try:
        active = _active_stores(stores)
        game = record_click(active["games"], game_id)
    except GameNotFoundError:
        logger.warning("Click for unknown game %s", game_id)
        return api_gateway.error_response(404, "Game not found")
    except Exception:
        logger.exception("Failed to record click for game %s", game_id)
        return api_gateway.internal_error_response()

    payload: Dict[str, Any] = {"accumulated_click": from_dynamodb_number(game.get("accumulated_click"))}

    student_id = body.get("student_id")
    if body.get("role") == Role.STUDENT.value and isinstance(student_id, str) and student_id.strip():
        amount = marks_for_play(str(game.get("difficulty") or ""), _time_spent(body.get("time_spent")))
        if amount > 0:
            try:
                payload["marks"] = award_marks(active["students"], student_id.strip(), amount)
            except RecordNotFoundError:
                logger.warning("Click from unknown student %s on game %s", student_id, game_id)
            except Exception:
                logger.exception("Failed to award marks to %s for game %s", student_id, game_id)
        else:
            logger.info("No marks defined for difficulty %r", game.get("difficulty"))

    logger.info("Recorded click for game %s (total %s)", game_id, payload["accumulated_click"])
    return api_gateway.success_response(payload)


def lambda_handler(
    event: Mapping[str, Any],
    context: Any,
    *,
    stores: Mapping[str, DynamoDbRecordStore] | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for every /games route."""
    method = api_gateway.request_method(event)
    path = api_gateway.normalized_path(event)
    if method == "POST" and path.endswith("/click"):
        return click_handler(event, context, stores=stores)
    if method == "GET" and path == "/games":
        return list_handler(event, context, stores=stores)
    if method == "GET":
        return get_handler(event, context, stores=stores)
    return api_gateway.error_response(404, "Not found")
