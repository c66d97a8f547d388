"""Login flow: id/password check against students, then teachers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from backend import api_gateway
from backend.tables import record_stores
from hoyu.conversion import utc_now_rfc3339
from hoyu.passwords import verify_password
from hoyu.records.model import RecordValidationError, Role, Student, Teacher
from hoyu.records.repository import RecordStore

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


class AuthenticationError(Exception):
    """Raised when an id/password pair does not match a stored user."""


@dataclass(frozen=True)
class LoginResult:
    user: Student | Teacher
    role: Role

    def to_payload(self) -> Dict[str, Any]:
        return {"user": self.user.to_api_dict(), "role": self.role.value}


def _find_user(
    user_id: str,
    *,
    students: RecordStore,
    teachers: RecordStore,
) -> tuple[Student | Teacher, Role, RecordStore] | None:
    item = students.get(user_id)
    if item is not None:
        return Student.from_item(item), Role.STUDENT, students

    item = teachers.get(user_id)
    if item is not None:
        teacher = Teacher.from_item(item)
        return teacher, teacher.role, teachers
    return None


def authenticate(
    user_id: str,
    password: str,
    *,
    students: RecordStore,
    teachers: RecordStore,
    now: str | None = None,
) -> LoginResult:
    """
    Resolve ``user_id`` to a student or teacher and verify ``password``.

    Students are checked first; a student id never falls through to the
    teachers table, even when the password is wrong.
    """
    try:
        found = _find_user(user_id, students=students, teachers=teachers)
    except RecordValidationError as exc:
        logger.warning("Stored record for %s is invalid: %s", user_id, exc)
        raise AuthenticationError(INVALID_CREDENTIALS) from exc

    if found is None:
        verify_password(password, None)
        raise AuthenticationError(INVALID_CREDENTIALS)

    user, role, store = found
    if not verify_password(password, user.password):
        raise AuthenticationError(INVALID_CREDENTIALS)

    timestamp = now or utc_now_rfc3339()
    try:
        store.update_fields(user_id, {"last_login": timestamp})
        user = user.merged({"last_login": timestamp})
    except Exception:
        logger.exception("Failed to update last_login for %s", user_id)

    return LoginResult(user=user, role=role)


def lambda_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    stores: Mapping[str, RecordStore] | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for POST /auth/login."""
    try:
        payload = api_gateway.optional_json_body(event)
        user_id = payload.get("id")
        password = payload.get("password")
        if not isinstance(user_id, str) or not user_id.strip() or not isinstance(password, str) or not password:
            logger.warning("Login attempt with missing credentials")
            return api_gateway.error_response(400, "Missing id or password")

        active = stores if stores is not None else record_stores()
        result = authenticate(
            user_id.strip(),
            password,
            students=active["students"],
            teachers=active["teachers"],
        )
    except AuthenticationError:
        logger.warning("Login failed for %s", payload.get("id"))
        return api_gateway.error_response(401, INVALID_CREDENTIALS)
    except Exception:
        logger.exception("Login failed unexpectedly")
        return api_gateway.internal_error_response()

    logger.info("Login successful for %s as %s", result.user.key, result.role.value)
    return api_gateway.success_response(result.to_payload())
