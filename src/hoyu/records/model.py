"""Student, teacher and game records with DynamoDB mapping helpers."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields, replace
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Mapping

from hoyu.conversion import to_boolean

SUBJECTS = (
    "Chinese Language",
    "English Language",
    "Mathematics",
    "Humanities and Science",
)
DIFFICULTIES = ("Beginner", "Intermediate", "Advanced")
MARKS_MIN = 0
MARKS_MAX = 1000


class RecordValidationError(ValueError):
    """Raised when record payloads or stored items fail validation."""


class Role(str, Enum):
    """Resolved identity class of an authenticated user."""

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


def to_dynamodb_number(value: int | float | Decimal) -> int | Decimal:
    """Convert floats to Decimal because boto3 DynamoDB does not accept float."""
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def from_dynamodb_number(value: Any, default: int | float = 0) -> int | float:
    """Convert boto3 Decimal values back to int (when integral) or float."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (int, float)):
        return value
    return default


def _require_key(value: Any, field_name: str) -> None:
    if not isinstance(value, str):
        raise RecordValidationError(f"{field_name}: expected string")
    if not value.strip():
        raise RecordValidationError(f"{field_name}: must not be empty")


def _require_number(value: Any, field_name: str) -> None:
    if not isinstance(value, (int, float, Decimal)) or isinstance(value, bool):
        raise RecordValidationError(f"{field_name}: expected number")
    if isinstance(value, float) and not math.isfinite(value):
        raise RecordValidationError(f"{field_name}: expected finite number")


def _require_choice(value: str, choices: tuple[str, ...], field_name: str) -> None:
    if value and value not in choices:
        raise RecordValidationError(f"{field_name}: must be one of {', '.join(choices)}")


def _string(item: Mapping[str, Any], name: str) -> str:
    value = item.get(name)
    if value is None:
        return ""
    return str(value)


class _Record:
    """Shared item mapping for the three table record types."""

    TABLE: ClassVar[str]
    KEY: ClassVar[str]
    # Dataclass field name -> DynamoDB attribute name where they differ.
    ATTRIBUTE_NAMES: ClassVar[dict[str, str]] = {}
    # GSI key attributes; DynamoDB rejects empty strings for them, so blanks are omitted.
    INDEX_KEYS: ClassVar[tuple[str, ...]] = ()

    @property
    def key(self) -> str:
        return getattr(self, self.KEY)

    @classmethod
    def attribute_name(cls, field_name: str) -> str:
        return cls.ATTRIBUTE_NAMES.get(field_name, field_name)

    @classmethod
    def field_name(cls, attribute: str) -> str:
        for name, attr in cls.ATTRIBUTE_NAMES.items():
            if attr == attribute:
                return name
        return attribute

    @classmethod
    def attributes(cls) -> tuple[str, ...]:
        return tuple(cls.attribute_name(f.name) for f in fields(cls))  # type: ignore[arg-type]

    def to_item(self) -> dict[str, Any]:
        """Serialize to a DynamoDB-style item dictionary."""
        item: dict[str, Any] = {}
        for name, value in asdict(self).items():  # type: ignore[call-overload]
            if isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                value = to_dynamodb_number(value)
            attribute = self.attribute_name(name)
            if attribute in self.INDEX_KEYS and value == "":
                continue
            item[attribute] = value
        return item

    def to_api_dict(self) -> dict[str, Any]:
        """JSON-safe dictionary without the password digest."""
        payload: dict[str, Any] = {}
        for name, value in asdict(self).items():  # type: ignore[call-overload]
            if name == "password":
                continue
            if isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, Decimal):
                value = from_dynamodb_number(value)
            payload[self.attribute_name(name)] = value
        return payload

    def merged(self, changes: Mapping[str, Any]) -> Any:
        """Return a copy with ``changes`` (keyed by attribute name) applied."""
        updates = {self.field_name(attr): value for attr, value in changes.items()}
        return replace(self, **updates)  # type: ignore[type-var]


@dataclass(frozen=True)
class Student(_Record):
    """Student roster row keyed by ``student_id``."""

    TABLE: ClassVar[str] = "students"
    KEY: ClassVar[str] = "student_id"
    ATTRIBUTE_NAMES: ClassVar[dict[str, str]] = {"class_name": "class"}
    INDEX_KEYS: ClassVar[tuple[str, ...]] = ("teacher_id",)

    student_id: str
    name_1: str = ""
    name_2: str = ""
    marks: int | float = 0
    class_name: str = ""
    class_no: str = ""
    teacher_id: str = ""
    password: str = ""
    last_login: str = ""
    last_update: str = ""
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        _require_key(self.student_id, "student_id")
        _require_number(self.marks, "marks")
        if self.marks < MARKS_MIN or self.marks > MARKS_MAX:
            raise RecordValidationError(f"marks: must be between {MARKS_MIN} and {MARKS_MAX}")

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "Student":
        """Deserialize from a DynamoDB item dictionary."""
        return cls(
            student_id=_string(item, "student_id"),
            name_1=_string(item, "name_1"),
            name_2=_string(item, "name_2"),
            marks=from_dynamodb_number(item.get("marks")),
            class_name=_string(item, "class"),
            class_no=_string(item, "class_no"),
            teacher_id=_string(item, "teacher_id"),
            password=_string(item, "password"),
            last_login=_string(item, "last_login"),
            last_update=_string(item, "last_update"),
            created_at=_string(item, "created_at"),
            updated_at=_string(item, "updated_at"),
        )


@dataclass(frozen=True)
class Teacher(_Record):
    """Teacher roster row keyed by ``teacher_id``."""

    TABLE: ClassVar[str] = "teachers"
    KEY: ClassVar[str] = "teacher_id"

    teacher_id: str
    name: str = ""
    password: str = ""
    responsible_class: tuple[str, ...] = field(default_factory=tuple)
    is_admin: bool = False
    last_login: str = ""
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        _require_key(self.teacher_id, "teacher_id")
        if isinstance(self.responsible_class, list):
            object.__setattr__(self, "responsible_class", tuple(self.responsible_class))
        if not all(isinstance(code, str) for code in self.responsible_class):
            raise RecordValidationError("responsible_class: expected list of strings")
        if not isinstance(self.is_admin, bool):
            raise RecordValidationError("is_admin: expected boolean")

    @property
    def role(self) -> Role:
        return Role.ADMIN if self.is_admin else Role.TEACHER

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "Teacher":
        """Deserialize from a DynamoDB item dictionary."""
        raw_classes = item.get("responsible_class") or []
        if isinstance(raw_classes, (set, frozenset)):
            raw_classes = sorted(raw_classes)
        if isinstance(raw_classes, str):
            raw_classes = [raw_classes]
        return cls(
            teacher_id=_string(item, "teacher_id"),
            name=_string(item, "name"),
            password=_string(item, "password"),
            responsible_class=tuple(str(code) for code in raw_classes),
            is_admin=to_boolean(item.get("is_admin")),
            last_login=_string(item, "last_login"),
            created_at=_string(item, "created_at"),
            updated_at=_string(item, "updated_at"),
        )


@dataclass(frozen=True)
class Game(_Record):
    """Scratch game row keyed by ``game_id``."""

    TABLE: ClassVar[str] = "games"
    KEY: ClassVar[str] = "game_id"
    INDEX_KEYS: ClassVar[tuple[str, ...]] = ("student_id", "teacher_id")

    game_id: str
    game_name: str = ""
    student_id: str = ""
    subject: str = ""
    difficulty: str = ""
    teacher_id: str = ""
    scratch_id: str = ""
    scratch_api: str = ""
    description: str = ""
    accumulated_click: int = 0
    last_update: str = ""
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        _require_key(self.game_id, "game_id")
        _require_choice(self.subject, SUBJECTS, "subject")
        _require_choice(self.difficulty, DIFFICULTIES, "difficulty")
        _require_number(self.accumulated_click, "accumulated_click")
        if self.accumulated_click < 0:
            raise RecordValidationError("accumulated_click: must be >= 0")

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "Game":
        """Deserialize from a DynamoDB item dictionary."""
        return cls(
            game_id=_string(item, "game_id"),
            game_name=_string(item, "game_name"),
            student_id=_string(item, "student_id"),
            subject=_string(item, "subject"),
            difficulty=_string(item, "difficulty"),
            teacher_id=_string(item, "teacher_id"),
            scratch_id=_string(item, "scratch_id"),
            scratch_api=_string(item, "scratch_api"),
            description=_string(item, "description"),
            accumulated_click=int(from_dynamodb_number(item.get("accumulated_click"))),
            last_update=_string(item, "last_update"),
            created_at=_string(item, "created_at"),
            updated_at=_string(item, "updated_at"),
        )


RECORD_TYPES: dict[str, type[Student] | type[Teacher] | type[Game]] = {
    Student.TABLE: Student,
    Teacher.TABLE: Teacher,
    Game.TABLE: Game,
}


def record_type_for(entity: str) -> type[Student] | type[Teacher] | type[Game]:
    try:
        return RECORD_TYPES[entity]
    except KeyError as exc:
        raise RecordValidationError(f"unknown entity: {entity}") from exc
