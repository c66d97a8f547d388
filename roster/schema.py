"""Column layouts for the students, teachers and games spreadsheets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from hoyu.conversion import to_boolean, to_date_string, to_number, to_string, to_string_array
from hoyu.passwords import normalize_password
from hoyu.records.model import Game, Student, Teacher

CellConverter = Callable[[Any], Any]


def _text(value: Any) -> str:
    return to_string(value).strip()


def _password(value: Any) -> str:
    return normalize_password(to_string(value))


def _timestamp(value: Any) -> str:
    return to_date_string(value)


@dataclass(frozen=True)
class EntitySchema:
    """How one table maps to and from spreadsheet columns."""

    entity: str
    record_type: type[Student] | type[Teacher] | type[Game]
    sheet_name: str
    required_headers: tuple[str, ...]
    expected_headers: tuple[str, ...]
    converters: Mapping[str, CellConverter]
    export_columns: tuple[str, ...]
    column_widths: Mapping[str, int] = field(default_factory=dict)
    # Column -> entity whose table must contain the referenced key.
    foreign_keys: Mapping[str, str] = field(default_factory=dict)
    # Attributes an upload never overwrites on an existing record.
    preserved_on_update: tuple[str, ...] = ("created_at",)
    # Attributes stamped with the upload time on every write.
    stamped: tuple[str, ...] = ("updated_at",)

    @property
    def key(self) -> str:
        return self.record_type.KEY

    def convert(self, column: str, value: Any) -> Any:
        converter = self.converters.get(column, _text)
        return converter(value)


STUDENTS = EntitySchema(
    entity="students",
    record_type=Student,
    sheet_name="Students",
    required_headers=("student_id",),
    expected_headers=(
        "student_id",
        "name_1",
        "name_2",
        "marks",
        "class",
        "class_no",
        "last_login",
        "last_update",
        "teacher_id",
        "password",
    ),
    converters={
        "marks": to_number,
        "last_login": _timestamp,
        "password": _password,
    },
    export_columns=(
        "student_id",
        "name_1",
        "name_2",
        "marks",
        "class",
        "class_no",
        "last_login",
        "last_update",
        "teacher_id",
        "password",
    ),
    column_widths={
        "student_id": 12,
        "name_1": 20,
        "name_2": 20,
        "marks": 8,
        "class": 8,
        "class_no": 10,
        "last_login": 20,
        "last_update": 20,
        "teacher_id": 12,
        "password": 15,
    },
    foreign_keys={"teacher_id": "teachers"},
    stamped=("updated_at", "last_update"),
)

TEACHERS = EntitySchema(
    entity="teachers",
    record_type=Teacher,
    sheet_name="Teachers",
    required_headers=("teacher_id",),
    expected_headers=(
        "teacher_id",
        "name",
        "password",
        "responsible_class",
        "is_admin",
        "last_login",
    ),
    converters={
        "responsible_class": lambda value: [code.strip() for code in to_string_array(value) if code.strip()],
        "is_admin": to_boolean,
        "last_login": _timestamp,
        "password": _password,
    },
    export_columns=(
        "teacher_id",
        "name",
        "responsible_class",
        "is_admin",
        "last_login",
        "password",
    ),
    column_widths={
        "teacher_id": 12,
        "name": 20,
        "responsible_class": 30,
        "is_admin": 10,
        "last_login": 20,
        "password": 15,
    },
)

GAMES = EntitySchema(
    entity="games",
    record_type=Game,
    sheet_name="Games",
    required_headers=("game_id",),
    expected_headers=(
        "game_id",
        "game_name",
        "student_id",
        "subject",
        "difficulty",
        "teacher_id",
        "scratch_id",
        "scratch_api",
        "accumulated_click",
        "description",
    ),
    converters={
        "accumulated_click": lambda value: int(to_number(value)),
    },
    export_columns=(
        "game_id",
        "game_name",
        "student_id",
        "subject",
        "difficulty",
        "teacher_id",
        "last_update",
        "scratch_id",
        "scratch_api",
        "accumulated_click",
        "description",
    ),
    column_widths={
        "game_id": 12,
        "game_name": 30,
        "student_id": 12,
        "subject": 25,
        "difficulty": 15,
        "teacher_id": 12,
        "last_update": 20,
        "scratch_id": 15,
        "scratch_api": 40,
        "accumulated_click": 15,
        "description": 50,
    },
    foreign_keys={"student_id": "students", "teacher_id": "teachers"},
    preserved_on_update=("created_at", "accumulated_click"),
    stamped=("updated_at", "last_update"),
)

SCHEMAS: dict[str, EntitySchema] = {schema.entity: schema for schema in (STUDENTS, TEACHERS, GAMES)}


def schema_for(entity: str) -> EntitySchema | None:
    return SCHEMAS.get(entity)
