"""CreateTable definitions for the students, teachers and games tables."""

from __future__ import annotations

from typing import Any

from hoyu.settings import TableNames

TEACHER_INDEX = "teacher-index"
STUDENT_INDEX = "student-index"

_THROUGHPUT = {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5}


def _index(name: str, attribute: str) -> dict[str, Any]:
    return {
        "IndexName": name,
        "KeySchema": [{"AttributeName": attribute, "KeyType": "HASH"}],
        "Projection": {"ProjectionType": "ALL"},
        "ProvisionedThroughput": dict(_THROUGHPUT),
    }


def _table(name: str, key: str, indexes: dict[str, str]) -> dict[str, Any]:
    attributes = [key, *indexes.values()]
    definition: dict[str, Any] = {
        "TableName": name,
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": attr, "AttributeType": "S"} for attr in attributes],
        "ProvisionedThroughput": dict(_THROUGHPUT),
    }
    if indexes:
        definition["GlobalSecondaryIndexes"] = [_index(index, attr) for index, attr in indexes.items()]
    return definition


def table_definitions(names: TableNames) -> list[dict[str, Any]]:
    """``create_table`` keyword arguments for every table, teachers first."""
    return [
        _table(names.teachers, "teacher_id", {}),
        _table(names.students, "student_id", {TEACHER_INDEX: "teacher_id"}),
        _table(
            names.games,
            "game_id",
            {TEACHER_INDEX: "teacher_id", STUDENT_INDEX: "student_id"},
        ),
    ]
