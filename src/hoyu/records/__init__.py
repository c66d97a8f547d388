"""Roster records and their DynamoDB storage."""

from .model import (
    DIFFICULTIES,
    MARKS_MAX,
    MARKS_MIN,
    SUBJECTS,
    Game,
    RecordValidationError,
    Role,
    Student,
    Teacher,
    record_type_for,
)
from .repository import (
    BATCH_SIZE,
    DynamoDbRecordStore,
    RecordNotFoundError,
    RecordStore,
    create_dynamodb_resource,
)

__all__ = [
    "BATCH_SIZE",
    "DIFFICULTIES",
    "DynamoDbRecordStore",
    "Game",
    "MARKS_MAX",
    "MARKS_MIN",
    "RecordNotFoundError",
    "RecordStore",
    "RecordValidationError",
    "Role",
    "SUBJECTS",
    "Student",
    "Teacher",
    "create_dynamodb_resource",
    "record_type_for",
]
