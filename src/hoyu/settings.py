"""Environment-driven runtime settings shared by every handler."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_STUDENTS_TABLE = "ho-yu-students"
DEFAULT_TEACHERS_TABLE = "ho-yu-teachers"
DEFAULT_GAMES_TABLE = "ho-yu-games"
DEFAULT_LOCAL_ENDPOINT = "http://localhost:8002"
DEFAULT_MAX_UPLOAD_RECORDS = 4000
_DYNAMODB_MODES = frozenset({"aws", "local"})


class SettingsError(ValueError):
    """Raised when environment configuration is invalid."""


@dataclass(frozen=True)
class TableNames:
    """DynamoDB table names keyed by entity."""

    students: str = DEFAULT_STUDENTS_TABLE
    teachers: str = DEFAULT_TEACHERS_TABLE
    games: str = DEFAULT_GAMES_TABLE

    def for_entity(self, entity: str) -> str:
        try:
            return {"students": self.students, "teachers": self.teachers, "games": self.games}[entity]
        except KeyError as exc:
            raise SettingsError(f"unknown entity: {entity}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime wiring for table access, logging and upload limits."""

    tables: TableNames = TableNames()
    dynamodb_mode: str = "aws"
    dynamodb_endpoint: str | None = None
    region: str = "us-east-1"
    log_level: int = logging.INFO
    max_upload_records: int = DEFAULT_MAX_UPLOAD_RECORDS

    @property
    def is_local(self) -> bool:
        return self.dynamodb_mode == "local"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        source = os.environ if env is None else env

        tables = TableNames(
            students=source.get("STUDENTS_TABLE_NAME", "").strip() or DEFAULT_STUDENTS_TABLE,
            teachers=source.get("TEACHERS_TABLE_NAME", "").strip() or DEFAULT_TEACHERS_TABLE,
            games=source.get("GAMES_TABLE_NAME", "").strip() or DEFAULT_GAMES_TABLE,
        )

        mode = (source.get("DYNAMODB_MODE", "aws").strip() or "aws").lower()
        if mode not in _DYNAMODB_MODES:
            raise SettingsError("DYNAMODB_MODE must be 'aws' or 'local'")

        endpoint = source.get("DYNAMODB_ENDPOINT", "").strip() or None
        if mode == "local" and endpoint is None:
            endpoint = DEFAULT_LOCAL_ENDPOINT

        raw_level = source.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        log_level = logging.getLevelName(raw_level)
        if not isinstance(log_level, int):
            raise SettingsError(f"LOG_LEVEL is not a logging level: {raw_level}")

        raw_max = source.get("MAX_UPLOAD_RECORDS", "").strip()
        if raw_max:
            try:
                max_upload_records = int(raw_max)
            except ValueError as exc:
                raise SettingsError("MAX_UPLOAD_RECORDS must be an integer") from exc
            if max_upload_records <= 0:
                raise SettingsError("MAX_UPLOAD_RECORDS must be positive")
        else:
            max_upload_records = DEFAULT_MAX_UPLOAD_RECORDS

        return cls(
            tables=tables,
            dynamodb_mode=mode,
            dynamodb_endpoint=endpoint,
            region=source.get("AWS_REGION", "").strip() or "us-east-1",
            log_level=log_level,
            max_upload_records=max_upload_records,
        )
