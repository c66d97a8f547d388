"""DynamoDB store wiring for the Lambda handlers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from hoyu.records.model import RECORD_TYPES
from hoyu.records.repository import DynamoDbRecordStore, create_dynamodb_resource
from hoyu.settings import Settings

ENTITIES = ("students", "teachers", "games")


@lru_cache(maxsize=4)
def _dynamodb_resource(settings: Settings) -> Any:
    return create_dynamodb_resource(
        region=settings.region,
        endpoint_url=settings.dynamodb_endpoint,
        local=settings.is_local,
    )


def record_stores(
    settings: Settings | None = None,
    *,
    resource: Any | None = None,
) -> dict[str, DynamoDbRecordStore]:
    """One store per entity, keyed ``students`` / ``teachers`` / ``games``."""
    active = settings or Settings.from_env()
    dynamodb = resource if resource is not None else _dynamodb_resource(active)
    return {
        entity: DynamoDbRecordStore(
            dynamodb,
            active.tables.for_entity(entity),
            RECORD_TYPES[entity].KEY,
            RECORD_TYPES[entity].INDEX_KEYS,
        )
        for entity in ENTITIES
    }
