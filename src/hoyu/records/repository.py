"""Persistence boundaries for the students, teachers and games tables."""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable, Iterator, Mapping, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)

BATCH_SIZE = 25
_CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class RecordNotFoundError(LookupError):
    """Raised when a keyed update targets an item that does not exist."""


def chunked(values: Sequence[Any], size: int = BATCH_SIZE) -> Iterator[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` elements."""
    for start in range(0, len(values), size):
        yield values[start : start + size]


def is_conditional_check_failure(exc: BaseException) -> bool:
    """True for botocore ClientErrors raised by a failed ConditionExpression."""
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return False
    error = response.get("Error")
    return isinstance(error, dict) and error.get("Code") == _CONDITIONAL_CHECK_FAILED


@runtime_checkable
class RecordStore(Protocol):
    """Storage interface for items keyed by a single string attribute."""

    key_attribute: str

    def get(self, key: str) -> dict[str, Any] | None:
        """Lookup an item by key."""

    def batch_get(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Lookup many items, returning a key -> item map of those found."""

    def batch_put(self, items: Sequence[Mapping[str, Any]]) -> list[tuple[str, str]]:
        """Write items, returning ``(key, error)`` pairs for failed writes."""

    def update_fields(self, key: str, values: Mapping[str, Any]) -> None:
        """SET the given attributes on an existing item."""


class DynamoDbRecordStore:
    """DynamoDB adapter for one table keyed by ``key_attribute``."""

    def __init__(
        self,
        resource: Any,
        table_name: str,
        key_attribute: str,
        index_keys: Sequence[str] = (),
    ) -> None:
        self._resource = resource
        self._table = resource.Table(table_name)
        self.table_name = table_name
        self.key_attribute = key_attribute
        self.index_keys = tuple(index_keys)

    def get(self, key: str) -> dict[str, Any] | None:
        response = self._table.get_item(Key={self.key_attribute: key})
        item = response.get("Item")
        if not isinstance(item, dict):
            return None
        return item

    def put(self, item: Mapping[str, Any]) -> None:
        self._table.put_item(Item=dict(item))

    def batch_get(self, keys: Iterable[str]) -> dict[str, dict[str, Any]]:
        unique_keys = list(dict.fromkeys(key for key in keys if key))
        found: dict[str, dict[str, Any]] = {}

        for batch in chunked(unique_keys):
            try:
                pending = self._batch_get_chunk(batch, found)
            except Exception:
                logger.exception("Batch get failed on %s; falling back to single reads", self.table_name)
                pending = list(batch)

            for key in pending:
                item = self.get(key)
                if item is not None:
                    found[key] = item
        return found

    def _batch_get_chunk(self, batch: Sequence[str], found: dict[str, dict[str, Any]]) -> list[str]:
        response = self._resource.batch_get_item(
            RequestItems={
                self.table_name: {"Keys": [{self.key_attribute: key} for key in batch]},
            }
        )
        for item in response.get("Responses", {}).get(self.table_name, []):
            found[str(item[self.key_attribute])] = item

        unprocessed = response.get("UnprocessedKeys", {}).get(self.table_name, {}).get("Keys", [])
        return [str(key[self.key_attribute]) for key in unprocessed]

    def batch_put(self, items: Sequence[Mapping[str, Any]]) -> list[tuple[str, str]]:
        failures: list[tuple[str, str]] = []

        for batch in chunked(list(items)):
            try:
                pending = self._batch_put_chunk(batch)
            except Exception:
                logger.exception("Batch write failed on %s; falling back to single writes", self.table_name)
                pending = list(batch)

            for item in pending:
                key = str(item[self.key_attribute])
                try:
                    self.put(item)
                except Exception as exc:
                    logger.exception("Write failed for %s %s", self.key_attribute, key)
                    failures.append((key, str(exc)))
        return failures

    def _batch_put_chunk(self, batch: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
        response = self._resource.batch_write_item(
            RequestItems={
                self.table_name: [{"PutRequest": {"Item": dict(item)}} for item in batch],
            }
        )
        unprocessed = response.get("UnprocessedItems", {}).get(self.table_name, [])
        return [request["PutRequest"]["Item"] for request in unprocessed if "PutRequest" in request]

    def update_fields(self, key: str, values: Mapping[str, Any]) -> None:
        """SET ``values`` on an existing item; blank index keys are REMOVEd instead."""
        names: dict[str, str] = {}
        attribute_values: dict[str, Any] = {}
        assignments: list[str] = []
        removals: list[str] = []
        for index, (attribute, value) in enumerate(values.items()):
            if attribute == self.key_attribute:
                continue
            names[f"#f{index}"] = attribute
            if attribute in self.index_keys and value == "":
                removals.append(f"#f{index}")
                continue
            attribute_values[f":v{index}"] = value
            assignments.append(f"#f{index} = :v{index}")

        if not assignments and not removals:
            return

        clauses: list[str] = []
        if assignments:
            clauses.append("SET " + ", ".join(assignments))
        if removals:
            clauses.append("REMOVE " + ", ".join(removals))

        names["#key"] = self.key_attribute
        kwargs: dict[str, Any] = {
            "Key": {self.key_attribute: key},
            "UpdateExpression": " ".join(clauses),
            "ConditionExpression": "attribute_exists(#key)",
            "ExpressionAttributeNames": names,
        }
        if attribute_values:
            kwargs["ExpressionAttributeValues"] = attribute_values
        self._table.update_item(**kwargs)

    def increment(
        self,
        key: str,
        attribute: str,
        amount: int = 1,
    ) -> dict[str, Any]:
        """Atomically ADD ``amount`` to ``attribute``; returns the updated item."""
        try:
            response = self._table.update_item(
                Key={self.key_attribute: key},
                UpdateExpression="ADD #counter :amount",
                ConditionExpression="attribute_exists(#key)",
                ExpressionAttributeNames={"#counter": attribute, "#key": self.key_attribute},
                ExpressionAttributeValues={":amount": amount},
                ReturnValues="ALL_NEW",
            )
        except Exception as exc:
            if is_conditional_check_failure(exc):
                raise RecordNotFoundError(key) from exc
            raise
        return dict(response.get("Attributes", {}))

    def increment_capped(
        self,
        key: str,
        attribute: str,
        amount: int,
        ceiling: int,
    ) -> dict[str, Any]:
        """ADD ``amount`` unless that would pass ``ceiling``, in which case SET ``ceiling``."""
        amount = min(amount, ceiling)
        names = {"#counter": attribute, "#key": self.key_attribute}
        try:
            response = self._table.update_item(
                Key={self.key_attribute: key},
                UpdateExpression="ADD #counter :amount",
                ConditionExpression="attribute_exists(#key) AND (attribute_not_exists(#counter) OR #counter <= :limit)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues={":amount": amount, ":limit": ceiling - amount},
                ReturnValues="ALL_NEW",
            )
            return dict(response.get("Attributes", {}))
        except Exception as exc:
            if not is_conditional_check_failure(exc):
                raise

        try:
            response = self._table.update_item(
                Key={self.key_attribute: key},
                UpdateExpression="SET #counter = :ceiling",
                ConditionExpression="attribute_exists(#key)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues={":ceiling": ceiling},
                ReturnValues="ALL_NEW",
            )
        except Exception as exc:
            if is_conditional_check_failure(exc):
                raise RecordNotFoundError(key) from exc
            raise
        return dict(response.get("Attributes", {}))

    def scan_all(self, **kwargs: Any) -> list[dict[str, Any]]:
        """Read every page of a scan."""
        response = self._table.scan(**kwargs)
        rows = list(response.get("Items", []))
        while "LastEvaluatedKey" in response:
            response = self._table.scan(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
            rows.extend(response.get("Items", []))
        return rows

    def scan_page(self, **kwargs: Any) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
        response = self._table.scan(**kwargs)
        return list(response.get("Items", [])), response.get("LastEvaluatedKey")

    def query_index(
        self,
        index_name: str,
        attribute: str,
        value: str,
        **kwargs: Any,
    ) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
        """Query a GSI by its partition attribute; returns one page."""
        response = self._table.query(
            IndexName=index_name,
            KeyConditionExpression="#pk = :pk",
            ExpressionAttributeNames={"#pk": attribute},
            ExpressionAttributeValues={":pk": value},
            **kwargs,
        )
        return list(response.get("Items", [])), response.get("LastEvaluatedKey")


def create_dynamodb_resource(
    *,
    region: str,
    endpoint_url: str | None = None,
    local: bool = False,
) -> Any:
    """Create the boto3 DynamoDB resource lazily so tests can run with fakes."""
    import boto3

    kwargs: dict[str, Any] = {"region_name": region}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    if local:
        kwargs["aws_access_key_id"] = os.getenv("AWS_ACCESS_KEY_ID", "local")
        kwargs["aws_secret_access_key"] = os.getenv("AWS_SECRET_ACCESS_KEY", "local")
        logger.info("Connecting to local DynamoDB at %s", endpoint_url)
    return boto3.resource("dynamodb", **kwargs)
