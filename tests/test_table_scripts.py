from __future__ import annotations

import importlib.util
import json
import tempfile
import unittest
from pathlib import Path

from hoyu.passwords import hash_password
from hoyu.records.model import RecordValidationError
from hoyu.records.tables import STUDENT_INDEX, TEACHER_INDEX, table_definitions
from hoyu.settings import Settings, TableNames
from tests.fakes import make_stores

ROOT = Path(__file__).resolve().parent.parent


def _load_script(name: str):
    spec = importlib.util.spec_from_file_location(name, ROOT / "scripts" / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


init_dynamodb = _load_script("init_dynamodb")
seed_dynamodb = _load_script("seed_dynamodb")


class _ResourceNotFoundException(Exception):
    pass


class _Waiter:
    def __init__(self, client: "_FakeClient", name: str) -> None:
        self.client = client
        self.name = name

    def wait(self, **kwargs: object) -> None:
        self.client.waits.append((self.name, kwargs["TableName"]))


class _FakeClient:
    class exceptions:  # noqa: N801 - boto3 shape
        ResourceNotFoundException = _ResourceNotFoundException

    def __init__(self, existing: list[str] | None = None) -> None:
        self.tables: dict[str, dict] = {name: {} for name in existing or []}
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.waits: list[tuple[str, object]] = []

    def list_tables(self) -> dict:
        return {"TableNames": sorted(self.tables)}

    def describe_table(self, *, TableName: str) -> dict:  # noqa: N803 - boto3 shape
        if TableName not in self.tables:
            raise _ResourceNotFoundException(TableName)
        return {"Table": {"TableName": TableName, "TableStatus": "ACTIVE"}}

    def delete_table(self, *, TableName: str) -> None:  # noqa: N803 - boto3 shape
        self.tables.pop(TableName)
        self.deleted.append(TableName)

    def create_table(self, **definition: object) -> None:
        self.tables[str(definition["TableName"])] = dict(definition)
        self.created.append(str(definition["TableName"]))

    def get_waiter(self, name: str) -> _Waiter:
        return _Waiter(self, name)


class TableDefinitionTests(unittest.TestCase):
    def test_games_table_has_owner_indexes(self) -> None:
        teachers, students, games = table_definitions(TableNames())

        self.assertEqual(teachers["TableName"], "ho-yu-teachers")
        self.assertNotIn("GlobalSecondaryIndexes", teachers)
        self.assertEqual([index["IndexName"] for index in students["GlobalSecondaryIndexes"]], [TEACHER_INDEX])
        self.assertEqual(
            [index["IndexName"] for index in games["GlobalSecondaryIndexes"]],
            [TEACHER_INDEX, STUDENT_INDEX],
        )
        self.assertEqual(
            sorted(attr["AttributeName"] for attr in games["AttributeDefinitions"]),
            ["game_id", "student_id", "teacher_id"],
        )


class InitDynamoDbTests(unittest.TestCase):
    def test_creates_missing_tables_only(self) -> None:
        client = _FakeClient(existing=["ho-yu-teachers"])

        created = init_dynamodb.initialize_tables(client, Settings(), wait_seconds=4)

        self.assertEqual(created, ["ho-yu-students", "ho-yu-games"])
        self.assertEqual(client.deleted, [])
        self.assertIn(("table_exists", "ho-yu-games"), client.waits)

    def test_reset_recreates_existing_tables(self) -> None:
        client = _FakeClient(existing=["ho-yu-teachers", "ho-yu-students", "ho-yu-games"])

        created = init_dynamodb.initialize_tables(client, Settings(), reset=True)

        self.assertEqual(client.deleted, ["ho-yu-teachers", "ho-yu-students", "ho-yu-games"])
        self.assertEqual(len(created), 3)
        self.assertIn(("table_not_exists", "ho-yu-students"), client.waits)

    def test_parse_args(self) -> None:
        args = init_dynamodb.parse_args(["-r", "--wait-seconds", "10"])
        self.assertTrue(args.reset)
        self.assertEqual(args.wait_seconds, 10)


class SeedDynamoDbTests(unittest.TestCase):
    def test_bundled_seed_file_loads_into_every_table(self) -> None:
        resource, stores = make_stores()
        data = seed_dynamodb.load_seed_data(seed_dynamodb.DEFAULT_SEED_FILE)

        counts = seed_dynamodb.seed_tables(stores, data, now="2026-10-01T08:00:00Z")

        self.assertEqual(counts, {"teachers": 3, "students": 10, "games": 10})
        students = resource.Table("ho-yu-students").items
        self.assertEqual(students["STU001"]["password"], hash_password("123"))
        self.assertEqual(students["STU001"]["created_at"], "2026-10-01T08:00:00Z")
        self.assertIs(resource.Table("ho-yu-teachers").items["TCH003"]["is_admin"], True)

    def test_invalid_seed_row_rejected(self) -> None:
        with self.assertRaises(RecordValidationError):
            seed_dynamodb.seed_items("games", [{"game_id": "1", "subject": "Art"}])

    def test_seed_file_must_hold_lists(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "seed.json"
            path.write_text(json.dumps({"students": {"student_id": "STU001"}}), encoding="utf-8")

            with self.assertRaises(ValueError):
                seed_dynamodb.load_seed_data(path)


if __name__ == "__main__":
    unittest.main()
