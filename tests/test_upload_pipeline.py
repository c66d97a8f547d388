"""Unit tests for the roster upsert pipeline."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from backend.games import award_marks
from hoyu.passwords import hash_password
from roster.pipeline import plan_writes, scratch_project_id, upsert_rows
from roster.schema import GAMES, STUDENTS, TEACHERS
from roster.spreadsheet import parse_sheet
from tests.fakes import make_stores

NOW = "2026-10-01T08:00:00Z"


def csv(text: str) -> bytes:
    return text.strip().encode("utf-8") + b"\n"


class UpsertPipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resource, self.stores = make_stores()
        self.students = self.resource.Table("ho-yu-students")
        self.teachers = self.resource.Table("ho-yu-teachers")
        self.games = self.resource.Table("ho-yu-games")
        self.teachers.seed({"teacher_id": "TCH001", "name": "Mr. Wong"})

    def upsert(self, schema, text: str):
        return upsert_rows(
            schema,
            parse_sheet(csv(text)),
            store=self.stores[schema.entity],
            reference_stores=self.stores,
            now=NOW,
        )

    def test_inserts_new_students_with_timestamps(self) -> None:
        result = self.upsert(
            STUDENTS,
            """
student_id,name_1,marks,class,class_no,teacher_id,password
STU001,John Chan,150,1A,01,TCH001,123
""",
        )

        self.assertEqual((result.processed, result.inserted, result.updated), (1, 1, 0))
        self.assertEqual(result.errors, [])
        item = self.students.items["STU001"]
        self.assertEqual(item["marks"], 150)
        self.assertEqual(item["class"], "1A")
        self.assertEqual(item["class_no"], "01")
        self.assertEqual(item["password"], hash_password("123"))
        self.assertEqual(item["created_at"], NOW)
        self.assertEqual(item["updated_at"], NOW)
        self.assertEqual(item["last_update"], NOW)

    def test_update_preserves_created_at_and_blank_cells(self) -> None:
        self.students.seed(
            {
                "student_id": "STU001",
                "name_1": "John Chan",
                "name_2": "陳大文",
                "marks": 150,
                "created_at": "2024-01-01T00:00:00Z",
            }
        )

        result = self.upsert(STUDENTS, "student_id,name_1,name_2\nSTU001,Johnny Chan,\n")

        self.assertEqual((result.inserted, result.updated), (0, 1))
        item = self.students.items["STU001"]
        self.assertEqual(item["name_1"], "Johnny Chan")
        self.assertEqual(item["name_2"], "陳大文")
        self.assertEqual(item["marks"], 150)
        self.assertEqual(item["created_at"], "2024-01-01T00:00:00Z")
        self.assertEqual(item["updated_at"], NOW)

    def test_update_keeps_marks_awarded_after_the_read(self) -> None:
        self.students.seed({"student_id": "STU001", "name_1": "Old", "marks": 100})
        store = self.stores["students"]
        read = store.batch_get

        def read_then_click(keys):
            found = read(keys)
            award_marks(store, "STU001", 15)
            return found

        with patch.object(store, "batch_get", side_effect=read_then_click):
            result = self.upsert(STUDENTS, "student_id,name_1,marks\nSTU001,New Name,\n")

        self.assertEqual(result.updated, 1)
        item = self.students.items["STU001"]
        self.assertEqual(item["marks"], 115)
        self.assertEqual(item["name_1"], "New Name")
        self.assertEqual(item["updated_at"], NOW)

    def test_student_without_teacher_is_inserted_without_index_key(self) -> None:
        result = self.upsert(STUDENTS, "student_id,name_1,teacher_id\nSTU900,No Teacher,\nSTU901,Has Teacher,TCH001\n")

        self.assertEqual(result.errors, [])
        self.assertEqual(result.inserted, 2)
        self.assertEqual(self.students.put_calls, 0)
        self.assertNotIn("teacher_id", self.students.items["STU900"])
        self.assertEqual(self.students.items["STU901"]["teacher_id"], "TCH001")

    def test_game_without_owner_is_inserted_without_index_keys(self) -> None:
        result = self.upsert(GAMES, "game_id,game_name\n624682780,Puzzle\n")

        self.assertEqual(result.errors, [])
        item = self.games.items["624682780"]
        self.assertNotIn("student_id", item)
        self.assertNotIn("teacher_id", item)

    def test_row_errors_do_not_abort_the_file(self) -> None:
        result = self.upsert(
            STUDENTS,
            """
student_id,marks,teacher_id
STU001,10,TCH001
,20,TCH001
STU003,5000,TCH001
STU004,30,TCH999
""",
        )

        self.assertEqual(result.processed, 1)
        self.assertEqual(
            result.errors,
            [
                "Row 3: Missing student_id",
                "Row 4: marks: must be between 0 and 1000",
                "Row 5: teacher_id TCH999 does not exist",
            ],
        )
        self.assertEqual(sorted(self.students.items), ["STU001"])

    def test_duplicate_keys_keep_first_occurrence(self) -> None:
        result = self.upsert(STUDENTS, "student_id,name_1\nSTU001,First\nSTU001,Second\n")

        self.assertEqual(result.inserted, 1)
        self.assertEqual(result.errors, ["Row 3: Duplicate student_id STU001 (already in row 2)"])
        self.assertEqual(self.students.items["STU001"]["name_1"], "First")

    def test_existing_password_digest_is_kept(self) -> None:
        digest = hash_password("teacher123")
        self.upsert(TEACHERS, f"teacher_id,password\nTCH002,{digest.upper()}\n")
        self.assertEqual(self.teachers.items["TCH002"]["password"], digest)

    def test_teacher_classes_and_admin_flag_are_typed(self) -> None:
        self.upsert(
            TEACHERS,
            """
teacher_id,name,responsible_class,is_admin
TCH002,Ms. Chan,"[""1B"", ""2B""]",yes
TCH003,Dr. Lee,2A,false
""",
        )

        self.assertEqual(self.teachers.items["TCH002"]["responsible_class"], ["1B", "2B"])
        self.assertIs(self.teachers.items["TCH002"]["is_admin"], True)
        self.assertEqual(self.teachers.items["TCH003"]["responsible_class"], ["2A"])
        self.assertIs(self.teachers.items["TCH003"]["is_admin"], False)

    def test_game_reupload_never_changes_accumulated_click(self) -> None:
        self.students.seed({"student_id": "STU001"})
        self.games.seed(
            {
                "game_id": "1207260630",
                "game_name": "Old name",
                "accumulated_click": 41,
                "created_at": "2024-01-01T00:00:00Z",
            }
        )

        result = self.upsert(
            GAMES,
            """
game_id,game_name,student_id,subject,difficulty,teacher_id,scratch_api,accumulated_click
1207260630,Chinese Character Match,STU001,Chinese Language,Beginner,TCH001,https://scratch.mit.edu/projects/1207260630,0
""",
        )

        self.assertEqual(result.updated, 1)
        item = self.games.items["1207260630"]
        self.assertEqual(item["accumulated_click"], 41)
        self.assertEqual(item["game_name"], "Chinese Character Match")
        self.assertEqual(item["scratch_id"], "1207260630")
        self.assertEqual(item["created_at"], "2024-01-01T00:00:00Z")
        update = self.games.update_calls[-1]
        self.assertNotIn("accumulated_click", update["Names"].values())
        self.assertNotIn("created_at", update["Names"].values())

    def test_new_game_takes_accumulated_click_from_sheet(self) -> None:
        self.upsert(GAMES, "game_id,accumulated_click\n624682780,62\n")
        self.assertEqual(self.games.items["624682780"]["accumulated_click"], 62)

    def test_game_validation_and_scratch_mismatch(self) -> None:
        with self.assertLogs("roster.pipeline", level="WARNING") as logs:
            result = self.upsert(
                GAMES,
                """
game_id,subject,difficulty,scratch_api
111,Art,Beginner,
222,Mathematics,Expert,
333,Mathematics,Advanced,https://scratch.mit.edu/projects/999/
""",
            )

        self.assertEqual(result.inserted, 1)
        self.assertEqual(len(result.errors), 2)
        self.assertTrue(result.errors[0].startswith("Row 2: subject"))
        self.assertTrue(result.errors[1].startswith("Row 3: difficulty"))
        self.assertEqual(self.games.items["333"]["scratch_id"], "999")
        self.assertTrue(any("does not match" in line for line in logs.output))

    def test_unprocessed_batch_writes_retried_individually(self) -> None:
        self.resource.unprocessed_write_keys = {"STU002"}

        result = self.upsert(STUDENTS, "student_id\nSTU001\nSTU002\n")

        self.assertEqual(result.inserted, 2)
        self.assertIn("STU002", self.students.items)

    def test_failed_item_write_becomes_row_error(self) -> None:
        self.resource.fail_batch_writes = True
        self.students.fail_put_keys = {"STU002"}

        with self.assertLogs("hoyu.records.repository", level="ERROR"):
            result = self.upsert(STUDENTS, "student_id\nSTU001\nSTU002\n")

        self.assertEqual(result.inserted, 1)
        self.assertEqual(len(result.errors), 1)
        self.assertTrue(result.errors[0].startswith("Row 3: Write failed"))

    def test_records_absent_from_file_are_untouched(self) -> None:
        self.students.seed({"student_id": "STU009", "name_1": "Kevin"})
        self.upsert(STUDENTS, "student_id\nSTU001\n")
        self.assertEqual(self.students.items["STU009"]["name_1"], "Kevin")

    def test_plan_writes_does_not_write(self) -> None:
        planned, result = plan_writes(
            STUDENTS,
            parse_sheet(csv("student_id\nSTU001\n")),
            store=self.stores["students"],
            now=NOW,
        )

        self.assertEqual(len(planned), 1)
        self.assertFalse(planned[0].is_update)
        self.assertEqual(result.errors, [])
        self.assertEqual(self.students.items, {})


class ScratchProjectIdTests(unittest.TestCase):
    def test_extracts_trailing_digits(self) -> None:
        self.assertEqual(scratch_project_id("https://scratch.mit.edu/projects/1207260630"), "1207260630")
        self.assertEqual(scratch_project_id("https://scratch.mit.edu/projects/1207260630/"), "1207260630")
        self.assertEqual(scratch_project_id("https://example.com/game"), "")


if __name__ == "__main__":
    unittest.main()
