"""Unit tests for spreadsheet cell conversion helpers."""

from __future__ import annotations

import re
import unittest
from datetime import date, datetime, timezone

from hoyu.conversion import (
    is_blank,
    map_row_to_object,
    to_boolean,
    to_date_string,
    to_number,
    to_string,
    to_string_array,
    validate_required_field,
)

_RFC3339_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


class ToStringTests(unittest.TestCase):
    def test_none_returns_default(self) -> None:
        self.assertEqual(to_string(None), "")
        self.assertEqual(to_string(None, "n/a"), "n/a")

    def test_integral_float_drops_decimal_point(self) -> None:
        self.assertEqual(to_string(123.0), "123")
        self.assertEqual(to_string(12.5), "12.5")

    def test_booleans_render_lower_case(self) -> None:
        self.assertEqual(to_string(True), "true")
        self.assertEqual(to_string(False), "false")

    def test_datetimes_render_as_utc(self) -> None:
        value = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
        self.assertEqual(to_string(value), "2024-01-15T09:30:00Z")
        self.assertEqual(to_string(date(2024, 1, 15)), "2024-01-15")


class ToNumberTests(unittest.TestCase):
    def test_parses_numeric_strings(self) -> None:
        self.assertEqual(to_number("123"), 123)
        self.assertIsInstance(to_number("123"), int)
        self.assertEqual(to_number("123.45"), 123.45)
        self.assertEqual(to_number(" 7 "), 7)

    def test_missing_values_use_default(self) -> None:
        self.assertEqual(to_number(None, 100), 100)
        self.assertEqual(to_number("", 5), 5)

    def test_invalid_and_non_finite_values_use_default(self) -> None:
        self.assertEqual(to_number("invalid"), 0)
        self.assertEqual(to_number("inf", 3), 3)
        self.assertEqual(to_number(float("nan"), 4), 4)
        self.assertEqual(to_number(["1"], 9), 9)

    def test_numbers_pass_through(self) -> None:
        self.assertEqual(to_number(42), 42)
        self.assertEqual(to_number(42.0), 42)
        self.assertEqual(to_number(True), 1)


class ToBooleanTests(unittest.TestCase):
    def test_truthy_strings(self) -> None:
        for value in ("true", "TRUE", " yes ", "1", "Yes"):
            with self.subTest(value=value):
                self.assertTrue(to_boolean(value))

    def test_other_strings_are_false(self) -> None:
        for value in ("false", "no", "0", "", "maybe"):
            with self.subTest(value=value):
                self.assertFalse(to_boolean(value, True))

    def test_numbers_and_defaults(self) -> None:
        self.assertTrue(to_boolean(2))
        self.assertFalse(to_boolean(0))
        self.assertTrue(to_boolean(None, True))
        self.assertFalse(to_boolean(None))
        self.assertTrue(to_boolean({"x": 1}, True))


class ToStringArrayTests(unittest.TestCase):
    def test_json_array_parses(self) -> None:
        self.assertEqual(to_string_array('["1A", "2B"]'), ["1A", "2B"])

    def test_plain_text_becomes_single_element(self) -> None:
        self.assertEqual(to_string_array("1A"), ["1A"])
        self.assertEqual(to_string_array("1A, 2B"), ["1A, 2B"])

    def test_other_json_values_are_wrapped(self) -> None:
        self.assertEqual(to_string_array("42"), ["42"])
        self.assertEqual(to_string_array('"1A"'), ["1A"])

    def test_sequences_and_defaults(self) -> None:
        self.assertEqual(to_string_array(["1A", 2]), ["1A", "2"])
        self.assertEqual(to_string_array(None), [])
        self.assertEqual(to_string_array("", ["X"]), ["X"])


class ToDateStringTests(unittest.TestCase):
    def test_valid_timestamp_is_normalized(self) -> None:
        self.assertEqual(to_date_string("2024-01-15T09:30:00.000Z"), "2024-01-15T09:30:00Z")
        self.assertEqual(to_date_string("2024-01-15T17:30:00+08:00"), "2024-01-15T09:30:00Z")

    def test_datetime_cells_are_formatted(self) -> None:
        self.assertEqual(to_date_string(datetime(2024, 1, 15, 9, 30)), "2024-01-15T09:30:00Z")

    def test_missing_value_uses_now_or_empty(self) -> None:
        self.assertRegex(to_date_string(None), _RFC3339_RE)
        self.assertEqual(to_date_string(None, use_current_if_invalid=False), "")

    def test_invalid_value_uses_now_or_original_text(self) -> None:
        self.assertRegex(to_date_string("next tuesday"), _RFC3339_RE)
        self.assertEqual(to_date_string("next tuesday", use_current_if_invalid=False), "next tuesday")


class RowHelpersTests(unittest.TestCase):
    def test_map_row_to_object_pairs_positions(self) -> None:
        record = map_row_to_object(["student_id", "", "marks"], ["STU001", "ignored"])
        self.assertEqual(record, {"student_id": "STU001", "marks": None})

    def test_validate_required_field(self) -> None:
        self.assertEqual(validate_required_field("STU001", "student_id"), (True, None))
        self.assertEqual(validate_required_field("  ", "student_id"), (False, "Missing student_id"))
        self.assertEqual(validate_required_field(None, "game_id"), (False, "Missing game_id"))

    def test_is_blank(self) -> None:
        self.assertTrue(is_blank(None))
        self.assertTrue(is_blank(" "))
        self.assertTrue(is_blank(float("nan")))
        self.assertFalse(is_blank(0))


if __name__ == "__main__":
    unittest.main()
