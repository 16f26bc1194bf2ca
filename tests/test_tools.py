import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import InvalidArgumentError
from tools import CalendarTools, MathTools


class MathToolsTestCase(unittest.TestCase):
    def test_truncated_percentage_floors(self) -> None:
        self.assertEqual(MathTools.truncated_percentage(1, 3), 33)
        self.assertEqual(MathTools.truncated_percentage(2, 3), 66)
        self.assertEqual(MathTools.truncated_percentage(3, 3), 100)

    def test_truncated_percentage_zero_total(self) -> None:
        self.assertEqual(MathTools.truncated_percentage(0, 0), 0)
        with self.assertRaises(ValueError):
            MathTools.truncated_percentage(-1, 3)

    def test_safe_sum(self) -> None:
        self.assertEqual(MathTools.safe_sum([30, None, 45]), 75)
        self.assertEqual(MathTools.safe_sum([]), 0)


class CalendarToolsTestCase(unittest.TestCase):
    def test_days_in_month(self) -> None:
        self.assertEqual(CalendarTools.days_in_month(2024, 6), 30)
        self.assertEqual(CalendarTools.days_in_month(2024, 2), 29)
        self.assertEqual(CalendarTools.days_in_month(2023, 2), 28)
        with self.assertRaises(InvalidArgumentError):
            CalendarTools.days_in_month(2024, 13)
        with self.assertRaises(InvalidArgumentError):
            CalendarTools.days_in_month(2024, 0)

    def test_days_in_year(self) -> None:
        self.assertEqual(CalendarTools.days_in_year(2024), 366)
        self.assertEqual(CalendarTools.days_in_year(2023), 365)
        self.assertEqual(CalendarTools.days_in_year(1900), 365)
        self.assertEqual(CalendarTools.days_in_year(2000), 366)

    def test_bounds(self) -> None:
        self.assertEqual(
            CalendarTools.month_bounds(2024, 2),
            (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29)),
        )
        self.assertEqual(
            CalendarTools.year_bounds(2023),
            (datetime.date(2023, 1, 1), datetime.date(2023, 12, 31)),
        )

    def test_month_navigation(self) -> None:
        self.assertEqual(CalendarTools.previous_month(2024, 1), (2023, 12))
        self.assertEqual(CalendarTools.next_month(2024, 12), (2025, 1))
        self.assertEqual(CalendarTools.next_month(2024, 5), (2024, 6))
        self.assertEqual(CalendarTools.month_name(6), "June")

    def test_parse_date(self) -> None:
        day = datetime.date(2024, 6, 1)
        self.assertEqual(CalendarTools.parse_date("2024-06-01"), day)
        self.assertEqual(CalendarTools.parse_date(day), day)
        self.assertEqual(
            CalendarTools.parse_date(datetime.datetime(2024, 6, 1, 18, 30)), day
        )
        with self.assertRaises(InvalidArgumentError):
            CalendarTools.parse_date("not a date")

    def test_epoch_millis_roundtrip(self) -> None:
        day = datetime.date(2024, 3, 31)
        millis = CalendarTools.to_epoch_millis(day)
        self.assertEqual(CalendarTools.from_epoch_millis(millis), day)


if __name__ == "__main__":
    unittest.main()
