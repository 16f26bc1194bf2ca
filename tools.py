import calendar
import datetime
import math
from typing import Tuple

from errors import InvalidArgumentError


class MathTools:
    """Provides small numeric helpers used by reports."""

    @staticmethod
    def truncated_percentage(count: int, total: int) -> int:
        """Return ``count / total * 100`` floored to an integer.

        Reports show 33% and 66% for a 1:2 split, never a rounded 67%.
        A zero ``total`` yields 0.
        """
        if count < 0 or total < 0:
            raise ValueError("count and total must be non-negative")
        if total == 0:
            return 0
        return math.floor(count * 100 / total)

    @staticmethod
    def safe_sum(values) -> int:
        """Sum ``values`` treating ``None`` as zero."""
        return sum(v or 0 for v in values)


class CalendarTools:
    """Calendar arithmetic at day granularity."""

    MONTH_NAMES = [
        "January",
        "February",
        "March",
        "April",
        "May",
        "June",
        "July",
        "August",
        "September",
        "October",
        "November",
        "December",
    ]

    @staticmethod
    def validate_year(year: int) -> None:
        if not 1 <= year <= 9999:
            raise InvalidArgumentError(f"year must be between 1 and 9999, got {year}")

    @classmethod
    def validate_month(cls, year: int, month: int) -> None:
        cls.validate_year(year)
        if not 1 <= month <= 12:
            raise InvalidArgumentError(f"month must be between 1 and 12, got {month}")

    @classmethod
    def days_in_month(cls, year: int, month: int) -> int:
        cls.validate_month(year, month)
        return calendar.monthrange(year, month)[1]

    @classmethod
    def days_in_year(cls, year: int) -> int:
        cls.validate_year(year)
        return 366 if calendar.isleap(year) else 365

    @classmethod
    def month_bounds(cls, year: int, month: int) -> Tuple[datetime.date, datetime.date]:
        """Return the first and last day of ``month`` inclusive."""
        last = cls.days_in_month(year, month)
        return datetime.date(year, month, 1), datetime.date(year, month, last)

    @classmethod
    def year_bounds(cls, year: int) -> Tuple[datetime.date, datetime.date]:
        cls.validate_year(year)
        return datetime.date(year, 1, 1), datetime.date(year, 12, 31)

    @classmethod
    def month_name(cls, month: int) -> str:
        if not 1 <= month <= 12:
            raise InvalidArgumentError(f"month must be between 1 and 12, got {month}")
        return cls.MONTH_NAMES[month - 1]

    @classmethod
    def previous_month(cls, year: int, month: int) -> Tuple[int, int]:
        cls.validate_month(year, month)
        if month == 1:
            return year - 1, 12
        return year, month - 1

    @classmethod
    def next_month(cls, year: int, month: int) -> Tuple[int, int]:
        cls.validate_month(year, month)
        if month == 12:
            return year + 1, 1
        return year, month + 1

    @staticmethod
    def parse_date(value) -> datetime.date:
        """Return ``value`` as a date, accepting ISO strings and datetimes."""
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value
        try:
            return datetime.date.fromisoformat(str(value))
        except ValueError as e:
            raise InvalidArgumentError(f"invalid date: {value}") from e

    @staticmethod
    def to_epoch_millis(day: datetime.date) -> int:
        """Return epoch milliseconds of local midnight on ``day``."""
        midnight = datetime.datetime.combine(day, datetime.time.min)
        return int(midnight.astimezone().timestamp() * 1000)

    @staticmethod
    def from_epoch_millis(millis: int) -> datetime.date:
        """Return the local calendar day containing ``millis``."""
        return datetime.datetime.fromtimestamp(millis / 1000).date()
