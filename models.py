from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class WorkoutIcon(str, Enum):
    """Icons a workout type may carry."""

    FITNESS_CENTER = "fitness_center"
    DIRECTIONS_RUN = "directions_run"
    DIRECTIONS_BIKE = "directions_bike"
    POOL = "pool"
    SELF_IMPROVEMENT = "self_improvement"
    SPORTS_GYMNASTICS = "sports_gymnastics"
    SPORTS_MARTIAL_ARTS = "sports_martial_arts"
    SPORTS_KABADDI = "sports_kabaddi"
    HIKING = "hiking"
    ROWING = "rowing"
    SPORTS_TENNIS = "sports_tennis"
    HOTEL = "hotel"

    @classmethod
    def parse(cls, value: str | None) -> "WorkoutIcon":
        """Return the icon named ``value`` or ``FITNESS_CENTER`` if unknown."""
        if value is None:
            return cls.FITNESS_CENTER
        try:
            return cls(value)
        except ValueError:
            return cls.FITNESS_CENTER


class WorkoutColor(int, Enum):
    """Palette of workout type colors as ARGB integers."""

    RED = 0xFFE53935
    BLUE = 0xFF1E88E5
    GREEN = 0xFF43A047
    ORANGE = 0xFFFB8C00
    PURPLE = 0xFF8E24AA
    PINK = 0xFFD81B60
    CYAN = 0xFF00ACC1
    DEEP_PURPLE = 0xFF5E35B1
    INDIGO = 0xFF3949AB
    TEAL = 0xFF00897B
    LIGHT_GREEN = 0xFF7CB342
    DEEP_ORANGE = 0xFFFF7043
    GRAY = 0xFF9E9E9E

    @classmethod
    def parse(cls, value: int | None) -> "WorkoutColor":
        """Return the palette color for ``value`` or ``GRAY`` if unknown."""
        if value is None:
            return cls.GRAY
        try:
            return cls(value)
        except ValueError:
            return cls.GRAY

    @property
    def hex(self) -> str:
        """Return ``#rrggbb`` without the alpha channel."""
        return f"#{self.value & 0xFFFFFF:06x}"


REST_DAY_NAME = "rest day"


def infer_rest_day(name: str, icon: str | None) -> bool:
    """Return whether a type reads as a rest day by its name or icon."""
    return name.strip().casefold() == REST_DAY_NAME or icon == WorkoutIcon.HOTEL.value


@dataclass(frozen=True)
class WorkoutType:
    name: str
    id: int = 0
    color_value: Optional[int] = None
    icon_name: Optional[str] = None
    is_default: bool = False
    is_rest_day: bool = False

    @property
    def color(self) -> WorkoutColor:
        return WorkoutColor.parse(self.color_value)

    @property
    def icon(self) -> WorkoutIcon:
        return WorkoutIcon.parse(self.icon_name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color_value,
            "color_hex": self.color.hex,
            "icon": self.icon.value,
            "is_default": self.is_default,
            "is_rest_day": self.is_rest_day,
        }


@dataclass(frozen=True)
class WorkoutEntry:
    date: datetime.date
    workout_type_id: int
    id: int = 0
    note: Optional[str] = None
    duration_minutes: Optional[int] = None
    calories_burned: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "workout_type_id": self.workout_type_id,
            "note": self.note,
            "duration_minutes": self.duration_minutes,
            "calories_burned": self.calories_burned,
        }


@dataclass(frozen=True)
class WorkoutTypeCountData:
    workout_type: WorkoutType
    count: int

    def to_dict(self) -> dict:
        return {"workout_type": self.workout_type.to_dict(), "count": self.count}


@dataclass(frozen=True)
class DailyCountData:
    day: int
    count: int


@dataclass(frozen=True)
class MonthlyCountData:
    month: int
    count: int


@dataclass(frozen=True)
class MonthlyReport:
    """Aggregated statistics for one calendar month."""

    year: int
    month: int
    total_workouts: int
    total_rest_days: int
    total_duration: int
    total_calories: int
    workout_type_counts: List[WorkoutTypeCountData] = field(default_factory=list)
    daily_counts: List[DailyCountData] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "total_workouts": self.total_workouts,
            "total_rest_days": self.total_rest_days,
            "total_duration": self.total_duration,
            "total_calories": self.total_calories,
            "workout_type_counts": [tc.to_dict() for tc in self.workout_type_counts],
            "daily_counts": [
                {"day": dc.day, "count": dc.count} for dc in self.daily_counts
            ],
        }


@dataclass(frozen=True)
class YearlyReport:
    """Aggregated statistics for one calendar year."""

    year: int
    total_workouts: int
    total_rest_days: int
    monthly_counts: List[MonthlyCountData] = field(default_factory=list)
    workout_type_counts: List[WorkoutTypeCountData] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "total_workouts": self.total_workouts,
            "total_rest_days": self.total_rest_days,
            "monthly_counts": [
                {"month": mc.month, "count": mc.count} for mc in self.monthly_counts
            ],
            "workout_type_counts": [tc.to_dict() for tc in self.workout_type_counts],
        }
