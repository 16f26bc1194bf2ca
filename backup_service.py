import json
import logging
import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from db import WorkoutEntryRepository
from models import WorkoutEntry, WorkoutType, infer_rest_day
from tools import CalendarTools

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


class BackupWorkoutType(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    name: str
    color: Optional[int] = None
    icon: Optional[str] = None
    is_default: bool = Field(False, alias="isDefault")


class BackupWorkoutEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    date: int
    workout_type_id: int = Field(alias="workoutTypeId")
    note: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, alias="durationMinutes")
    calories_burned: Optional[int] = Field(None, alias="caloriesBurned")


class BackupData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = BACKUP_VERSION
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000), alias="createdAt")
    workout_types: List[BackupWorkoutType] = Field(alias="workoutTypes")
    workout_entries: List[BackupWorkoutEntry] = Field(alias="workoutEntries")


def backup_file_name(data: BackupData) -> str:
    return f"WorkoutLog_Backup_{data.created_at}.json"


def create_backup(types: List[WorkoutType], entries: List[WorkoutEntry]) -> BackupData:
    return BackupData(
        workout_types=[
            BackupWorkoutType(
                id=t.id,
                name=t.name,
                color=t.color_value,
                icon=t.icon_name,
                is_default=t.is_default,
            )
            for t in types
        ],
        workout_entries=[
            BackupWorkoutEntry(
                id=e.id,
                date=CalendarTools.to_epoch_millis(e.date),
                workout_type_id=e.workout_type_id,
                note=e.note,
                duration_minutes=e.duration_minutes,
                calories_burned=e.calories_burned,
            )
            for e in entries
        ],
    )


def dumps(data: BackupData) -> str:
    return json.dumps(data.model_dump(by_alias=True), indent=4)


def read_backup(text: str) -> Optional[BackupData]:
    """Parse a backup document, returning ``None`` when it is not usable."""
    try:
        data = BackupData.model_validate(json.loads(text))
    except (ValueError, ValidationError) as e:
        logger.warning("unreadable backup: %s", e)
        return None
    if data.version < 1:
        logger.warning("unsupported backup version %s", data.version)
        return None
    if any(not t.name.strip() for t in data.workout_types):
        logger.warning("backup contains a workout type without a name")
        return None
    return data


def restore_backup(data: BackupData, entry_repo: WorkoutEntryRepository) -> None:
    """Replace all stored types and entries with the contents of ``data``.

    Raises ``ValueError`` before touching the store when an entry refers to a
    type the backup does not contain.
    """
    type_ids = {t.id for t in data.workout_types}
    missing = sorted({e.workout_type_id for e in data.workout_entries} - type_ids)
    if missing:
        raise ValueError(f"backup entries reference unknown workout types: {missing}")
    entry_repo.replace_all(
        [
            WorkoutType(
                id=t.id,
                name=t.name,
                color_value=t.color,
                icon_name=t.icon,
                is_default=t.is_default,
                is_rest_day=infer_rest_day(t.name, t.icon),
            )
            for t in data.workout_types
        ],
        [
            WorkoutEntry(
                id=e.id,
                date=CalendarTools.from_epoch_millis(e.date),
                workout_type_id=e.workout_type_id,
                note=e.note,
                duration_minutes=e.duration_minutes,
                calories_burned=e.calories_burned,
            )
            for e in data.workout_entries
        ],
    )
    logger.info(
        "restored %d types and %d entries",
        len(data.workout_types),
        len(data.workout_entries),
    )
