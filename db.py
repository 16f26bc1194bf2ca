import sqlite3
import aiosqlite
import datetime
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from config import YamlConfig, DEFAULT_DB_PATH, DEFAULT_SETTINGS_PATH
from errors import InvalidArgumentError
from models import WorkoutColor, WorkoutEntry, WorkoutIcon, WorkoutType, infer_rest_day
from settings_schema import SettingsSchema, validate_settings
from tools import CalendarTools

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Fan out store change events to subscribed callbacks."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[dict], None]] = []

    def subscribe(self, callback: Callable[[dict], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def notify(self, event: dict) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception("change listener failed for %s", event)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workout_types": (
            """CREATE TABLE workout_types (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    color INTEGER,
                    icon TEXT,
                    is_default INTEGER NOT NULL DEFAULT 0,
                    is_rest_day INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );""",
            ["id", "name", "color", "icon", "is_default", "is_rest_day", "created_at"],
        ),
        "workout_entries": (
            """CREATE TABLE workout_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TEXT NOT NULL,
                    workout_type_id INTEGER NOT NULL,
                    note TEXT,
                    duration_minutes INTEGER,
                    calories_burned INTEGER,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(workout_type_id) REFERENCES workout_types(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "date",
                "workout_type_id",
                "note",
                "duration_minutes",
                "calories_burned",
                "created_at",
            ],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_entries_date ON workout_entries(date);",
        "CREATE INDEX IF NOT EXISTS idx_entries_type ON workout_entries(workout_type_id);",
        "CREATE INDEX IF NOT EXISTS idx_entries_date_type ON workout_entries(date, workout_type_id);",
    ]

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep foreign keys pointing at the rebuilt table, not the *_old copy
            conn.execute("PRAGMA legacy_alter_table=ON;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for sql in self._INDEXES:
                conn.execute(sql)
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        if table == "workout_types" and "is_rest_day" not in existing_cols:
            conn.execute(
                "UPDATE workout_types SET is_rest_day = 1 "
                "WHERE lower(trim(name)) = 'rest day' OR icon = 'hotel';"
            )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = SettingsSchema().model_dump()
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, SettingsRepository._encode(value)),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def __init__(
        self, db_path: str = DEFAULT_DB_PATH, notifier: ChangeNotifier | None = None
    ) -> None:
        super().__init__(db_path)
        self.notifier = notifier or ChangeNotifier()

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _changed(self, table: str, action: str, row_id: int | None = None) -> None:
        self.notifier.notify({"table": table, "action": action, "id": row_id})


def _row_to_type(row: Tuple) -> WorkoutType:
    tid, name, color, icon, is_default, is_rest_day = row
    return WorkoutType(
        id=tid,
        name=name,
        color_value=color,
        icon_name=icon,
        is_default=bool(is_default),
        is_rest_day=bool(is_rest_day),
    )


def _row_to_entry(row: Tuple) -> WorkoutEntry:
    eid, date, type_id, note, duration, calories = row
    return WorkoutEntry(
        id=eid,
        date=datetime.date.fromisoformat(date),
        workout_type_id=type_id,
        note=note,
        duration_minutes=duration,
        calories_burned=calories,
    )


def _check_range(start_date, end_date) -> Tuple[str, str]:
    start = CalendarTools.parse_date(start_date)
    end = CalendarTools.parse_date(end_date)
    if end < start:
        raise InvalidArgumentError("end date must not be before start date")
    return start.isoformat(), end.isoformat()


def _check_amount(name: str, value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if int(value) < 0:
        raise ValueError(f"{name} must be non-negative")
    return int(value)


class WorkoutTypeRepository(BaseRepository):
    """Repository for workout type table operations."""

    _COLUMNS = "id, name, color, icon, is_default, is_rest_day"

    DEFAULT_TYPES = [
        ("Chest", WorkoutColor.RED, WorkoutIcon.FITNESS_CENTER, False),
        ("Back", WorkoutColor.BLUE, WorkoutIcon.FITNESS_CENTER, False),
        ("Legs", WorkoutColor.GREEN, WorkoutIcon.DIRECTIONS_RUN, False),
        ("Shoulders", WorkoutColor.ORANGE, WorkoutIcon.FITNESS_CENTER, False),
        ("Arms", WorkoutColor.PURPLE, WorkoutIcon.FITNESS_CENTER, False),
        ("Cardio", WorkoutColor.PINK, WorkoutIcon.DIRECTIONS_RUN, False),
        ("Rest Day", WorkoutColor.GRAY, WorkoutIcon.HOTEL, True),
    ]

    def create(
        self,
        name: str,
        color: int | None = None,
        icon: str | None = None,
        is_default: bool = False,
        is_rest_day: bool | None = None,
    ) -> int:
        name = (name or "").strip()
        if not name:
            raise ValueError("name must not be empty")
        if is_rest_day is None:
            is_rest_day = infer_rest_day(name, icon)
        tid = self.execute(
            "INSERT INTO workout_types (name, color, icon, is_default, is_rest_day) VALUES (?, ?, ?, ?, ?);",
            (name, color, icon, int(is_default), int(is_rest_day)),
        )
        self._changed("workout_types", "create", tid)
        return tid

    def update(
        self,
        type_id: int,
        name: str,
        color: int | None = None,
        icon: str | None = None,
        is_rest_day: bool | None = None,
    ) -> None:
        current = self.fetch(type_id)
        name = (name or "").strip()
        if not name:
            raise ValueError("name must not be empty")
        if is_rest_day is None:
            is_rest_day = current.is_rest_day
        self.execute(
            "UPDATE workout_types SET name = ?, color = ?, icon = ?, is_rest_day = ? WHERE id = ?;",
            (name, color, icon, int(is_rest_day), type_id),
        )
        self._changed("workout_types", "update", type_id)

    def fetch(self, type_id: int) -> WorkoutType:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_types WHERE id = ?;", (type_id,)
        )
        if not rows:
            raise ValueError("workout type not found")
        return _row_to_type(rows[0])

    def fetch_types(self) -> List[WorkoutType]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_types ORDER BY name ASC, id ASC;"
        )
        return [_row_to_type(r) for r in rows]

    def type_map(self) -> Dict[int, WorkoutType]:
        return {t.id: t for t in self.fetch_types()}

    def delete(self, type_id: int) -> None:
        self.fetch(type_id)
        self.execute("DELETE FROM workout_types WHERE id = ?;", (type_id,))
        self._changed("workout_types", "delete", type_id)

    def count(self) -> int:
        return self.fetch_all("SELECT COUNT(*) FROM workout_types;")[0][0]

    def insert_defaults(self) -> bool:
        """Seed the default types when the table is empty."""
        if self.count() > 0:
            return False
        for name, color, icon, rest in self.DEFAULT_TYPES:
            self.execute(
                "INSERT INTO workout_types (name, color, icon, is_default, is_rest_day) VALUES (?, ?, ?, 1, ?);",
                (name, color.value, icon.value, int(rest)),
            )
        self._changed("workout_types", "insert_defaults")
        return True


class WorkoutEntryRepository(BaseRepository):
    """Repository for workout entry table operations."""

    _COLUMNS = "id, date, workout_type_id, note, duration_minutes, calories_burned"

    def _ensure_type(self, type_id: int) -> None:
        rows = self.fetch_all("SELECT id FROM workout_types WHERE id = ?;", (type_id,))
        if not rows:
            raise ValueError("workout type not found")

    def create(
        self,
        date,
        workout_type_id: int,
        note: str | None = None,
        duration_minutes: int | None = None,
        calories_burned: int | None = None,
    ) -> int:
        day = CalendarTools.parse_date(date)
        self._ensure_type(workout_type_id)
        eid = self.execute(
            "INSERT INTO workout_entries (date, workout_type_id, note, duration_minutes, calories_burned) "
            "VALUES (?, ?, ?, ?, ?);",
            (
                day.isoformat(),
                workout_type_id,
                note or None,
                _check_amount("duration_minutes", duration_minutes),
                _check_amount("calories_burned", calories_burned),
            ),
        )
        self._changed("workout_entries", "create", eid)
        return eid

    def update(
        self,
        entry_id: int,
        date,
        workout_type_id: int,
        note: str | None = None,
        duration_minutes: int | None = None,
        calories_burned: int | None = None,
    ) -> None:
        self.fetch(entry_id)
        day = CalendarTools.parse_date(date)
        self._ensure_type(workout_type_id)
        self.execute(
            "UPDATE workout_entries SET date = ?, workout_type_id = ?, note = ?, "
            "duration_minutes = ?, calories_burned = ? WHERE id = ?;",
            (
                day.isoformat(),
                workout_type_id,
                note or None,
                _check_amount("duration_minutes", duration_minutes),
                _check_amount("calories_burned", calories_burned),
                entry_id,
            ),
        )
        self._changed("workout_entries", "update", entry_id)

    def fetch(self, entry_id: int) -> WorkoutEntry:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_entries WHERE id = ?;", (entry_id,)
        )
        if not rows:
            raise ValueError("entry not found")
        return _row_to_entry(rows[0])

    def fetch_entries(self) -> List[WorkoutEntry]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_entries ORDER BY date DESC, id DESC;"
        )
        return [_row_to_entry(r) for r in rows]

    def fetch_by_date(self, date) -> List[WorkoutEntry]:
        """Return entries logged on ``date``; used for conflict warnings."""
        day = CalendarTools.parse_date(date).isoformat()
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_entries WHERE date = ? ORDER BY id;",
            (day,),
        )
        return [_row_to_entry(r) for r in rows]

    def fetch_between(self, start_date, end_date) -> List[WorkoutEntry]:
        """Return entries dated within ``[start_date, end_date]``."""
        start, end = _check_range(start_date, end_date)
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_entries WHERE date BETWEEN ? AND ? "
            "ORDER BY date DESC, id DESC;",
            (start, end),
        )
        return [_row_to_entry(r) for r in rows]

    def type_counts_between(self, start_date, end_date) -> List[Tuple[int, int]]:
        start, end = _check_range(start_date, end_date)
        return self.fetch_all(
            "SELECT workout_type_id, COUNT(*) AS cnt FROM workout_entries "
            "WHERE date BETWEEN ? AND ? GROUP BY workout_type_id "
            "ORDER BY cnt DESC, MAX(date) DESC, workout_type_id ASC;",
            (start, end),
        )

    def daily_counts_between(self, start_date, end_date) -> List[Tuple[str, int]]:
        start, end = _check_range(start_date, end_date)
        return self.fetch_all(
            "SELECT date, COUNT(*) FROM workout_entries WHERE date BETWEEN ? AND ? "
            "GROUP BY date ORDER BY date ASC;",
            (start, end),
        )

    def search(self, query: str) -> List[WorkoutEntry]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_entries WHERE note LIKE ? "
            "ORDER BY date DESC, id DESC;",
            (f"%{query}%",),
        )
        return [_row_to_entry(r) for r in rows]

    def count(self) -> int:
        return self.fetch_all("SELECT COUNT(*) FROM workout_entries;")[0][0]

    def count_between(self, start_date, end_date) -> int:
        start, end = _check_range(start_date, end_date)
        return self.fetch_all(
            "SELECT COUNT(*) FROM workout_entries WHERE date BETWEEN ? AND ?;",
            (start, end),
        )[0][0]

    def delete(self, entry_id: int) -> None:
        self.fetch(entry_id)
        self.execute("DELETE FROM workout_entries WHERE id = ?;", (entry_id,))
        self._changed("workout_entries", "delete", entry_id)

    def replace_all(
        self, types: Iterable[WorkoutType], entries: Iterable[WorkoutEntry]
    ) -> None:
        """Replace every type and entry, keeping ids, in one transaction.

        Nothing is changed when any row fails to insert.
        """
        with self._connection() as conn:
            conn.execute("DELETE FROM workout_entries;")
            conn.execute("DELETE FROM workout_types;")
            for t in types:
                conn.execute(
                    "INSERT INTO workout_types (id, name, color, icon, is_default, is_rest_day) "
                    "VALUES (?, ?, ?, ?, ?, ?);",
                    (
                        t.id,
                        t.name,
                        t.color_value,
                        t.icon_name,
                        int(t.is_default),
                        int(t.is_rest_day),
                    ),
                )
            for e in entries:
                conn.execute(
                    "INSERT INTO workout_entries (id, date, workout_type_id, note, duration_minutes, calories_burned) "
                    "VALUES (?, ?, ?, ?, ?, ?);",
                    (
                        e.id,
                        e.date.isoformat(),
                        e.workout_type_id,
                        e.note,
                        e.duration_minutes,
                        e.calories_burned,
                    ),
                )
        self._changed("workout_types", "replace_all")
        self._changed("workout_entries", "replace_all")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class AsyncWorkoutTypeRepository(AsyncBaseRepository):
    """Async read access to workout types."""

    async def fetch_types(self) -> List[WorkoutType]:
        rows = await self.fetch_all(
            f"SELECT {WorkoutTypeRepository._COLUMNS} FROM workout_types ORDER BY name ASC, id ASC;"
        )
        return [_row_to_type(r) for r in rows]

    async def type_map(self) -> Dict[int, WorkoutType]:
        return {t.id: t for t in await self.fetch_types()}


class AsyncWorkoutEntryRepository(AsyncBaseRepository):
    """Async repository for workout entries."""

    async def fetch_between(self, start_date, end_date) -> List[WorkoutEntry]:
        start, end = _check_range(start_date, end_date)
        rows = await self.fetch_all(
            f"SELECT {WorkoutEntryRepository._COLUMNS} FROM workout_entries "
            "WHERE date BETWEEN ? AND ? ORDER BY date DESC, id DESC;",
            (start, end),
        )
        return [_row_to_entry(r) for r in rows]


class SettingsRepository(BaseRepository):
    """Repository for application settings synchronized with YAML."""

    BOOL_KEYS = {"show_calories", "show_duration", "onboarding_completed"}

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        yaml_path: str = DEFAULT_SETTINGS_PATH,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        super().__init__(db_path, notifier)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    @staticmethod
    def _encode(value) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return str(value)

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, bool | str] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "true", "True"}
            else:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, self._encode(value)),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()
        self._changed("settings", "update")

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {"1", "true", "True"}

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def update(self, values: dict) -> dict:
        """Validate and store ``values`` merged over current settings."""
        merged = {**self.all_settings(), **values}
        validate_settings(merged)
        for key, value in values.items():
            self.set_text(key, self._encode(value))
        return self.all_settings()

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()
