import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, WorkoutTypeRepository


class TestSchemaMigration:
    def test_adds_rest_day_column(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE workout_types (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, "
            "color INTEGER, icon TEXT, is_default INTEGER NOT NULL DEFAULT 0)"
        )
        conn.execute("INSERT INTO workout_types (name, icon) VALUES ('Chest', 'fitness_center')")
        conn.execute("INSERT INTO workout_types (name, icon) VALUES ('Rest Day', NULL)")
        conn.execute("INSERT INTO workout_types (name, icon) VALUES ('Sleep', 'hotel')")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cols = [row[1] for row in conn.execute("PRAGMA table_info(workout_types)")]
        assert "is_rest_day" in cols
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='workout_types_old'"
        )
        assert cur.fetchone() is None
        conn.close()

        rest = [t.name for t in WorkoutTypeRepository(str(db_file)).fetch_types() if t.is_rest_day]
        assert rest == ["Rest Day", "Sleep"]

    def test_settings_seeded(self, tmp_path):
        db_file = tmp_path / "fresh.db"
        Database(str(db_file))
        conn = sqlite3.connect(str(db_file))
        rows = dict(conn.execute("SELECT key, value FROM settings"))
        conn.close()
        assert rows["show_calories"] == "1"
        assert rows["theme_mode"] == "system"
