import os
import sys
import json
import logging

import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cli
from db import WorkoutEntryRepository, WorkoutTypeRepository


@pytest.fixture
def paths(tmp_path):
    return ["--db", str(tmp_path / "cli.db"), "--yaml", str(tmp_path / "cli.yaml")]


def _seed(paths):
    db_path = paths[1]
    types = WorkoutTypeRepository(db_path)
    tid = types.create("Chest")
    WorkoutEntryRepository(db_path).create("2024-06-01", tid, duration_minutes=30)
    return tid


def test_export_monthly(paths, tmp_path, capsys):
    _seed(paths)
    out = tmp_path / "exports"
    cli.main(paths + ["export", "--year", "2024", "--month", "6", "--fmt", "xlsx", "--out", str(out)])
    assert (out / "WorkoutLog_2024_06.xlsx").exists()
    assert "Exported" in capsys.readouterr().out


def test_export_yearly_pdf(paths, tmp_path):
    _seed(paths)
    cli.main(paths + ["export", "--year", "2024", "--fmt", "pdf", "--out", str(tmp_path)])
    with open(tmp_path / "WorkoutLog_2024_Yearly.pdf", "rb") as f:
        assert f.read(4) == b"%PDF"


def test_export_without_data_exits(paths, tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(paths + ["export", "--year", "2024", "--month", "6", "--out", str(tmp_path)])
    assert exc.value.code == 1
    assert "No data to export" in capsys.readouterr().err


def test_invalid_month_exits(paths, capsys):
    with pytest.raises(SystemExit):
        cli.main(paths + ["report", "--year", "2024", "--month", "13"])
    assert "month must be between 1 and 12" in capsys.readouterr().err


def test_report_prints_json(paths, capsys):
    _seed(paths)
    cli.main(paths + ["report", "--year", "2024", "--month", "6"])
    data = json.loads(capsys.readouterr().out)
    assert data["total_workouts"] == 1
    assert data["total_duration"] == 30


def test_backup_and_restore(paths, tmp_path, capsys):
    _seed(paths)
    path = cli.backup(paths[1], paths[3], str(tmp_path))
    entries = WorkoutEntryRepository(paths[1])
    for e in entries.fetch_entries():
        entries.delete(e.id)

    cli.main(paths + ["restore", "--in", path])
    assert "Backup restored" in capsys.readouterr().out
    assert WorkoutEntryRepository(paths[1]).count() == 1

    bad = tmp_path / "bad.json"
    bad.write_text("{}", encoding="utf-8")
    with pytest.raises(SystemExit):
        cli.main(paths + ["restore", "--in", str(bad)])


def test_defaults_and_demo(paths, capsys):
    cli.main(paths + ["defaults"])
    assert "Default types inserted" in capsys.readouterr().out
    cli.main(paths + ["demo"])
    assert WorkoutEntryRepository(paths[1]).count() == 7
    cli.main(paths + ["demo"])
    assert "already contains entries" in capsys.readouterr().out


@pytest.fixture
def root_level(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    root = logging.getLogger()
    saved = root.level
    yield root
    root.setLevel(saved)


def test_log_level_from_settings_file(paths, root_level):
    with open(paths[3], "w", encoding="utf-8") as f:
        yaml.safe_dump({"log_level": "ERROR"}, f)
    cli.main(paths + ["defaults"])
    assert root_level.level == logging.ERROR


def test_log_level_flag_overrides_settings(paths, root_level, monkeypatch):
    with open(paths[3], "w", encoding="utf-8") as f:
        yaml.safe_dump({"log_level": "ERROR"}, f)
    cli.main(paths + ["--log-level", "DEBUG", "defaults"])
    assert root_level.level == logging.DEBUG
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    cli.main(paths + ["defaults"])
    assert root_level.level == logging.WARNING


def test_invalid_log_level_in_settings(paths, root_level, capsys):
    with open(paths[3], "w", encoding="utf-8") as f:
        yaml.safe_dump({"log_level": "LOUD"}, f)
    with pytest.raises(SystemExit):
        cli.main(paths + ["defaults"])
    assert "log_level" in capsys.readouterr().err
