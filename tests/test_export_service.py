import io
import os
import sys
import datetime

import pytest
from openpyxl import load_workbook

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import ExportError
from export_service import DocumentExporter, ExportService, TabularExporter
from models import WorkoutEntry, WorkoutType
from report_service import compute_monthly_report, compute_yearly_report

CHEST = WorkoutType("Chest", id=1)
LEGS = WorkoutType("Legs", id=2)
TYPES = {1: CHEST, 2: LEGS}


def _entries():
    return [
        WorkoutEntry(datetime.date(2024, 6, 15), 2, id=3),
        WorkoutEntry(datetime.date(2024, 6, 1), 2, id=2, duration_minutes=45),
        WorkoutEntry(datetime.date(2024, 6, 1), 1, id=1, duration_minutes=30, calories_burned=200),
    ]


@pytest.fixture
def monthly():
    return compute_monthly_report(2024, 6, _entries(), TYPES)


@pytest.fixture
def yearly():
    return compute_yearly_report(2024, _entries(), TYPES)


class FailingSink(io.RawIOBase):
    def writable(self):
        return True

    def write(self, data):
        raise OSError("disk full")


def _sheet_rows(data: bytes):
    wb = load_workbook(io.BytesIO(data))
    ws = wb.active
    return ws, [list(r) for r in ws.iter_rows(values_only=True)]


def test_monthly_tabular_layout(monthly):
    buf = io.BytesIO()
    ExportService().export_monthly_to_tabular(monthly, buf)
    ws, rows = _sheet_rows(buf.getvalue())
    assert ws.title == "Monthly Report"
    assert rows[0][0] == "June 2024 - Workout Report"
    assert rows[1] == [None, None, None]
    assert rows[2][:2] == ["Metric", "Value"]
    assert rows[3][:2] == ["Total Workouts", "3"]
    assert rows[4][:2] == ["Rest Days", "28"]
    assert rows[5][:2] == ["Total Duration (min)", "75"]
    assert rows[6][:2] == ["Total Calories", "200"]
    assert rows[8] == ["Workout Type", "Count", "Percentage"]
    assert rows[9] == ["Legs", 2, "66%"]
    assert rows[10] == ["Chest", 1, "33%"]
    assert rows[12][:2] == ["Day", "Workouts"]
    assert rows[13][:2] == ["Day 1", 2]
    assert rows[14][:2] == ["Day 15", 1]
    assert ws["A3"].font.bold


def test_yearly_tabular_layout(yearly):
    buf = io.BytesIO()
    ExportService().export_yearly_to_tabular(yearly, buf)
    ws, rows = _sheet_rows(buf.getvalue())
    assert ws.title == "Yearly Report"
    assert rows[0][0] == "2024 - Yearly Workout Report"
    labels = [r[0] for r in rows]
    assert "Total Duration (min)" not in labels
    start = labels.index("Month")
    assert rows[start + 1][:2] == ["January", 0]
    assert rows[start + 6][:2] == ["June", 3]
    assert rows[start + 12][:2] == ["December", 0]
    dist = labels.index("Workout Type")
    assert dist > start
    assert rows[dist] == ["Workout Type", "Count"]
    assert rows[dist + 1] == ["Legs", 2]


def test_hidden_summary_rows(monthly):
    rows = TabularExporter(show_duration=False, show_calories=False).rows(monthly)
    labels = [values[0] for _, values in rows if values]
    assert "Total Duration (min)" not in labels
    assert "Total Calories" not in labels
    assert "Total Workouts" in labels


def test_document_sections(monthly, yearly):
    exporter = DocumentExporter()
    kinds = [kind for kind, _ in exporter.sections(monthly)]
    assert kinds == ["title", "table", "heading", "table"]
    dist = exporter.sections(monthly)[-1][1]
    assert dist[0] == ["Type", "Count", "%"]
    assert dist[1] == ["Legs", "2", "66%"]

    sections = exporter.sections(yearly)
    headings = [payload for kind, payload in sections if kind == "heading"]
    assert headings == ["Monthly Breakdown", "Workout Distribution"]
    assert sections[-1][1][0] == ["Type", "Count"]


def test_pdf_bytes(monthly, yearly):
    service = ExportService()
    for report, export in (
        (monthly, service.export_monthly_to_document),
        (yearly, service.export_yearly_to_document),
    ):
        buf = io.BytesIO()
        export(report, buf)
        data = buf.getvalue()
        assert data.startswith(b"%PDF")
        assert data.rstrip().endswith(b"%%EOF")


def test_empty_report_exports_summary_only():
    empty = compute_monthly_report(2024, 2, [], TYPES)
    service = ExportService()
    _, rows = _sheet_rows(service.to_bytes(empty, "xlsx"))
    labels = [r[0] for r in rows if r[0] is not None]
    assert labels == [
        "February 2024 - Workout Report",
        "Metric",
        "Total Workouts",
        "Rest Days",
        "Total Duration (min)",
        "Total Calories",
    ]
    assert service.to_bytes(empty, "pdf").startswith(b"%PDF")

    empty_year = compute_yearly_report(2023, [], TYPES)
    kinds = [kind for kind, _ in DocumentExporter().sections(empty_year)]
    assert kinds == ["title", "table"]


def test_sink_failure_raises_export_error(monthly):
    with pytest.raises(ExportError) as exc:
        ExportService().export_monthly_to_tabular(monthly, FailingSink())
    assert str(exc.value) == "Export failed: disk full"
    assert exc.value.reason == "disk full"
    assert isinstance(exc.value.__cause__, OSError)


def test_file_names(monthly, yearly):
    assert ExportService.file_name(monthly, "xlsx") == "WorkoutLog_2024_06.xlsx"
    assert ExportService.file_name(yearly, "pdf") == "WorkoutLog_2024_Yearly.pdf"
    with pytest.raises(ValueError):
        ExportService.file_name(monthly, "csv")


def test_export_to_directory(tmp_path, monthly):
    path = ExportService().export_to_directory(monthly, "pdf", str(tmp_path))
    assert os.path.basename(path) == "WorkoutLog_2024_06.pdf"
    with open(path, "rb") as f:
        assert f.read(4) == b"%PDF"


def test_export_to_missing_directory_leaves_nothing(tmp_path, monthly):
    target = tmp_path / "missing"
    with pytest.raises(ExportError):
        ExportService().export_to_directory(monthly, "xlsx", str(target))
    assert not target.exists()


def test_failed_export_keeps_previous_file(tmp_path, monthly, monkeypatch):
    service = ExportService()
    path = service.export_to_directory(monthly, "xlsx", str(tmp_path))
    with open(path, "rb") as f:
        before = f.read()

    def broken(self, report):
        raise RuntimeError("render failed")

    monkeypatch.setattr(TabularExporter, "render", broken)
    with pytest.raises(ExportError):
        service.export_to_directory(monthly, "xlsx", str(tmp_path))
    with open(path, "rb") as f:
        assert f.read() == before
    assert os.listdir(tmp_path) == ["WorkoutLog_2024_06.xlsx"]
