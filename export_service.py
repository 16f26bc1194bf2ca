"""Spreadsheet and PDF renderings of monthly and yearly reports."""

from __future__ import annotations

import io
import logging
import os
from typing import BinaryIO, List, Tuple, Union

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from errors import ExportError
from models import MonthlyReport, YearlyReport
from tools import CalendarTools, MathTools

logger = logging.getLogger(__name__)

Report = Union[MonthlyReport, YearlyReport]
Sink = Union[str, os.PathLike, BinaryIO]

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIME = "application/pdf"


def _title(report: Report) -> str:
    if isinstance(report, MonthlyReport):
        return f"{CalendarTools.month_name(report.month)} {report.year} - Workout Report"
    return f"{report.year} - Yearly Workout Report"


def _summary(report: Report, show_duration: bool, show_calories: bool) -> List[Tuple[str, str]]:
    rows = [
        ("Total Workouts", str(report.total_workouts)),
        ("Rest Days", str(report.total_rest_days)),
    ]
    if isinstance(report, MonthlyReport):
        if show_duration:
            rows.append(("Total Duration (min)", str(report.total_duration)))
        if show_calories:
            rows.append(("Total Calories", str(report.total_calories)))
    return rows


def _distribution_total(report: Report) -> int:
    return sum(tc.count for tc in report.workout_type_counts)


class TabularExporter:
    """Render a report as a single-sheet xlsx workbook."""

    HEADER_FILL = PatternFill(fill_type="solid", fgColor="4169E1")
    HEADER_FONT = Font(bold=True, color="FFFFFF")
    COLUMN_WIDTH = 24

    def __init__(self, show_duration: bool = True, show_calories: bool = True) -> None:
        self.show_duration = show_duration
        self.show_calories = show_calories

    def rows(self, report: Report) -> List[Tuple[bool, list]]:
        """Return ``(is_header, values)`` rows in sheet order; ``[]`` is blank."""
        out: List[Tuple[bool, list]] = [(False, [_title(report)]), (False, [])]
        out.append((True, ["Metric", "Value"]))
        for label, value in _summary(report, self.show_duration, self.show_calories):
            out.append((False, [label, value]))

        monthly = isinstance(report, MonthlyReport)
        if not monthly and report.total_workouts > 0:
            out.append((False, []))
            out.append((True, ["Month", "Workouts"]))
            for mc in report.monthly_counts:
                out.append((False, [CalendarTools.month_name(mc.month), mc.count]))

        if report.workout_type_counts:
            out.append((False, []))
            if monthly:
                out.append((True, ["Workout Type", "Count", "Percentage"]))
                total = _distribution_total(report)
                for tc in report.workout_type_counts:
                    pct = MathTools.truncated_percentage(tc.count, total)
                    out.append((False, [tc.workout_type.name, tc.count, f"{pct}%"]))
            else:
                out.append((True, ["Workout Type", "Count"]))
                for tc in report.workout_type_counts:
                    out.append((False, [tc.workout_type.name, tc.count]))

        if monthly and report.daily_counts:
            out.append((False, []))
            out.append((True, ["Day", "Workouts"]))
            for dc in report.daily_counts:
                out.append((False, [f"Day {dc.day}", dc.count]))
        return out

    def render(self, report: Report) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = "Monthly Report" if isinstance(report, MonthlyReport) else "Yearly Report"
        for row_idx, (is_header, values) in enumerate(self.rows(report), start=1):
            for col_idx, value in enumerate(values, start=1):
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                if is_header:
                    cell.fill = self.HEADER_FILL
                    cell.font = self.HEADER_FONT
        for letter in ("A", "B", "C"):
            ws.column_dimensions[letter].width = self.COLUMN_WIDTH
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()


class DocumentExporter:
    """Render a report as an A4 PDF."""

    HEADER_COLOR = colors.Color(59 / 255, 130 / 255, 246 / 255)

    def __init__(self, show_duration: bool = True, show_calories: bool = True) -> None:
        self.show_duration = show_duration
        self.show_calories = show_calories
        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "ReportTitle",
            parent=styles["Title"],
            fontName="Helvetica-Bold",
            fontSize=18,
            textColor=colors.darkgrey,
            spaceAfter=20,
        )
        self.heading_style = ParagraphStyle(
            "ReportHeading",
            parent=styles["Heading2"],
            fontName="Helvetica-Bold",
            fontSize=14,
            textColor=colors.darkgrey,
            spaceAfter=10,
        )

    def sections(self, report: Report) -> List[Tuple[str, object]]:
        """Return ``(kind, payload)`` blocks: title, heading or table rows."""
        out: List[Tuple[str, object]] = [("title", _title(report))]
        summary = [["Metric", "Value"]]
        summary += [list(r) for r in _summary(report, self.show_duration, self.show_calories)]
        out.append(("table", summary))

        monthly = isinstance(report, MonthlyReport)
        if not monthly and report.total_workouts > 0:
            out.append(("heading", "Monthly Breakdown"))
            rows = [["Month", "Workouts"]]
            rows += [
                [CalendarTools.month_name(mc.month), str(mc.count)]
                for mc in report.monthly_counts
            ]
            out.append(("table", rows))

        if report.workout_type_counts:
            out.append(("heading", "Workout Distribution"))
            if monthly:
                total = _distribution_total(report)
                rows = [["Type", "Count", "%"]]
                rows += [
                    [
                        tc.workout_type.name,
                        str(tc.count),
                        f"{MathTools.truncated_percentage(tc.count, total)}%",
                    ]
                    for tc in report.workout_type_counts
                ]
            else:
                rows = [["Type", "Count"]]
                rows += [[tc.workout_type.name, str(tc.count)] for tc in report.workout_type_counts]
            out.append(("table", rows))
        return out

    def _table(self, rows: list) -> Table:
        table = Table(rows, colWidths=[A4[0] * 0.8 / len(rows[0])] * len(rows[0]))
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), self.HEADER_COLOR),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, 0), 12),
                    ("ALIGN", (0, 0), (-1, 0), "CENTER"),
                    ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
                    ("FONTSIZE", (0, 1), (-1, -1), 11),
                    ("TEXTCOLOR", (0, 1), (-1, -1), colors.darkgrey),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ("TOPPADDING", (0, 0), (-1, 0), 8),
                    ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
                ]
            )
        )
        return table

    def render(self, report: Report) -> bytes:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(buf, pagesize=A4, title=_title(report))
        story = []
        for kind, payload in self.sections(report):
            if kind == "title":
                story.append(Paragraph(payload, self.title_style))
            elif kind == "heading":
                story.append(Paragraph(payload, self.heading_style))
            else:
                story.append(self._table(payload))
                story.append(Spacer(1, 12))
        doc.build(story)
        return buf.getvalue()


class ExportService:
    """Write reports to a caller supplied sink."""

    def __init__(self, show_duration: bool = True, show_calories: bool = True) -> None:
        self.tabular = TabularExporter(show_duration, show_calories)
        self.document = DocumentExporter(show_duration, show_calories)

    @staticmethod
    def file_name(report: Report, fmt: str) -> str:
        ext = {"xlsx": "xlsx", "pdf": "pdf"}.get(fmt)
        if ext is None:
            raise ValueError(f"unsupported export format: {fmt}")
        if isinstance(report, MonthlyReport):
            return f"WorkoutLog_{report.year}_{report.month:02d}.{ext}"
        return f"WorkoutLog_{report.year}_Yearly.{ext}"

    @staticmethod
    def _write(data: bytes, sink: Sink) -> None:
        if isinstance(sink, (str, os.PathLike)):
            with open(sink, "wb") as f:
                f.write(data)
        else:
            sink.write(data)
            sink.flush()

    def _export(self, renderer, report: Report, sink: Sink) -> None:
        try:
            data = renderer.render(report)
            self._write(data, sink)
        except ExportError:
            raise
        except Exception as e:
            logger.error("export of %s failed: %s", _title(report), e)
            raise ExportError(str(e)) from e
        logger.info("exported %s (%d bytes)", _title(report), len(data))

    def export_monthly_to_tabular(self, report: MonthlyReport, sink: Sink) -> None:
        self._export(self.tabular, report, sink)

    def export_yearly_to_tabular(self, report: YearlyReport, sink: Sink) -> None:
        self._export(self.tabular, report, sink)

    def export_monthly_to_document(self, report: MonthlyReport, sink: Sink) -> None:
        self._export(self.document, report, sink)

    def export_yearly_to_document(self, report: YearlyReport, sink: Sink) -> None:
        self._export(self.document, report, sink)

    def export(self, report: Report, fmt: str, sink: Sink) -> None:
        """Dispatch on report kind and ``fmt`` (``xlsx`` or ``pdf``)."""
        monthly = isinstance(report, MonthlyReport)
        if fmt == "xlsx":
            if monthly:
                self.export_monthly_to_tabular(report, sink)
            else:
                self.export_yearly_to_tabular(report, sink)
        elif fmt == "pdf":
            if monthly:
                self.export_monthly_to_document(report, sink)
            else:
                self.export_yearly_to_document(report, sink)
        else:
            raise ValueError(f"unsupported export format: {fmt}")

    def export_to_directory(self, report: Report, fmt: str, directory: str) -> str:
        """Write ``report`` under ``directory`` and return the file path.

        The document is written next to its target as ``<name>.part`` and
        renamed on success, so a failed export leaves an earlier file intact.
        """
        path = os.path.join(directory, self.file_name(report, fmt))
        partial = path + ".part"
        try:
            self.export(report, fmt, partial)
        except ExportError:
            if os.path.exists(partial):
                os.remove(partial)
            raise
        os.replace(partial, path)
        return path

    def to_bytes(self, report: Report, fmt: str) -> bytes:
        buf = io.BytesIO()
        self.export(report, fmt, buf)
        return buf.getvalue()
