import asyncio
import datetime
import logging
import sqlite3
from typing import Optional

from fastapi import Body, FastAPI, HTTPException, Request, Response, WebSocket

from backup_service import backup_file_name, create_backup, dumps, read_backup, restore_backup
from config import APP_VERSION, DEFAULT_DB_PATH, DEFAULT_SETTINGS_PATH
from db import (
    AsyncWorkoutEntryRepository,
    AsyncWorkoutTypeRepository,
    ChangeNotifier,
    SettingsRepository,
    WorkoutEntryRepository,
    WorkoutTypeRepository,
)
from errors import ExportError, InvalidArgumentError, NoDataError
from export_service import PDF_MIME, XLSX_MIME, ExportService
from report_service import ReportService

logger = logging.getLogger(__name__)


class WorkoutLogAPI:
    """Provides REST endpoints for workout logging and reports."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        yaml_path: str = DEFAULT_SETTINGS_PATH,
        clock=datetime.date.today,
    ) -> None:
        self.db_path = db_path
        self.notifier = ChangeNotifier()
        self.settings = SettingsRepository(db_path, yaml_path, self.notifier)
        self.types = WorkoutTypeRepository(db_path, self.notifier)
        self.entries = WorkoutEntryRepository(db_path, self.notifier)
        self.reports = ReportService(
            self.entries,
            self.types,
            AsyncWorkoutEntryRepository(db_path),
            AsyncWorkoutTypeRepository(db_path),
            clock=clock,
        )
        self.watchers: list[WebSocket] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.notifier.subscribe(self._broadcast_event)
        self.app = FastAPI(
            title="Workout Log API",
            description="REST API for workout logging and reports",
            version=APP_VERSION,
        )
        self._setup_routes()

    def exporter(self) -> ExportService:
        return ExportService(
            show_duration=self.settings.get_bool("show_duration", True),
            show_calories=self.settings.get_bool("show_calories", True),
        )

    async def _broadcast(self, event: dict) -> None:
        for ws in list(self.watchers):
            try:
                await ws.send_json(event)
            except Exception:
                logger.info("dropping closed update socket")
                if ws in self.watchers:
                    self.watchers.remove(ws)

    def _broadcast_event(self, event: dict) -> None:
        if not self.watchers or self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._loop.create_task(self._broadcast(event))
        else:
            # sync routes run in a worker thread
            asyncio.run_coroutine_threadsafe(self._broadcast(event), self._loop)

    def _export_response(self, report, fmt: str) -> Response:
        if report.total_workouts == 0:
            raise NoDataError()
        exporter = self.exporter()
        data = exporter.to_bytes(report, fmt)
        return Response(
            content=data,
            media_type=XLSX_MIME if fmt == "xlsx" else PDF_MIME,
            headers={
                "Content-Disposition": f"attachment; filename={exporter.file_name(report, fmt)}"
            },
        )

    def _setup_routes(self) -> None:
        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            try:
                self.types.count()
                return {"status": "ok"}
            except sqlite3.Error as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.websocket("/ws/updates")
        async def updates_socket(ws: WebSocket):
            self._loop = asyncio.get_running_loop()
            self.watchers.append(ws)
            await ws.accept()
            try:
                while True:
                    await ws.receive_text()
            except Exception:
                logger.info("update socket closed")
            finally:
                if ws in self.watchers:
                    self.watchers.remove(ws)

        @self.app.get("/workout_types")
        def list_workout_types():
            return [t.to_dict() for t in self.types.fetch_types()]

        @self.app.post("/workout_types")
        def add_workout_type(
            name: str,
            color: Optional[int] = None,
            icon: Optional[str] = None,
            is_rest_day: Optional[bool] = None,
        ):
            try:
                tid = self.types.create(name, color, icon, is_rest_day=is_rest_day)
                return {"id": tid}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.post("/workout_types/defaults")
        def insert_default_types():
            return {"inserted": self.types.insert_defaults()}

        @self.app.get("/workout_types/{type_id}")
        def get_workout_type(type_id: int):
            try:
                return self.types.fetch(type_id).to_dict()
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.put("/workout_types/{type_id}")
        def update_workout_type(
            type_id: int,
            name: str,
            color: Optional[int] = None,
            icon: Optional[str] = None,
            is_rest_day: Optional[bool] = None,
        ):
            try:
                self.types.fetch(type_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                self.types.update(type_id, name, color, icon, is_rest_day)
                return {"status": "updated"}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.delete("/workout_types/{type_id}")
        def delete_workout_type(type_id: int):
            try:
                self.types.delete(type_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.get("/entries")
        def list_entries(
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            query: Optional[str] = None,
        ):
            if query:
                rows = self.entries.search(query)
            elif start_date and end_date:
                try:
                    rows = self.entries.fetch_between(start_date, end_date)
                except InvalidArgumentError as e:
                    raise HTTPException(status_code=400, detail=str(e))
            else:
                rows = self.entries.fetch_entries()
            return [e.to_dict() for e in rows]

        @self.app.post("/entries")
        def add_entry(
            date: str,
            workout_type_id: int,
            note: Optional[str] = None,
            duration_minutes: Optional[int] = None,
            calories_burned: Optional[int] = None,
        ):
            try:
                conflicts = self.entries.fetch_by_date(date)
                eid = self.entries.create(
                    date, workout_type_id, note, duration_minutes, calories_burned
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": eid, "conflicts": [c.id for c in conflicts]}

        @self.app.get("/entries/{entry_id}")
        def get_entry(entry_id: int):
            try:
                return self.entries.fetch(entry_id).to_dict()
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.put("/entries/{entry_id}")
        def update_entry(
            entry_id: int,
            date: str,
            workout_type_id: int,
            note: Optional[str] = None,
            duration_minutes: Optional[int] = None,
            calories_burned: Optional[int] = None,
        ):
            try:
                self.entries.fetch(entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                self.entries.update(
                    entry_id, date, workout_type_id, note, duration_minutes, calories_burned
                )
                return {"status": "updated"}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.delete("/entries/{entry_id}")
        def delete_entry(entry_id: int):
            try:
                self.entries.delete(entry_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.get("/reports/monthly")
        async def monthly_report(year: int, month: int):
            try:
                report = await self.reports.monthly_report_async(year, month)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return report.to_dict()

        @self.app.get("/reports/yearly")
        async def yearly_report(year: int):
            try:
                report = await self.reports.yearly_report_async(year)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return report.to_dict()

        @self.app.get("/reports/period/previous")
        def previous_period(year: int, month: Optional[int] = None):
            try:
                return self.reports.previous_period(year, month)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/reports/period/next")
        def next_period(year: int, month: Optional[int] = None):
            try:
                return self.reports.next_period(year, month)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/reports/monthly/export")
        def export_monthly(year: int, month: int, fmt: str = "xlsx"):
            if fmt not in ("xlsx", "pdf"):
                raise HTTPException(status_code=400, detail="fmt must be xlsx or pdf")
            try:
                return self._export_response(self.reports.monthly_report(year, month), fmt)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))
            except NoDataError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ExportError as e:
                logger.exception("monthly export failed")
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.get("/reports/yearly/export")
        def export_yearly(year: int, fmt: str = "xlsx"):
            if fmt not in ("xlsx", "pdf"):
                raise HTTPException(status_code=400, detail="fmt must be xlsx or pdf")
            try:
                return self._export_response(self.reports.yearly_report(year), fmt)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))
            except NoDataError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ExportError as e:
                logger.exception("yearly export failed")
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.get("/stats/streak")
        def stats_streak():
            return {"streak": self.reports.current_streak()}

        @self.app.get("/stats/most_common_type")
        def stats_most_common_type(year: int, month: int):
            try:
                found = self.reports.most_common_type(year, month)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return found.to_dict() if found else None

        @self.app.get("/stats/overview")
        def stats_overview(year: int, month: int, workout_type_id: Optional[int] = None):
            try:
                return self.reports.overview(year, month, workout_type_id)
            except InvalidArgumentError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/backup")
        def download_backup():
            data = create_backup(self.types.fetch_types(), self.entries.fetch_entries())
            return Response(
                content=dumps(data),
                media_type="application/json",
                headers={
                    "Content-Disposition": f"attachment; filename={backup_file_name(data)}"
                },
            )

        @self.app.post("/restore")
        async def restore(request: Request):
            data = read_backup((await request.body()).decode("utf-8"))
            if data is None:
                raise HTTPException(status_code=400, detail="invalid backup file")
            try:
                restore_backup(data, self.entries)
            except (ValueError, sqlite3.IntegrityError) as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {
                "types": len(data.workout_types),
                "entries": len(data.workout_entries),
            }

        @self.app.get("/settings/general")
        def get_settings():
            return self.settings.all_settings()

        @self.app.post("/settings/general")
        def update_settings(values: dict = Body(...)):
            try:
                return self.settings.update(values)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))


def create_app(db_path: str = DEFAULT_DB_PATH, yaml_path: str = DEFAULT_SETTINGS_PATH) -> FastAPI:
    return WorkoutLogAPI(db_path, yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
