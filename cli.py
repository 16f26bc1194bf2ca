import argparse
import datetime
import json
import logging
import os
import sys
from typing import List, Optional

from backup_service import backup_file_name, create_backup, dumps, read_backup, restore_backup
from config import DEFAULT_DB_PATH, DEFAULT_SETTINGS_PATH, YamlConfig
from db import ChangeNotifier, SettingsRepository, WorkoutEntryRepository, WorkoutTypeRepository
from errors import ExportError, NoDataError, WorkoutLogError
from export_service import ExportService
from report_service import ReportService
from settings_schema import SettingsSchema, validate_settings

logger = logging.getLogger(__name__)


class _Services:
    def __init__(self, db_path: str, yaml_path: str) -> None:
        notifier = ChangeNotifier()
        self.settings = SettingsRepository(db_path, yaml_path, notifier)
        self.types = WorkoutTypeRepository(db_path, notifier)
        self.entries = WorkoutEntryRepository(db_path, notifier)
        self.reports = ReportService(self.entries, self.types)

    def exporter(self) -> ExportService:
        return ExportService(
            show_duration=self.settings.get_bool("show_duration", True),
            show_calories=self.settings.get_bool("show_calories", True),
        )


def export_report(
    db_path: str,
    yaml_path: str,
    year: int,
    month: Optional[int],
    fmt: str,
    output_dir: Optional[str] = None,
) -> str:
    """Export a monthly report (or yearly when ``month`` is None) and return its path."""
    svc = _Services(db_path, yaml_path)
    if month is None:
        report = svc.reports.yearly_report(year)
    else:
        report = svc.reports.monthly_report(year, month)
    if report.total_workouts == 0:
        raise NoDataError()
    out = output_dir or svc.settings.get_text("export_dir", ".")
    os.makedirs(out, exist_ok=True)
    return svc.exporter().export_to_directory(report, fmt, out)


def print_report(db_path: str, yaml_path: str, year: int, month: Optional[int]) -> None:
    svc = _Services(db_path, yaml_path)
    if month is None:
        report = svc.reports.yearly_report(year)
    else:
        report = svc.reports.monthly_report(year, month)
    print(json.dumps(report.to_dict(), indent=2))


def backup(db_path: str, yaml_path: str, output_dir: str = ".") -> str:
    svc = _Services(db_path, yaml_path)
    data = create_backup(svc.types.fetch_types(), svc.entries.fetch_entries())
    path = os.path.join(output_dir, backup_file_name(data))
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(data))
    logger.info("wrote backup %s", path)
    return path


def restore(backup_path: str, db_path: str, yaml_path: str) -> None:
    with open(backup_path, "r", encoding="utf-8") as f:
        data = read_backup(f.read())
    if data is None:
        raise ValueError(f"{backup_path} is not a valid backup file")
    svc = _Services(db_path, yaml_path)
    restore_backup(data, svc.entries)


def demo_data(db_path: str, yaml_path: str) -> None:
    """Seed default types and a week of demo entries if the log is empty."""
    svc = _Services(db_path, yaml_path)
    svc.types.insert_defaults()
    if svc.entries.count():
        print("Database already contains entries")
        return
    types = [t for t in svc.types.fetch_types() if not t.is_rest_day]
    rest = [t for t in svc.types.fetch_types() if t.is_rest_day]
    today = datetime.date.today()
    for offset in range(7):
        day = today - datetime.timedelta(days=offset)
        if offset == 3 and rest:
            svc.entries.create(day, rest[0].id)
            continue
        wtype = types[offset % len(types)]
        svc.entries.create(day, wtype.id, "Demo session", 30 + offset * 5, 200 + offset * 25)
    print("Demo data inserted")


def resolve_log_level(cli_value: Optional[str], yaml_path: str) -> str:
    """Pick the log level from ``--log-level``, ``LOG_LEVEL`` or the settings file."""
    if cli_value:
        return cli_value
    level = os.environ.get("LOG_LEVEL") or YamlConfig(yaml_path).load().get(
        "log_level", SettingsSchema().log_level
    )
    validate_settings({"log_level": level})
    return level


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Workout log utility commands")
    parser.add_argument("--db", default=DEFAULT_DB_PATH)
    parser.add_argument("--yaml", default=DEFAULT_SETTINGS_PATH)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export", help="export a monthly or yearly report")
    exp.add_argument("--year", type=int, required=True)
    exp.add_argument("--month", type=int)
    exp.add_argument("--fmt", choices=["xlsx", "pdf"], default="xlsx")
    exp.add_argument("--out")

    rep = sub.add_parser("report", help="print a report as JSON")
    rep.add_argument("--year", type=int, required=True)
    rep.add_argument("--month", type=int)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default=".")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", required=True)

    sub.add_parser("defaults", help="insert the default workout types")
    sub.add_parser("demo", help="insert demo entries")

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    try:
        level = getattr(logging, resolve_log_level(args.log_level, args.yaml))
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        logging.getLogger().setLevel(level)
        if args.cmd == "export":
            path = export_report(args.db, args.yaml, args.year, args.month, args.fmt, args.out)
            print(f"Exported {path}")
        elif args.cmd == "report":
            print_report(args.db, args.yaml, args.year, args.month)
        elif args.cmd == "backup":
            print(f"Backup written to {backup(args.db, args.yaml, args.out)}")
        elif args.cmd == "restore":
            restore(args.src, args.db, args.yaml)
            print("Backup restored")
        elif args.cmd == "defaults":
            inserted = WorkoutTypeRepository(args.db).insert_defaults()
            print("Default types inserted" if inserted else "Workout types already present")
        elif args.cmd == "demo":
            demo_data(args.db, args.yaml)
        elif args.cmd == "serve":
            import uvicorn

            from rest_api import create_app

            uvicorn.run(create_app(args.db, args.yaml), host=args.host, port=args.port)
    except ExportError as e:
        logger.exception("export failed")
        print(str(e), file=sys.stderr)
        sys.exit(1)
    except (WorkoutLogError, ValueError, OSError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
