import argparse
import datetime
import json

from loguru import logger

from analytics_service import AnalyticsService
from backup_service import BackupService
from config import load_config
from db import BaseRepository, LiftRepository, MeetRepository, SprintRepository
from insight_service import InsightService
from log_setup import setup_logger
from migrate import migrate
from validation import BackupFormatError
from volume_service import VolumeService


def export_data(db_path: str, out_path: str) -> int:
    backup = BackupService(BaseRepository(db_path)).save(out_path)
    total = sum(len(rows) for rows in backup["data"].values())
    print(f"Exported {total} records to {out_path}")
    return total


def validate_file(path: str) -> bool:
    service = BackupService(BaseRepository(":memory:"))
    report = service.validate_backup(service.load(path))
    for error in report["errors"]:
        print(f"error: {error}")
    for warning in report["warnings"]:
        print(f"warning: {warning}")
    print("valid" if report["is_valid"] else "invalid")
    return report["is_valid"]


def import_data(db_path: str, in_path: str, assume_yes: bool = False) -> dict:
    service = BackupService(BaseRepository(db_path))
    backup = service.load(in_path)

    def confirm(report: dict) -> bool:
        for warning in report["warnings"]:
            print(f"warning: {warning}")
        if assume_yes:
            return True
        answer = input(f"Replace all data in {db_path}? [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    result = service.import_all_data(backup, confirm)
    if result["success"]:
        print(f"Imported {sum(result['counts'].values())} records")
    else:
        print(f"Import aborted: {result['error']}")
    return result


def demo_data(db_path: str) -> None:
    """Populate the database with a small training history if empty."""
    sprints = SprintRepository(db_path)
    lifts = LiftRepository(db_path)
    meets = MeetRepository(db_path)
    if sprints.list_recent(1):
        print("Database already contains sessions")
        return
    today = datetime.date.today()
    for weeks_ago, times in ((2, [7.12, 7.05]), (1, [7.01, 6.98]), (0, [6.95, 7.00])):
        day = (today - datetime.timedelta(weeks=weeks_ago)).isoformat()
        sid = sprints.create(day, "Acceleration")
        set_id = sprints.fetch_with_children(sid)["sets"][0]["id"]
        for t in times:
            sprints.add_rep(set_id, 60, t, timing_type="FAT")
        tempo_set = sprints.add_set(sid, "Tempo")
        sprints.add_rep(tempo_set, 200, 32.0, work_type="tempo", rest_after=90)
        sprints.complete(sid)
    lid = lifts.create(today.isoformat(), "Strength")
    for load, velocity in ((100.0, 0.85), (110.0, 0.72)):
        set_id = lifts.add_set(lid, "Back Squat", load)
        lifts.add_rep(set_id, velocity)
        lifts.add_rep(set_id, None)
    lifts.complete(lid)
    mid = meets.create("Indoor Opener", "indoor", "FAT", today.isoformat())
    meets.add_race(mid, 60, "heat", 6.91, place=2)
    meets.add_race(mid, 60, "final", 6.87, place=1)
    meets.complete(mid)
    print("Demo data inserted")


def print_insights(db_path: str, domain: str | None, config) -> None:
    sprints = SprintRepository(db_path)
    lifts = LiftRepository(db_path)
    meets = MeetRepository(db_path)
    volume = VolumeService(sprints)
    analytics = AnalyticsService(
        sprints, lifts, meets, config.season_start_month, config.season_start_day
    )
    service = InsightService(
        sprints, lifts, meets, volume, analytics, stagnation_weeks=config.stagnation_weeks
    )
    for insight in service.detect(domain=domain):
        print(f"[{insight['severity']}] {insight['title']}: {insight['description']}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Training log utilities")
    parser.add_argument("--config", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default=None)
    exp.add_argument("--out", default="accel-backup.json")

    imp = sub.add_parser("import")
    imp.add_argument("--db", default=None)
    imp.add_argument("--in", dest="src", required=True)
    imp.add_argument("--yes", action="store_true")

    val = sub.add_parser("validate")
    val.add_argument("--in", dest="src", required=True)

    mig = sub.add_parser("migrate")
    mig.add_argument("--db", default=None)

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default=None)

    ins = sub.add_parser("insights")
    ins.add_argument("--db", default=None)
    ins.add_argument("--domain", choices=["sprint", "lift", "meet"], default=None)

    vol = sub.add_parser("volume")
    vol.add_argument("--db", default=None)
    vol.add_argument("--weeks", type=int, default=8)

    serve = sub.add_parser("serve")
    serve.add_argument("--db", default=None)
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    config = load_config(args.config)
    setup_logger(config.log_level, config.log_file)
    db_path = getattr(args, "db", None) or config.db_path

    if args.cmd == "export":
        export_data(db_path, args.out)
    elif args.cmd == "import":
        try:
            import_data(db_path, args.src, args.yes)
        except BackupFormatError as e:
            for problem in e.problems:
                print(f"error: {problem}")
            raise SystemExit(1)
    elif args.cmd == "validate":
        if not validate_file(args.src):
            raise SystemExit(1)
    elif args.cmd == "migrate":
        migrate(db_path)
    elif args.cmd == "demo":
        demo_data(db_path)
    elif args.cmd == "insights":
        print_insights(db_path, args.domain, config)
    elif args.cmd == "volume":
        weekly = VolumeService(SprintRepository(db_path)).weekly_volume(args.weeks)
        print(json.dumps(weekly, indent=2))
    elif args.cmd == "serve":
        import uvicorn
        from rest_api import create_app

        logger.info(f"Serving {db_path} on {args.host}:{args.port}")
        uvicorn.run(create_app(db_path, args.config), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
