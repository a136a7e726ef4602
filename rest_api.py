import datetime
from typing import Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from analytics_service import AnalyticsService
from backup_service import BackupService
from config import APP_VERSION, load_config
from db import (
    SESSION_KINDS,
    AsyncSessionRepository,
    AuxiliaryRepository,
    BaseRepository,
    ChildIndex,
    LiftRepository,
    MeetRepository,
    PreferencesRepository,
    SprintRepository,
    TemplateRepository,
)
from insight_service import InsightService
from log_setup import setup_logger
from template_service import TemplateService
from validation import NotFoundError, PreconditionError, StorageError
from volume_service import VolumeService


def _plain(detail: Optional[dict]) -> Optional[dict]:
    if detail is None:
        return None
    return {k: v.to_dict() if isinstance(v, ChildIndex) else v for k, v in detail.items()}


class AccelAPI:
    """Provides REST endpoints for the training log and its analytics."""

    def __init__(self, db_path: str | None = None, config_path: str | None = None) -> None:
        self.config = load_config(config_path)
        self.db_path = db_path or self.config.db_path
        single = self.config.enforce_single_active
        self.sprints = SprintRepository(self.db_path, enforce_single_active=single)
        self.lifts = LiftRepository(self.db_path, enforce_single_active=single)
        self.meets = MeetRepository(self.db_path, enforce_single_active=single)
        self.auxiliary = AuxiliaryRepository(self.db_path, enforce_single_active=single)
        self.repositories = {
            "sprint": self.sprints,
            "lift": self.lifts,
            "meet": self.meets,
            "auxiliary": self.auxiliary,
        }
        self.async_repositories = {
            kind: AsyncSessionRepository(kind, self.db_path) for kind in SESSION_KINDS
        }
        self.preferences = PreferencesRepository(self.db_path)
        self.templates = TemplateService(
            TemplateRepository(self.db_path), self.sprints, self.lifts
        )
        self.volume = VolumeService(self.sprints)
        self.analytics = AnalyticsService(
            self.sprints,
            self.lifts,
            self.meets,
            self.config.season_start_month,
            self.config.season_start_day,
        )
        self.insights = InsightService(
            self.sprints,
            self.lifts,
            self.meets,
            self.volume,
            self.analytics,
            stagnation_weeks=self.config.stagnation_weeks,
        )
        self.backup = BackupService(BaseRepository(self.db_path))
        self.app = FastAPI(
            title="Accel API",
            description="REST API for sprint, lift and meet logging and analytics",
            version=APP_VERSION,
        )
        self._setup_error_handlers()
        self._setup_routes()

    def _repo(self, kind: str):
        if kind not in self.repositories:
            raise HTTPException(status_code=404, detail=f"unknown session kind {kind}")
        return self.repositories[kind]

    def _setup_error_handlers(self) -> None:
        def handler(status: int):
            async def handle(request: Request, exc: Exception):
                logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
                return JSONResponse(status_code=status, content={"detail": str(exc)})

            return handle

        self.app.add_exception_handler(NotFoundError, handler(404))
        self.app.add_exception_handler(PreconditionError, handler(409))
        self.app.add_exception_handler(ValueError, handler(400))
        self.app.add_exception_handler(StorageError, handler(500))

    def _setup_routes(self) -> None:
        sessions_router = APIRouter(prefix="/sessions", tags=["Sessions"])
        sprint_router = APIRouter(prefix="/sprint", tags=["Sprint"])
        lift_router = APIRouter(prefix="/lift", tags=["Lift"])
        aux_router = APIRouter(prefix="/auxiliary", tags=["Auxiliary"])
        templates_router = APIRouter(prefix="/templates", tags=["Templates"])
        analytics_router = APIRouter(prefix="/analytics", tags=["Analytics"])
        volume_router = APIRouter(prefix="/volume", tags=["Volume"])
        backup_router = APIRouter(prefix="/backup", tags=["Backup"])

        @self.app.get("/health", summary="Health check")
        def health():
            """Return API and database status."""
            return {"status": "ok", "schema_version": self.sprints.schema_version()}

        @sessions_router.post("/{kind}")
        def create_session(
            kind: str,
            date: str = None,
            title: str = None,
            location: str = None,
            notes: str = None,
        ):
            if kind == "meet":
                raise HTTPException(status_code=400, detail="create meets via /meets")
            sid = self._repo(kind).create(date, title, location, notes)
            return {"id": sid}

        @sessions_router.get("/{kind}")
        async def list_sessions(kind: str, limit: int = 10, status: str = None):
            self._repo(kind)
            repo = self.async_repositories[kind]
            if status is not None:
                return await repo.list_by_status(status)
            return await repo.list_recent(limit)

        @sessions_router.get("/{kind}/active")
        def active_session(kind: str):
            session = self._repo(kind).active()
            if session is None:
                raise HTTPException(status_code=404, detail=f"no active {kind} session")
            return session

        @sessions_router.get("/{kind}/{session_id}")
        def get_session(kind: str, session_id: str):
            detail = self._repo(kind).fetch_with_children(session_id)
            if detail is None:
                raise HTTPException(status_code=404, detail=f"{kind} session not found")
            return _plain(detail)

        @sessions_router.put("/{kind}/{session_id}")
        def update_session(kind: str, session_id: str, fields: dict = Body(...)):
            return self._repo(kind).update(session_id, **fields)

        @sessions_router.post("/{kind}/{session_id}/complete")
        def complete_session(kind: str, session_id: str):
            self._repo(kind).complete(session_id)
            return {"status": "completed"}

        @sessions_router.post("/{kind}/{session_id}/reopen")
        def reopen_session(kind: str, session_id: str):
            self._repo(kind).reopen(session_id)
            return {"status": "active"}

        @sessions_router.delete("/{kind}/{session_id}")
        def delete_session(kind: str, session_id: str):
            self._repo(kind).delete(session_id)
            return {"status": "deleted"}

        @sprint_router.post("/sessions/{session_id}/sets")
        def add_sprint_set(session_id: str, name: str = None):
            return {"id": self.sprints.add_set(session_id, name)}

        @sprint_router.post("/sessions/{session_id}/reset")
        def reset_sprint_reps(session_id: str):
            return {"removed": self.sprints.reset_reps(session_id)}

        @sprint_router.put("/sets/{set_id}")
        def update_sprint_set(set_id: str, fields: dict = Body(...)):
            self.sprints.update_set(set_id, **fields)
            return {"status": "updated"}

        @sprint_router.delete("/sets/{set_id}")
        def delete_sprint_set(set_id: str):
            self.sprints.delete_set(set_id)
            return {"status": "deleted"}

        @sprint_router.post("/sets/{set_id}/reps")
        def add_sprint_rep(
            set_id: str,
            distance: float,
            time: float,
            timing_type: str = "HAND",
            rest_after: int = 180,
            is_fly: bool = False,
            fly_in_distance: int = None,
            intensity: int = None,
            work_type: str = "sprint",
            notes: str = None,
        ):
            rid = self.sprints.add_rep(
                set_id,
                distance,
                time,
                timing_type,
                rest_after,
                is_fly,
                fly_in_distance,
                intensity,
                work_type,
                notes,
            )
            return {"id": rid}

        @sprint_router.put("/reps/{rep_id}")
        def update_sprint_rep(rep_id: str, fields: dict = Body(...)):
            return self.sprints.update_rep(rep_id, **fields)

        @sprint_router.delete("/reps/{rep_id}")
        def delete_sprint_rep(rep_id: str):
            self.sprints.delete_rep(rep_id)
            return {"status": "deleted"}

        @sprint_router.get("/best")
        def best_sprint_reps():
            return [
                {"distance": d, "rep": rep} for d, rep in self.sprints.best_reps_by_distance().items()
            ]

        @lift_router.post("/sessions/{session_id}/sets")
        def add_lift_set(session_id: str, exercise: str, load: float, notes: str = None):
            return {"id": self.lifts.add_set(session_id, exercise, load, notes)}

        @lift_router.put("/sets/{set_id}")
        def update_lift_set(set_id: str, fields: dict = Body(...)):
            return self.lifts.update_set(set_id, **fields)

        @lift_router.delete("/sets/{set_id}")
        def delete_lift_set(set_id: str):
            self.lifts.delete_set(set_id)
            return {"status": "deleted"}

        @lift_router.post("/sets/{set_id}/reps")
        def add_lift_rep(set_id: str, peak_velocity: float = None, notes: str = None):
            return {"id": self.lifts.add_rep(set_id, peak_velocity, notes)}

        @lift_router.put("/reps/{rep_id}")
        def update_lift_rep(rep_id: str, fields: dict = Body(...)):
            return self.lifts.update_rep(rep_id, **fields)

        @lift_router.delete("/reps/{rep_id}")
        def delete_lift_rep(rep_id: str):
            self.lifts.delete_rep(rep_id)
            return {"status": "deleted"}

        @lift_router.get("/exercises/recent")
        def recent_exercises(limit: int = 10, session_id: str = None):
            return self.lifts.recent_exercises(limit, session_id)

        @lift_router.get("/exercises/{exercise}/last_load")
        def last_load(exercise: str, session_id: str = None):
            return {"exercise": exercise, "load": self.lifts.last_load(exercise, session_id)}

        @self.app.post("/meets")
        def create_meet(
            name: str,
            venue: str,
            timing_type: str = "FAT",
            date: str = None,
            location: str = None,
            notes: str = None,
        ):
            return {"id": self.meets.create(name, venue, timing_type, date, location, notes)}

        @self.app.post("/meets/{meet_id}/races")
        def add_race(
            meet_id: str,
            distance: float,
            round: str,
            time: float,
            wind: float = None,
            place: int = None,
            notes: str = None,
        ):
            return {"id": self.meets.add_race(meet_id, distance, round, time, wind, place, notes)}

        @self.app.put("/races/{race_id}")
        def update_race(race_id: str, fields: dict = Body(...)):
            return self.meets.update_race(race_id, **fields)

        @self.app.delete("/races/{race_id}")
        def delete_race(race_id: str):
            self.meets.delete_race(race_id)
            return {"status": "deleted"}

        @aux_router.post("/sessions/{session_id}/entries")
        def add_entry(
            session_id: str,
            category: str,
            name: str,
            volume_metric: str,
            volume_value: float,
            intensity: int = None,
            notes: str = None,
            session_type: str = "auxiliary",
        ):
            eid = self.auxiliary.add_entry(
                session_id,
                category,
                name,
                volume_metric,
                volume_value,
                intensity,
                notes,
                session_type,
            )
            return {"id": eid}

        @aux_router.get("/sessions/{session_id}/entries")
        def list_entries(session_id: str, session_type: str = "auxiliary"):
            return self.auxiliary.entries_for_session(session_id, session_type)

        @aux_router.put("/entries/{entry_id}")
        def update_entry(entry_id: str, fields: dict = Body(...)):
            return self.auxiliary.update_entry(entry_id, **fields)

        @aux_router.delete("/entries/{entry_id}")
        def delete_entry(entry_id: str):
            self.auxiliary.delete_entry(entry_id)
            return {"status": "deleted"}

        @templates_router.post("")
        def create_template(session_id: str, name: str, description: str = None):
            return {"id": self.templates.snapshot(session_id, name, description)}

        @templates_router.get("")
        def list_templates(template_type: str = None):
            return self.templates.list_templates(template_type)

        @templates_router.get("/{template_id}")
        def get_template(template_id: str):
            data = self.templates.get_with_data(template_id)
            if data is None:
                raise HTTPException(status_code=404, detail="template not found")
            return _plain(data)

        @templates_router.put("/{template_id}")
        def update_template(template_id: str, name: str = None, description: str = None):
            self.templates.rename(template_id, name, description)
            return {"status": "updated"}

        @templates_router.post("/{template_id}/apply")
        def apply_template(template_id: str, date: str = None):
            return {"id": self.templates.materialize(template_id, date)}

        @templates_router.delete("/{template_id}")
        def delete_template(template_id: str):
            self.templates.delete(template_id)
            return {"status": "deleted"}

        def found(result, what: str):
            if result is None:
                raise HTTPException(status_code=404, detail=f"no data for {what}")
            return result

        @analytics_router.get("/sprint")
        def sprint_summaries():
            return self.analytics.sprint_summaries()

        @analytics_router.get("/sprint/{distance}")
        def sprint_trend(distance: float):
            return found(self.analytics.sprint_distance_trend(distance), f"{distance:g}m")

        @analytics_router.get("/lift")
        def lift_summaries():
            return self.analytics.lift_summaries()

        @analytics_router.get("/lift/{exercise}")
        def lift_trend(exercise: str):
            return found(self.analytics.lift_exercise_trend(exercise), exercise)

        @analytics_router.get("/meet")
        def race_summaries():
            return self.analytics.race_summaries()

        @analytics_router.get("/meet/{distance}")
        def meet_trend(distance: float):
            return found(self.analytics.meet_distance_trend(distance), f"{distance:g}m races")

        @analytics_router.get("/intensity")
        def intensity(distance: float = None):
            return self.analytics.intensity_analytics(distance)

        @analytics_router.get("/intensity/{distance}/correlation")
        def intensity_correlation(distance: float):
            return found(self.analytics.intensity_correlation(distance), f"{distance:g}m intensity")

        @volume_router.get("/sessions/{session_id}")
        def session_volume(session_id: str):
            return self.volume.session_volume(session_id)

        @volume_router.get("/daily")
        def daily_volume(start: str = None, end: str = None):
            end_day = datetime.date.fromisoformat(end) if end else datetime.date.today()
            start_day = (
                datetime.date.fromisoformat(start)
                if start
                else end_day - datetime.timedelta(days=29)
            )
            return self.volume.daily_volume(start_day, end_day)

        @volume_router.get("/weekly")
        def weekly_volume(weeks: int = 8):
            if weeks < 1:
                raise HTTPException(status_code=400, detail="weeks must be positive")
            return self.volume.weekly_volume(weeks)

        @self.app.get("/insights")
        def list_insights(
            domain: str = None,
            category: str = None,
            distance: float = None,
            exercise: str = None,
        ):
            return self.insights.detect(domain, category, distance, exercise)

        @self.app.get("/preferences")
        def get_preferences():
            return self.preferences.get()

        @self.app.put("/preferences")
        def update_preferences(fields: dict = Body(...)):
            return self.preferences.update(**fields)

        @backup_router.get("/export")
        def export_backup():
            return self.backup.export_all_data()

        @backup_router.post("/validate")
        def validate_backup(backup: dict = Body(...)):
            return self.backup.validate_backup(backup)

        @backup_router.post("/import")
        def import_backup(confirm: bool = False, backup: dict = Body(...)):
            return self.backup.import_all_data(backup, confirm)

        for router in (
            sessions_router,
            sprint_router,
            lift_router,
            aux_router,
            templates_router,
            analytics_router,
            volume_router,
            backup_router,
        ):
            self.app.include_router(router)


def create_app(db_path: str | None = None, config_path: str | None = None) -> FastAPI:
    api = AccelAPI(db_path, config_path)
    setup_logger(api.config.log_level, api.config.log_file)
    return api.app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
