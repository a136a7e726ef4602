from __future__ import annotations
import datetime
from typing import Dict, List, Optional

from db import SprintRepository
from algorithms import MathTools
from tools import TimeTools
from validation import NotFoundError


class VolumeService:
    """Aggregate sprint and tempo distance into training volume."""

    def __init__(self, sprint_repo: SprintRepository) -> None:
        self.sprints = sprint_repo

    @staticmethod
    def _split(reps: List[dict]) -> Dict[str, float]:
        sprint = 0.0
        tempo = 0.0
        for rep in reps:
            if rep.get("work_type") == "tempo":
                tempo += rep["distance"]
            else:
                sprint += rep["distance"]
        return {"sprint": sprint, "tempo": tempo, "total": sprint + tempo}

    def session_volume(self, session_id: str) -> Dict[str, float]:
        if self.sprints.get(session_id) is None:
            raise NotFoundError("sprint session not found")
        return self._split(self.sprints.reps_for_session(session_id))

    def _by_date(self) -> Dict[str, dict]:
        days: Dict[str, dict] = {}
        for rep in self.sprints.reps_with_dates():
            day = days.setdefault(rep["date"], {"reps": [], "sessions": set()})
            day["reps"].append(rep)
            day["sessions"].add(rep["session_id"])
        for session in self.sprints.fetch_dicts("SELECT id, date FROM sprint_sessions;"):
            days.setdefault(session["date"], {"reps": [], "sessions": set()})["sessions"].add(
                session["id"]
            )
        return days

    def daily_volume(
        self, start: str | datetime.date, end: str | datetime.date
    ) -> List[dict]:
        """Return one point per day in [start, end] that has a sprint session."""
        start_day = TimeTools.to_date(start)
        end_day = TimeTools.to_date(end)
        points = []
        for date, day in sorted(self._by_date().items()):
            if not start_day <= TimeTools.to_date(date) <= end_day:
                continue
            points.append(
                {"date": date, **self._split(day["reps"]), "session_count": len(day["sessions"])}
            )
        return points

    def weekly_summaries(
        self, weeks: int = 8, today: Optional[datetime.date] = None
    ) -> List[dict]:
        """Return one summary per ISO week for the last ``weeks`` weeks, oldest first."""
        current = TimeTools.week_start(today or datetime.date.today())
        starts = [current - datetime.timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]
        summaries = {
            s: {"week_start": s.isoformat(), "sprint": 0.0, "tempo": 0.0, "total": 0.0, "session_count": 0}
            for s in starts
        }
        for date, day in self._by_date().items():
            week = summaries.get(TimeTools.week_start(date))
            if week is None:
                continue
            split = self._split(day["reps"])
            for key in ("sprint", "tempo", "total"):
                week[key] += split[key]
            week["session_count"] += len(day["sessions"])
        return [summaries[s] for s in starts]

    def weekly_volume(
        self, weeks: int = 8, today: Optional[datetime.date] = None
    ) -> dict:
        summaries = self.weekly_summaries(weeks, today)
        totals = [w["total"] for w in summaries]
        if len(totals) >= 2:
            change = MathTools.percent_change(totals[-1], totals[-2])
        else:
            change = 0.0
        return {
            "summaries": summaries,
            "stats": {
                "avg_weekly_volume": round(MathTools.mean(totals), 1),
                "max_weekly_volume": max(totals) if totals else 0.0,
                "week_over_week_change": round(change, 1),
            },
        }

    def total_volume(self) -> float:
        return self._split(self.sprints.reps_with_dates())["total"]
