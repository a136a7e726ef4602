from __future__ import annotations
import datetime
from typing import Dict, List, Optional

from db import LiftRepository, MeetRepository, SprintRepository
from algorithms import MathTools
from tools import TimeTools, now_ms


class AnalyticsService:
    """Per-distance and per-exercise trend views computed on demand."""

    ROLLING_PERIODS = (7, 14, 30)
    RECENT_LIMIT = 20
    MIN_CORRELATION_REPS = 5

    def __init__(
        self,
        sprint_repo: SprintRepository,
        lift_repo: LiftRepository,
        meet_repo: MeetRepository,
        season_start_month: int = 8,
        season_start_day: int = 1,
    ) -> None:
        self.sprints = sprint_repo
        self.lifts = lift_repo
        self.meets = meet_repo
        self.season_start_month = season_start_month
        self.season_start_day = season_start_day

    def season_start(self, now: Optional[datetime.date] = None) -> datetime.date:
        return TimeTools.season_start(now, self.season_start_month, self.season_start_day)

    def sprint_distance_trend(
        self, distance: float, now: Optional[int] = None
    ) -> Optional[dict]:
        """Best time, recent series and rolling averages at ``distance``.

        ``now`` is epoch milliseconds and defaults to the current time.
        """
        reps = sorted(self.sprints.reps_with_dates(distance), key=lambda r: r["created_at"])
        if not reps:
            return None
        now = now if now is not None else now_ms()
        best = min(reps, key=lambda r: r["time"])
        points = [(r["created_at"], r["time"]) for r in reps]
        rolling = []
        for period in self.ROLLING_PERIODS:
            avg = MathTools.rolling_average(points, period, now)
            if avg is not None:
                rolling.append(avg)
        return {
            "distance": distance,
            "best_time": best["time"],
            "best_timing_type": best["timing_type"],
            "best_date": best["date"],
            "recent_times": [
                {
                    "time": r["time"],
                    "date": r["date"],
                    "timing_type": r["timing_type"],
                    "created_at": r["created_at"],
                }
                for r in reps[-self.RECENT_LIMIT:]
            ],
            "rolling_averages": rolling,
            "total_reps": len(reps),
        }

    def sprint_summaries(self) -> List[dict]:
        summaries = []
        grouped = MathTools.group_by(self.sprints.reps_with_dates(), "distance")
        for distance, reps in sorted(grouped.items()):
            reps.sort(key=lambda r: r["created_at"])
            times = [r["time"] for r in reps]
            summaries.append(
                {
                    "distance": distance,
                    "best_time": min(times),
                    "rep_count": len(reps),
                    "last_date": reps[-1]["date"],
                    "trend": MathTools.trend_direction(times, lower_is_better=True),
                }
            )
        return summaries

    def lift_exercise_trend(self, exercise: str) -> Optional[dict]:
        sets = self.lifts.sets_with_reps(exercise)
        if not sets:
            return None
        top = sets[0]
        for lift_set in sets[1:]:
            if lift_set["load"] > top["load"]:
                top = lift_set
        by_load: Dict[float, float] = {}
        velocities = []
        for lift_set in sets:
            measured = [r for r in lift_set["reps"] if r["peak_velocity"] is not None]
            for rep in measured:
                velocities.append(
                    {
                        "date": lift_set["date"],
                        "load": lift_set["load"],
                        "peak_velocity": rep["peak_velocity"],
                        "created_at": rep["created_at"],
                    }
                )
            if measured:
                best = max(r["peak_velocity"] for r in measured)
                by_load[lift_set["load"]] = max(by_load.get(lift_set["load"], 0.0), best)
        velocities.sort(key=lambda v: v["created_at"])
        return {
            "exercise": exercise,
            "max_load": top["load"],
            "max_load_date": top["date"],
            "velocity_by_load": [
                {"load": load, "peak_velocity": v} for load, v in sorted(by_load.items())
            ],
            "peak_velocities": velocities[-self.RECENT_LIMIT:],
            "total_sets": len(sets),
        }

    def lift_summaries(self) -> List[dict]:
        summaries = []
        grouped = MathTools.group_by(self.lifts.sets_with_reps(), "exercise")
        for exercise, sets in sorted(grouped.items()):
            loads = [s["load"] for s in sets]
            velocities = [
                r["peak_velocity"]
                for s in sets
                for r in s["reps"]
                if r["peak_velocity"] is not None
            ]
            summaries.append(
                {
                    "exercise": exercise,
                    "max_load": max(loads),
                    "set_count": len(sets),
                    "last_session_date": max(s["date"] for s in sets),
                    "avg_peak_velocity": round(MathTools.mean(velocities), 2) if velocities else None,
                    "trend": MathTools.trend_direction(loads, lower_is_better=False),
                }
            )
        return summaries

    def meet_distance_trend(
        self, distance: float, now: Optional[datetime.date] = None
    ) -> Optional[dict]:
        races = self.meets.races_with_meets(distance)
        if not races:
            return None
        pr = min(races, key=lambda r: r["time"])
        season_start = self.season_start(now).isoformat()
        season = [r for r in races if r["date"] >= season_start]
        season_best = min(season, key=lambda r: r["time"]) if season else pr
        latest = races[-1]
        return {
            "distance": distance,
            "pr": pr["time"],
            "pr_date": pr["date"],
            "pr_meet_name": pr["meet_name"],
            "season_best": season_best["time"],
            "season_start": season_start,
            "all_races": races,
            "delta_from_pr": round(latest["time"] - pr["time"], 2),
        }

    def race_summaries(self) -> List[dict]:
        summaries = []
        grouped = MathTools.group_by(self.meets.races_with_meets(), "distance")
        for distance, races in sorted(grouped.items()):
            times = [r["time"] for r in races]
            summaries.append(
                {
                    "distance": distance,
                    "pr": min(times),
                    "race_count": len(races),
                    "last_date": races[-1]["date"],
                    "trend": MathTools.trend_direction(times, lower_is_better=True),
                }
            )
        return summaries

    def _intensity_reps(self, distance: float | None = None) -> List[dict]:
        return [
            r for r in self.sprints.reps_with_dates(distance) if r["intensity"] is not None
        ]

    def intensity_analytics(self, distance: float | None = None) -> dict:
        """Distribution of sprint reps over the 70-100% intensity buckets."""
        reps = self._intensity_reps(distance)
        buckets = {f"{lo}-{hi}": [] for lo, hi in MathTools.INTENSITY_BUCKETS}
        for rep in reps:
            label = MathTools.intensity_bucket(rep["intensity"])
            if label is not None:
                buckets[label].append(rep)
        distribution = [
            {
                "range": label,
                "count": len(items),
                "avg_time": round(MathTools.mean(r["time"] for r in items), 2) if items else None,
            }
            for label, items in buckets.items()
        ]
        most_common = max(distribution, key=lambda b: b["count"])
        return {
            "buckets": distribution,
            "total_reps": len(reps),
            "avg_intensity": round(MathTools.mean(r["intensity"] for r in reps), 1) if reps else None,
            "most_common_range": most_common["range"] if most_common["count"] else None,
        }

    def intensity_correlation(self, distance: float) -> Optional[dict]:
        reps = self._intensity_reps(distance)
        if len(reps) < self.MIN_CORRELATION_REPS:
            return None
        analytics = self.intensity_analytics(distance)
        candidates = [b for b in analytics["buckets"] if b["count"] >= 2]
        optimal = min(candidates, key=lambda b: b["avg_time"]) if candidates else None
        best = sorted(reps, key=lambda r: r["time"])[:10]
        return {
            "distance": distance,
            "buckets": analytics["buckets"],
            "optimal_range": optimal["range"] if optimal else None,
            "best_reps": [
                {"time": r["time"], "intensity": r["intensity"], "date": r["date"]} for r in best
            ],
        }
