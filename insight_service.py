from __future__ import annotations
import datetime
from typing import Iterable, List, Optional

from loguru import logger

from db import LiftRepository, MeetRepository, SprintRepository
from algorithms import DAY_MS, MathTools
from tools import TimeTools, generate_id, now_ms

SEVERITY_ORDER = {"significant": 0, "notable": 1, "info": 2}
SPRINT_MILESTONES = (10, 25, 50, 100, 250, 500)
LIFT_MILESTONES = (10, 25, 50, 100, 250)
MEET_MILESTONES = (5, 10, 25, 50)
VOLUME_MILESTONES = (10000, 25000, 50000, 100000)
VELOCITY_IMPROVEMENT = 0.05
VOLUME_CHANGE_THRESHOLD = 20.0
INTENSITY_PATTERN_MIN_REPS = 10
INTENSITY_PATTERN_SHARE = 0.7


def _fmt(distance: float) -> str:
    return f"{distance:g}"


class InsightService:
    """Rule-based detection of PRs, stagnation and milestones.

    Every call rescans the full history; nothing is persisted.
    """

    def __init__(
        self,
        sprint_repo: SprintRepository,
        lift_repo: LiftRepository,
        meet_repo: MeetRepository,
        volume_service: "VolumeService" | None = None,
        analytics_service: "AnalyticsService" | None = None,
        stagnation_weeks: int = 4,
    ) -> None:
        self.sprints = sprint_repo
        self.lifts = lift_repo
        self.meets = meet_repo
        self.volume = volume_service
        self.analytics = analytics_service
        self.stagnation_weeks = stagnation_weeks

    @staticmethod
    def _insight(
        domain: str,
        category: str,
        severity: str,
        title: str,
        description: str,
        detected_at: int,
        metric: str | None = None,
        distance: float | None = None,
        exercise: str | None = None,
        value: float | None = None,
        previous_value: float | None = None,
    ) -> dict:
        return {
            "id": generate_id(),
            "domain": domain,
            "category": category,
            "severity": severity,
            "title": title,
            "description": description,
            "metric": metric,
            "distance": distance,
            "exercise": exercise,
            "value": value,
            "previous_value": previous_value,
            "detected_at": detected_at,
        }

    def _series_insights(
        self,
        domain: str,
        records: List[tuple[int, float]],
        lower_is_better: bool,
        milestones: Iterable[int],
        now: int,
        label: str,
        unit: str,
        metric: str,
        distance: float | None = None,
        exercise: str | None = None,
    ) -> List[dict]:
        """Apply the PR, stagnation and milestone rules to one ``(ts, value)`` series."""
        found: List[dict] = []
        if not records:
            return found
        records = sorted(records, key=lambda r: r[0])
        best = min if lower_is_better else max

        def better(a: float, b: float) -> bool:
            return a < b if lower_is_better else a > b

        latest_ts, latest = records[-1]
        if len(records) >= 2:
            previous = best(v for _ts, v in records[:-1])
            if better(latest, previous):
                found.append(
                    self._insight(
                        domain,
                        "improvement",
                        "significant",
                        f"New PR: {label}",
                        f"{latest}{unit} beats your previous best of {previous}{unit}",
                        latest_ts,
                        metric=metric,
                        distance=distance,
                        exercise=exercise,
                        value=latest,
                        previous_value=previous,
                    )
                )

        cutoff = now - self.stagnation_weeks * 7 * DAY_MS
        recent = [v for ts, v in records if ts >= cutoff]
        older = [v for ts, v in records if ts < cutoff]
        if len(recent) >= 3 and older:
            recent_best = best(recent)
            older_best = best(older)
            if not better(recent_best, older_best):
                found.append(
                    self._insight(
                        domain,
                        "stagnation",
                        "notable",
                        f"Plateau: {label}",
                        f"No improvement in {self.stagnation_weeks} weeks: best {recent_best}{unit} "
                        f"vs {older_best}{unit} before",
                        latest_ts,
                        metric=metric,
                        distance=distance,
                        exercise=exercise,
                        value=recent_best,
                        previous_value=older_best,
                    )
                )

        if len(records) in milestones:
            found.append(
                self._insight(
                    domain,
                    "milestone",
                    "info",
                    f"{len(records)} {label} entries",
                    f"You have logged {len(records)} entries for {label}",
                    latest_ts,
                    metric="count",
                    distance=distance,
                    exercise=exercise,
                    value=len(records),
                )
            )
        return found

    def sprint_insights(self, now: int) -> List[dict]:
        found: List[dict] = []
        grouped = MathTools.group_by(self.sprints.reps_with_dates(), "distance")
        for distance, reps in sorted(grouped.items()):
            found.extend(
                self._series_insights(
                    "sprint",
                    [(r["created_at"], r["time"]) for r in reps],
                    True,
                    SPRINT_MILESTONES,
                    now,
                    f"{_fmt(distance)}m",
                    "s",
                    "time",
                    distance=distance,
                )
            )
        return found

    def lift_insights(self, now: int) -> List[dict]:
        found: List[dict] = []
        grouped = MathTools.group_by(self.lifts.sets_with_reps(), "exercise")
        for exercise, sets in sorted(grouped.items()):
            found.extend(
                self._series_insights(
                    "lift",
                    [(s["created_at"], s["load"]) for s in sets],
                    False,
                    LIFT_MILESTONES,
                    now,
                    exercise,
                    "kg",
                    "load",
                    exercise=exercise,
                )
            )
            found.extend(self._velocity_insights(exercise, sets))
        return found

    def _velocity_insights(self, exercise: str, sets: List[dict]) -> List[dict]:
        found: List[dict] = []
        for load, at_load in sorted(MathTools.group_by(sets, "load").items()):
            measured = []
            for lift_set in at_load:
                velocities = [
                    r["peak_velocity"] for r in lift_set["reps"] if r["peak_velocity"] is not None
                ]
                if velocities:
                    measured.append((lift_set["created_at"], max(velocities)))
            if len(measured) < 2:
                continue
            measured.sort(key=lambda m: m[0])
            latest_ts, latest = measured[-1]
            previous = max(v for _ts, v in measured[:-1])
            if latest - previous > VELOCITY_IMPROVEMENT:
                found.append(
                    self._insight(
                        "lift",
                        "improvement",
                        "notable",
                        f"Faster at {load:g}kg: {exercise}",
                        f"Peak velocity {latest:.2f} m/s at {load:g}kg, up from {previous:.2f} m/s",
                        latest_ts,
                        metric="velocity",
                        exercise=exercise,
                        value=latest,
                        previous_value=previous,
                    )
                )
        return found

    def meet_insights(self, now: int) -> List[dict]:
        found: List[dict] = []
        grouped = MathTools.group_by(self.meets.races_with_meets(), "distance")
        for distance, races in sorted(grouped.items()):
            found.extend(
                self._series_insights(
                    "meet",
                    [(TimeTools.date_to_ms(r["date"]), r["time"]) for r in races],
                    True,
                    MEET_MILESTONES,
                    now,
                    f"{_fmt(distance)}m race",
                    "s",
                    "time",
                    distance=distance,
                )
            )
        return found

    def volume_insights(self, now: int) -> List[dict]:
        if self.volume is None:
            return []
        found: List[dict] = []
        day = datetime.datetime.fromtimestamp(now / 1000).date()
        weekly = self.volume.weekly_volume(8, today=day)
        summaries = weekly["summaries"]
        change = weekly["stats"]["week_over_week_change"]
        current = summaries[-1]["total"]
        previous = summaries[-2]["total"] if len(summaries) >= 2 else 0.0
        if previous > 0 and abs(change) > VOLUME_CHANGE_THRESHOLD:
            spike = change > 0
            found.append(
                self._insight(
                    "sprint",
                    "volume_trend",
                    "notable",
                    "Volume spike" if spike else "Volume drop",
                    f"Weekly volume {'up' if spike else 'down'} {abs(change):.0f}% "
                    f"({previous:g}m to {current:g}m)",
                    now,
                    metric="volume",
                    value=current,
                    previous_value=previous,
                )
            )
        total = self.volume.total_volume()
        before = total - current
        for threshold in VOLUME_MILESTONES:
            if before < threshold <= total:
                found.append(
                    self._insight(
                        "sprint",
                        "milestone",
                        "info",
                        f"{threshold // 1000}k metres",
                        f"Lifetime sprint volume passed {threshold}m",
                        now,
                        metric="volume",
                        value=total,
                    )
                )
        return found

    def intensity_insights(self, now: int) -> List[dict]:
        if self.analytics is None:
            return []
        stats = self.analytics.intensity_analytics()
        total = stats["total_reps"]
        if total < INTENSITY_PATTERN_MIN_REPS or stats["most_common_range"] is None:
            return []
        top = next(b for b in stats["buckets"] if b["range"] == stats["most_common_range"])
        share = top["count"] / total
        if share <= INTENSITY_PATTERN_SHARE:
            return []
        return [
            self._insight(
                "sprint",
                "intensity_pattern",
                "info",
                f"Mostly {top['range']}% efforts",
                f"{share:.0%} of your rated reps fall in the {top['range']}% range",
                now,
                metric="intensity",
                value=round(share * 100, 1),
            )
        ]

    def detect(
        self,
        domain: Optional[str] = None,
        category: Optional[str] = None,
        distance: Optional[float] = None,
        exercise: Optional[str] = None,
        now: Optional[int] = None,
    ) -> List[dict]:
        """Return current insights, most severe first, then most recent."""
        now = now if now is not None else now_ms()
        insights = (
            self.sprint_insights(now)
            + self.lift_insights(now)
            + self.meet_insights(now)
            + self.volume_insights(now)
            + self.intensity_insights(now)
        )
        if domain is not None:
            insights = [i for i in insights if i["domain"] == domain]
        if category is not None:
            insights = [i for i in insights if i["category"] == category]
        if distance is not None:
            insights = [i for i in insights if i["distance"] == distance]
        if exercise is not None:
            insights = [i for i in insights if i["exercise"] == exercise]
        insights.sort(key=lambda i: (SEVERITY_ORDER[i["severity"]], -i["detected_at"]))
        logger.debug(f"Detected {len(insights)} insights")
        return insights
