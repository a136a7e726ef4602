import datetime
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import DAY_MS
from analytics_service import AnalyticsService
from db import LiftRepository, MeetRepository, SprintRepository

NOW = 1_717_000_000_000


@pytest.fixture
def service(tmp_path):
    path = str(tmp_path / "analytics.db")
    return AnalyticsService(
        SprintRepository(path), LiftRepository(path), MeetRepository(path)
    )


def _reps(service, distance, entries, date="2024-05-20"):
    """Log ``(time, created_at, intensity)`` entries as reps of one session."""
    sid = service.sprints.create(date)
    set_id = service.sprints.fetch_with_children(sid)["sets"][0]["id"]
    for time, created_at, intensity in entries:
        rid = service.sprints.add_rep(set_id, distance, time, intensity=intensity)
        service.sprints.update_record("sprint_reps", rid, {"created_at": created_at})
    return sid


def test_sprint_trend_and_rolling_windows(service):
    _reps(
        service,
        60,
        [
            (7.2, NOW - 10 * DAY_MS, None),
            (7.0, NOW - 2 * DAY_MS, None),
            (6.9, NOW - 1 * DAY_MS, None),
        ],
    )
    trend = service.sprint_distance_trend(60, now=NOW)
    assert trend["best_time"] == 6.9
    assert trend["total_reps"] == 3
    assert [r["time"] for r in trend["recent_times"]] == [7.2, 7.0, 6.9]
    week, fortnight, month = trend["rolling_averages"]
    assert week["period"] == 7
    assert week["average"] == pytest.approx(6.95)
    assert week["previous_average"] == pytest.approx(7.2)
    assert week["change"] == pytest.approx(-0.25)
    assert week["count"] == 2
    # no data before the 14 and 30 day windows, so nothing to compare
    assert fortnight["change"] == 0
    assert month["change_percent"] == 0
    assert service.sprint_distance_trend(100, now=NOW) is None


def test_rolling_window_skipped_without_recent_reps(service):
    _reps(service, 60, [(7.2, NOW - 20 * DAY_MS, None)])
    periods = [r["period"] for r in service.sprint_distance_trend(60, now=NOW)["rolling_averages"]]
    assert periods == [30]


def test_sprint_summaries(service):
    _reps(
        service,
        30,
        [(4.2, 1000, None), (4.1, 2000, None), (4.1, 3000, None), (3.9, 4000, None)],
    )
    _reps(service, 60, [(7.0, 5000, None)], date="2024-05-21")
    summaries = service.sprint_summaries()
    assert [s["distance"] for s in summaries] == [30, 60]
    assert summaries[0]["best_time"] == 3.9
    assert summaries[0]["rep_count"] == 4
    assert summaries[0]["trend"] == "improving"
    assert summaries[1]["trend"] == "stable"
    assert summaries[1]["last_date"] == "2024-05-21"


def test_lift_trend_ignores_unmeasured_reps(service):
    lid = service.lifts.create("2024-05-20")
    light = service.lifts.add_set(lid, "Power Clean", 80)
    heavy = service.lifts.add_set(lid, "Power Clean", 100)
    service.lifts.add_rep(light, 1.5)
    service.lifts.add_rep(light, None)
    service.lifts.add_rep(heavy, 1.1)
    service.lifts.add_rep(heavy, 1.2)
    trend = service.lift_exercise_trend("Power Clean")
    assert trend["max_load"] == 100
    assert trend["total_sets"] == 2
    assert trend["velocity_by_load"] == [
        {"load": 80, "peak_velocity": 1.5},
        {"load": 100, "peak_velocity": 1.2},
    ]
    assert len(trend["peak_velocities"]) == 3
    assert service.lift_exercise_trend("Snatch") is None
    summary = service.lift_summaries()[0]
    assert summary["avg_peak_velocity"] == pytest.approx(1.27, abs=0.01)
    assert summary["last_session_date"] == "2024-05-20"


def test_lift_summary_without_velocity(service):
    lid = service.lifts.create("2024-05-20")
    for load in (100, 105, 110, 115, 120, 125):
        service.lifts.add_set(lid, "Back Squat", load)
    summary = service.lift_summaries()[0]
    assert summary["avg_peak_velocity"] is None
    assert summary["max_load"] == 125
    assert summary["set_count"] == 6
    assert summary["trend"] == "improving"


def test_meet_trend_splits_season(service):
    meets = service.meets
    spring = meets.create("Spring Open", "outdoor", "FAT", "2024-06-01")
    meets.add_race(spring, 100, "final", 10.50)
    august = meets.create("Summer Series", "outdoor", "FAT", "2024-08-20")
    meets.add_race(august, 100, "final", 10.80)
    september = meets.create("Autumn Classic", "outdoor", "FAT", "2024-09-10")
    meets.add_race(september, 100, "heat", 10.65, wind=1.1)
    trend = service.meet_distance_trend(100, now=datetime.date(2024, 9, 15))
    assert trend["pr"] == 10.50
    assert trend["pr_meet_name"] == "Spring Open"
    assert trend["season_start"] == "2024-08-01"
    assert trend["season_best"] == 10.65
    assert trend["delta_from_pr"] == pytest.approx(0.15)
    assert len(trend["all_races"]) == 3
    assert service.race_summaries()[0]["race_count"] == 3


def test_configured_season_start(tmp_path):
    path = str(tmp_path / "season.db")
    service = AnalyticsService(
        SprintRepository(path), LiftRepository(path), MeetRepository(path), 1, 15
    )
    assert service.season_start(datetime.date(2024, 1, 10)) == datetime.date(2023, 1, 15)
    assert service.season_start(datetime.date(2024, 1, 15)) == datetime.date(2024, 1, 15)


def test_intensity_buckets(service):
    _reps(
        service,
        60,
        [
            (7.4, 1000, 72),
            (7.2, 2000, 78),
            (6.9, 3000, 96),
            (6.8, 4000, 100),
            (6.95, 5000, 95),
            (7.5, 6000, None),
            (7.6, 7000, 50),
        ],
    )
    stats = service.intensity_analytics(60)
    assert stats["total_reps"] == 6
    counts = {b["range"]: b["count"] for b in stats["buckets"]}
    assert counts == {"70-75": 1, "75-80": 1, "80-85": 0, "85-90": 0, "90-95": 0, "95-100": 3}
    assert stats["most_common_range"] == "95-100"
    top = [b for b in stats["buckets"] if b["range"] == "95-100"][0]
    assert top["avg_time"] == pytest.approx(6.88, abs=0.01)
    empty = [b for b in stats["buckets"] if b["range"] == "80-85"][0]
    assert empty["avg_time"] is None

    correlation = service.intensity_correlation(60)
    assert correlation["optimal_range"] == "95-100"
    assert correlation["best_reps"][0]["time"] == 6.8


def test_intensity_needs_enough_reps(service):
    _reps(service, 60, [(7.0, 1000, 90), (7.1, 2000, 92)])
    assert service.intensity_correlation(60) is None
    assert service.intensity_analytics(100)["most_common_range"] is None
