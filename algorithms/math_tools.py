from typing import Iterable, List, Optional, Sequence, Tuple
import numpy as np

DAY_MS = 24 * 60 * 60 * 1000


class MathTools:
    """Provides numeric helpers shared by the analytics and insight services."""

    TREND_WINDOW: int = 3
    TREND_DEAD_BAND: float = 2.0
    INTENSITY_BUCKETS: Tuple[Tuple[int, int], ...] = (
        (70, 75),
        (75, 80),
        (80, 85),
        (85, 90),
        (90, 95),
        (95, 100),
    )

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def mean(values: Iterable[float]) -> float:
        """Return the arithmetic mean or 0.0 for an empty input."""
        arr = np.asarray(list(values), dtype=float)
        if arr.size == 0:
            return 0.0
        return float(arr.mean())

    @staticmethod
    def percent_change(current: float, previous: float) -> float:
        """Return the change from ``previous`` to ``current`` in percent.

        A zero ``previous`` yields 0.0 rather than an infinite value.
        """
        if previous == 0:
            return 0.0
        return (current - previous) / previous * 100

    @classmethod
    def rolling_average(
        cls,
        points: Sequence[Tuple[int, float]],
        period_days: int,
        now_ms: int,
    ) -> Optional[dict]:
        """Compare the mean of the trailing window with the window before it.

        ``points`` are ``(timestamp_ms, value)`` pairs. Returns ``None`` when
        the current window holds no points. An empty previous window is
        treated as equal to the current one.
        """
        period_ms = period_days * DAY_MS
        cutoff = now_ms - period_ms
        previous_cutoff = cutoff - period_ms
        current = [v for ts, v in points if ts >= cutoff]
        if not current:
            return None
        previous = [v for ts, v in points if previous_cutoff <= ts < cutoff]
        current_avg = cls.mean(current)
        previous_avg = cls.mean(previous) if previous else current_avg
        change = current_avg - previous_avg
        return {
            "period": period_days,
            "average": round(current_avg, 3),
            "previous_average": round(previous_avg, 3),
            "change": round(change, 3),
            "change_percent": round(cls.percent_change(current_avg, previous_avg), 2),
            "count": len(current),
        }

    @classmethod
    def trend_direction(
        cls, values: Sequence[float], lower_is_better: bool = True
    ) -> str:
        """Classify chronologically ordered ``values`` as improving, declining or stable."""
        window = cls.TREND_WINDOW
        if len(values) < window:
            return "stable"
        oldest = cls.mean(values[:window])
        recent = cls.mean(values[-window:])
        diff = cls.percent_change(recent, oldest)
        if lower_is_better:
            diff = -diff
        if diff > cls.TREND_DEAD_BAND:
            return "improving"
        if diff < -cls.TREND_DEAD_BAND:
            return "declining"
        return "stable"

    @classmethod
    def intensity_bucket(cls, intensity: float) -> Optional[str]:
        """Return the ``"lo-hi"`` label of the bucket holding ``intensity``."""
        for low, high in cls.INTENSITY_BUCKETS:
            if low <= intensity < high or (high == 100 and intensity == 100):
                return f"{low}-{high}"
        return None

    @staticmethod
    def group_by(rows: Iterable[dict], key: str) -> dict:
        """Group dictionaries by the value of ``key`` preserving order."""
        groups: dict = {}
        for row in rows:
            groups.setdefault(row[key], []).append(row)
        return groups

    @staticmethod
    def latest(rows: List[dict], field: str = "created_at") -> Optional[dict]:
        """Return the row with the highest ``field`` value."""
        if not rows:
            return None
        return max(rows, key=lambda r: r[field])
