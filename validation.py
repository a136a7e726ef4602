"""Input rules and the error types raised by the repositories."""

from typing import Iterable, List, Optional

TIMING_TYPES = ("HAND", "FAT")
FLY_IN_DISTANCES = (10, 20, 30)
WORK_TYPES = ("sprint", "tempo")
ROUNDS = ("heat", "semi", "final")
VENUES = ("indoor", "outdoor")
SESSION_STATUSES = ("active", "completed")
AUX_CATEGORIES = (
    "plyometrics",
    "strength_circuit",
    "sled_work",
    "wicket_runs",
    "tempo_runs",
    "general",
)
VOLUME_METRICS = ("contacts", "distance", "reps", "time", "sets")

MIN_TIME = 1.0
MAX_TIME = 120.0
MIN_VELOCITY = 0.1
MAX_VELOCITY = 3.0
MAX_WIND = 10.0


class ValidationError(ValueError):
    """Input values break a rule; nothing was written."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__(", ".join(self.errors))


class PreconditionError(ValueError):
    """The target record is in a state that forbids the operation."""


class NotFoundError(PreconditionError):
    pass


class StorageError(RuntimeError):
    """The underlying store failed; the transaction was rolled back."""


class BackupFormatError(ValueError):
    def __init__(self, problems: Iterable[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__("invalid backup: " + "; ".join(self.problems))


def _check_time(time: Optional[float], errors: List[str]) -> None:
    if time is None or time <= 0:
        errors.append("Time must be positive")
    elif time < MIN_TIME:
        errors.append(f"Time {time} is too fast (minimum {MIN_TIME}s)")
    elif time > MAX_TIME:
        errors.append(f"Time {time} is too slow (maximum {MAX_TIME}s)")


def _check_intensity(intensity: Optional[float], errors: List[str]) -> None:
    if intensity is not None and not 0 <= intensity <= 100:
        errors.append("Intensity must be between 0 and 100")


def _raise(errors: List[str]) -> None:
    if errors:
        raise ValidationError(errors)


def validate_sprint_rep(rep: dict) -> None:
    """Raise :class:`ValidationError` when ``rep`` is not a plausible sprint rep."""
    errors: List[str] = []
    distance = rep.get("distance")
    if distance is None or distance <= 0:
        errors.append("Distance must be positive")
    _check_time(rep.get("time"), errors)
    if rep.get("is_fly"):
        if rep.get("fly_in_distance") not in FLY_IN_DISTANCES:
            errors.append("Fly reps require a fly-in distance of 10, 20 or 30m")
    timing = rep.get("timing_type")
    if timing is not None and timing not in TIMING_TYPES:
        errors.append(f"Unknown timing type {timing}")
    work_type = rep.get("work_type")
    if work_type is not None and work_type not in WORK_TYPES:
        errors.append(f"Unknown work type {work_type}")
    rest = rep.get("rest_after")
    if rest is not None and rest < 0:
        errors.append("Rest must not be negative")
    _check_intensity(rep.get("intensity"), errors)
    _raise(errors)


def validate_lift_rep(rep: dict) -> None:
    """``peak_velocity`` of ``None`` means not measured and is always accepted."""
    errors: List[str] = []
    velocity = rep.get("peak_velocity")
    if velocity is not None:
        if velocity <= 0:
            errors.append("Velocity must be positive")
        elif velocity < MIN_VELOCITY:
            errors.append(f"Velocity {velocity} is too low (minimum {MIN_VELOCITY} m/s)")
        elif velocity > MAX_VELOCITY:
            errors.append(f"Velocity {velocity} is too high (maximum {MAX_VELOCITY} m/s)")
    _raise(errors)


def validate_lift_set(lift_set: dict) -> None:
    errors: List[str] = []
    load = lift_set.get("load")
    if load is None or load <= 0:
        errors.append("Load must be positive")
    if not (lift_set.get("exercise") or "").strip():
        errors.append("Exercise is required")
    _raise(errors)


def validate_race(race: dict, venue: str) -> None:
    """Validate ``race`` against the venue of the meet it belongs to."""
    errors: List[str] = []
    distance = race.get("distance")
    if distance is None or distance <= 0:
        errors.append("Distance must be positive")
    _check_time(race.get("time"), errors)
    if race.get("round") not in ROUNDS:
        errors.append(f"Round must be one of {', '.join(ROUNDS)}")
    wind = race.get("wind")
    if wind is not None:
        if venue == "indoor":
            errors.append("Wind cannot be recorded for indoor races")
        elif abs(wind) > MAX_WIND:
            errors.append(f"Wind {wind} m/s is extreme (limit {MAX_WIND})")
    place = race.get("place")
    if place is not None and place < 1:
        errors.append("Place must be at least 1")
    _raise(errors)


def validate_meet(meet: dict) -> None:
    errors: List[str] = []
    if not (meet.get("name") or "").strip():
        errors.append("Meet name is required")
    if meet.get("venue") not in VENUES:
        errors.append("Venue must be indoor or outdoor")
    if meet.get("timing_type") not in TIMING_TYPES:
        errors.append("Timing type must be HAND or FAT")
    _raise(errors)


def validate_auxiliary_entry(entry: dict) -> None:
    errors: List[str] = []
    if entry.get("category") not in AUX_CATEGORIES:
        errors.append(f"Unknown category {entry.get('category')}")
    if not (entry.get("name") or "").strip():
        errors.append("Name is required")
    if entry.get("volume_metric") not in VOLUME_METRICS:
        errors.append(f"Unknown volume metric {entry.get('volume_metric')}")
    value = entry.get("volume_value")
    if value is None or value <= 0:
        errors.append("Volume must be positive")
    _check_intensity(entry.get("intensity"), errors)
    _raise(errors)
