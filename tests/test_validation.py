import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from validation import (
    ValidationError,
    validate_auxiliary_entry,
    validate_lift_rep,
    validate_lift_set,
    validate_race,
    validate_sprint_rep,
)


def sprint_rep(**overrides) -> dict:
    rep = {"distance": 60, "time": 7.1, "timing_type": "HAND", "is_fly": False}
    rep.update(overrides)
    return rep


class SprintRepValidationTest(unittest.TestCase):
    def test_rejects_implausible_times(self) -> None:
        for time in (0, -1.0, 0.99, 120.01, None):
            with self.assertRaises(ValidationError):
                validate_sprint_rep(sprint_rep(time=time))

    def test_accepts_boundary_times(self) -> None:
        validate_sprint_rep(sprint_rep(time=1.0))
        validate_sprint_rep(sprint_rep(time=120.0))

    def test_fly_requires_known_fly_in_distance(self) -> None:
        for fly_in in (None, 0, 15, 40):
            with self.assertRaises(ValidationError) as ctx:
                validate_sprint_rep(sprint_rep(is_fly=True, fly_in_distance=fly_in))
            self.assertIn("fly-in", str(ctx.exception))
        for fly_in in (10, 20, 30):
            validate_sprint_rep(sprint_rep(is_fly=True, fly_in_distance=fly_in))

    def test_fly_distance_ignored_for_standing_start(self) -> None:
        validate_sprint_rep(sprint_rep(is_fly=False, fly_in_distance=15))

    def test_collects_every_problem(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_sprint_rep(sprint_rep(distance=0, time=0, intensity=120))
        self.assertEqual(len(ctx.exception.errors), 3)
        self.assertIn(", ", str(ctx.exception))

    def test_unknown_tags_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            validate_sprint_rep(sprint_rep(timing_type="LASER"))
        with self.assertRaises(ValidationError):
            validate_sprint_rep(sprint_rep(work_type="jog"))


class LiftValidationTest(unittest.TestCase):
    def test_null_velocity_is_valid(self) -> None:
        validate_lift_rep({"peak_velocity": None})

    def test_velocity_bounds(self) -> None:
        validate_lift_rep({"peak_velocity": 0.1})
        validate_lift_rep({"peak_velocity": 3.0})
        for velocity in (0, -0.5, 0.05, 3.2):
            with self.assertRaises(ValidationError):
                validate_lift_rep({"peak_velocity": velocity})

    def test_set_needs_positive_load_and_exercise(self) -> None:
        with self.assertRaises(ValidationError):
            validate_lift_set({"exercise": "Back Squat", "load": 0})
        with self.assertRaises(ValidationError):
            validate_lift_set({"exercise": "  ", "load": 100})
        validate_lift_set({"exercise": "Back Squat", "load": 100})


class RaceValidationTest(unittest.TestCase):
    def race(self, **overrides) -> dict:
        race = {"distance": 100, "round": "final", "time": 10.8}
        race.update(overrides)
        return race

    def test_indoor_rejects_any_wind(self) -> None:
        for wind in (0.0, 0.3, -1.0):
            with self.assertRaises(ValidationError) as ctx:
                validate_race(self.race(wind=wind), "indoor")
            self.assertIn("indoor", str(ctx.exception))
        validate_race(self.race(), "indoor")

    def test_outdoor_wind_limits(self) -> None:
        for wind in (-10.0, 0.0, 2.1, 10.0):
            validate_race(self.race(wind=wind), "outdoor")
        for wind in (10.1, -12.0):
            with self.assertRaises(ValidationError):
                validate_race(self.race(wind=wind), "outdoor")

    def test_round_and_place(self) -> None:
        with self.assertRaises(ValidationError):
            validate_race(self.race(round="quarter"), "outdoor")
        with self.assertRaises(ValidationError):
            validate_race(self.race(place=0), "outdoor")


class AuxiliaryValidationTest(unittest.TestCase):
    def test_entry_rules(self) -> None:
        entry = {
            "category": "plyometrics",
            "name": "Bounds",
            "volume_metric": "contacts",
            "volume_value": 40,
        }
        validate_auxiliary_entry(entry)
        with self.assertRaises(ValidationError):
            validate_auxiliary_entry({**entry, "category": "yoga"})
        with self.assertRaises(ValidationError):
            validate_auxiliary_entry({**entry, "volume_metric": "laps"})
        with self.assertRaises(ValidationError):
            validate_auxiliary_entry({**entry, "volume_value": 0})


if __name__ == "__main__":
    unittest.main()
