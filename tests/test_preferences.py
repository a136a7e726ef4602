import os
import sys
import tempfile
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import PreferencesRepository
from validation import ValidationError


class PreferencesTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.repo = PreferencesRepository(os.path.join(self.tmp.name, "prefs.db"))

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_defaults_created_on_first_read(self) -> None:
        prefs = self.repo.get()
        self.assertEqual(prefs["favorite_distances"], [30, 40, 60, 100, 200])
        self.assertEqual(prefs["default_timing_type"], "HAND")
        self.assertIs(prefs["haptic_feedback"], True)
        self.assertEqual(len(self.repo.fetch_all("SELECT id FROM preferences")), 1)
        self.repo.get()
        self.assertEqual(len(self.repo.fetch_all("SELECT id FROM preferences")), 1)

    def test_partial_update_persists(self) -> None:
        updated = self.repo.update(favorite_exercises=["Hang Clean"], haptic_feedback=False)
        self.assertEqual(updated["favorite_exercises"], ["Hang Clean"])
        self.assertIsNotNone(updated["updated_at"])
        stored = self.repo.get()
        self.assertEqual(stored["favorite_exercises"], ["Hang Clean"])
        self.assertIs(stored["haptic_feedback"], False)
        self.assertEqual(stored["theme"], "dark")

    def test_invalid_updates(self) -> None:
        with self.assertRaises(ValidationError):
            self.repo.update(language="de")
        with self.assertRaises(ValidationError):
            self.repo.update(default_timing_type="LASER")
        self.assertEqual(self.repo.get()["default_timing_type"], "HAND")


if __name__ == "__main__":
    unittest.main()
