import os
import shutil
import sys
import tempfile
import unittest

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import AccelAPI


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.mkdtemp()
        self.db_path = os.path.join(self.tmp, "api.db")
        self.yaml_path = os.path.join(self.tmp, "settings.yaml")
        self.api = AccelAPI(db_path=self.db_path, config_path=self.yaml_path)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        shutil.rmtree(self.tmp)

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_sprint_workflow(self) -> None:
        response = self.client.post("/sessions/sprint", params={"date": "2024-03-01", "title": "Accel"})
        self.assertEqual(response.status_code, 200)
        sid = response.json()["id"]

        detail = self.client.get(f"/sessions/sprint/{sid}").json()
        self.assertEqual(detail["session"]["status"], "active")
        set_id = detail["sets"][0]["id"]
        self.assertEqual(detail["reps_by_set"], {})

        response = self.client.post(
            f"/sprint/sets/{set_id}/reps",
            params={"distance": 30, "time": 3.02, "timing_type": "FAT", "is_fly": True, "fly_in_distance": 20},
        )
        self.assertEqual(response.status_code, 200)
        rep_id = response.json()["id"]

        detail = self.client.get(f"/sessions/sprint/{sid}").json()
        self.assertEqual([r["id"] for r in detail["reps_by_set"][set_id]], [rep_id])

        response = self.client.put(f"/sprint/reps/{rep_id}", json={"time": 2.98})
        self.assertEqual(response.json()["time"], 2.98)

        self.assertEqual(self.client.post(f"/sessions/sprint/{sid}/complete").status_code, 200)
        response = self.client.post(f"/sprint/sets/{set_id}/reps", params={"distance": 30, "time": 3.0})
        self.assertEqual(response.status_code, 409)

        listed = self.client.get("/sessions/sprint", params={"status": "completed"}).json()
        self.assertEqual([s["id"] for s in listed], [sid])
        best = self.client.get("/sprint/best").json()
        self.assertEqual(best[0]["rep"]["time"], 2.98)

        self.assertEqual(self.client.delete(f"/sessions/sprint/{sid}").status_code, 200)
        self.assertEqual(self.client.get(f"/sessions/sprint/{sid}").status_code, 404)

    def test_error_mapping(self) -> None:
        sid = self.client.post("/sessions/sprint").json()["id"]
        set_id = self.client.get(f"/sessions/sprint/{sid}").json()["sets"][0]["id"]
        response = self.client.post(f"/sprint/sets/{set_id}/reps", params={"distance": 60, "time": 0.5})
        self.assertEqual(response.status_code, 400)
        self.assertIn("too fast", response.json()["detail"])
        response = self.client.post("/sprint/sets/missing/reps", params={"distance": 60, "time": 7.0})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/sessions/rowing").status_code, 404)
        self.assertEqual(self.client.post("/sessions/meet").status_code, 400)
        response = self.client.put(f"/sessions/sprint/{sid}", json={"status": "completed"})
        self.assertEqual(response.status_code, 400)

    def test_lift_and_meet_routes(self) -> None:
        lid = self.client.post("/sessions/lift", params={"date": "2024-03-02"}).json()["id"]
        set_id = self.client.post(
            f"/lift/sessions/{lid}/sets", params={"exercise": "Back Squat", "load": 140}
        ).json()["id"]
        self.client.post(f"/lift/sets/{set_id}/reps")
        self.client.post(f"/lift/sets/{set_id}/reps", params={"peak_velocity": 0.61})
        self.assertEqual(self.client.get("/lift/exercises/recent").json(), ["Back Squat"])
        self.assertEqual(self.client.get("/lift/exercises/Back Squat/last_load").json()["load"], 140)
        trend = self.client.get("/analytics/lift/Back Squat").json()
        self.assertEqual(trend["velocity_by_load"], [{"load": 140.0, "peak_velocity": 0.61}])

        mid = self.client.post(
            "/meets", params={"name": "Indoor Open", "venue": "indoor", "date": "2024-02-10"}
        ).json()["id"]
        response = self.client.post(
            f"/meets/{mid}/races", params={"distance": 60, "round": "final", "time": 6.9, "wind": 0.4}
        )
        self.assertEqual(response.status_code, 400)
        race_id = self.client.post(
            f"/meets/{mid}/races", params={"distance": 60, "round": "final", "time": 6.9}
        ).json()["id"]
        meet = self.client.get(f"/sessions/meet/{mid}").json()
        self.assertEqual(meet["races"][0]["id"], race_id)
        self.assertEqual(meet["races"][0]["timing_type"], "FAT")
        self.assertEqual(self.client.get("/analytics/meet/60").json()["pr"], 6.9)
        self.assertEqual(self.client.get("/analytics/meet/100").status_code, 404)

    def test_templates_volume_and_insights(self) -> None:
        sid = self.client.post("/sessions/sprint", params={"date": "2024-03-01"}).json()["id"]
        set_id = self.client.get(f"/sessions/sprint/{sid}").json()["sets"][0]["id"]
        for t in (7.1, 7.0):
            self.client.post(f"/sprint/sets/{set_id}/reps", params={"distance": 60, "time": t})
        template_id = self.client.post("/templates", params={"session_id": sid, "name": "Accel"}).json()["id"]
        new_sid = self.client.post(f"/templates/{template_id}/apply", params={"date": "2024-03-08"}).json()["id"]
        self.assertEqual(self.client.get(f"/sessions/sprint/{new_sid}").json()["session"]["title"], "Accel")
        self.assertEqual(self.client.get("/templates").json()[0]["use_count"], 1)

        self.assertEqual(self.client.get(f"/volume/sessions/{sid}").json()["total"], 120.0)
        self.assertEqual(len(self.client.get("/volume/weekly", params={"weeks": 4}).json()["summaries"]), 4)
        self.assertEqual(self.client.get("/volume/weekly", params={"weeks": 0}).status_code, 400)
        insights = self.client.get("/insights", params={"domain": "sprint"}).json()
        self.assertEqual(insights[0]["category"], "improvement")

    def test_preferences(self) -> None:
        prefs = self.client.get("/preferences").json()
        self.assertEqual(prefs["theme"], "dark")
        response = self.client.put("/preferences", json={"theme": "light", "default_rest_time": 240})
        self.assertEqual(response.json()["theme"], "light")
        self.assertEqual(self.client.get("/preferences").json()["default_rest_time"], 240)
        self.assertEqual(self.client.put("/preferences", json={"theme": "blue"}).status_code, 400)

    def test_backup_round_trip(self) -> None:
        self.client.post("/sessions/auxiliary", params={"date": "2024-03-03"})
        backup = self.client.get("/backup/export").json()
        self.assertTrue(self.client.post("/backup/validate", json=backup).json()["is_valid"])
        self.client.post("/sessions/lift")
        result = self.client.post("/backup/import", json=backup).json()
        self.assertFalse(result["success"])
        result = self.client.post("/backup/import", params={"confirm": True}, json=backup).json()
        self.assertTrue(result["success"])
        self.assertEqual(self.client.get("/sessions/lift").json(), [])
        self.assertEqual(len(self.client.get("/sessions/auxiliary").json()), 1)
        response = self.client.post("/backup/import", params={"confirm": True}, json={"version": "1.0"})
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
