import requests
from typing import Optional


class AccelClient:
    """Simple REST client for the training log API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, **params) -> dict:
        clean = {k: v for k, v in params.items() if v is not None}
        resp = requests.post(f"{self.base_url}{path}", params=clean, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _get(self, path: str, **params):
        clean = {k: v for k, v in params.items() if v is not None}
        resp = requests.get(f"{self.base_url}{path}", params=clean, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def create_session(self, kind: str, date: Optional[str] = None, title: Optional[str] = None) -> str:
        return self._post(f"/sessions/{kind}", date=date, title=title)["id"]

    def get_session(self, kind: str, session_id: str) -> dict:
        return self._get(f"/sessions/{kind}/{session_id}")

    def complete_session(self, kind: str, session_id: str) -> None:
        self._post(f"/sessions/{kind}/{session_id}/complete")

    def add_sprint_rep(self, set_id: str, distance: float, time: float, **params) -> str:
        return self._post(f"/sprint/sets/{set_id}/reps", distance=distance, time=time, **params)["id"]

    def add_lift_set(self, session_id: str, exercise: str, load: float) -> str:
        return self._post(f"/lift/sessions/{session_id}/sets", exercise=exercise, load=load)["id"]

    def add_race(self, meet_id: str, distance: float, round: str, time: float, wind: Optional[float] = None) -> str:
        return self._post(f"/meets/{meet_id}/races", distance=distance, round=round, time=time, wind=wind)["id"]

    def insights(self, **filters) -> list:
        return self._get("/insights", **filters)

    def weekly_volume(self, weeks: int = 8) -> dict:
        return self._get("/volume/weekly", weeks=weeks)

    def export_backup(self) -> dict:
        return self._get("/backup/export")
