import requests
from typing import Optional


class WorkoutLogClient:
    """Simple REST client for the workout log API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, **params):
        resp = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def create_workout_type(
        self, name: str, color: Optional[int] = None, icon: Optional[str] = None
    ) -> int:
        params = {"name": name}
        if color is not None:
            params["color"] = color
        if icon is not None:
            params["icon"] = icon
        resp = requests.post(
            f"{self.base_url}/workout_types", params=params, timeout=self.timeout
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def list_workout_types(self):
        return self._get("/workout_types").json()

    def add_entry(self, date: str, workout_type_id: int, **params) -> dict:
        resp = requests.post(
            f"{self.base_url}/entries",
            params={"date": date, "workout_type_id": workout_type_id, **params},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def list_entries(self, **params):
        return self._get("/entries", **params).json()

    def monthly_report(self, year: int, month: int) -> dict:
        return self._get("/reports/monthly", year=year, month=month).json()

    def yearly_report(self, year: int) -> dict:
        return self._get("/reports/yearly", year=year).json()

    def export_monthly(self, year: int, month: int, fmt: str = "xlsx") -> bytes:
        return self._get("/reports/monthly/export", year=year, month=month, fmt=fmt).content

    def export_yearly(self, year: int, fmt: str = "xlsx") -> bytes:
        return self._get("/reports/yearly/export", year=year, fmt=fmt).content

    def streak(self) -> int:
        return self._get("/stats/streak").json()["streak"]

    def backup(self) -> str:
        return self._get("/backup").text
