import requests
from typing import Optional


class StudioClient:
    """Simple REST client for the studio API."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, **params):
        resp = requests.post(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _get(self, path: str, **params):
        resp = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def add_exercise(self, name: str, category: str = "strength", **params: str) -> int:
        return self._post("/exercises", name=name, category=category, **params)["id"]

    def create_routine(self, name: str, description: Optional[str] = None) -> int:
        return self._post("/routines", name=name, description=description)["id"]

    def add_routine_exercise(
        self, routine_id: int, exercise_id: int, duration_seconds: Optional[int] = None
    ) -> int:
        return self._post(
            f"/routines/{routine_id}/exercises",
            exercise_id=exercise_id,
            duration_seconds=duration_seconds,
        )["id"]

    def list_routines(self):
        return self._get("/routines")

    def start_presentation(self, routine_id: int) -> str:
        return self._post("/presentations", routine_id=routine_id)["session_id"]

    def presentation(self, session_id: str) -> dict:
        return self._get(f"/presentations/{session_id}")

    def play(self, session_id: str) -> dict:
        return self._post(f"/presentations/{session_id}/play")

    def next(self, session_id: str) -> dict:
        return self._post(f"/presentations/{session_id}/next")

    def previous(self, session_id: str) -> dict:
        return self._post(f"/presentations/{session_id}/previous")

    def add_time(self, session_id: str, seconds: Optional[int] = None) -> dict:
        return self._post(f"/presentations/{session_id}/add_time", seconds=seconds)

    def stop(self, session_id: str) -> dict:
        return self._post(f"/presentations/{session_id}/stop")

    def press_key(self, session_id: str, key: str) -> dict:
        return self._post(f"/presentations/{session_id}/keys", key=key)

    def end_presentation(self, session_id: str) -> None:
        resp = requests.delete(
            f"{self.base_url}/presentations/{session_id}", timeout=self.timeout
        )
        resp.raise_for_status()
