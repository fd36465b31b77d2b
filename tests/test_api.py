import os
import sys
import unittest
from fastapi.testclient import TestClient
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import StudioAPI


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_studio.db"
        self.yaml_path = "test_settings.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        with open(self.yaml_path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"timer_mode": "client"}, f)
        self.api = StudioAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        self.api.close()
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def _routine(self, durations) -> int:
        rid = self.client.post("/routines", params={"name": "Circuit"}).json()["id"]
        for i, duration in enumerate(durations):
            eid = self.client.post(
                "/exercises", params={"name": f"Move {i}", "category": "cardio"}
            ).json()["id"]
            params = {"exercise_id": eid}
            if duration is not None:
                params["duration_seconds"] = duration
            self.client.post(f"/routines/{rid}/exercises", params=params)
        return rid

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_exercise_catalogue(self) -> None:
        response = self.client.post(
            "/exercises",
            params={"name": "Plank", "category": "strength", "difficulty_level": "Beginner"},
        )
        self.assertEqual(response.json(), {"id": 1})
        self.client.post("/exercises", params={"name": "Lunge", "category": "strength"})
        self.client.post("/exercises", params={"name": "Skipping", "category": "cardio"})

        response = self.client.get("/exercises", params={"category": "strength"})
        self.assertEqual(
            response.json(),
            [
                {"id": 2, "name": "Lunge", "category": "strength", "difficulty_level": "Beginner"},
                {"id": 1, "name": "Plank", "category": "strength", "difficulty_level": "Beginner"},
            ],
        )

        response = self.client.get("/exercises/1")
        self.assertEqual(response.json()["name"], "Plank")

        response = self.client.post("/exercises", params={"name": "X", "category": "yoga"})
        self.assertEqual(response.status_code, 400)

        self.assertEqual(self.client.delete("/exercises/3").status_code, 200)
        self.assertEqual(self.client.delete("/exercises/3").status_code, 404)
        self.assertEqual(self.client.get("/exercises/3").status_code, 404)

    def test_routine_workflow(self) -> None:
        rid = self._routine([45, None])
        response = self.client.get(f"/routines/{rid}")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["total_duration"], 105)
        self.assertEqual(data["total_minutes"], 2)
        self.assertEqual([e["name"] for e in data["exercises"]], ["Move 0", "Move 1"])

        ids = [e["id"] for e in data["exercises"]]
        response = self.client.post(
            f"/routines/{rid}/exercise_order",
            params={"order": f"{ids[1]},{ids[0]}"},
        )
        self.assertEqual(response.status_code, 200)
        names = [e["name"] for e in self.client.get(f"/routines/{rid}/exercises").json()]
        self.assertEqual(names, ["Move 1", "Move 0"])

        response = self.client.post(
            f"/routines/{rid}/exercise_order", params={"order": "a,b"}
        )
        self.assertEqual(response.status_code, 400)

        self.assertEqual(
            self.client.delete(f"/routines/{rid}/exercises/{ids[1]}").status_code, 200
        )
        self.assertEqual(self.client.get(f"/routines/{rid}").json()["total_duration"], 45)

        self.assertEqual(self.client.delete("/exercises/1").status_code, 400)

        response = self.client.put(f"/routines/{rid}/name", params={"name": "Renamed"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/routines").json()[0]["name"], "Renamed")

        self.assertEqual(self.client.delete(f"/routines/{rid}").status_code, 200)
        self.assertEqual(self.client.get(f"/routines/{rid}").status_code, 404)
        self.assertEqual(self.client.get(f"/routines/{rid}/exercises").json(), [])

    def test_routine_exercise_scoped_to_routine(self) -> None:
        owner = self._routine([30])
        other = self.client.post("/routines", params={"name": "Other"}).json()["id"]
        reid = self.client.get(f"/routines/{owner}/exercises").json()[0]["id"]
        response = self.client.delete(f"/routines/{other}/exercises/{reid}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(len(self.client.get(f"/routines/{owner}/exercises").json()), 1)
        response = self.client.post("/routines/99/exercise_order", params={"order": "1"})
        self.assertEqual(response.status_code, 404)

    def test_presentation_flow(self) -> None:
        rid = self._routine([2, 3])
        response = self.client.post("/presentations", params={"routine_id": rid})
        self.assertEqual(response.status_code, 200)
        view = response.json()
        sid = view["session_id"]
        self.assertEqual(view["time_remaining_seconds"], 2)
        self.assertEqual(view["clock"], "0:02")
        self.assertEqual(view["counter"], "1 of 2")
        self.assertEqual(view["progress_percent"], 50)
        self.assertEqual(view["upcoming"][0]["name"], "Move 1")
        self.assertFalse(view["is_running"])

        self.assertEqual(self.client.get("/presentations").json()[0]["session_id"], sid)

        view = self.client.post(f"/presentations/{sid}/play").json()
        self.assertTrue(view["is_running"])
        self.assertTrue(view["has_started"])

        self.client.post(f"/presentations/{sid}/tick")
        view = self.client.post(f"/presentations/{sid}/tick").json()
        self.assertEqual(view["current_index"], 1)
        self.assertEqual(view["time_remaining_seconds"], 3)
        self.assertTrue(view["is_running"])
        self.assertEqual(view["counter"], "2 of 2")

        view = self.client.post(f"/presentations/{sid}/add_time").json()
        self.assertEqual(view["time_remaining_seconds"], 33)
        view = self.client.post(
            f"/presentations/{sid}/add_time", params={"seconds": 10}
        ).json()
        self.assertEqual(view["time_remaining_seconds"], 43)
        response = self.client.post(
            f"/presentations/{sid}/add_time", params={"seconds": -1}
        )
        self.assertEqual(response.status_code, 400)

        view = self.client.post(f"/presentations/{sid}/previous").json()
        self.assertEqual(view["current_index"], 0)
        self.assertEqual(view["time_remaining_seconds"], 2)

        view = self.client.post(f"/presentations/{sid}/keys", params={"key": " "}).json()
        self.assertEqual(view["action"], "play")
        self.assertFalse(view["is_running"])
        view = self.client.post(
            f"/presentations/{sid}/keys", params={"key": "ArrowRight"}
        ).json()
        self.assertEqual(view["action"], "next")
        self.assertEqual(view["current_index"], 1)
        view = self.client.post(f"/presentations/{sid}/keys", params={"key": "q"}).json()
        self.assertIsNone(view["action"])

        view = self.client.post(f"/presentations/{sid}/stop").json()
        self.assertEqual(view["current_index"], 0)
        self.assertFalse(view["has_started"])
        self.assertEqual(view["time_remaining_seconds"], 2)

        messages = [n["message"] for n in self.client.get("/notifications").json()]
        self.assertEqual(messages, ["Exercise complete!"])
        self.assertEqual(self.client.get("/notifications/unread_count").json(), {"count": 1})
        self.client.put("/notifications/1/read")
        self.assertEqual(self.client.get("/notifications/unread_count").json(), {"count": 0})

        response = self.client.delete(f"/presentations/{sid}")
        self.assertEqual(response.json(), {"status": "ended"})
        self.assertEqual(self.client.get(f"/presentations/{sid}").status_code, 404)
        self.assertEqual(self.client.post(f"/presentations/{sid}/play").status_code, 404)

    def test_unknown_routine(self) -> None:
        response = self.client.post("/presentations", params={"routine_id": 99})
        self.assertEqual(response.status_code, 404)

    def test_empty_routine_presentation(self) -> None:
        rid = self._routine([])
        view = self.client.post("/presentations", params={"routine_id": rid}).json()
        self.assertEqual(view["counter"], "0 of 0")
        self.assertEqual(view["clock"], "0:00")
        self.assertIsNone(view["current"])
        view = self.client.post(f"/presentations/{view['session_id']}/play").json()
        self.assertFalse(view["is_running"])

    def test_fullscreen_without_display(self) -> None:
        rid = self._routine([10])
        sid = self.client.post("/presentations", params={"routine_id": rid}).json()[
            "session_id"
        ]
        data = self.client.post(f"/presentations/{sid}/fullscreen").json()
        self.assertFalse(data["accepted"])
        self.assertFalse(data["is_fullscreen"])
        self.assertFalse(data["requested_fullscreen"])

    def test_fullscreen_with_display(self) -> None:
        rid = self._routine([10])
        sid = self.client.post("/presentations", params={"routine_id": rid}).json()[
            "session_id"
        ]
        with self.client.websocket_connect("/ws/updates") as ws:
            data = self.client.post(f"/presentations/{sid}/fullscreen").json()
            self.assertTrue(data["accepted"])
            self.assertTrue(data["requested_fullscreen"])
            self.assertFalse(data["is_fullscreen"])
            event = ws.receive_json()
            self.assertEqual(event["type"], "fullscreen_request")
            self.assertEqual(event["session_id"], sid)
            self.assertEqual(event["action"], "enter")

            data = self.client.post(
                f"/presentations/{sid}/fullscreen_state", params={"active": True}
            ).json()
            self.assertTrue(data["is_fullscreen"])

            data = self.client.post(
                f"/presentations/{sid}/keys", params={"key": "Escape"}
            ).json()
            self.assertEqual(data["action"], "exit_fullscreen")
            self.assertTrue(data["is_fullscreen"])
            self.client.post(
                f"/presentations/{sid}/fullscreen_state", params={"active": False}
            )
        self.assertFalse(self.client.get(f"/presentations/{sid}").json()["is_fullscreen"])

    def test_view_broadcast(self) -> None:
        rid = self._routine([10])
        sid = self.client.post("/presentations", params={"routine_id": rid}).json()[
            "session_id"
        ]
        with self.client.websocket_connect("/ws/updates") as ws:
            self.client.post(f"/presentations/{sid}/play")
            event = ws.receive_json()
            self.assertEqual(event["type"], "presentation")
            self.assertEqual(event["view"]["session_id"], sid)
            self.assertTrue(event["view"]["is_running"])

    def test_server_mode_rejects_display_ticks(self) -> None:
        self.client.post("/settings/general", params={"timer_mode": "server"})
        rid = self._routine([10])
        sid = self.client.post("/presentations", params={"routine_id": rid}).json()[
            "session_id"
        ]
        response = self.client.post(f"/presentations/{sid}/tick")
        self.assertEqual(response.status_code, 400)

    def test_general_settings(self) -> None:
        response = self.client.post(
            "/settings/general",
            params={"add_time_seconds": 15, "upcoming_count": 2, "theme": "light"},
        )
        self.assertEqual(response.status_code, 200)
        data = self.client.get("/settings/general").json()
        self.assertEqual(data["add_time_seconds"], 15)
        self.assertEqual(data["upcoming_count"], 2)
        self.assertEqual(data["theme"], "light")
        with open(self.yaml_path, "r", encoding="utf-8") as f:
            self.assertEqual(yaml.safe_load(f)["theme"], "light")

        response = self.client.post("/settings/general", params={"timer_mode": "gpu"})
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/settings/general", params={"default_duration_seconds": 0}
        )
        self.assertEqual(response.status_code, 400)

        rid = self._routine([10, 10, 10, 10])
        view = self.client.post("/presentations", params={"routine_id": rid}).json()
        self.assertEqual(len(view["upcoming"]), 2)
        view = self.client.post(
            f"/presentations/{view['session_id']}/add_time"
        ).json()
        self.assertEqual(view["time_remaining_seconds"], 25)

    def test_disabled_notifications(self) -> None:
        self.client.post("/settings/general", params={"notifications_enabled": False})
        rid = self._routine([1, 1])
        sid = self.client.post("/presentations", params={"routine_id": rid}).json()[
            "session_id"
        ]
        self.client.post(f"/presentations/{sid}/play")
        self.client.post(f"/presentations/{sid}/tick")
        self.assertEqual(self.client.get("/notifications").json(), [])


if __name__ == "__main__":
    unittest.main()
