import asyncio
import logging
from typing import Optional

from fastapi import (
    FastAPI,
    HTTPException,
    APIRouter,
    WebSocket,
)

from db import (
    ExerciseRepository,
    RoutineRepository,
    RoutineExerciseRepository,
    NotificationRepository,
    SettingsRepository,
)
from notification_service import build_notifier
from presentation_service import PresentationService
from tools import TimeTools

logger = logging.getLogger(__name__)


class StudioAPI:
    """Provides REST endpoints for routines and live presentations."""

    def __init__(
        self,
        db_path: str = "studio.db",
        yaml_path: str = "settings.yaml",
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.exercises = ExerciseRepository(db_path)
        self.routines = RoutineRepository(db_path)
        self.routine_exercises = RoutineExerciseRepository(
            db_path, self.routines, self.exercises
        )
        self.notifications = NotificationRepository(db_path)
        self.watchers: list[WebSocket] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.presentations = PresentationService(
            self.routines,
            self.routine_exercises,
            self.settings,
            notifier=build_notifier(self.notifications, self.settings),
            publish=self._publish,
        )
        self.app = FastAPI(
            title="Studio API",
            description="REST API for routines and live workout presentations",
        )
        self._setup_routes()

    def close(self) -> None:
        self.presentations.shutdown()

    async def _broadcast(self, event: dict) -> None:
        for ws in list(self.watchers):
            try:
                await ws.send_json(event)
            except Exception:
                try:
                    await ws.close()
                except Exception:
                    pass
                if ws in self.watchers:
                    self.watchers.remove(ws)

    def _publish(self, event: dict) -> bool:
        """Send ``event`` to connected displays; return whether any listen."""
        loop = self._loop
        if not self.watchers or loop is None or loop.is_closed():
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.create_task(self._broadcast(event))
        else:
            asyncio.run_coroutine_threadsafe(self._broadcast(event), loop)
        return True

    def _routine_detail(self, routine_id: int) -> dict:
        rid, name, description, total = self.routines.fetch_detail(routine_id)
        return {
            "id": rid,
            "name": name,
            "description": description,
            "total_duration": total,
            "total_minutes": TimeTools.minutes(total),
            "exercises": self.routine_exercises.fetch_for_routine(rid),
        }

    def _view(self, session_id: str) -> dict:
        try:
            return self.presentations.view(session_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))

    def _controller(self, session_id: str):
        try:
            return self.presentations.controller(session_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))

    def _setup_routes(self) -> None:
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        routines_router = APIRouter(prefix="/routines", tags=["Routines"])
        presentations_router = APIRouter(
            prefix="/presentations", tags=["Presentations"]
        )

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.routines.fetch_all_routines()
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.websocket("/ws/updates")
        async def updates_socket(ws: WebSocket):
            self._loop = asyncio.get_running_loop()
            self.watchers.append(ws)
            await ws.accept()
            try:
                while True:
                    await ws.receive_text()
            except Exception:
                pass
            finally:
                if ws in self.watchers:
                    self.watchers.remove(ws)

        @exercises_router.get("")
        def list_exercises(category: str = None, difficulty_level: str = None):
            rows = self.exercises.fetch_all_exercises(category, difficulty_level)
            return [
                {"id": eid, "name": name, "category": cat, "difficulty_level": lvl}
                for eid, name, cat, lvl in rows
            ]

        @exercises_router.post("")
        def add_exercise(
            name: str,
            category: str = "strength",
            difficulty_level: str = "Beginner",
            description: str = None,
            equipment_needed: str = None,
            primary_muscles: str = None,
            video_url: str = None,
        ):
            try:
                eid = self.exercises.add(
                    name,
                    category,
                    difficulty_level,
                    description,
                    equipment_needed,
                    primary_muscles,
                    video_url,
                )
                return {"id": eid}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @exercises_router.get("/{exercise_id}")
        def get_exercise(exercise_id: int):
            try:
                return self.exercises.fetch_detail(exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: int):
            try:
                self.exercises.fetch_detail(exercise_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                self.exercises.delete(exercise_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @routines_router.get("")
        def list_routines():
            return [
                {
                    "id": rid,
                    "name": name,
                    "description": description,
                    "total_duration": total,
                }
                for rid, name, description, total in self.routines.fetch_all_routines()
            ]

        @routines_router.post("")
        def create_routine(name: str, description: str = None):
            try:
                return {"id": self.routines.create(name, description)}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @routines_router.get("/{routine_id}")
        def get_routine(routine_id: int):
            try:
                return self._routine_detail(routine_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @routines_router.put("/{routine_id}/name")
        def rename_routine(routine_id: int, name: str):
            try:
                self.routines.set_name(routine_id, name)
                return {"status": "updated"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @routines_router.delete("/{routine_id}")
        def delete_routine(routine_id: int):
            try:
                self.routines.delete(routine_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @routines_router.get("/{routine_id}/exercises")
        def list_routine_exercises(routine_id: int):
            return self.routine_exercises.fetch_for_routine(routine_id)

        @routines_router.post("/{routine_id}/exercises")
        def add_routine_exercise(
            routine_id: int,
            exercise_id: int,
            duration_seconds: int = None,
            repetitions: int = None,
            sets: int = None,
            rest_seconds: int = None,
            music_title: str = None,
            notes: str = None,
        ):
            try:
                reid = self.routine_exercises.add(
                    routine_id,
                    exercise_id,
                    duration_seconds,
                    repetitions,
                    sets,
                    rest_seconds,
                    music_title,
                    notes,
                )
                return {"id": reid}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @routines_router.delete("/{routine_id}/exercises/{routine_exercise_id}")
        def remove_routine_exercise(routine_id: int, routine_exercise_id: int):
            try:
                self.routine_exercises.remove(routine_id, routine_exercise_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @routines_router.post(
            "/{routine_id}/exercise_order",
            summary="Reorder routine exercises",
            description="Update exercise order using comma-separated ids",
        )
        def reorder_routine_exercises(routine_id: int, order: str):
            try:
                ids = [int(i) for i in order.split(",") if i]
            except ValueError:
                raise HTTPException(
                    status_code=400,
                    detail="invalid order parameter; expected comma-separated ids",
                )
            try:
                self.routines.fetch_detail(routine_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                self.routine_exercises.reorder(routine_id, ids)
                return {"status": "updated"}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @presentations_router.post("")
        def start_presentation(routine_id: int):
            try:
                sid = self.presentations.start(routine_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return self._view(sid)

        @presentations_router.get("")
        def list_presentations():
            return self.presentations.sessions()

        @presentations_router.get("/{session_id}")
        def get_presentation(session_id: str):
            return self._view(session_id)

        @presentations_router.delete("/{session_id}")
        def end_presentation(session_id: str):
            try:
                self.presentations.end(session_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "ended"}

        @presentations_router.post("/{session_id}/play")
        def play(session_id: str):
            self._controller(session_id).play()
            return self._view(session_id)

        @presentations_router.post("/{session_id}/next")
        def next_exercise(session_id: str):
            self._controller(session_id).next()
            return self._view(session_id)

        @presentations_router.post("/{session_id}/previous")
        def previous_exercise(session_id: str):
            self._controller(session_id).previous()
            return self._view(session_id)

        @presentations_router.post("/{session_id}/stop")
        def stop(session_id: str):
            self._controller(session_id).stop()
            return self._view(session_id)

        @presentations_router.post("/{session_id}/add_time")
        def add_time(session_id: str, seconds: int = None):
            controller = self._controller(session_id)
            try:
                controller.add_time(seconds)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self._view(session_id)

        @presentations_router.post("/{session_id}/reload")
        def reload(session_id: str):
            try:
                self.presentations.reload(session_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return self._view(session_id)

        @presentations_router.post("/{session_id}/fullscreen")
        def toggle_fullscreen(session_id: str):
            accepted = self._controller(session_id).toggle_fullscreen()
            return {"accepted": accepted, **self._view(session_id)}

        @presentations_router.post("/{session_id}/fullscreen_state")
        def fullscreen_state(session_id: str, active: bool):
            self._controller(session_id).on_fullscreen_change(active)
            return self._view(session_id)

        @presentations_router.post("/{session_id}/tick")
        def tick(session_id: str):
            try:
                self.presentations.tick(session_id)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self._view(session_id)

        @presentations_router.post("/{session_id}/keys")
        def press_key(session_id: str, key: str):
            try:
                action = self.presentations.handle_key(session_id, key)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"action": action, **self._view(session_id)}

        @self.app.get("/notifications")
        def get_notifications(unread_only: bool = False):
            return self.notifications.fetch_all_notifications(unread_only)

        @self.app.put("/notifications/{nid}/read")
        def mark_notification_read(nid: int):
            self.notifications.mark_read(nid)
            return {"status": "read"}

        @self.app.get("/notifications/unread_count")
        def unread_count():
            return {"count": self.notifications.unread_count()}

        @self.app.get("/settings/general")
        def get_general_settings():
            return self.settings.all_settings()

        @self.app.post("/settings/general")
        def update_general_settings(
            default_duration_seconds: int = None,
            add_time_seconds: int = None,
            tick_interval_seconds: float = None,
            upcoming_count: int = None,
            timer_mode: str = None,
            notifications_enabled: bool = None,
            theme: str = None,
        ):
            try:
                if default_duration_seconds is not None:
                    self.settings.set_int(
                        "default_duration_seconds", default_duration_seconds
                    )
                if add_time_seconds is not None:
                    self.settings.set_int("add_time_seconds", add_time_seconds)
                if tick_interval_seconds is not None:
                    self.settings.set_float(
                        "tick_interval_seconds", tick_interval_seconds
                    )
                if upcoming_count is not None:
                    self.settings.set_int("upcoming_count", upcoming_count)
                if timer_mode is not None:
                    self.settings.set_text("timer_mode", timer_mode)
                if notifications_enabled is not None:
                    self.settings.set_bool(
                        "notifications_enabled", notifications_enabled
                    )
                if theme is not None:
                    self.settings.set_text("theme", theme)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        self.app.include_router(exercises_router)
        self.app.include_router(routines_router)
        self.app.include_router(presentations_router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    api = StudioAPI()
    uvicorn.run(api.app)
