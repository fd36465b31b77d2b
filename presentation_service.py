from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from db import RoutineRepository, RoutineExerciseRepository, SettingsRepository
from playback import (
    ExerciseStep,
    FullscreenError,
    FullscreenGateway,
    NotificationSink,
    WorkoutPlaybackController,
)
from timer_service import IntervalTimerSource, ManualTimerSource, TimerSource
from tools import TimeTools

logger = logging.getLogger(__name__)

Publisher = Callable[[dict], bool]


class RemoteDisplayFullscreenGateway(FullscreenGateway):
    """Forward fullscreen requests to the browser showing the presentation.

    ``publish`` delivers an event to connected displays and returns whether
    any display received it.
    """

    def __init__(self, session_id: str, publish: Optional[Publisher]) -> None:
        self.session_id = session_id
        self.publish = publish

    def _send(self, action: str) -> None:
        event = {
            "type": "fullscreen_request",
            "session_id": self.session_id,
            "action": action,
        }
        if self.publish is None or not self.publish(event):
            raise FullscreenError("no display connected")

    def request_fullscreen(self) -> None:
        self._send("enter")

    def exit_fullscreen(self) -> None:
        self._send("exit")


@dataclass
class PresentationSession:
    id: str
    routine_id: int
    routine_name: str
    routine_description: Optional[str]
    controller: WorkoutPlaybackController
    timer_source: TimerSource
    upcoming_count: int = 3


class PresentationService:
    """Runs one playback controller per presentation view."""

    KEY_BINDINGS = {
        " ": "play",
        "Space": "play",
        "Spacebar": "play",
        "ArrowRight": "next",
        "ArrowLeft": "previous",
        "Escape": "exit_fullscreen",
    }

    def __init__(
        self,
        routine_repo: RoutineRepository,
        routine_exercise_repo: RoutineExerciseRepository,
        settings_repo: SettingsRepository,
        notifier: NotificationSink | None = None,
        publish: Publisher | None = None,
    ) -> None:
        self.routines = routine_repo
        self.routine_exercises = routine_exercise_repo
        self.settings = settings_repo
        self.notifier = notifier
        self.publish = publish
        self._sessions: dict[str, PresentationSession] = {}
        self._lock = threading.Lock()

    def _timer_source(self) -> TimerSource:
        if self.settings.get_text("timer_mode", "server") == "client":
            return ManualTimerSource()
        return IntervalTimerSource()

    def load_steps(self, routine_id: int) -> list[ExerciseStep]:
        """Return the routine's exercises as playback steps."""
        rows = self.routine_exercises.fetch_for_routine(routine_id)
        return [ExerciseStep.from_row(r) for r in rows]

    def start(self, routine_id: int) -> str:
        _rid, name, description, _total = self.routines.fetch_detail(routine_id)
        sid = uuid.uuid4().hex
        source = self._timer_source()
        controller = WorkoutPlaybackController(
            source,
            RemoteDisplayFullscreenGateway(sid, self.publish),
            self.notifier,
            default_duration=self.settings.get_int(
                "default_duration_seconds", TimeTools.DEFAULT_DURATION
            ),
            add_time_seconds=self.settings.get_int("add_time_seconds", 30),
            tick_interval=self.settings.get_float("tick_interval_seconds", 1.0),
        )
        controller.load_sequence(self.load_steps(routine_id))
        upcoming_count = self.settings.get_int("upcoming_count", 3)
        controller.on_change = lambda _snapshot: self._publish_view(sid)
        with self._lock:
            self._sessions[sid] = PresentationSession(
                sid, routine_id, name, description, controller, source, upcoming_count
            )
        logger.info(f"Started presentation {sid} for routine {routine_id}")
        return sid

    def get(self, session_id: str) -> PresentationSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise ValueError("presentation not found")
        return session

    def controller(self, session_id: str) -> WorkoutPlaybackController:
        return self.get(session_id).controller

    def sessions(self) -> list[dict]:
        with self._lock:
            items = list(self._sessions.values())
        return [
            {
                "session_id": s.id,
                "routine_id": s.routine_id,
                "routine_name": s.routine_name,
            }
            for s in items
        ]

    def reload(self, session_id: str) -> None:
        """Reload the routine's exercises, restarting playback."""
        session = self.get(session_id)
        session.controller.load_sequence(self.load_steps(session.routine_id))

    def end(self, session_id: str) -> None:
        session = self.get(session_id)
        session.controller.on_change = None
        session.controller.stop()
        with self._lock:
            self._sessions.pop(session_id, None)
        logger.info(f"Ended presentation {session_id}")

    def shutdown(self) -> None:
        with self._lock:
            ids = list(self._sessions)
        for sid in ids:
            self.end(sid)

    def handle_key(self, session_id: str, key: str) -> Optional[str]:
        """Apply the operation bound to ``key``; return its name or ``None``."""
        controller = self.controller(session_id)
        action = self.KEY_BINDINGS.get(key)
        if action is None or not controller.sequence:
            return None
        getattr(controller, action)()
        return action

    def tick(self, session_id: str) -> int:
        """Deliver one elapsed second reported by the display."""
        session = self.get(session_id)
        if not isinstance(session.timer_source, ManualTimerSource):
            raise ValueError("presentation is driven by the server timer")
        return session.timer_source.fire()

    def view(self, session_id: str) -> dict:
        session = self.get(session_id)
        controller = session.controller
        state = controller.snapshot()
        total = state["sequence_length"]
        step = controller.current_step
        upcoming = controller.upcoming(session.upcoming_count)
        return {
            "session_id": session.id,
            "routine_id": session.routine_id,
            "routine_name": session.routine_name,
            "routine_description": session.routine_description,
            **state,
            "clock": TimeTools.format_clock(state["time_remaining_seconds"]),
            "counter": f"{state['current_index'] + 1 if total else 0} of {total}",
            "current": step.as_dict() if step else None,
            "current_duration": controller.duration_of(step) if step else 0,
            "upcoming": [s.as_dict() for s in upcoming],
        }

    def _publish_view(self, session_id: str) -> None:
        if self.publish is None:
            return
        try:
            view = self.view(session_id)
        except ValueError:
            return
        self.publish({"type": "presentation", "view": view})
