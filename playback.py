from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from timer_service import IntervalTimerSource, TimerSource, TimerSubscription
from tools import MathTools, TimeTools

logger = logging.getLogger(__name__)

EXERCISE_COMPLETE = "Exercise complete!"
SESSION_COMPLETE = "Session complete!"


class FullscreenError(Exception):
    """Raised when the display refuses to enter or leave fullscreen."""


class FullscreenGateway:
    """Bridge to the display's fullscreen API.

    Implementations ask the platform to change mode and raise
    :class:`FullscreenError` when the request is rejected. The actual mode is
    reported back through :meth:`WorkoutPlaybackController.on_fullscreen_change`.
    """

    def request_fullscreen(self) -> None:
        raise NotImplementedError()

    def exit_fullscreen(self) -> None:
        raise NotImplementedError()


class NotificationSink:
    """Receives short user-facing messages. Delivery is fire-and-forget."""

    def notify(self, message: str) -> None:
        raise NotImplementedError()


@dataclass(frozen=True)
class ExerciseStep:
    """One timed exercise of a routine as shown during playback."""

    id: object
    name: str
    description: Optional[str] = None
    duration_seconds: Optional[int] = None
    repetitions: Optional[int] = None
    sets: Optional[int] = None
    rest_seconds: Optional[int] = None
    music_title: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "ExerciseStep":
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in names})

    def as_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass
class PlaybackState:
    sequence: tuple = ()
    current_index: int = 0
    time_remaining_seconds: int = 0
    is_running: bool = False
    has_started: bool = False
    requested_fullscreen: bool = False
    confirmed_fullscreen: bool = False

    @property
    def is_fullscreen(self) -> bool:
        return self.confirmed_fullscreen


class WorkoutPlaybackController:
    """Drive a countdown through an ordered list of exercise steps.

    The controller owns the playback state and the single timer subscription
    feeding :meth:`tick`. Any change to ``is_running``, ``current_index`` or the
    loaded sequence cancels the current subscription before a new one is
    created, and callbacks from a cancelled subscription are ignored.

    Auto-flow: once the session has started, a step reached because the
    previous one timed out starts counting down immediately. Manual
    :meth:`next` and :meth:`previous` keep the current running state.
    """

    def __init__(
        self,
        timer_source: Optional[TimerSource] = None,
        fullscreen: Optional[FullscreenGateway] = None,
        notifier: Optional[NotificationSink] = None,
        *,
        default_duration: int = TimeTools.DEFAULT_DURATION,
        add_time_seconds: int = 30,
        tick_interval: float = 1.0,
        on_change: Optional[Callable[[dict], None]] = None,
    ) -> None:
        self.timer_source = timer_source or IntervalTimerSource()
        self.fullscreen = fullscreen
        self.notifier = notifier
        self.default_duration = default_duration
        self.add_time_seconds = add_time_seconds
        self.tick_interval = tick_interval
        self.on_change = on_change
        self._state = PlaybackState()
        self._subscription: Optional[TimerSubscription] = None
        self._lock = threading.RLock()

    # state accessors -------------------------------------------------

    @property
    def sequence(self) -> tuple:
        return self._state.sequence

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def time_remaining_seconds(self) -> int:
        return self._state.time_remaining_seconds

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def has_started(self) -> bool:
        return self._state.has_started

    @property
    def is_fullscreen(self) -> bool:
        return self._state.is_fullscreen

    @property
    def requested_fullscreen(self) -> bool:
        return self._state.requested_fullscreen

    @property
    def timer_active(self) -> bool:
        sub = self._subscription
        return sub is not None and sub.active

    @property
    def current_step(self) -> Optional[ExerciseStep]:
        with self._lock:
            if not self._state.sequence:
                return None
            return self._state.sequence[self._state.current_index]

    @property
    def progress_percent(self) -> int:
        with self._lock:
            total = len(self._state.sequence)
            if total == 0:
                return 0
            return MathTools.percent(self._state.current_index + 1, total)

    @property
    def step_progress_percent(self) -> int:
        """Elapsed share of the current step's nominal duration."""
        with self._lock:
            step = self.current_step
            if step is None:
                return 0
            duration = self.duration_of(step)
            elapsed = max(0, duration - self._state.time_remaining_seconds)
            return MathTools.percent(elapsed, duration)

    @property
    def is_complete(self) -> bool:
        with self._lock:
            total = len(self._state.sequence)
            return (
                total > 0
                and self._state.current_index == total - 1
                and self._state.time_remaining_seconds == 0
            )

    def upcoming(self, count: int = 3) -> list[ExerciseStep]:
        with self._lock:
            start = self._state.current_index + 1
            return list(self._state.sequence[start:start + count])

    def duration_of(self, step: ExerciseStep) -> int:
        return TimeTools.effective_duration(step.duration_seconds, self.default_duration)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "current_index": self._state.current_index,
                "sequence_length": len(self._state.sequence),
                "time_remaining_seconds": self._state.time_remaining_seconds,
                "is_running": self._state.is_running,
                "has_started": self._state.has_started,
                "is_fullscreen": self._state.is_fullscreen,
                "requested_fullscreen": self._state.requested_fullscreen,
                "progress_percent": self.progress_percent,
                "step_progress_percent": self.step_progress_percent,
                "is_complete": self.is_complete,
            }

    # operations ------------------------------------------------------

    def load_sequence(self, steps: Iterable[ExerciseStep]) -> None:
        with self._lock:
            self._cancel_timer()
            self._state.sequence = tuple(steps)
            self._reset_position()
            self._changed()

    def clear(self) -> None:
        self.load_sequence(())

    def play(self) -> None:
        with self._lock:
            if not self._state.sequence:
                return
            if not self._state.has_started:
                self._state.has_started = True
                self._state.is_running = True
            else:
                self._state.is_running = not self._state.is_running
            self._reschedule()
            self._changed()

    def tick(self) -> None:
        with self._lock:
            if not self._state.is_running or self._state.time_remaining_seconds <= 0:
                return
            self._state.time_remaining_seconds -= 1
            if self._state.time_remaining_seconds == 0:
                self._time_up()
            self._changed()

    def advance(self) -> bool:
        """Move to the next step as if its predecessor had timed out."""
        with self._lock:
            moved = self._auto_advance()
            if moved:
                self._changed()
            return moved

    def next(self) -> bool:
        with self._lock:
            if not self._move_to(self._state.current_index + 1):
                return False
            self._reschedule()
            self._changed()
            return True

    def previous(self) -> bool:
        with self._lock:
            if not self._move_to(self._state.current_index - 1):
                return False
            self._reschedule()
            self._changed()
            return True

    def add_time(self, delta_seconds: Optional[int] = None) -> None:
        with self._lock:
            if not self._state.sequence:
                return
            delta = self.add_time_seconds if delta_seconds is None else int(delta_seconds)
            if delta <= 0:
                raise ValueError("delta_seconds must be positive")
            self._state.time_remaining_seconds += delta
            self._ensure_timer()
            self._changed()

    def stop(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._reset_position()
            self._changed()

    def toggle_fullscreen(self) -> bool:
        """Ask the display to switch mode; the flag follows on confirmation."""
        with self._lock:
            target = not self._state.confirmed_fullscreen
        gateway = self.fullscreen
        if gateway is None:
            logger.error("Fullscreen error: no display attached")
            return False
        try:
            if target:
                gateway.request_fullscreen()
            else:
                gateway.exit_fullscreen()
        except FullscreenError as e:
            logger.error(f"Fullscreen error: {e}")
            return False
        with self._lock:
            self._state.requested_fullscreen = target
            self._changed()
        return True

    def exit_fullscreen(self) -> bool:
        if not self._state.confirmed_fullscreen:
            return False
        return self.toggle_fullscreen()

    def on_fullscreen_change(self, active: bool) -> None:
        with self._lock:
            self._state.confirmed_fullscreen = bool(active)
            self._state.requested_fullscreen = bool(active)
            self._changed()

    # internals -------------------------------------------------------

    def _reset_position(self) -> None:
        state = self._state
        state.current_index = 0
        state.is_running = False
        state.has_started = False
        state.time_remaining_seconds = (
            self.duration_of(state.sequence[0]) if state.sequence else 0
        )

    def _move_to(self, index: int) -> bool:
        state = self._state
        if not 0 <= index < len(state.sequence):
            return False
        state.current_index = index
        state.time_remaining_seconds = self.duration_of(state.sequence[index])
        return True

    def _auto_advance(self) -> bool:
        if not self._move_to(self._state.current_index + 1):
            return False
        if self._state.has_started:
            self._state.is_running = True
        self._reschedule()
        return True

    def _time_up(self) -> None:
        if self._auto_advance():
            self._notify(EXERCISE_COMPLETE)
        else:
            self._cancel_timer()
            self._notify(SESSION_COMPLETE)

    def _notify(self, message: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(message)
        except Exception:
            logger.exception("Notification failed")

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.snapshot())

    def _on_timer(self, subscription: TimerSubscription) -> None:
        with self._lock:
            if subscription is not self._subscription:
                logger.debug("Ignoring tick from a cancelled timer")
                return
            self.tick()

    def _cancel_timer(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _reschedule(self) -> None:
        self._cancel_timer()
        self._ensure_timer()

    def _ensure_timer(self) -> None:
        state = self._state
        if not state.is_running or state.time_remaining_seconds <= 0:
            self._cancel_timer()
            return
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.timer_source.schedule(
                self.tick_interval, self._on_timer
            )
