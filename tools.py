import math
from typing import Iterable, Optional


class MathTools:
    """Provides the small numeric helpers used by the presentation views."""

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves rounded up."""
        return int(math.floor(value + 0.5))

    @staticmethod
    def percent(part: float, whole: float) -> int:
        """Return ``part`` as a whole-number percentage of ``whole``."""
        if whole <= 0:
            return 0
        return MathTools.round_half_up(part / whole * 100)


class TimeTools:
    """Helpers for countdown display and routine durations."""

    DEFAULT_DURATION: int = 60

    @staticmethod
    def effective_duration(
        duration_seconds: Optional[int], default: int = DEFAULT_DURATION
    ) -> int:
        """Return ``duration_seconds`` or ``default`` when unset or non-positive."""
        if duration_seconds is None:
            return default
        try:
            value = int(duration_seconds)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    @staticmethod
    def format_clock(seconds: int) -> str:
        """Format ``seconds`` as ``m:ss``."""
        seconds = max(0, int(seconds))
        minutes, rest = divmod(seconds, 60)
        return f"{minutes}:{rest:02d}"

    @staticmethod
    def total_duration(
        durations: Iterable[Optional[int]], default: int = DEFAULT_DURATION
    ) -> int:
        """Sum step durations, counting unset ones as ``default``."""
        return sum(TimeTools.effective_duration(d, default) for d in durations)

    @staticmethod
    def minutes(seconds: int) -> int:
        return MathTools.round_half_up(seconds / 60)
