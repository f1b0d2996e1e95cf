from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from .engine import TimerObserver, TimerPhase
from .parser import ResolvedDeadline


def format_remaining(remaining: timedelta) -> str:
    """'1h 02m 03s' / '2m 03s' / '3s' for a countdown display."""
    total = max(0, int(round(remaining.total_seconds())))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def should_announce(remaining_seconds: int, verbose: bool) -> bool:
    if remaining_seconds <= 0:
        return False
    return verbose or remaining_seconds % 60 == 0 or remaining_seconds <= 10


class ConsoleDisplay(TimerObserver):
    def __init__(
        self,
        message: str = "Timer finished",
        verbose: bool = False,
        visible: bool = True,
        write: Callable[[str], None] = print,
    ):
        self.message = message
        self.verbose = verbose
        self.visible = visible
        self.write = write
        self._target: Optional[str] = None
        self._last_announced: Optional[int] = None

    def on_deadline_changed(self, deadline: Optional[ResolvedDeadline]) -> None:
        self._last_announced = None
        if deadline is None:
            self._target = None
            return
        self._target = deadline.describe()
        self.write(f"Alarm set for {self._target}")

    def on_tick(self, remaining: timedelta) -> None:
        seconds = int(round(remaining.total_seconds()))
        if seconds == self._last_announced or not should_announce(seconds, self.verbose):
            return
        self._last_announced = seconds
        self.write(f"{format_remaining(remaining)} left until {self._target}")

    def on_phase_changed(self, phase: TimerPhase) -> None:
        if phase == TimerPhase.ALARMING:
            self.write(f"*** {self.message} ***")
        elif phase == TimerPhase.IDLE and self._target is None:
            self.write("Timer stopped")
