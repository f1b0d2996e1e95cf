from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from .parser import InvalidSpecification, RelativeSeconds, ResolvedDeadline, resolve
from .sounds import SILENT

logger = logging.getLogger(__name__)


class TimerPhase(Enum):
    IDLE = "idle"
    RUNNING = "running"
    ALARMING = "alarming"


@dataclass
class TimerState:
    phase: TimerPhase
    deadline: Optional[ResolvedDeadline]
    remaining: timedelta


@dataclass
class AlarmSettings:
    title: str = "It's time!"
    message: str = "Timer finished"
    sound_id: int = 0


class TimerObserver:
    """Receives engine transitions synchronously. Override what you need.

    ``visible`` only tunes how often the engine wakes up to refresh the
    display; the alarm fires on time whether or not anything is watching.
    """

    visible = False

    def on_deadline_changed(self, deadline: Optional[ResolvedDeadline]) -> None:
        pass

    def on_phase_changed(self, phase: TimerPhase) -> None:
        pass

    def on_tick(self, remaining: timedelta) -> None:
        pass


class CountdownEngine:
    def __init__(
        self,
        notifier,
        sound_player,
        loop,
        clock: Optional[Callable[[], datetime]] = None,
        alarm: Optional[AlarmSettings] = None,
        hidden_tick_interval: float = 30.0,
    ):
        self.notifier = notifier
        self.sound_player = sound_player
        self.loop = loop
        self.clock = clock or datetime.now
        self.alarm = alarm or AlarmSettings()
        self.hidden_tick_interval = max(1.0, hidden_tick_interval)

        self._phase = TimerPhase.IDLE
        self._deadline: Optional[ResolvedDeadline] = None
        self._duration: Optional[timedelta] = None
        self._tick_handle = None
        self._generation = 0
        self._observers: List[TimerObserver] = []

    # -- observers -------------------------------------------------------

    def add_observer(self, observer: TimerObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: TimerObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def visible(self) -> bool:
        return any(getattr(o, "visible", False) for o in self._observers)

    # -- state -----------------------------------------------------------

    @property
    def phase(self) -> TimerPhase:
        return self._phase

    @property
    def deadline(self) -> Optional[ResolvedDeadline]:
        return self._deadline

    @property
    def duration(self) -> Optional[timedelta]:
        return self._duration

    @property
    def remaining(self) -> timedelta:
        if self._deadline is None:
            return self._duration if self._phase == TimerPhase.IDLE and self._duration else timedelta(0)
        return max(self._deadline.remaining(self.clock()), timedelta(0))

    @property
    def state(self) -> TimerState:
        return TimerState(phase=self._phase, deadline=self._deadline, remaining=self.remaining)

    def set_duration(self, seconds: float) -> None:
        RelativeSeconds(seconds).validate()
        self._duration = timedelta(seconds=seconds)

    # -- operations ------------------------------------------------------

    def arm(self, deadline: ResolvedDeadline) -> None:
        now = self.clock()
        remaining = deadline.remaining(now)
        if remaining <= timedelta(0):
            raise InvalidSpecification(
                f"Deadline {deadline.at.isoformat()} is not in the future (now {now.isoformat()})"
            )
        self._cancel_schedule()
        self._silence()
        self._generation += 1
        self._deadline = deadline
        self._duration = remaining
        logger.info("Timer armed for %s (%s, %.0fs left)", deadline.at.isoformat(), deadline.spec, remaining.total_seconds())
        self._notify_deadline(deadline)
        self._set_phase(TimerPhase.RUNNING)
        self._schedule_next(remaining.total_seconds())

    def tick(self) -> None:
        if self._phase != TimerPhase.RUNNING or self._deadline is None:
            return
        self._cancel_schedule()
        remaining = self._deadline.remaining(self.clock())
        self._notify_tick(max(remaining, timedelta(0)))
        if remaining > timedelta(0):
            self._schedule_next(remaining.total_seconds())
            return

        generation = self._generation
        self._set_phase(TimerPhase.ALARMING)
        if self._generation == generation and self._phase == TimerPhase.ALARMING:
            self._fire_alarm()

    def cancel(self) -> None:
        if self._phase == TimerPhase.IDLE:
            return
        self._cancel_schedule()
        self._silence()
        self._generation += 1
        logger.info("Timer cancelled (was %s)", self._phase.value)
        self._deadline = None
        self._notify_deadline(None)
        self._set_phase(TimerPhase.IDLE)

    def start(self) -> None:
        if self._phase == TimerPhase.RUNNING:
            logger.debug("start() ignored, timer already running")
            return
        if not self._duration:
            raise InvalidSpecification("No timer length configured: set a time (HH:MM) or a duration first")
        self.arm(resolve(RelativeSeconds(self._duration.total_seconds()), self.clock()))

    def toggle(self) -> None:
        if self._phase == TimerPhase.IDLE:
            self.start()
        else:
            self.cancel()

    # -- internals -------------------------------------------------------

    def _next_delay(self, remaining_seconds: float) -> float:
        if self.visible:
            delay = remaining_seconds % 1.0
            if delay < 0.001:
                delay = 1.0
        else:
            delay = self.hidden_tick_interval
        return max(0.0, min(delay, remaining_seconds))

    def _schedule_next(self, remaining_seconds: float) -> None:
        self._tick_handle = self.loop.call_later(self._next_delay(remaining_seconds), self.tick)

    def _cancel_schedule(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _silence(self) -> None:
        if self._phase == TimerPhase.ALARMING:
            try:
                self.sound_player.stop()
            except Exception:  # pragma: no cover - callback safety
                logger.error("Failed to stop alarm sound", exc_info=True)

    def _set_phase(self, phase: TimerPhase) -> None:
        if self._phase == phase:
            return
        logger.debug("Timer phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase
        self._notify_phase(phase)

    def _notify_deadline(self, deadline: Optional[ResolvedDeadline]) -> None:
        for observer in list(self._observers):
            _call_safely(observer.on_deadline_changed, deadline)

    def _notify_phase(self, phase: TimerPhase) -> None:
        for observer in list(self._observers):
            _call_safely(observer.on_phase_changed, phase)

    def _notify_tick(self, remaining: timedelta) -> None:
        for observer in list(self._observers):
            _call_safely(observer.on_tick, remaining)

    def _fire_alarm(self) -> None:
        settings = self.alarm
        logger.info("Timer finished at %s (label=%s)", self.clock().isoformat(), settings.message)
        try:
            self.notifier.deliver(settings.title, settings.message, sound_enabled=settings.sound_id != SILENT)
        except Exception:
            logger.error("Notification delivery failed", exc_info=True)
        try:
            self.sound_player.play(settings.sound_id)
        except Exception:
            logger.error("Alarm sound playback failed", exc_info=True)


def _call_safely(callback: Callable, *args) -> None:
    try:
        callback(*args)
    except Exception:  # pragma: no cover - callback safety
        logger.error("Timer observer callback %s failed", getattr(callback, "__qualname__", callback), exc_info=True)
