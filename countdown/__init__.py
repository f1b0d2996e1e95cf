"""Countdown timer with cross-process handoff."""

from .engine import AlarmSettings, CountdownEngine, TimerObserver, TimerPhase, TimerState
from .handoff import HandoffError, LauncherHandoffClient, ProcessLaunchFailed
from .parser import (
    AbsoluteTimeOfDay,
    InvalidSpecification,
    RelativeSeconds,
    ResolvedDeadline,
    TimeSpecification,
    parse_time_of_day,
    resolve,
)
from .poller import HandoffPoller
from .storage import HandoffStore, KeyValueStore, PendingCommand
