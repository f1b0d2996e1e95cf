from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Union

TIME_OF_DAY_RE = re.compile(r"^(\d{1,2}):(\d{1,2})$")

TIME_FORMAT_HINT = "expected HH:MM in 24-hour format, e.g. 07:30 or 23:05 (hours 00-23, minutes 00-59)"


class InvalidSpecification(ValueError):
    """Raised for malformed or already-past time input."""


@dataclass(frozen=True)
class AbsoluteTimeOfDay:
    hour: int
    minute: int

    def validate(self) -> None:
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise InvalidSpecification(f"Invalid time {self.hour}:{self.minute:02d}: {TIME_FORMAT_HINT}")

    def as_text(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class RelativeSeconds:
    seconds: float

    def validate(self) -> None:
        if not self.seconds > 0 or not math.isfinite(self.seconds):
            raise InvalidSpecification(
                f"Invalid duration {self.seconds!r}: the timer length must be a positive number of seconds"
            )

    def as_text(self) -> str:
        return f"{self.seconds:g}s"


TimeSpecification = Union[AbsoluteTimeOfDay, RelativeSeconds]


@dataclass(frozen=True)
class ResolvedDeadline:
    at: datetime
    spec: TimeSpecification

    def remaining(self, now: datetime) -> timedelta:
        # Via timestamps: naive values are local time and aware values in one
        # zone would otherwise subtract as wall clock across a DST change.
        return timedelta(seconds=self.at.timestamp() - now.timestamp())

    def describe(self) -> str:
        return self.at.strftime("%H:%M")


def parse_time_of_day(text: str) -> AbsoluteTimeOfDay:
    """Parse a literal "HH:MM" string into an AbsoluteTimeOfDay."""

    match = TIME_OF_DAY_RE.match((text or "").strip())
    if not match:
        raise InvalidSpecification(f"Invalid time {text!r}: {TIME_FORMAT_HINT}")
    spec = AbsoluteTimeOfDay(hour=int(match.group(1)), minute=int(match.group(2)))
    try:
        spec.validate()
    except InvalidSpecification:
        raise InvalidSpecification(f"Invalid time {text!r}: {TIME_FORMAT_HINT}") from None
    return spec


def parse_seconds(value: Union[str, float, int]) -> RelativeSeconds:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise InvalidSpecification(
            f"Invalid duration {value!r}: expected a positive number of seconds, e.g. 90"
        ) from None
    spec = RelativeSeconds(seconds)
    spec.validate()
    return spec


def parse_minutes(value: Union[str, int]) -> RelativeSeconds:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise InvalidSpecification(
            f"Invalid duration {value!r}: expected a positive whole number of minutes, e.g. 25"
        ) from None
    if minutes <= 0:
        raise InvalidSpecification(f"Invalid duration {minutes}: the number of minutes must be greater than 0")
    return RelativeSeconds(float(minutes * 60))


def validate_spec(spec: TimeSpecification) -> None:
    if not isinstance(spec, (AbsoluteTimeOfDay, RelativeSeconds)):
        raise InvalidSpecification(f"Unsupported time specification: {spec!r}")
    spec.validate()


def resolve(spec: TimeSpecification, now: datetime) -> ResolvedDeadline:
    """Turn a time specification into an absolute deadline strictly after ``now``.

    A time of day that already passed today rolls over to the same wall-clock
    time tomorrow. The rollover adds one calendar day to the local date, so a
    DST change in between shifts the elapsed duration but not the clock time.
    """

    validate_spec(spec)

    if isinstance(spec, RelativeSeconds):
        return ResolvedDeadline(at=_add_elapsed(now, spec.seconds), spec=spec)

    candidate = datetime.combine(now.date(), time(spec.hour, spec.minute), tzinfo=now.tzinfo)
    if not _is_after(candidate, now):
        candidate = _next_calendar_day(candidate)
    if not _is_after(candidate, now):
        raise InvalidSpecification(
            f"Time {spec.as_text()} could not be placed after {now.isoformat()}; check the system clock"
        )
    return ResolvedDeadline(at=candidate, spec=spec)


def _add_elapsed(now: datetime, seconds: float) -> datetime:
    if now.tzinfo is None:
        return datetime.fromtimestamp(now.timestamp() + seconds)
    moved = now.astimezone(timezone.utc) + timedelta(seconds=seconds)
    return moved.astimezone(now.tzinfo)


def _next_calendar_day(dt: datetime) -> datetime:
    next_date = dt.date() + timedelta(days=1)
    return datetime.combine(next_date, dt.timetz())


def _is_after(candidate: datetime, now: datetime) -> bool:
    # Same-tzinfo comparisons ignore the offset; compare absolute instants.
    return candidate.timestamp() > now.timestamp()
