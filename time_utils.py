from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Return the configured zone, or None to follow the system local time."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning("Failed to load timezone %s via zoneinfo (%s), using system local time", name, exc)
    return None


def now_in_tz(tz: Optional[tzinfo]) -> datetime:
    # Naive local time when no zone is configured; the OS applies DST rules
    # whenever such values are converted with .timestamp().
    if tz:
        return datetime.now(tz)
    return datetime.now()


def format_tz_offset(tz: Optional[tzinfo]) -> str:
    sample = now_in_tz(tz)
    if sample.tzinfo is None:
        sample = sample.astimezone()
    offset = sample.utcoffset()
    if offset is None:
        return ""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"
