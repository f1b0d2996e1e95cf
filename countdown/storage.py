from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, Iterator, Optional

from .parser import AbsoluteTimeOfDay, TimeSpecification, parse_seconds, parse_time_of_day, validate_spec

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX
    fcntl = None  # type: ignore

logger = logging.getLogger(__name__)

KEY_SHOULD_SET = "LauncherShouldSetTimer"
KEY_TIME_STRING = "LauncherSetTimeString"
KEY_SECONDS = "LauncherSetSeconds"
KEY_AUTO_START = "LauncherAutoStart"
KEY_WRITTEN_AT = "LauncherWrittenAt"

HANDOFF_KEYS = (KEY_SHOULD_SET, KEY_TIME_STRING, KEY_SECONDS, KEY_AUTO_START, KEY_WRITTEN_AT)


@dataclass(frozen=True)
class PendingCommand:
    time_of_day: Optional[str] = None
    seconds: Optional[float] = None
    auto_start: bool = False
    written_at: Optional[float] = None

    @classmethod
    def for_spec(cls, spec: TimeSpecification, auto_start: bool, written_at: Optional[float] = None) -> "PendingCommand":
        validate_spec(spec)
        if isinstance(spec, AbsoluteTimeOfDay):
            return cls(time_of_day=spec.as_text(), auto_start=auto_start, written_at=written_at)
        return cls(seconds=float(spec.seconds), auto_start=auto_start, written_at=written_at)

    def to_spec(self) -> TimeSpecification:
        if self.time_of_day:
            return parse_time_of_day(self.time_of_day)
        return parse_seconds(self.seconds if self.seconds is not None else 0)

    def age(self, now_ts: float) -> Optional[float]:
        if self.written_at is None:
            return None
        return now_ts - self.written_at

    def to_fields(self) -> dict:
        """Companion fields only; the present flag is written separately."""
        fields: dict = {KEY_AUTO_START: self.auto_start}
        if self.time_of_day:
            fields[KEY_TIME_STRING] = self.time_of_day
        elif self.seconds is not None:
            fields[KEY_SECONDS] = float(self.seconds)
        if self.written_at is not None:
            fields[KEY_WRITTEN_AT] = self.written_at
        return fields

    @classmethod
    def from_record(cls, data: dict) -> Optional["PendingCommand"]:
        if not data.get(KEY_SHOULD_SET):
            return None
        time_of_day = data.get(KEY_TIME_STRING) or None
        seconds_raw = data.get(KEY_SECONDS)
        written_raw = data.get(KEY_WRITTEN_AT)
        try:
            seconds = float(seconds_raw) if seconds_raw is not None else None
            written_at = float(written_raw) if written_raw is not None else None
        except (TypeError, ValueError):
            logger.warning("Handoff record has non-numeric fields: %s", data)
            seconds, written_at = None, None
        return cls(
            time_of_day=str(time_of_day) if time_of_day else None,
            seconds=seconds,
            auto_start=bool(data.get(KEY_AUTO_START, False)),
            written_at=written_at,
        )


class KeyValueStore:
    """A small JSON-file key-value store shared between processes of one user."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            if fcntl is None:
                yield
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.lock_path.open("a") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def load(self) -> Dict[str, object]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except Exception as exc:  # pragma: no cover - corrupted file
            logger.error("Failed to load store from %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.error("Store %s does not hold a JSON object, ignoring it", self.path)
            return {}
        return payload

    def save(self, data: Dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)


class HandoffStore:
    def __init__(self, store: KeyValueStore, clock=time.time):
        self.store = store
        self.clock = clock

    def write_pending(self, cmd: PendingCommand) -> None:
        if cmd.written_at is None:
            cmd = PendingCommand(cmd.time_of_day, cmd.seconds, cmd.auto_start, written_at=self.clock())
        with self.store.locked():
            data = self.store.load()
            for key in HANDOFF_KEYS:
                data.pop(key, None)
            data.update(cmd.to_fields())
            self.store.save(data)
            data[KEY_SHOULD_SET] = True
            self.store.save(data)
        logger.info("Pending handoff written to %s: %s", self.store.path, cmd)

    def read_pending(self) -> Optional[PendingCommand]:
        return PendingCommand.from_record(self.store.load())

    def clear_pending(self) -> None:
        with self.store.locked():
            self._clear_locked()

    def consume_once(self) -> Optional[PendingCommand]:
        with self.store.locked():
            cmd = PendingCommand.from_record(self.store.load())
            self._clear_locked()
        if cmd:
            logger.info("Consumed pending handoff: %s", cmd)
        return cmd

    def _clear_locked(self) -> None:
        data = self.store.load()
        if not any(key in data for key in HANDOFF_KEYS):
            return
        for key in HANDOFF_KEYS:
            data.pop(key, None)
        self.store.save(data)
