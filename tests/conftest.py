import heapq
import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from countdown.engine import CountdownEngine
from countdown.notifier import NotificationFailure
from countdown.storage import HandoffStore, KeyValueStore

START = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeHandle:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Enough of an asyncio loop for call_later/call_soon, driven by advance()."""

    def __init__(self, start: datetime = START):
        self.start = start
        self.time = 0.0
        self._queue = []
        self._counter = itertools.count()

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.time)

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.time + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def call_soon(self, callback, *args):
        return self.call_later(0, callback, *args)

    def scheduled(self):
        return sorted(round(h.when, 6) for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.time = max(self.time, when)
            handle.callback(*handle.args)
        self.time = target


class RecordingNotifier:
    def __init__(self, loop=None):
        self.loop = loop
        self.deliveries = []
        self.fail = False

    def deliver(self, title, body, sound_enabled=True):
        if self.fail:
            raise NotificationFailure("notification service unavailable")
        when = self.loop.time if self.loop else None
        self.deliveries.append((title, body, sound_enabled, when))


class RecordingSoundPlayer:
    def __init__(self):
        self.played = []
        self.stops = 0

    def play(self, sound_id):
        self.played.append(sound_id)

    def stop(self):
        self.stops += 1


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def notifier(loop):
    return RecordingNotifier(loop)


@pytest.fixture
def sound_player():
    return RecordingSoundPlayer()


@pytest.fixture
def engine(loop, notifier, sound_player):
    return CountdownEngine(notifier=notifier, sound_player=sound_player, loop=loop, clock=loop.now)


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "defaults.json"


@pytest.fixture
def handoff_store(store_path):
    return HandoffStore(KeyValueStore(store_path), clock=lambda: 1000.0)
