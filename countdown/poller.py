from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .engine import CountdownEngine
from .parser import InvalidSpecification, ResolvedDeadline, resolve
from .storage import HandoffStore

logger = logging.getLogger(__name__)

DEFAULT_RETRY_OFFSETS = (0.1, 0.5, 1.0)


class HandoffPoller:
    """Picks up a pending handoff record shortly after the process starts.

    The launcher may write the record just before or just after this process
    comes up, so consumption is attempted at several offsets and stops at the
    first one that finds a command.
    """

    def __init__(
        self,
        store: HandoffStore,
        engine: CountdownEngine,
        loop,
        clock: Optional[Callable[[], datetime]] = None,
        wall_time: Callable[[], float] = time.time,
        retry_offsets: Sequence[float] = DEFAULT_RETRY_OFFSETS,
        max_age: Optional[float] = 60.0,
        on_finished: Optional[Callable[[Optional[ResolvedDeadline]], None]] = None,
    ):
        if not retry_offsets:
            raise ValueError("retry_offsets must contain at least one delay")
        self.store = store
        self.engine = engine
        self.loop = loop
        self.clock = clock or engine.clock
        self.wall_time = wall_time
        self.retry_offsets = sorted(float(o) for o in retry_offsets)
        self.max_age = max_age
        self.on_finished = on_finished

        self._handles: List = []
        self._consumed = False
        self._discard = False
        self._remaining_attempts = 0

    @property
    def active(self) -> bool:
        return self._remaining_attempts > 0

    def start(self, discard: bool = False) -> None:
        """Schedule a fresh round of attempts.

        With ``discard`` the record belonging to this launch is consumed and
        dropped, because the same request already arrived as startup arguments.
        """
        self.stop()
        self._consumed = False
        self._discard = discard
        self._remaining_attempts = len(self.retry_offsets)
        logger.info(
            "Polling for handoff at %s s%s",
            ", ".join(f"{o:g}" for o in self.retry_offsets),
            " (discard mode)" if discard else "",
        )
        for offset in self.retry_offsets:
            self._handles.append(self.loop.call_later(offset, self._scheduled_attempt))

    def stop(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles = []
        self._remaining_attempts = 0

    def _scheduled_attempt(self) -> None:
        self._remaining_attempts = max(0, self._remaining_attempts - 1)
        deadline = self.attempt_consume()
        if self._consumed or self._remaining_attempts == 0:
            self.stop()
            if self.on_finished:
                try:
                    self.on_finished(deadline)
                except Exception:  # pragma: no cover - callback safety
                    logger.error("on_finished callback failed", exc_info=True)

    def attempt_consume(self) -> Optional[ResolvedDeadline]:
        if self._consumed:
            return None
        cmd = self.store.consume_once()
        if cmd is None:
            logger.debug("No pending handoff yet")
            return None

        age = cmd.age(self.wall_time())
        if self.max_age is not None and (age is None or age > self.max_age):
            logger.warning("Discarding stale handoff record (age=%s s): %s", _format_age(age), cmd)
            return None

        self._consumed = True
        if self._discard:
            logger.info("Dropping handoff record, startup arguments already applied: %s", cmd)
            return None

        try:
            deadline = resolve(cmd.to_spec(), self.clock())
            self.engine.arm(deadline)
        except InvalidSpecification as exc:
            logger.error("Rejected handoff record %s: %s", cmd, exc)
            return None

        if cmd.auto_start:
            self.loop.call_soon(self.engine.start)
        return deadline


def _format_age(age: Optional[float]) -> str:
    return "unknown" if age is None else f"{age:.1f}"
