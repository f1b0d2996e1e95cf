import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Callable, List, Optional

from config import Config, load_config, setup_logging
from countdown.cli_args import add_spec_arguments, spec_from_args
from countdown.display import ConsoleDisplay
from countdown.engine import AlarmSettings, CountdownEngine, TimerObserver, TimerPhase
from countdown.launcher import ACTIVATE_SIGNAL, PidFile
from countdown.notifier import Notifier
from countdown.parser import InvalidSpecification, TimeSpecification, resolve
from countdown.poller import HandoffPoller
from countdown.sounds import SoundPlayer
from countdown.storage import HandoffStore, KeyValueStore
from time_utils import format_tz_offset, now_in_tz, resolve_timezone

logger = logging.getLogger("timer_app")


@dataclass
class StartupRequest:
    spec: Optional[TimeSpecification] = None
    auto_start: bool = False


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timer-app",
        description="Timer process: arms from startup arguments or from a launcher handoff.",
    )
    add_spec_arguments(parser, with_duration=False, required=False)
    parser.add_argument("--start", action="store_true", help="start the countdown right away")
    parser.add_argument("-f", "--foreground", action="store_true", help="show the countdown on this terminal")
    parser.add_argument("-v", "--verbose", action="store_true", help="print every second of the countdown")
    return parser


class TimerRuntime(TimerObserver):
    def __init__(
        self,
        config: Config,
        loop,
        notifier,
        sound_player,
        display: Optional[TimerObserver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.loop = loop
        self.sound_player = sound_player
        self.clock = clock or partial(now_in_tz, resolve_timezone(config.timezone))

        self.engine = CountdownEngine(
            notifier=notifier,
            sound_player=sound_player,
            loop=loop,
            clock=self.clock,
            alarm=AlarmSettings(title=config.title, message=config.message, sound_id=config.sound),
            hidden_tick_interval=config.hidden_tick_seconds,
        )
        self.engine.add_observer(self)
        if display is not None:
            self.engine.add_observer(display)

        self.store = HandoffStore(KeyValueStore(config.store_path))
        self.poller = HandoffPoller(
            self.store,
            self.engine,
            loop,
            clock=self.clock,
            retry_offsets=config.retry_offsets,
            max_age=config.handoff_max_age,
            on_finished=self._on_poll_finished,
        )
        self.pid_file = PidFile(config.pid_path)
        self.stop_event = asyncio.Event()
        self._terminating = False
        self._ring_handle = None

    def start(self, request: StartupRequest) -> None:
        self.pid_file.acquire()
        if request.spec is not None:
            self.apply_request(request)
        self.poller.start(discard=request.spec is not None)

    def apply_request(self, request: StartupRequest) -> bool:
        try:
            deadline = resolve(request.spec, self.clock())
            self.engine.arm(deadline)
        except InvalidSpecification as exc:
            logger.error("Startup arguments rejected: %s", exc)
            return False
        logger.info("Armed from startup arguments: %s", request.spec)
        if request.auto_start:
            self.loop.call_soon(self.engine.start)
        return True

    def activate(self) -> None:
        if self._terminating:
            logger.info("Activation request ignored, shutting down")
            return
        logger.info("Activation request received, polling for a handoff")
        if self.stop_event.is_set():
            logger.info("Exit was pending, staying up for the new request")
            self.stop_event.clear()
            self.pid_file.acquire()
        self.poller.start()

    def request_stop(self) -> None:
        self._terminating = True
        self.stop_event.set()

    @property
    def idle(self) -> bool:
        return self.engine.phase == TimerPhase.IDLE and not self.poller.active

    def shutdown(self) -> None:
        self.poller.stop()
        self._cancel_ring()
        self.engine.cancel()
        self.sound_player.stop()
        self.pid_file.release()

    async def run(self, request: StartupRequest) -> None:
        self.start(request)
        try:
            while True:
                await self.stop_event.wait()
                # an activation may have arrived after the exit was requested
                if self._terminating or self.idle:
                    break
                self.stop_event.clear()
        finally:
            self.shutdown()

    def on_phase_changed(self, phase: TimerPhase) -> None:
        self._cancel_ring()
        if phase == TimerPhase.ALARMING:
            self._ring_handle = self.loop.call_later(self.config.alarm_ring_seconds, self._acknowledge)
        elif phase == TimerPhase.IDLE:
            self._maybe_finish()

    def _acknowledge(self) -> None:
        self._ring_handle = None
        logger.info("Alarm rang for %.0fs, acknowledging", self.config.alarm_ring_seconds)
        self.engine.cancel()

    def _cancel_ring(self) -> None:
        if self._ring_handle is not None:
            self._ring_handle.cancel()
            self._ring_handle = None

    def _on_poll_finished(self, deadline) -> None:
        self._maybe_finish()

    def _maybe_finish(self) -> None:
        if self.idle and not self.stop_event.is_set():
            logger.info("Nothing left to do, exiting")
            # Launchers only signal a process holding the pid file.
            self.pid_file.release()
            self.stop_event.set()


async def _run(config: Config, request: StartupRequest, visible: bool, verbose: bool) -> None:
    loop = asyncio.get_running_loop()
    sound_player = SoundPlayer(config.sounds_dir, repeats=config.alarm_repeats)
    display = ConsoleDisplay(message=config.message, verbose=verbose, visible=visible)
    runtime = TimerRuntime(config, loop, Notifier(), sound_player, display=display)

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, runtime.request_stop)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - Windows
            pass
    if ACTIVATE_SIGNAL is not None:
        loop.add_signal_handler(ACTIVATE_SIGNAL, runtime.activate)

    await runtime.run(request)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    request = StartupRequest(spec=spec_from_args(args), auto_start=args.start)
    config = load_config()
    visible = args.foreground or sys.stdout.isatty()
    setup_logging(config.log_level, config.log_dir, "timer-app.log", console=visible)
    logger.info(
        "Starting timer process (pid %s, store=%s, tz=%s %s)",
        os.getpid(),
        config.store_path,
        config.timezone or "local",
        format_tz_offset(resolve_timezone(config.timezone)),
    )
    try:
        asyncio.run(_run(config, request, visible=visible, verbose=args.verbose))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
