import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

from config import load_config, setup_logging
from countdown.cli_args import add_spec_arguments, spec_from_args
from countdown.display import ConsoleDisplay
from countdown.engine import AlarmSettings, CountdownEngine, TimerObserver, TimerPhase
from countdown.notifier import Notifier
from countdown.parser import InvalidSpecification, ResolvedDeadline, resolve
from countdown.sounds import SOUND_FILES, SILENT, SoundPlayer

logger = logging.getLogger("timer_cli")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timer",
        description="Count down to a time of day or for a duration, then raise an alarm.",
    )
    add_spec_arguments(parser)
    parser.add_argument("-m", "--message", default=None, help="text shown when the alarm fires")
    parser.add_argument(
        "-s",
        "--sound",
        type=int,
        choices=[SILENT, *sorted(SOUND_FILES)],
        default=None,
        help="alarm sound: -1 for silent, 0-2 for the built-in sounds",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="print every second of the countdown")
    return parser


def describe_wait(deadline: ResolvedDeadline, now: datetime) -> str:
    seconds = int(round(deadline.remaining(now).total_seconds()))
    minutes, rest = divmod(seconds, 60)
    return f"Waiting {seconds} seconds ({minutes} min {rest} s)"


class _AlarmWatcher(TimerObserver):
    def __init__(self, done: asyncio.Event):
        self.done = done

    def on_phase_changed(self, phase: TimerPhase) -> None:
        if phase == TimerPhase.ALARMING:
            self.done.set()


async def _countdown(args: argparse.Namespace, alarm: AlarmSettings, sound_player: SoundPlayer, display: ConsoleDisplay) -> None:
    engine = CountdownEngine(
        notifier=Notifier(),
        sound_player=sound_player,
        loop=asyncio.get_running_loop(),
        alarm=alarm,
    )
    engine.add_observer(display)
    done = asyncio.Event()
    engine.add_observer(_AlarmWatcher(done))

    deadline = resolve(spec_from_args(args), engine.clock())
    if args.verbose:
        print(describe_wait(deadline, engine.clock()))
    engine.arm(deadline)
    await done.wait()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    config = load_config()
    setup_logging(config.log_level, config.log_dir, "timer-cli.log", console=config.debug)

    message = args.message or config.message
    sound_id = config.sound if args.sound is None else args.sound
    sound_player = SoundPlayer(config.sounds_dir, repeats=1)
    display = ConsoleDisplay(message=message, verbose=args.verbose)
    alarm = AlarmSettings(title=config.title, message=message, sound_id=sound_id)

    try:
        asyncio.run(_countdown(args, alarm, sound_player, display))
    except InvalidSpecification as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        sound_player.stop()
        print("\nTimer cancelled")
        return 130

    logger.info("Alarm delivered, waiting for the sound to finish")
    try:
        sound_player.wait()
    except KeyboardInterrupt:
        sound_player.stop()
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
