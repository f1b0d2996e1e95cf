import argparse
import logging
import sys
from typing import List, Optional

from config import load_config, setup_logging
from countdown.cli_args import add_spec_arguments, spec_from_args
from countdown.handoff import LauncherHandoffClient, ProcessLaunchFailed
from countdown.launcher import ProcessLauncher
from countdown.parser import InvalidSpecification
from countdown.storage import HandoffStore, KeyValueStore

logger = logging.getLogger("timer_launch")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timer-launch",
        description="Hand a timer request to the timer process, starting it if needed.",
    )
    add_spec_arguments(parser, seconds_flags=("-s", "--seconds"))
    parser.add_argument("--start", action="store_true", help="start the countdown as soon as it is armed")
    parser.add_argument("-v", "--verbose", action="store_true", help="log the handoff steps to the console")
    parser.add_argument(
        "-f",
        "--foreground",
        action="store_true",
        help="run the timer process attached to this terminal and wait for it",
    )
    parser.add_argument(
        "--new-instance",
        action="store_true",
        help="always start a new timer process instead of activating a running one",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config = load_config()
    log_level = "DEBUG" if args.verbose else config.log_level
    setup_logging(log_level, config.log_dir, "timer-launch.log", console=args.verbose or config.debug)

    target = list(config.app_command)
    if args.foreground:
        target.append("--foreground")
    if args.verbose:
        target.append("--verbose")

    client = LauncherHandoffClient(
        HandoffStore(KeyValueStore(config.store_path)),
        ProcessLauncher(config.pid_path, foreground=args.foreground),
        target,
        new_instance=args.new_instance,
    )
    spec = spec_from_args(args)
    try:
        cmd = client.request_arm(spec, auto_start=args.start)
    except InvalidSpecification as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except ProcessLaunchFailed as exc:
        print(f"Error: could not start the timer process: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    logger.info("Handoff complete: %s", cmd)
    if not args.foreground:
        print(f"Timer requested for {spec.as_text()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
