from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .parser import (
    AbsoluteTimeOfDay,
    InvalidSpecification,
    RelativeSeconds,
    TimeSpecification,
    parse_minutes,
    parse_seconds,
    parse_time_of_day,
)


def time_of_day_arg(value: str) -> AbsoluteTimeOfDay:
    try:
        return parse_time_of_day(value)
    except InvalidSpecification as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def seconds_arg(value: str) -> RelativeSeconds:
    try:
        return parse_seconds(value)
    except InvalidSpecification as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def minutes_arg(value: str) -> RelativeSeconds:
    try:
        return parse_minutes(value)
    except InvalidSpecification as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def add_spec_arguments(
    parser: argparse.ArgumentParser,
    with_duration: bool = True,
    required: bool = True,
    seconds_flags: Sequence[str] = ("--seconds",),
) -> None:
    """--time / --duration / --seconds as one mutually exclusive group."""
    group = parser.add_mutually_exclusive_group(required=required)
    group.add_argument("-t", "--time", type=time_of_day_arg, metavar="HH:MM", help="alarm time of day (24-hour HH:MM)")
    if with_duration:
        group.add_argument("-d", "--duration", type=minutes_arg, metavar="MINUTES", help="minutes until the alarm")
    group.add_argument(*seconds_flags, type=seconds_arg, metavar="N", dest="seconds", help="seconds until the alarm")


def spec_from_args(args: argparse.Namespace) -> Optional[TimeSpecification]:
    for name in ("time", "duration", "seconds"):
        spec = getattr(args, name, None)
        if spec is not None:
            return spec
    return None
