from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from countdown.parser import (
    AbsoluteTimeOfDay,
    InvalidSpecification,
    RelativeSeconds,
    parse_minutes,
    parse_seconds,
    parse_time_of_day,
    resolve,
)

NEW_YORK = ZoneInfo("America/New_York")


def _now() -> datetime:
    return datetime(2024, 1, 1, 23, 50, tzinfo=timezone.utc)


def test_parse_time_of_day_accepts_short_hours():
    assert parse_time_of_day("7:30") == AbsoluteTimeOfDay(7, 30)
    assert parse_time_of_day(" 23:05 ") == AbsoluteTimeOfDay(23, 5)


@pytest.mark.parametrize("text", ["25:61", "24:00", "12:60", "7", "7:30pm", "", "ab:cd", "-1:30"])
def test_parse_time_of_day_rejects_malformed(text):
    with pytest.raises(InvalidSpecification) as exc:
        parse_time_of_day(text)
    assert "HH:MM" in str(exc.value)


def test_parse_seconds():
    assert parse_seconds("90") == RelativeSeconds(90.0)
    assert parse_seconds(1.5) == RelativeSeconds(1.5)


@pytest.mark.parametrize("value", ["0", "-5", "abc", "nan", "inf"])
def test_parse_seconds_rejects_non_positive(value):
    with pytest.raises(InvalidSpecification):
        parse_seconds(value)


def test_parse_minutes():
    assert parse_minutes("25") == RelativeSeconds(1500.0)
    with pytest.raises(InvalidSpecification):
        parse_minutes("0")
    with pytest.raises(InvalidSpecification):
        parse_minutes("1.5")


def test_time_already_passed_rolls_to_tomorrow():
    deadline = resolve(AbsoluteTimeOfDay(0, 5), _now())
    assert deadline.at == datetime(2024, 1, 2, 0, 5, tzinfo=timezone.utc)
    assert deadline.remaining(_now()) == timedelta(minutes=15)
    assert deadline.describe() == "00:05"


def test_time_later_today_stays_today():
    deadline = resolve(AbsoluteTimeOfDay(23, 55), _now())
    assert deadline.at == datetime(2024, 1, 1, 23, 55, tzinfo=timezone.utc)


def test_time_equal_to_now_is_tomorrow():
    deadline = resolve(AbsoluteTimeOfDay(23, 50), _now())
    assert deadline.at.date() == datetime(2024, 1, 2).date()


def test_relative_seconds_add_to_now():
    deadline = resolve(RelativeSeconds(90), _now())
    assert deadline.at == _now() + timedelta(seconds=90)
    assert deadline.spec == RelativeSeconds(90)


def test_relative_with_fraction():
    deadline = resolve(RelativeSeconds(0.5), _now())
    assert deadline.remaining(_now()) == timedelta(milliseconds=500)


def test_resolve_rejects_invalid_specs():
    with pytest.raises(InvalidSpecification):
        resolve(RelativeSeconds(0), _now())
    with pytest.raises(InvalidSpecification):
        resolve(AbsoluteTimeOfDay(24, 0), _now())


def test_rollover_across_spring_forward_keeps_wall_clock():
    now = datetime(2024, 3, 9, 23, 0, tzinfo=NEW_YORK)
    deadline = resolve(AbsoluteTimeOfDay(22, 0), now)
    assert (deadline.at.year, deadline.at.month, deadline.at.day) == (2024, 3, 10)
    assert (deadline.at.hour, deadline.at.minute) == (22, 0)
    assert deadline.at.utcoffset() == timedelta(hours=-4)
    # 23 wall-clock hours, one of which is skipped by the DST change.
    assert deadline.remaining(now) == timedelta(hours=22)


def test_relative_across_spring_forward_counts_elapsed_time():
    now = datetime(2024, 3, 10, 1, 30, tzinfo=NEW_YORK)
    deadline = resolve(RelativeSeconds(3600), now)
    assert (deadline.at.hour, deadline.at.minute) == (3, 30)
    assert deadline.remaining(now) == timedelta(hours=1)
