"""Date parsing, relative phrases and display formatting."""

from datetime import date, datetime, timedelta

import pytest

from date_utils import (
    format_date_friendly,
    format_time,
    parse_iso_date,
    resolve_relative_date,
    resolve_task_dates,
    to_date,
    today_in_tz,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-10", date(2024, 3, 10)),
        ("2024-03-10T08:00:00Z", date(2024, 3, 10)),
        (date(2024, 3, 10), date(2024, 3, 10)),
        (datetime(2024, 3, 10, 23, 59), date(2024, 3, 10)),
        ("2024-02-30", None),
        ("10/03/2024", None),
        ("", None),
        (None, None),
        (20240310, None),
    ],
)
def test_parse_iso_date(value, expected):
    assert parse_iso_date(value) == expected


def test_to_date_raises_on_garbage():
    with pytest.raises(ValueError):
        to_date("soon")


def test_today_in_unknown_timezone_falls_back_to_utc():
    assert today_in_tz("Mars/Olympus_Mons") == today_in_tz("UTC")


def test_resolve_relative_date():
    today = today_in_tz("UTC")
    assert resolve_relative_date("2024-03-10") == "2024-03-10"
    assert resolve_relative_date("Today") == today.isoformat()
    assert resolve_relative_date("tomorrow") == (today + timedelta(days=1)).isoformat()
    assert resolve_relative_date("in 3 days") == (today + timedelta(days=3)).isoformat()
    monday = date.fromisoformat(resolve_relative_date("monday"))
    assert monday.weekday() == 0
    assert 1 <= (monday - today).days <= 7
    assert resolve_relative_date("whenever") is None
    assert resolve_relative_date("") is None


def test_resolve_task_dates_keeps_unknown_values():
    out = resolve_task_dates({"title": "x", "due_date": "someday"})
    assert out["due_date"] == "someday"
    out = resolve_task_dates({"title": "x", "due_date": "today"})
    assert out["due_date"] == today_in_tz("UTC").isoformat()


@pytest.mark.parametrize(
    "value, fmt, expected",
    [
        ("14:05", "24h", "14:05"),
        ("14:05:30", "24h", "14:05"),
        ("14:05", "12h", "2:05 PM"),
        ("00:30", "12h", "12:30 AM"),
        ("12:00", "12h", "12:00 PM"),
        (None, "12h", ""),
        ("noonish", "24h", "noonish"),
    ],
)
def test_format_time(value, fmt, expected):
    assert format_time(value, fmt) == expected


def test_format_date_friendly():
    today = date(2024, 3, 10)
    assert format_date_friendly("2024-03-10", today) == "today"
    assert format_date_friendly("2024-03-11", today) == "tomorrow"
    assert format_date_friendly("2024-03-09", today) == "yesterday"
    assert format_date_friendly("2024-04-01", today) == "4/1"
    assert format_date_friendly(None, today) == ""
