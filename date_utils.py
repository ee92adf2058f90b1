"""
Date helpers: ISO parsing, 'today' in the user's timezone, relative date phrases and
time-of-day display per the configured 12h/24h format.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger("date_utils")

# Already ISO date
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


def parse_iso_date(value: Any) -> date | None:
    """Return a date for 'YYYY-MM-DD' (or a longer ISO timestamp), a date or a datetime; None if empty/invalid."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    part = value.strip()[:10]
    if not _ISO_DATE.match(part):
        return None
    try:
        return date.fromisoformat(part)
    except ValueError:
        return None


def to_date(value: Any) -> date:
    """Like parse_iso_date but raise ValueError for anything that is not a calendar date."""
    d = parse_iso_date(value)
    if d is None:
        raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}")
    return d


def is_time_of_day(value: str | None) -> bool:
    """True for 'HH:MM' or 'HH:MM:SS' (24h clock)."""
    return bool(value) and bool(_TIME_OF_DAY.match(str(value).strip()))


def today_in_tz(tz_name: str | None) -> date:
    """Today's date in an IANA timezone. Unknown names fall back to UTC."""
    name = (tz_name or "").strip() or "UTC"
    try:
        tz = ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC", name)
        tz = ZoneInfo("UTC")
    return datetime.now(tz).date()


def resolve_relative_date(value: str | None, tz_name: str = "UTC") -> str | None:
    """
    Convert a date string to YYYY-MM-DD. Respects user timezone for relative phrases.
    - If value is already YYYY-MM-DD, return it.
    - If value is 'today', 'tomorrow', 'yesterday', 'next week', or 'in N days', return the resolved date.
    - Otherwise return None (caller can keep original or reject it).
    """
    if not value or not str(value).strip():
        return None
    raw = str(value).strip().lower()
    if _ISO_DATE.match(raw):
        return raw
    today = today_in_tz(tz_name)
    if raw == "today":
        return today.isoformat()
    if raw == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if raw == "yesterday":
        return (today - timedelta(days=1)).isoformat()
    if raw == "next week" or raw == "in a week":
        return (today + timedelta(days=7)).isoformat()
    # "in N days"
    m = re.match(r"^in\s+(\d+)\s+days?$", raw)
    if m:
        return (today + timedelta(days=int(m.group(1)))).isoformat()
    # Day names: next occurrence of that weekday, never today
    weekdays = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
    if raw in weekdays:
        days_ahead = (weekdays.index(raw) - today.weekday()) % 7 or 7
        return (today + timedelta(days=days_ahead)).isoformat()
    return None


def resolve_task_dates(params: dict[str, Any], tz_name: str = "UTC") -> dict[str, Any]:
    """Resolve a relative due_date in task params; return a copy with the ISO date where possible."""
    out = dict(params)
    val = out.get("due_date")
    if val:
        resolved = resolve_relative_date(str(val).strip(), tz_name)
        if resolved is not None:
            out["due_date"] = resolved
    return out


def format_time(value: str | None, time_format: str = "24h") -> str:
    """Format 'HH:MM[:SS]' for display: '14:05' stays as is for 24h, becomes '2:05 PM' for 12h."""
    if not value:
        return ""
    raw = str(value).strip()
    m = _TIME_OF_DAY.match(raw)
    if not m:
        return raw
    hour24, minutes = int(m.group(1)), m.group(2)
    if time_format == "12h":
        hour12 = hour24 % 12 or 12
        am_pm = "PM" if hour24 >= 12 else "AM"
        return f"{hour12}:{minutes} {am_pm}"
    return f"{m.group(1)}:{minutes}"


def format_date_friendly(iso_date: str | None, today: date) -> str:
    """
    Format an ISO date (YYYY-MM-DD) for agenda lists: "today", "yesterday", "tomorrow", or "m/d".
    """
    d = parse_iso_date(iso_date)
    if d is None:
        return str(iso_date or "")
    if d == today:
        return "today"
    if d == today + timedelta(days=1):
        return "tomorrow"
    if d == today - timedelta(days=1):
        return "yesterday"
    return f"{d.month}/{d.day}"
