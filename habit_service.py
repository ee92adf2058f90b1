"""
Habit service: habits and their daily logs.
A habit row carries frequency_days as a JSON list in a TEXT column; it comes back as a Python list.
At most one log exists per (habit_id, log_date); logging the same day again overwrites it.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from ulid import ULID

from config import AppConfig, load as load_config
from database import get_connection
from date_utils import is_time_of_day, parse_iso_date, today_in_tz
from task_service import _UNSET

logger = logging.getLogger("habit_service")

FREQUENCIES = frozenset({"daily", "weekly", "monthly"})
LOG_STATUSES = frozenset({"completed", "skipped", "failed"})

# Valid frequency_days entries: weekday numbers (0=Sunday) for weekly, day of month for monthly
_DAY_RANGES = {"weekly": range(0, 7), "monthly": range(1, 32)}

_SELECT_HABIT = """
    SELECT h.*, g.name AS tag_name, g.color AS tag_color
    FROM habits h LEFT JOIN tags g ON g.id = h.tag_id
"""

_LOG_COLUMNS = "id, habit_id, log_date, status, notes, created_at"


def _new_id() -> str:
    return str(ULID())


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _habit_row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    d = dict(row)
    name = d.pop("tag_name", None)
    color = d.pop("tag_color", None)
    d["tag"] = {"name": name, "color": color} if name is not None else None
    d["is_active"] = bool(d["is_active"])
    raw = d.get("frequency_days")
    if raw:
        try:
            d["frequency_days"] = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("[habit_service] habit %s has unreadable frequency_days: %r", d["id"], raw)
            d["frequency_days"] = []
    else:
        d["frequency_days"] = []
    return d


def _check_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("name is required")
    return value.strip()


def _check_text(name: str, value: Any) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value or None


def _check_frequency(value: Any) -> str:
    if not isinstance(value, str) or value not in FREQUENCIES:
        raise ValueError(f"frequency must be one of {sorted(FREQUENCIES)}")
    return value


def _check_days(frequency: str, days: Any) -> str | None:
    """Validate frequency_days for the given frequency and return its JSON form (None when empty)."""
    if days is None:
        return None
    if not isinstance(days, (list, tuple)):
        raise ValueError("frequency_days must be a list of integers")
    allowed = _DAY_RANGES.get(frequency)
    clean: list[int] = []
    for day in days:
        if isinstance(day, bool) or not isinstance(day, int):
            raise ValueError("frequency_days must be a list of integers")
        if allowed is not None and day not in allowed:
            raise ValueError(f"frequency_days for {frequency} habits must be in {allowed.start}..{allowed.stop - 1}")
        if day not in clean:
            clean.append(day)
    return json.dumps(sorted(clean)) if clean else None


def _check_time(value: Any) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str) or not is_time_of_day(value):
        raise ValueError("preferred_time must be HH:MM (24h)")
    return value.strip()[:5]


def _check_tag(conn: sqlite3.Connection, tag_id: Any) -> str | None:
    if not tag_id:
        return None
    if not isinstance(tag_id, str):
        raise ValueError("tag_id must be a string")
    if conn.execute("SELECT 1 FROM tags WHERE id = ?", (tag_id,)).fetchone() is None:
        raise ValueError(f"Unknown tag: {tag_id}")
    return tag_id


def create_habit(
    name: str,
    *,
    description: str | None = None,
    frequency: str = "daily",
    frequency_days: list[int] | None = None,
    preferred_time: str | None = None,
    tag_id: str | None = None,
    is_active: bool = True,
    habit_id: str | None = None,
) -> dict[str, Any]:
    """Create a habit. Raises ValueError on invalid fields."""
    clean_name = _check_name(name)
    clean_description = _check_text("description", description)
    freq = _check_frequency(frequency)
    days = _check_days(freq, frequency_days)
    at = _check_time(preferred_time)
    hid = habit_id or _new_id()
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO habits (
                id, name, description, frequency, frequency_days, preferred_time, tag_id,
                is_active, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (hid, clean_name, clean_description, freq, days, at, _check_tag(conn, tag_id), 1 if is_active else 0, now, now),
        )
        conn.commit()
        logger.info("[habit_service] created habit %s (%s, %s)", hid, clean_name, freq)
        return get_habit(hid)
    finally:
        conn.close()


def get_habit(habit_id: str) -> dict[str, Any] | None:
    conn = get_connection()
    try:
        row = conn.execute(_SELECT_HABIT + " WHERE h.id = ?", (habit_id,)).fetchone()
        return _habit_row_to_dict(row) if row else None
    finally:
        conn.close()


def list_habits(active_only: bool = True) -> list[dict[str, Any]]:
    """Habits by preferred_time (habits without one last), then newest first."""
    sql = _SELECT_HABIT
    if active_only:
        sql += " WHERE h.is_active = 1"
    sql += " ORDER BY h.preferred_time IS NULL, h.preferred_time, h.created_at DESC, h.id DESC"
    conn = get_connection()
    try:
        return [_habit_row_to_dict(r) for r in conn.execute(sql).fetchall()]
    finally:
        conn.close()


def update_habit(
    habit_id: str,
    *,
    name: str | None = None,
    description: str | None = _UNSET,
    frequency: str | None = None,
    frequency_days: list[int] | None = _UNSET,
    preferred_time: str | None = _UNSET,
    tag_id: str | None = _UNSET,
    is_active: bool | None = None,
) -> dict[str, Any] | None:
    """Update habit fields; only provided fields change. Returns None if the habit does not exist.
    Changing frequency alone re-checks the stored frequency_days against the new frequency.
    """
    conn = get_connection()
    try:
        row = conn.execute("SELECT frequency, frequency_days FROM habits WHERE id = ?", (habit_id,)).fetchone()
        if not row:
            return None
        updates: list[str] = ["updated_at = ?"]
        params: list[Any] = [_now_iso()]
        if name is not None:
            updates.append("name = ?"); params.append(_check_name(name))
        if description is not _UNSET:
            updates.append("description = ?"); params.append(_check_text("description", description))
        freq = row["frequency"]
        if frequency is not None:
            freq = _check_frequency(frequency)
            updates.append("frequency = ?"); params.append(freq)
        if frequency_days is not _UNSET:
            updates.append("frequency_days = ?"); params.append(_check_days(freq, frequency_days))
        elif frequency is not None and row["frequency_days"]:
            _check_days(freq, json.loads(row["frequency_days"]))
        if preferred_time is not _UNSET:
            updates.append("preferred_time = ?"); params.append(_check_time(preferred_time))
        if tag_id is not _UNSET:
            updates.append("tag_id = ?"); params.append(_check_tag(conn, tag_id))
        if is_active is not None:
            if not isinstance(is_active, bool):
                raise ValueError("is_active must be true or false")
            updates.append("is_active = ?"); params.append(1 if is_active else 0)
        params.append(habit_id)
        conn.execute(f"UPDATE habits SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
        logger.info("[habit_service] updated habit %s (%d field(s))", habit_id, len(updates) - 1)
        return get_habit(habit_id)
    finally:
        conn.close()


def delete_habit(habit_id: str) -> bool:
    """Delete a habit and its logs. Returns True if deleted."""
    conn = get_connection()
    try:
        if conn.execute("SELECT 1 FROM habits WHERE id = ?", (habit_id,)).fetchone() is None:
            return False
        conn.execute("DELETE FROM habit_logs WHERE habit_id = ?", (habit_id,))
        conn.execute("DELETE FROM habits WHERE id = ?", (habit_id,))
        conn.commit()
        logger.info("[habit_service] deleted habit %s", habit_id)
        return True
    finally:
        conn.close()


def _check_log_date(value: Any, name: str = "log_date") -> str:
    d = parse_iso_date(value)
    if d is None:
        raise ValueError(f"{name} must be YYYY-MM-DD")
    return d.isoformat()


def log_habit(
    habit_id: str,
    status: str,
    *,
    log_date: str | None = None,
    notes: str | None = None,
    config: AppConfig | None = None,
) -> dict[str, Any]:
    """
    Record how a habit went on one day (today in the configured timezone unless log_date is given).
    Logging a day that already has a log replaces its status and notes.
    Raises ValueError for bad status/date or an unknown habit.
    """
    if not isinstance(status, str) or status not in LOG_STATUSES:
        raise ValueError(f"status must be one of {sorted(LOG_STATUSES)}")
    clean_notes = _check_text("notes", notes)
    if log_date is None:
        day = today_in_tz((config or load_config()).user_timezone).isoformat()
    else:
        day = _check_log_date(log_date)
    conn = get_connection()
    try:
        if conn.execute("SELECT 1 FROM habits WHERE id = ?", (habit_id,)).fetchone() is None:
            raise ValueError(f"Unknown habit: {habit_id}")
        conn.execute(
            """INSERT INTO habit_logs (id, habit_id, log_date, status, notes, created_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT (habit_id, log_date)
               DO UPDATE SET status = excluded.status, notes = excluded.notes""",
            (_new_id(), habit_id, day, status, clean_notes, _now_iso()),
        )
        conn.commit()
        logger.info("[habit_service] logged habit %s on %s -> %s", habit_id, day, status)
        row = conn.execute(
            f"SELECT {_LOG_COLUMNS} FROM habit_logs WHERE habit_id = ? AND log_date = ?", (habit_id, day)
        ).fetchone()
        return dict(row)
    finally:
        conn.close()


def list_habit_logs(
    habit_id: str | None = None,
    start: str | None = None,
    end: str | None = None,
    status: str | None = None,
) -> list[dict[str, Any]]:
    """Habit logs, newest log_date first. start/end are inclusive YYYY-MM-DD bounds."""
    sql = f"SELECT {_LOG_COLUMNS} FROM habit_logs WHERE 1=1"
    params: list[Any] = []
    if habit_id:
        sql += " AND habit_id = ?"
        params.append(habit_id)
    if start:
        sql += " AND log_date >= ?"
        params.append(_check_log_date(start, "start"))
    if end:
        sql += " AND log_date <= ?"
        params.append(_check_log_date(end, "end"))
    if status:
        if status not in LOG_STATUSES:
            raise ValueError(f"status must be one of {sorted(LOG_STATUSES)}")
        sql += " AND status = ?"
        params.append(status)
    sql += " ORDER BY log_date DESC, created_at DESC"
    conn = get_connection()
    try:
        return [dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()
