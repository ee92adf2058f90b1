"""
Task Service layer: all task definition reads and writes go through here.
Rows come back as plain dicts with the task's tag embedded as {"name", "color"} (or None).
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from ulid import ULID

from config import AppConfig, load as load_config
from database import get_connection, init_database
from date_utils import is_time_of_day, parse_iso_date, today_in_tz

logger = logging.getLogger("task_service")

STATUSES = frozenset({"pending", "completed", "cancelled"})
PRIORITIES = frozenset({"low", "medium", "high"})
REPEAT_TYPES = frozenset({"none", "daily", "weekly", "monthly"})

# Sentinel: pass for optional params to mean "don't change"; None means "set to null"
_UNSET = object()

_SELECT_TASK = """
    SELECT t.*, g.name AS tag_name, g.color AS tag_color
    FROM tasks t LEFT JOIN tags g ON g.id = t.tag_id
"""


def _new_task_id() -> str:
    return str(ULID())


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _task_row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    d = dict(row)
    name = d.pop("tag_name", None)
    color = d.pop("tag_color", None)
    d["tag"] = {"name": name, "color": color} if name is not None else None
    return d


def _check_due_date(value: str | None) -> str | None:
    if value is None or not str(value).strip():
        return None
    d = parse_iso_date(value)
    if d is None:
        raise ValueError("due_date must be YYYY-MM-DD")
    return d.isoformat()


def _check_due_time(value: str | None) -> str | None:
    if value is None or not str(value).strip():
        return None
    if not is_time_of_day(value):
        raise ValueError("due_time must be HH:MM (24h)")
    return str(value).strip()[:5]


def _check_interval(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("repeat_interval must be an integer >= 1")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValueError("repeat_interval must be an integer >= 1") from None
    if n < 1:
        raise ValueError("repeat_interval must be an integer >= 1")
    return n


def _check_title(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("title must be a string")
    clean = value.strip()
    if not clean:
        raise ValueError("title is required")
    return clean


def _check_description(value: Any) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValueError("description must be a string")
    return value or None


def _check_choice(name: str, value: Any, allowed: frozenset[str]) -> str:
    if not isinstance(value, str) or value not in allowed:
        raise ValueError(f"{name} must be one of {sorted(allowed)}")
    return value


def _check_tag(conn: sqlite3.Connection, tag_id: str | None) -> str | None:
    if not tag_id:
        return None
    if not isinstance(tag_id, str):
        raise ValueError("tag_id must be a string")
    if conn.execute("SELECT 1 FROM tags WHERE id = ?", (tag_id,)).fetchone() is None:
        raise ValueError(f"Unknown tag: {tag_id}")
    return tag_id


def ensure_db() -> Path:
    """Bootstrap database on first run. Returns the database file path."""
    return init_database()


def create_task(
    title: str,
    *,
    description: str | None = None,
    due_date: str | None = None,
    due_time: str | None = None,
    priority: str = "medium",
    status: str = "pending",
    tag_id: str | None = None,
    repeat_type: str = "none",
    repeat_interval: int = 1,
    task_id: str | None = None,
) -> dict[str, Any]:
    """Create a single task definition. Uses ULID for id. Raises ValueError on invalid fields."""
    clean_title = _check_title(title)
    clean_description = _check_description(description)
    _check_choice("status", status, STATUSES)
    _check_choice("priority", priority, PRIORITIES)
    _check_choice("repeat_type", repeat_type or "none", REPEAT_TYPES)
    due = _check_due_date(due_date)
    at = _check_due_time(due_time)
    interval = _check_interval(repeat_interval)
    tid = task_id or _new_task_id()
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO tasks (
                id, title, description, due_date, due_time, priority, status, tag_id,
                repeat_type, repeat_interval, completed_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                tid, clean_title, clean_description, due, at, priority, status, _check_tag(conn, tag_id),
                repeat_type or "none", interval, now if status == "completed" else None, now, now,
            ),
        )
        conn.commit()
        logger.info("[task_service] created task %s repeat=%s/%s due=%s", tid, repeat_type or "none", interval, due)
        return get_task(tid)
    finally:
        conn.close()


def get_task(task_id: str) -> dict[str, Any] | None:
    """Return one task by id, or None."""
    conn = get_connection()
    try:
        row = conn.execute(_SELECT_TASK + " WHERE t.id = ?", (task_id,)).fetchone()
        return _task_row_to_dict(row) if row else None
    finally:
        conn.close()


def list_tasks(
    status: str | None = None,
    tag_id: str | None = None,
    due_from: str | None = None,
    due_to: str | None = None,
    repeating: bool | None = None,
    limit: int = 500,
) -> list[dict[str, Any]]:
    """List tasks, newest first.
    due_from / due_to are inclusive YYYY-MM-DD bounds on due_date (undated tasks are excluded when either is set).
    repeating: True = only recurring tasks, False = only one-off tasks.
    """
    sql = _SELECT_TASK + " WHERE 1=1"
    params: list[Any] = []
    if status:
        sql += " AND t.status = ?"
        params.append(_check_choice("status", status, STATUSES))
    if tag_id:
        sql += " AND t.tag_id = ?"
        params.append(tag_id)
    if due_from:
        sql += " AND t.due_date IS NOT NULL AND t.due_date >= ?"
        params.append(_check_due_date(due_from))
    if due_to:
        sql += " AND t.due_date IS NOT NULL AND t.due_date <= ?"
        params.append(_check_due_date(due_to))
    if repeating is True:
        sql += " AND t.repeat_type != 'none'"
    elif repeating is False:
        sql += " AND t.repeat_type = 'none'"
    sql += " ORDER BY t.created_at DESC, t.id DESC LIMIT ?"
    params.append(limit)
    conn = get_connection()
    try:
        return [_task_row_to_dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def update_task(
    task_id: str,
    *,
    title: str | None = None,
    description: str | None = _UNSET,
    due_date: str | None = _UNSET,
    due_time: str | None = _UNSET,
    priority: str | None = None,
    status: str | None = None,
    tag_id: str | None = _UNSET,
    repeat_type: str | None = None,
    repeat_interval: int | None = None,
) -> dict[str, Any] | None:
    """Update task fields. Only provided fields are changed; pass None to _UNSET-defaulted fields to clear them.
    status "completed" stamps completed_at, "pending" clears it. Returns None if the task does not exist.
    """
    if status is not None:
        _check_choice("status", status, STATUSES)
    if priority is not None:
        _check_choice("priority", priority, PRIORITIES)
    if repeat_type is not None:
        _check_choice("repeat_type", repeat_type, REPEAT_TYPES)
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None
        now = _now_iso()
        # Always touch updated_at
        updates: list[str] = ["updated_at = ?"]
        params: list[Any] = [now]
        if title is not None:
            updates.append("title = ?"); params.append(_check_title(title))
        if description is not _UNSET:
            updates.append("description = ?"); params.append(_check_description(description))
        if due_date is not _UNSET:
            updates.append("due_date = ?"); params.append(_check_due_date(due_date))
        if due_time is not _UNSET:
            updates.append("due_time = ?"); params.append(_check_due_time(due_time))
        if priority is not None:
            updates.append("priority = ?"); params.append(priority)
        if status is not None:
            updates.append("status = ?"); params.append(status)
            if status == "completed":
                updates.append("completed_at = ?"); params.append(now)
            elif status == "pending":
                updates.append("completed_at = NULL")
        if tag_id is not _UNSET:
            updates.append("tag_id = ?"); params.append(_check_tag(conn, tag_id))
        if repeat_type is not None:
            updates.append("repeat_type = ?"); params.append(repeat_type)
        if repeat_interval is not None:
            updates.append("repeat_interval = ?"); params.append(_check_interval(repeat_interval))
        params.append(task_id)
        conn.execute(f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
        logger.info("[task_service] updated task %s (%d field(s))", task_id, len(updates) - 1)
        return get_task(task_id)
    finally:
        conn.close()


def delete_task(task_id: str) -> bool:
    """Delete a task and its occurrence overrides. Returns True if deleted, False if not found."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return False
        conn.execute("DELETE FROM task_instances WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        logger.info("[task_service] deleted task %s", task_id)
        return True
    finally:
        conn.close()


def _resolve_today(today: date | str | None, config: AppConfig | None) -> date:
    if today is not None:
        d = parse_iso_date(today)
        if d is None:
            raise ValueError("today must be YYYY-MM-DD")
        return d
    return today_in_tz((config or load_config()).user_timezone)


def _query(where: str, params: list[Any]) -> list[dict[str, Any]]:
    conn = get_connection()
    try:
        rows = conn.execute(
            _SELECT_TASK + f" WHERE {where} ORDER BY t.due_date, t.due_time IS NULL, t.due_time, t.created_at",
            params,
        ).fetchall()
        return [_task_row_to_dict(r) for r in rows]
    finally:
        conn.close()


def today_tasks(today: date | str | None = None, *, config: AppConfig | None = None) -> list[dict[str, Any]]:
    """Tasks whose due_date is today (in the configured timezone unless given)."""
    d = _resolve_today(today, config)
    return _query("t.due_date = ?", [d.isoformat()])


def upcoming_tasks(today: date | str | None = None, *, config: AppConfig | None = None) -> list[dict[str, Any]]:
    """Not-completed tasks due today, every task due tomorrow, and not-completed tasks due in the rest of the next 7 days."""
    d = _resolve_today(today, config)
    today_s = d.isoformat()
    tomorrow_s = (d + timedelta(days=1)).isoformat()
    week_s = (d + timedelta(days=7)).isoformat()
    return _query(
        """t.due_date IS NOT NULL AND (
            (t.due_date = ? AND t.status != 'completed')
            OR t.due_date = ?
            OR (t.due_date > ? AND t.due_date <= ? AND t.status != 'completed')
        )""",
        [today_s, tomorrow_s, tomorrow_s, week_s],
    )


def overdue_tasks(today: date | str | None = None, *, config: AppConfig | None = None) -> list[dict[str, Any]]:
    """Tasks due before today that are not completed."""
    d = _resolve_today(today, config)
    return _query("t.due_date IS NOT NULL AND t.due_date < ? AND t.status != 'completed'", [d.isoformat()])
