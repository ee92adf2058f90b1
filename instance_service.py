"""
Instance service: per-occurrence overrides for tasks (completion status of one dated occurrence).
Sparse: a row exists only for occurrences someone has touched, at most one per (task_id, instance_date).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ulid import ULID

from database import get_connection
from date_utils import parse_iso_date

logger = logging.getLogger("instance_service")

INSTANCE_STATUSES = frozenset({"pending", "completed"})

_COLUMNS = "id, task_id, instance_date, status, completed_at, created_at"


def _new_id() -> str:
    return str(ULID())


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_date(value: str, name: str = "instance_date") -> str:
    d = parse_iso_date(value)
    if d is None:
        raise ValueError(f"{name} must be YYYY-MM-DD")
    return d.isoformat()


def list_instances(
    task_id: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> list[dict[str, Any]]:
    """Overrides, newest instance_date first. start/end are inclusive YYYY-MM-DD bounds."""
    sql = f"SELECT {_COLUMNS} FROM task_instances WHERE 1=1"
    params: list[Any] = []
    if task_id:
        sql += " AND task_id = ?"
        params.append(task_id)
    if start:
        sql += " AND instance_date >= ?"
        params.append(_check_date(start, "start"))
    if end:
        sql += " AND instance_date <= ?"
        params.append(_check_date(end, "end"))
    sql += " ORDER BY instance_date DESC, created_at DESC"
    conn = get_connection()
    try:
        return [dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def get_instance(instance_id: str) -> dict[str, Any] | None:
    conn = get_connection()
    try:
        row = conn.execute(f"SELECT {_COLUMNS} FROM task_instances WHERE id = ?", (instance_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_instance_for(task_id: str, instance_date: str) -> dict[str, Any] | None:
    """The override for one occurrence, or None."""
    conn = get_connection()
    try:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM task_instances WHERE task_id = ? AND instance_date = ?",
            (task_id, _check_date(instance_date)),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def save_instance(
    task_id: str,
    instance_date: str,
    status: str,
    *,
    instance_id: str | None = None,
    completed_at: str | None = None,
) -> dict[str, Any]:
    """
    Record the status of one occurrence. Updates by instance_id when given, otherwise inserts or
    updates the row for (task_id, instance_date). "completed" without completed_at is stamped now;
    "pending" always clears completed_at. Raises ValueError for bad status/date or unknown task/instance.
    """
    if status not in INSTANCE_STATUSES:
        raise ValueError(f"status must be one of {sorted(INSTANCE_STATUSES)}")
    day = _check_date(instance_date)
    stamp = (completed_at or _now_iso()) if status == "completed" else None
    conn = get_connection()
    try:
        if conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone() is None:
            raise ValueError(f"Unknown task: {task_id}")
        if instance_id:
            cur = conn.execute(
                "UPDATE task_instances SET status = ?, completed_at = ? WHERE id = ? AND task_id = ?",
                (status, stamp, instance_id, task_id),
            )
            if cur.rowcount == 0:
                raise ValueError(f"Unknown instance {instance_id} for task {task_id}")
            conn.commit()
            logger.info("[instance_service] updated instance %s -> %s", instance_id, status)
            return get_instance(instance_id)
        conn.execute(
            """INSERT INTO task_instances (id, task_id, instance_date, status, completed_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT (task_id, instance_date)
               DO UPDATE SET status = excluded.status, completed_at = excluded.completed_at""",
            (_new_id(), task_id, day, status, stamp, _now_iso()),
        )
        conn.commit()
        logger.info("[instance_service] saved %s on %s -> %s", task_id, day, status)
        return get_instance_for(task_id, day)
    finally:
        conn.close()


def toggle_instance(task_id: str, instance_date: str) -> dict[str, Any]:
    """Flip one occurrence between pending and completed. An untouched occurrence counts as pending."""
    current = get_instance_for(task_id, instance_date)
    new_status = "pending" if current and current["status"] == "completed" else "completed"
    return save_instance(
        task_id,
        instance_date,
        new_status,
        instance_id=current["id"] if current else None,
    )


def delete_instance(instance_id: str) -> bool:
    """Delete one override; the occurrence falls back to pending. Returns True if deleted."""
    conn = get_connection()
    try:
        cur = conn.execute("DELETE FROM task_instances WHERE id = ?", (instance_id,))
        conn.commit()
        if cur.rowcount == 0:
            return False
        logger.info("[instance_service] deleted instance %s", instance_id)
        return True
    finally:
        conn.close()
