"""
Stats service: the numbers behind the progress dashboard.
Tasks count on their due_date with their own status; habit activity counts completed habit logs.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from config import AppConfig, load as load_config
from database import get_connection
from date_utils import to_date, today_in_tz
from recurrence import week_start_for

logger = logging.getLogger("stats_service")

NO_TAG_NAME = "No Tag"
NO_TAG_COLOR = "#9ca3af"

_DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

HEATMAP_DAYS = 84


def weekly_progress(week_start: date | str) -> list[dict[str, Any]]:
    """Completed vs total tasks due on each of the 7 days starting at week_start."""
    first = to_date(week_start)
    last = first + timedelta(days=6)
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT due_date, COUNT(*) AS total,
                      SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed
               FROM tasks WHERE due_date >= ? AND due_date <= ?
               GROUP BY due_date""",
            (first.isoformat(), last.isoformat()),
        ).fetchall()
    finally:
        conn.close()
    by_day = {r["due_date"]: r for r in rows}
    out: list[dict[str, Any]] = []
    for i in range(7):
        d = first + timedelta(days=i)
        r = by_day.get(d.isoformat())
        out.append({
            "date": d.isoformat(),
            "day": _DAY_NAMES[d.weekday()],
            "completed": r["completed"] if r else 0,
            "total": r["total"] if r else 0,
        })
    return out


def tag_distribution() -> list[dict[str, Any]]:
    """
    Completed tasks grouped by tag, largest share first. Untagged tasks form one "No Tag" group.
    percentage is the rounded share of all completed tasks; it is 0 when nothing is completed.
    """
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT g.id AS tag_id, g.name AS name, g.color AS color, COUNT(*) AS count
               FROM tasks t LEFT JOIN tags g ON g.id = t.tag_id
               WHERE t.status = 'completed'
               GROUP BY g.id""",
        ).fetchall()
    finally:
        conn.close()
    total = sum(r["count"] for r in rows)
    out = [
        {
            "tag_id": r["tag_id"],
            "name": r["name"] if r["tag_id"] is not None else NO_TAG_NAME,
            "color": r["color"] if r["tag_id"] is not None else NO_TAG_COLOR,
            "count": r["count"],
            "percentage": round(r["count"] * 100 / total) if total else 0,
        }
        for r in rows
    ]
    return sorted(out, key=lambda e: (-e["count"], e["name"].lower()))


def activity_heatmap(end: date | str, days: int = HEATMAP_DAYS) -> list[dict[str, Any]]:
    """Completed habit logs per day for the `days` days ending on `end` (inclusive), oldest first."""
    if days < 1:
        raise ValueError("days must be >= 1")
    last = to_date(end)
    first = last - timedelta(days=days - 1)
    conn = get_connection()
    try:
        rows = conn.execute(
            """SELECT log_date, COUNT(*) AS count FROM habit_logs
               WHERE status = 'completed' AND log_date >= ? AND log_date <= ?
               GROUP BY log_date""",
            (first.isoformat(), last.isoformat()),
        ).fetchall()
    finally:
        conn.close()
    counts = {r["log_date"]: r["count"] for r in rows}
    return [
        {"date": d.isoformat(), "count": counts.get(d.isoformat(), 0)}
        for d in (first + timedelta(days=i) for i in range(days))
    ]


def _active_habit_count() -> int:
    conn = get_connection()
    try:
        return conn.execute("SELECT COUNT(*) FROM habits WHERE is_active = 1").fetchone()[0]
    finally:
        conn.close()


def progress_summary(today: date | str | None = None, *, config: AppConfig | None = None) -> dict[str, Any]:
    """Everything the progress dashboard shows, for the week containing today (configured first weekday)."""
    config = config or load_config()
    day = to_date(today) if today is not None else today_in_tz(config.user_timezone)
    first = week_start_for(day, config.week_starts_on)
    weekly = weekly_progress(first)
    summary = {
        "today": day.isoformat(),
        "week_start": first.isoformat(),
        "weekly": weekly,
        "tags": tag_distribution(),
        "heatmap": activity_heatmap(day),
        "completed_this_week": sum(d["completed"] for d in weekly),
        "total_this_week": sum(d["total"] for d in weekly),
        "active_habits": _active_habit_count(),
    }
    logger.debug("[stats_service] summary for week %s: %s/%s completed",
                 summary["week_start"], summary["completed_this_week"], summary["total_this_week"])
    return summary
