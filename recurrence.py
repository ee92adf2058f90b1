"""
Recurrence expansion: turn task definitions plus sparse per-occurrence overrides into the
concrete occurrences that fall inside an inclusive date window.

Pure functions only. Tasks and overrides are plain dicts as returned by task_service and
instance_service; nothing here touches the database or reads configuration.

Monthly cadence counts whole months from the first enumerated date and clamps to the last
day of shorter months: Jan 31 -> Feb 29 (2024) -> Mar 31 -> Apr 30. Each step is computed
from that first date, so one clamped month never shifts the ones after it.
"""
from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date, timedelta
from typing import Any, Iterable, Iterator

from date_utils import parse_iso_date, to_date

logger = logging.getLogger("recurrence")

REPEAT_TYPES = frozenset({"daily", "weekly", "monthly"})
DEFAULT_INSTANCE_STATUS = "pending"


def add_months(start: date, months: int) -> date:
    """Return start shifted by whole months, clamping the day to the target month's length."""
    total = start.month - 1 + months
    year, month = start.year + total // 12, total % 12 + 1
    return date(year, month, min(start.day, monthrange(year, month)[1]))


def _repeat_type(task: dict[str, Any]) -> str | None:
    """Cadence name if the task recurs; None for none/absent/unrecognized values."""
    raw = task.get("repeat_type")
    if not isinstance(raw, str):
        return None
    kind = raw.strip().lower()
    return kind if kind in REPEAT_TYPES else None


def _repeat_interval(task: dict[str, Any]) -> int:
    """repeat_interval as an int >= 1 (missing, zero, negative or garbage -> 1)."""
    raw = task.get("repeat_interval")
    if raw is None:
        return 1
    try:
        n = int(raw)
    except (TypeError, ValueError):
        return 1
    return max(1, n)


def _cadence_dates(repeat_type: str, interval: int, start: date, end: date) -> Iterator[date]:
    """Dates from start (inclusive) to end (inclusive) stepping by the cadence."""
    step = 0
    current = start
    while current <= end:
        yield current
        step += 1
        try:
            if repeat_type == "daily":
                current = start + timedelta(days=interval * step)
            elif repeat_type == "weekly":
                current = start + timedelta(days=7 * interval * step)
            else:
                current = add_months(start, interval * step)
        except (OverflowError, ValueError):
            # Stepped past date.max
            return


def _index_overrides(overrides: Iterable[dict[str, Any]]) -> dict[tuple[Any, str], dict[str, Any]]:
    """Map (task_id, YYYY-MM-DD) -> override. The first row wins if a pair repeats."""
    index: dict[tuple[Any, str], dict[str, Any]] = {}
    for inst in overrides or []:
        d = parse_iso_date(inst.get("instance_date"))
        if d is None:
            continue
        index.setdefault((inst.get("task_id"), d.isoformat()), inst)
    return index


def _occurrence(task: dict[str, Any], day: str, index: dict[tuple[Any, str], dict[str, Any]]) -> dict[str, Any]:
    inst = index.get((task.get("id"), day))
    occ = dict(task)
    occ["instance_date"] = day
    if inst is None:
        occ["instance_id"] = None
        occ["instance_status"] = DEFAULT_INSTANCE_STATUS
        occ["instance_completed_at"] = None
    else:
        occ["instance_id"] = inst.get("id")
        occ["instance_status"] = inst.get("status") or DEFAULT_INSTANCE_STATUS
        occ["instance_completed_at"] = inst.get("completed_at")
    return occ


def expand(
    tasks: Iterable[dict[str, Any]],
    overrides: Iterable[dict[str, Any]],
    window_start: date | str,
    window_end: date | str,
) -> list[dict[str, Any]]:
    """
    Occurrences of tasks within [window_start, window_end], both inclusive, sorted by instance_date.

    - Non-recurring tasks (repeat_type none, absent or unrecognized) appear once, on due_date,
      if it is inside the window. Undated non-recurring tasks never appear.
    - Recurring tasks start at max(due_date, window_start); an undated one starts at window_start.
    - Every occurrence carries instance_id / instance_status / instance_completed_at from the
      override for (task id, date), or None / "pending" / None when there is none.
    - A reversed window returns []. A task with an unparsable due_date is skipped.

    Raises ValueError only when a window bound is not a date.
    """
    start = to_date(window_start)
    end = to_date(window_end)
    if end < start:
        logger.debug("Reversed window %s..%s; no occurrences", start, end)
        return []
    index = _index_overrides(overrides)
    out: list[dict[str, Any]] = []
    for task in tasks or []:
        raw_due = task.get("due_date")
        due = parse_iso_date(raw_due)
        if raw_due and due is None:
            logger.warning("Skipping task %s: unparsable due_date %r", task.get("id"), raw_due)
            continue
        kind = _repeat_type(task)
        if kind is None:
            if due is not None and start <= due <= end:
                out.append(_occurrence(task, due.isoformat(), index))
            continue
        anchor = due or start
        first = max(anchor, start)
        for d in _cadence_dates(kind, _repeat_interval(task), first, end):
            out.append(_occurrence(task, d.isoformat(), index))
    # sorted() is stable: same-day occurrences keep generation order
    return sorted(out, key=lambda o: o["instance_date"])


def tasks_for_date(
    tasks: Iterable[dict[str, Any]],
    overrides: Iterable[dict[str, Any]],
    day: date | str,
) -> list[dict[str, Any]]:
    """Occurrences landing on a single day."""
    return expand(tasks, overrides, day, day)


def tasks_for_week(
    tasks: Iterable[dict[str, Any]],
    overrides: Iterable[dict[str, Any]],
    week_start: date | str,
) -> list[dict[str, Any]]:
    """Occurrences in the 7 days starting at week_start."""
    first = to_date(week_start)
    return expand(tasks, overrides, first, first + timedelta(days=6))


def tasks_for_month(
    tasks: Iterable[dict[str, Any]],
    overrides: Iterable[dict[str, Any]],
    month: date | str,
) -> list[dict[str, Any]]:
    """Occurrences from the first to the last day of the month containing `month`."""
    first, last = month_bounds(month)
    return expand(tasks, overrides, first, last)


def month_bounds(day: date | str) -> tuple[date, date]:
    """First and last day of the month containing day."""
    d = to_date(day)
    return d.replace(day=1), d.replace(day=monthrange(d.year, d.month)[1])


def week_start_for(day: date | str, first_weekday: int = 0) -> date:
    """Start of the week containing day. first_weekday: 0=Monday .. 6=Sunday."""
    d = to_date(day)
    return d - timedelta(days=(d.weekday() - first_weekday) % 7)
