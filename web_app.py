"""JSON API for tasktide: tasks, tags, habits, occurrence overrides, calendar views and progress stats."""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from config import AppConfig, load as load_config
from date_utils import format_date_friendly, format_time, resolve_task_dates, to_date, today_in_tz
from habit_service import (
    create_habit,
    delete_habit,
    get_habit,
    list_habit_logs,
    list_habits,
    log_habit,
    update_habit,
)
from instance_service import delete_instance, list_instances, save_instance, toggle_instance
from recurrence import expand, month_bounds, tasks_for_date, tasks_for_month, tasks_for_week, week_start_for
from stats_service import progress_summary
from tag_service import create_tag, delete_tag, get_tag, list_tags, update_tag
from task_service import (
    _UNSET,
    create_task,
    delete_task,
    get_task,
    list_tasks,
    overdue_tasks,
    today_tasks,
    upcoming_tasks,
    update_task,
)

app = FastAPI(title="Tasktide", version="1.0")
logger = logging.getLogger("tasktide.api")

# Enough to hold every task definition of one user
_SNAPSHOT_LIMIT = 100_000


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """When config.debug is True, log API request method and path."""
    try:
        debug = load_config().debug
    except (OSError, ValueError) as e:
        # Unreadable config.json: serve without request logging
        logger.warning("[API] could not read config: %s", e)
        debug = False
    if debug:
        qs = request.url.query
        logger.warning("[API] %s %s%s", request.method, request.url.path, "?" + qs if qs else "")
    response = await call_next(request)
    if debug:
        logger.warning("[API] %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


# --- API schemas ---


class ConfigUpdate(BaseModel):
    debug: bool = False
    database_path: str = ""
    web_ui_port: int = Field(8081, ge=1, le=65535)
    user_timezone: str = "UTC"
    time_format: str = Field("24h", pattern="^(12h|24h)$")
    week_starts_on: int = Field(0, ge=0, le=6)


class InstanceBody(BaseModel):
    """Status of one occurrence. id updates an existing override; otherwise (task_id, instance_date) is upserted."""
    task_id: str
    instance_date: str
    status: str = "completed"
    id: str | None = None
    completed_at: str | None = None


class ToggleBody(BaseModel):
    task_id: str
    instance_date: str


class HabitLogBody(BaseModel):
    """One day's outcome for a habit. log_date defaults to today in the configured timezone."""
    status: str = "completed"
    log_date: str | None = None
    notes: str | None = None


# --- Config ---


@app.get("/api/config", response_model=ConfigUpdate)
def get_config() -> ConfigUpdate:
    c = load_config()
    return ConfigUpdate(**c.to_save_dict())


@app.put("/api/config")
def put_config(body: ConfigUpdate) -> dict[str, str]:
    c = AppConfig.model_validate(body.model_dump())
    c.save()
    return {"status": "saved"}


# --- Tasks ---


@app.get("/api/tasks")
def api_list_tasks(
    status: str | None = None,
    tag_id: str | None = None,
    due_from: str | None = None,
    due_to: str | None = None,
    repeating: bool | None = None,
    limit: int = 500,
):
    try:
        return list_tasks(
            status=status,
            tag_id=tag_id,
            due_from=due_from,
            due_to=due_to,
            repeating=repeating,
            limit=min(limit, 1000),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("api_list_tasks failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/tasks", status_code=201)
def api_create_task(body: dict):
    body = resolve_task_dates(body, load_config().user_timezone)
    try:
        return create_task(
            body.get("title") or "",
            description=body.get("description") or None,
            due_date=body.get("due_date") or None,
            due_time=body.get("due_time") or None,
            priority=body.get("priority") or "medium",
            status=body.get("status") or "pending",
            tag_id=body.get("tag_id") or None,
            repeat_type=body.get("repeat_type") or "none",
            repeat_interval=body.get("repeat_interval") if body.get("repeat_interval") is not None else 1,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/tasks/today")
def api_today_tasks():
    return today_tasks(config=load_config())


@app.get("/api/tasks/upcoming")
def api_upcoming_tasks():
    return upcoming_tasks(config=load_config())


@app.get("/api/tasks/overdue")
def api_overdue_tasks():
    return overdue_tasks(config=load_config())


@app.get("/api/tasks/{task_id}")
def api_get_task(task_id: str):
    t = get_task(task_id)
    if t is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return t


@app.put("/api/tasks/{task_id}")
def api_update_task(task_id: str, body: dict):
    body = resolve_task_dates(body, load_config().user_timezone)
    try:
        t = update_task(
            task_id,
            title=body.get("title"),
            description=body["description"] if "description" in body else _UNSET,
            due_date=(body["due_date"] or None) if "due_date" in body else _UNSET,
            due_time=(body["due_time"] or None) if "due_time" in body else _UNSET,
            priority=body.get("priority"),
            status=body.get("status"),
            tag_id=(body["tag_id"] or None) if "tag_id" in body else _UNSET,
            repeat_type=body.get("repeat_type"),
            repeat_interval=body.get("repeat_interval"),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if t is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return t


@app.delete("/api/tasks/{task_id}")
def api_delete_task(task_id: str):
    if not delete_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


# --- Tags ---


@app.get("/api/tags")
def api_list_tags():
    return list_tags()


@app.post("/api/tags", status_code=201)
def api_create_tag(body: dict):
    try:
        return create_tag(body.get("name") or "", color=body.get("color"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/tags/{tag_id}")
def api_get_tag(tag_id: str):
    t = get_tag(tag_id)
    if t is None:
        raise HTTPException(status_code=404, detail="Tag not found")
    return t


@app.put("/api/tags/{tag_id}")
def api_update_tag(tag_id: str, body: dict):
    try:
        t = update_tag(tag_id, name=body.get("name"), color=body.get("color"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if t is None:
        raise HTTPException(status_code=404, detail="Tag not found")
    return t


@app.delete("/api/tags/{tag_id}")
def api_delete_tag(tag_id: str):
    if not delete_tag(tag_id):
        raise HTTPException(status_code=404, detail="Tag not found")
    return {"status": "deleted"}


# --- Habits ---


@app.get("/api/habits")
def api_list_habits(include_inactive: bool = False):
    return list_habits(active_only=not include_inactive)


@app.post("/api/habits", status_code=201)
def api_create_habit(body: dict):
    try:
        return create_habit(
            body.get("name") or "",
            description=body.get("description") or None,
            frequency=body.get("frequency") or "daily",
            frequency_days=body.get("frequency_days"),
            preferred_time=body.get("preferred_time") or None,
            tag_id=body.get("tag_id") or None,
            is_active=body.get("is_active", True) is not False,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/habits/{habit_id}")
def api_get_habit(habit_id: str):
    h = get_habit(habit_id)
    if h is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return h


@app.put("/api/habits/{habit_id}")
def api_update_habit(habit_id: str, body: dict):
    try:
        h = update_habit(
            habit_id,
            name=body.get("name"),
            description=body["description"] if "description" in body else _UNSET,
            frequency=body.get("frequency"),
            frequency_days=body["frequency_days"] if "frequency_days" in body else _UNSET,
            preferred_time=(body["preferred_time"] or None) if "preferred_time" in body else _UNSET,
            tag_id=(body["tag_id"] or None) if "tag_id" in body else _UNSET,
            is_active=body.get("is_active"),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if h is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return h


@app.delete("/api/habits/{habit_id}")
def api_delete_habit(habit_id: str):
    if not delete_habit(habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"status": "deleted"}


@app.get("/api/habits/{habit_id}/logs")
def api_list_habit_logs(habit_id: str, start: str | None = None, end: str | None = None):
    if get_habit(habit_id) is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    try:
        return list_habit_logs(habit_id=habit_id, start=start, end=end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/habits/{habit_id}/logs")
def api_log_habit(habit_id: str, body: HabitLogBody):
    if get_habit(habit_id) is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    try:
        return log_habit(habit_id, body.status, log_date=body.log_date, notes=body.notes, config=load_config())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Occurrence overrides ---


@app.get("/api/instances")
def api_list_instances(task_id: str | None = None, start: str | None = None, end: str | None = None):
    try:
        return list_instances(task_id=task_id, start=start, end=end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/instances")
def api_save_instance(body: InstanceBody):
    try:
        return save_instance(
            body.task_id,
            body.instance_date,
            body.status,
            instance_id=body.id,
            completed_at=body.completed_at,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/instances/toggle")
def api_toggle_instance(body: ToggleBody):
    try:
        return toggle_instance(body.task_id, body.instance_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/instances/{instance_id}")
def api_delete_instance(instance_id: str):
    if not delete_instance(instance_id):
        raise HTTPException(status_code=404, detail="Instance not found")
    return {"status": "deleted"}


# --- Progress stats ---


@app.get("/api/stats")
def api_stats(today: str | None = None):
    """Weekly completion, completed share per tag, habit heatmap and KPIs. today defaults to the configured timezone."""
    try:
        return progress_summary(today, config=load_config())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Calendar views ---


def _snapshots(start: date, end: date) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Current task definitions plus the overrides that can match inside [start, end]."""
    tasks = list_tasks(limit=_SNAPSHOT_LIMIT)
    instances = list_instances(start=start.isoformat(), end=end.isoformat()) if start <= end else []
    return tasks, instances


def _decorate(occurrences: list[dict[str, Any]], config: AppConfig) -> list[dict[str, Any]]:
    today = today_in_tz(config.user_timezone)
    for occ in occurrences:
        occ["due_time_display"] = format_time(occ.get("due_time"), config.time_format)
        occ["instance_date_display"] = format_date_friendly(occ["instance_date"], today)
    return occurrences


def _parse_day(value: str) -> date:
    try:
        return to_date(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/occurrences")
def api_occurrences(start: str, end: str):
    """Occurrences in [start, end] inclusive. end before start returns []."""
    s, e = _parse_day(start), _parse_day(end)
    tasks, instances = _snapshots(s, e)
    return _decorate(expand(tasks, instances, s, e), load_config())


@app.get("/api/calendar/day/{day}")
def api_calendar_day(day: str):
    d = _parse_day(day)
    tasks, instances = _snapshots(d, d)
    return _decorate(tasks_for_date(tasks, instances, d), load_config())


@app.get("/api/calendar/week/{day}")
def api_calendar_week(day: str):
    """The week containing day, starting on the configured first weekday."""
    c = load_config()
    first = week_start_for(_parse_day(day), c.week_starts_on)
    tasks, instances = _snapshots(first, first + timedelta(days=6))
    return {"week_start": first.isoformat(), "occurrences": _decorate(tasks_for_week(tasks, instances, first), c)}


@app.get("/api/calendar/month/{day}")
def api_calendar_month(day: str):
    """The month containing day."""
    d = _parse_day(day)
    first, last = month_bounds(d)
    tasks, instances = _snapshots(first, last)
    return {
        "month": first.strftime("%Y-%m"),
        "occurrences": _decorate(tasks_for_month(tasks, instances, d), load_config()),
    }


def main() -> None:
    import uvicorn
    config = load_config()
    uvicorn.run(
        "web_app:app",
        host="0.0.0.0",
        port=config.web_ui_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
