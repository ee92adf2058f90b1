"""Task store: CRUD, validation and the today/upcoming/overdue filters."""

import pytest

import instance_service
import task_service
from tag_service import create_tag


def test_create_and_get_defaults():
    t = task_service.create_task("  Water plants  ")
    assert t["title"] == "Water plants"
    assert t["priority"] == "medium"
    assert t["status"] == "pending"
    assert t["repeat_type"] == "none"
    assert t["repeat_interval"] == 1
    assert t["tag"] is None
    assert t["completed_at"] is None
    assert task_service.get_task(t["id"]) == t


def test_create_with_tag_embeds_name_and_color():
    tag = create_tag("Home", color="#22c55e")
    t = task_service.create_task("Laundry", tag_id=tag["id"], due_date="2024-03-01", due_time="18:30")
    assert t["tag"] == {"name": "Home", "color": "#22c55e"}
    assert t["due_time"] == "18:30"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"priority": "urgent"},
        {"status": "done"},
        {"repeat_type": "yearly"},
        {"repeat_interval": 0},
        {"repeat_interval": "two"},
        {"due_date": "03/01/2024"},
        {"due_time": "25:00"},
        {"tag_id": "no-such-tag"},
    ],
)
def test_create_rejects_invalid_fields(kwargs):
    with pytest.raises(ValueError):
        task_service.create_task("Bad", **kwargs)


def test_create_requires_title():
    with pytest.raises(ValueError):
        task_service.create_task("   ")


def test_create_completed_stamps_completed_at():
    t = task_service.create_task("Done already", status="completed")
    assert t["completed_at"]


def test_list_tasks_filters():
    daily = task_service.create_task("Daily", due_date="2024-03-01", repeat_type="daily")
    once = task_service.create_task("Once", due_date="2024-03-20")
    undated = task_service.create_task("Someday")
    task_service.update_task(once["id"], status="completed")

    assert {t["id"] for t in task_service.list_tasks()} == {daily["id"], once["id"], undated["id"]}
    assert [t["id"] for t in task_service.list_tasks(repeating=True)] == [daily["id"]]
    assert {t["id"] for t in task_service.list_tasks(repeating=False)} == {once["id"], undated["id"]}
    assert [t["id"] for t in task_service.list_tasks(status="completed")] == [once["id"]]
    assert [t["id"] for t in task_service.list_tasks(due_from="2024-03-10", due_to="2024-03-31")] == [once["id"]]
    assert len(task_service.list_tasks(limit=1)) == 1


def test_update_only_changes_given_fields():
    t = task_service.create_task("Read", description="Chapter 3", due_date="2024-03-01", due_time="08:00")
    out = task_service.update_task(t["id"], title="Read more")
    assert out["title"] == "Read more"
    assert out["description"] == "Chapter 3"
    assert out["due_date"] == "2024-03-01"
    assert out["due_time"] == "08:00"


def test_update_clears_nullable_fields():
    tag = create_tag("Work")
    t = task_service.create_task("Report", description="Q1", due_date="2024-03-01", tag_id=tag["id"])
    out = task_service.update_task(t["id"], description=None, due_date=None, tag_id=None)
    assert out["description"] is None
    assert out["due_date"] is None
    assert out["tag"] is None


def test_update_status_stamps_and_clears_completed_at():
    t = task_service.create_task("Run")
    done = task_service.update_task(t["id"], status="completed")
    assert done["completed_at"]
    again = task_service.update_task(t["id"], status="pending")
    assert again["completed_at"] is None


def test_update_cadence():
    t = task_service.create_task("Gym", due_date="2024-03-01")
    out = task_service.update_task(t["id"], repeat_type="weekly", repeat_interval=2)
    assert out["repeat_type"] == "weekly"
    assert out["repeat_interval"] == 2
    with pytest.raises(ValueError):
        task_service.update_task(t["id"], repeat_interval=-1)


def test_update_missing_task_returns_none():
    assert task_service.update_task("nope", title="x") is None


def test_delete_removes_task_and_overrides():
    t = task_service.create_task("Stretch", due_date="2024-03-01", repeat_type="daily")
    instance_service.save_instance(t["id"], "2024-03-02", "completed")
    assert task_service.delete_task(t["id"]) is True
    assert task_service.get_task(t["id"]) is None
    assert instance_service.list_instances(task_id=t["id"]) == []
    assert task_service.delete_task(t["id"]) is False


def test_today_upcoming_overdue():
    today = "2024-03-10"
    due_today = task_service.create_task("Today", due_date="2024-03-10")
    done_today = task_service.create_task("Today done", due_date="2024-03-10", status="completed")
    tomorrow_done = task_service.create_task("Tomorrow done", due_date="2024-03-11", status="completed")
    in_five = task_service.create_task("In five", due_date="2024-03-15")
    in_five_done = task_service.create_task("In five done", due_date="2024-03-15", status="completed")
    in_eight = task_service.create_task("In eight", due_date="2024-03-18")
    late = task_service.create_task("Late", due_date="2024-03-01")
    late_done = task_service.create_task("Late done", due_date="2024-03-01", status="completed")
    task_service.create_task("Undated")

    assert {t["id"] for t in task_service.today_tasks(today)} == {due_today["id"], done_today["id"]}
    assert [t["id"] for t in task_service.upcoming_tasks(today)] == [due_today["id"], tomorrow_done["id"], in_five["id"]]
    assert [t["id"] for t in task_service.overdue_tasks(today)] == [late["id"]]
    assert in_five_done["id"] not in {t["id"] for t in task_service.upcoming_tasks(today)}
    assert in_eight["id"] not in {t["id"] for t in task_service.upcoming_tasks(today)}
    assert late_done["id"] not in {t["id"] for t in task_service.overdue_tasks(today)}


def test_today_defaults_to_configured_timezone(app_config):
    from date_utils import today_in_tz

    t = task_service.create_task("Now", due_date=today_in_tz(app_config.user_timezone).isoformat())
    assert [x["id"] for x in task_service.today_tasks(config=app_config)] == [t["id"]]
