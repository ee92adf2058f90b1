"""Progress dashboard numbers: weekly completion, tag shares, habit heatmap."""

import pytest

import habit_service
import stats_service
import tag_service
import task_service


def test_weekly_progress_counts_tasks_by_due_date():
    task_service.create_task("Mon done", due_date="2024-03-04", status="completed")
    task_service.create_task("Mon open", due_date="2024-03-04")
    task_service.create_task("Wed open", due_date="2024-03-06")
    task_service.create_task("Next week", due_date="2024-03-11", status="completed")
    task_service.create_task("Undated", status="completed")

    week = stats_service.weekly_progress("2024-03-04")
    assert [d["day"] for d in week] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    assert week[0] == {"date": "2024-03-04", "day": "Mon", "completed": 1, "total": 2}
    assert week[2]["total"] == 1
    assert week[2]["completed"] == 0
    assert sum(d["total"] for d in week) == 3


def test_tag_distribution_shares_completed_tasks():
    work = tag_service.create_tag("Work", color="#112233")
    home = tag_service.create_tag("Home", color="#445566")
    for _ in range(2):
        task_service.create_task("w", tag_id=work["id"], status="completed")
    task_service.create_task("h", tag_id=home["id"], status="completed")
    task_service.create_task("loose", status="completed")
    task_service.create_task("open", tag_id=home["id"])

    dist = stats_service.tag_distribution()
    assert [(d["name"], d["count"], d["percentage"]) for d in dist] == [
        ("Work", 2, 50),
        ("Home", 1, 25),
        ("No Tag", 1, 25),
    ]
    assert dist[0]["color"] == "#112233"
    assert dist[2]["color"] == stats_service.NO_TAG_COLOR
    assert dist[2]["tag_id"] is None


def test_tag_distribution_empty():
    task_service.create_task("open")
    assert stats_service.tag_distribution() == []


def test_activity_heatmap_counts_completed_logs():
    a = habit_service.create_habit("A")
    b = habit_service.create_habit("B")
    habit_service.log_habit(a["id"], "completed", log_date="2024-03-10")
    habit_service.log_habit(b["id"], "completed", log_date="2024-03-10")
    habit_service.log_habit(a["id"], "skipped", log_date="2024-03-09")
    habit_service.log_habit(a["id"], "completed", log_date="2024-03-01")

    heat = stats_service.activity_heatmap("2024-03-10", days=7)
    assert [h["date"] for h in heat] == [f"2024-03-{d:02d}" for d in range(4, 11)]
    assert [h["count"] for h in heat] == [0, 0, 0, 0, 0, 0, 2]
    assert len(stats_service.activity_heatmap("2024-03-10")) == stats_service.HEATMAP_DAYS
    with pytest.raises(ValueError):
        stats_service.activity_heatmap("2024-03-10", days=0)


def test_progress_summary_uses_configured_week(app_config):
    app_config.week_starts_on = 6
    task_service.create_task("Sun", due_date="2024-03-03", status="completed")
    task_service.create_task("Sat", due_date="2024-03-09")
    habit_service.create_habit("Active")
    habit_service.create_habit("Paused", is_active=False)

    s = stats_service.progress_summary("2024-03-06", config=app_config)
    assert s["week_start"] == "2024-03-03"
    assert s["weekly"][0]["day"] == "Sun"
    assert s["completed_this_week"] == 1
    assert s["total_this_week"] == 2
    assert s["active_habits"] == 1
    assert s["heatmap"][-1]["date"] == "2024-03-06"
