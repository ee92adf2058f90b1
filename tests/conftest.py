"""Shared fixtures: every test gets its own config file and SQLite database."""

from pathlib import Path

import pytest

import config
from config import AppConfig


@pytest.fixture(autouse=True)
def app_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    """Point config.json and the database at a temporary directory."""
    config_path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    cfg = AppConfig(database_path=str(tmp_path / "test.db"))
    cfg.save()
    return cfg


def make_task(task_id: str, **fields):
    """A task definition row as the expander receives it."""
    task = {
        "id": task_id,
        "title": f"Task {task_id}",
        "priority": "medium",
        "status": "pending",
        "due_date": None,
        "due_time": None,
        "repeat_type": "none",
        "repeat_interval": 1,
    }
    task.update(fields)
    return task
