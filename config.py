"""Configuration load/save for tasktide."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

CONFIG_PATH = Path(__file__).resolve().parent / "config.json"


class AppConfig(BaseModel):
    """Persisted application configuration. Passed explicitly to code that formats times or resolves 'today'."""

    debug: bool = Field(default=False, description="Log every API request and response status")
    database_path: str = Field(default="", description="Path to SQLite database file; empty = project dir / tasktide.db")
    web_ui_port: int = Field(default=8081, ge=1, le=65535, description="Port for the web UI and JSON API")
    user_timezone: str = Field(default="UTC", description="IANA timezone used for 'today' (e.g. America/New_York)")
    time_format: Literal["12h", "24h"] = Field(default="24h", description="How due times are displayed")
    week_starts_on: int = Field(default=0, ge=0, le=6, description="First day of the calendar week: 0=Monday .. 6=Sunday")

    def to_save_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        p = path or CONFIG_PATH
        if not p.exists():
            return cls()
        raw = json.loads(p.read_text())
        return cls.model_validate(raw)

    def save(self, path: Path | None = None) -> None:
        (path or CONFIG_PATH).write_text(json.dumps(self.to_save_dict(), indent=2))


def load() -> AppConfig:
    """Load config from disk. Convenience alias for AppConfig.load()."""
    return AppConfig.load()
