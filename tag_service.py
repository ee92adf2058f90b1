"""
Tag service: CRUD for tags. Tasks and habits reference at most one tag each through their tag_id.
"""
from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime, timezone
from typing import Any

from ulid import ULID

from database import get_connection

logger = logging.getLogger("tag_service")

DEFAULT_COLOR = "#6b7280"
_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _new_id() -> str:
    return str(ULID())


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip().lstrip("#").strip()
    if not cleaned:
        raise ValueError("Tag name is required.")
    return cleaned


def _clean_color(color: str | None) -> str:
    value = (color or "").strip() or DEFAULT_COLOR
    if not _HEX_COLOR.match(value):
        raise ValueError("color must be a hex value like #abc or #aabbcc")
    return value.lower()


def _name_taken(conn: sqlite3.Connection, name: str, exclude_id: str | None = None) -> bool:
    row = conn.execute(
        "SELECT id FROM tags WHERE LOWER(name) = LOWER(?) AND (? IS NULL OR id != ?)",
        (name, exclude_id, exclude_id),
    ).fetchone()
    return row is not None


def create_tag(name: str, *, color: str | None = None, tag_id: str | None = None) -> dict[str, Any]:
    """Create a tag. Names are unique regardless of case."""
    clean = _clean_name(name)
    col = _clean_color(color)
    tid = tag_id or _new_id()
    conn = get_connection()
    try:
        if _name_taken(conn, clean):
            raise ValueError(f"A tag named \"{clean}\" already exists.")
        conn.execute(
            "INSERT INTO tags (id, name, color, created_at) VALUES (?, ?, ?, ?)",
            (tid, clean, col, _now_iso()),
        )
        conn.commit()
        logger.info("[tag_service] created tag %s (%s)", tid, clean)
        return get_tag(tid)
    finally:
        conn.close()


def list_tags() -> list[dict[str, Any]]:
    """All tags ordered by name."""
    conn = get_connection()
    try:
        rows = conn.execute("SELECT id, name, color, created_at FROM tags ORDER BY name COLLATE NOCASE").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def get_tag(tag_id: str) -> dict[str, Any] | None:
    """Get tag by id."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT id, name, color, created_at FROM tags WHERE id = ?", (tag_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def update_tag(tag_id: str, *, name: str | None = None, color: str | None = None) -> dict[str, Any] | None:
    """Rename or recolor a tag. Returns updated tag or None if not found."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM tags WHERE id = ?", (tag_id,)).fetchone()
        if not row:
            return None
        updates: list[str] = []
        params: list[Any] = []
        if name is not None:
            clean = _clean_name(name)
            if _name_taken(conn, clean, exclude_id=tag_id):
                raise ValueError(f"A tag named \"{clean}\" already exists.")
            updates.append("name = ?")
            params.append(clean)
        if color is not None:
            updates.append("color = ?")
            params.append(_clean_color(color))
        if updates:
            params.append(tag_id)
            conn.execute(f"UPDATE tags SET {', '.join(updates)} WHERE id = ?", params)
            conn.commit()
            logger.info("[tag_service] updated tag %s (%d field(s))", tag_id, len(updates))
        return get_tag(tag_id)
    finally:
        conn.close()


def delete_tag(tag_id: str) -> bool:
    """Delete a tag and clear it from tasks and habits. Returns True if deleted."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM tags WHERE id = ?", (tag_id,)).fetchone()
        if not row:
            return False
        conn.execute("UPDATE tasks SET tag_id = NULL WHERE tag_id = ?", (tag_id,))
        conn.execute("UPDATE habits SET tag_id = NULL WHERE tag_id = ?", (tag_id,))
        conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        conn.commit()
        logger.info("[tag_service] deleted tag %s", tag_id)
        return True
    finally:
        conn.close()
