"""
Storage: SQLite schema and connection helpers

One file holds every FLUX table. Tables are created on first connection, so
a fresh checkout (or a test's temporary file) needs no migration step.

    tasks              captured tasks and their shards (parent_task_id)
    user_profiles      per-user personalization (keyword lists as JSON)
    projects           user-scoped project names
    known_people       user-scoped people names
    task_corrections   append-only log of user overrides to extracted fields

The location is data/flux.db unless FLUX_DB_PATH is set.

Dependencies:
    - sqlite3 (stdlib)
    - uuid (stdlib)
"""

import json
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from flux import PROJECT_ROOT

DB_PATH = Path(os.environ.get("FLUX_DB_PATH") or PROJECT_ROOT / "data" / "flux.db")


def get_connection() -> sqlite3.Connection:
    """Get database connection, creating tables if needed."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            content TEXT NOT NULL,
            title TEXT,
            description TEXT,
            status TEXT DEFAULT 'inbox' CHECK(status IN ('inbox', 'inbox_review', 'deferred', 'complete')),
            gravity TEXT CHECK(gravity IN ('Low', 'Standard', 'High') OR gravity IS NULL),
            project TEXT,
            due_date TEXT,
            tags TEXT DEFAULT '[]',
            confidence REAL,
            is_ambiguous INTEGER DEFAULT 0,
            parent_task_id TEXT,
            shard_order INTEGER,
            estimated_minutes INTEGER,
            created_at DATETIME NOT NULL,
            updated_at DATETIME,
            completed_at DATETIME
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS user_profiles (
            id TEXT PRIMARY KEY,
            credential TEXT,
            display_name TEXT,
            high_gravity_keywords TEXT,
            low_gravity_keywords TEXT,
            deepgram_keywords TEXT,
            timezone TEXT DEFAULT 'UTC',
            created_at DATETIME NOT NULL,
            updated_at DATETIME
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            color TEXT,
            created_at DATETIME NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS known_people (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            context TEXT,
            created_at DATETIME NOT NULL
        )
    """)

    # Integer key keeps insertion order stable when timestamps collide
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS task_corrections (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id TEXT NOT NULL,
            field_name TEXT NOT NULL,
            original_value TEXT,
            corrected_value TEXT,
            original_transcript TEXT,
            created_at DATETIME NOT NULL
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_task_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_people_user ON known_people(user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_corrections_task ON task_corrections(task_id)")

    conn.commit()
    return conn


def row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    """Convert sqlite3.Row to dictionary."""
    if row is None:
        return None
    return dict(row)


def generate_id() -> str:
    """Generate a short unique ID."""
    return uuid.uuid4().hex[:12]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def decode_json_list(raw: Any) -> Optional[list]:
    """Parse a stored JSON list. Returns None when the value is absent or not a list."""
    if raw is None:
        return None
    if isinstance(raw, list):
        return raw
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, list) else None


def task_from_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    """Task row with tags as a list and is_ambiguous as a bool."""
    task = row_to_dict(row)
    if task is None:
        return None
    task["tags"] = decode_json_list(task.get("tags")) or []
    task["is_ambiguous"] = bool(task.get("is_ambiguous"))
    return task
