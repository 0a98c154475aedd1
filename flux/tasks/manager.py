"""
Tool: Task Manager
Purpose: CRUD operations for captured tasks, shards and corrections

This provides task lifecycle management for the capture inbox:
- Store tasks produced by voice or text capture
- Serve small energy-matched bundles
- Maintain parent/shard relationships, completing a parent with its last shard
- Record user corrections that calibrate future extractions

Usage:
    python -m flux.tasks.manager --action inbox --user alice
    python -m flux.tasks.manager --action bundle --user alice --energy high
    python -m flux.tasks.manager --action get --task-id abc123
    python -m flux.tasks.manager --action status --task-id abc123 --status complete
    python -m flux.tasks.manager --action jettison --user alice

Dependencies:
    - sqlite3 (stdlib)

Output:
    JSON result with success status and data
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from flux.database import generate_id, get_connection, row_to_dict, task_from_row, utc_now
from flux.errors import FluxError, InvalidRequest, NotFound, require_user
from flux.tasks import (
    BUNDLE_SIZE,
    ENERGY_LEVELS,
    GRAVITY_LEVELS,
    SHARD_TAG,
    TASK_STATUSES,
)

UPDATABLE_FIELDS = ("status", "title", "description", "gravity", "project", "due_date", "tags")

_BUNDLE_QUERIES = {
    # Overwhelmed: gentle tasks only
    "high": """
        SELECT * FROM tasks
        WHERE user_id = ? AND status IN ('inbox', 'inbox_review')
          AND (gravity = 'Low' OR gravity IS NULL)
        ORDER BY RANDOM() LIMIT ?
    """,
    "standard": """
        SELECT * FROM tasks
        WHERE user_id = ? AND status IN ('inbox', 'inbox_review')
          AND (gravity != 'High' OR gravity IS NULL)
        ORDER BY RANDOM() LIMIT ?
    """,
    # Flow state: hardest first
    "low": """
        SELECT * FROM tasks
        WHERE user_id = ? AND status IN ('inbox', 'inbox_review')
        ORDER BY CASE
            WHEN gravity = 'High' THEN 1
            WHEN gravity = 'Standard' THEN 2
            ELSE 3 END, RANDOM()
        LIMIT ?
    """,
}


def _validate_status(status: str) -> None:
    if status not in TASK_STATUSES:
        raise InvalidRequest(f"Invalid status. Must be one of: {TASK_STATUSES}")


def _validate_gravity(gravity: Optional[str]) -> None:
    if gravity is not None and gravity not in GRAVITY_LEVELS:
        raise InvalidRequest(f"Invalid gravity. Must be one of: {GRAVITY_LEVELS}")


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def create_task(
    user_id: str,
    content: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    status: str = "inbox",
    gravity: Optional[str] = None,
    project: Optional[str] = None,
    due_date: Optional[str] = None,
    tags: Optional[List[str]] = None,
    confidence: Optional[float] = None,
    is_ambiguous: bool = False,
) -> Dict[str, Any]:
    """
    Insert one task and return the stored row.

    Args:
        user_id: Owner of the task
        content: Raw captured text; never changed after creation
        title: Derived title (defaults to content)
        status: inbox, inbox_review, deferred or complete
        gravity: Low, Standard, High or None
        tags: Free-form tags, stored as a JSON list
        confidence: Extraction project confidence in [0, 1]

    Returns:
        The created task
    """
    user_id = require_user(user_id)
    if not content or not content.strip():
        raise InvalidRequest("content is required")
    _validate_status(status)
    _validate_gravity(gravity)

    task_id = generate_id()
    now = utc_now()

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO tasks (id, user_id, content, title, description, status, gravity, project,
                               due_date, tags, confidence, is_ambiguous, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            task_id, user_id, content, title or content, description, status, gravity, project,
            due_date, json.dumps(tags or []), confidence, int(bool(is_ambiguous)), now, now,
        ))
        conn.commit()

        cursor.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return task_from_row(cursor.fetchone())
    finally:
        conn.close()


def get_task(task_id: str) -> Dict[str, Any]:
    """Fetch one task by id. Raises NotFound."""
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        task = task_from_row(cursor.fetchone())
    finally:
        conn.close()

    if task is None:
        raise NotFound(f"Task not found: {task_id}", task_id=task_id)
    return task


def list_inbox(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Open tasks (inbox and inbox_review), newest first."""
    user_id = require_user(user_id)

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM tasks
            WHERE user_id = ? AND status IN ('inbox', 'inbox_review')
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
        """, (user_id, limit))
        return [task_from_row(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def get_bundle(user_id: str, energy: str = "standard") -> List[Dict[str, Any]]:
    """
    Pick up to three open tasks that match the user's energy.

    Args:
        user_id: Owner
        energy: "high" (overwhelmed, Low gravity only), "standard" (no High),
                or "low" (flow state, hardest first)

    Returns:
        List of tasks, possibly empty
    """
    user_id = require_user(user_id)
    energy = (energy or "").lower()
    if energy not in ENERGY_LEVELS:
        raise InvalidRequest(f"Invalid energy. Must be one of: {ENERGY_LEVELS}")

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(_BUNDLE_QUERIES[energy], (user_id, BUNDLE_SIZE))
        return [task_from_row(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def get_shards(parent_task_id: str) -> List[Dict[str, Any]]:
    """Shards of a parent in presentation order."""
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM tasks WHERE parent_task_id = ?
            ORDER BY shard_order
        """, (parent_task_id,))
        return [task_from_row(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def create_shards(parent: Dict[str, Any], shards: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Persist a decomposition as shard tasks in one transaction.

    Each descriptor needs a title; gravity, description and estimated_minutes
    are optional. Shards inherit the parent's owner and project, start in
    inbox, carry the shard tag, and are numbered from 1 in list order.

    Returns:
        The stored shards ordered by shard_order
    """
    if parent.get("parent_task_id"):
        raise InvalidRequest("Shards cannot be decomposed further", task_id=parent["id"])

    now = utc_now()
    rows = []
    for order, shard in enumerate(shards, start=1):
        gravity = shard.get("gravity") or "Low"
        _validate_gravity(gravity)
        rows.append((
            generate_id(), parent["user_id"], shard["title"], shard["title"], shard.get("description"),
            "inbox", gravity, parent.get("project"), json.dumps([SHARD_TAG]),
            parent["id"], order, shard.get("estimated_minutes"), now, now,
        ))

    conn = get_connection()
    try:
        # Commits on success, rolls back every row on failure
        with conn:
            conn.executemany("""
                INSERT INTO tasks (id, user_id, content, title, description, status, gravity, project,
                                   tags, parent_task_id, shard_order, estimated_minutes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, rows)
    finally:
        conn.close()

    return get_shards(parent["id"])


def complete_parent_if_done(parent_task_id: str) -> bool:
    """
    Complete a parent whose shards are all complete.

    The check and the write are one conditional UPDATE, so of two callers
    racing on the last shards only one sees a changed row.

    Returns:
        True only if this call moved the parent to complete
    """
    now = utc_now()
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE tasks SET status = 'complete', completed_at = ?, updated_at = ?
            WHERE id = ?
              AND status != 'complete'
              AND EXISTS (SELECT 1 FROM tasks WHERE parent_task_id = ?)
              AND NOT EXISTS (
                  SELECT 1 FROM tasks WHERE parent_task_id = ? AND status != 'complete'
              )
        """, (now, now, parent_task_id, parent_task_id, parent_task_id))
        conn.commit()
        return cursor.rowcount == 1
    finally:
        conn.close()


def update_task(task_id: str, **fields: Any) -> Dict[str, Any]:
    """
    Update task fields.

    Accepts status, title, description, gravity, project, due_date and tags.
    A value of None clears the column (status excepted). Completing a shard
    evaluates the parent completion check in the same call.

    Returns:
        dict with the updated task, parent_completed and parent_task_id
        (the parent id only when it was completed by this call)
    """
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InvalidRequest(f"Unknown fields: {sorted(unknown)}")
    if not fields:
        raise InvalidRequest("No fields to update")

    status = fields.get("status")
    if "status" in fields:
        _validate_status(status)
    if "gravity" in fields:
        _validate_gravity(fields["gravity"])
    if "tags" in fields and fields["tags"] is not None and not isinstance(fields["tags"], list):
        raise InvalidRequest("tags must be a list")

    task = get_task(task_id)
    now = utc_now()

    updates = []
    params: List[Any] = []
    for name in UPDATABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name == "tags":
            value = json.dumps(value or [])
        updates.append(f"{name} = ?")
        params.append(value)

    if status is not None:
        updates.append("completed_at = ?")
        params.append(now if status == "complete" else None)

    updates.append("updated_at = ?")
    params.append(now)
    params.append(task_id)

    conn = get_connection()
    try:
        conn.execute(f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
    finally:
        conn.close()

    parent_completed = False
    if status == "complete" and task.get("parent_task_id"):
        parent_completed = complete_parent_if_done(task["parent_task_id"])

    return {
        "task": get_task(task_id),
        "parent_completed": parent_completed,
        "parent_task_id": task["parent_task_id"] if parent_completed else None,
    }


def update_task_status(task_id: str, status: str) -> Dict[str, Any]:
    """Status change entry point; see update_task for the parent completion contract."""
    return update_task(task_id, status=status)


def jettison_tasks(user_id: str) -> int:
    """Send every unfinished task of the user back to the inbox. Returns the row count."""
    user_id = require_user(user_id)

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE tasks SET status = 'inbox', updated_at = ?
            WHERE user_id = ? AND status != 'complete'
        """, (utc_now(), user_id))
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()


def record_corrections(task_id: str, corrections: List[Dict[str, Any]]) -> int:
    """
    Append user corrections for a task.

    Args:
        task_id: Task whose extracted fields were overridden
        corrections: [{field_name, original_value, corrected_value}, ...]

    Returns:
        Number of rows written
    """
    if not corrections or not isinstance(corrections, list):
        raise InvalidRequest("Corrections array is required")
    for correction in corrections:
        if not isinstance(correction, dict) or not correction.get("field_name"):
            raise InvalidRequest("Each correction needs a field_name")

    task = get_task(task_id)
    now = utc_now()

    conn = get_connection()
    try:
        with conn:
            conn.executemany("""
                INSERT INTO task_corrections
                    (task_id, field_name, original_value, corrected_value, original_transcript, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, [
                (
                    task_id,
                    c["field_name"],
                    _as_text(c.get("original_value")),
                    _as_text(c.get("corrected_value")),
                    task["content"],
                    now,
                )
                for c in corrections
            ])
    finally:
        conn.close()

    return len(corrections)


def get_recent_corrections(user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Corrections on the user's tasks, most recent first."""
    user_id = require_user(user_id)

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT tc.*, t.title AS task_title
            FROM task_corrections tc
            JOIN tasks t ON tc.task_id = t.id
            WHERE t.user_id = ?
            ORDER BY tc.created_at DESC, tc.id DESC
            LIMIT ?
        """, (user_id, limit))
        return [row_to_dict(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def main():
    parser = argparse.ArgumentParser(description="Task Manager")
    parser.add_argument(
        "--action",
        required=True,
        choices=["inbox", "bundle", "get", "shards", "status", "jettison", "corrections"],
        help="Action to perform",
    )
    parser.add_argument("--user", help="User ID")
    parser.add_argument("--task-id", help="Task ID")
    parser.add_argument("--status", choices=TASK_STATUSES, help="New status")
    parser.add_argument("--energy", choices=ENERGY_LEVELS, default="standard", help="User energy")
    parser.add_argument("--limit", type=int, default=50, help="Max results")

    args = parser.parse_args()

    try:
        if args.action == "inbox":
            result = {"success": True, "data": list_inbox(args.user, limit=args.limit)}
        elif args.action == "bundle":
            result = {"success": True, "data": get_bundle(args.user, args.energy)}
        elif args.action == "get":
            result = {"success": True, "data": get_task(args.task_id)}
        elif args.action == "shards":
            result = {"success": True, "data": get_shards(args.task_id)}
        elif args.action == "status":
            result = {"success": True, "data": update_task_status(args.task_id, args.status)}
        elif args.action == "jettison":
            result = {"success": True, "data": {"count": jettison_tasks(args.user)}}
        else:
            result = {"success": True, "data": get_recent_corrections(args.user, limit=args.limit)}
    except FluxError as e:
        result = e.to_dict()

    print(json.dumps(result, indent=2, default=str))
    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
