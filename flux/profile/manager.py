"""
Tool: Profile Manager
Purpose: User profiles, projects and known people

A profile holds the personalization that biases capture: gravity keyword
lists for the LLM, a vocabulary list for transcription, and a timezone.
Projects and known people are user-scoped names that feed both.

Usage:
    from flux.profile.manager import get_profile, add_project

    profile = get_profile("alice")
    add_project("alice", "Garden", description="Weekend yard work")

Dependencies:
    - sqlite3 (stdlib)
    - pyyaml (seed files)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from flux import PROJECT_ROOT
from flux.database import decode_json_list, generate_id, get_connection, row_to_dict, utc_now
from flux.errors import InvalidRequest, NotFound, require_user

logger = logging.getLogger(__name__)

KEYWORD_FIELDS = ("high_gravity_keywords", "low_gravity_keywords", "deepgram_keywords")
PROFILE_FIELDS = ("display_name", "timezone", *KEYWORD_FIELDS)


def _validate_keywords(name: str, value: Any) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidRequest(f"{name} must be a list of strings")


def _profile_from_row(row) -> Optional[Dict[str, Any]]:
    profile = row_to_dict(row)
    if profile is None:
        return None
    profile.pop("credential", None)
    for name in KEYWORD_FIELDS:
        profile[name] = decode_json_list(profile.get(name)) or []
    return profile


def create_profile(
    user_id: str,
    display_name: Optional[str] = None,
    timezone: str = "UTC",
    high_gravity_keywords: Optional[List[str]] = None,
    low_gravity_keywords: Optional[List[str]] = None,
    deepgram_keywords: Optional[List[str]] = None,
    credential: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a profile. Keyword lists left as None are stored as NULL, so the
    context provider uses its built-in defaults for them.

    Raises:
        InvalidRequest: a profile with this id already exists
    """
    user_id = require_user(user_id)
    keywords = {
        "high_gravity_keywords": high_gravity_keywords,
        "low_gravity_keywords": low_gravity_keywords,
        "deepgram_keywords": deepgram_keywords,
    }
    for name, value in keywords.items():
        if value is not None:
            _validate_keywords(name, value)

    now = utc_now()
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT 1 FROM user_profiles WHERE id = ?", (user_id,))
        if cursor.fetchone():
            raise InvalidRequest(f"Profile already exists: {user_id}", user_id=user_id)

        cursor.execute("""
            INSERT INTO user_profiles (id, credential, display_name, high_gravity_keywords,
                                       low_gravity_keywords, deepgram_keywords, timezone,
                                       created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            user_id,
            credential,
            display_name or user_id,
            *(None if v is None else json.dumps(v) for v in keywords.values()),
            timezone or "UTC",
            now,
            now,
        ))
        conn.commit()
    finally:
        conn.close()

    return get_profile(user_id)


def get_profile(user_id: str) -> Dict[str, Any]:
    """Profile with decoded keyword lists, projects and known people. Raises NotFound."""
    user_id = require_user(user_id)

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM user_profiles WHERE id = ?", (user_id,))
        profile = _profile_from_row(cursor.fetchone())
        if profile is None:
            raise NotFound(f"User profile not found: {user_id}", user_id=user_id)

        cursor.execute("SELECT * FROM projects WHERE user_id = ? ORDER BY rowid", (user_id,))
        profile["projects"] = [row_to_dict(r) for r in cursor.fetchall()]

        cursor.execute("SELECT * FROM known_people WHERE user_id = ? ORDER BY rowid", (user_id,))
        profile["known_people"] = [row_to_dict(r) for r in cursor.fetchall()]
    finally:
        conn.close()

    return profile


def update_profile(user_id: str, **fields: Any) -> Dict[str, Any]:
    """Update display_name, timezone or any keyword list. Returns the refreshed profile."""
    user_id = require_user(user_id)
    unknown = set(fields) - set(PROFILE_FIELDS)
    if unknown:
        raise InvalidRequest(f"Unknown fields: {sorted(unknown)}")

    updates = []
    params: List[Any] = []
    for name in PROFILE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name in KEYWORD_FIELDS:
            _validate_keywords(name, value)
            value = json.dumps(value)
        updates.append(f"{name} = ?")
        params.append(value)

    updates.append("updated_at = ?")
    params.append(utc_now())
    params.append(user_id)

    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE user_profiles SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
        changed = cursor.rowcount
    finally:
        conn.close()

    if changed == 0:
        raise NotFound(f"User profile not found: {user_id}", user_id=user_id)
    return get_profile(user_id)


# =============================================================================
# Projects and known people
# =============================================================================

def add_project(
    user_id: str,
    name: str,
    description: Optional[str] = None,
    color: Optional[str] = None,
) -> Dict[str, Any]:
    user_id = require_user(user_id)
    if not name or not name.strip():
        raise InvalidRequest("Project name is required")

    project_id = generate_id()
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO projects (id, user_id, name, description, color, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (project_id, user_id, name.strip(), description or "", color, utc_now()))
        conn.commit()
        cursor.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
        return row_to_dict(cursor.fetchone())
    finally:
        conn.close()


def add_person(user_id: str, name: str, context: Optional[str] = None) -> Dict[str, Any]:
    user_id = require_user(user_id)
    if not name or not name.strip():
        raise InvalidRequest("Person name is required")

    person_id = generate_id()
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO known_people (id, user_id, name, context, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (person_id, user_id, name.strip(), context, utc_now()))
        conn.commit()
        cursor.execute("SELECT * FROM known_people WHERE id = ?", (person_id,))
        return row_to_dict(cursor.fetchone())
    finally:
        conn.close()


def _delete_owned(table: str, user_id: str, row_id: str, label: str) -> None:
    user_id = require_user(user_id)
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(f"DELETE FROM {table} WHERE id = ? AND user_id = ?", (row_id, user_id))
        conn.commit()
        deleted = cursor.rowcount
    finally:
        conn.close()

    if deleted == 0:
        raise NotFound(f"{label} not found: {row_id}", user_id=user_id)


def delete_project(user_id: str, project_id: str) -> None:
    _delete_owned("projects", user_id, project_id, "Project")


def delete_person(user_id: str, person_id: str) -> None:
    _delete_owned("known_people", user_id, person_id, "Person")


# =============================================================================
# Seeding
# =============================================================================

def seed_default_user(path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """
    Create a profile, its projects and its known people from a YAML file.

    Safe to call on every start: an existing profile is left alone and
    projects/people are only added when no row with the same name exists.

    Returns:
        Summary of what was created, or None when the file is missing
    """
    if path is None:
        return None
    path = Path(path)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    if not path.exists():
        logger.info(f"No default user file at {path}, skipping seed")
        return None

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    user_id = require_user(data.get("id"))
    created_profile = False
    try:
        get_profile(user_id)
    except NotFound:
        create_profile(
            user_id,
            display_name=data.get("display_name"),
            timezone=data.get("timezone") or "UTC",
            high_gravity_keywords=data.get("high_gravity_keywords"),
            low_gravity_keywords=data.get("low_gravity_keywords"),
            deepgram_keywords=data.get("deepgram_keywords"),
        )
        created_profile = True

    existing = get_profile(user_id)
    project_names = {p["name"] for p in existing["projects"]}
    people_names = {p["name"] for p in existing["known_people"]}

    projects_added = 0
    for project in data.get("projects") or []:
        if project.get("name") and project["name"] not in project_names:
            add_project(user_id, project["name"], project.get("description"), project.get("color"))
            projects_added += 1

    people_added = 0
    for person in data.get("known_people") or []:
        if person.get("name") and person["name"] not in people_names:
            add_person(user_id, person["name"], person.get("context"))
            people_added += 1

    logger.info(
        f"Seeded default user {user_id}: profile_created={created_profile} "
        f"projects={projects_added} people={people_added}"
    )
    return {
        "user_id": user_id,
        "profile_created": created_profile,
        "projects_added": projects_added,
        "people_added": people_added,
    }
