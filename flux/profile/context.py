"""
Context Provider

Assembles the per-user personalization snapshot fed to transcription
(vocabulary hints) and to the LLM (keywords, projects, people, timezone).

A missing profile is not an error: gravity keywords fall back to the
built-in lists and the vocabulary starts empty. A keyword field that is
stored but unparseable falls back to its default on its own, without
discarding the fields that did parse.

Usage:
    from flux.profile.context import get_user_context

    context = get_user_context("alice")
    context.vocabulary          # hints for the speech-to-text provider
    context.to_prompt_dict()    # JSON-ready block for the LLM
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from flux.database import decode_json_list, get_connection, row_to_dict

logger = logging.getLogger(__name__)

DEFAULT_HIGH_GRAVITY_KEYWORDS = ["call", "cancel", "dispute", "clean", "sort out", "phone"]
DEFAULT_LOW_GRAVITY_KEYWORDS = ["write", "design", "research", "read", "code", "build"]
DEFAULT_TIMEZONE = "UTC"


@dataclass
class UserContext:
    user_id: str
    high_gravity_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_HIGH_GRAVITY_KEYWORDS))
    low_gravity_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_LOW_GRAVITY_KEYWORDS))
    vocabulary: List[str] = field(default_factory=list)
    projects: List[Dict[str, str]] = field(default_factory=list)
    known_people: List[Dict[str, Optional[str]]] = field(default_factory=list)
    timezone: str = DEFAULT_TIMEZONE
    has_profile: bool = False

    def to_prompt_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """The context object embedded (as JSON) in every LLM user message."""
        now = now or datetime.now(timezone.utc)
        return {
            "current_time": now.isoformat(),
            "timezone": self.timezone,
            "user_profile": {
                "high_gravity_keywords": self.high_gravity_keywords,
                "low_gravity_keywords": self.low_gravity_keywords,
                "known_people": self.known_people,
                "active_projects": self.projects,
            },
        }


def dedupe_preserving_order(*groups: Iterable[str]) -> List[str]:
    """Union of string lists, first occurrence wins. Empty and non-string items are skipped."""
    seen = set()
    result = []
    for group in groups:
        for item in group:
            if not isinstance(item, str) or not item or item in seen:
                continue
            seen.add(item)
            result.append(item)
    return result


def _keyword_field(profile: Dict[str, Any], name: str, default: List[str]) -> List[str]:
    raw = profile.get(name)
    if raw is None or raw == "":
        return list(default)
    parsed = decode_json_list(raw)
    if parsed is None:
        logger.warning(f"Unparseable {name} for user {profile.get('id')}, using defaults")
        return list(default)
    return parsed


def get_user_context(user_id: str) -> UserContext:
    """Read-only snapshot of one user's personalization. Storage errors propagate."""
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM user_profiles WHERE id = ?", (user_id,))
        profile = row_to_dict(cursor.fetchone())

        cursor.execute(
            "SELECT name, description FROM projects WHERE user_id = ? ORDER BY rowid", (user_id,)
        )
        projects = [
            {"name": row["name"], "description": row["description"] or ""}
            for row in cursor.fetchall()
        ]

        cursor.execute(
            "SELECT name, context FROM known_people WHERE user_id = ? ORDER BY rowid", (user_id,)
        )
        people = [{"name": row["name"], "context": row["context"]} for row in cursor.fetchall()]
    finally:
        conn.close()

    context = UserContext(user_id=user_id, projects=projects, known_people=people)
    user_vocabulary: List[str] = []

    if profile is not None:
        context.has_profile = True
        context.high_gravity_keywords = _keyword_field(
            profile, "high_gravity_keywords", DEFAULT_HIGH_GRAVITY_KEYWORDS
        )
        context.low_gravity_keywords = _keyword_field(
            profile, "low_gravity_keywords", DEFAULT_LOW_GRAVITY_KEYWORDS
        )
        user_vocabulary = _keyword_field(profile, "deepgram_keywords", [])
        context.timezone = profile.get("timezone") or DEFAULT_TIMEZONE

    context.vocabulary = dedupe_preserving_order(
        user_vocabulary,
        (p["name"] for p in projects),
        (p["name"] for p in people),
    )
    return context
