"""
Tool: Task Decomposer
Purpose: Ask the LLM to shatter an overwhelming task into 3-5 shards

The LLM gets the parent task, the user's context and recent corrections,
and answers with {"reasoning": ..., "shards": [...]}. Shard descriptors
are normalized here; an empty shard list is returned as-is and left for
the breakdown pipeline to reject.

Usage:
    from flux.tasks.decompose import generate_breakdown

    breakdown = await generate_breakdown(parent_task, context, corrections)
    for shard in breakdown["shards"]:
        print(shard["title"], shard["gravity"], shard["estimated_minutes"])
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from flux.capture.extraction import normalize_gravity
from flux.config_models import get_config
from flux.llm.client import OpenRouterClient, build_user_message, get_llm_client, load_prompt
from flux.profile.context import UserContext

logger = logging.getLogger(__name__)

PROMPT_PATH = "tasks/breakdown.md"
SHARD_TITLE_CHARS = 120

FALLBACK_PROMPT = """You are a task decomposition assistant for people with ADHD.

Break the given task into 3-5 small, concrete shards. The first shard must be
the easiest possible starting point. Keep everything flat.

Output JSON format:
{
  "reasoning": "...",
  "shards": [
    {"title": "...", "description": "...", "gravity": "Low", "estimated_minutes": 10}
  ]
}
"""

INSTRUCTION = "Break this task into 3-5 actionable shards. Respond with ONLY valid JSON, no markdown code blocks."


def _minutes(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    return None


def normalize_shards(raw_shards: Any) -> List[Dict[str, Any]]:
    """Keep usable shard descriptors in LLM order, with defaults filled in."""
    if not isinstance(raw_shards, list):
        return []

    shards = []
    for raw in raw_shards:
        if not isinstance(raw, dict):
            continue
        title = str(raw.get("title") or "").strip()
        description = str(raw.get("description") or "").strip()
        if not title:
            title = description[:SHARD_TITLE_CHARS].strip()
        if not title:
            continue
        shards.append({
            "title": title,
            "description": description,
            "gravity": normalize_gravity(raw.get("gravity"), default="Low"),
            "estimated_minutes": _minutes(raw.get("estimated_minutes")),
        })
    return shards


def build_breakdown_message(
    parent_task: Dict[str, Any],
    context: UserContext,
    corrections: Sequence[Dict[str, Any]],
) -> str:
    subject = "\n".join([
        "## Parent Task to Decompose",
        f'Title: "{parent_task.get("title") or parent_task.get("content")}"',
        f'Description: "{parent_task.get("description") or "No description provided"}"',
        f'Current Gravity: {parent_task.get("gravity") or "Unknown"}',
        f'Project: {parent_task.get("project") or "None"}',
    ])
    return build_user_message(subject, context.to_prompt_dict(), corrections, INSTRUCTION)


async def generate_breakdown(
    parent_task: Dict[str, Any],
    context: UserContext,
    corrections: Optional[List[Dict[str, Any]]] = None,
    client: Optional[OpenRouterClient] = None,
) -> Dict[str, Any]:
    """
    Decompose a task with the LLM.

    Returns:
        {"reasoning": str or None, "shards": [normalized descriptors]}

    Raises:
        ServiceUnavailable, CompletionFailed, MalformedResponse
    """
    client = client or get_llm_client()
    system_prompt = load_prompt(PROMPT_PATH, FALLBACK_PROMPT)
    message = build_breakdown_message(parent_task, context, corrections or [])

    raw = await client.complete_json(
        system_prompt,
        message,
        call=get_config().llm.breakdown,
        title="FLUX Magic Breakdown",
    )
    data = raw if isinstance(raw, dict) else {}
    reasoning = data.get("reasoning")

    shards = normalize_shards(data.get("shards"))
    logger.info(f"LLM generated {len(shards)} shards for task {parent_task.get('id')}")
    return {
        "reasoning": str(reasoning) if reasoning is not None else None,
        "shards": shards,
    }
