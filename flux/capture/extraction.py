"""
Tool: Task Extraction
Purpose: Turn a voice-note transcript into one structured task via the LLM

The LLM answers with free-form JSON. normalize_extraction() is the single
place that turns whatever came back into a complete task descriptor, so
the pipeline never has to guess about missing or oddly typed fields.

Usage:
    from flux.capture.extraction import extract_task

    task = await extract_task(transcript, context, corrections)
    task["task_title"], task["gravity"], task["project_confidence"]
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from flux.config_models import get_config
from flux.llm.client import OpenRouterClient, build_user_message, get_llm_client, load_prompt
from flux.profile.context import UserContext
from flux.tasks import GRAVITY_LEVELS

logger = logging.getLogger(__name__)

PROMPT_PATH = "capture/extraction.md"
TITLE_FALLBACK_CHARS = 120
DEFAULT_GRAVITY = "Standard"

FALLBACK_PROMPT = """You are an executive-function proxy for a person with ADHD.
Turn the voice-note transcript into ONE structured task.

Output JSON format:
{
  "task_title": "...",
  "task_description": "...",
  "gravity": "Low|Standard|High",
  "project": "..." or null,
  "project_confidence": 0.0,
  "due_date": "YYYY-MM-DD" or null,
  "tags": ["..."],
  "is_ambiguous": false
}
"""

INSTRUCTION = "Parse this transcript into a structured task. Respond with ONLY valid JSON, no markdown code blocks."


def normalize_gravity(value: Any, default: Optional[str] = DEFAULT_GRAVITY) -> Optional[str]:
    """Case-insensitive match onto Low/Standard/High."""
    if isinstance(value, str):
        for level in GRAVITY_LEVELS:
            if value.strip().lower() == level.lower():
                return level
    return default


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return min(max(value, 0.0), 1.0)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def normalize_extraction(raw: Any, transcript: str) -> Dict[str, Any]:
    """
    Fill every extraction field with a usable value.

    - task_title falls back to the transcript (first 120 chars)
    - gravity defaults to Standard
    - tags that are not a list become []
    - a missing or non-numeric project_confidence stays None
    """
    data = raw if isinstance(raw, dict) else {}

    title = _optional_text(data.get("task_title"))
    if title is None:
        title = transcript.strip()[:TITLE_FALLBACK_CHARS].strip()

    tags = data.get("tags")
    if isinstance(tags, list):
        tags = [str(tag) for tag in tags if tag is not None and str(tag).strip()]
    else:
        tags = []

    return {
        "task_title": title,
        "task_description": _optional_text(data.get("task_description")) or "",
        "gravity": normalize_gravity(data.get("gravity")),
        "project": _optional_text(data.get("project")),
        "due_date": _optional_text(data.get("due_date")),
        "tags": tags,
        "project_confidence": _confidence(data.get("project_confidence")),
        "is_ambiguous": _flag(data.get("is_ambiguous")),
    }


def build_extraction_message(
    transcript: str,
    context: UserContext,
    corrections: Sequence[Dict[str, Any]],
) -> str:
    return build_user_message(
        f'## Transcript\n"{transcript}"',
        context.to_prompt_dict(),
        corrections,
        INSTRUCTION,
    )


async def extract_task(
    transcript: str,
    context: UserContext,
    corrections: Optional[List[Dict[str, Any]]] = None,
    client: Optional[OpenRouterClient] = None,
) -> Dict[str, Any]:
    """
    Ask the LLM for a structured task and normalize the answer.

    Raises:
        ServiceUnavailable: OPENROUTER_API_KEY is unset
        CompletionFailed: provider returned a non-success response
        MalformedResponse: empty or non-JSON content
    """
    client = client or get_llm_client()
    system_prompt = load_prompt(PROMPT_PATH, FALLBACK_PROMPT)
    message = build_extraction_message(transcript, context, corrections or [])

    raw = await client.complete_json(
        system_prompt,
        message,
        call=get_config().llm.extraction,
        title="FLUX Magic Mic",
    )
    if not isinstance(raw, dict):
        logger.warning(f"Extraction returned {type(raw).__name__}, expected an object")
    return normalize_extraction(raw, transcript)
