"""
OpenRouter chat-completions client and JSON response helpers.

Both the capture extraction and the task breakdown send one system
instruction plus one user message and expect a JSON object back. The
provider enforces no schema, so this module only guarantees "parses as
JSON"; callers default any missing fields themselves.

Usage:
    from flux.llm.client import get_llm_client, load_prompt

    client = get_llm_client()
    data = await client.complete_json(load_prompt("capture/extraction.md", FALLBACK), user_message)

Dependencies:
    - httpx
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Sequence

import httpx

from flux import HARDPROMPTS_DIR
from flux.config_models import LLMCallConfig, LLMConfig, get_config
from flux.errors import CompletionFailed, MalformedResponse, ServiceUnavailable
from flux.ops.retry import post_with_retry

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\n?```\s*$")

CORRECTION_TRANSCRIPT_CHARS = 50


def load_prompt(relative_path: str, fallback: str) -> str:
    """Read a hardprompt template, or return the built-in fallback if the file is missing."""
    prompt_path = HARDPROMPTS_DIR / relative_path
    if prompt_path.exists():
        with open(prompt_path) as f:
            return f.read()
    logger.warning(f"Hardprompt {relative_path} not found, using built-in prompt")
    return fallback


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json or bare ``` fence, if there is one."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _OPENING_FENCE.sub("", stripped)
        stripped = _CLOSING_FENCE.sub("", stripped)
    return stripped.strip()


def parse_json_response(content: str | None) -> Any:
    """Parse LLM output as JSON. Raises MalformedResponse carrying the raw text."""
    if content is None or not content.strip():
        raise MalformedResponse("LLM returned empty response", raw_content=content)
    try:
        return json.loads(strip_code_fence(content))
    except ValueError as e:
        raise MalformedResponse(f"Failed to parse LLM response as JSON: {e}", raw_content=content) from e


def render_corrections(corrections: Sequence[dict[str, Any]]) -> str:
    """One calibration line per correction, most recent first as given."""
    lines = []
    for c in corrections:
        transcript = (c.get("original_transcript") or "")[:CORRECTION_TRANSCRIPT_CHARS]
        lines.append(
            f'- For transcript "{transcript}...": Changed {c.get("field_name")} '
            f'from "{c.get("original_value")}" to "{c.get("corrected_value")}"'
        )
    return "\n".join(lines)


def build_user_message(
    subject: str,
    context: dict[str, Any],
    corrections: Sequence[dict[str, Any]],
    instruction: str,
) -> str:
    """Assemble the single user-role message: subject, context JSON, corrections, instruction."""
    parts = [subject, "", "## User Context", json.dumps(context, indent=2)]
    if corrections:
        parts += [
            "",
            "## Recent Corrections (Learn from these)",
            "The user has corrected the following AI outputs. Use these to calibrate your responses:",
            render_corrections(corrections),
        ]
    parts += ["", instruction]
    return "\n".join(parts)


class OpenRouterClient:
    """Minimal OpenAI-compatible chat-completions client for OpenRouter.

    The API key is read from OPENROUTER_API_KEY on every call.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> LLMConfig:
        return self._config or get_config().llm

    @property
    def is_available(self) -> bool:
        return bool(os.environ.get("OPENROUTER_API_KEY"))

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        call: LLMCallConfig | None = None,
        title: str | None = None,
    ) -> str:
        """Send one system + user exchange and return the assistant text."""
        api_key = os.environ.get("OPENROUTER_API_KEY")
        if not api_key:
            raise ServiceUnavailable("llm", "LLM service not configured")

        config = self.config
        call = call or config.extraction
        model = config.resolved_model()

        try:
            response = await post_with_retry(
                config.base_url,
                policy=config.retry_policy,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                    "HTTP-Referer": config.referer,
                    "X-Title": title or config.app_title,
                },
                json={
                    "model": model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_message},
                    ],
                    "temperature": call.temperature,
                    "max_tokens": call.max_tokens,
                },
            )
        except httpx.TransportError as e:
            logger.warning(f"OpenRouter request failed: {type(e).__name__}: {e}")
            raise CompletionFailed(f"OpenRouter LLM call failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"OpenRouter returned {response.status_code} for model {model}")
            raise CompletionFailed(
                f"OpenRouter LLM call failed: {response.text}",
                provider_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse("OpenRouter returned a non-JSON envelope", raw_content=response.text) from e

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not content or not str(content).strip():
            raise MalformedResponse("LLM returned empty response", raw_content=content)
        return str(content)

    async def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        call: LLMCallConfig | None = None,
        title: str | None = None,
    ) -> Any:
        """complete(), then strip any code fence and parse the text as JSON."""
        content = await self.complete(system_prompt, user_message, call=call, title=title)
        return parse_json_response(content)


# Module-level singleton
_client: OpenRouterClient | None = None


def get_llm_client() -> OpenRouterClient:
    """Get or create the global OpenRouterClient instance."""
    global _client
    if _client is None:
        _client = OpenRouterClient()
    return _client
