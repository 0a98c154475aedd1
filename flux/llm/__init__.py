"""LLM provider access for capture extraction and task breakdown."""

from flux.llm.client import (
    OpenRouterClient,
    build_user_message,
    get_llm_client,
    load_prompt,
    parse_json_response,
    render_corrections,
    strip_code_fence,
)

__all__ = [
    "OpenRouterClient",
    "build_user_message",
    "get_llm_client",
    "load_prompt",
    "parse_json_response",
    "render_corrections",
    "strip_code_fence",
]
