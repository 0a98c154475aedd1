"""
Timeout and Retry Policy for Provider Calls

Every outbound call to the speech-to-text or LLM provider goes through
post_with_retry(), so a hung provider is bounded by timeout_seconds and a
transient failure gets a bounded number of further attempts.

Retried:
    - httpx.TransportError (connection refused, DNS, read timeout, ...)
    - HTTP 429 and 5xx gateway/server responses

Never retried:
    - any other 4xx (bad key, bad request): repeating it cannot help

Usage:
    from flux.ops.retry import RetryPolicy, post_with_retry

    policy = RetryPolicy(timeout_seconds=30, max_retries=1, backoff_seconds=0.5)
    response = await post_with_retry(url, policy=policy, headers=..., content=...)

Dependencies:
    - httpx
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry settings for one provider.

    Args:
        timeout_seconds: Per-attempt timeout applied to connect, read and write.
        max_retries: Additional attempts after the first one.
        backoff_seconds: Linear backoff unit; attempt N waits backoff_seconds * N.
    """

    timeout_seconds: float = 30.0
    max_retries: int = 1
    backoff_seconds: float = 0.5

    @property
    def attempts(self) -> int:
        return 1 + max(self.max_retries, 0)

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


async def post_with_retry(
    url: str,
    *,
    policy: RetryPolicy,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """POST with per-attempt timeout and bounded retries.

    Returns the first non-retryable response, or the last response once
    attempts are exhausted. Re-raises the last transport error if no attempt
    produced a response at all.
    """
    last_error: httpx.TransportError | None = None
    response: httpx.Response | None = None

    async with httpx.AsyncClient(timeout=policy.timeout_seconds, transport=transport) as client:
        for attempt in range(1, policy.attempts + 1):
            try:
                response = await client.post(url, **kwargs)
            except httpx.TransportError as e:
                last_error = e
                response = None
                logger.warning(f"POST {url} attempt {attempt}/{policy.attempts} failed: {type(e).__name__}")
            else:
                if response.status_code not in RETRYABLE_STATUS:
                    return response
                logger.warning(
                    f"POST {url} attempt {attempt}/{policy.attempts} returned {response.status_code}"
                )

            if attempt < policy.attempts:
                await asyncio.sleep(policy.delay_for(attempt))

    if response is None:
        if last_error is None:
            raise httpx.TransportError(f"POST {url} made no attempts")
        raise last_error
    return response
