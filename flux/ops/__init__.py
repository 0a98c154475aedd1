"""
FLUX Operations Module

Provides the retry and timeout policy shared by the provider adapters.
"""

from flux.ops.retry import RETRYABLE_STATUS, RetryPolicy, post_with_retry

__all__ = [
    "RETRYABLE_STATUS",
    "RetryPolicy",
    "post_with_retry",
]
