"""
Breakdown Pipeline: parent task -> LLM decomposition -> ordered shards

Decomposition happens at most once per parent. Existing shards are
returned unchanged, concurrent calls for the same parent are serialized
by a per-parent lock, and a shard set is written in a single transaction
so a failed write never leaves a partial set behind.

Usage:
    from flux.tasks.breakdown import submit_breakdown

    result = await submit_breakdown(parent_task_id, user_id="alice")
    result["shards"]      # ordered by shard_order, 1-based
    result["reasoning"]   # None when the task was already decomposed
"""

import asyncio
import weakref
from typing import Any, Dict, Optional

from flux.config_models import get_config
from flux.errors import EmptyDecomposition, FluxError, InvalidRequest, NotFound, PipelineFailure, require_user
from flux.llm.client import OpenRouterClient
from flux.logging_config import get_logger, log_context
from flux.profile.context import get_user_context
from flux.tasks.decompose import generate_breakdown
from flux.tasks.manager import create_shards, get_recent_corrections, get_shards, get_task

logger = get_logger(__name__)

# Entries live only while some caller holds or waits on the lock.
_parent_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _get_parent_lock(parent_task_id: str) -> asyncio.Lock:
    lock = _parent_locks.get(parent_task_id)
    if lock is None:
        lock = asyncio.Lock()
        _parent_locks[parent_task_id] = lock
    return lock


def _parent_summary(parent: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": parent["id"], "title": parent.get("title") or parent["content"]}


async def submit_breakdown(
    parent_task_id: str,
    user_id: str,
    llm_client: Optional[OpenRouterClient] = None,
) -> Dict[str, Any]:
    """
    Decompose a task into shards, or return the shards it already has.

    Returns:
        {success, shards, reasoning, parent_task}; an already decomposed
        parent also carries message and already_decomposed=True

    Raises:
        NotFound: no such task for this user
        InvalidRequest: the task is itself a shard
        EmptyDecomposition: the LLM returned no usable shards
        ServiceUnavailable, CompletionFailed, MalformedResponse: from the LLM call
        PipelineFailure: anything else
    """
    user_id = require_user(user_id)
    parent = get_task(parent_task_id)
    if parent["user_id"] != user_id:
        raise NotFound(f"Task not found: {parent_task_id}", task_id=parent_task_id)
    if parent.get("parent_task_id"):
        raise InvalidRequest("Shards cannot be decomposed further", task_id=parent_task_id)

    with log_context(task_id=parent_task_id, user_id=user_id, pipeline="breakdown"):
        async with _get_parent_lock(parent_task_id):
            existing = get_shards(parent_task_id)
            if existing:
                logger.info("breakdown.already_decomposed", shards=len(existing))
                return {
                    "success": True,
                    "shards": existing,
                    "reasoning": None,
                    "parent_task": _parent_summary(parent),
                    "message": "Task already decomposed",
                    "already_decomposed": True,
                }

            try:
                context = get_user_context(user_id)
                corrections = get_recent_corrections(user_id, limit=get_config().capture.corrections_window)
                logger.info(
                    "breakdown.started",
                    projects=len(context.projects),
                    corrections=len(corrections),
                )

                breakdown = await generate_breakdown(parent, context, corrections, client=llm_client)
                if not breakdown["shards"]:
                    raise EmptyDecomposition(task_id=parent_task_id)

                shards = create_shards(parent, breakdown["shards"])
            except FluxError as e:
                logger.error("breakdown.failed", code=e.error_code, error=e.message)
                raise
            except Exception as e:
                logger.exception("breakdown.crashed")
                raise PipelineFailure(f"Failed to break down task: {e}", task_id=parent_task_id) from e

    logger.info("breakdown.saved", task_id=parent_task_id, shards=len(shards))
    return {
        "success": True,
        "shards": shards,
        "reasoning": breakdown["reasoning"],
        "parent_task": _parent_summary(parent),
    }
