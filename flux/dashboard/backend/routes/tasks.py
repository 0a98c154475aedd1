"""
Tasks Route - Inbox, bundles, updates, corrections and breakdown

Provides endpoints for the task views:
- Plain text capture into the inbox
- Energy-matched bundles and the full inbox (vault)
- Field updates, including the shard -> parent completion check
- Correction logging for extraction calibration
- Breakdown of a task into ordered shards
- Jettison (everything unfinished back to the inbox)
"""

import logging

from fastapi import APIRouter, Query, Request, status

from flux.dashboard.backend.models import (
    BreakdownRequest,
    CorrectionsRequest,
    CreateTaskRequest,
    Energy,
    UpdateTaskRequest,
)
from flux.tasks import BUNDLE_MESSAGES
from flux.tasks.breakdown import submit_breakdown
from flux.tasks.manager import (
    create_task,
    get_bundle,
    get_recent_corrections,
    get_shards,
    get_task,
    jettison_tasks,
    list_inbox,
    record_corrections,
    update_task,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Collection endpoints (must be before /{task_id} to avoid route conflict)
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
async def capture_text_task(body: CreateTaskRequest):
    """Capture a typed task straight into the inbox."""
    task = create_task(user_id=body.user_id, content=body.content)
    return {"success": True, "task": task}


@router.get("/bundle")
async def get_task_bundle(
    user_id: str | None = Query(None),
    energy: Energy = Query(Energy.STANDARD, description="User energy: high (overwhelmed), standard, low (flow)"),
):
    """Up to three tasks matched to the user's current energy."""
    tasks = get_bundle(user_id, energy.value)
    return {"tasks": tasks, "energy": energy.value, "message": BUNDLE_MESSAGES[energy.value]}


@router.get("/inbox")
async def get_inbox(
    user_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
):
    """All open tasks, newest first."""
    return {"tasks": list_inbox(user_id, limit=limit)}


@router.get("/corrections/recent")
async def get_corrections(
    user_id: str | None = Query(None),
    limit: int = Query(10, ge=1, le=100),
):
    return {"corrections": get_recent_corrections(user_id, limit=limit)}


@router.post("/jettison")
async def jettison(user_id: str | None = Query(None)):
    """Send every unfinished task back to the inbox."""
    changes = jettison_tasks(user_id)
    logger.info(f"Jettisoned {changes} tasks for {user_id}")
    return {"message": "All tasks jettisoned to vault", "changes": changes}


# =============================================================================
# Single task endpoints
# =============================================================================


@router.get("/{task_id}")
async def get_task_detail(task_id: str):
    return {"task": get_task(task_id)}


@router.patch("/{task_id}")
async def patch_task(task_id: str, body: UpdateTaskRequest):
    """
    Update task fields.

    When a shard is marked complete and it was the last open shard, the
    parent is completed too; parent_completed reports that.
    """
    fields = body.model_dump(mode="json", exclude_unset=True)
    result = update_task(task_id, **fields)
    return {"message": "Task updated", **result}


@router.post("/{task_id}/corrections", status_code=status.HTTP_201_CREATED)
async def log_corrections(task_id: str, body: CorrectionsRequest):
    count = record_corrections(task_id, [c.model_dump() for c in body.corrections])
    return {"message": "Corrections logged", "count": count}


@router.post("/{task_id}/breakdown")
async def breakdown(task_id: str, body: BreakdownRequest, request: Request):
    """Shatter a task into 3-5 shards, or return the shards it already has."""
    llm_client = getattr(request.app.state, "llm_client", None)
    return await submit_breakdown(task_id, body.user_id, llm_client=llm_client)


@router.get("/{task_id}/shards")
async def list_shards(task_id: str):
    return {"shards": get_shards(task_id)}
