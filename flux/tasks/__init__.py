"""Task Engine - capture storage, bundles and shards

Components:
    manager.py: Task CRUD, bundles, corrections, parent completion
    decompose.py: Ask the LLM to split a task into shards
    breakdown.py: Breakdown pipeline (idempotent, one shard set per parent)

Lifecycle:
    Captured tasks land in ``inbox``, or in ``inbox_review`` with a
    ``needs_sorting`` tag when extraction was unsure. A parent that has been
    shattered keeps its own status until its last shard is completed, at
    which point it is completed as a side effect of that shard update.

Usage:
    from flux.tasks.manager import get_bundle, update_task_status
    from flux.tasks.breakdown import submit_breakdown

    bundle = get_bundle(user_id="alice", energy="high")
    result = await submit_breakdown(parent_task_id, user_id="alice")
    update_task_status(result["shards"][0]["id"], "complete")
"""

TASK_STATUSES = ("inbox", "inbox_review", "deferred", "complete")
GRAVITY_LEVELS = ("Low", "Standard", "High")

# User energy, not task gravity: "high" means overwhelmed, "low" means flow state
ENERGY_LEVELS = ("high", "standard", "low")
BUNDLE_SIZE = 3
BUNDLE_MESSAGES = {
    "high": "Showing gentle tasks only",
    "standard": "Balanced selection",
    "low": "Ready for anything",
}

NEEDS_SORTING_TAG = "needs_sorting"
SHARD_TAG = "shard"
REVIEW_CONFIDENCE_THRESHOLD = 0.6

__all__ = [
    "BUNDLE_MESSAGES",
    "BUNDLE_SIZE",
    "ENERGY_LEVELS",
    "GRAVITY_LEVELS",
    "NEEDS_SORTING_TAG",
    "REVIEW_CONFIDENCE_THRESHOLD",
    "SHARD_TAG",
    "TASK_STATUSES",
]
