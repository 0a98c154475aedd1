"""Tests for flux/tasks/manager.py

The task manager stores captured tasks and their shards. Key functionality:
- Inbox listing and energy-matched bundles
- Field updates, with the last completed shard completing its parent
- Shard sets written in one transaction
- Correction logging scoped to the task owner
"""

import sqlite3
from unittest.mock import patch

import pytest

from flux.errors import InvalidRequest, MissingUser, NotFound
from flux.tasks.manager import (
    complete_parent_if_done,
    create_shards,
    create_task,
    get_bundle,
    get_recent_corrections,
    get_shards,
    get_task,
    jettison_tasks,
    list_inbox,
    record_corrections,
    update_task,
    update_task_status,
)


@pytest.fixture
def parent_with_shards(flux_db, mock_user_id):
    """A parent task with three shards."""
    parent = create_task(mock_user_id, "clean the whole kitchen", gravity="High", project="Home")
    shards = create_shards(parent, [
        {"title": "Clear the counters", "gravity": "Low", "estimated_minutes": 10},
        {"title": "Load the dishwasher"},
        {"title": "Mop the floor", "description": "Use the blue mop", "gravity": "High"},
    ])
    return parent, shards


# ─────────────────────────────────────────────────────────────────────────────
# Task Creation
# ─────────────────────────────────────────────────────────────────────────────


class TestCreateTask:
    def test_creates_basic_task(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "buy milk")

        assert task["content"] == "buy milk"
        assert task["title"] == "buy milk"
        assert task["status"] == "inbox"
        assert task["tags"] == []
        assert task["is_ambiguous"] is False
        assert task["parent_task_id"] is None
        assert len(task["id"]) == 12

    def test_generates_unique_ids(self, flux_db, mock_user_id):
        assert create_task(mock_user_id, "a")["id"] != create_task(mock_user_id, "b")["id"]

    def test_requires_user(self, flux_db):
        with pytest.raises(MissingUser):
            create_task(None, "buy milk")

    def test_rejects_blank_content(self, flux_db, mock_user_id):
        with pytest.raises(InvalidRequest):
            create_task(mock_user_id, "   ")

    def test_rejects_unknown_status_and_gravity(self, flux_db, mock_user_id):
        with pytest.raises(InvalidRequest):
            create_task(mock_user_id, "x", status="done")
        with pytest.raises(InvalidRequest):
            create_task(mock_user_id, "x", gravity="Urgent")

    def test_get_unknown_task(self, flux_db):
        with pytest.raises(NotFound):
            get_task("nope")


# ─────────────────────────────────────────────────────────────────────────────
# Inbox and Bundles
# ─────────────────────────────────────────────────────────────────────────────


class TestInboxAndBundles:
    def test_inbox_newest_first_and_open_only(self, flux_db, mock_user_id, other_user_id):
        first = create_task(mock_user_id, "first")
        second = create_task(mock_user_id, "second", status="inbox_review")
        create_task(mock_user_id, "done", status="complete")
        create_task(mock_user_id, "later", status="deferred")
        create_task(other_user_id, "not mine")

        assert [t["id"] for t in list_inbox(mock_user_id)] == [second["id"], first["id"]]

    def test_high_energy_only_gentle_tasks(self, flux_db, mock_user_id):
        create_task(mock_user_id, "heavy", gravity="High")
        create_task(mock_user_id, "medium", gravity="Standard")
        light = [create_task(mock_user_id, f"light {i}", gravity="Low") for i in range(4)]
        unrated = create_task(mock_user_id, "unrated")

        bundle = get_bundle(mock_user_id, "high")

        allowed = {t["id"] for t in light} | {unrated["id"]}
        assert len(bundle) == 3
        assert {t["id"] for t in bundle} <= allowed

    def test_standard_energy_excludes_high(self, flux_db, mock_user_id):
        create_task(mock_user_id, "heavy", gravity="High")
        create_task(mock_user_id, "medium", gravity="Standard")

        bundle = get_bundle(mock_user_id, "standard")

        assert [t["content"] for t in bundle] == ["medium"]

    def test_low_energy_hardest_first(self, flux_db, mock_user_id):
        create_task(mock_user_id, "light", gravity="Low")
        create_task(mock_user_id, "medium", gravity="Standard")
        create_task(mock_user_id, "heavy", gravity="High")

        bundle = get_bundle(mock_user_id, "LOW")

        assert [t["gravity"] for t in bundle] == ["High", "Standard", "Low"]

    def test_completed_tasks_never_bundled(self, flux_db, mock_user_id):
        create_task(mock_user_id, "done", gravity="Low", status="complete")

        assert get_bundle(mock_user_id, "high") == []

    def test_invalid_energy(self, flux_db, mock_user_id):
        with pytest.raises(InvalidRequest):
            get_bundle(mock_user_id, "frantic")


# ─────────────────────────────────────────────────────────────────────────────
# Shards
# ─────────────────────────────────────────────────────────────────────────────


class TestCreateShards:
    def test_shards_inherit_and_order(self, parent_with_shards, mock_user_id):
        parent, shards = parent_with_shards

        assert [s["shard_order"] for s in shards] == [1, 2, 3]
        assert [s["title"] for s in shards] == ["Clear the counters", "Load the dishwasher", "Mop the floor"]
        for shard in shards:
            assert shard["parent_task_id"] == parent["id"]
            assert shard["user_id"] == mock_user_id
            assert shard["project"] == "Home"
            assert shard["status"] == "inbox"
            assert shard["tags"] == ["shard"]
        assert shards[1]["gravity"] == "Low"
        assert shards[0]["estimated_minutes"] == 10

    def test_shard_cannot_be_parent(self, parent_with_shards):
        _, shards = parent_with_shards

        with pytest.raises(InvalidRequest):
            create_shards(shards[0], [{"title": "deeper"}])

    def test_failed_write_leaves_no_partial_set(self, flux_db, mock_user_id):
        parent = create_task(mock_user_id, "big job")
        # Second id collides with the first: the insert fails midway
        with patch("flux.tasks.manager.generate_id", side_effect=["dupdupdupdup", "dupdupdupdup"]):
            with pytest.raises(sqlite3.IntegrityError):
                create_shards(parent, [{"title": "one"}, {"title": "two"}])

        assert get_shards(parent["id"]) == []


# ─────────────────────────────────────────────────────────────────────────────
# Updates and Parent Completion
# ─────────────────────────────────────────────────────────────────────────────


class TestUpdateTask:
    def test_updates_fields(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "x")

        result = update_task(task["id"], title="Renamed", gravity="High", tags=["a", "b"])

        assert result["task"]["title"] == "Renamed"
        assert result["task"]["gravity"] == "High"
        assert result["task"]["tags"] == ["a", "b"]
        assert result["task"]["content"] == "x"
        assert result["parent_completed"] is False
        assert result["parent_task_id"] is None

    def test_completed_at_set_and_cleared(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "x")

        done = update_task_status(task["id"], "complete")["task"]
        reopened = update_task_status(task["id"], "inbox")["task"]

        assert done["completed_at"] is not None
        assert reopened["completed_at"] is None

    def test_rejects_unknown_or_empty(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "x")

        with pytest.raises(InvalidRequest):
            update_task(task["id"], content="changed")
        with pytest.raises(InvalidRequest):
            update_task(task["id"])
        with pytest.raises(InvalidRequest):
            update_task(task["id"], status="finished")

    def test_unknown_task(self, flux_db):
        with pytest.raises(NotFound):
            update_task("nope", title="x")


class TestParentCompletion:
    def test_last_shard_completes_parent(self, parent_with_shards):
        parent, shards = parent_with_shards

        first = update_task_status(shards[0]["id"], "complete")
        second = update_task_status(shards[1]["id"], "complete")
        last = update_task_status(shards[2]["id"], "complete")

        assert first["parent_completed"] is False
        assert second["parent_completed"] is False
        assert last["parent_completed"] is True
        assert last["parent_task_id"] == parent["id"]
        assert get_task(parent["id"])["status"] == "complete"

    def test_non_complete_status_never_completes_parent(self, parent_with_shards):
        parent, shards = parent_with_shards
        for shard in shards[:2]:
            update_task_status(shard["id"], "complete")

        result = update_task_status(shards[2]["id"], "deferred")

        assert result["parent_completed"] is False
        assert get_task(parent["id"])["status"] == "inbox"

    def test_completion_reported_once(self, parent_with_shards):
        parent, shards = parent_with_shards
        for shard in shards:
            update_task_status(shard["id"], "complete")

        # Re-completing a shard of an already completed parent
        again = update_task_status(shards[0]["id"], "complete")

        assert again["parent_completed"] is False
        assert complete_parent_if_done(parent["id"]) is False

    def test_parent_without_shards_is_not_completed(self, flux_db, mock_user_id):
        parent = create_task(mock_user_id, "lonely")

        assert complete_parent_if_done(parent["id"]) is False


# ─────────────────────────────────────────────────────────────────────────────
# Jettison
# ─────────────────────────────────────────────────────────────────────────────


class TestJettison:
    def test_resets_unfinished_tasks(self, flux_db, mock_user_id, other_user_id):
        create_task(mock_user_id, "a", status="deferred")
        create_task(mock_user_id, "b", status="inbox_review")
        done = create_task(mock_user_id, "c", status="complete")
        theirs = create_task(other_user_id, "d", status="deferred")

        changes = jettison_tasks(mock_user_id)

        assert changes == 2
        assert {t["status"] for t in list_inbox(mock_user_id)} == {"inbox"}
        assert get_task(done["id"])["status"] == "complete"
        assert get_task(theirs["id"])["status"] == "deferred"


# ─────────────────────────────────────────────────────────────────────────────
# Corrections
# ─────────────────────────────────────────────────────────────────────────────


class TestCorrections:
    def test_records_and_returns_newest_first(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "call mum about sunday", title="Call mum")

        count = record_corrections(task["id"], [
            {"field_name": "gravity", "original_value": "Low", "corrected_value": "High"},
            {"field_name": "tags", "original_value": [], "corrected_value": ["family"]},
        ])
        recent = get_recent_corrections(mock_user_id)

        assert count == 2
        assert [c["field_name"] for c in recent] == ["tags", "gravity"]
        assert recent[0]["corrected_value"] == '["family"]'
        assert recent[1]["original_transcript"] == "call mum about sunday"
        assert recent[1]["task_title"] == "Call mum"

    def test_limit(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "x")
        record_corrections(task["id"], [{"field_name": f"f{i}"} for i in range(5)])

        assert len(get_recent_corrections(mock_user_id, limit=3)) == 3

    def test_scoped_to_owner(self, flux_db, mock_user_id, other_user_id):
        task = create_task(other_user_id, "theirs")
        record_corrections(task["id"], [{"field_name": "project", "corrected_value": "Work"}])

        assert get_recent_corrections(mock_user_id) == []

    def test_rejects_empty_or_malformed(self, flux_db, mock_user_id):
        task = create_task(mock_user_id, "x")

        with pytest.raises(InvalidRequest):
            record_corrections(task["id"], [])
        with pytest.raises(InvalidRequest):
            record_corrections(task["id"], [{"original_value": "a"}])

    def test_unknown_task(self, flux_db):
        with pytest.raises(NotFound):
            record_corrections("nope", [{"field_name": "gravity"}])
