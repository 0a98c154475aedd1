"""Tests for flux/tasks/breakdown.py and flux/tasks/decompose.py

Breakdown shatters one task into ordered shards at most once:
- repeated or concurrent calls return the first shard set
- LLM failures leave no shards behind
"""

import asyncio
import gc

import pytest

from flux.errors import (
    CompletionFailed,
    EmptyDecomposition,
    InvalidRequest,
    MalformedResponse,
    MissingUser,
    NotFound,
    PipelineFailure,
)
from flux.profile.context import UserContext
from flux.tasks import breakdown
from flux.tasks.breakdown import submit_breakdown
from flux.tasks.decompose import build_breakdown_message, generate_breakdown, normalize_shards
from flux.tasks.manager import create_task, get_shards, record_corrections
from tests.fakes import FakeLLMClient


class SlowLLMClient(FakeLLMClient):
    """Yields to the event loop before answering, so calls can overlap."""

    async def complete_json(self, *args, **kwargs):
        await asyncio.sleep(0.01)
        return await super().complete_json(*args, **kwargs)


@pytest.fixture
def parent(flux_db, mock_user_id):
    return create_task(mock_user_id, "clean the whole kitchen", title="Clean kitchen", gravity="High", project="Home")


# ─────────────────────────────────────────────────────────────────────────────
# Decomposition
# ─────────────────────────────────────────────────────────────────────────────


class TestNormalizeShards:
    def test_defaults_and_filtering(self):
        shards = normalize_shards([
            {"title": " First ", "gravity": "standard", "estimated_minutes": 5},
            "not a dict",
            {"title": "", "description": ""},
            {"description": "Only a description"},
            {"title": "Bad minutes", "estimated_minutes": "ten"},
        ])

        assert [s["title"] for s in shards] == ["First", "Only a description", "Bad minutes"]
        assert shards[0]["gravity"] == "Standard"
        assert shards[0]["estimated_minutes"] == 5
        assert shards[1]["gravity"] == "Low"
        assert shards[2]["estimated_minutes"] is None

    def test_not_a_list(self):
        assert normalize_shards({"title": "x"}) == []


class TestGenerateBreakdown:
    def test_message_describes_parent(self, parent):
        message = build_breakdown_message(parent, UserContext(user_id="u"), [])

        assert message.startswith("## Parent Task to Decompose\n")
        assert 'Title: "Clean kitchen"' in message
        assert 'Description: "No description provided"' in message
        assert "Current Gravity: High" in message
        assert "Project: Home" in message

    @pytest.mark.asyncio
    async def test_uses_breakdown_settings(self, parent, sample_breakdown):
        client = FakeLLMClient(sample_breakdown)

        result = await generate_breakdown(parent, UserContext(user_id="u"), client=client)

        assert result["reasoning"] == "Start with the smallest physical step"
        assert len(result["shards"]) == 3
        call = client.calls[0]
        assert call["title"] == "FLUX Magic Breakdown"
        assert call["call"].temperature == 0.4
        assert call["call"].max_tokens == 1500


# ─────────────────────────────────────────────────────────────────────────────
# Breakdown Pipeline
# ─────────────────────────────────────────────────────────────────────────────


class TestSubmitBreakdown:
    @pytest.mark.asyncio
    async def test_creates_ordered_shards(self, parent, mock_user_id, sample_breakdown):
        client = FakeLLMClient(sample_breakdown)

        result = await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

        assert result["success"] is True
        assert result["reasoning"] == sample_breakdown["reasoning"]
        assert result["parent_task"] == {"id": parent["id"], "title": "Clean kitchen"}
        assert [s["shard_order"] for s in result["shards"]] == [1, 2, 3]
        assert [s["title"] for s in result["shards"]] == ["Clear the counters", "Load the dishwasher", "Mop the floor"]
        assert all(s["project"] == "Home" for s in result["shards"])

    @pytest.mark.asyncio
    async def test_second_call_returns_existing(self, parent, mock_user_id, sample_breakdown):
        client = FakeLLMClient(sample_breakdown)
        first = await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

        second = await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

        assert len(client.calls) == 1
        assert second["already_decomposed"] is True
        assert second["reasoning"] is None
        assert second["message"] == "Task already decomposed"
        assert [s["id"] for s in second["shards"]] == [s["id"] for s in first["shards"]]

    @pytest.mark.asyncio
    async def test_concurrent_calls_produce_one_set(self, parent, mock_user_id, sample_breakdown):
        client = SlowLLMClient(sample_breakdown)

        results = await asyncio.gather(
            submit_breakdown(parent["id"], mock_user_id, llm_client=client),
            submit_breakdown(parent["id"], mock_user_id, llm_client=client),
        )

        assert len(client.calls) == 1
        assert len(get_shards(parent["id"])) == 3
        assert [s["id"] for s in results[0]["shards"]] == [s["id"] for s in results[1]["shards"]]

    @pytest.mark.asyncio
    async def test_parent_locks_released_after_runs(self, parent, mock_user_id, sample_breakdown):
        others = [create_task(mock_user_id, f"chore {i}") for i in range(5)]
        client = SlowLLMClient(sample_breakdown)

        await asyncio.gather(
            submit_breakdown(parent["id"], mock_user_id, llm_client=client),
            submit_breakdown(parent["id"], mock_user_id, llm_client=client),
            *(submit_breakdown(task["id"], mock_user_id, llm_client=client) for task in others),
        )
        with pytest.raises(EmptyDecomposition):
            await submit_breakdown(
                create_task(mock_user_id, "vague")["id"],
                mock_user_id,
                llm_client=FakeLLMClient({"reasoning": "hmm", "shards": []}),
            )
        gc.collect()

        assert len(breakdown._parent_locks) == 0

    @pytest.mark.asyncio
    async def test_corrections_included(self, parent, mock_user_id, sample_breakdown):
        record_corrections(parent["id"], [{"field_name": "gravity", "original_value": "Low", "corrected_value": "High"}])
        client = FakeLLMClient(sample_breakdown)

        await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

        assert "## Recent Corrections (Learn from these)" in client.calls[0]["user_message"]

    @pytest.mark.asyncio
    async def test_empty_decomposition_writes_nothing(self, parent, mock_user_id):
        client = FakeLLMClient({"reasoning": "hmm", "shards": []})

        with pytest.raises(EmptyDecomposition):
            await submit_breakdown(parent["id"], mock_user_id, llm_client=client)
        assert get_shards(parent["id"]) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        MalformedResponse("bad", raw_content="bad"),
        CompletionFailed("down", provider_status=503),
    ])
    async def test_llm_errors_pass_through(self, parent, mock_user_id, error):
        client = FakeLLMClient(error=error)

        with pytest.raises(type(error)):
            await submit_breakdown(parent["id"], mock_user_id, llm_client=client)
        assert get_shards(parent["id"]) == []

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, parent, mock_user_id):
        client = FakeLLMClient(error=KeyError("x"))

        with pytest.raises(PipelineFailure):
            await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(self, parent, mock_user_id, sample_breakdown):
        client = FakeLLMClient(error=MalformedResponse("bad"))
        with pytest.raises(MalformedResponse):
            await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

        client.error = None
        client.response = sample_breakdown
        result = await submit_breakdown(parent["id"], mock_user_id, llm_client=client)

        assert len(result["shards"]) == 3

    @pytest.mark.asyncio
    async def test_guards(self, parent, mock_user_id, other_user_id, sample_breakdown):
        client = FakeLLMClient(sample_breakdown)

        with pytest.raises(MissingUser):
            await submit_breakdown(parent["id"], None, llm_client=client)
        with pytest.raises(NotFound):
            await submit_breakdown("missing", mock_user_id, llm_client=client)
        with pytest.raises(NotFound):
            await submit_breakdown(parent["id"], other_user_id, llm_client=client)

        result = await submit_breakdown(parent["id"], mock_user_id, llm_client=client)
        with pytest.raises(InvalidRequest):
            await submit_breakdown(result["shards"][0]["id"], mock_user_id, llm_client=client)
        assert client.calls and len(client.calls) == 1
