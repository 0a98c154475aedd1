"""Shared test fixtures for FLUX tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- Standard test user data
- Fake transcription and LLM providers

Usage:
    def test_something(flux_db, mock_user_id):
        # flux_db points flux.database at a throwaway SQLite file
        ...
"""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from flux.config_models import reset_config
from tests.fakes import FakeLLMClient, FakeTranscriber


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    if db_path.exists():
        os.unlink(db_path)


@pytest.fixture
def flux_db(temp_db: Path) -> Generator[Path, None, None]:
    """Point every FLUX storage call at the temporary database."""
    with patch("flux.database.DB_PATH", temp_db):
        from flux.database import get_connection

        # Force table creation
        get_connection().close()

        yield temp_db


@pytest.fixture(autouse=True)
def fresh_config() -> Generator[None, None, None]:
    """Re-read args/flux.yaml for every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def fresh_breakdown_locks() -> Generator[None, None, None]:
    """Per-parent locks belong to one event loop; drop them between tests."""
    from flux.tasks import breakdown

    breakdown._parent_locks.clear()
    yield
    breakdown._parent_locks.clear()


@pytest.fixture
def no_provider_keys(monkeypatch) -> None:
    monkeypatch.delenv("DEEPGRAM_API_KEY", raising=False)
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("OPENROUTER_MODEL", raising=False)


@pytest.fixture
def provider_keys(monkeypatch) -> None:
    monkeypatch.setenv("DEEPGRAM_API_KEY", "dg-test-key")
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-test-key")
    monkeypatch.delenv("OPENROUTER_MODEL", raising=False)


# ─────────────────────────────────────────────────────────────────────────────
# User Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_user_id() -> str:
    """Standard test user ID."""
    return "test_user_123"


@pytest.fixture
def other_user_id() -> str:
    return "other_user_456"


# ─────────────────────────────────────────────────────────────────────────────
# Provider Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_extraction() -> dict:
    """A confident, unambiguous extraction."""
    return {
        "task_title": "Call the dentist",
        "task_description": "Book a check-up for next week",
        "gravity": "High",
        "project": "Home",
        "due_date": "2026-10-20",
        "tags": ["health"],
        "project_confidence": 0.9,
        "is_ambiguous": False,
    }


@pytest.fixture
def sample_breakdown() -> dict:
    return {
        "reasoning": "Start with the smallest physical step",
        "shards": [
            {"title": "Clear the counters", "description": "Put things away", "gravity": "Low", "estimated_minutes": 10},
            {"title": "Load the dishwasher", "description": "", "gravity": "Standard", "estimated_minutes": 15},
            {"title": "Mop the floor", "gravity": "High", "estimated_minutes": 20},
        ],
    }


@pytest.fixture
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber("call the dentist tomorrow about my check-up")


@pytest.fixture
def fake_llm(sample_extraction) -> FakeLLMClient:
    return FakeLLMClient(sample_extraction)
