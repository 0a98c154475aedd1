"""
Integration test fixtures for FLUX.

Provides fixtures specific to integration testing:
- FastAPI test client with an isolated database
- Fake transcription and LLM providers installed on app.state
"""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from tests.fakes import FakeLLMClient, FakeTranscriber


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def dashboard_app(temp_db: Path):
    """The FastAPI app with storage pointed at a temporary database."""
    with patch("flux.database.DB_PATH", temp_db):
        from flux.dashboard.backend.main import app

        yield app


@pytest.fixture
def test_client(dashboard_app, fake_transcriber, fake_llm) -> Generator:
    """Test client with lifespan running and fake providers swapped in.

    Startup seeds the demo user from args/default_user.yaml into the
    temporary database.
    """
    from fastapi.testclient import TestClient

    with TestClient(dashboard_app) as client:
        dashboard_app.state.transcriber = fake_transcriber
        dashboard_app.state.llm_client = fake_llm
        yield client


@pytest.fixture
def use_transcriber(dashboard_app):
    """Swap the app's transcriber for one built from the given arguments."""

    def _install(transcript: str = "", error: Exception | None = None) -> FakeTranscriber:
        transcriber = FakeTranscriber(transcript, error=error)
        dashboard_app.state.transcriber = transcriber
        return transcriber

    return _install


@pytest.fixture
def use_llm(dashboard_app):
    """Swap the app's LLM client for one answering with the given payload."""

    def _install(response=None, error: Exception | None = None) -> FakeLLMClient:
        client = FakeLLMClient(response, error=error)
        dashboard_app.state.llm_client = client
        return client

    return _install
