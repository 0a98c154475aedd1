"""In-memory stand-ins for the transcription and LLM providers."""

from __future__ import annotations

from typing import Any, Sequence

from flux.voice.models import TranscriptionResult
from flux.voice.recognition.base import BaseTranscriber


class FakeTranscriber(BaseTranscriber):
    """Returns a fixed transcript, or raises ``error`` if set."""

    def __init__(self, transcript: str = "", error: Exception | None = None):
        self.transcript = transcript
        self.error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def is_available(self) -> bool:
        return True

    async def transcribe(self, audio_data: bytes, keywords: Sequence[str] | None = None, **kwargs) -> TranscriptionResult:
        self.calls.append({"audio": audio_data, "keywords": list(keywords or []), **kwargs})
        if self.error is not None:
            raise self.error
        return TranscriptionResult(transcript=self.transcript, source=self.name)


class FakeLLMClient:
    """Answers complete_json() with a fixed payload, or raises ``error`` if set."""

    def __init__(self, response: Any = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def is_available(self) -> bool:
        return True

    async def complete_json(self, system_prompt: str, user_message: str, call=None, title=None) -> Any:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "call": call,
            "title": title,
        })
        if self.error is not None:
            raise self.error
        return self.response
