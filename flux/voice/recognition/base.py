"""Abstract base class for speech transcription providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from flux.voice.models import TranscriptionResult


class BaseTranscriber(ABC):
    """Abstract base for all transcription providers.

    Implementations raise ServiceUnavailable when their credential is unset,
    UnintelligibleAudio when the provider hears nothing, and
    TranscriptionFailed for anything else.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'deepgram')."""

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Whether this provider is currently usable."""

    @abstractmethod
    async def transcribe(
        self,
        audio_data: bytes,
        keywords: Sequence[str] | None = None,
        **kwargs,
    ) -> TranscriptionResult:
        """Transcribe audio data to text, biased toward the given vocabulary."""
