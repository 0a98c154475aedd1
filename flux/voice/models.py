"""Voice capture data models."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TranscriptionResult:
    """Result from speech recognition."""

    transcript: str
    confidence: float = 0.0
    source: str = "deepgram"
    duration_ms: int = 0
    keyterms: list[str] = field(default_factory=list)
