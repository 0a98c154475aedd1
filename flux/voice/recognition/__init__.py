"""Voice recognition providers."""

from flux.voice.recognition.base import BaseTranscriber
from flux.voice.recognition.deepgram_adapter import DeepgramTranscriber, get_transcriber

__all__ = [
    "BaseTranscriber",
    "DeepgramTranscriber",
    "get_transcriber",
]
