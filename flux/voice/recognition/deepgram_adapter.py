"""Deepgram speech-to-text adapter.

Posts the raw recording to Deepgram's pre-recorded ``/v1/listen`` endpoint
with the user's vocabulary as repeated ``keyterm`` parameters. The API key
is read from DEEPGRAM_API_KEY on every call.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Sequence

import httpx

from flux.config_models import TranscriptionConfig, get_config
from flux.errors import ServiceUnavailable, TranscriptionFailed, UnintelligibleAudio
from flux.ops.retry import post_with_retry
from flux.voice.models import TranscriptionResult
from flux.voice.recognition.base import BaseTranscriber

logger = logging.getLogger(__name__)


def _bool_param(value: bool) -> str:
    return "true" if value else "false"


class DeepgramTranscriber(BaseTranscriber):
    """Transcribes audio through the Deepgram REST API."""

    def __init__(
        self,
        config: TranscriptionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> TranscriptionConfig:
        return self._config or get_config().transcription

    @property
    def name(self) -> str:
        return "deepgram"

    @property
    def is_available(self) -> bool:
        return bool(os.environ.get("DEEPGRAM_API_KEY"))

    def build_params(self, keywords: Sequence[str] | None = None) -> list[tuple[str, str]]:
        """Query parameters; an empty keyword list adds nothing."""
        config = self.config
        params = [
            ("model", config.model),
            ("smart_format", _bool_param(config.smart_format)),
            ("filler_words", _bool_param(config.filler_words)),
            ("punctuate", _bool_param(config.punctuate)),
        ]
        params.extend(("keyterm", keyword) for keyword in keywords or [])
        return params

    async def transcribe(
        self,
        audio_data: bytes,
        keywords: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> TranscriptionResult:
        api_key = os.environ.get("DEEPGRAM_API_KEY")
        if not api_key:
            raise ServiceUnavailable("transcription", "Transcription service not configured")

        config = self.config
        mime_type = kwargs.get("mime_type") or config.mime_type

        try:
            response = await post_with_retry(
                config.base_url,
                policy=config.retry_policy,
                transport=self._transport,
                params=self.build_params(keywords),
                headers={
                    "Authorization": f"Token {api_key}",
                    "Content-Type": mime_type,
                },
                content=audio_data,
            )
        except httpx.TransportError as e:
            logger.warning(f"Deepgram request failed: {type(e).__name__}: {e}")
            raise TranscriptionFailed(f"Deepgram transcription failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"Deepgram returned {response.status_code}")
            raise TranscriptionFailed(
                f"Deepgram transcription failed: {response.text}",
                provider_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionFailed("Deepgram returned a non-JSON response") from e

        alternative = _first_alternative(payload)
        transcript = alternative.get("transcript") or ""
        if not transcript.strip():
            logger.info("Deepgram returned an empty transcript")
            raise UnintelligibleAudio()

        duration = (payload.get("metadata") or {}).get("duration") or 0
        return TranscriptionResult(
            transcript=transcript,
            confidence=float(alternative.get("confidence") or 0.0),
            source=self.name,
            duration_ms=int(float(duration) * 1000),
            keyterms=list(keywords or []),
        )


def _first_alternative(payload: Any) -> dict[str, Any]:
    """results.channels[0].alternatives[0], or {} if any level is missing."""
    try:
        alternative = payload["results"]["channels"][0]["alternatives"][0]
    except (KeyError, IndexError, TypeError):
        return {}
    return alternative if isinstance(alternative, dict) else {}


# Module-level singleton
_transcriber: DeepgramTranscriber | None = None


def get_transcriber() -> DeepgramTranscriber:
    """Get or create the global DeepgramTranscriber instance."""
    global _transcriber
    if _transcriber is None:
        _transcriber = DeepgramTranscriber()
    return _transcriber
