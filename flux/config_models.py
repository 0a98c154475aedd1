from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from flux import ARGS_DIR
from flux.ops.retry import RetryPolicy

logger = logging.getLogger(__name__)


# =============================================================================
# Provider sections
# =============================================================================

class TranscriptionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    base_url: str = Field(default="https://api.deepgram.com/v1/listen")
    model: str = Field(default="nova-3")
    smart_format: bool = Field(default=True)
    punctuate: bool = Field(default=True)
    filler_words: bool = Field(default=False)
    mime_type: str = Field(default="audio/webm")
    max_audio_mb: int = Field(default=25, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=1, ge=0)
    backoff_seconds: float = Field(default=0.5, ge=0)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
        )

    @property
    def max_audio_bytes(self) -> int:
        return self.max_audio_mb * 1024 * 1024


class LLMCallConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)


class LLMConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions")
    model: str = Field(default="anthropic/claude-3.5-sonnet")
    referer: str = Field(default="https://flux-app.local")
    app_title: str = Field(default="FLUX")
    timeout_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=1, ge=0)
    backoff_seconds: float = Field(default=1.0, ge=0)
    extraction: LLMCallConfig = Field(default_factory=LLMCallConfig)
    breakdown: LLMCallConfig = Field(
        default_factory=lambda: LLMCallConfig(temperature=0.4, max_tokens=1500)
    )

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
        )

    def resolved_model(self) -> str:
        """OPENROUTER_MODEL wins over the YAML value."""
        return os.environ.get("OPENROUTER_MODEL") or self.model


# =============================================================================
# Application sections
# =============================================================================

class CaptureConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    corrections_window: int = Field(default=10, ge=0)


class ProgressConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    retention_seconds: float = Field(default=300.0, ge=0)


class DashboardConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=3000, ge=1, le=65535)
    allowed_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class SeedConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    default_user_path: Optional[str] = None


class FluxConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    seed: SeedConfig = Field(default_factory=SeedConfig)


# =============================================================================
# Loading
# =============================================================================

_config: FluxConfig | None = None


def load_config(path: Path | None = None) -> FluxConfig:
    """Read and validate args/flux.yaml. Invalid or unreadable files fall back to defaults."""
    yaml_path = path or ARGS_DIR / "flux.yaml"

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return FluxConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path.name}: {e}, using defaults")
        return FluxConfig()


def get_config() -> FluxConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    global _config
    _config = None
