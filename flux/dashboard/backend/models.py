"""
Pydantic models for API request/response types.

Request bodies are validated here; business rules (allowed transitions,
ownership, empty lists) are enforced by the pipelines and managers.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================


class TaskStatus(str, Enum):
    INBOX = "inbox"
    INBOX_REVIEW = "inbox_review"
    DEFERRED = "deferred"
    COMPLETE = "complete"


class Gravity(str, Enum):
    LOW = "Low"
    STANDARD = "Standard"
    HIGH = "High"


class Energy(str, Enum):
    """User energy for bundles: high = overwhelmed, low = flow state."""

    HIGH = "high"
    STANDARD = "standard"
    LOW = "low"


# =============================================================================
# Common
# =============================================================================


class HealthCheck(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Overall system status")
    version: str = Field(default="0.1.0", description="API version")
    timestamp: datetime = Field(default_factory=datetime.now, description="Check timestamp")
    services: dict[str, str] = Field(default_factory=dict, description="Individual service statuses")


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str = Field(..., description="Error message")
    code: str = Field(default="INTERNAL_ERROR", description="Error code")


# =============================================================================
# Tasks
# =============================================================================


class CreateTaskRequest(BaseModel):
    user_id: str | None = Field(None, description="Owner of the task")
    content: str = Field(..., min_length=1, description="Task text")


class UpdateTaskRequest(BaseModel):
    """Partial update; only fields present in the body are changed."""

    status: TaskStatus | None = None
    title: str | None = None
    description: str | None = None
    gravity: Gravity | None = None
    project: str | None = None
    due_date: str | None = None
    tags: list[str] | None = None


class CorrectionItem(BaseModel):
    field_name: str = Field(..., min_length=1)
    original_value: Any = None
    corrected_value: Any = None


class CorrectionsRequest(BaseModel):
    corrections: list[CorrectionItem] = Field(default_factory=list)


class BreakdownRequest(BaseModel):
    user_id: str | None = Field(None, description="User whose context guides the breakdown")


# =============================================================================
# Profile
# =============================================================================


class CreateProfileRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    display_name: str | None = None
    timezone: str = "UTC"
    high_gravity_keywords: list[str] | None = None
    low_gravity_keywords: list[str] | None = None
    deepgram_keywords: list[str] | None = None


class UpdateProfileRequest(BaseModel):
    display_name: str | None = None
    timezone: str | None = None
    high_gravity_keywords: list[str] | None = None
    low_gravity_keywords: list[str] | None = None
    deepgram_keywords: list[str] | None = None


class ProjectRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    color: str | None = None


class PersonRequest(BaseModel):
    name: str = Field(..., min_length=1)
    context: str | None = None
