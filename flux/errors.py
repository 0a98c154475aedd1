"""Exception hierarchy for the capture and breakdown pipelines.

Every error carries the HTTP status the transport should answer with and a
machine-readable ``error_code``, so callers can tell "not configured" from
"provider hiccup" from "the model returned junk" without parsing messages.

    FluxError
    ├── ServiceUnavailable      provider credential missing
    ├── UnintelligibleAudio     empty transcript (user-facing, not a fault)
    ├── ProviderError           provider answered with a failure
    │   ├── TranscriptionFailed
    │   └── CompletionFailed
    ├── MalformedResponse       LLM output is empty or not JSON
    ├── EmptyDecomposition      LLM produced zero shards
    ├── NotFound
    ├── MissingUser
    ├── InvalidRequest
    └── PipelineFailure         anything else, original chained as __cause__
"""

from typing import Any


class FluxError(Exception):
    """Base exception for all FLUX application errors.

    Attributes:
        status_code: HTTP status code to return when this error reaches a route.
        error_code: Machine-readable error identifier for clients.
        context: Extra key-value pairs merged into the error payload.
    """

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.error_code,
            **self.context,
        }


class ServiceUnavailable(FluxError):
    """A provider credential is not configured."""

    status_code = 503
    default_code = "SERVICE_UNAVAILABLE"

    def __init__(self, service: str, message: str | None = None, **context: Any) -> None:
        super().__init__(message or f"{service} service not configured", service=service, **context)
        self.service = service


class UnintelligibleAudio(FluxError):
    """The transcription provider heard nothing it could turn into words."""

    status_code = 422
    default_code = "UNINTELLIGIBLE_AUDIO"

    def __init__(self, message: str = "Could not understand the audio. Please try speaking more clearly.") -> None:
        super().__init__(message, is_unintelligible=True)


class ProviderError(FluxError):
    """An external provider returned a non-success response or was unreachable."""

    status_code = 502
    default_code = "PROVIDER_ERROR"


class TranscriptionFailed(ProviderError):
    default_code = "TRANSCRIPTION_FAILED"


class CompletionFailed(ProviderError):
    default_code = "COMPLETION_FAILED"


class MalformedResponse(FluxError):
    """The LLM answered, but not with parseable JSON.

    ``raw_content`` keeps the untouched provider text for diagnostics.
    """

    status_code = 502
    default_code = "MALFORMED_RESPONSE"

    def __init__(self, message: str, raw_content: str | None = None) -> None:
        super().__init__(message, raw_content=raw_content)
        self.raw_content = raw_content


class EmptyDecomposition(FluxError):
    status_code = 502
    default_code = "EMPTY_DECOMPOSITION"

    def __init__(self, message: str = "LLM did not return any shards", **context: Any) -> None:
        super().__init__(message, **context)


class NotFound(FluxError):
    status_code = 404
    default_code = "NOT_FOUND"


class MissingUser(FluxError):
    status_code = 400
    default_code = "MISSING_USER"

    def __init__(self, message: str = "user_id is required") -> None:
        super().__init__(message)


class InvalidRequest(FluxError):
    status_code = 400
    default_code = "INVALID_REQUEST"


class PipelineFailure(FluxError):
    status_code = 500
    default_code = "PIPELINE_FAILURE"


def require_user(user_id: str | None) -> str:
    """Return a usable user id or raise MissingUser. There is no default user."""
    if user_id is None or not str(user_id).strip():
        raise MissingUser()
    return str(user_id).strip()


__all__ = [
    "CompletionFailed",
    "EmptyDecomposition",
    "FluxError",
    "InvalidRequest",
    "MalformedResponse",
    "MissingUser",
    "NotFound",
    "PipelineFailure",
    "ProviderError",
    "ServiceUnavailable",
    "TranscriptionFailed",
    "UnintelligibleAudio",
    "require_user",
]
