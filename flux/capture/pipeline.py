"""
Capture Pipeline: audio -> transcript -> structured task -> inbox

Stages, each reported through the request's ProgressTracker:

    context_loading -> context_loaded
    transcription_start -> transcription_complete
    processing_start -> processing_complete
    saving -> complete

Any stage can end the run with a single ``error`` event instead.
Unintelligible audio is an expected outcome, not a fault: it ends the run
with ``success: false, is_unintelligible: true`` and nothing is stored.

Usage:
    from flux.capture.pipeline import process_audio_entry, submit_capture

    result = await process_audio_entry(audio_bytes, user_id="alice")
    request_id = submit_capture(audio_bytes, "alice", registry)
"""

from typing import Any, Dict, List, Optional, Tuple

from flux.capture.extraction import extract_task
from flux.config_models import get_config
from flux.errors import FluxError, InvalidRequest, PipelineFailure, UnintelligibleAudio, require_user
from flux.llm.client import OpenRouterClient
from flux.logging_config import get_logger, log_context
from flux.profile.context import get_user_context
from flux.progress import ProgressRegistry, ProgressStage, ProgressTracker
from flux.tasks import NEEDS_SORTING_TAG, REVIEW_CONFIDENCE_THRESHOLD
from flux.tasks.manager import create_task, get_recent_corrections
from flux.voice.recognition.base import BaseTranscriber
from flux.voice.recognition.deepgram_adapter import get_transcriber

logger = get_logger(__name__)


def decide_status(extracted: Dict[str, Any]) -> Tuple[str, List[str]]:
    """
    Route an extraction to inbox or inbox_review.

    Ambiguous results, or a numeric project confidence under 0.6, go to
    inbox_review with exactly one needs_sorting tag. A missing confidence
    does not trigger review on its own. Confident results never carry
    needs_sorting, even when the LLM suggested it.

    Returns:
        (status, tags) with tags as a new list
    """
    tags = [tag for tag in (extracted.get("tags") or []) if tag != NEEDS_SORTING_TAG]
    confidence = extracted.get("project_confidence")
    unsure = confidence is not None and confidence < REVIEW_CONFIDENCE_THRESHOLD

    if extracted.get("is_ambiguous") or unsure:
        return "inbox_review", tags + [NEEDS_SORTING_TAG]
    return "inbox", tags


def _noop_emit(stage: ProgressStage, **data: Any) -> None:
    return None


async def process_audio_entry(
    audio_bytes: bytes,
    user_id: str,
    tracker: Optional[ProgressTracker] = None,
    transcriber: Optional[BaseTranscriber] = None,
    llm_client: Optional[OpenRouterClient] = None,
    mime_type: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run one capture end to end.

    Returns:
        {success: True, task, transcript, request_id} or, for unintelligible
        audio, {success: False, error, is_unintelligible: True, request_id}

    Raises:
        FluxError subclasses unchanged; anything else as PipelineFailure.
        The tracker (if any) has already recorded the error event.
    """
    user_id = require_user(user_id)
    transcriber = transcriber or get_transcriber()
    request_id = tracker.request_id if tracker else None
    emit = tracker.emit if tracker else _noop_emit

    with log_context(request_id=request_id, user_id=user_id, pipeline="capture"):
        try:
            emit(ProgressStage.CONTEXT_LOADING, message="Loading user profile...")
            context = get_user_context(user_id)
            emit(
                ProgressStage.CONTEXT_LOADED,
                message="User profile loaded",
                project_count=len(context.projects),
            )

            emit(ProgressStage.TRANSCRIPTION_START, message="Transcribing audio...")
            try:
                transcription = await transcriber.transcribe(
                    audio_bytes, context.vocabulary, mime_type=mime_type
                )
            except UnintelligibleAudio as e:
                logger.info("capture.unintelligible", audio_bytes=len(audio_bytes))
                result = {
                    "success": False,
                    "error": e.message,
                    "is_unintelligible": True,
                    "request_id": request_id,
                }
                if tracker:
                    tracker.error(e.message, e.error_code, result=result, is_unintelligible=True)
                return result

            transcript = transcription.transcript
            logger.info("capture.transcribed", chars=len(transcript), keyterms=len(context.vocabulary))
            emit(ProgressStage.TRANSCRIPTION_COMPLETE, message="Audio transcribed", transcript=transcript)

            corrections = get_recent_corrections(user_id, limit=get_config().capture.corrections_window)
            if corrections:
                logger.info("capture.corrections_included", count=len(corrections))

            emit(ProgressStage.PROCESSING_START, message="Analyzing task...")
            extracted = await extract_task(transcript, context, corrections, client=llm_client)
            emit(
                ProgressStage.PROCESSING_COMPLETE,
                message="Task analyzed",
                title=extracted["task_title"],
                gravity=extracted["gravity"],
            )

            status, tags = decide_status(extracted)

            emit(ProgressStage.SAVING, message="Saving task...")
            task = create_task(
                user_id=user_id,
                content=transcript,
                title=extracted["task_title"],
                description=extracted["task_description"],
                status=status,
                gravity=extracted["gravity"],
                project=extracted["project"],
                due_date=extracted["due_date"],
                tags=tags,
                confidence=extracted["project_confidence"],
                is_ambiguous=extracted["is_ambiguous"],
            )
            logger.info("capture.saved", task_id=task["id"], status=status)

            result = {"success": True, "task": task, "transcript": transcript, "request_id": request_id}
            if tracker:
                tracker.complete(result)
            return result

        except FluxError as e:
            logger.error("capture.failed", code=e.error_code, error=e.message)
            if tracker:
                tracker.fail(e)
            raise
        except Exception as e:
            logger.exception("capture.crashed")
            failure = PipelineFailure(f"Capture pipeline failed: {e}")
            if tracker:
                tracker.fail(failure)
            raise failure from e


def submit_capture(
    audio_bytes: bytes,
    user_id: str,
    registry: ProgressRegistry,
    transcriber: Optional[BaseTranscriber] = None,
    llm_client: Optional[OpenRouterClient] = None,
    mime_type: Optional[str] = None,
) -> str:
    """
    Start a capture in the background and return its request id at once.

    Must be called from a running event loop. Progress and the final result
    are available through the registry under the returned id.
    """
    user_id = require_user(user_id)
    if not audio_bytes:
        raise InvalidRequest("No audio file provided")

    tracker = registry.create_request("capture")
    registry.spawn(
        tracker,
        process_audio_entry(
            audio_bytes,
            user_id,
            tracker=tracker,
            transcriber=transcriber,
            llm_client=llm_client,
            mime_type=mime_type,
        ),
    )
    logger.info("capture.submitted", request_id=tracker.request_id, user_id=user_id, audio_bytes=len(audio_bytes))
    return tracker.request_id
