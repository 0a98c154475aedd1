"""
Audio Route - Voice capture and progress streaming

- POST /process: upload a recording (multipart ``audio`` + ``user_id``)
- GET /progress/{request_id}: Server-Sent Events for one capture
- GET /requests/{request_id}: snapshot of a capture's state

By default /process waits for the pipeline and answers 201 (task saved),
422 (audio was unintelligible) or the error's own status. With
``wait=false`` it answers 202 with the request id straight away and the
client follows progress over SSE.
"""

import json
import logging

from fastapi import APIRouter, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from flux.capture.pipeline import submit_capture
from flux.config_models import get_config
from flux.errors import FluxError
from flux.progress import ProgressEvent, ProgressRegistry, ProgressStage

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _registry(request: Request) -> ProgressRegistry:
    return request.app.state.progress


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


@router.post("/process")
async def process_audio(
    request: Request,
    audio: UploadFile | None = File(None),
    user_id: str | None = Form(None),
    wait: bool = Query(True, description="Wait for the pipeline result instead of answering 202"),
):
    """Run the capture pipeline on an uploaded recording."""
    if audio is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio file provided")

    audio_bytes = await audio.read()
    max_bytes = get_config().transcription.max_audio_bytes
    if len(audio_bytes) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Audio exceeds {max_bytes} bytes",
        )

    logger.info(f"Processing audio: {audio.filename} ({len(audio_bytes)} bytes)")

    registry = _registry(request)
    request_id = submit_capture(
        audio_bytes,
        user_id,
        registry,
        transcriber=getattr(request.app.state, "transcriber", None),
        llm_client=getattr(request.app.state, "llm_client", None),
        mime_type=audio.content_type,
    )

    if not wait:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                "success": True,
                "request_id": request_id,
                "progress_url": f"/api/audio/progress/{request_id}",
            },
        )

    try:
        result = await registry.wait(request_id)
    except FluxError as e:
        e.context.setdefault("request_id", request_id)
        raise

    code = status.HTTP_201_CREATED if result.get("success") else status.HTTP_422_UNPROCESSABLE_ENTITY
    return JSONResponse(status_code=code, content=json.loads(json.dumps(result, default=str)))


@router.get("/progress/{request_id}")
async def stream_progress(request_id: str, request: Request):
    """
    Stream a capture's progress as Server-Sent Events.

    Opens with a ``connected`` event, replays anything already emitted, and
    closes after ``complete`` or ``error``. Disconnecting does not stop the
    capture.
    """
    registry = _registry(request)
    registry.require(request_id)

    async def event_stream():
        connected = ProgressEvent(request_id=request_id, stage=ProgressStage.CONNECTED)
        yield _sse(connected.to_dict())
        async for event in registry.subscribe(request_id):
            yield _sse(event.to_dict())

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/requests/{request_id}")
async def get_request_state(request_id: str, request: Request):
    return _registry(request).snapshot(request_id)
