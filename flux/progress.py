"""
Progress Channel

Per-request progress events for long-running pipelines, delivered to any
number of streaming clients.

A ProgressRegistry is created by the application and handed to the
pipelines and to the transport explicitly. Each pipeline run gets a
request id and a ProgressTracker; every stage boundary emits a typed
ProgressEvent. Subscribers first receive the events already recorded,
then live events, and stop after the terminal one (``complete`` or
``error``). Exactly one terminal event is recorded per request; anything
emitted after it is dropped.

Finished requests stay readable for ``retention_seconds`` so slow clients
can still fetch the final state, then disappear. Expiry is checked on
every registry access against an injectable clock, so no timers run.

Usage:
    registry = ProgressRegistry(retention_seconds=300)
    tracker = registry.create_request("capture")
    registry.spawn(tracker, run_pipeline(tracker))

    async for event in registry.subscribe(tracker.request_id):
        send(event.to_dict())
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from flux.errors import FluxError, NotFound, PipelineFailure

logger = logging.getLogger(__name__)


class ProgressStage(str, Enum):
    """Stage labels, in pipeline order."""

    CONNECTED = "connected"
    CONTEXT_LOADING = "context_loading"
    CONTEXT_LOADED = "context_loaded"
    TRANSCRIPTION_START = "transcription_start"
    TRANSCRIPTION_COMPLETE = "transcription_complete"
    PROCESSING_START = "processing_start"
    PROCESSING_COMPLETE = "processing_complete"
    SAVING = "saving"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STAGES = frozenset({ProgressStage.COMPLETE, ProgressStage.ERROR})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProgressEvent:
    request_id: str
    stage: ProgressStage
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now_iso)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.data,
            "request_id": self.request_id,
            "stage": self.stage.value,
            "timestamp": self.timestamp,
        }


@dataclass
class ProgressRequest:
    """Registry-owned state for one pipeline run. Never persisted."""

    request_id: str
    kind: str
    started_at: float
    started_at_iso: str = field(default_factory=_now_iso)
    events: list[ProgressEvent] = field(default_factory=list)
    stage: ProgressStage | None = None
    result: Any = None
    error: BaseException | None = None
    finished_at: float | None = None
    subscribers: set[asyncio.Queue] = field(default_factory=set)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def snapshot(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "kind": self.kind,
            "stage": self.stage.value if self.stage else "pending",
            "started_at": self.started_at_iso,
            "finished": self.is_terminal,
            "events": [e.to_dict() for e in self.events],
            "result": self.result,
            "error": str(self.error) if self.error else None,
        }


class ProgressTracker:
    """Emitter handle given to one pipeline run."""

    def __init__(self, registry: ProgressRegistry, request_id: str):
        self.registry = registry
        self.request_id = request_id

    def emit(self, stage: ProgressStage, **data: Any) -> ProgressEvent | None:
        return self.registry.publish(self.request_id, stage, data)

    def complete(self, result: Any) -> ProgressEvent | None:
        """Record the result and emit the terminal ``complete`` event."""
        return self.registry.finish(self.request_id, ProgressStage.COMPLETE, {"result": result}, result=result)

    def error(
        self,
        message: str,
        code: str,
        exception: BaseException | None = None,
        result: Any = None,
        **data: Any,
    ) -> ProgressEvent | None:
        """Emit the terminal ``error`` event.

        With ``exception`` set, wait() re-raises it. Without it the request
        ends as a normal failure outcome and wait() returns ``result``.
        """
        return self.registry.finish(
            self.request_id,
            ProgressStage.ERROR,
            {"error": message, "code": code, **data},
            result=result,
            error=exception,
        )

    def fail(self, exc: BaseException) -> ProgressEvent | None:
        """Emit ``error`` for an exception, keeping FluxError codes and context."""
        if isinstance(exc, FluxError):
            return self.error(exc.message, exc.error_code, exception=exc, **exc.context)
        return self.error(str(exc) or type(exc).__name__, PipelineFailure.default_code, exception=exc)


class ProgressRegistry:
    """Request id -> ordered event log, result, and live subscribers.

    Args:
        retention_seconds: How long a finished request stays readable.
        clock: Monotonic seconds source; injectable for tests.
    """

    def __init__(self, retention_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._requests: dict[str, ProgressRequest] = {}

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: str) -> bool:
        return self.get(request_id) is not None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_request(self, kind: str = "capture", request_id: str | None = None) -> ProgressTracker:
        self.purge_expired()
        request_id = request_id or uuid.uuid4().hex
        self._requests[request_id] = ProgressRequest(
            request_id=request_id, kind=kind, started_at=self._clock()
        )
        return ProgressTracker(self, request_id)

    def get(self, request_id: str) -> ProgressRequest | None:
        self.purge_expired()
        return self._requests.get(request_id)

    def require(self, request_id: str) -> ProgressRequest:
        request = self.get(request_id)
        if request is None:
            raise NotFound(f"Unknown or expired request: {request_id}", request_id=request_id)
        return request

    def snapshot(self, request_id: str) -> dict[str, Any]:
        return self.require(request_id).snapshot()

    def purge_expired(self) -> int:
        """Drop finished requests older than the retention window."""
        now = self._clock()
        expired = [
            rid for rid, req in self._requests.items()
            if req.finished_at is not None and now - req.finished_at >= self.retention_seconds
        ]
        for rid in expired:
            del self._requests[rid]
        if expired:
            logger.debug(f"Purged {len(expired)} finished progress requests")
        return len(expired)

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def publish(self, request_id: str, stage: ProgressStage, data: dict[str, Any]) -> ProgressEvent | None:
        request = self._requests.get(request_id)
        if request is None:
            logger.warning(f"Progress event {stage.value} for unknown request {request_id}")
            return None
        if request.is_terminal:
            logger.debug(f"Dropping {stage.value} for finished request {request_id}")
            return None

        event = ProgressEvent(request_id=request_id, stage=stage, data=data)
        request.events.append(event)
        request.stage = stage
        for queue in request.subscribers:
            queue.put_nowait(event)
        return event

    def finish(
        self,
        request_id: str,
        stage: ProgressStage,
        data: dict[str, Any],
        result: Any = None,
        error: BaseException | None = None,
    ) -> ProgressEvent | None:
        request = self._requests.get(request_id)
        if request is None or request.is_terminal:
            return None

        request.result = result
        request.error = error
        data = {**data, "duration_ms": int((self._clock() - request.started_at) * 1000)}
        event = self.publish(request_id, stage, data)

        request.finished_at = self._clock()
        request.subscribers.clear()
        request.done.set()
        return event

    # -------------------------------------------------------------------------
    # Running and consuming
    # -------------------------------------------------------------------------

    def spawn(self, tracker: ProgressTracker, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run a pipeline coroutine in the background, owned by the registry.

        If the coroutine ends without a terminal event (it raised, returned
        early, or was cancelled) one is recorded here, so every request
        finishes exactly once.
        """
        task = asyncio.create_task(coro)
        request = self._requests[tracker.request_id]
        request.task = task

        def _on_done(t: asyncio.Task) -> None:
            if t.cancelled():
                tracker.fail(PipelineFailure("Pipeline was cancelled"))
                return
            exc = t.exception()
            if exc is not None:
                tracker.fail(exc)
            else:
                tracker.complete(t.result())

        task.add_done_callback(_on_done)
        return task

    async def subscribe(self, request_id: str) -> AsyncIterator[ProgressEvent]:
        """Replay recorded events, then stream live ones until the terminal event.

        Closing the iterator only detaches this subscriber; the pipeline keeps
        running.
        """
        request = self.require(request_id)
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        for event in request.events:
            queue.put_nowait(event)
        if not request.is_terminal:
            request.subscribers.add(queue)

        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            request.subscribers.discard(queue)

    async def wait(self, request_id: str) -> Any:
        """Await the terminal state; return the result or raise the recorded exception."""
        request = self.require(request_id)
        await request.done.wait()
        if request.error is not None:
            raise request.error
        return request.result

    async def close(self) -> None:
        """Cancel outstanding pipelines and drop all state."""
        tasks = [r.task for r in self._requests.values() if r.task is not None and not r.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._requests.clear()
