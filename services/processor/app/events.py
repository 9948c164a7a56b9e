"""Processing stream events and their Server-Sent-Events wire encoding."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Optional

from content_pipeline_schemas import ProcessingEventType, ProcessingStep

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

GENERIC_ERROR_MESSAGE = "Processing failed"
TIMEOUT_MESSAGE = "Processing timed out"
INTERRUPTED_MESSAGE = "Processing was interrupted"


@dataclass(frozen=True)
class ProcessingEvent:
    event: ProcessingEventType
    data: Optional[Any] = None

    @property
    def terminal(self) -> bool:
        return self.event in {
            ProcessingEventType.COMPLETE,
            ProcessingEventType.TIMEOUT,
            ProcessingEventType.ERROR,
        }

    def encode(self) -> str:
        lines = [f"event: {self.event.value}"]
        if self.data is not None:
            payload = self.data if isinstance(self.data, str) else json.dumps(self.data)
            lines.append(f"data: {payload}")
        return "\n".join(lines) + "\n\n"

    @classmethod
    def started(cls) -> "ProcessingEvent":
        return cls(ProcessingEventType.STARTED, {"progress": 0})

    @classmethod
    def progress(cls, step: ProcessingStep | str, progress: int) -> "ProcessingEvent":
        step_name = step.value if isinstance(step, ProcessingStep) else step
        return cls(ProcessingEventType.PROGRESS, {"step": step_name, "progress": progress})

    @classmethod
    def insights_ready(cls, count: int, progress: int) -> "ProcessingEvent":
        return cls(ProcessingEventType.INSIGHTS_READY, {"count": count, "progress": progress})

    @classmethod
    def posts_ready(cls, count: int, progress: int) -> "ProcessingEvent":
        return cls(ProcessingEventType.POSTS_READY, {"count": count, "progress": progress})

    @classmethod
    def complete(cls) -> "ProcessingEvent":
        return cls(ProcessingEventType.COMPLETE, {"progress": 100})

    @classmethod
    def ping(cls) -> "ProcessingEvent":
        return cls(ProcessingEventType.PING, {"t": int(time.time() * 1000)})

    @classmethod
    def timeout(cls) -> "ProcessingEvent":
        return cls(ProcessingEventType.TIMEOUT, {"message": TIMEOUT_MESSAGE})

    @classmethod
    def error(cls, message: str = GENERIC_ERROR_MESSAGE) -> "ProcessingEvent":
        return cls(ProcessingEventType.ERROR, {"message": message})


async def encode_stream(events: AsyncGenerator[ProcessingEvent, None]) -> AsyncIterator[str]:
    """Render events for a ``text/event-stream`` response body.

    Closing the encoded stream closes ``events`` too, so the producer's cleanup
    runs as soon as the response ends.
    """

    try:
        async for event in events:
            yield event.encode()
    finally:
        await events.aclose()
