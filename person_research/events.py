"""SSE event models for research progress streaming."""

import json
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SSEEventType(str, Enum):
    """SSE event types emitted while a research run progresses."""

    LOOP_START = "loop_start"
    QUERIES_GENERATED = "queries_generated"
    SEARCH_COMPLETE = "search_complete"
    REFLECTION_COMPLETE = "reflection_complete"
    SYNTHESIS_START = "synthesis_start"
    HEARTBEAT = "heartbeat"
    COMPLETE = "complete"
    ERROR = "error"


class SSEEvent(BaseModel):
    """Base SSE event model."""

    event: SSEEventType = Field(description="Event type identifier")
    data: dict[str, Any] = Field(description="Event payload data")

    def format(self) -> str:
        """Format as SSE message: 'event: type\\ndata: json\\n\\n'."""
        return f"event: {self.event.value}\ndata: {json.dumps(self.data, default=str)}\n\n"


EventCallback = Callable[[SSEEvent], Awaitable[None]]


class LoopStartEvent(SSEEvent):
    event: SSEEventType = SSEEventType.LOOP_START
    data: dict[str, Any] = Field(
        description="Loop number and bound",
        examples=[{"loop": 1, "max_loops": 2}],
    )


class QueriesGeneratedEvent(SSEEvent):
    event: SSEEventType = SSEEventType.QUERIES_GENERATED
    data: dict[str, Any] = Field(
        description="Queries about to be searched",
        examples=[{"loop": 1, "queries": ["Jane Doe Boston", "Jane Doe philanthropy"]}],
    )


class SearchCompleteEvent(SSEEvent):
    event: SSEEventType = SSEEventType.SEARCH_COMPLETE
    data: dict[str, Any] = Field(
        description="Outcome of one search batch",
        examples=[{"loop": 1, "results": 2, "failed": 0, "total_sources": 2}],
    )


class ReflectionCompleteEvent(SSEEvent):
    event: SSEEventType = SSEEventType.REFLECTION_COMPLETE
    data: dict[str, Any] = Field(
        description="Sufficiency verdict for the accumulated summaries",
        examples=[{"loop": 1, "is_sufficient": False, "knowledge_gap": "Employer unknown", "follow_ups": 1}],
    )


class SynthesisStartEvent(SSEEvent):
    event: SSEEventType = SSEEventType.SYNTHESIS_START
    data: dict[str, Any] = Field(
        description="Summaries handed to the synthesizer",
        examples=[{"total_loops": 2, "total_sources": 3}],
    )


class HeartbeatEvent(SSEEvent):
    """Heartbeat event to prevent proxy buffering.

    Formatted as SSE comment (': keepalive\\n\\n') instead of
    named event to avoid requiring client-side handling.
    """

    event: SSEEventType = SSEEventType.HEARTBEAT
    data: dict[str, Any] = Field(default_factory=dict, description="Empty data for heartbeat")

    def format(self) -> str:
        return ": keepalive\n\n"


class CompleteEvent(SSEEvent):
    """Event emitted when research completes successfully."""

    event: SSEEventType = SSEEventType.COMPLETE
    data: dict[str, Any] = Field(description="Full ResearchResult serialized")


class ErrorEvent(SSEEvent):
    """Event emitted when a research run fails."""

    event: SSEEventType = SSEEventType.ERROR
    data: dict[str, str] = Field(
        description="Error details",
        examples=[
            {
                "error": "Unable to search for information about this subject. Please try again.",
                "error_type": "ResearchFailedError",
            }
        ],
    )
