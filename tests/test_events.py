"""Tests for SSE event models."""

import json

from person_research.events import (
    CompleteEvent,
    ErrorEvent,
    HeartbeatEvent,
    LoopStartEvent,
    QueriesGeneratedEvent,
    ReflectionCompleteEvent,
    SearchCompleteEvent,
    SSEEventType,
    SynthesisStartEvent,
)
from tests.conftest import make_result


def _payload(formatted: str) -> dict:
    data_line = formatted.split("\n")[1]
    assert data_line.startswith("data: ")
    return json.loads(data_line[6:])


def test__loop_start_event__formats_correctly() -> None:
    formatted = LoopStartEvent(data={"loop": 1, "max_loops": 2}).format()

    assert formatted.startswith("event: loop_start\n")
    assert _payload(formatted) == {"loop": 1, "max_loops": 2}
    assert formatted.endswith("\n\n")


def test__queries_generated_event__lists_queries() -> None:
    formatted = QueriesGeneratedEvent(data={"loop": 2, "queries": ["Jane Doe employer"]}).format()

    assert formatted.startswith("event: queries_generated\n")
    assert _payload(formatted)["queries"] == ["Jane Doe employer"]


def test__search_and_reflection_events__use_their_types() -> None:
    assert SearchCompleteEvent(data={"results": 2}).format().startswith("event: search_complete\n")
    assert ReflectionCompleteEvent(data={"is_sufficient": True}).format().startswith("event: reflection_complete\n")
    assert SynthesisStartEvent(data={"total_sources": 3}).format().startswith("event: synthesis_start\n")


def test__heartbeat_event__formats_as_comment() -> None:
    event = HeartbeatEvent()

    assert event.data == {}
    assert event.event == SSEEventType.HEARTBEAT
    assert event.format() == ": keepalive\n\n"


def test__complete_event__serializes_full_result() -> None:
    result = make_result(topic="What motivates Jane Doe to donate?")

    formatted = CompleteEvent(data=result.model_dump(mode="json")).format()

    assert formatted.startswith("event: complete\n")
    parsed = _payload(formatted)
    assert parsed["topic"] == "What motivates Jane Doe to donate?"
    assert parsed["total_sources"] == 2


def test__complete_event__serializes_datetimes_from_python_mode() -> None:
    formatted = CompleteEvent(data=make_result().model_dump()).format()

    assert isinstance(_payload(formatted)["timestamp"], str)


def test__error_event__includes_error_type() -> None:
    formatted = ErrorEvent(data={"error": "Search unavailable", "error_type": "ResearchFailedError"}).format()

    assert formatted.startswith("event: error\n")
    assert _payload(formatted)["error_type"] == "ResearchFailedError"
