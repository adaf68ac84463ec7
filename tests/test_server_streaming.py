"""Integration tests for /research/stream endpoint."""

import asyncio
import json
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fastapi import FastAPI

from person_research.events import EventCallback, LoopStartEvent, SearchCompleteEvent, SynthesisStartEvent
from person_research.exceptions import ResearchFailedError, WebSearchError
from person_research.models import ResearchResult
from person_research.server import get_app
from person_research.service import PersonResearchService
from person_research.store import SqlResearchStore
from person_research.subjects import InMemorySubjectDirectory
from tests.conftest import ORG_ID, USER_ID, make_result

HEADERS = {"X-Organization-Id": ORG_ID, "X-User-Id": USER_ID}


def _app(store: SqlResearchStore, directory: InMemorySubjectDirectory, research: Any) -> FastAPI:
    return get_app(PersonResearchService(store, directory, research=research))


async def _collect_events(response: httpx.Response) -> list[tuple[str, dict[str, Any]]]:
    """Parse SSE stream into list of (event_type, data) tuples."""
    events: list[tuple[str, dict[str, Any]]] = []
    current_event = None
    current_data = None

    async for line in response.aiter_lines():
        if line.startswith("event:"):
            current_event = line.split(": ", 1)[1]
        elif line.startswith("data:"):
            current_data = json.loads(line.split(": ", 1)[1])
        elif line == "" and current_event and current_data is not None:
            events.append((current_event, current_data))
            current_event = None
            current_data = None

    return events


class TestResearchStreamEndpoint:
    """Tests for /research/stream endpoint."""

    @pytest.mark.asyncio
    async def test__stream__emits_progress_then_complete(
        self, store: SqlResearchStore, directory: InMemorySubjectDirectory
    ) -> None:
        async def research(topic: str, *, event_callback: EventCallback | None = None, **_: Any) -> ResearchResult:
            assert event_callback is not None
            await event_callback(LoopStartEvent(data={"loop": 1, "max_loops": 2}))
            await event_callback(SearchCompleteEvent(data={"loop": 1, "results": 2, "failed": 0, "total_sources": 2}))
            await event_callback(SynthesisStartEvent(data={"total_loops": 1, "total_sources": 2}))
            return make_result(topic=topic)

        app = _app(store, directory, research)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            async with client.stream(
                "POST", "/research/stream", json={"topic": "Jane Doe"}, headers=HEADERS
            ) as response:
                assert response.status_code == 200
                assert response.headers["content-type"].startswith("text/event-stream")
                events = await _collect_events(response)

        assert [e[0] for e in events] == ["loop_start", "search_complete", "synthesis_start", "complete"]
        assert events[-1][1]["topic"] == "Jane Doe"
        assert events[-1][1]["total_sources"] == 2

    @pytest.mark.asyncio
    async def test__stream__failure_emits_safe_error_event(
        self, store: SqlResearchStore, directory: InMemorySubjectDirectory
    ) -> None:
        async def research(topic: str, **_: Any) -> ResearchResult:
            cause = WebSearchError(attempted=3, failed=3)
            raise ResearchFailedError(topic=topic, reason=str(cause)) from cause

        app = _app(store, directory, research)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            async with client.stream(
                "POST", "/research/stream", json={"topic": "Jane Doe"}, headers=HEADERS
            ) as response:
                events = await _collect_events(response)

        assert events == [
            (
                "error",
                {
                    "error": "Unable to search for information about this subject. Please try again.",
                    "error_type": "ResearchFailedError",
                },
            )
        ]

    @pytest.mark.asyncio
    async def test__stream__sends_heartbeats_during_long_runs(
        self, store: SqlResearchStore, directory: InMemorySubjectDirectory
    ) -> None:
        async def slow_research(topic: str, **_: Any) -> ResearchResult:
            await asyncio.sleep(1.2)
            return make_result(topic=topic)

        app = _app(store, directory, slow_research)
        heartbeat_count = 0
        with patch("person_research.server.HEARTBEAT_INTERVAL", 0.3):
            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
                async with client.stream(
                    "POST", "/research/stream", json={"topic": "Jane Doe"}, headers=HEADERS
                ) as response:
                    async for line in response.aiter_lines():
                        if ": keepalive" in line:
                            heartbeat_count += 1

        assert heartbeat_count >= 2, f"Only got {heartbeat_count} heartbeats"

    @pytest.mark.asyncio
    async def test__stream__enforces_timeout(self, store: SqlResearchStore, directory: InMemorySubjectDirectory) -> None:
        async def stuck_research(topic: str, **_: Any) -> ResearchResult:
            await asyncio.sleep(60)
            return make_result(topic=topic)

        app = _app(store, directory, stuck_research)
        with patch("person_research.server.MAX_DURATION", 0.5):
            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
                async with client.stream(
                    "POST", "/research/stream", json={"topic": "Jane Doe"}, headers=HEADERS
                ) as response:
                    events = await _collect_events(response)

        assert events[-1][0] == "error"
        assert "timeout" in events[-1][1]["error"].lower()
