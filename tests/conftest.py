"""Shared fixtures and builders for the person research tests."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from person_research.exceptions import ResearchFailedError
from person_research.models import (
    Citation,
    OrganizationContext,
    ResearchResult,
    SearchResult,
    SearchSource,
    SubjectContext,
)
from person_research.store import SqlResearchStore
from person_research.subjects import InMemorySubjectDirectory

ORG_ID = "org-1"
USER_ID = "user-1"


class FakeBackend:
    """Search backend returning canned hits, or raising, per query."""

    def __init__(self, responses: dict[str, list[SearchSource] | Exception], delay: float = 0.0) -> None:
        self.responses = responses
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, query: str) -> list[SearchSource]:
        self.calls.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(query, [])
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.in_flight -= 1


class FakeResearch:
    """Research function that fails for selected subjects and tracks concurrency."""

    def __init__(self, failing: set[int] | None = None, delay: float = 0.0) -> None:
        self.failing = failing or set()
        self.delay = delay
        self.subjects: list[int] = []
        self.topics: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(
        self, topic: str, *, organization_id: str, user_id: str, subject: SubjectContext | None = None, **_: Any
    ) -> ResearchResult:
        if subject is not None:
            self.subjects.append(subject.subject_id)
        self.topics.append(topic)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if subject is not None and subject.subject_id in self.failing:
                raise ResearchFailedError(topic=topic, reason="All 3 search attempts failed")
            return make_result(topic=topic)
        finally:
            self.in_flight -= 1


def make_summary(query: str = "Jane Doe Boston", url: str = "https://example.org/jane") -> SearchResult:
    return SearchResult(
        query=query,
        content=f"Summary for {query}",
        source_url=url,
        sources=[SearchSource(title="Jane Doe", url=url, snippet="Jane Doe lives in Boston")],
    )


def make_result(topic: str = "What motivates Jane Doe to donate?", sources: int = 2, loops: int = 1) -> ResearchResult:
    summaries = [make_summary(f"query {i}", f"https://example.org/{i}") for i in range(sources)]
    return ResearchResult(
        answer="Jane Doe supports education charities.",
        citations=[Citation(url=s.source_url, summary_index=i) for i, s in enumerate(summaries)],
        summaries=summaries,
        total_loops=loops,
        total_sources=len(summaries),
        topic=topic,
    )


def make_subject(subject_id: int, organization_id: str = ORG_ID) -> SubjectContext:
    return SubjectContext(
        subject_id=subject_id,
        organization_id=organization_id,
        first_name="Subject",
        last_name=str(subject_id),
        email=f"subject{subject_id}@example.org",
        state="MA",
    )


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncIterator[SqlResearchStore]:
    research_store = SqlResearchStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'research.db'}")
    await research_store.create_schema()
    yield research_store
    await research_store.dispose()


@pytest.fixture
def directory() -> InMemorySubjectDirectory:
    return InMemorySubjectDirectory(
        subjects=[make_subject(i) for i in range(1, 6)],
        organizations=[
            OrganizationContext(
                organization_id=ORG_ID,
                name="Helping Hands",
                short_description="youth literacy nonprofit",
            )
        ],
    )
