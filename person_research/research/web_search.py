"""Parallel execution of a batch of research queries."""

import asyncio
from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from person_research.exceptions import WebSearchError
from person_research.logging import get_logger
from person_research.models import ResearchQuery, SearchResult, SearchSource, TokenUsage
from person_research.research.agents import get_summary_agent, usage_of
from person_research.research.identification import PersonIdentifier
from person_research.research.models import PersonIdentity
from person_research.research.prompts import summary_prompt
from person_research.research.search_backends import SearchBackend, build_search_backend

log = get_logger(__name__)

BASIC_SUMMARY_SOURCES = 3
BASIC_SUMMARY_SNIPPET_CHARS = 200


class SearchBatch(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)
    total_queries: int = 0
    failed_queries: int = 0
    filtered_sources: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


def basic_summary(query: str, sources: list[SearchSource]) -> str:
    """Plain-text summary of the top hits, used when the summary model is unavailable."""
    lines = []
    for index, source in enumerate(sources[:BASIC_SUMMARY_SOURCES], 1):
        snippet = source.snippet
        if len(snippet) > BASIC_SUMMARY_SNIPPET_CHARS:
            snippet = snippet[:BASIC_SUMMARY_SNIPPET_CHARS] + "..."
        lines.append(f"{index}. {source.title or source.url}: {snippet}")
    return f'Search results for "{query}":\n\n' + "\n\n".join(lines)


class WebSearchExecutor:
    """Runs every query of a loop concurrently and summarizes what each one found."""

    def __init__(
        self,
        backend: SearchBackend | None = None,
        summary_agent: Agent[Any, str] | None = None,
        identifier: PersonIdentifier | None = None,
    ) -> None:
        self._backend = backend
        self._summary_agent = summary_agent
        self._identifier = identifier

    @property
    def backend(self) -> SearchBackend:
        if self._backend is None:
            self._backend = build_search_backend()
        return self._backend

    @property
    def summary_agent(self) -> Agent[Any, str]:
        return self._summary_agent or get_summary_agent()

    @property
    def identifier(self) -> PersonIdentifier:
        if self._identifier is None:
            self._identifier = PersonIdentifier()
        return self._identifier

    async def search(
        self, queries: list[ResearchQuery], topic: str, identity: PersonIdentity | None = None
    ) -> SearchBatch:
        """Execute ``queries`` in parallel.

        A query with no hits contributes nothing. A query whose search call raises is
        logged and dropped. With an ``identity``, hits about other people are removed
        before summarizing, and a query left with no hits contributes nothing.

        Raises:
            WebSearchError: When every query's search call failed.
        """
        log.info("search.started", queries=[q.text for q in queries], filtering=identity is not None)
        slots: list[tuple[SearchResult, TokenUsage] | None] = [None] * len(queries)
        errors: list[Exception] = []
        filter_usages: list[TokenUsage] = []
        filtered = 0

        async def _search_one(index: int, query: ResearchQuery) -> None:
            nonlocal filtered
            try:
                sources = await self.backend.search(query.text)
            except Exception as e:
                log.warning("search.query_failed", query=query.text, error=str(e))
                errors.append(e)
                return
            if sources and identity is not None:
                outcome = await self.identifier.filter_sources(identity, sources)
                filter_usages.append(outcome.token_usage)
                filtered += outcome.filtered
                sources = outcome.sources
            if not sources:
                log.info("search.no_results", query=query.text)
                return
            slots[index] = await self._summarize(topic, query.text, sources)

        async with asyncio.TaskGroup() as tg:
            for index, query in enumerate(queries):
                tg.create_task(_search_one(index, query))

        if queries and len(errors) == len(queries):
            raise WebSearchError(attempted=len(queries), failed=len(errors))

        results: list[SearchResult] = []
        usage = sum(filter_usages, TokenUsage())
        for slot in slots:
            if slot is None:
                continue
            results.append(slot[0])
            usage = usage + slot[1]

        log.info(
            "search.completed",
            succeeded=len(results),
            failed=len(errors),
            empty=len(queries) - len(results) - len(errors),
            filtered_sources=filtered,
            tokens=usage.total_tokens,
        )
        return SearchBatch(
            results=results,
            total_queries=len(queries),
            failed_queries=len(errors),
            filtered_sources=filtered,
            token_usage=usage,
        )

    async def _summarize(
        self, topic: str, query: str, sources: list[SearchSource]
    ) -> tuple[SearchResult, TokenUsage]:
        usage = TokenUsage()
        try:
            run = await self.summary_agent.run(summary_prompt(topic, query, sources))
            content = run.output.strip()
            usage = usage_of(run)
        except Exception as e:
            log.warning("search.summary_failed", query=query, error=str(e))
            content = basic_summary(query, sources)
        if not content:
            content = basic_summary(query, sources)
        result = SearchResult(query=query, content=content, source_url=sources[0].url, sources=sources)
        return result, usage
