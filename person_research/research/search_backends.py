"""Search capability implementations used by the web search executor."""

from typing import Any, Protocol

from pydantic_ai import Agent
from tavily import AsyncTavilyClient

from person_research.config import Settings, get_settings
from person_research.logging import get_logger
from person_research.models import SearchSource
from person_research.research.agents import get_search_agent
from person_research.research.models import SearchHits

log = get_logger(__name__)

MAX_RESULTS_PER_QUERY = 6


class SearchBackend(Protocol):
    """Anything that turns a query string into web hits. Must be safe to call concurrently."""

    async def search(self, query: str) -> list[SearchSource]: ...


class AgentSearchBackend:
    """Search through a model with the built-in web search tool."""

    def __init__(self, agent: Agent[Any, SearchHits] | None = None, max_results: int = MAX_RESULTS_PER_QUERY) -> None:
        self._agent = agent
        self.max_results = max_results

    async def search(self, query: str) -> list[SearchSource]:
        agent = self._agent or get_search_agent()
        run = await agent.run(f"Search the web for: {query}\nReturn at most {self.max_results} results.")
        hits = [hit for hit in run.output.results if hit.url]
        return hits[: self.max_results]


class TavilySearchBackend:
    """Search through the Tavily API."""

    def __init__(
        self,
        api_key: str,
        *,
        max_results: int = MAX_RESULTS_PER_QUERY,
        search_depth: str = "basic",
        client: AsyncTavilyClient | None = None,
    ) -> None:
        self._client = client or AsyncTavilyClient(api_key=api_key)
        self.max_results = max_results
        self.search_depth = search_depth

    async def search(self, query: str) -> list[SearchSource]:
        response = await self._client.search(
            query=query,
            search_depth=self.search_depth,
            max_results=self.max_results,
        )
        return [
            SearchSource(title=item.get("title", ""), url=item["url"], snippet=item.get("content", ""))
            for item in response.get("results", [])
            if item.get("url")
        ]


def build_search_backend(settings: Settings | None = None) -> SearchBackend:
    """Backend selected by ``RESEARCH_SEARCH_PROVIDER`` (``agent`` or ``tavily``)."""
    settings = settings or get_settings()
    log.debug("search.backend_selected", provider=settings.search_provider)
    if settings.search_provider == "tavily":
        if not settings.tavily_api_key:
            raise ValueError("TAVILY_API_KEY is required when RESEARCH_SEARCH_PROVIDER=tavily")
        return TavilySearchBackend(settings.tavily_api_key)
    return AgentSearchBackend()
