"""Final answer synthesis with citations."""

from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from person_research.exceptions import SynthesisError
from person_research.logging import get_logger
from person_research.models import Citation, SearchResult, TokenUsage
from person_research.research.agents import get_synthesis_agent, usage_of
from person_research.research.prompts import synthesis_prompt

log = get_logger(__name__)

INSUFFICIENT_INFORMATION_ANSWER = (
    "Insufficient information: the research did not find any usable sources for this topic."
)
CITATION_SNIPPET_CHARS = 300


class SynthesisOutcome(BaseModel):
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


def extract_citations(summaries: list[SearchResult]) -> list[Citation]:
    """One citation per distinct source URL, pointing at the first summary that used it."""
    citations: list[Citation] = []
    seen: set[str] = set()
    for index, summary in enumerate(summaries):
        sources = summary.sources or []
        if not sources and summary.source_url:
            sources_iter = [(summary.source_url, "", summary.content)]
        else:
            sources_iter = [(s.url, s.title, s.snippet) for s in sources]
        for url, title, snippet in sources_iter:
            if url in seen:
                continue
            seen.add(url)
            if len(snippet) > CITATION_SNIPPET_CHARS:
                snippet = snippet[:CITATION_SNIPPET_CHARS] + "..."
            citations.append(
                Citation(
                    url=url,
                    title=title,
                    snippet=snippet,
                    relevance=f"Related to query: {summary.query}",
                    summary_index=index,
                )
            )
    return citations


class AnswerSynthesizer:
    """Combines every gathered summary into one cited answer."""

    def __init__(self, agent: Agent[Any, str] | None = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> Agent[Any, str]:
        return self._agent or get_synthesis_agent()

    async def synthesize(self, topic: str, summaries: list[SearchResult]) -> SynthesisOutcome:
        if not summaries:
            log.warning("synthesis.no_summaries")
            return SynthesisOutcome(answer=INSUFFICIENT_INFORMATION_ANSWER)

        log.info("synthesis.started", summaries=len(summaries))
        try:
            run = await self.agent.run(synthesis_prompt(topic, summaries))
        except Exception as e:
            log.error("synthesis.failed", error=str(e))
            raise SynthesisError(reason=str(e)) from e

        answer = run.output.strip() or INSUFFICIENT_INFORMATION_ANSWER
        citations = extract_citations(summaries)
        usage = usage_of(run)
        log.info("synthesis.completed", answer_chars=len(answer), citations=len(citations), tokens=usage.total_tokens)
        return SynthesisOutcome(answer=answer, citations=citations, token_usage=usage)
