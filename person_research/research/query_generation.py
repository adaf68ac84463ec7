"""Search query generation for research loops."""

from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from person_research.exceptions import QueryGenerationError
from person_research.logging import get_logger
from person_research.models import ResearchQuery, SubjectContext, TokenUsage
from person_research.research.agents import get_query_agent, usage_of
from person_research.research.models import QueryPlan
from person_research.research.prompts import follow_up_prompt, query_prompt

log = get_logger(__name__)


class QueryBatch(BaseModel):
    queries: list[ResearchQuery]
    rationale: str = ""
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


def seed_queries(subject: SubjectContext) -> list[ResearchQuery]:
    """Deterministic name-based queries that pin down which person is meant."""
    name = subject.full_name
    if not name:
        return []
    seeds = []
    location = subject.state or subject.address
    if location:
        seeds.append(
            ResearchQuery(
                text=f"{name} {location}",
                rationale="Direct search using full name and location for precise identification",
            )
        )
    if subject.email:
        seeds.append(
            ResearchQuery(
                text=f"{name} {subject.email}",
                rationale="Direct search using full name and email address for precise identification",
            )
        )
    return seeds


class QueryGenerator:
    """Turns a research topic into a small set of targeted search queries."""

    def __init__(self, agent: Agent[Any, QueryPlan] | None = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> Agent[Any, QueryPlan]:
        return self._agent or get_query_agent()

    async def generate(
        self,
        topic: str,
        *,
        max_queries: int,
        is_follow_up: bool = False,
        previous_queries: list[str] | None = None,
        follow_up_questions: list[str] | None = None,
        subject: SubjectContext | None = None,
    ) -> QueryBatch:
        """Generate up to ``max_queries`` queries.

        Initial calls for a known subject start with name-based seed queries.
        Follow-up calls skip anything already searched.

        Raises:
            QueryGenerationError: When the model fails or an initial call yields no queries.
        """
        previous = previous_queries or []
        kind = "follow_up" if is_follow_up else "initial"
        log.info("queries.generating", kind=kind, max_queries=max_queries, previous=len(previous))

        if is_follow_up and follow_up_questions:
            prompt = follow_up_prompt(topic, max_queries, previous, follow_up_questions)
        else:
            prompt = query_prompt(topic, max_queries, is_follow_up, previous)

        try:
            run = await self.agent.run(prompt)
        except Exception as e:
            log.error("queries.failed", kind=kind, error=str(e))
            raise QueryGenerationError(topic=topic, reason=str(e)) from e

        plan = run.output
        candidates = [] if is_follow_up or subject is None else seed_queries(subject)
        candidates += [ResearchQuery(text=text.strip(), rationale=plan.rationale) for text in plan.queries if text.strip()]

        seen = {text.strip().lower() for text in previous}
        queries: list[ResearchQuery] = []
        for query in candidates:
            key = query.text.lower()
            if key in seen:
                continue
            seen.add(key)
            queries.append(query)
            if len(queries) == max_queries:
                break

        if not queries and not is_follow_up:
            raise QueryGenerationError(topic=topic, reason="no search queries were produced")

        usage = usage_of(run)
        log.info(
            "queries.generated",
            kind=kind,
            count=len(queries),
            queries=[q.text for q in queries],
            tokens=usage.total_tokens,
        )
        return QueryBatch(queries=queries, rationale=plan.rationale, token_usage=usage)
