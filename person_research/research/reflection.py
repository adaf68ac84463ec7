"""Sufficiency and knowledge-gap analysis over accumulated research."""

from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from person_research.exceptions import ReflectionError
from person_research.logging import get_logger
from person_research.models import ReflectionVerdict, ResearchQuery, SearchResult, TokenUsage
from person_research.research.agents import get_reflection_agent, usage_of
from person_research.research.models import ReflectionOutput
from person_research.research.prompts import reflection_prompt

log = get_logger(__name__)


class ReflectionOutcome(BaseModel):
    verdict: ReflectionVerdict
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class ReflectionAnalyzer:
    """Judges whether the summaries answer the topic and what to search next if not."""

    def __init__(self, agent: Agent[Any, ReflectionOutput] | None = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> Agent[Any, ReflectionOutput]:
        return self._agent or get_reflection_agent()

    async def analyze(self, topic: str, summaries: list[SearchResult]) -> ReflectionOutcome:
        log.info("reflection.started", summaries=len(summaries))
        try:
            run = await self.agent.run(reflection_prompt(topic, summaries))
        except Exception as e:
            log.error("reflection.failed", error=str(e))
            raise ReflectionError(reason=str(e)) from e

        output = run.output
        if output.is_sufficient:
            verdict = ReflectionVerdict(is_sufficient=True)
        else:
            gap = output.knowledge_gap.strip()
            verdict = ReflectionVerdict(
                is_sufficient=False,
                knowledge_gap=gap,
                follow_up_queries=[
                    ResearchQuery(text=question.strip(), rationale=gap)
                    for question in output.follow_up_queries
                    if question.strip()
                ],
            )

        log.info(
            "reflection.completed",
            is_sufficient=verdict.is_sufficient,
            knowledge_gap=verdict.knowledge_gap,
            follow_ups=len(verdict.follow_up_queries),
        )
        return ReflectionOutcome(verdict=verdict, token_usage=usage_of(run))
