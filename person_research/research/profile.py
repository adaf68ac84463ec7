"""Structured profile extraction from a finished research answer."""

from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from person_research.logging import get_logger
from person_research.models import SearchResult, SubjectProfile, TokenUsage
from person_research.research.agents import get_profile_agent, usage_of
from person_research.research.prompts import profile_prompt

log = get_logger(__name__)

UNAVAILABLE_PROFILE = SubjectProfile(
    high_potential=False,
    high_potential_rationale="Unable to assess due to data extraction error.",
)


class ProfileOutcome(BaseModel):
    profile: SubjectProfile
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class ProfileExtractor:
    """Best-effort extraction; a failure yields the unavailable profile instead of an error."""

    def __init__(self, agent: Agent[Any, SubjectProfile] | None = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> Agent[Any, SubjectProfile]:
        return self._agent or get_profile_agent()

    async def extract(self, topic: str, answer: str, summaries: list[SearchResult]) -> ProfileOutcome:
        try:
            run = await self.agent.run(profile_prompt(topic, answer, summaries))
        except Exception as e:
            log.warning("profile.failed", error=str(e))
            return ProfileOutcome(profile=UNAVAILABLE_PROFILE.model_copy())

        profile = run.output
        log.info(
            "profile.extracted",
            inferred_age=profile.inferred_age,
            employer=profile.employer,
            high_potential=profile.high_potential,
        )
        return ProfileOutcome(profile=profile, token_usage=usage_of(run))
