"""Person identification and namesake filtering of search hits."""

import asyncio
from typing import Any

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from person_research.logging import get_logger
from person_research.models import SearchSource, SubjectContext, TokenUsage
from person_research.research.agents import get_identity_agent, get_verification_agent, usage_of
from person_research.research.models import PersonIdentity, SourceVerification
from person_research.research.prompts import identity_prompt, verification_prompt

log = get_logger(__name__)

IDENTITY_SAMPLE_SOURCES = 3
FALLBACK_CONFIDENCE = 0.1
MIN_IDENTITY_CONFIDENCE = 0.3
MIN_VERIFICATION_CONFIDENCE = 0.5


class IdentityOutcome(BaseModel):
    identity: PersonIdentity
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class FilterOutcome(BaseModel):
    sources: list[SearchSource] = Field(default_factory=list)
    filtered: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


def fallback_identity(subject: SubjectContext) -> PersonIdentity:
    """Identity built from subject data alone. Its confidence is too low to filter on."""
    return PersonIdentity(
        full_name=subject.full_name,
        location=subject.location,
        confidence=FALLBACK_CONFIDENCE,
        reasoning="Identity extraction failed; built from subject data only.",
    )


class PersonIdentifier:
    """Builds an identity for the subject and drops search hits about other people.

    Both operations are best effort. Identification falls back to a low-confidence
    identity, and a hit whose verification fails is kept.
    """

    def __init__(
        self,
        identity_agent: Agent[Any, PersonIdentity] | None = None,
        verification_agent: Agent[Any, SourceVerification] | None = None,
    ) -> None:
        self._identity_agent = identity_agent
        self._verification_agent = verification_agent

    @property
    def identity_agent(self) -> Agent[Any, PersonIdentity]:
        return self._identity_agent or get_identity_agent()

    @property
    def verification_agent(self) -> Agent[Any, SourceVerification]:
        return self._verification_agent or get_verification_agent()

    async def identify(self, subject: SubjectContext, sources: list[SearchSource]) -> IdentityOutcome:
        """Extract an identity from the subject and the first few hits of loop 1. Never raises."""
        sample = sources[:IDENTITY_SAMPLE_SOURCES]
        try:
            run = await self.identity_agent.run(identity_prompt(subject, sample))
        except Exception as e:
            log.warning("identity.failed", subject_id=subject.subject_id, error=str(e))
            return IdentityOutcome(identity=fallback_identity(subject))

        identity = run.output
        log.info(
            "identity.extracted",
            subject_id=subject.subject_id,
            key_identifiers=len(identity.key_identifiers),
            confidence=identity.confidence,
            sample_sources=len(sample),
        )
        return IdentityOutcome(identity=identity, token_usage=usage_of(run))

    async def filter_sources(self, identity: PersonIdentity, sources: list[SearchSource]) -> FilterOutcome:
        """Keep the hits verified as being about ``identity``.

        Nothing is filtered when the identity's confidence is below
        ``MIN_IDENTITY_CONFIDENCE``.
        """
        if identity.confidence < MIN_IDENTITY_CONFIDENCE:
            log.debug("identity.filter_skipped", confidence=identity.confidence)
            return FilterOutcome(sources=list(sources))

        keep = [True] * len(sources)
        usages: list[TokenUsage] = []

        async def _verify(index: int, source: SearchSource) -> None:
            try:
                run = await self.verification_agent.run(verification_prompt(identity, source))
            except Exception as e:
                log.warning("identity.verification_failed", url=source.url, error=str(e))
                return
            usages.append(usage_of(run))
            verdict = run.output
            keep[index] = verdict.is_relevant and verdict.confidence >= MIN_VERIFICATION_CONFIDENCE
            if not keep[index]:
                log.debug("identity.source_rejected", url=source.url, contradictions=verdict.contradictions)

        async with asyncio.TaskGroup() as tg:
            for index, source in enumerate(sources):
                tg.create_task(_verify(index, source))

        kept = [source for source, ok in zip(sources, keep) if ok]
        usage = sum(usages, TokenUsage())
        log.info("identity.sources_filtered", kept=len(kept), filtered=len(sources) - len(kept))
        return FilterOutcome(sources=kept, filtered=len(sources) - len(kept), token_usage=usage)
