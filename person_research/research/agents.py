"""PydanticAI agents backing each stage of the person research pipeline."""

import os
from functools import lru_cache
from typing import Any

from pydantic_ai import Agent, WebSearchTool

from person_research.models import SubjectProfile, TokenUsage
from person_research.research.models import (
    PersonIdentity,
    QueryPlan,
    ReflectionOutput,
    SearchHits,
    SourceVerification,
)

DEFAULT_QUERY_MODEL = os.getenv("RESEARCH_QUERY_MODEL", "anthropic:claude-sonnet-4-5")
DEFAULT_SEARCH_MODEL = os.getenv("RESEARCH_SEARCH_MODEL", "google-gla:gemini-2.5-flash")
DEFAULT_SUMMARY_MODEL = os.getenv("RESEARCH_SUMMARY_MODEL", "google-gla:gemini-2.5-flash")
DEFAULT_REFLECTION_MODEL = os.getenv("RESEARCH_REFLECTION_MODEL", "anthropic:claude-sonnet-4-5")
DEFAULT_SYNTHESIS_MODEL = os.getenv("RESEARCH_SYNTHESIS_MODEL", "anthropic:claude-sonnet-4-5")
DEFAULT_PROFILE_MODEL = os.getenv("RESEARCH_PROFILE_MODEL", "anthropic:claude-haiku-4-5")
DEFAULT_IDENTITY_MODEL = os.getenv("RESEARCH_IDENTITY_MODEL", "anthropic:claude-sonnet-4-5")
DEFAULT_VERIFICATION_MODEL = os.getenv("RESEARCH_VERIFICATION_MODEL", "anthropic:claude-haiku-4-5")


def create_query_agent(model: Any = DEFAULT_QUERY_MODEL) -> Agent[None, QueryPlan]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You generate natural, concise web search queries that real people
        would actually type. They are executed by an automated research tool.
        - Each query explores a different angle of the research topic
        - Keep queries short, typically 2-5 words
        - Prefer common words over jargon
        - Never repeat or closely rephrase a query that was already searched
        GOOD: "John Smith CEO". BAD: "John Smith chief executive officer biography and leadership profile".""",
        output_type=QueryPlan,
        model_settings={"temperature": 0.7},
        instrument=True,
        name="query_agent",
    )


@lru_cache(maxsize=1)
def get_query_agent(model: str = DEFAULT_QUERY_MODEL) -> Agent[None, QueryPlan]:
    """Cached getter for production."""
    return create_query_agent(model)


def create_search_agent(model: Any = DEFAULT_SEARCH_MODEL) -> Agent[None, SearchHits]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You are a web search tool. Run the given query with the web
        search tool and return the most relevant pages you found.
        For every page return its title, its exact URL and a short factual snippet.
        Do not invent pages or URLs. Return an empty list when nothing relevant exists.""",
        builtin_tools=[WebSearchTool()],
        output_type=SearchHits,
        instrument=True,
        name="search_agent",
    )


@lru_cache(maxsize=1)
def get_search_agent(model: str = DEFAULT_SEARCH_MODEL) -> Agent[None, SearchHits]:
    """Cached getter for production."""
    return create_search_agent(model)


def create_summary_agent(model: Any = DEFAULT_SUMMARY_MODEL) -> Agent[None, str]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You summarize web search results for a research task.
        - Only include verifiable information present in the provided results
        - Focus on details relevant to the research topic
        - Mention which page each fact comes from""",
        output_type=str,
        model_settings={"temperature": 0.3},
        instrument=True,
        name="summary_agent",
    )


@lru_cache(maxsize=1)
def get_summary_agent(model: str = DEFAULT_SUMMARY_MODEL) -> Agent[None, str]:
    """Cached getter for production."""
    return create_summary_agent(model)


def create_reflection_agent(model: Any = DEFAULT_REFLECTION_MODEL) -> Agent[None, ReflectionOutput]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You are an expert research assistant judging research completeness.
        - Decide whether the summaries are sufficient to answer the research topic
        - If not, name the single most impactful missing angle as the knowledge gap
        - Propose focused follow-up questions only when a significant gap exists
        - Follow-up questions must be self-contained natural-language questions,
          not keyword fragments
        - If the information is sufficient, return no follow-up questions""",
        output_type=ReflectionOutput,
        model_settings={"temperature": 0.3},
        instrument=True,
        name="reflection_agent",
    )


@lru_cache(maxsize=1)
def get_reflection_agent(model: str = DEFAULT_REFLECTION_MODEL) -> Agent[None, ReflectionOutput]:
    """Cached getter for production."""
    return create_reflection_agent(model)


def create_synthesis_agent(model: Any = DEFAULT_SYNTHESIS_MODEL) -> Agent[None, str]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You write the final answer to a person research topic.
        - Synthesize information from all research summaries and sources
        - Include specific facts and details from the sources
        - Reference sources inline with their [n] numbers
        - Only use information actually present in the material
        - Say plainly when something could not be established""",
        output_type=str,
        model_settings={"temperature": 0.2},
        instrument=True,
        name="synthesis_agent",
    )


@lru_cache(maxsize=1)
def get_synthesis_agent(model: str = DEFAULT_SYNTHESIS_MODEL) -> Agent[None, str]:
    """Cached getter for production."""
    return create_synthesis_agent(model)


def create_profile_agent(model: Any = DEFAULT_PROFILE_MODEL) -> Agent[None, SubjectProfile]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You extract structured data about a person from research results.
        - inferred_age: stated age or an estimate from graduation years or career timeline, else null
        - employer: current or most recent employer, else null
        - estimated_income: a range such as "$50,000-$75,000", or "Not disclosed"
        - high_potential: whether the person is likely a high-value donor, judged on
          financial capacity, giving history, professional network and community involvement
        - high_potential_rationale: 2-3 sentences citing the evidence
        Be conservative and say when a value is inferred rather than stated.""",
        output_type=SubjectProfile,
        model_settings={"temperature": 0.1},
        instrument=True,
        name="profile_agent",
    )


@lru_cache(maxsize=1)
def get_profile_agent(model: str = DEFAULT_PROFILE_MODEL) -> Agent[None, SubjectProfile]:
    """Cached getter for production."""
    return create_profile_agent(model)


def create_identity_agent(model: Any = DEFAULT_IDENTITY_MODEL) -> Agent[None, PersonIdentity]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You build an identity profile of one specific person so that later
        search results can be checked against it.
        - Extract concrete identity details from the subject data and the search results
        - key_identifiers are specific facts that separate this person from others with
          the same name, such as job title plus company or city plus profession
        - Only use details present in the material
        - Be realistic about confidence given how much information is available""",
        output_type=PersonIdentity,
        model_settings={"temperature": 0.2},
        instrument=True,
        name="identity_agent",
    )


@lru_cache(maxsize=1)
def get_identity_agent(model: str = DEFAULT_IDENTITY_MODEL) -> Agent[None, PersonIdentity]:
    """Cached getter for production."""
    return create_identity_agent(model)


def create_verification_agent(model: Any = DEFAULT_VERIFICATION_MODEL) -> Agent[None, SourceVerification]:
    """Uncached factory - use with TestModel for tests."""
    return Agent(
        model,
        instructions="""You decide whether a search result is about the same person as the
        identity profile provided.
        - Look for identifiers that match the profile
        - Note contradictions such as a different location, age or profession
        - Be especially cautious with common names
        - If the result lacks enough information to decide, mark it NOT relevant
        - Mark it relevant only when identifiers match and nothing contradicts them""",
        output_type=SourceVerification,
        model_settings={"temperature": 0.1},
        instrument=True,
        name="verification_agent",
    )


@lru_cache(maxsize=1)
def get_verification_agent(model: str = DEFAULT_VERIFICATION_MODEL) -> Agent[None, SourceVerification]:
    """Cached getter for production."""
    return create_verification_agent(model)


def clear_agent_cache() -> None:
    """Clear all agent caches."""
    get_query_agent.cache_clear()
    get_search_agent.cache_clear()
    get_summary_agent.cache_clear()
    get_reflection_agent.cache_clear()
    get_synthesis_agent.cache_clear()
    get_profile_agent.cache_clear()
    get_identity_agent.cache_clear()
    get_verification_agent.cache_clear()


def usage_of(run_result: Any) -> TokenUsage:
    """Token usage reported by an agent run.

    ``usage`` is a method on pydantic-ai 1.x run results and a property on 2.x.
    """
    usage = run_result.usage() if callable(run_result.usage) else run_result.usage
    return TokenUsage(
        prompt_tokens=usage.input_tokens or 0,
        completion_tokens=usage.output_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )
