"""Research pipeline stages and their agents."""

from person_research.research.agents import (
    clear_agent_cache,
    create_profile_agent,
    create_query_agent,
    create_reflection_agent,
    create_search_agent,
    create_summary_agent,
    create_synthesis_agent,
    get_profile_agent,
    get_query_agent,
    get_reflection_agent,
    get_search_agent,
    get_summary_agent,
    get_synthesis_agent,
)
from person_research.research.profile import ProfileExtractor
from person_research.research.query_generation import QueryGenerator, seed_queries
from person_research.research.reflection import ReflectionAnalyzer
from person_research.research.search_backends import (
    AgentSearchBackend,
    SearchBackend,
    TavilySearchBackend,
    build_search_backend,
)
from person_research.research.synthesis import AnswerSynthesizer
from person_research.research.web_search import WebSearchExecutor

__all__ = [
    # Stages
    "QueryGenerator",
    "seed_queries",
    "WebSearchExecutor",
    "ReflectionAnalyzer",
    "AnswerSynthesizer",
    "ProfileExtractor",
    # Search backends
    "SearchBackend",
    "AgentSearchBackend",
    "TavilySearchBackend",
    "build_search_backend",
    # Agent factories
    "create_query_agent",
    "create_search_agent",
    "create_summary_agent",
    "create_reflection_agent",
    "create_synthesis_agent",
    "create_profile_agent",
    # Agent getters
    "get_query_agent",
    "get_search_agent",
    "get_summary_agent",
    "get_reflection_agent",
    "get_synthesis_agent",
    "get_profile_agent",
    # Cache management
    "clear_agent_cache",
]
