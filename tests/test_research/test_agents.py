"""Tests for research pipeline agents."""

from collections.abc import Callable
from types import SimpleNamespace

import pytest
from pydantic_ai import Agent
from pydantic_ai.models.test import TestModel

from person_research.research.agents import (
    clear_agent_cache,
    create_identity_agent,
    create_profile_agent,
    create_query_agent,
    create_reflection_agent,
    create_search_agent,
    create_summary_agent,
    create_synthesis_agent,
    create_verification_agent,
    get_query_agent,
    get_reflection_agent,
    usage_of,
)
from person_research.research.models import QueryPlan


@pytest.fixture(autouse=True)
def _clear_caches() -> None:
    """Clear agent caches before and after each test."""
    clear_agent_cache()
    yield
    clear_agent_cache()


FACTORIES: list[tuple[Callable[..., Agent], str]] = [
    (create_query_agent, "query_agent"),
    (create_search_agent, "search_agent"),
    (create_summary_agent, "summary_agent"),
    (create_reflection_agent, "reflection_agent"),
    (create_synthesis_agent, "synthesis_agent"),
    (create_profile_agent, "profile_agent"),
    (create_identity_agent, "identity_agent"),
    (create_verification_agent, "verification_agent"),
]


class TestCreateAgents:
    """Tests for agent factory functions."""

    @pytest.mark.parametrize("factory,name", FACTORIES)
    def test__factory__returns_agent_with_correct_name(self, factory: Callable[..., Agent], name: str) -> None:
        agent = factory(TestModel())
        assert isinstance(agent, Agent)
        assert agent.name == name

    @pytest.mark.parametrize("factory,name", FACTORIES)
    def test__factory__returns_fresh_instances(self, factory: Callable[..., Agent], name: str) -> None:
        test_model = TestModel()
        assert factory(test_model) is not factory(test_model)


class TestGetAgents:
    """Tests for cached agent getters."""

    def test__get_query_agent__returns_cached_instance(self) -> None:
        # "test" resolves to TestModel and, unlike a TestModel instance, is hashable
        assert get_query_agent("test") is get_query_agent("test")

    def test__clear_agent_cache__drops_cached_instances(self) -> None:
        agent1 = get_reflection_agent("test")
        clear_agent_cache()
        agent2 = get_reflection_agent("test")
        assert agent1 is not agent2


class TestAgentOutputs:
    @pytest.mark.asyncio
    async def test__query_agent__returns_query_plan(self) -> None:
        plan = QueryPlan(rationale="cover basics", queries=["Jane Doe Boston", "Jane Doe charity"])
        agent = create_query_agent(TestModel(custom_output_args=plan.model_dump()))

        result = await agent.run("Research topic: What motivates Jane Doe?")

        assert result.output == plan

    @pytest.mark.asyncio
    async def test__synthesis_agent__returns_text(self) -> None:
        agent = create_synthesis_agent(TestModel(custom_output_text="Jane Doe gives to schools [1]."))

        result = await agent.run("Synthesize")

        assert result.output == "Jane Doe gives to schools [1]."


class TestUsageOf:
    @pytest.mark.asyncio
    async def test__usage_of__reports_run_tokens(self) -> None:
        agent = create_summary_agent(TestModel(custom_output_text="summary"))

        result = await agent.run("Summarize the hits")
        usage = usage_of(result)

        assert usage.prompt_tokens > 0
        assert usage.completion_tokens > 0
        assert usage.total_tokens == usage.prompt_tokens + usage.completion_tokens

    def test__usage_of__accepts_usage_as_method_or_property(self) -> None:
        reported = SimpleNamespace(input_tokens=7, output_tokens=3, total_tokens=10)

        class MethodResult:
            def usage(self) -> SimpleNamespace:
                return reported

        class PropertyResult:
            @property
            def usage(self) -> SimpleNamespace:
                return reported

        assert usage_of(MethodResult()) == usage_of(PropertyResult())
        assert usage_of(PropertyResult()).total_tokens == 10

    def test__usage_of__missing_counts_become_zero(self) -> None:
        result = SimpleNamespace(usage=SimpleNamespace(input_tokens=None, output_tokens=None, total_tokens=None))

        assert usage_of(result).total_tokens == 0
