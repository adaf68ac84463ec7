"""Iterative research loop: generate, search, reflect, then synthesize."""

from enum import Enum
from time import perf_counter
from uuid import uuid4

from person_research.events import (
    EventCallback,
    LoopStartEvent,
    QueriesGeneratedEvent,
    ReflectionCompleteEvent,
    SearchCompleteEvent,
    SSEEvent,
    SynthesisStartEvent,
)
from person_research.exceptions import ResearchFailedError, ResearchInputError
from person_research.logging import bound_context, get_logger
from person_research.models import (
    MAX_QUERIES_PER_LOOP,
    MAX_RESEARCH_LOOPS,
    ResearchQuery,
    ResearchResult,
    ResearchTokenUsage,
    SearchResult,
    SubjectContext,
    SubjectProfile,
)
from person_research.research.identification import PersonIdentifier
from person_research.research.models import PersonIdentity
from person_research.research.profile import ProfileExtractor
from person_research.research.query_generation import QueryGenerator
from person_research.research.reflection import ReflectionAnalyzer
from person_research.research.synthesis import AnswerSynthesizer
from person_research.research.web_search import WebSearchExecutor

log = get_logger(__name__)


class OrchestratorState(str, Enum):
    INIT = "init"
    SEARCHING = "searching"
    REFLECTING = "reflecting"
    SYNTHESIZING = "synthesizing"
    DONE = "done"


def _require(field: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ResearchInputError(field=field, reason="must not be blank")
    return value.strip()


def _elapsed_ms(start: float) -> int:
    return int((perf_counter() - start) * 1000)


async def run_person_research(
    topic: str,
    *,
    organization_id: str,
    user_id: str,
    subject: SubjectContext | None = None,
    query_generator: QueryGenerator | None = None,
    search_executor: WebSearchExecutor | None = None,
    reflection_analyzer: ReflectionAnalyzer | None = None,
    answer_synthesizer: AnswerSynthesizer | None = None,
    profile_extractor: ProfileExtractor | None = None,
    person_identifier: PersonIdentifier | None = None,
    event_callback: EventCallback | None = None,
) -> ResearchResult:
    """Research ``topic`` in at most ``MAX_RESEARCH_LOOPS`` search iterations.

    Loop 1 searches the initial queries. While iterations remain, reflection over
    every summary gathered so far decides whether to stop or to search follow-up
    queries. The final loop skips reflection and goes straight to synthesis.

    With a ``subject``, an identity is extracted after the loop 1 search and later
    searches drop hits about other people with the same name. Identification never
    fails the run.

    Args:
        topic: Natural-language research question.
        organization_id: Organization the research is run for.
        user_id: User requesting the research.
        subject: Subject being researched, used for seed queries and identification.
        query_generator: Override the default query generator (for testing).
        search_executor: Override the default web search executor (for testing).
        reflection_analyzer: Override the default reflection analyzer (for testing).
        answer_synthesizer: Override the default answer synthesizer (for testing).
        profile_extractor: Override the default profile extractor (for testing).
        person_identifier: Override the default person identifier (for testing).
        event_callback: Awaited with a progress event at every step.

    Returns:
        ResearchResult with the answer, citations and every gathered summary.

    Raises:
        ResearchInputError: When topic, organization or user is blank.
        ResearchFailedError: When any stage fails. No partial result is returned.
    """
    topic = _require("topic", topic)
    organization_id = _require("organization_id", organization_id)
    user_id = _require("user_id", user_id)

    generator = query_generator or QueryGenerator()
    executor = search_executor or WebSearchExecutor()
    analyzer = reflection_analyzer or ReflectionAnalyzer()
    synthesizer = answer_synthesizer or AnswerSynthesizer()
    extractor = profile_extractor or ProfileExtractor()
    identifier = person_identifier or PersonIdentifier()

    async def emit(event: SSEEvent) -> None:
        if event_callback is not None:
            await event_callback(event)

    with bound_context(correlation_id=str(uuid4())[:8], organization_id=organization_id):
        state = OrchestratorState.INIT
        usage = ResearchTokenUsage()
        summaries: list[SearchResult] = []
        issued: list[str] = []
        identity: PersonIdentity | None = None
        loop = 1

        def enter(next_state: OrchestratorState) -> None:
            nonlocal state
            log.debug("workflow.state_changed", previous=state.value, state=next_state.value, loop=loop)
            state = next_state

        workflow_start = perf_counter()
        log.info("workflow.started", topic=topic, user_id=user_id, max_loops=MAX_RESEARCH_LOOPS)

        try:
            batch = await generator.generate(topic, max_queries=MAX_QUERIES_PER_LOOP, subject=subject)
            usage.query_generation += batch.token_usage
            queries: list[ResearchQuery] = batch.queries

            while True:
                enter(OrchestratorState.SEARCHING)
                await emit(LoopStartEvent(data={"loop": loop, "max_loops": MAX_RESEARCH_LOOPS}))
                await emit(QueriesGeneratedEvent(data={"loop": loop, "queries": [q.text for q in queries]}))

                phase_start = perf_counter()
                issued.extend(q.text for q in queries)
                search = await executor.search(queries, topic, identity=identity)
                summaries.extend(search.results)
                usage.search_summaries += search.token_usage
                log.info(
                    "workflow.search.completed",
                    loop=loop,
                    duration_ms=_elapsed_ms(phase_start),
                    results=len(search.results),
                    total_sources=len(summaries),
                )
                await emit(
                    SearchCompleteEvent(
                        data={
                            "loop": loop,
                            "results": len(search.results),
                            "failed": search.failed_queries,
                            "total_sources": len(summaries),
                        }
                    )
                )

                if subject is not None and identity is None:
                    sample = [source for summary in search.results for source in summary.sources]
                    identification = await identifier.identify(subject, sample)
                    usage.person_identification += identification.token_usage
                    identity = identification.identity

                if loop >= MAX_RESEARCH_LOOPS:
                    log.info("workflow.loop_limit_reached", loop=loop)
                    break

                enter(OrchestratorState.REFLECTING)
                phase_start = perf_counter()
                reflection = await analyzer.analyze(topic, summaries)
                usage.reflection += reflection.token_usage
                verdict = reflection.verdict
                log.info(
                    "workflow.reflection.completed",
                    loop=loop,
                    duration_ms=_elapsed_ms(phase_start),
                    is_sufficient=verdict.is_sufficient,
                )
                await emit(
                    ReflectionCompleteEvent(
                        data={
                            "loop": loop,
                            "is_sufficient": verdict.is_sufficient,
                            "knowledge_gap": verdict.knowledge_gap,
                            "follow_ups": len(verdict.follow_up_queries),
                        }
                    )
                )

                if verdict.is_sufficient:
                    break
                if not verdict.follow_up_queries:
                    log.info("workflow.no_follow_ups", loop=loop)
                    break

                follow_up = await generator.generate(
                    topic,
                    max_queries=min(len(verdict.follow_up_queries), MAX_QUERIES_PER_LOOP),
                    is_follow_up=True,
                    previous_queries=list(issued),
                    follow_up_questions=[q.text for q in verdict.follow_up_queries],
                )
                usage.query_generation += follow_up.token_usage
                if not follow_up.queries:
                    log.info("workflow.follow_ups_exhausted", loop=loop)
                    break
                queries = follow_up.queries
                loop += 1

            enter(OrchestratorState.SYNTHESIZING)
            await emit(SynthesisStartEvent(data={"total_loops": loop, "total_sources": len(summaries)}))
            phase_start = perf_counter()
            synthesis = await synthesizer.synthesize(topic, summaries)
            usage.answer_synthesis += synthesis.token_usage
            log.info("workflow.synthesis.completed", duration_ms=_elapsed_ms(phase_start))

            profile = SubjectProfile()
            if summaries:
                extraction = await extractor.extract(topic, synthesis.answer, summaries)
                usage.profile_extraction += extraction.token_usage
                profile = extraction.profile

            result = ResearchResult(
                answer=synthesis.answer,
                citations=synthesis.citations,
                summaries=summaries,
                total_loops=loop,
                total_sources=len(summaries),
                topic=topic,
                token_usage=usage,
                profile=profile,
            )
        except Exception as e:
            log.error("workflow.failed", state=state.value, loop=loop, error=str(e), error_type=type(e).__name__)
            raise ResearchFailedError(topic=topic, reason=str(e)) from e

        enter(OrchestratorState.DONE)
        total = usage.total
        log.info(
            "workflow.completed",
            total_ms=_elapsed_ms(workflow_start),
            total_loops=result.total_loops,
            total_sources=result.total_sources,
            citations=len(result.citations),
            prompt_tokens=total.prompt_tokens,
            completion_tokens=total.completion_tokens,
            total_tokens=total.total_tokens,
        )
        return result
