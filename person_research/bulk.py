"""Research for many subjects at once with per-subject failure isolation."""

from collections.abc import Awaitable
from time import perf_counter
from typing import Protocol

from person_research.concurrency import gather_bounded
from person_research.config import get_settings
from person_research.events import EventCallback
from person_research.logging import bound_context, get_logger
from person_research.models import (
    BulkRunFailure,
    BulkRunOutcome,
    BulkRunRequest,
    ResearchRecord,
    ResearchResult,
    SubjectContext,
)
from person_research.store import SqlResearchStore
from person_research.subjects import SubjectDirectory, build_research_topic
from person_research.workflow import run_person_research

log = get_logger(__name__)


class ResearchFunction(Protocol):
    def __call__(
        self,
        topic: str,
        *,
        organization_id: str,
        user_id: str,
        subject: SubjectContext | None = None,
        event_callback: EventCallback | None = None,
    ) -> Awaitable[ResearchResult]: ...


class BulkResearchRunner:
    """Resolves which subjects need research and runs the pipeline for each of them."""

    def __init__(
        self,
        store: SqlResearchStore,
        directory: SubjectDirectory,
        *,
        research: ResearchFunction = run_person_research,
        max_concurrency: int | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.research = research
        self.max_concurrency = max_concurrency or get_settings().bulk_max_concurrency

    async def resolve_candidates(self, request: BulkRunRequest) -> list[int]:
        """Explicit subject ids, or every subject of the organization without a record."""
        if request.subject_ids is not None:
            candidates = list(dict.fromkeys(request.subject_ids))
        else:
            all_ids = await self.directory.list_subject_ids(request.organization_id)
            researched = await self.store.researched_subject_ids(request.organization_id)
            candidates = [subject_id for subject_id in all_ids if subject_id not in researched]
        if request.limit is not None:
            candidates = candidates[: request.limit]
        return candidates

    async def research_subject(self, subject_id: int, organization_id: str, user_id: str) -> ResearchRecord:
        """Run the full pipeline for one subject and persist the result as live."""
        subject = await self.directory.get_subject(subject_id, organization_id)
        organization = await self.directory.get_organization(organization_id)
        topic = build_research_topic(subject, organization)
        result = await self.research(topic, organization_id=organization_id, user_id=user_id, subject=subject)
        return await self.store.save(subject_id, organization_id, user_id, result, set_as_live=True)

    async def run(self, request: BulkRunRequest, candidates: list[int] | None = None) -> BulkRunOutcome:
        """Research every candidate; a failing subject is recorded and never stops the others."""
        if candidates is None:
            candidates = await self.resolve_candidates(request)
        if not candidates:
            log.info("bulk.no_candidates", organization_id=request.organization_id)
            return BulkRunOutcome()

        start = perf_counter()
        log.info(
            "bulk.started",
            organization_id=request.organization_id,
            subjects=len(candidates),
            max_concurrency=self.max_concurrency,
        )

        async def _process(subject_id: int) -> BulkRunFailure | None:
            with bound_context(subject_id=subject_id):
                try:
                    record = await self.research_subject(subject_id, request.organization_id, request.user_id)
                except Exception as e:
                    log.error("bulk.subject_failed", error=str(e), error_type=type(e).__name__)
                    return BulkRunFailure(subject_id=subject_id, error=str(e))
                log.info("bulk.subject_completed", record_id=record.id, version=record.version)
                return None

        results = await gather_bounded(candidates, _process, self.max_concurrency)
        failures = [failure for failure in results if failure is not None]
        outcome = BulkRunOutcome(
            processed=len(candidates),
            successful=len(candidates) - len(failures),
            failed=len(failures),
            failures=failures,
        )
        log.info(
            "bulk.completed",
            organization_id=request.organization_id,
            duration_ms=int((perf_counter() - start) * 1000),
            processed=outcome.processed,
            successful=outcome.successful,
            failed=outcome.failed,
        )
        return outcome
