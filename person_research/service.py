"""Entry point used by request handlers and job runners."""

import asyncio

from person_research.bulk import BulkResearchRunner, ResearchFunction
from person_research.config import Settings, get_settings
from person_research.events import EventCallback
from person_research.exceptions import NoSubjectsToResearchError
from person_research.logging import bound_context, get_logger
from person_research.models import (
    BulkJob,
    BulkRunOutcome,
    BulkRunRequest,
    ResearchRecord,
    ResearchResult,
    ResearchStatistics,
)
from person_research.sessions import BulkJobStore
from person_research.store import SqlResearchStore
from person_research.subjects import InMemorySubjectDirectory, SubjectDirectory
from person_research.workflow import run_person_research

log = get_logger(__name__)


class PersonResearchService:
    """Ties the research pipeline, the versioned store and bulk jobs together."""

    def __init__(
        self,
        store: SqlResearchStore,
        directory: SubjectDirectory,
        *,
        research: ResearchFunction = run_person_research,
        jobs: BulkJobStore | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.research = research
        self.jobs = jobs or BulkJobStore()
        self.runner = BulkResearchRunner(store, directory, research=research, max_concurrency=max_concurrency)
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, directory: SubjectDirectory | None = None
    ) -> "PersonResearchService":
        settings = settings or get_settings()
        return cls(
            SqlResearchStore.from_url(settings.database_url),
            directory or InMemorySubjectDirectory(),
            jobs=BulkJobStore(settings.bulk_job_ttl_seconds, settings.max_bulk_jobs),
            max_concurrency=settings.bulk_max_concurrency,
        )

    async def startup(self) -> None:
        await self.store.create_schema()

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.store.dispose()

    async def conduct_research(
        self,
        topic: str,
        *,
        organization_id: str,
        user_id: str,
        event_callback: EventCallback | None = None,
    ) -> ResearchResult:
        """On-demand research for a free-text topic. Nothing is persisted."""
        return await self.research(
            topic, organization_id=organization_id, user_id=user_id, event_callback=event_callback
        )

    async def conduct_and_save(self, subject_id: int, organization_id: str, user_id: str) -> ResearchRecord:
        with bound_context(subject_id=subject_id):
            return await self.runner.research_subject(subject_id, organization_id, user_id)

    async def get_research(
        self, subject_id: int, organization_id: str, version: int | None = None
    ) -> ResearchRecord | None:
        return await self.store.get(subject_id, organization_id, version)

    async def list_versions(self, subject_id: int, organization_id: str) -> list[ResearchRecord]:
        return await self.store.list_versions(subject_id, organization_id)

    async def set_live(self, record_id: int, subject_id: int, organization_id: str) -> ResearchRecord:
        # Confirms the subject belongs to the organization before touching its records.
        await self.directory.get_subject(subject_id, organization_id)
        return await self.store.set_live(record_id, subject_id)

    async def research_statistics(self, organization_id: str) -> ResearchStatistics:
        subject_ids = await self.directory.list_subject_ids(organization_id)
        researched = len(await self.store.researched_subject_ids(organization_id, subject_ids)) if subject_ids else 0
        total = len(subject_ids)
        return ResearchStatistics(
            total_subjects=total,
            researched_subjects=researched,
            unresearched_subjects=total - researched,
            research_percentage=round(researched / total * 100) if total else 0,
        )

    async def run_bulk_research(self, request: BulkRunRequest) -> BulkRunOutcome:
        """Run a bulk request to completion in the caller's task."""
        return await self.runner.run(request)

    async def start_bulk_research(self, request: BulkRunRequest) -> BulkJob:
        """Validate candidates, register a job and run it in the background.

        Raises:
            NoSubjectsToResearchError: When no subject needs research.
        """
        candidates = await self.runner.resolve_candidates(request)
        if not candidates:
            raise NoSubjectsToResearchError(organization_id=request.organization_id)

        job = self.jobs.create(request, subjects_to_research=len(candidates))
        task = asyncio.create_task(self._run_job(job.job_id, request, candidates))
        self._tasks.add(task)
        task.add_done_callback(self._on_job_done)
        log.info("bulk.job_started", job_id=job.job_id, subjects=len(candidates))
        return job

    def get_bulk_job(self, job_id: str) -> BulkJob:
        return self.jobs.get(job_id)

    async def _run_job(self, job_id: str, request: BulkRunRequest, candidates: list[int]) -> None:
        with bound_context(job_id=job_id):
            self.jobs.mark_running(job_id)
            try:
                outcome = await self.runner.run(request, candidates)
            except Exception as e:
                log.exception("bulk.job_failed", error=str(e))
                self.jobs.mark_failed(job_id, str(e))
                return
            self.jobs.mark_completed(job_id, outcome)

    def _on_job_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("bulk.job_crashed", error=str(task.exception()))
