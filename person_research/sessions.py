"""In-memory registry of background bulk research jobs."""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from person_research.config import get_settings
from person_research.exceptions import BulkJobNotFoundError
from person_research.logging import get_logger
from person_research.models import BulkJob, BulkJobStatus, BulkRunOutcome, BulkRunRequest, utc_now

log = get_logger(__name__)

FINISHED_STATUSES = (BulkJobStatus.COMPLETED, BulkJobStatus.FAILED)


class BulkJobStore:
    """Job registry keyed by job id with TTL eviction and a size cap."""

    def __init__(
        self,
        ttl_seconds: int | None = None,
        max_jobs: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = get_settings()
        self.ttl = timedelta(seconds=ttl_seconds or settings.bulk_job_ttl_seconds)
        self.max_jobs = max_jobs or settings.max_bulk_jobs
        self._clock = clock
        self._jobs: dict[str, BulkJob] = {}

    def create(self, request: BulkRunRequest, subjects_to_research: int) -> BulkJob:
        """Register a pending job, evicting expired ones first and the stalest one when full.

        Finished jobs are evicted before pending or running ones.
        """
        self.evict_expired()
        if len(self._jobs) >= self.max_jobs:
            finished = [k for k, job in self._jobs.items() if job.status in FINISHED_STATUSES]
            victim_id = min(finished or self._jobs, key=lambda k: self._jobs[k].updated_at)
            status = self._jobs.pop(victim_id).status
            log.info("jobs.evicted_oldest", job_id=victim_id, status=status.value)

        now = self._clock()
        job = BulkJob(
            job_id=uuid.uuid4().hex[:12],
            request=request,
            subjects_to_research=subjects_to_research,
            created_at=now,
            updated_at=now,
        )
        self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> BulkJob:
        self.evict_expired()
        job = self._jobs.get(job_id)
        if job is None:
            raise BulkJobNotFoundError(job_id=job_id)
        return job

    def mark_running(self, job_id: str) -> BulkJob:
        return self._update(job_id, status=BulkJobStatus.RUNNING)

    def mark_completed(self, job_id: str, outcome: BulkRunOutcome) -> BulkJob:
        return self._update(job_id, status=BulkJobStatus.COMPLETED, outcome=outcome)

    def mark_failed(self, job_id: str, error: str) -> BulkJob:
        return self._update(job_id, status=BulkJobStatus.FAILED, error=error)

    def evict_expired(self) -> int:
        """Drop jobs idle for longer than the TTL. Returns how many were dropped."""
        now = self._clock()
        expired = [job_id for job_id, job in self._jobs.items() if now - job.updated_at > self.ttl]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            log.info("jobs.evicted_expired", count=len(expired))
        return len(expired)

    @property
    def count(self) -> int:
        return len(self._jobs)

    def _update(self, job_id: str, **changes: object) -> BulkJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise BulkJobNotFoundError(job_id=job_id)
        updated = job.model_copy(update={**changes, "updated_at": self._clock()})
        self._jobs[job_id] = updated
        return updated
