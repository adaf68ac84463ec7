"""Tests for the bulk job registry."""

from datetime import UTC, datetime, timedelta

import pytest

from person_research.exceptions import BulkJobNotFoundError
from person_research.models import BulkJobStatus, BulkRunOutcome, BulkRunRequest
from person_research.sessions import BulkJobStore
from tests.conftest import ORG_ID, USER_ID

REQUEST = BulkRunRequest(organization_id=ORG_ID, user_id=USER_ID)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test__create__registers_pending_job(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=60, max_jobs=5, clock=clock)

    job = jobs.create(REQUEST, subjects_to_research=3)

    assert job.status == BulkJobStatus.PENDING
    assert job.subjects_to_research == 3
    assert len(job.job_id) == 12
    assert jobs.get(job.job_id) == job


def test__status_transitions__recorded(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=60, max_jobs=5, clock=clock)
    job = jobs.create(REQUEST, subjects_to_research=2)

    clock.advance(1)
    running = jobs.mark_running(job.job_id)
    clock.advance(1)
    outcome = BulkRunOutcome(processed=2, successful=2)
    completed = jobs.mark_completed(job.job_id, outcome)

    assert running.status == BulkJobStatus.RUNNING
    assert completed.status == BulkJobStatus.COMPLETED
    assert completed.outcome == outcome
    assert completed.updated_at == job.created_at + timedelta(seconds=2)
    assert jobs.get(job.job_id).status == BulkJobStatus.COMPLETED


def test__mark_failed__keeps_error(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=60, max_jobs=5, clock=clock)
    job = jobs.create(REQUEST, subjects_to_research=1)

    failed = jobs.mark_failed(job.job_id, "database is locked")

    assert failed.status == BulkJobStatus.FAILED
    assert failed.error == "database is locked"


def test__idle_jobs__expire_after_ttl(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=60, max_jobs=5, clock=clock)
    stale = jobs.create(REQUEST, subjects_to_research=1)
    clock.advance(45)
    fresh = jobs.create(REQUEST, subjects_to_research=1)

    clock.advance(30)

    assert jobs.evict_expired() == 1
    with pytest.raises(BulkJobNotFoundError):
        jobs.get(stale.job_id)
    assert jobs.get(fresh.job_id) == fresh


def test__updates__refresh_ttl(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=60, max_jobs=5, clock=clock)
    job = jobs.create(REQUEST, subjects_to_research=1)

    clock.advance(50)
    jobs.mark_running(job.job_id)
    clock.advance(50)

    assert jobs.get(job.job_id).status == BulkJobStatus.RUNNING


def test__full_registry__evicts_least_recently_updated(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=600, max_jobs=2, clock=clock)
    first = jobs.create(REQUEST, subjects_to_research=1)
    clock.advance(1)
    second = jobs.create(REQUEST, subjects_to_research=1)
    clock.advance(1)
    jobs.mark_running(first.job_id)
    clock.advance(1)

    third = jobs.create(REQUEST, subjects_to_research=1)

    assert jobs.count == 2
    with pytest.raises(BulkJobNotFoundError):
        jobs.get(second.job_id)
    assert jobs.get(first.job_id).status == BulkJobStatus.RUNNING
    assert jobs.get(third.job_id) == third


def test__full_registry__evicts_finished_job_before_running_one(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=600, max_jobs=2, clock=clock)
    running = jobs.create(REQUEST, subjects_to_research=1)
    jobs.mark_running(running.job_id)
    clock.advance(1)
    done = jobs.create(REQUEST, subjects_to_research=1)
    jobs.mark_completed(done.job_id, BulkRunOutcome(processed=1, successful=1))
    clock.advance(1)

    jobs.create(REQUEST, subjects_to_research=1)

    with pytest.raises(BulkJobNotFoundError):
        jobs.get(done.job_id)
    completed = jobs.mark_completed(running.job_id, BulkRunOutcome(processed=1, successful=1))
    assert completed.status == BulkJobStatus.COMPLETED


def test__unknown_job__raises_not_found(clock: FakeClock) -> None:
    jobs = BulkJobStore(ttl_seconds=60, max_jobs=5, clock=clock)

    with pytest.raises(BulkJobNotFoundError, match="missing"):
        jobs.get("missing")
    with pytest.raises(BulkJobNotFoundError):
        jobs.mark_running("missing")
