"""FastAPI application for the person research service."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Header, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from person_research import __version__
from person_research.config import get_settings
from person_research.events import CompleteEvent, ErrorEvent, HeartbeatEvent, SSEEvent
from person_research.exceptions import (
    BulkJobNotFoundError,
    NoSubjectsToResearchError,
    OrganizationNotFoundError,
    ResearchFailedError,
    ResearchInputError,
    ResearchNotFoundError,
    ResearchPipelineError,
    ResearchRecordNotFoundError,
    SubjectNotFoundError,
)
from person_research.logging import configure_logging
from person_research.models import (
    MAX_QUERIES_PER_LOOP,
    MAX_RESEARCH_LOOPS,
    BulkJob,
    BulkRunRequest,
    ResearchRecord,
    ResearchResult,
    ResearchStatistics,
)
from person_research.service import PersonResearchService

log = structlog.get_logger("person_research.server")

# SSE Configuration
HEARTBEAT_INTERVAL = 30  # seconds
MAX_DURATION = 600  # 10 minutes
MAX_QUEUE_SIZE = 100


# --- Request/Response schemas ---


class ResearchRequest(BaseModel):
    """Incoming on-demand research request."""

    topic: str = Field(
        min_length=1,
        max_length=2000,
        description="Research question to investigate (1-2000 characters)",
        examples=["What motivates Jane Doe to donate?"],
    )


class BulkResearchRequest(BaseModel):
    subject_ids: list[int] | None = Field(
        default=None,
        description="Subjects to research; every unresearched subject when omitted",
        examples=[[1, 2, 3]],
    )
    limit: int | None = Field(default=None, gt=0, description="Maximum number of subjects to research")


class ErrorResponse(BaseModel):
    """Structured error response."""

    error: str = Field(description="Error type", examples=["ResearchFailedError"])
    detail: str = Field(
        description="User-friendly error message explaining what went wrong",
        examples=["Unable to search for information about this subject. Please try again."],
    )


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status", examples=["ok"])
    version: str = Field(default="", description="Service version (only included in /health endpoint)")


class ResearchStatusResponse(BaseModel):
    available: bool = True
    max_research_loops: int = MAX_RESEARCH_LOOPS
    max_queries_per_loop: int = MAX_QUERIES_PER_LOOP
    search_provider: str
    bulk_max_concurrency: int


# --- Exception handlers ---

# Stage failures are reported by their cause, which the orchestrator chains.
_SAFE_ERROR_MESSAGES: dict[str, str] = {
    "QueryGenerationError": "Unable to plan searches for this topic. Please try a different topic.",
    "WebSearchError": "Unable to search for information about this subject. Please try again.",
    "ReflectionError": "Unable to evaluate the gathered information. Please try again.",
    "SynthesisError": "Unable to generate the research answer. Please try again.",
    "ResearchStoreError": "Unable to store research results. Please try again.",
}

_BAD_REQUEST = (ResearchInputError, NoSubjectsToResearchError)
_NOT_FOUND = (
    SubjectNotFoundError,
    OrganizationNotFoundError,
    ResearchNotFoundError,
    ResearchRecordNotFoundError,
    BulkJobNotFoundError,
)


def _cause_name(exc: Exception) -> str:
    if isinstance(exc, ResearchFailedError) and exc.__cause__ is not None:
        return type(exc.__cause__).__name__
    return type(exc).__name__


def _get_safe_error_message(exc: Exception) -> str:
    if isinstance(exc, _BAD_REQUEST + _NOT_FOUND):
        return str(exc)
    return _SAFE_ERROR_MESSAGES.get(_cause_name(exc), "An error occurred processing your request.")


async def _handle_pipeline_error(request: Request, exc: ResearchPipelineError) -> JSONResponse:
    error_type = type(exc).__name__
    if isinstance(exc, _BAD_REQUEST):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, _NOT_FOUND):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    log.warning("request.pipeline_error", error_type=error_type, status_code=status_code, detail=str(exc))
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error_type, detail=_get_safe_error_message(exc)).model_dump(),
    )


async def _handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    log.warning("request.validation_error", detail=str(exc))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(error="ValidationError", detail=str(exc)).model_dump(),
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unexpected_error", error=str(exc))
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="InternalServerError", detail="An unexpected error occurred.").model_dump(),
    )


# --- App factory ---


def get_app(service: PersonResearchService | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    research_service = service or PersonResearchService.from_settings()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        await research_service.startup()
        yield
        await research_service.shutdown()

    application = FastAPI(
        title="Person Research Service",
        description="""
Iterative person research with versioned results.

Each run generates targeted search queries, searches the web in parallel,
reflects on whether the evidence answers the topic and searches follow-up
queries at most once more before synthesizing a cited answer.

Saved runs become new versions of a subject's research; exactly one version
per subject is live.
        """,
        version=__version__,
        lifespan=lifespan,
    )
    application.state.service = research_service

    application.add_exception_handler(ResearchPipelineError, _handle_pipeline_error)  # type: ignore[arg-type]
    application.add_exception_handler(ValidationError, _handle_validation_error)  # type: ignore[arg-type]
    application.add_exception_handler(Exception, _handle_unexpected_error)

    @application.post(
        "/research",
        response_model=ResearchResult,
        status_code=status.HTTP_200_OK,
        summary="Research a topic",
        tags=["Research"],
        responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def research(
        body: ResearchRequest,
        organization_id: str = Header(alias="X-Organization-Id"),
        user_id: str = Header(alias="X-User-Id"),
    ) -> ResearchResult:
        return await research_service.conduct_research(body.topic, organization_id=organization_id, user_id=user_id)

    @application.post(
        "/research/stream",
        response_class=StreamingResponse,
        responses={
            200: {
                "description": "Server-Sent Events stream of research progress",
                "content": {"text/event-stream": {"example": "event: search_complete\ndata: {...}\n\n"}},
            },
            422: {"model": ErrorResponse},
        },
        summary="Research a topic with streaming progress updates",
        description="""
**Event Types:**
- `loop_start`, `queries_generated`, `search_complete`, `reflection_complete`: loop progress
- `synthesis_start`: answer synthesis begins
- `heartbeat`: Keep-alive comment every 30s (`: keepalive`)
- `complete`: Final result with full ResearchResult
- `error`: The run failed
        """,
        tags=["Research"],
    )
    async def research_stream(
        request: Request,
        research_request: ResearchRequest,
        organization_id: str = Header(alias="X-Organization-Id"),
        user_id: str = Header(alias="X-User-Id"),
    ) -> StreamingResponse:
        async def event_generator() -> AsyncIterator[str]:
            event_queue: asyncio.Queue[SSEEvent] = asyncio.Queue(maxsize=MAX_QUEUE_SIZE)
            research_complete = asyncio.Event()

            async def event_callback(event: SSEEvent) -> None:
                try:
                    await asyncio.wait_for(event_queue.put(event), timeout=5.0)
                except TimeoutError:
                    log.warning("event_queue_full", event=event.event)

            async def run_research_task() -> None:
                try:
                    result = await research_service.conduct_research(
                        research_request.topic,
                        organization_id=organization_id,
                        user_id=user_id,
                        event_callback=event_callback,
                    )
                    await event_queue.put(CompleteEvent(data=result.model_dump(mode="json")))
                except Exception as e:
                    log.error("research_error", error=str(e), exc_info=True)
                    await event_queue.put(
                        ErrorEvent(data={"error": _get_safe_error_message(e), "error_type": e.__class__.__name__})
                    )
                finally:
                    research_complete.set()

            research_task = asyncio.create_task(run_research_task())

            loop = asyncio.get_running_loop()
            start_time = loop.time()
            next_heartbeat = start_time + HEARTBEAT_INTERVAL

            try:
                while not research_complete.is_set():
                    current_time = loop.time()
                    elapsed = current_time - start_time

                    if elapsed > MAX_DURATION:
                        log.warning("stream_timeout", elapsed=elapsed, max=MAX_DURATION)
                        research_task.cancel()
                        yield ErrorEvent(
                            data={"error": "Research timeout - exceeded 10 minutes", "error_type": "TimeoutError"}
                        ).format()
                        break

                    if await request.is_disconnected():
                        log.info("client_disconnected", elapsed=elapsed)
                        research_task.cancel()
                        break

                    if current_time >= next_heartbeat:
                        yield HeartbeatEvent().format()
                        next_heartbeat += HEARTBEAT_INTERVAL

                    try:
                        event = await asyncio.wait_for(event_queue.get(), timeout=0.1)
                        yield event.format()
                    except TimeoutError:
                        continue

                while not event_queue.empty():
                    yield event_queue.get_nowait().format()

            finally:
                research_task.cancel()
                try:
                    await asyncio.wait_for(research_task, timeout=10.0)
                except asyncio.CancelledError:
                    log.info("research_cancelled")
                except TimeoutError:
                    log.error("research_cancellation_timeout")

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
                "Connection": "keep-alive",
            },
        )

    @application.post(
        "/subjects/{subject_id}/research",
        response_model=ResearchRecord,
        status_code=status.HTTP_201_CREATED,
        summary="Research a subject and save the result as its live version",
        tags=["Subjects"],
        responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    )
    async def research_subject(
        subject_id: int,
        organization_id: str = Header(alias="X-Organization-Id"),
        user_id: str = Header(alias="X-User-Id"),
    ) -> ResearchRecord:
        return await research_service.conduct_and_save(subject_id, organization_id, user_id)

    @application.get(
        "/subjects/{subject_id}/research",
        response_model=ResearchRecord,
        summary="Live research version, or a specific one",
        tags=["Subjects"],
        responses={404: {"model": ErrorResponse}},
    )
    async def get_subject_research(
        subject_id: int,
        version: int | None = Query(default=None, ge=1, description="Version to fetch; live version if omitted"),
        organization_id: str = Header(alias="X-Organization-Id"),
    ) -> ResearchRecord:
        record = await research_service.get_research(subject_id, organization_id, version)
        if record is None:
            raise ResearchNotFoundError(subject_id, organization_id, version)
        return record

    @application.get(
        "/subjects/{subject_id}/research/versions",
        response_model=list[ResearchRecord],
        summary="All research versions, newest first",
        tags=["Subjects"],
    )
    async def list_subject_versions(
        subject_id: int,
        organization_id: str = Header(alias="X-Organization-Id"),
    ) -> list[ResearchRecord]:
        return await research_service.list_versions(subject_id, organization_id)

    @application.post(
        "/subjects/{subject_id}/research/{record_id}/live",
        response_model=ResearchRecord,
        summary="Make a research version the live one",
        tags=["Subjects"],
        responses={404: {"model": ErrorResponse}},
    )
    async def set_live_version(
        subject_id: int,
        record_id: int,
        organization_id: str = Header(alias="X-Organization-Id"),
    ) -> ResearchRecord:
        return await research_service.set_live(record_id, subject_id, organization_id)

    @application.get(
        "/research/statistics",
        response_model=ResearchStatistics,
        summary="Research coverage of the organization's subjects",
        tags=["Research"],
    )
    async def research_statistics(organization_id: str = Header(alias="X-Organization-Id")) -> ResearchStatistics:
        return await research_service.research_statistics(organization_id)

    @application.post(
        "/research/bulk",
        response_model=BulkJob,
        status_code=status.HTTP_202_ACCEPTED,
        summary="Start researching many subjects in the background",
        tags=["Bulk"],
        responses={400: {"model": ErrorResponse}},
    )
    async def start_bulk_research(
        body: BulkResearchRequest,
        organization_id: str = Header(alias="X-Organization-Id"),
        user_id: str = Header(alias="X-User-Id"),
    ) -> BulkJob:
        request = BulkRunRequest(
            organization_id=organization_id,
            user_id=user_id,
            subject_ids=body.subject_ids,
            limit=body.limit,
        )
        return await research_service.start_bulk_research(request)

    @application.get(
        "/research/bulk/{job_id}",
        response_model=BulkJob,
        summary="Status of a bulk research job",
        tags=["Bulk"],
        responses={404: {"model": ErrorResponse}},
    )
    async def get_bulk_job(job_id: str) -> BulkJob:
        return research_service.get_bulk_job(job_id)

    @application.get(
        "/research/status",
        response_model=ResearchStatusResponse,
        summary="Research capability and limits",
        tags=["Research"],
    )
    async def research_status() -> ResearchStatusResponse:
        settings = get_settings()
        return ResearchStatusResponse(
            search_provider=settings.search_provider,
            bulk_max_concurrency=research_service.runner.max_concurrency,
        )

    @application.get("/health", response_model=HealthResponse, summary="Health Check", tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @application.get("/health/liveness", response_model=HealthResponse, summary="Liveness Probe", tags=["Health"])
    async def liveness() -> HealthResponse:
        return HealthResponse(status="alive")

    @application.get("/health/readiness", response_model=HealthResponse, summary="Readiness Probe", tags=["Health"])
    async def readiness() -> HealthResponse:
        return HealthResponse(status="ready")

    return application
