"""Pydantic models for the person research pipeline."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

MAX_RESEARCH_LOOPS = 2
MAX_QUERIES_PER_LOOP = 3
RESEARCH_SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(UTC)


class TokenUsage(BaseModel):
    """Token counts reported by one or more model calls."""

    prompt_tokens: int = Field(default=0, ge=0, description="Input tokens sent to the model")
    completion_tokens: int = Field(default=0, ge=0, description="Output tokens produced by the model")
    total_tokens: int = Field(default=0, ge=0, description="Sum of input and output tokens")

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ResearchTokenUsage(BaseModel):
    """Token usage broken down by pipeline stage."""

    query_generation: TokenUsage = Field(default_factory=TokenUsage)
    search_summaries: TokenUsage = Field(default_factory=TokenUsage)
    reflection: TokenUsage = Field(default_factory=TokenUsage)
    answer_synthesis: TokenUsage = Field(default_factory=TokenUsage)
    profile_extraction: TokenUsage = Field(default_factory=TokenUsage)
    person_identification: TokenUsage = Field(default_factory=TokenUsage)

    @property
    def total(self) -> TokenUsage:
        return (
            self.query_generation
            + self.person_identification
            + self.search_summaries
            + self.reflection
            + self.answer_synthesis
            + self.profile_extraction
        )


class ResearchQuery(BaseModel):
    """A single search query issued during a research loop."""

    text: str = Field(
        min_length=1,
        description="Search query text",
        examples=["Jane Doe philanthropy Boston"],
    )
    rationale: str = Field(
        default="",
        description="Why this query was chosen",
        examples=["Direct search using full name and location"],
    )


class SearchSource(BaseModel):
    """One raw hit returned by the search capability."""

    title: str = Field(default="", description="Page title")
    url: str = Field(min_length=1, description="Page URL", examples=["https://example.org/jane-doe"])
    snippet: str = Field(default="", description="Short excerpt of the page content")


class SearchResult(BaseModel):
    """Summarized content gathered for one executed query."""

    query: str = Field(description="The query that produced this result", examples=["Jane Doe philanthropy"])
    content: str = Field(min_length=1, description="Summary of everything the query found")
    source_url: str = Field(description="URL of the primary source for this result")
    sources: list[SearchSource] = Field(default_factory=list, description="All hits the summary is based on")
    timestamp: datetime = Field(default_factory=utc_now, description="When the query was executed")


class ReflectionVerdict(BaseModel):
    """Sufficiency judgement over all summaries gathered so far."""

    is_sufficient: bool = Field(description="Whether the topic can be answered from the summaries")
    knowledge_gap: str = Field(default="", description="Most impactful missing angle, empty when sufficient")
    follow_up_queries: list[ResearchQuery] = Field(
        default_factory=list,
        description="Natural-language questions that would close the gap",
    )


class Citation(BaseModel):
    """Reference from the synthesized answer back to a gathered summary."""

    url: str = Field(description="Source URL")
    title: str = Field(default="", description="Source title")
    snippet: str = Field(default="", description="Excerpt supporting the answer")
    relevance: str = Field(default="", description="Why the source is relevant", examples=["Related to query: ..."])
    summary_index: int = Field(ge=0, description="Index into ResearchResult.summaries")


class SubjectProfile(BaseModel):
    """Structured attributes inferred from the research."""

    inferred_age: int | None = Field(default=None, ge=0, le=130, description="Age or best estimate")
    employer: str | None = Field(default=None, description="Current or most recent employer")
    estimated_income: str | None = Field(
        default=None,
        description="Income range estimate",
        examples=["$100,000-$150,000", "Not disclosed"],
    )
    high_potential: bool = Field(default=False, description="Whether the subject looks like a high-value donor")
    high_potential_rationale: str = Field(default="", description="Evidence behind the high potential assessment")


class ResearchResult(BaseModel):
    """Complete output of one orchestrator run."""

    answer: str = Field(description="Narrative answer to the research topic")
    citations: list[Citation] = Field(default_factory=list, description="Sources backing the answer")
    summaries: list[SearchResult] = Field(default_factory=list, description="All results gathered across loops")
    total_loops: int = Field(ge=1, le=MAX_RESEARCH_LOOPS, description="Search iterations executed")
    total_sources: int = Field(ge=0, description="Number of gathered summaries")
    topic: str = Field(min_length=1, description="Research topic that was investigated")
    timestamp: datetime = Field(default_factory=utc_now, description="When the run finished")
    token_usage: ResearchTokenUsage = Field(default_factory=ResearchTokenUsage)
    profile: SubjectProfile = Field(default_factory=SubjectProfile)

    @model_validator(mode="after")
    def _check_accounting(self) -> "ResearchResult":
        if self.total_sources != len(self.summaries):
            raise ValueError("total_sources must equal the number of summaries")
        for citation in self.citations:
            if citation.summary_index >= len(self.summaries):
                raise ValueError(f"citation {citation.url} references a missing summary")
        return self


class ResearchRecord(BaseModel):
    """A persisted, immutable research version for one subject."""

    id: int
    subject_id: int
    organization_id: str
    user_id: str | None = None
    version: int = Field(ge=1)
    is_live: bool
    schema_version: int = RESEARCH_SCHEMA_VERSION
    research_data: ResearchResult
    created_at: datetime
    updated_at: datetime


class SubjectContext(BaseModel):
    """Display attributes of a subject, used only to build the topic."""

    subject_id: int
    organization_id: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    address: str | None = None
    state: str | None = None
    notes: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def location(self) -> str | None:
        parts = [part for part in (self.address, self.state) if part]
        return ", ".join(parts) or None


class OrganizationContext(BaseModel):
    """Organization attributes used to frame the research topic."""

    organization_id: str
    name: str
    description: str | None = None
    short_description: str | None = None


class BulkRunRequest(BaseModel):
    """Request to research many subjects of one organization."""

    organization_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    subject_ids: list[int] | None = Field(default=None, description="Explicit subjects; all unresearched if omitted")
    limit: int | None = Field(default=None, gt=0, description="Maximum number of subjects to research")


class BulkRunFailure(BaseModel):
    subject_id: int
    error: str


class BulkRunOutcome(BaseModel):
    """Aggregate result of a bulk run."""

    processed: int = 0
    successful: int = 0
    failed: int = 0
    failures: list[BulkRunFailure] = Field(default_factory=list)


class ResearchStatistics(BaseModel):
    total_subjects: int
    researched_subjects: int
    unresearched_subjects: int
    research_percentage: int


class BulkJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BulkJob(BaseModel):
    """Tracked state of a bulk research run started in the background."""

    job_id: str
    request: BulkRunRequest
    status: BulkJobStatus = BulkJobStatus.PENDING
    subjects_to_research: int = 0
    outcome: BulkRunOutcome | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
