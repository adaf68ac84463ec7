"""Structured output schemas the research agents must return."""

from pydantic import BaseModel, Field

from person_research.models import SearchSource


class QueryPlan(BaseModel):
    """Search queries proposed for a research topic."""

    rationale: str = Field(
        description="Brief explanation of why these queries are relevant",
        examples=["Cover background, employer and charitable giving with short natural searches"],
    )
    queries: list[str] = Field(
        min_length=1,
        description="Short natural search queries, each exploring a different angle",
        examples=[["Jane Doe Boston", "Jane Doe philanthropy", "Jane Doe nonprofit board"]],
    )


class SearchHits(BaseModel):
    """Web pages found for a single search query."""

    results: list[SearchSource] = Field(
        default_factory=list,
        description="Relevant pages with title, URL and a short snippet",
    )


class ReflectionOutput(BaseModel):
    """Sufficiency analysis of the research gathered so far."""

    is_sufficient: bool = Field(description="Whether the information is sufficient to answer the question")
    knowledge_gap: str = Field(
        default="",
        description="What information is missing or needs clarification (empty when sufficient)",
    )
    follow_up_queries: list[str] = Field(
        default_factory=list,
        description="Self-contained natural-language questions that address the gap (empty when sufficient)",
        examples=[["Which charities has Jane Doe of Boston supported in the last five years?"]],
    )


class PersonIdentity(BaseModel):
    """Identity profile used to tell the researched person apart from namesakes."""

    full_name: str = Field(description="The person's full name")
    probable_age: str | None = Field(default=None, description="Estimated age range or exact age if known")
    location: str | None = Field(default=None, description="Current city, state or country if known")
    profession: str | None = Field(default=None, description="Current or primary profession or industry")
    education: str | None = Field(default=None, description="Educational background if known")
    organizations: str | None = Field(
        default=None, description="Companies, institutions or organizations the person is affiliated with"
    )
    key_identifiers: list[str] = Field(
        default_factory=list,
        description="Specific facts that distinguish this person from others with the same name",
        examples=[["VP of Finance at Acme Corp", "Board member of Boston Literacy Fund"]],
    )
    confidence: float = Field(ge=0, le=1, description="Confidence from 0 to 1 in the extracted identity")
    reasoning: str = Field(default="", description="Why these identifiers and this confidence were chosen")


class SourceVerification(BaseModel):
    """Whether one search hit is about the person being researched."""

    is_relevant: bool = Field(description="Whether this page is about the same person")
    confidence: float = Field(ge=0, le=1, description="Confidence from 0 to 1 in the verdict")
    matching_identifiers: list[str] = Field(default_factory=list, description="Identifiers the page confirms")
    contradictions: list[str] = Field(
        default_factory=list, description="Details suggesting the page is about a different person"
    )
    reasoning: str = Field(default="", description="Explanation of the verdict")
