"""Person Research - iterative web research on individuals with versioned results"""

__version__ = "0.1.0"

from person_research.bulk import BulkResearchRunner
from person_research.concurrency import gather_bounded
from person_research.exceptions import (
    BulkJobNotFoundError,
    NoSubjectsToResearchError,
    OrganizationNotFoundError,
    QueryGenerationError,
    ReflectionError,
    ResearchFailedError,
    ResearchInputError,
    ResearchPipelineError,
    ResearchRecordNotFoundError,
    ResearchStoreError,
    SubjectNotFoundError,
    SynthesisError,
    WebSearchError,
)
from person_research.models import (
    MAX_QUERIES_PER_LOOP,
    MAX_RESEARCH_LOOPS,
    BulkRunOutcome,
    BulkRunRequest,
    Citation,
    ReflectionVerdict,
    ResearchQuery,
    ResearchRecord,
    ResearchResult,
    SearchResult,
    SubjectContext,
    SubjectProfile,
)
from person_research.service import PersonResearchService
from person_research.store import SqlResearchStore
from person_research.subjects import InMemorySubjectDirectory, SubjectDirectory, build_research_topic
from person_research.workflow import OrchestratorState, run_person_research

__all__ = [
    # Limits
    "MAX_RESEARCH_LOOPS",
    "MAX_QUERIES_PER_LOOP",
    # Models
    "ResearchQuery",
    "SearchResult",
    "ReflectionVerdict",
    "Citation",
    "SubjectProfile",
    "ResearchResult",
    "ResearchRecord",
    "SubjectContext",
    "BulkRunRequest",
    "BulkRunOutcome",
    # Exceptions
    "ResearchPipelineError",
    "ResearchInputError",
    "QueryGenerationError",
    "WebSearchError",
    "ReflectionError",
    "SynthesisError",
    "ResearchFailedError",
    "ResearchStoreError",
    "ResearchRecordNotFoundError",
    "SubjectNotFoundError",
    "OrganizationNotFoundError",
    "NoSubjectsToResearchError",
    "BulkJobNotFoundError",
    # Pipeline
    "OrchestratorState",
    "run_person_research",
    "SqlResearchStore",
    "SubjectDirectory",
    "InMemorySubjectDirectory",
    "build_research_topic",
    "gather_bounded",
    "BulkResearchRunner",
    "PersonResearchService",
]
