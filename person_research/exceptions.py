"""Domain-specific exceptions for the person research pipeline."""


class ResearchPipelineError(Exception):
    """Base exception for research pipeline errors."""


class ResearchInputError(ResearchPipelineError):
    """Raised when a research request is missing required input."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid research input '{field}': {reason}")


class QueryGenerationError(ResearchPipelineError):
    """Raised when search queries cannot be generated for a topic."""

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        self.reason = reason
        super().__init__(f"Query generation failed for '{topic}': {reason}")


class WebSearchError(ResearchPipelineError):
    """Raised when every search in a batch fails."""

    def __init__(self, attempted: int, failed: int) -> None:
        self.attempted = attempted
        self.failed = failed
        super().__init__(f"All {attempted} search attempts failed. Search capability unavailable.")


class ReflectionError(ResearchPipelineError):
    """Raised when the sufficiency analysis fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Reflection analysis failed: {reason}")


class SynthesisError(ResearchPipelineError):
    """Raised when answer synthesis fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Answer synthesis failed: {reason}")


class ResearchFailedError(ResearchPipelineError):
    """Raised by the orchestrator when any stage of a run fails."""

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        self.reason = reason
        super().__init__(f"Research failed for topic '{topic}': {reason}")


class ResearchStoreError(ResearchPipelineError):
    """Raised when research records cannot be read or written."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Research store '{operation}' failed: {reason}")


class ResearchRecordNotFoundError(ResearchStoreError):
    """Raised when a research record does not exist for the given subject."""

    def __init__(self, record_id: int, subject_id: int) -> None:
        self.record_id = record_id
        self.subject_id = subject_id
        super().__init__("set_live", f"Research record {record_id} not found for subject {subject_id}")


class SubjectNotFoundError(ResearchPipelineError):
    """Raised when a subject does not exist in the organization."""

    def __init__(self, subject_id: int, organization_id: str) -> None:
        self.subject_id = subject_id
        self.organization_id = organization_id
        super().__init__(f"Subject {subject_id} not found in organization {organization_id}")


class OrganizationNotFoundError(ResearchPipelineError):
    """Raised when an organization cannot be resolved."""

    def __init__(self, organization_id: str) -> None:
        self.organization_id = organization_id
        super().__init__(f"Organization {organization_id} not found")


class NoSubjectsToResearchError(ResearchPipelineError):
    """Raised when a bulk request has no subjects that need research."""

    def __init__(self, organization_id: str) -> None:
        self.organization_id = organization_id
        super().__init__(f"No subjects found that need research in organization {organization_id}")


class BulkJobNotFoundError(ResearchPipelineError):
    """Raised when a bulk job id is unknown or has expired."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Bulk research job {job_id} not found")


class ResearchNotFoundError(ResearchPipelineError):
    """Raised when a subject has no research, or not the requested version."""

    def __init__(self, subject_id: int, organization_id: str, version: int | None = None) -> None:
        self.subject_id = subject_id
        self.organization_id = organization_id
        self.version = version
        which = f"version {version}" if version is not None else "live research"
        super().__init__(f"No {which} found for subject {subject_id}")
