"""Subject and organization context used to frame research topics."""

from typing import Protocol

from person_research.exceptions import OrganizationNotFoundError, SubjectNotFoundError
from person_research.models import OrganizationContext, SubjectContext


class SubjectDirectory(Protocol):
    """Read-only access to the subjects and organizations owned by the host application."""

    async def get_subject(self, subject_id: int, organization_id: str) -> SubjectContext: ...

    async def get_organization(self, organization_id: str) -> OrganizationContext: ...

    async def list_subject_ids(self, organization_id: str) -> list[int]: ...


class InMemorySubjectDirectory:
    """Directory backed by plain dicts; suitable for tests and single-process deployments."""

    def __init__(
        self,
        subjects: list[SubjectContext] | None = None,
        organizations: list[OrganizationContext] | None = None,
    ) -> None:
        self._subjects: dict[tuple[str, int], SubjectContext] = {}
        self._organizations: dict[str, OrganizationContext] = {}
        for organization in organizations or []:
            self.add_organization(organization)
        for subject in subjects or []:
            self.add_subject(subject)

    def add_subject(self, subject: SubjectContext) -> None:
        self._subjects[(subject.organization_id, subject.subject_id)] = subject

    def add_organization(self, organization: OrganizationContext) -> None:
        self._organizations[organization.organization_id] = organization

    async def get_subject(self, subject_id: int, organization_id: str) -> SubjectContext:
        try:
            return self._subjects[(organization_id, subject_id)]
        except KeyError:
            raise SubjectNotFoundError(subject_id=subject_id, organization_id=organization_id) from None

    async def get_organization(self, organization_id: str) -> OrganizationContext:
        try:
            return self._organizations[organization_id]
        except KeyError:
            raise OrganizationNotFoundError(organization_id=organization_id) from None

    async def list_subject_ids(self, organization_id: str) -> list[int]:
        return sorted(subject_id for org_id, subject_id in self._subjects if org_id == organization_id)


def build_research_topic(subject: SubjectContext, organization: OrganizationContext) -> str:
    """Donor-motivation question for ``subject`` in the context of ``organization``."""
    location = f" living in {subject.location}" if subject.location else ""
    email = f" with email {subject.email}" if subject.email else ""
    mission = organization.short_description or organization.description or organization.name
    topic = (
        f"What motivates {subject.full_name or f'subject {subject.subject_id}'}{location}{email} "
        "to donate to nonprofits? Analyze their background, interests, values, and philanthropic history. "
        f"What specific aspects of a {mission} would appeal to them based on their profile?"
    )
    if subject.notes:
        topic += f" Additional information: {subject.notes}"
    return topic
