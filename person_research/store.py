"""Versioned research persistence with a single live record per subject."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
    func,
    select,
    text,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from person_research.exceptions import ResearchRecordNotFoundError, ResearchStoreError
from person_research.logging import get_logger
from person_research.models import RESEARCH_SCHEMA_VERSION, ResearchRecord, ResearchResult, utc_now

log = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class ResearchRecordModel(Base):
    __tablename__ = "person_research_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_id: Mapped[int] = mapped_column(Integer, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    is_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=RESEARCH_SCHEMA_VERSION)
    research_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("subject_id", "organization_id", "version", name="uq_person_research_version"),
        Index("ix_person_research_subject", "organization_id", "subject_id"),
        # At most one live record per subject, enforced by the database as well.
        Index(
            "uq_person_research_live",
            "subject_id",
            "organization_id",
            unique=True,
            sqlite_where=text("is_live = 1"),
            postgresql_where=text("is_live"),
        ),
    )


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def to_record(row: ResearchRecordModel) -> ResearchRecord:
    return ResearchRecord(
        id=row.id,
        subject_id=row.subject_id,
        organization_id=row.organization_id,
        user_id=row.user_id,
        version=row.version,
        is_live=row.is_live,
        schema_version=row.schema_version,
        research_data=ResearchResult.model_validate(row.research_data),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Async engine for ``database_url``.

    SQLite transactions start with ``BEGIN IMMEDIATE`` so the write lock is taken
    before the version lookup, which serialises concurrent saves.
    """
    engine = create_async_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection: Any, _: Any) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class SqlResearchStore:
    """Append-only research versions over SQLAlchemy's async ORM."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, **kwargs: Any) -> "SqlResearchStore":
        return cls(build_engine(database_url, **kwargs))

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def save(
        self,
        subject_id: int,
        organization_id: str,
        user_id: str | None,
        result: ResearchResult,
        set_as_live: bool = True,
    ) -> ResearchRecord:
        """Insert ``result`` as the next version for the subject.

        Clearing the previous live flag, computing the version and inserting happen
        in one transaction.
        """
        try:
            async with self._sessions.begin() as session:
                if set_as_live:
                    await self._clear_live(session, subject_id, organization_id)
                current = await session.scalar(
                    select(func.max(ResearchRecordModel.version)).where(
                        ResearchRecordModel.subject_id == subject_id,
                        ResearchRecordModel.organization_id == organization_id,
                    )
                )
                now = utc_now()
                row = ResearchRecordModel(
                    subject_id=subject_id,
                    organization_id=organization_id,
                    user_id=user_id,
                    version=(current or 0) + 1,
                    is_live=set_as_live,
                    schema_version=RESEARCH_SCHEMA_VERSION,
                    research_data=result.model_dump(mode="json"),
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
                record = to_record(row)
        except SQLAlchemyError as e:
            log.error("store.save_failed", subject_id=subject_id, error=str(e))
            raise ResearchStoreError(operation="save", reason=str(e)) from e

        log.info(
            "store.saved",
            subject_id=subject_id,
            record_id=record.id,
            version=record.version,
            is_live=record.is_live,
        )
        return record

    async def get(
        self, subject_id: int, organization_id: str, version: int | None = None
    ) -> ResearchRecord | None:
        """The given version, or the live version when ``version`` is omitted."""
        query = select(ResearchRecordModel).where(
            ResearchRecordModel.subject_id == subject_id,
            ResearchRecordModel.organization_id == organization_id,
        )
        if version is None:
            query = query.where(ResearchRecordModel.is_live.is_(True))
        else:
            query = query.where(ResearchRecordModel.version == version)
        try:
            async with self._sessions() as session:
                row = await session.scalar(query)
                return to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise ResearchStoreError(operation="get", reason=str(e)) from e

    async def list_versions(self, subject_id: int, organization_id: str) -> list[ResearchRecord]:
        query = (
            select(ResearchRecordModel)
            .where(
                ResearchRecordModel.subject_id == subject_id,
                ResearchRecordModel.organization_id == organization_id,
            )
            .order_by(ResearchRecordModel.version.desc())
        )
        try:
            async with self._sessions() as session:
                rows = (await session.scalars(query)).all()
                return [to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise ResearchStoreError(operation="list_versions", reason=str(e)) from e

    async def set_live(self, record_id: int, subject_id: int) -> ResearchRecord:
        """Promote ``record_id`` to the subject's live version.

        Raises:
            ResearchRecordNotFoundError: When the record does not belong to ``subject_id``.
        """
        try:
            async with self._sessions.begin() as session:
                row = await session.scalar(
                    select(ResearchRecordModel).where(
                        ResearchRecordModel.id == record_id,
                        ResearchRecordModel.subject_id == subject_id,
                    )
                )
                if row is None:
                    raise ResearchRecordNotFoundError(record_id=record_id, subject_id=subject_id)
                await self._clear_live(session, subject_id, row.organization_id)
                await session.execute(
                    update(ResearchRecordModel)
                    .where(ResearchRecordModel.id == record_id)
                    .values(is_live=True, updated_at=utc_now())
                )
                await session.refresh(row)
                record = to_record(row)
        except SQLAlchemyError as e:
            log.error("store.set_live_failed", subject_id=subject_id, record_id=record_id, error=str(e))
            raise ResearchStoreError(operation="set_live", reason=str(e)) from e

        log.info("store.set_live", subject_id=subject_id, record_id=record_id, version=record.version)
        return record

    async def researched_subject_ids(
        self, organization_id: str, subject_ids: list[int] | None = None
    ) -> set[int]:
        """Subjects of the organization that have at least one research record."""
        query = select(ResearchRecordModel.subject_id).where(ResearchRecordModel.organization_id == organization_id)
        if subject_ids is not None:
            query = query.where(ResearchRecordModel.subject_id.in_(subject_ids))
        try:
            async with self._sessions() as session:
                return set((await session.scalars(query.distinct())).all())
        except SQLAlchemyError as e:
            raise ResearchStoreError(operation="researched_subject_ids", reason=str(e)) from e

    async def _clear_live(self, session: AsyncSession, subject_id: int, organization_id: str) -> None:
        await session.execute(
            update(ResearchRecordModel)
            .where(
                ResearchRecordModel.subject_id == subject_id,
                ResearchRecordModel.organization_id == organization_id,
                ResearchRecordModel.is_live.is_(True),
            )
            .values(is_live=False, updated_at=utc_now())
        )
