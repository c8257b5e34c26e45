"""Job repository backed by SQLAlchemy async sessions."""

from datetime import UTC, datetime
import logging
from typing import Any

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.base import SessionLocal
from app.db.models import TranslationJobRecord
from app.models.job import TERMINAL_STATUSES, JobStatus, TranslationJob

logger = logging.getLogger(__name__)

_DATETIME_FIELDS = ("created_at", "started_at", "completed_at", "expires_at")
_ENUM_FIELDS = ("input_format", "output_format", "quality", "priority", "status")


class JobAlreadyExistsError(Exception):
    """Raised when creating a job whose id is already stored."""

    pass


class JobNotFoundError(Exception):
    """Raised when updating a job that does not exist."""

    pass


def _to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _record_values(job: TranslationJob) -> dict[str, Any]:
    values = job.model_dump()
    for field in _ENUM_FIELDS:
        values[field] = getattr(job, field).value
    for field in _DATETIME_FIELDS:
        values[field] = _to_naive_utc(values[field])
    return values


def _to_domain(record: TranslationJobRecord) -> TranslationJob:
    values = {column.key: getattr(record, column.key) for column in record.__table__.columns}
    for field in _DATETIME_FIELDS:
        values[field] = _as_utc(values[field])
    return TranslationJob.model_validate(values)


class JobRepository:
    """Durable keyed store of translation jobs.

    Every operation opens its own session, so concurrent workers and status
    polls never share session state. Updates are full replaces
    (last writer wins); the primary key gives at-most-one insert per id.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        """Initialize repository.

        Args:
            session_factory: Optional session factory (uses SessionLocal if not provided)
        """
        self._session_factory = session_factory or SessionLocal

    async def create(self, job: TranslationJob) -> TranslationJob:
        """Insert a new job.

        Args:
            job: Job to store

        Returns:
            The stored job

        Raises:
            JobAlreadyExistsError: If a job with the same id already exists
        """
        async with self._session_factory() as session:
            session.add(TranslationJobRecord(**_record_values(job)))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning("Rejected duplicate job id %s", job.id)
                raise JobAlreadyExistsError(f"Job '{job.id}' already exists") from e
        return job

    async def get(self, job_id: str) -> TranslationJob | None:
        """Get a job by id.

        Args:
            job_id: Job ID

        Returns:
            TranslationJob or None if not found
        """
        async with self._session_factory() as session:
            record = await session.get(TranslationJobRecord, job_id)
            return _to_domain(record) if record is not None else None

    async def update(self, job: TranslationJob) -> TranslationJob:
        """Replace the stored job with ``job``.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        async with self._session_factory() as session:
            record = await session.get(TranslationJobRecord, job.id)
            if record is None:
                raise JobNotFoundError(f"Job '{job.id}' not found")
            for key, value in _record_values(job).items():
                setattr(record, key, value)
            await session.commit()
        return job

    async def delete(self, job_id: str) -> bool:
        """Delete a job.

        Returns:
            True if a row was removed
        """
        async with self._session_factory() as session:
            result = await session.execute(
                delete(TranslationJobRecord).where(TranslationJobRecord.id == job_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def list_by_user(self, user_id: str, limit: int | None = None) -> list[TranslationJob]:
        """List a user's jobs, newest first."""
        stmt = (
            select(TranslationJobRecord)
            .where(TranslationJobRecord.user_id == user_id)
            .order_by(TranslationJobRecord.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(record) for record in result.scalars().all()]

    async def list_by_status(self, status: JobStatus) -> list[TranslationJob]:
        """List jobs in ``status``, oldest first."""
        stmt = (
            select(TranslationJobRecord)
            .where(TranslationJobRecord.status == status.value)
            .order_by(TranslationJobRecord.created_at.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(record) for record in result.scalars().all()]

    async def list_expired(self, now: datetime | None = None) -> list[TranslationJob]:
        """List jobs whose TTL elapsed and that are not yet marked expired."""
        cutoff = _to_naive_utc(now or datetime.now(UTC))
        stmt = select(TranslationJobRecord).where(
            TranslationJobRecord.expires_at < cutoff,
            TranslationJobRecord.status != JobStatus.EXPIRED.value,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(record) for record in result.scalars().all()]

    async def list_terminal_before(self, cutoff: datetime) -> list[TranslationJob]:
        """List terminal jobs created before ``cutoff`` (retention purge)."""
        stmt = select(TranslationJobRecord).where(
            TranslationJobRecord.status.in_([status.value for status in TERMINAL_STATUSES]),
            TranslationJobRecord.created_at < _to_naive_utc(cutoff),
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(record) for record in result.scalars().all()]

    async def count_active(self) -> int:
        """Count jobs that have not reached a terminal status."""
        stmt = select(func.count(TranslationJobRecord.id)).where(
            TranslationJobRecord.status.not_in([status.value for status in TERMINAL_STATUSES])
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def count_by_status(self) -> dict[JobStatus, int]:
        """Job counts per status (statuses with no jobs report 0)."""
        stmt = select(TranslationJobRecord.status, func.count(TranslationJobRecord.id)).group_by(
            TranslationJobRecord.status
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            counts = {status: 0 for status in JobStatus}
            for status, count in result.all():
                counts[JobStatus(status)] = count
            return counts

    async def ping(self) -> bool:
        """Check database connectivity (for health checks)."""
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database connectivity test failed: %s", e)
            return False


# Global repository instance
job_repository = JobRepository()
