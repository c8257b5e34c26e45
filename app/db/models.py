"""Database models."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.job import JobStatus


class TranslationJobRecord(Base):
    """Persisted row for a translation job.

    Datetimes are stored as naive UTC; the repository attaches the timezone
    again when loading.
    """

    __tablename__ = "translation_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_language: Mapped[str] = mapped_column(String(5), nullable=False)
    target_language: Mapped[str] = mapped_column(String(5), nullable=False)
    original_filename: Mapped[str] = mapped_column(Text, nullable=False)
    original_file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    original_duration: Mapped[float] = mapped_column(Float, nullable=False)
    input_format: Mapped[str] = mapped_column(String(10), nullable=False)
    output_format: Mapped[str] = mapped_column(String(10), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    quality: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=JobStatus.QUEUED.value, index=True
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_step: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    original_audio_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    translated_audio_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    transcript_text_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    translated_text_path: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    processing_duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    output_file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        """String representation of TranslationJobRecord."""
        return f"<TranslationJobRecord(id={self.id}, status={self.status})>"
