"""Translation job domain entity and its state machine."""

from datetime import UTC, datetime, timedelta
import enum
from uuid import uuid4

from pydantic import BaseModel, Field

from app.models.audio import AudioFormat


class JobStatus(str, enum.Enum):
    """Translation job status enum."""

    QUEUED = "queued"
    VALIDATING = "validating"
    PROCESSING_SPEECH_TO_TEXT = "processing_speech_to_text"
    PROCESSING_TRANSLATION = "processing_translation"
    PROCESSING_TEXT_TO_SPEECH = "processing_text_to_speech"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        """True for the in-progress processing states."""
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.EXPIRED}
)
ACTIVE_STATUSES = frozenset(
    {
        JobStatus.VALIDATING,
        JobStatus.PROCESSING_SPEECH_TO_TEXT,
        JobStatus.PROCESSING_TRANSLATION,
        JobStatus.PROCESSING_TEXT_TO_SPEECH,
    }
)
NON_CANCELLABLE_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class AudioQuality(str, enum.Enum):
    """Synthesis quality tier."""

    LOW = "low"
    STANDARD = "standard"
    HIGH = "high"
    PREMIUM = "premium"

    @property
    def sample_rate(self) -> int:
        return {
            AudioQuality.LOW: 8_000,
            AudioQuality.STANDARD: 16_000,
            AudioQuality.HIGH: 22_050,
            AudioQuality.PREMIUM: 44_100,
        }[self]


class ProcessingPriority(str, enum.Enum):
    """Scheduling priority; higher ranks are dispatched first."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {
            ProcessingPriority.LOW: 0,
            ProcessingPriority.NORMAL: 1,
            ProcessingPriority.HIGH: 2,
            ProcessingPriority.CRITICAL: 3,
        }[self]


DEFAULT_JOB_TTL = timedelta(hours=24)
DEFAULT_MAX_RETRIES = 3


class InvalidStatusTransitionError(Exception):
    """Raised when a job is asked to leave a terminal state."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TranslationJob(BaseModel):
    """One end-to-end audio translation request and its processing state.

    Only the pipeline orchestrator mutates a job; every mutation goes
    through the methods below so the invariants hold:

    - progress is clamped to [0, 100] and forced to 100 on completion
    - ``expires_at`` is fixed at creation
    - a terminal status never silently reverts; ``reset_for_retry`` is the
      only way back from ``FAILED``
    - ``started_at`` is written once, on the first active status
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    source_language: str
    target_language: str
    original_filename: str
    original_file_size: int
    original_duration: float
    input_format: AudioFormat
    output_format: AudioFormat = AudioFormat.WAV
    user_id: str | None = None
    quality: AudioQuality = AudioQuality.STANDARD
    priority: ProcessingPriority = ProcessingPriority.NORMAL

    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    current_step: str | None = None
    error_message: str | None = None
    error_detail: str | None = None
    retry_count: int = 0

    original_audio_path: str | None = None
    translated_audio_path: str | None = None
    transcript_text_path: str | None = None
    translated_text_path: str | None = None

    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    expires_at: datetime

    processing_duration: float | None = None
    output_file_size: int | None = None

    @classmethod
    def create(
        cls,
        *,
        source_language: str,
        target_language: str,
        original_filename: str,
        original_file_size: int,
        original_duration: float,
        input_format: AudioFormat,
        user_id: str | None = None,
        quality: AudioQuality = AudioQuality.STANDARD,
        priority: ProcessingPriority = ProcessingPriority.NORMAL,
        output_format: AudioFormat = AudioFormat.WAV,
        ttl: timedelta = DEFAULT_JOB_TTL,
        now: datetime | None = None,
        job_id: str | None = None,
    ) -> "TranslationJob":
        """Create a new job in the ``QUEUED`` state.

        Args:
            source_language: Language spoken in the upload
            target_language: Language to translate into
            original_filename: Client-supplied file name
            original_file_size: Upload size in bytes
            original_duration: Probed duration in seconds
            input_format: Detected upload format
            user_id: Optional owner id
            quality: Synthesis quality tier
            priority: Scheduling priority
            output_format: Delivery format of the synthesized audio
            ttl: Time-to-live from creation
            now: Creation time (defaults to the current UTC time)
            job_id: Explicit id (a new UUID4 when omitted)

        Returns:
            New TranslationJob
        """
        created_at = now or _utcnow()
        return cls(
            id=job_id or str(uuid4()),
            source_language=source_language,
            target_language=target_language,
            original_filename=original_filename,
            original_file_size=original_file_size,
            original_duration=original_duration,
            input_format=input_format,
            output_format=output_format,
            user_id=user_id,
            quality=quality,
            priority=priority,
            status=JobStatus.QUEUED,
            progress=0,
            current_step="Queued",
            created_at=created_at,
            expires_at=created_at + ttl,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the TTL has elapsed."""
        return (now or _utcnow()) > self.expires_at

    def can_be_retried(self, max_retries: int = DEFAULT_MAX_RETRIES) -> bool:
        return self.status == JobStatus.FAILED and self.retry_count < max_retries

    def update_status(
        self,
        status: JobStatus,
        progress: int | None = None,
        current_step: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Move the job to ``status``.

        Args:
            status: Target status
            progress: New progress (clamped to 0-100); None keeps the current value
            current_step: Human readable step description; None keeps the current value
            now: Transition time (defaults to the current UTC time)

        Raises:
            InvalidStatusTransitionError: If the job is terminal and the target
                is anything other than ``EXPIRED``
        """
        if self.is_terminal and status != JobStatus.EXPIRED:
            raise InvalidStatusTransitionError(
                f"Job {self.id} is {self.status.value}; cannot move to {status.value}"
            )

        now = now or _utcnow()
        self.status = status
        if progress is not None:
            self.progress = max(0, min(100, progress))
        if current_step is not None:
            self.current_step = current_step

        if status.is_active and self.started_at is None:
            self.started_at = now

        if status == JobStatus.COMPLETED:
            self.progress = 100
            self.completed_at = now
            if self.started_at is not None:
                self.processing_duration = (now - self.started_at).total_seconds()

    def set_error(self, message: str, detail: str | None = None, now: datetime | None = None) -> None:
        """Record a processing failure and move to ``FAILED``."""
        self.update_status(JobStatus.FAILED, current_step="Processing error", now=now)
        self.error_message = message
        self.error_detail = detail

    def set_file_paths(
        self,
        original_audio_path: str | None = None,
        translated_audio_path: str | None = None,
        transcript_text_path: str | None = None,
        translated_text_path: str | None = None,
    ) -> None:
        """Record artifact paths; empty values leave the existing path alone."""
        if original_audio_path:
            self.original_audio_path = original_audio_path
        if translated_audio_path:
            self.translated_audio_path = translated_audio_path
        if transcript_text_path:
            self.transcript_text_path = transcript_text_path
        if translated_text_path:
            self.translated_text_path = translated_text_path

    def increment_retry(self) -> None:
        self.retry_count += 1

    def cancel(self) -> bool:
        """Cancel the job.

        Returns:
            True if the job was cancelled, False if its status does not allow it
        """
        if self.status in NON_CANCELLABLE_STATUSES:
            return False
        self.status = JobStatus.CANCELLED
        self.current_step = "Cancelled"
        return True

    def reset_for_retry(self) -> None:
        """Put a failed job back in the queue.

        Raises:
            InvalidStatusTransitionError: If the job is not ``FAILED``
        """
        if self.status != JobStatus.FAILED:
            raise InvalidStatusTransitionError(
                f"Only failed jobs can be retried (job {self.id} is {self.status.value})"
            )
        self.status = JobStatus.QUEUED
        self.progress = 0
        self.current_step = "Queued for retry"
        self.error_message = None
        self.error_detail = None
        self.completed_at = None
        self.processing_duration = None

    def artifact_paths(self) -> list[str]:
        """All known artifact paths, in pipeline order."""
        paths = [
            self.original_audio_path,
            self.translated_audio_path,
            self.transcript_text_path,
            self.translated_text_path,
        ]
        return [path for path in paths if path]
