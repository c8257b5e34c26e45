"""Job submission, status, result, cancel and retry operations."""

from datetime import UTC, datetime, timedelta
import logging
from pathlib import PurePath

from pydantic import BaseModel

from app.core.config import Settings, get_settings
from app.db.repository import JobRepository, job_repository
from app.jobs.queue import InProcessTaskQueue, TaskQueue
from app.models.audio import DEFAULT_AUDIO_FORMAT, AudioFormat
from app.models.job import AudioQuality, JobStatus, ProcessingPriority, TranslationJob
from app.services.assemblyai_client import AssemblyAIClient
from app.services.audio_processing import FFmpegAudioProcessor
from app.services.pipeline import ORIGINALS_DIR, PROGRESS_QUEUED, TranslationPipeline
from app.services.speech_synthesis import GoogleTextToSpeechClient
from app.services.translation import GoogleGenAITranslationProvider
from app.services.validation import AudioValidationService
from app.storage import ContentStore, create_content_store

logger = logging.getLogger(__name__)

CALCULATING = "Calculating..."
MIN_LANGUAGE_LENGTH = 2
MAX_LANGUAGE_LENGTH = 5


class AudioValidationError(Exception):
    """Raised when an upload is rejected; carries every violated rule."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class TooManyActiveJobsError(Exception):
    """Raised when the number of unfinished jobs is at the configured limit."""

    pass


class JobNotRetryableError(Exception):
    """Raised when retrying a job that is not failed or is out of retries."""

    pass


class JobResult(BaseModel):
    """Outcome of a result query; audio fields are set only when completed."""

    job_id: str
    status: JobStatus
    progress: int
    is_completed: bool
    audio: bytes | None = None
    content_type: str | None = None
    filename: str | None = None
    size: int | None = None


def format_duration(seconds: float) -> str:
    """Format a duration by magnitude (seconds, minutes or hours)."""
    whole = int(seconds)
    if whole < 60:
        return f"{whole} seconds"
    if whole < 3600:
        return f"{whole // 60} minutes"
    return f"{whole // 3600} hours"


def estimate_completion_time(duration_seconds: float) -> str:
    """Rough end-to-end estimate: three times the audio length plus fixed overhead."""
    return format_duration(int(duration_seconds * 3) + 30)


def estimate_time_remaining(job: TranslationJob, now: datetime | None = None) -> str | None:
    """Extrapolate remaining time from elapsed time and progress.

    Returns None for finished jobs and a "calculating" marker when
    processing has not started.
    """
    if job.is_terminal:
        return None
    if job.started_at is None:
        return CALCULATING

    elapsed = ((now or datetime.now(UTC)) - job.started_at).total_seconds()
    progress = max(job.progress, 1)
    remaining = max(0.0, elapsed * (100 / progress) - elapsed)
    return format_duration(remaining)


class TranslationJobService:
    """Entry point used by the API for everything job related."""

    def __init__(
        self,
        repository: JobRepository,
        content_store: ContentStore,
        validator: AudioValidationService,
        queue: TaskQueue,
        pipeline: TranslationPipeline,
        settings: Settings | None = None,
    ):
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self.repository = repository
        self.content_store = content_store
        self.validator = validator
        self.queue = queue
        self.pipeline = pipeline

    async def start(self) -> None:
        """Initialize the content store, reschedule queued jobs and start the workers.

        Jobs left queued by a previous process (or returned to the queue
        when a run was interrupted) are submitted again, oldest first.
        """
        if not await self.content_store.initialize():
            logger.warning("Content store initialization failed - storage operations will not work")
        queued = await self.repository.list_by_status(JobStatus.QUEUED)
        for job in queued:
            await self.queue.submit(job.id, job.priority)
        if queued:
            logger.info("Rescheduled %d queued job(s)", len(queued))
        await self.queue.start()

    async def stop(self) -> None:
        await self.queue.stop()
        await self.content_store.close()

    async def submit(
        self,
        data: bytes,
        filename: str,
        content_type: str | None,
        source_language: str,
        target_language: str,
        user_id: str | None = None,
        quality: AudioQuality = AudioQuality.STANDARD,
        priority: ProcessingPriority = ProcessingPriority.NORMAL,
    ) -> TranslationJob:
        """Validate an upload, create a queued job and schedule it.

        Args:
            data: Uploaded audio bytes
            filename: Client-supplied file name
            content_type: Declared MIME type
            source_language: Source language code (2-5 characters)
            target_language: Target language code (2-5 characters)
            user_id: Optional owner id
            quality: Synthesis quality tier
            priority: Scheduling priority

        Returns:
            The created job

        Raises:
            TooManyActiveJobsError: If the active job limit is reached
            AudioValidationError: If the upload or languages are invalid
        """
        active_count = await self.repository.count_active()
        if active_count >= self._settings.max_active_jobs:
            logger.warning(
                "Active job limit reached: %d/%d", active_count, self._settings.max_active_jobs
            )
            raise TooManyActiveJobsError(
                f"Maximum active jobs limit reached ({self._settings.max_active_jobs}). "
                "Please try again later."
            )

        errors = [
            f"{label} must be {MIN_LANGUAGE_LENGTH}-{MAX_LANGUAGE_LENGTH} characters"
            for label, value in (
                ("Source language", source_language),
                ("Target language", target_language),
            )
            if not MIN_LANGUAGE_LENGTH <= len(value.strip()) <= MAX_LANGUAGE_LENGTH
        ]
        validation = await self.validator.validate(data, filename, content_type)
        errors.extend(validation.errors)
        if errors or validation.metadata is None:
            raise AudioValidationError(errors or ["Could not read audio metadata"])

        metadata = validation.metadata
        job = TranslationJob.create(
            source_language=source_language.strip().lower(),
            target_language=target_language.strip().lower(),
            original_filename=filename,
            original_file_size=len(data),
            original_duration=metadata.duration,
            input_format=metadata.format,
            user_id=user_id,
            quality=quality,
            priority=priority,
            output_format=AudioFormat(self._settings.default_output_format),
            ttl=timedelta(hours=self._settings.job_ttl_hours),
        )

        path = await self.content_store.save(
            data, f"{job.id}_original{job.input_format.extension}", ORIGINALS_DIR
        )
        job.set_file_paths(original_audio_path=path)
        job.update_status(JobStatus.QUEUED, PROGRESS_QUEUED, "Queued for processing")
        await self.repository.create(job)
        await self.queue.submit(job.id, job.priority)

        logger.info(
            "Created job %s (%s, %d bytes, %.1fs, %s -> %s)",
            job.id,
            job.input_format.value,
            job.original_file_size,
            job.original_duration,
            job.source_language,
            job.target_language,
        )
        return job

    async def get_status(self, job_id: str) -> TranslationJob | None:
        """Load a job, marking it expired first if its TTL elapsed before completion."""
        job = await self.repository.get(job_id)
        if job is None:
            return None
        if job.is_expired() and job.status not in (JobStatus.COMPLETED, JobStatus.EXPIRED):
            job.update_status(JobStatus.EXPIRED, current_step="Expired")
            await self.repository.update(job)
            logger.info("Job %s expired", job_id)
        return job

    async def get_result(self, job_id: str) -> JobResult | None:
        """Load the final audio of a completed job.

        Returns:
            None if the job does not exist; a result without audio if it is
            not completed
        """
        job = await self.get_status(job_id)
        if job is None:
            return None

        result = JobResult(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            is_completed=job.status == JobStatus.COMPLETED,
        )
        if not result.is_completed or not job.translated_audio_path:
            return result

        audio = await self.content_store.load(job.translated_audio_path)
        extension = PurePath(job.translated_audio_path).suffix.lower()
        audio_format = AudioFormat.from_extension(extension) or DEFAULT_AUDIO_FORMAT
        result.audio = audio
        result.content_type = audio_format.content_type
        result.filename = f"{job.id}_translated{extension or audio_format.extension}"
        result.size = len(audio)
        return result

    async def cancel(self, job_id: str) -> bool:
        return await self.pipeline.cancel_job(job_id)

    async def retry(self, job_id: str) -> TranslationJob | None:
        """Re-queue a failed job.

        Returns:
            The reset job, or None if the job does not exist

        Raises:
            JobNotRetryableError: If the job is not failed or has no retries left
        """
        job = await self.repository.get(job_id)
        if job is None:
            return None

        reset = await self.pipeline.reset_failed_job(job_id)
        if reset is None:
            raise JobNotRetryableError(
                f"Job '{job_id}' cannot be retried "
                f"(status={job.status.value}, retry_count={job.retry_count})"
            )
        await self.queue.submit(reset.id, reset.priority)
        return reset

    async def list_user_jobs(self, user_id: str, limit: int = 50) -> list[TranslationJob]:
        return await self.repository.list_by_user(user_id, limit=limit)

    async def statistics(self) -> dict[str, int]:
        counts = await self.repository.count_by_status()
        return {status.value: count for status, count in counts.items()}


def build_job_service(settings: Settings | None = None) -> TranslationJobService:
    """Wire the production providers, storage and queue into a job service."""
    if settings is None:
        settings = get_settings()

    repository = job_repository
    content_store = create_content_store(settings)
    audio_processor = FFmpegAudioProcessor(settings)
    pipeline = TranslationPipeline(
        repository=repository,
        content_store=content_store,
        audio_processor=audio_processor,
        transcriber=AssemblyAIClient(settings),
        translator=GoogleGenAITranslationProvider(settings),
        synthesizer=GoogleTextToSpeechClient(settings),
        settings=settings,
    )
    return TranslationJobService(
        repository=repository,
        content_store=content_store,
        validator=AudioValidationService(audio_processor, settings),
        queue=InProcessTaskQueue(pipeline.process_job, settings=settings),
        pipeline=pipeline,
        settings=settings,
    )
