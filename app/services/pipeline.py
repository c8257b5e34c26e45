"""Pipeline orchestrator: drives a job through its processing steps.

A run goes Validating -> ProcessingSpeechToText (prepare, transcribe) ->
ProcessingTranslation -> ProcessingTextToSpeech -> Completed. The
repository is the source of truth: every mutation reloads the job, applies
the change and writes it back immediately, so a cancellation or expiry
recorded by another caller is seen at the next step boundary and stops
the run without being overwritten.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
import logging
import traceback
from typing import TypeVar

from app.core.config import Settings, get_settings
from app.db.repository import JobRepository
from app.models.audio import AudioFormat
from app.models.job import JobStatus, TranslationJob
from app.services.audio_processing import FFmpegAudioProcessor
from app.services.contracts import (
    SpeechSynthesisError,
    SpeechSynthesisProvider,
    TranscriptionProvider,
    TranslationError,
    TranslationProvider,
)
from app.storage.base import ContentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORIGINALS_DIR = "originals"
CONVERTED_DIR = "converted"
TRANSCRIPTS_DIR = "transcripts"
TRANSLATED_AUDIO_DIR = "translated_audio"

PROGRESS_QUEUED = 10
PROGRESS_VALIDATING = 15
PROGRESS_PREPARING = 25
PROGRESS_TRANSCRIBING = 40
PROGRESS_TRANSLATING = 60
PROGRESS_SYNTHESIZING = 80


class PipelineError(Exception):
    """A job run failed; the job has been marked failed (best effort)."""

    def __init__(self, job_id: str, message: str):
        super().__init__(f"Job {job_id} failed: {message}")
        self.job_id = job_id


class NoSpeechDetectedError(Exception):
    """Transcription succeeded but produced no text."""

    pass


class StepTimeoutError(Exception):
    """An external call exceeded the configured timeout."""

    pass


class JobInterruptedError(Exception):
    """The job was cancelled, expired or deleted while a run was in progress."""

    def __init__(self, job_id: str, status: JobStatus | None):
        reason = status.value if status is not None else "deleted"
        super().__init__(f"Job {job_id} is {reason}")
        self.job_id = job_id
        self.status = status


class TranslationPipeline:
    """Sequence probe, conversion and the three providers for one job at a time."""

    def __init__(
        self,
        repository: JobRepository,
        content_store: ContentStore,
        audio_processor: FFmpegAudioProcessor,
        transcriber: TranscriptionProvider,
        translator: TranslationProvider,
        synthesizer: SpeechSynthesisProvider,
        settings: Settings | None = None,
    ):
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self.repository = repository
        self.content_store = content_store
        self.audio_processor = audio_processor
        self.transcriber = transcriber
        self.translator = translator
        self.synthesizer = synthesizer

    async def process_job(self, job_id: str) -> None:
        """Run the full pipeline for a queued job.

        No-ops when the job is missing or not ``QUEUED``; marks the job
        ``EXPIRED`` instead of processing when its TTL has elapsed.

        Args:
            job_id: Job ID

        Raises:
            PipelineError: If a step fails (the job is marked failed first)
        """
        job = await self.repository.get(job_id)
        if job is None:
            logger.warning("Job %s not found, nothing to process", job_id)
            return
        if job.status != JobStatus.QUEUED:
            logger.info("Skipping job %s: status is %s, not queued", job_id, job.status.value)
            return
        if job.is_expired():
            job.update_status(JobStatus.EXPIRED, current_step="Expired before processing")
            await self.repository.update(job)
            logger.info("Job %s expired before processing started", job_id)
            return

        logger.info(
            "Processing job %s (%s -> %s, attempt %d)",
            job_id,
            job.source_language,
            job.target_language,
            job.retry_count + 1,
        )
        try:
            await self._mutate(
                job_id,
                lambda j: j.update_status(
                    JobStatus.VALIDATING, PROGRESS_VALIDATING, "Validating job"
                ),
            )
            await self._prepare_audio(job_id)
            await self._speech_to_text(job_id)
            await self._translate(job_id)
            await self._text_to_speech(job_id)
            job = await self._mutate(
                job_id, lambda j: j.update_status(JobStatus.COMPLETED, 100, "Completed")
            )
        except JobInterruptedError as e:
            logger.info("Stopped processing: %s", e)
            return
        except asyncio.CancelledError:
            logger.warning("Run of job %s was cancelled, returning it to the queue", job_id)
            await self._requeue_interrupted(job_id)
            raise
        except Exception as e:
            logger.error("Job %s failed: %s", job_id, e, exc_info=True)
            await self._record_failure(job_id, e)
            raise PipelineError(job_id, str(e)) from e

        logger.info(
            "Job %s completed in %.1fs (%s bytes of audio)",
            job_id,
            job.processing_duration or 0.0,
            job.output_file_size,
        )

    async def _mutate(
        self, job_id: str, change: Callable[[TranslationJob], None]
    ) -> TranslationJob:
        """Reload the job, apply ``change`` and persist it.

        Raises:
            JobInterruptedError: If the job is gone or already terminal
        """
        job = await self.repository.get(job_id)
        if job is None:
            raise JobInterruptedError(job_id, None)
        if job.is_terminal:
            raise JobInterruptedError(job_id, job.status)
        change(job)
        await self.repository.update(job)
        logger.debug(
            "Job %s: %s (%d%%) %s", job_id, job.status.value, job.progress, job.current_step
        )
        return job

    async def _external(self, call: Awaitable[T], description: str) -> T:
        """Await an external call under the provider timeout."""
        timeout = self._settings.provider_timeout
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as e:
            raise StepTimeoutError(f"{description} timed out after {timeout}s") from e

    async def _prepare_audio(self, job_id: str) -> None:
        job = await self._mutate(
            job_id,
            lambda j: j.update_status(
                JobStatus.PROCESSING_SPEECH_TO_TEXT, PROGRESS_PREPARING, "Preparing audio"
            ),
        )
        if not job.original_audio_path:
            raise ValueError("Job has no original audio")

        original = await self.content_store.load(job.original_audio_path)
        converted = await self._external(
            self.audio_processor.convert_for_transcription(original, job.input_format),
            "Audio conversion",
        )
        normalized = await self._external(
            self.audio_processor.normalize(converted, AudioFormat.WAV), "Audio normalization"
        )
        path = await self.content_store.save(
            normalized, f"{job.id}_prepared.wav", CONVERTED_DIR
        )
        await self._mutate(job_id, lambda j: j.set_file_paths(translated_audio_path=path))

    async def _speech_to_text(self, job_id: str) -> None:
        job = await self._mutate(
            job_id,
            lambda j: j.update_status(
                JobStatus.PROCESSING_SPEECH_TO_TEXT, PROGRESS_TRANSCRIBING, "Transcribing audio"
            ),
        )
        if job.translated_audio_path:
            audio_path, audio_format = job.translated_audio_path, AudioFormat.WAV
        else:
            audio_path, audio_format = job.original_audio_path, job.input_format
        if not audio_path:
            raise ValueError("Job has no audio to transcribe")

        audio = await self.content_store.load(audio_path)
        result = await self._external(
            self.transcriber.transcribe(audio, audio_format, job.source_language),
            "Transcription",
        )
        if not result.text.strip():
            raise NoSpeechDetectedError("No audible speech detected in the audio")

        logger.info(
            "Job %s transcribed %d characters (confidence %.2f)",
            job_id,
            len(result.text),
            result.confidence,
        )
        path = await self.content_store.save_text(
            result.text, f"{job.id}_transcript.txt", TRANSCRIPTS_DIR
        )
        await self._mutate(job_id, lambda j: j.set_file_paths(transcript_text_path=path))

    async def _translate(self, job_id: str) -> None:
        job = await self._mutate(
            job_id,
            lambda j: j.update_status(
                JobStatus.PROCESSING_TRANSLATION, PROGRESS_TRANSLATING, "Translating text"
            ),
        )
        if not job.transcript_text_path:
            raise ValueError("Job has no transcript")

        transcript = await self.content_store.load_text(job.transcript_text_path)
        result = await self._external(
            self.translator.translate(transcript, job.source_language, job.target_language),
            "Translation",
        )
        if not result.text.strip():
            raise TranslationError("Translation returned empty text")

        path = await self.content_store.save_text(
            result.text, f"{job.id}_translated.txt", TRANSCRIPTS_DIR
        )
        await self._mutate(job_id, lambda j: j.set_file_paths(translated_text_path=path))

    async def _text_to_speech(self, job_id: str) -> None:
        job = await self._mutate(
            job_id,
            lambda j: j.update_status(
                JobStatus.PROCESSING_TEXT_TO_SPEECH, PROGRESS_SYNTHESIZING, "Synthesizing speech"
            ),
        )
        if not job.translated_text_path:
            raise ValueError("Job has no translated text")

        text = await self.content_store.load_text(job.translated_text_path)
        result = await self._external(
            self.synthesizer.synthesize(text, job.target_language, job.quality),
            "Speech synthesis",
        )
        if not result.audio:
            raise SpeechSynthesisError("Speech synthesis returned empty audio")

        audio = result.audio
        if result.format != job.output_format:
            audio = await self._external(
                self.audio_processor.convert(audio, result.format, job.output_format),
                "Output conversion",
            )

        path = await self.content_store.save(
            audio, f"{job.id}_final{job.output_format.extension}", TRANSLATED_AUDIO_DIR
        )

        def record_output(j: TranslationJob) -> None:
            j.set_file_paths(translated_audio_path=path)
            j.output_file_size = len(audio)

        await self._mutate(job_id, record_output)

    async def _requeue_interrupted(self, job_id: str) -> None:
        """Put a job whose run was cancelled mid-step back to ``QUEUED``.

        The job is picked up again by the next ``TranslationJobService.start``.
        """
        try:
            job = await self.repository.get(job_id)
            if job is None or job.is_terminal:
                return
            job.update_status(
                JobStatus.QUEUED, PROGRESS_QUEUED, "Requeued after interrupted run"
            )
            await self.repository.update(job)
        except Exception as e:
            logger.error("Could not requeue interrupted job %s: %s", job_id, e, exc_info=True)

    async def _record_failure(self, job_id: str, error: Exception) -> None:
        """Mark the job failed and bump its retry count, unless it is already terminal."""
        try:
            job = await self.repository.get(job_id)
            if job is None or job.is_terminal:
                return
            job.set_error(
                f"Processing failed: {error}",
                "".join(traceback.format_exception(error)),
            )
            job.increment_retry()
            await self.repository.update(job)
        except Exception as e:
            logger.error("Could not record failure for job %s: %s", job_id, e, exc_info=True)

    async def reset_failed_job(self, job_id: str) -> TranslationJob | None:
        """Move a retryable failed job back to ``QUEUED``.

        Returns:
            The reset job, or None when the job is missing or cannot be retried
        """
        job = await self.repository.get(job_id)
        if job is None or not job.can_be_retried(self._settings.max_retry_count):
            return None
        job.reset_for_retry()
        await self.repository.update(job)
        logger.info("Job %s reset for retry (retry_count=%d)", job_id, job.retry_count)
        return job

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a job that has not finished.

        Artifacts already written are left for the cleanup routines.

        Returns:
            True if the job existed and was cancellable
        """
        job = await self.repository.get(job_id)
        if job is None or not job.cancel():
            return False
        await self.repository.update(job)
        logger.info("Job %s cancelled", job_id)
        return True

    async def _delete_artifacts(self, job: TranslationJob) -> int:
        deleted = 0
        for path in job.artifact_paths():
            try:
                if await self.content_store.delete(path):
                    deleted += 1
            except Exception as e:
                logger.warning("Failed to delete %s for job %s: %s", path, job.id, e)
        return deleted

    async def cleanup_expired_jobs(self, now: datetime | None = None) -> int:
        """Mark every job past its TTL as expired and delete its artifacts.

        A failure on one file or job is logged and the sweep continues.

        Returns:
            Number of jobs marked expired
        """
        expired_jobs = await self.repository.list_expired(now)
        if not expired_jobs:
            return 0

        logger.info("Expiring %d job(s)", len(expired_jobs))
        expired = 0
        for listed in expired_jobs:
            try:
                # Reload so paths recorded since the listing are expired and deleted too
                job = await self.repository.get(listed.id)
                if job is None or job.status == JobStatus.EXPIRED:
                    continue
                job.update_status(JobStatus.EXPIRED, current_step="Expired")
                await self.repository.update(job)
                expired += 1
            except Exception as e:
                logger.error("Failed to expire job %s: %s", listed.id, e, exc_info=True)
                continue
            await self._delete_artifacts(job)
        return expired

    async def purge_finished_jobs(self, retention: timedelta, now: datetime | None = None) -> int:
        """Delete terminal jobs older than ``retention`` together with their artifacts.

        Returns:
            Number of jobs removed
        """
        cutoff = (now or datetime.now(UTC)) - retention
        purged = 0
        for job in await self.repository.list_terminal_before(cutoff):
            try:
                await self._delete_artifacts(job)
                if await self.repository.delete(job.id):
                    purged += 1
            except Exception as e:
                logger.error("Failed to purge job %s: %s", job.id, e, exc_info=True)
        if purged:
            logger.info("Purged %d finished job(s) older than %s", purged, retention)
        return purged
