"""Tests for job submission, status, result, cancel and retry."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from app.jobs.queue import InProcessTaskQueue
from app.models.audio import AudioFormat
from app.models.job import AudioQuality, JobStatus, ProcessingPriority, TranslationJob
from app.services.job_service import (
    CALCULATING,
    AudioValidationError,
    JobNotRetryableError,
    TooManyActiveJobsError,
    TranslationJobService,
    estimate_completion_time,
    estimate_time_remaining,
    format_duration,
)
from app.services.pipeline import PipelineError
from tests.conftest import make_wav


async def submit(job_service, **overrides):
    values = {
        "data": make_wav(1.0),
        "filename": "entrevista.wav",
        "content_type": "audio/wav",
        "source_language": "es",
        "target_language": "en",
    }
    values.update(overrides)
    return await job_service.submit(**values)


class TestEstimates:
    def test_format_duration(self):
        assert format_duration(45) == "45 seconds"
        assert format_duration(150) == "2 minutes"
        assert format_duration(7200) == "2 hours"

    def test_estimate_completion_time(self):
        assert estimate_completion_time(5.0) == "45 seconds"
        assert estimate_completion_time(60.0) == "3 minutes"

    def test_estimate_time_remaining(self):
        job = TranslationJob.create(
            source_language="es",
            target_language="en",
            original_filename="a.wav",
            original_file_size=1,
            original_duration=1.0,
            input_format=AudioFormat.WAV,
        )
        assert estimate_time_remaining(job) == CALCULATING

        started = datetime.now(UTC)
        job.update_status(JobStatus.PROCESSING_TRANSLATION, 50, now=started)
        assert estimate_time_remaining(job, started + timedelta(seconds=30)) == "30 seconds"

        job.update_status(JobStatus.COMPLETED)
        assert estimate_time_remaining(job) is None


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_creates_queued_job(self, job_service, repository, content_store):
        job = await submit(
            job_service,
            user_id="user-1",
            quality=AudioQuality.HIGH,
            priority=ProcessingPriority.HIGH,
        )

        stored = await repository.get(job.id)
        assert stored.status == JobStatus.QUEUED
        assert stored.progress == 10
        assert stored.current_step == "Queued for processing"
        assert stored.user_id == "user-1"
        assert stored.quality == AudioQuality.HIGH
        assert stored.input_format == AudioFormat.WAV
        assert stored.original_duration == 5.0
        assert await content_store.load(stored.original_audio_path) == make_wav(1.0)
        assert job_service.queue.pending_count == 1

    @pytest.mark.asyncio
    async def test_languages_are_normalized(self, job_service):
        job = await submit(job_service, source_language=" ES ", target_language="En")

        assert job.source_language == "es"
        assert job.target_language == "en"

    @pytest.mark.asyncio
    async def test_invalid_language_and_upload_errors_are_combined(self, job_service, repository):
        with pytest.raises(AudioValidationError) as exc_info:
            await submit(job_service, source_language="x", content_type="text/plain")

        assert len(exc_info.value.errors) == 2
        assert "Source language must be 2-5 characters" in exc_info.value.errors
        assert await repository.count_active() == 0

    @pytest.mark.asyncio
    async def test_empty_upload(self, job_service):
        with pytest.raises(AudioValidationError, match="File is empty"):
            await submit(job_service, data=b"")

    @pytest.mark.asyncio
    async def test_active_job_limit(self, job_service, test_settings):
        for _ in range(test_settings.max_active_jobs):
            await submit(job_service)

        with pytest.raises(TooManyActiveJobsError):
            await submit(job_service)


class TestStatusAndResult:
    @pytest.mark.asyncio
    async def test_result_of_completed_job(self, job_service, pipeline, fake_synthesizer):
        job = await submit(job_service)
        await pipeline.process_job(job.id)

        result = await job_service.get_result(job.id)

        assert result.is_completed
        assert result.status == JobStatus.COMPLETED
        assert result.audio == fake_synthesizer.audio
        assert result.content_type == "audio/wav"
        assert result.filename == f"{job.id}_translated.wav"
        assert result.size == len(fake_synthesizer.audio)

    @pytest.mark.asyncio
    async def test_result_of_unfinished_job(self, job_service):
        job = await submit(job_service)

        result = await job_service.get_result(job.id)

        assert not result.is_completed
        assert result.status == JobStatus.QUEUED
        assert result.progress == 10
        assert result.audio is None

    @pytest.mark.asyncio
    async def test_unknown_job(self, job_service):
        assert await job_service.get_status("missing") is None
        assert await job_service.get_result("missing") is None

    @pytest.mark.asyncio
    async def test_status_marks_overdue_job_expired(self, job_service, repository):
        job = await submit(job_service)
        stored = await repository.get(job.id)
        stored.expires_at = datetime.now(UTC) - timedelta(seconds=1)
        await repository.update(stored)

        status = await job_service.get_status(job.id)

        assert status.status == JobStatus.EXPIRED
        assert (await repository.get(job.id)).status == JobStatus.EXPIRED


class TestCancelAndRetry:
    @pytest.mark.asyncio
    async def test_cancel(self, job_service):
        job = await submit(job_service)

        assert await job_service.cancel(job.id) is True
        assert (await job_service.get_status(job.id)).status == JobStatus.CANCELLED
        assert await job_service.cancel(job.id) is False

    @pytest.mark.asyncio
    async def test_retry_failed_job(self, job_service, pipeline, fake_transcriber):
        fake_transcriber.should_fail = True
        job = await submit(job_service)
        with pytest.raises(PipelineError):
            await pipeline.process_job(job.id)

        reset = await job_service.retry(job.id)

        assert reset.status == JobStatus.QUEUED
        assert reset.retry_count == 1
        assert reset.current_step == "Queued for retry"

    @pytest.mark.asyncio
    async def test_retry_not_failed(self, job_service):
        job = await submit(job_service)

        with pytest.raises(JobNotRetryableError):
            await job_service.retry(job.id)

    @pytest.mark.asyncio
    async def test_retry_unknown(self, job_service):
        assert await job_service.retry("missing") is None


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_user_jobs(self, job_service):
        first = await submit(job_service, user_id="user-1")
        await asyncio.sleep(0.01)
        second = await submit(job_service, user_id="user-1")
        await submit(job_service, user_id="user-2")

        jobs = await job_service.list_user_jobs("user-1")

        assert [j.id for j in jobs] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_statistics(self, job_service):
        job = await submit(job_service)
        await submit(job_service)
        await job_service.cancel(job.id)

        stats = await job_service.statistics()

        assert stats["queued"] == 1
        assert stats["cancelled"] == 1
        assert stats["completed"] == 0


class TestWorkers:
    @pytest.mark.asyncio
    async def test_started_service_processes_submissions(self, job_service):
        await job_service.start()
        try:
            job = await submit(job_service)
            await asyncio.wait_for(job_service.queue.join(), timeout=5)
        finally:
            await job_service.stop()

        assert (await job_service.get_status(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_mid_step_returns_job_to_queue(self, job_service, fake_transcriber):
        transcribing = asyncio.Event()
        original_transcribe = fake_transcriber.transcribe

        async def hanging_transcribe(audio, audio_format, language):
            transcribing.set()
            await asyncio.Event().wait()

        fake_transcriber.transcribe = hanging_transcribe
        await job_service.start()
        try:
            job = await submit(job_service)
            await asyncio.wait_for(transcribing.wait(), timeout=5)
        finally:
            await job_service.stop()

        interrupted = await job_service.get_status(job.id)
        assert interrupted.status == JobStatus.QUEUED
        assert interrupted.progress == 10
        assert interrupted.error_message is None
        assert interrupted.retry_count == 0

        fake_transcriber.transcribe = original_transcribe
        await job_service.start()
        try:
            await asyncio.wait_for(job_service.queue.join(), timeout=5)
        finally:
            await job_service.stop()

        assert (await job_service.get_status(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_start_reschedules_jobs_queued_by_earlier_process(
        self, job_service, repository, content_store, pipeline, test_settings
    ):
        first = await submit(job_service)
        second = await submit(job_service, priority=ProcessingPriority.HIGH)

        restarted = TranslationJobService(
            repository=repository,
            content_store=content_store,
            validator=job_service.validator,
            queue=InProcessTaskQueue(pipeline.process_job, worker_count=1),
            pipeline=pipeline,
            settings=test_settings,
        )
        await restarted.start()
        try:
            await asyncio.wait_for(restarted.queue.join(), timeout=5)
        finally:
            await restarted.stop()

        for job in (first, second):
            assert (await repository.get(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_start_skips_jobs_that_are_not_queued(
        self, job_service, repository, fake_transcriber
    ):
        job = await submit(job_service)
        await job_service.cancel(job.id)

        await job_service.start()
        try:
            await asyncio.wait_for(job_service.queue.join(), timeout=5)
        finally:
            await job_service.stop()

        assert (await repository.get(job.id)).status == JobStatus.CANCELLED
        assert fake_transcriber.calls == []
