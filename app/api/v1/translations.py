"""Audio translation job endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from fastapi.responses import JSONResponse

from app.api.v1.dependencies import get_job_service
from app.core.config import Settings, get_settings
from app.models.job import AudioQuality, JobStatus, ProcessingPriority, TranslationJob
from app.schemas.translation import (
    CancelResponse,
    TranslationJobResponse,
    TranslationJobSummary,
    TranslationNotReadyResponse,
    TranslationStatusResponse,
)
from app.services.job_service import (
    AudioValidationError,
    JobNotRetryableError,
    TooManyActiveJobsError,
    TranslationJobService,
    estimate_completion_time,
    estimate_time_remaining,
)

router = APIRouter()
logger = logging.getLogger(__name__)

JobService = Annotated[TranslationJobService, Depends(get_job_service)]


def _status_response(job: TranslationJob, settings: Settings) -> TranslationStatusResponse:
    return TranslationStatusResponse(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        current_step=job.current_step,
        error_message=job.error_message,
        source_language=job.source_language,
        target_language=job.target_language,
        quality=job.quality,
        priority=job.priority,
        retry_count=job.retry_count,
        can_retry=job.can_be_retried(settings.max_retry_count),
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        expires_at=job.expires_at,
        estimated_time_remaining=estimate_time_remaining(job),
        download_available=job.status == JobStatus.COMPLETED and bool(job.translated_audio_path),
    )


def _not_found(job_id: str) -> HTTPException:
    logger.warning("Job not found: %s", job_id)
    return HTTPException(status_code=404, detail=f"Translation job '{job_id}' not found")


@router.post("/translations", response_model=TranslationJobResponse, status_code=202)
async def create_translation_job(
    service: JobService,
    file: UploadFile = File(..., description="Audio file to translate"),
    source_language: str = Form(..., min_length=2, max_length=5, description="Source language"),
    target_language: str = Form(..., min_length=2, max_length=5, description="Target language"),
    user_id: str | None = Form(None, description="Optional owner id"),
    quality: AudioQuality = Form(AudioQuality.STANDARD, description="Synthesis quality tier"),
    priority: ProcessingPriority = Form(ProcessingPriority.NORMAL, description="Job priority"),
):
    """Upload audio and create a translation job.

    The upload is validated synchronously; processing happens in the
    background. Poll the status endpoint and download when completed.

    Raises:
        HTTPException: 400 (invalid upload), 429 (too many active jobs),
            500 (server error)
    """
    data = await file.read()
    try:
        job = await service.submit(
            data=data,
            filename=file.filename or "",
            content_type=file.content_type,
            source_language=source_language,
            target_language=target_language,
            user_id=user_id,
            quality=quality,
            priority=priority,
        )
    except TooManyActiveJobsError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except AudioValidationError as e:
        raise HTTPException(
            status_code=400, detail={"message": "Invalid audio upload", "errors": e.errors}
        )
    except Exception as e:
        logger.error("Error creating translation job: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating translation job")

    return TranslationJobResponse(
        job_id=job.id,
        status=job.status,
        created_at=job.created_at,
        estimated_completion_time=estimate_completion_time(job.original_duration),
    )


@router.get("/translations/{job_id}/status", response_model=TranslationStatusResponse)
async def get_translation_status(
    job_id: str,
    service: JobService,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Get job status and progress.

    Raises:
        HTTPException: 404 if job not found
    """
    job = await service.get_status(job_id)
    if job is None:
        raise _not_found(job_id)
    return _status_response(job, settings)


@router.get(
    "/translations/{job_id}/download",
    responses={
        200: {"content": {"audio/wav": {}, "audio/mpeg": {}}},
        409: {"model": TranslationNotReadyResponse},
    },
)
async def download_translated_audio(job_id: str, service: JobService):
    """Download the translated audio.

    Returns 409 with the current status and progress while the job is
    not completed.

    Raises:
        HTTPException: 404 if job not found
    """
    result = await service.get_result(job_id)
    if result is None:
        raise _not_found(job_id)

    if not result.is_completed or result.audio is None:
        payload = TranslationNotReadyResponse(
            job_id=result.job_id, status=result.status, progress=result.progress
        )
        return JSONResponse(status_code=409, content=payload.model_dump(mode="json"))

    return Response(
        content=result.audio,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.post("/translations/{job_id}/cancel", response_model=CancelResponse)
async def cancel_translation_job(job_id: str, service: JobService):
    """Cancel a job that has not finished.

    Raises:
        HTTPException: 404 (job not found), 409 (job already finished)
    """
    if await service.cancel(job_id):
        return CancelResponse(job_id=job_id, cancelled=True)

    job = await service.get_status(job_id)
    if job is None:
        raise _not_found(job_id)
    raise HTTPException(
        status_code=409, detail=f"Job '{job_id}' cannot be cancelled (status: {job.status.value})"
    )


@router.post(
    "/translations/{job_id}/retry", response_model=TranslationStatusResponse, status_code=202
)
async def retry_translation_job(
    job_id: str,
    service: JobService,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Re-queue a failed job.

    Raises:
        HTTPException: 404 (job not found), 409 (job not retryable)
    """
    try:
        job = await service.retry(job_id)
    except JobNotRetryableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if job is None:
        raise _not_found(job_id)
    return _status_response(job, settings)


@router.get("/users/{user_id}/translations", response_model=list[TranslationJobSummary])
async def list_user_translations(
    user_id: str,
    service: JobService,
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
):
    """List a user's jobs, newest first."""
    jobs = await service.list_user_jobs(user_id, limit=limit)
    return [
        TranslationJobSummary(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            original_filename=job.original_filename,
            source_language=job.source_language,
            target_language=job.target_language,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )
        for job in jobs
    ]
