"""Health check endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from app.api.v1.dependencies import get_job_service
from app.core.config import Settings, get_settings
from app.schemas import HealthResponse
from app.services.job_service import TranslationJobService

router = APIRouter()


def _component(ok: bool, healthy_message: str, unhealthy_message: str) -> dict[str, str]:
    return {
        "status": "healthy" if ok else "unhealthy",
        "message": healthy_message if ok else unhealthy_message,
    }


@router.get("/", response_model=HealthResponse)
@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    service: Annotated[TranslationJobService, Depends(get_job_service)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Health check endpoint with detailed component tests.

    Tests the database, the content store, the ffmpeg installation and the
    transcription, translation and speech synthesis providers.
    Returns 503 status code when any component is unhealthy (degraded state).

    Args:
        response: FastAPI Response object for setting status code

    Returns:
        HealthResponse: Service health status with component details
    """
    database_ok = await service.repository.ping()
    storage_ok = await service.content_store.test_connectivity()
    ffmpeg_ok = await service.validator.audio_processor.check_installation()
    transcription_ok = await service.pipeline.transcriber.test_connectivity()
    translation_ok = await service.pipeline.translator.test_connectivity()
    synthesis_ok = await service.pipeline.synthesizer.test_connectivity()

    components = {
        "database": _component(database_ok, "Connection OK", "Database connection failed"),
        "content_store": _component(
            storage_ok, f"{settings.storage_backend} storage accessible", "Storage not accessible"
        ),
        "ffmpeg": _component(ffmpeg_ok, "ffmpeg and ffprobe available", "ffmpeg not found"),
        "transcription": _component(
            transcription_ok, "API key valid, connection OK", "API connection failed"
        ),
        "translation": _component(translation_ok, "API key configured", "API key missing"),
        "speech_synthesis": _component(synthesis_ok, "API key configured", "API key missing"),
    }

    all_healthy = all(
        (database_ok, storage_ok, ffmpeg_ok, transcription_ok, translation_ok, synthesis_ok)
    )
    status = "running" if all_healthy else "degraded"

    # Set 503 status code if any component is degraded
    if not all_healthy:
        response.status_code = 503

    jobs = await service.statistics() if database_ok else {}

    endpoints = {
        "translations": [
            "POST /api/v1/translations - Upload audio and create translation job",
            "GET /api/v1/translations/{job_id}/status - Get job status and progress",
            "GET /api/v1/translations/{job_id}/download - Download translated audio",
            "POST /api/v1/translations/{job_id}/cancel - Cancel an unfinished job",
            "POST /api/v1/translations/{job_id}/retry - Retry a failed job",
            "GET /api/v1/users/{user_id}/translations - List a user's jobs",
        ],
        "health": [
            "GET /api/v1/health - Service health check with component status",
        ],
    }

    return HealthResponse(
        service=settings.app_name,
        status=status,
        version=settings.app_version,
        components=components,
        jobs=jobs,
        endpoints=endpoints,
    )
