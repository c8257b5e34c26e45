"""Pydantic schemas for the audio translation API."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.job import AudioQuality, JobStatus, ProcessingPriority


class TranslationJobResponse(BaseModel):
    """Response model for job submission."""

    job_id: str = Field(..., description="Unique job identifier")
    status: JobStatus = Field(..., description="Initial job status")
    created_at: datetime = Field(..., description="Job creation timestamp")
    estimated_completion_time: str = Field(
        ..., description="Rough processing time estimate (e.g. '45 seconds', '2 minutes')"
    )


class TranslationStatusResponse(BaseModel):
    """Response model for job status queries."""

    job_id: str = Field(..., description="Unique job identifier")
    status: JobStatus = Field(..., description="Current job status")
    progress: int = Field(..., description="Progress percentage (0-100)", ge=0, le=100)
    current_step: str | None = Field(None, description="Human readable processing step")
    error_message: str | None = Field(None, description="Error message if the job failed")
    source_language: str = Field(..., description="Source language code")
    target_language: str = Field(..., description="Target language code")
    quality: AudioQuality = Field(..., description="Synthesis quality tier")
    priority: ProcessingPriority = Field(..., description="Scheduling priority")
    retry_count: int = Field(..., description="Number of failed attempts")
    can_retry: bool = Field(..., description="Whether the job can be retried")
    created_at: datetime = Field(..., description="Job creation timestamp")
    started_at: datetime | None = Field(None, description="Processing start timestamp")
    completed_at: datetime | None = Field(None, description="Job completion timestamp")
    expires_at: datetime = Field(..., description="Job expiration timestamp")
    estimated_time_remaining: str | None = Field(
        None, description="Remaining time estimate while processing"
    )
    download_available: bool = Field(..., description="Whether translated audio can be downloaded")


class TranslationNotReadyResponse(BaseModel):
    """Returned by the download endpoint before the job has completed."""

    job_id: str
    status: JobStatus
    progress: int
    detail: str = "Translated audio is not ready yet"


class TranslationJobSummary(BaseModel):
    """Entry in a user's job list."""

    job_id: str
    status: JobStatus
    progress: int
    original_filename: str
    source_language: str
    target_language: str
    created_at: datetime
    completed_at: datetime | None = None


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    service: str
    status: str
    version: str
    components: dict[str, dict[str, str]] = Field(default_factory=dict)
    jobs: dict[str, int] = Field(default_factory=dict)
    endpoints: dict[str, list[str]] = Field(default_factory=dict)
