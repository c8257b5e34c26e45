"""Pydantic schemas for API request/response validation."""

from app.schemas.translation import (
    CancelResponse,
    HealthResponse,
    TranslationJobResponse,
    TranslationJobSummary,
    TranslationNotReadyResponse,
    TranslationStatusResponse,
)

__all__ = [
    "CancelResponse",
    "HealthResponse",
    "TranslationJobResponse",
    "TranslationJobSummary",
    "TranslationNotReadyResponse",
    "TranslationStatusResponse",
]
