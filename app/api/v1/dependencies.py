"""Request dependencies shared by the v1 endpoints."""

from fastapi import Request

from app.services.job_service import TranslationJobService


def get_job_service(request: Request) -> TranslationJobService:
    """Job service attached to the application by create_app()."""
    return request.app.state.job_service
