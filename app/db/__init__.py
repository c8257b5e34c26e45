"""Database package."""

from app.db.base import SessionLocal, engine, init_db
from app.db.models import TranslationJobRecord
from app.db.repository import JobAlreadyExistsError, JobNotFoundError, JobRepository

__all__ = [
    "SessionLocal",
    "engine",
    "init_db",
    "TranslationJobRecord",
    "JobRepository",
    "JobAlreadyExistsError",
    "JobNotFoundError",
]
