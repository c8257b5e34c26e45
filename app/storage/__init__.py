"""Content store backends."""

from app.core.config import Settings, get_settings
from app.storage.base import ContentNotFoundError, ContentStore, InvalidContentPathError
from app.storage.local import LocalContentStore


def create_content_store(settings: Settings | None = None) -> ContentStore:
    """Build the content store selected by ``settings.storage_backend``.

    Raises:
        ValueError: If the backend name is unknown
    """
    if settings is None:
        settings = get_settings()

    backend = settings.storage_backend.lower()
    if backend == "local":
        return LocalContentStore(settings=settings)
    if backend == "s3":
        # aioboto3 is only imported when the S3 backend is selected
        from app.storage.s3 import S3ContentStore

        return S3ContentStore(settings=settings)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "ContentStore",
    "ContentNotFoundError",
    "InvalidContentPathError",
    "LocalContentStore",
    "create_content_store",
]
