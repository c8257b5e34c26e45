"""Content store contract."""

from abc import ABC, abstractmethod
from datetime import timedelta


class ContentNotFoundError(Exception):
    """Raised when loading a path that does not exist."""

    pass


class InvalidContentPathError(Exception):
    """Raised when a logical path escapes the store or is malformed."""

    pass


class ContentStore(ABC):
    """Blob storage keyed by logical ``directory/filename`` paths.

    Implementations must be safe for concurrent use by independent jobs.
    """

    @abstractmethod
    async def save(self, data: bytes, filename: str, directory: str) -> str:
        """Persist ``data`` and return its logical path."""

    @abstractmethod
    async def load(self, path: str) -> bytes:
        """Load a blob.

        Raises:
            ContentNotFoundError: If nothing is stored at ``path``
        """

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete a blob; returns False when it did not exist."""

    @abstractmethod
    async def exists(self, path: str) -> bool: ...

    @abstractmethod
    async def cleanup_expired(self, max_age: timedelta) -> int:
        """Delete blobs older than ``max_age``; returns how many were removed."""

    async def initialize(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def test_connectivity(self) -> bool:
        return True

    async def save_text(self, text: str, filename: str, directory: str) -> str:
        return await self.save(text.encode("utf-8"), filename, directory)

    async def load_text(self, path: str) -> str:
        return (await self.load(path)).decode("utf-8")
