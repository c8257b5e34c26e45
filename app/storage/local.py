"""Local filesystem content store."""

import asyncio
from datetime import UTC, datetime, timedelta
import hashlib
import logging
from pathlib import Path
import re
from uuid import uuid4

from app.core.config import Settings, get_settings
from app.storage.base import ContentNotFoundError, ContentStore, InvalidContentPathError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_MAX_STEM_LENGTH = 50


def sanitize_directory(directory: str) -> str:
    """Reduce a directory name to a single safe path segment."""
    cleaned = _UNSAFE_CHARS.sub("_", directory.strip().strip("/\\"))
    cleaned = cleaned.strip(".")
    if not cleaned:
        raise InvalidContentPathError(f"Invalid directory name: {directory!r}")
    return cleaned


def safe_filename(filename: str) -> str:
    """Build a collision-resistant, filesystem-safe file name.

    The stem is sanitized and truncated, then suffixed with a short hash of
    the original name so distinct names never collapse onto the same file.
    """
    original = Path(filename).name
    suffix = Path(original).suffix.lower()
    stem = _UNSAFE_CHARS.sub("_", Path(original).stem)[:_MAX_STEM_LENGTH] or "file"
    digest = hashlib.sha256(filename.encode("utf-8")).hexdigest()[:8]
    return f"{stem}_{digest}{_UNSAFE_CHARS.sub('', suffix)}"


class LocalContentStore(ContentStore):
    """Content store writing blobs under a root directory.

    Blocking file operations run in worker threads via ``asyncio.to_thread``.
    Directories are created on demand and never removed, so a delete can
    not race a concurrent save into the same directory.
    """

    def __init__(self, root: str | Path | None = None, settings: Settings | None = None):
        """Initialize local store.

        Args:
            root: Root directory (uses settings.storage_root if not provided)
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        if root is None:
            if settings is None:
                settings = get_settings()
            root = settings.storage_root
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        if not path or Path(path).is_absolute():
            raise InvalidContentPathError(f"Invalid content path: {path!r}")
        full_path = (self.root / path).resolve()
        if not full_path.is_relative_to(self.root):
            raise InvalidContentPathError(f"Path escapes storage root: {path!r}")
        return full_path

    async def initialize(self) -> bool:
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        logger.info("Local content store ready at %s", self.root)
        return True

    async def save(self, data: bytes, filename: str, directory: str) -> str:
        logical_path = f"{sanitize_directory(directory)}/{safe_filename(filename)}"
        full_path = self._resolve(logical_path)

        def _write() -> None:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never observe a partial file
            tmp_path = full_path.with_name(f"{full_path.name}.{uuid4().hex}.part")
            tmp_path.write_bytes(data)
            tmp_path.replace(full_path)

        await asyncio.to_thread(_write)
        logger.debug("Saved %d bytes to %s", len(data), logical_path)
        return logical_path

    async def load(self, path: str) -> bytes:
        full_path = self._resolve(path)
        try:
            return await asyncio.to_thread(full_path.read_bytes)
        except FileNotFoundError as e:
            raise ContentNotFoundError(f"Content not found: {path}") from e

    async def delete(self, path: str) -> bool:
        full_path = self._resolve(path)

        def _delete() -> bool:
            try:
                full_path.unlink()
            except FileNotFoundError:
                return False
            return True

        deleted = await asyncio.to_thread(_delete)
        if deleted:
            logger.debug("Deleted %s", path)
        return deleted

    async def exists(self, path: str) -> bool:
        full_path = self._resolve(path)
        return await asyncio.to_thread(full_path.is_file)

    async def cleanup_expired(self, max_age: timedelta) -> int:
        cutoff = (datetime.now(UTC) - max_age).timestamp()

        def _cleanup() -> int:
            if not self.root.exists():
                return 0
            removed = 0
            for file_path in self.root.rglob("*"):
                if not file_path.is_file():
                    continue
                try:
                    if file_path.stat().st_mtime < cutoff:
                        file_path.unlink()
                        removed += 1
                except OSError as e:
                    logger.warning("Failed to remove expired file %s: %s", file_path, e)
            return removed

        removed = await asyncio.to_thread(_cleanup)
        if removed:
            logger.info("Removed %d expired file(s) from %s", removed, self.root)
        return removed

    async def test_connectivity(self) -> bool:
        return await asyncio.to_thread(lambda: self.root.is_dir())
