"""Background service for expiring, purging and cleaning up jobs."""

import asyncio
from datetime import timedelta
import logging

from app.core.config import Settings, get_settings
from app.services.pipeline import TranslationPipeline

logger = logging.getLogger(__name__)


class CleanupService:
    """Background task that periodically runs the cleanup routines.

    Each iteration:
    - marks jobs past their TTL as expired and deletes their artifacts
    - purges finished jobs older than the retention window
    - removes stored files older than the temp file retention
    """

    def __init__(self, pipeline: TranslationPipeline, settings: Settings | None = None):
        """Initialize cleanup service.

        Args:
            pipeline: Pipeline whose repository and content store are cleaned
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        self.pipeline = pipeline
        self._task: asyncio.Task | None = None
        self._should_stop = False
        self._settings = settings if settings is not None else get_settings()

    async def start(self) -> None:
        """Start the cleanup background task."""
        if not self._settings.cleanup_enabled:
            logger.info("Cleanup disabled (CLEANUP_ENABLED=false)")
            return

        logger.info("Starting cleanup service (interval=%ds)", self._settings.cleanup_interval)
        self._should_stop = False
        self._task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the cleanup background task."""
        if not self._task:
            return

        logger.info("Stopping cleanup service")
        self._should_stop = True

        try:
            await asyncio.wait_for(self._task, timeout=30)
        except TimeoutError:
            logger.warning("Cleanup task did not stop within 30s, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        logger.info("Cleanup service stopped")

    async def _cleanup_loop(self) -> None:
        while not self._should_stop:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Error in cleanup iteration: %s", e, exc_info=True)

            # Sleep in 1s steps so stop() is noticed quickly
            for _ in range(self._settings.cleanup_interval):
                if self._should_stop:
                    break
                await asyncio.sleep(1)

    async def run_once(self) -> dict[str, int]:
        """Run every cleanup routine once.

        Returns:
            Counts of expired jobs, purged jobs and removed files
        """
        expired = await self.pipeline.cleanup_expired_jobs()
        purged = await self.pipeline.purge_finished_jobs(
            timedelta(days=self._settings.finished_job_retention_days)
        )
        removed_files = await self.pipeline.content_store.cleanup_expired(
            timedelta(hours=self._settings.temp_file_retention_hours)
        )

        if expired or purged or removed_files:
            logger.info(
                "Cleanup: %d expired, %d purged, %d file(s) removed",
                expired,
                purged,
                removed_files,
            )
        return {"expired_jobs": expired, "purged_jobs": purged, "removed_files": removed_files}
