"""Logging configuration."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys

from app.core.config import Settings, get_settings
from app.core.log_filter import SensitiveDataFilter


def setup_logging(settings: Settings | None = None) -> None:
    """Configure application logging with stdout and rotating file handlers.

    Args:
        settings: Optional Settings instance (uses get_settings() if not provided)
    """
    if settings is None:
        settings = get_settings()

    logs_dir = Path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
        RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        ),
    ]

    if settings.enable_log_redaction:
        log_filter = SensitiveDataFilter()
        for handler in handlers:
            handler.addFilter(log_filter)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)