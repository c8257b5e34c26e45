"""Logging filter for redacting sensitive data from log messages."""

import logging
import re
from typing import Pattern


class SensitiveDataFilter(logging.Filter):
    """Filter to redact credentials from log messages.

    Redacts:
    - Provider API keys (Google GenAI, Google TTS, AssemblyAI)
    - API keys passed as ``key=`` query parameters
    - S3 credentials and presigned URLs
    - Authorization headers and bearer tokens
    """

    def __init__(self):
        """Initialize filter with redaction patterns."""
        super().__init__()

        # Order matters - more specific patterns come first
        self.patterns: list[tuple[Pattern, str]] = [
            (
                re.compile(r"(Authorization):\s+(Bearer\s+)?([^\s,]+)", re.IGNORECASE),
                r"\1: ***REDACTED***",
            ),
            (
                re.compile(
                    r"(?i)(GOOGLE_API_KEY|GOOGLE_TTS_API_KEY|ASSEMBLYAI_API_KEY"
                    r"|S3_SECRET_ACCESS_KEY|S3_ACCESS_KEY_ID)=([^\s,\)]+)"
                ),
                r"\1=***REDACTED***",
            ),
            # Google REST endpoints take the API key as a query parameter
            (
                re.compile(r"([?&]key=)([^\s&]+)", re.IGNORECASE),
                r"\1***REDACTED***",
            ),
            (
                re.compile(
                    r"(?i)(api[_-]?key|apikey|token|secret|password|credential)['\"]?\s*[:=]\s*['\"]?"
                    r"([A-Za-z0-9_\-\.]{20,})"
                ),
                r"\1=***REDACTED***",
            ),
            (
                re.compile(r"(https?://[^\s\?]+\.s3[^\s]*\?)([^\s]+)", re.IGNORECASE),
                r"\1***REDACTED***",
            ),
            (
                re.compile(r"\bBearer\s+([A-Za-z0-9_\-\.=]+)", re.IGNORECASE),
                r"Bearer ***REDACTED***",
            ),
            # Google keys always start with AIza
            (
                re.compile(r"\bAIza[A-Za-z0-9_\-]{15,}\b"),
                r"***REDACTED***",
            ),
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data in the record.

        Args:
            record: Log record to filter

        Returns:
            True (always pass the record after redaction)
        """
        if record.msg:
            record.msg = self.redact(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._redact_value(arg) for arg in record.args)

        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)

        return True

    def _redact_value(self, value):
        # Non-strings keep their type so %d / %.2f formatting still works
        if isinstance(value, str):
            return self.redact(value)
        return value

    def redact(self, text: str) -> str:
        """Apply redaction patterns to text.

        Args:
            text: Text to redact

        Returns:
            Text with sensitive data redacted
        """
        for pattern, replacement in self.patterns:
            text = pattern.sub(replacement, text)
        return text
