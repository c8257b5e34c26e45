"""Upload validation policy."""

import logging

from app.core.config import Settings, get_settings
from app.models.audio import AudioFormat, ValidationResult
from app.services.audio_processing import AudioProcessingError, FFmpegAudioProcessor

logger = logging.getLogger(__name__)

MIN_SAMPLE_RATE = 8_000
MAX_SAMPLE_RATE = 192_000
MIN_CHANNELS = 1
MAX_CHANNELS = 8
MIN_BIT_RATE = 32_000
MAX_BIT_RATE = 320_000


class AudioValidationService:
    """Validate an uploaded audio file before a job is created.

    Every rule is evaluated and all violations are returned together, except
    that an empty payload or a payload that fails the genuine-audio probe
    stops validation immediately since no metadata can be computed.
    """

    def __init__(self, audio_processor: FFmpegAudioProcessor, settings: Settings | None = None):
        """Initialize validator.

        Args:
            audio_processor: Probe used to inspect the payload
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self.audio_processor = audio_processor

    async def validate(
        self, data: bytes, filename: str | None, content_type: str | None
    ) -> ValidationResult:
        """Validate an upload.

        Args:
            data: Uploaded bytes
            filename: Client-supplied file name
            content_type: Declared MIME type

        Returns:
            ValidationResult with the collected errors and, when the payload
            could be probed, its metadata
        """
        if not data:
            return ValidationResult(errors=["File is empty"])

        errors = self._check_declared(data, filename, content_type)

        try:
            metadata = await self.audio_processor.probe(data, filename)
        except AudioProcessingError as e:
            # Covers NoAudioStreamError and payloads ffprobe can not decode
            logger.info("Upload %s is not readable audio: %s", filename, e)
            errors.append("File is not a valid audio file")
            return ValidationResult(errors=errors)

        errors.extend(
            self._check_metadata(
                metadata.duration, metadata.sample_rate, metadata.channels, metadata.bit_rate
            )
        )

        if errors:
            logger.info("Rejected upload %s: %s", filename, "; ".join(errors))
        return ValidationResult(errors=errors, metadata=metadata)

    def _check_declared(
        self, data: bytes, filename: str | None, content_type: str | None
    ) -> list[str]:
        errors: list[str] = []
        max_size = self._settings.max_file_size
        if len(data) > max_size:
            errors.append(
                f"File size ({len(data):,} bytes) exceeds maximum allowed "
                f"({max_size:,} bytes / {self._settings.max_file_size_mb}MB)"
            )

        declared_format = AudioFormat.from_content_type(content_type)
        if declared_format is None:
            errors.append(f"Unsupported content type '{content_type or ''}'")

        extension_format = AudioFormat.from_extension(filename)
        if extension_format is None:
            errors.append(f"Unsupported file extension for '{filename or ''}'")
        elif declared_format is not None and extension_format != declared_format:
            errors.append(
                f"File extension does not match content type "
                f"('{extension_format.value}' vs '{content_type}')"
            )
        return errors

    def _check_metadata(
        self, duration: float, sample_rate: int, channels: int, bit_rate: int
    ) -> list[str]:
        errors: list[str] = []
        min_duration = self._settings.min_duration_seconds
        max_duration = self._settings.max_duration_seconds

        if duration <= 0:
            errors.append("Audio duration must be greater than zero")
        elif duration < min_duration:
            errors.append(f"Audio is too short ({duration:.2f}s, minimum {min_duration}s)")
        elif duration > max_duration:
            errors.append(
                f"Audio is too long ({duration:.0f}s, maximum "
                f"{self._settings.max_duration_minutes} minutes)"
            )

        if not MIN_SAMPLE_RATE <= sample_rate <= MAX_SAMPLE_RATE:
            errors.append(
                f"Sample rate {sample_rate} Hz is outside {MIN_SAMPLE_RATE}-{MAX_SAMPLE_RATE} Hz"
            )

        if not MIN_CHANNELS <= channels <= MAX_CHANNELS:
            errors.append(f"Channel count {channels} is outside {MIN_CHANNELS}-{MAX_CHANNELS}")

        # A bit rate of 0 means the probe could not determine it
        if bit_rate > 0 and not MIN_BIT_RATE <= bit_rate <= MAX_BIT_RATE:
            errors.append(
                f"Bit rate {bit_rate // 1000} kbps is outside "
                f"{MIN_BIT_RATE // 1000}-{MAX_BIT_RATE // 1000} kbps"
            )
        return errors
