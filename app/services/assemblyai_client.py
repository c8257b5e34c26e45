"""AssemblyAI transcription provider."""

import asyncio
import io
import logging
import time

import assemblyai as aai

from app.core.config import Settings, get_settings
from app.models.audio import AudioFormat, TranscriptionResult
from app.services.contracts import (
    ProviderConfigurationError,
    TranscriptionError,
    TranscriptionProvider,
)

logger = logging.getLogger(__name__)

# AssemblyAI language codes for the supported source languages
LANGUAGE_CODES = {
    "es": "es",
    "en": "en_us",
    "fr": "fr",
    "pt": "pt",
    "it": "it",
    "de": "de",
}


def assemblyai_language_code(language: str) -> str:
    """Map a two-letter language code to the code AssemblyAI expects."""
    return LANGUAGE_CODES.get(language.lower()[:2], language.lower())


class AssemblyAIClient(TranscriptionProvider):
    """Transcription provider backed by the AssemblyAI SDK."""

    def __init__(self, settings: Settings | None = None):
        """Initialize AssemblyAI client (lazy initialization).

        Args:
            settings: Optional Settings instance (uses get_settings() if not provided)

        Client is initialized on first use via _ensure_initialized().
        """
        self._initialized = False
        self.transcriber: aai.Transcriber | None = None
        if settings is None:
            settings = get_settings()
        self._settings = settings

    def _ensure_initialized(self) -> aai.Transcriber:
        """Ensure client is initialized before use.

        Raises:
            ProviderConfigurationError: If API key not configured
        """
        if not self._initialized:
            if not self._settings.assemblyai_api_key:
                raise ProviderConfigurationError("ASSEMBLYAI_API_KEY not configured")

            aai.settings.api_key = self._settings.assemblyai_api_key
            self.transcriber = aai.Transcriber()
            self._initialized = True

        if self.transcriber is None:
            raise ProviderConfigurationError("Transcriber not initialized")
        return self.transcriber

    async def transcribe(
        self, audio: bytes, audio_format: AudioFormat, language: str
    ) -> TranscriptionResult:
        """Upload audio and wait for the transcript.

        Args:
            audio: Audio bytes
            audio_format: Format of ``audio``
            language: Source language code (e.g., "es")

        Returns:
            TranscriptionResult with text and confidence

        Raises:
            TranscriptionError: If AssemblyAI reports an error
            ProviderConfigurationError: If API key not configured
        """
        transcriber = self._ensure_initialized()
        config = aai.TranscriptionConfig(language_code=assemblyai_language_code(language))

        start_time = time.perf_counter()
        try:
            # The SDK call blocks until the transcript is ready
            transcript = await asyncio.to_thread(
                transcriber.transcribe, io.BytesIO(audio), config=config
            )
        except aai.TranscriptError as e:
            logger.error("AssemblyAI transcription failed: %s", e)
            raise TranscriptionError(f"AssemblyAI transcription failed: {e}") from e
        except Exception as e:
            logger.error("Unexpected error during AssemblyAI transcription: %s", e)
            raise TranscriptionError(f"Unexpected transcription error: {e}") from e

        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"AssemblyAI transcription failed: {transcript.error}")

        elapsed = time.perf_counter() - start_time
        logger.info(
            "Transcribed %d bytes of %s audio (%s) in %.2fs",
            len(audio),
            audio_format.value,
            language,
            elapsed,
        )
        return TranscriptionResult(
            text=transcript.text or "",
            confidence=transcript.confidence or 0.0,
            language=language,
        )

    async def test_connectivity(self) -> bool:
        """Test AssemblyAI API connectivity and authentication.

        Fetches a non-existent transcript: a valid key yields "not found",
        an invalid key yields an authentication error.

        Returns:
            True if connected and authenticated, False otherwise
        """
        try:
            self._ensure_initialized()
        except ProviderConfigurationError as e:
            logger.error("AssemblyAI connectivity test failed: %s", e)
            return False

        test_id = "00000000-0000-0000-0000-000000000000"
        try:
            await asyncio.to_thread(aai.Transcript.get_by_id, test_id)
        except aai.TranscriptError as e:
            error_str = str(e).lower()
            if "not found" in error_str or "404" in error_str:
                logger.info("AssemblyAI connectivity test successful (API key valid)")
                return True
            logger.error("AssemblyAI connectivity test failed: %s", e)
            return False
        except Exception as e:
            logger.error("AssemblyAI connectivity test failed: %s", e)
            return False

        return True
