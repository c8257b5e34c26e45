"""Google Cloud Text-to-Speech provider (REST API over httpx)."""

import asyncio
import base64
import io
import logging
import wave

import httpx

from app.core.config import Settings, get_settings
from app.models.audio import AudioFormat, SynthesisResult
from app.models.job import AudioQuality
from app.services.contracts import (
    ProviderConfigurationError,
    SpeechSynthesisError,
    SpeechSynthesisProvider,
)
from app.services.text_chunking import chunk_text

logger = logging.getLogger(__name__)

DEFAULT_VOICES = {
    "es": ("es-ES", "es-ES-Wavenet-B"),
    "en": ("en-US", "en-US-Wavenet-D"),
    "fr": ("fr-FR", "fr-FR-Wavenet-C"),
    "pt": ("pt-BR", "pt-BR-Wavenet-A"),
    "it": ("it-IT", "it-IT-Wavenet-A"),
    "de": ("de-DE", "de-DE-Wavenet-F"),
}
FALLBACK_VOICE = ("en-US", "en-US-Standard-C")

# (encoding, sample rate, effects profile)
QUALITY_AUDIO_CONFIG = {
    AudioQuality.LOW: ("MP3", 16_000, "handset-class-device"),
    AudioQuality.STANDARD: ("MP3", 22_050, "wearable-class-device"),
    AudioQuality.HIGH: ("MP3", 24_000, "headphone-class-device"),
    AudioQuality.PREMIUM: ("LINEAR16", 44_100, "large-home-entertainment-class-device"),
}

WORDS_PER_MINUTE = {"es": 150, "en": 160, "fr": 140, "pt": 145, "it": 155, "de": 130}
DEFAULT_WORDS_PER_MINUTE = 150


def select_voice(language: str) -> tuple[str, str]:
    """Return ``(language_code, voice_name)`` for a two-letter language code."""
    return DEFAULT_VOICES.get(language.lower()[:2], FALLBACK_VOICE)


def estimate_duration(text: str, language: str) -> float:
    """Estimate spoken duration in seconds from the word count."""
    wpm = WORDS_PER_MINUTE.get(language.lower()[:2], DEFAULT_WORDS_PER_MINUTE)
    return len(text.split()) / wpm * 60


def concatenate_wav(segments: list[bytes]) -> bytes:
    """Join WAV segments into one WAV by concatenating their PCM frames.

    Raises:
        SpeechSynthesisError: If a segment is not WAV or formats differ
    """
    frames: list[bytes] = []
    params = None
    try:
        for segment in segments:
            with wave.open(io.BytesIO(segment), "rb") as reader:
                segment_params = reader.getparams()
                if params is None:
                    params = segment_params
                elif segment_params[:3] != params[:3]:
                    raise SpeechSynthesisError("WAV segments have different sample formats")
                frames.append(reader.readframes(reader.getnframes()))
    except (wave.Error, EOFError) as e:
        raise SpeechSynthesisError(f"Invalid WAV segment: {e}") from e

    if params is None:
        return b""

    output = io.BytesIO()
    with wave.open(output, "wb") as writer:
        writer.setnchannels(params.nchannels)
        writer.setsampwidth(params.sampwidth)
        writer.setframerate(params.framerate)
        writer.writeframes(b"".join(frames))
    return output.getvalue()


def concatenate_segments(segments: list[bytes], audio_format: AudioFormat) -> bytes:
    """Combine synthesized chunks.

    PCM WAV segments are stitched into a single valid container. Compressed
    segments are concatenated byte-for-byte, which decoders tolerate for
    MP3 frame streams but is not a correct mux for every codec.
    """
    if len(segments) == 1:
        return segments[0]
    if audio_format == AudioFormat.WAV:
        return concatenate_wav(segments)
    return b"".join(segments)


class GoogleTextToSpeechClient(SpeechSynthesisProvider):
    """Synthesize speech through the Google Cloud Text-to-Speech REST API."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            settings: Optional Settings instance (uses get_settings() if not provided)
            transport: Optional httpx transport (used by tests)
        """
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self._transport = transport

    async def synthesize(self, text: str, language: str, quality: AudioQuality) -> SynthesisResult:
        """Synthesize ``text`` in ``language``.

        Text longer than ``synthesis_max_chars`` is split into chunks of
        ``synthesis_chunk_chars`` that are synthesized sequentially.

        Raises:
            SpeechSynthesisError: If the API fails or returns no audio
            ProviderConfigurationError: If API key not configured
        """
        if not self._settings.google_tts_api_key:
            raise ProviderConfigurationError("GOOGLE_TTS_API_KEY not configured")

        stripped = text.strip()
        if not stripped:
            raise SpeechSynthesisError("Nothing to synthesize")

        if len(stripped) > self._settings.synthesis_max_chars:
            chunks = chunk_text(stripped, self._settings.synthesis_chunk_chars)
            logger.info("Synthesizing %d characters in %d chunks", len(stripped), len(chunks))
        else:
            chunks = [stripped]

        language_code, voice_name = select_voice(language)
        encoding, _, _ = QUALITY_AUDIO_CONFIG[quality]
        audio_format = AudioFormat.WAV if encoding == "LINEAR16" else AudioFormat.MP3

        segments: list[bytes] = []
        async with httpx.AsyncClient(
            timeout=self._settings.provider_timeout, transport=self._transport
        ) as client:
            for index, chunk in enumerate(chunks):
                if index > 0:
                    await asyncio.sleep(self._settings.synthesis_chunk_delay)
                segments.append(
                    await self._synthesize_chunk(client, chunk, language_code, voice_name, quality)
                )

        audio = concatenate_segments(segments, audio_format)
        logger.info(
            "Synthesized %d bytes of %s speech with %s", len(audio), audio_format.value, voice_name
        )
        return SynthesisResult(
            audio=audio,
            format=audio_format,
            duration=estimate_duration(stripped, language),
            voice=voice_name,
        )

    async def _synthesize_chunk(
        self,
        client: httpx.AsyncClient,
        text: str,
        language_code: str,
        voice_name: str,
        quality: AudioQuality,
    ) -> bytes:
        encoding, sample_rate, effects_profile = QUALITY_AUDIO_CONFIG[quality]
        payload = {
            "input": {"text": text},
            "voice": {"languageCode": language_code, "name": voice_name},
            "audioConfig": {
                "audioEncoding": encoding,
                "sampleRateHertz": sample_rate,
                "effectsProfileId": [effects_profile],
            },
        }

        try:
            response = await client.post(
                self._settings.google_tts_endpoint,
                headers={"X-Goog-Api-Key": self._settings.google_tts_api_key or ""},
                json=payload,
            )
        except httpx.TimeoutException as e:
            raise SpeechSynthesisError("Speech synthesis request timed out") from e
        except httpx.RequestError as e:
            raise SpeechSynthesisError(f"Network error during speech synthesis: {e}") from e

        if response.status_code != 200:
            error_detail = response.text
            try:
                error_detail = response.json().get("error", {}).get("message", error_detail)
            except ValueError:
                pass
            raise SpeechSynthesisError(
                f"Text-to-Speech API error (status {response.status_code}): {error_detail}"
            )

        audio_content = response.json().get("audioContent")
        if not audio_content:
            raise SpeechSynthesisError("No audio returned from Text-to-Speech API")
        return base64.b64decode(audio_content)

    async def test_connectivity(self) -> bool:
        return bool(self._settings.google_tts_api_key)
