"""Google GenAI translation provider for speech transcripts."""

import asyncio
import logging

from google import genai
from google.genai import types

from app.core.config import Settings, get_settings
from app.models.audio import TranslationResult
from app.services.contracts import (
    ProviderConfigurationError,
    TranslationError,
    TranslationProvider,
)
from app.services.text_chunking import chunk_text

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "es": "Spanish",
    "en": "English",
    "fr": "French",
    "pt": "Portuguese",
    "it": "Italian",
    "de": "German",
}

# The model does not report a score; this is the value recorded for a non-empty answer
TRANSLATION_CONFIDENCE = 0.95


class GoogleGenAIError(TranslationError):
    """Custom exception for Google GenAI API errors."""

    pass


def language_name(code: str) -> str:
    """Human readable language name for prompts (falls back to the code)."""
    return LANGUAGE_NAMES.get(code.lower()[:2], code)


def build_prompt(text: str, source_language: str, target_language: str) -> str:
    source = language_name(source_language)
    target = language_name(target_language)
    return f"""Translate the following transcript of spoken audio from {source} to {target}.

<SOURCE_TEXT>
{text}
</SOURCE_TEXT>

The translation will be read aloud by a speech synthesizer, so:
- Use natural spoken {target}; avoid overly formal or literary style
- Preserve meaning, tone and sentence order
- Do not add notes, headings, markup or explanations
- Spell out symbols that a voice would pronounce awkwardly

CRITICAL: Output ONLY the final translated text."""


class GoogleGenAITranslationProvider(TranslationProvider):
    """Translate text with a Gemini model.

    Text longer than ``translation_max_chars`` is split on sentence
    boundaries and the chunks are translated one after another with a short
    delay between requests, then joined with a space.
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize provider.

        Args:
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self._client: genai.Client | None = None

    def _ensure_client(self) -> genai.Client:
        if self._client is None:
            if not self._settings.google_api_key:
                raise ProviderConfigurationError(
                    "GOOGLE_API_KEY not found in environment. "
                    "Please set it in .env file or environment variables."
                )
            self._client = genai.Client(api_key=self._settings.google_api_key)
        return self._client

    async def translate(
        self, text: str, source_language: str, target_language: str
    ) -> TranslationResult:
        """Translate ``text``.

        Args:
            text: Text to translate
            source_language: Source language code (e.g., "es")
            target_language: Target language code (e.g., "en")

        Returns:
            TranslationResult with the joined translation

        Raises:
            GoogleGenAIError: If any chunk fails or returns nothing
            ProviderConfigurationError: If API key not configured
        """
        chunks = chunk_text(text, self._settings.translation_max_chars)
        if not chunks:
            raise GoogleGenAIError("Nothing to translate")

        if len(chunks) > 1:
            logger.info(
                "Translating %d characters in %d chunks (%s -> %s)",
                len(text),
                len(chunks),
                source_language,
                target_language,
            )

        translated: list[str] = []
        for index, chunk in enumerate(chunks):
            if index > 0:
                await asyncio.sleep(self._settings.translation_chunk_delay)
            translated.append(await self._translate_chunk(chunk, source_language, target_language))
            if len(chunks) > 1:
                logger.info("Chunk %d/%d translated", index + 1, len(chunks))

        return TranslationResult(
            text=" ".join(translated),
            confidence=TRANSLATION_CONFIDENCE,
            source_language=source_language,
            target_language=target_language,
        )

    async def _translate_chunk(self, text: str, source_language: str, target_language: str) -> str:
        client = self._ensure_client()
        try:
            response = await client.aio.models.generate_content(
                model=self._settings.default_model,
                contents=build_prompt(text, source_language, target_language),
                config=types.GenerateContentConfig(
                    temperature=0.3,
                    top_p=0.95,
                ),
            )

            if (
                not response.candidates
                or not response.candidates[0].content
                or not response.candidates[0].content.parts
            ):
                raise GoogleGenAIError("Invalid response structure from API")

            translated_parts = [
                part.text
                for part in response.candidates[0].content.parts
                if part.text and not part.thought
            ]

            if not translated_parts:
                raise GoogleGenAIError("No translation returned from API")

            return "".join(translated_parts).strip()

        except GoogleGenAIError:
            raise
        except Exception as e:
            raise GoogleGenAIError(f"Error during translation: {str(e)}") from e

    async def test_connectivity(self) -> bool:
        return bool(self._settings.google_api_key)
