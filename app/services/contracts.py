"""Contracts for the external speech and language providers."""

from abc import ABC, abstractmethod

from app.models.audio import AudioFormat, SynthesisResult, TranscriptionResult, TranslationResult
from app.models.job import AudioQuality


class ProviderError(Exception):
    """Base error for failures of an external provider."""

    pass


class ProviderConfigurationError(ProviderError):
    """Raised when a provider is used without the credentials it needs."""

    pass


class TranscriptionError(ProviderError):
    pass


class TranslationError(ProviderError):
    pass


class SpeechSynthesisError(ProviderError):
    pass


class TranscriptionProvider(ABC):
    """Audio + source language -> text + confidence."""

    @abstractmethod
    async def transcribe(
        self, audio: bytes, audio_format: AudioFormat, language: str
    ) -> TranscriptionResult: ...

    async def test_connectivity(self) -> bool:
        return True


class TranslationProvider(ABC):
    """Text + language pair -> translated text + confidence."""

    @abstractmethod
    async def translate(
        self, text: str, source_language: str, target_language: str
    ) -> TranslationResult: ...

    async def test_connectivity(self) -> bool:
        return True


class SpeechSynthesisProvider(ABC):
    """Text + language + quality tier -> audio + duration."""

    @abstractmethod
    async def synthesize(
        self, text: str, language: str, quality: AudioQuality
    ) -> SynthesisResult: ...

    async def test_connectivity(self) -> bool:
        return True
