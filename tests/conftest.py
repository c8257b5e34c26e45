"""Pytest configuration and fixtures."""

import io
from unittest.mock import AsyncMock, MagicMock
import wave

from fastapi.testclient import TestClient
import pytest

from app.core.config import Settings, get_settings
from app.db.base import create_engine_for_path, create_session_factory, init_db
from app.db.repository import JobRepository
from app.jobs.queue import InProcessTaskQueue
from app.main import create_app
from app.models.audio import (
    AudioFormat,
    AudioMetadata,
    SynthesisResult,
    TranscriptionResult,
    TranslationResult,
)
from app.models.job import AudioQuality
from app.services.audio_processing import AudioProcessingError, NoAudioStreamError
from app.services.contracts import (
    SpeechSynthesisProvider,
    TranscriptionError,
    TranscriptionProvider,
    TranslationProvider,
)
from app.services.job_service import TranslationJobService
from app.services.pipeline import TranslationPipeline
from app.services.validation import AudioValidationService
from app.storage.local import LocalContentStore

# ============================================================================
# Audio Helpers
# ============================================================================


def make_wav(duration_seconds=1.0, sample_rate=16_000, channels=1):
    """Build a silent 16-bit PCM WAV payload.

    Args:
        duration_seconds: Length of the audio
        sample_rate: Frames per second
        channels: Number of channels

    Returns:
        WAV bytes
    """
    output = io.BytesIO()
    with wave.open(output, "wb") as writer:
        writer.setnchannels(channels)
        writer.setsampwidth(2)
        writer.setframerate(sample_rate)
        writer.writeframes(b"\x00\x00" * channels * int(sample_rate * duration_seconds))
    return output.getvalue()


def make_metadata(**overrides):
    """AudioMetadata for a short mono speech recording, with overrides."""
    values = {
        "duration": 5.0,
        "sample_rate": 16_000,
        "channels": 1,
        "bit_rate": 256_000,
        "format": AudioFormat.WAV,
        "codec": "pcm_s16le",
        "size": 160_044,
    }
    values.update(overrides)
    return AudioMetadata(**values)


# ============================================================================
# Test Doubles
# ============================================================================


class FakeAudioProcessor:
    """In-memory stand-in for FFmpegAudioProcessor.

    Conversions return the payload unchanged and record the call, so
    pipeline tests can assert which transcodes happened.
    """

    def __init__(self, metadata=None, valid=True, installed=True, fail_conversion=False):
        self.metadata = metadata or make_metadata()
        self.valid = valid
        self.installed = installed
        self.fail_conversion = fail_conversion
        self.conversions = []

    async def check_installation(self):
        return self.installed

    async def probe(self, data, filename=None):
        if not self.valid:
            raise NoAudioStreamError("No audio stream found")
        detected = AudioFormat.from_extension(filename) or self.metadata.format
        return self.metadata.model_copy(update={"format": detected, "size": len(data)})

    async def detect_format(self, data, filename=None):
        return AudioFormat.from_extension(filename) or self.metadata.format

    async def convert(self, data, source_format, target_format, sample_rate=None, channels=None):
        if source_format == target_format:
            return data
        self.conversions.append(("convert", source_format, target_format))
        return data

    async def convert_for_transcription(self, data, source_format):
        if self.fail_conversion:
            raise AudioProcessingError("ffmpeg failed to convert")
        self.conversions.append(("transcription", source_format, AudioFormat.WAV))
        return data

    async def normalize(self, data, audio_format):
        self.conversions.append(("normalize", audio_format, audio_format))
        return data


class FakeTranscriber(TranscriptionProvider):
    """Transcription provider returning a fixed transcript."""

    def __init__(self, text="Hola, ¿cómo estás?", confidence=0.92, should_fail=False):
        self.text = text
        self.confidence = confidence
        self.should_fail = should_fail
        self.calls = []

    async def transcribe(self, audio, audio_format, language):
        self.calls.append((len(audio), audio_format, language))
        if self.should_fail:
            raise TranscriptionError("AssemblyAI transcription failed: upstream error")
        return TranscriptionResult(text=self.text, confidence=self.confidence, language=language)


class FakeTranslator(TranslationProvider):
    """Translation provider returning a fixed translation."""

    def __init__(self, text="Hello, how are you?"):
        self.text = text
        self.calls = []

    async def translate(self, text, source_language, target_language):
        self.calls.append((text, source_language, target_language))
        return TranslationResult(
            text=self.text,
            confidence=0.95,
            source_language=source_language,
            target_language=target_language,
        )


class FakeSynthesizer(SpeechSynthesisProvider):
    """Speech synthesis provider returning silent audio."""

    def __init__(self, audio_format=AudioFormat.WAV, audio=None):
        self.audio_format = audio_format
        self.audio = audio if audio is not None else make_wav(0.5)
        self.calls = []

    async def synthesize(self, text, language, quality=AudioQuality.STANDARD):
        self.calls.append((text, language, quality))
        return SynthesisResult(audio=self.audio, format=self.audio_format, duration=0.5)


# ============================================================================
# Base Fixtures
# ============================================================================


@pytest.fixture
def test_settings(tmp_path):
    """Settings isolated to the test's temporary directory."""
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "test.db"),
        storage_root=str(tmp_path / "storage"),
        log_dir=str(tmp_path / "logs"),
        worker_count=1,
        provider_timeout=5,
        translation_chunk_delay=0,
        synthesis_chunk_delay=0,
        cleanup_enabled=False,
        max_active_jobs=5,
    )


@pytest.fixture
async def db_engine(test_settings):
    """SQLite engine with the schema created."""
    engine = create_engine_for_path(test_settings.database_path)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(db_engine):
    return JobRepository(create_session_factory(db_engine))


@pytest.fixture
async def content_store(test_settings):
    store = LocalContentStore(settings=test_settings)
    await store.initialize()
    return store


@pytest.fixture
def fake_audio_processor():
    return FakeAudioProcessor()


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def fake_synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def pipeline(
    repository,
    content_store,
    fake_audio_processor,
    fake_transcriber,
    fake_translator,
    fake_synthesizer,
    test_settings,
):
    """Pipeline wired to the fakes and a real repository and content store."""
    return TranslationPipeline(
        repository=repository,
        content_store=content_store,
        audio_processor=fake_audio_processor,
        transcriber=fake_transcriber,
        translator=fake_translator,
        synthesizer=fake_synthesizer,
        settings=test_settings,
    )


@pytest.fixture
def job_service(repository, content_store, fake_audio_processor, pipeline, test_settings):
    """Job service whose queue is not started; tests drive the pipeline directly."""
    return TranslationJobService(
        repository=repository,
        content_store=content_store,
        validator=AudioValidationService(fake_audio_processor, test_settings),
        queue=InProcessTaskQueue(pipeline.process_job, worker_count=1),
        pipeline=pipeline,
        settings=test_settings,
    )


# ============================================================================
# API Fixtures
# ============================================================================


@pytest.fixture
def mock_job_service():
    """TranslationJobService double for HTTP layer tests."""
    service = MagicMock(spec=TranslationJobService)
    for name in (
        "submit",
        "get_status",
        "get_result",
        "cancel",
        "retry",
        "list_user_jobs",
        "statistics",
    ):
        setattr(service, name, AsyncMock())
    service.statistics.return_value = {"queued": 0, "completed": 0}

    service.repository = MagicMock()
    service.repository.ping = AsyncMock(return_value=True)
    service.content_store = MagicMock()
    service.content_store.test_connectivity = AsyncMock(return_value=True)
    service.validator = MagicMock()
    service.validator.audio_processor.check_installation = AsyncMock(return_value=True)
    service.pipeline = MagicMock()
    for provider in ("transcriber", "translator", "synthesizer"):
        getattr(service.pipeline, provider).test_connectivity = AsyncMock(return_value=True)
    return service


@pytest.fixture
def client(mock_job_service, test_settings):
    """Test client backed by the mocked job service (lifespan is not run)."""
    app = create_app(job_service=mock_job_service)
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# Helper Functions
# ============================================================================


def create_genai_response(text_parts, include_thoughts=False):
    """Create a mock Google GenAI API response.

    Args:
        text_parts: List of text strings or single text string to return
        include_thoughts: Whether to include thought parts (should be filtered)

    Returns:
        Mock response object matching Google GenAI structure
    """
    if isinstance(text_parts, str):
        text_parts = [text_parts]

    parts = []

    if include_thoughts:
        thought_part = MagicMock()
        thought_part.text = "Internal reasoning..."
        thought_part.thought = True
        parts.append(thought_part)

    for text in text_parts:
        text_part = MagicMock()
        text_part.text = text
        text_part.thought = False
        parts.append(text_part)

    response = MagicMock()
    response.candidates = [MagicMock(content=MagicMock(parts=parts))]
    return response
