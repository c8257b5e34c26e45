"""Tests for the upload validation policy."""

from unittest.mock import AsyncMock

import pytest

from app.core.config import Settings
from app.models.audio import AudioFormat
from app.services.audio_processing import AudioProcessingError
from app.services.validation import AudioValidationService
from tests.conftest import FakeAudioProcessor, make_metadata, make_wav


@pytest.fixture
def settings():
    return Settings(
        _env_file=None, max_file_size_mb=1, max_duration_minutes=10, min_duration_seconds=0.5
    )


def make_validator(settings, **metadata_overrides):
    processor = FakeAudioProcessor(metadata=make_metadata(**metadata_overrides))
    return AudioValidationService(processor, settings)


class TestAudioValidationService:
    @pytest.mark.asyncio
    async def test_valid_upload(self, settings):
        validator = make_validator(settings)

        result = await validator.validate(make_wav(5.0), "entrevista.wav", "audio/wav")

        assert result.is_valid
        assert result.metadata.duration == 5.0
        assert result.metadata.format == AudioFormat.WAV

    @pytest.mark.asyncio
    async def test_empty_payload_short_circuits(self, settings):
        processor = FakeAudioProcessor()
        processor.probe = AsyncMock()
        validator = AudioValidationService(processor, settings)

        result = await validator.validate(b"", "empty.wav", "audio/wav")

        assert result.errors == ["File is empty"]
        processor.probe.assert_not_called()

    @pytest.mark.asyncio
    async def test_collects_every_declared_violation(self, settings):
        validator = make_validator(settings)
        oversized = b"\x00" * (settings.max_file_size + 1)

        result = await validator.validate(oversized, "notes.txt", "text/plain")

        assert len(result.errors) == 3
        assert any("exceeds maximum" in error for error in result.errors)
        assert any("content type" in error for error in result.errors)
        assert any("extension" in error for error in result.errors)

    @pytest.mark.asyncio
    async def test_extension_must_match_content_type(self, settings):
        validator = make_validator(settings)

        result = await validator.validate(make_wav(), "talk.mp3", "audio/wav")

        assert result.errors == ["File extension does not match content type ('mp3' vs 'audio/wav')"]

    @pytest.mark.asyncio
    async def test_non_audio_payload(self, settings):
        validator = AudioValidationService(FakeAudioProcessor(valid=False), settings)

        result = await validator.validate(b"not audio at all", "talk.wav", "audio/wav")

        assert result.errors == ["File is not a valid audio file"]
        assert result.metadata is None

    @pytest.mark.asyncio
    async def test_probe_failure(self, settings):
        processor = FakeAudioProcessor()
        processor.probe = AsyncMock(side_effect=AudioProcessingError("ffprobe exploded"))
        validator = AudioValidationService(processor, settings)

        result = await validator.validate(make_wav(), "talk.wav", "audio/wav")

        assert result.errors == ["File is not a valid audio file"]
        assert result.metadata is None

    @pytest.mark.asyncio
    async def test_upload_is_inspected_once(self, settings):
        processor = FakeAudioProcessor()
        processor.probe = AsyncMock(return_value=make_metadata())
        validator = AudioValidationService(processor, settings)

        result = await validator.validate(make_wav(), "talk.wav", "audio/wav")

        assert result.is_valid
        processor.probe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_declared_errors_kept_for_non_audio(self, settings):
        validator = AudioValidationService(FakeAudioProcessor(valid=False), settings)

        result = await validator.validate(b"plain text", "notes.txt", "text/plain")

        assert result.errors[-1] == "File is not a valid audio file"
        assert len(result.errors) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "fragment"),
        [
            ({"duration": 0.0}, "greater than zero"),
            ({"duration": 0.2}, "too short"),
            ({"duration": 601.0}, "too long"),
            ({"sample_rate": 4_000}, "Sample rate"),
            ({"channels": 9}, "Channel count"),
            ({"bit_rate": 1_411_200}, "Bit rate"),
        ],
    )
    async def test_metadata_rules(self, settings, overrides, fragment):
        validator = make_validator(settings, **overrides)

        result = await validator.validate(make_wav(), "talk.wav", "audio/wav")

        assert len(result.errors) == 1
        assert fragment in result.errors[0]

    @pytest.mark.asyncio
    async def test_unknown_bit_rate_is_not_checked(self, settings):
        validator = make_validator(settings, bit_rate=0)

        result = await validator.validate(make_wav(), "talk.wav", "audio/wav")

        assert result.is_valid

    @pytest.mark.asyncio
    async def test_duration_at_limit_is_accepted(self, settings):
        validator = make_validator(settings, duration=600.0)

        result = await validator.validate(make_wav(), "talk.wav", "audio/wav")

        assert result.is_valid
