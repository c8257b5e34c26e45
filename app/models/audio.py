"""Audio format registry and audio-related value objects.

Every component that needs to map between file extensions, MIME types,
ffmpeg codecs and probe codec names goes through :class:`AudioFormat`, so
the mapping tables live in exactly one place.
"""

import enum
from pathlib import PurePath
from typing import NamedTuple

from pydantic import BaseModel, Field


class _FormatInfo(NamedTuple):
    extension: str
    aliases: tuple[str, ...]
    content_types: tuple[str, ...]
    ffmpeg_codec: str
    ffmpeg_muxer: str
    probe_codecs: tuple[str, ...]
    sample_rate: int
    channels: int


class AudioFormat(str, enum.Enum):
    """Supported audio container formats."""

    WAV = "wav"
    MP3 = "mp3"
    OGG = "ogg"
    AAC = "aac"
    FLAC = "flac"

    @property
    def info(self) -> _FormatInfo:
        return _REGISTRY[self]

    @property
    def extension(self) -> str:
        """Canonical file extension including the leading dot."""
        return self.info.extension

    @property
    def content_type(self) -> str:
        """Canonical MIME type used when serving this format."""
        return self.info.content_types[0]

    @property
    def ffmpeg_codec(self) -> str:
        return self.info.ffmpeg_codec

    @property
    def ffmpeg_muxer(self) -> str:
        return self.info.ffmpeg_muxer

    @property
    def optimal_sample_rate(self) -> int:
        return self.info.sample_rate

    @property
    def optimal_channels(self) -> int:
        return self.info.channels

    @classmethod
    def from_extension(cls, filename_or_ext: str | None) -> "AudioFormat | None":
        """Resolve a format from a filename or bare extension.

        Args:
            filename_or_ext: File name (``talk.mp3``) or extension (``.mp3``)

        Returns:
            Matching format, or None if the extension is unknown or missing
        """
        if not filename_or_ext:
            return None
        if filename_or_ext.startswith(".") and "/" not in filename_or_ext:
            suffix = filename_or_ext.lower()
        else:
            suffix = PurePath(filename_or_ext).suffix.lower()
        if not suffix:
            return None
        for fmt, info in _REGISTRY.items():
            if suffix == info.extension or suffix in info.aliases:
                return fmt
        return None

    @classmethod
    def from_content_type(cls, content_type: str | None) -> "AudioFormat | None":
        """Resolve a format from a MIME type, ignoring parameters like charset."""
        if not content_type:
            return None
        normalized = content_type.split(";", 1)[0].strip().lower()
        for fmt, info in _REGISTRY.items():
            if normalized in info.content_types:
                return fmt
        return None

    @classmethod
    def from_probe_codec(cls, codec_name: str | None) -> "AudioFormat | None":
        """Resolve a format from the codec name reported by ffprobe."""
        if not codec_name:
            return None
        codec = codec_name.lower()
        if codec.startswith("pcm_"):
            return cls.WAV
        for fmt, info in _REGISTRY.items():
            if codec in info.probe_codecs:
                return fmt
        return None


_REGISTRY: dict[AudioFormat, _FormatInfo] = {
    AudioFormat.WAV: _FormatInfo(
        extension=".wav",
        aliases=(".wave",),
        content_types=("audio/wav", "audio/x-wav", "audio/wave"),
        ffmpeg_codec="pcm_s16le",
        ffmpeg_muxer="wav",
        probe_codecs=("pcm_s16le",),
        sample_rate=16_000,
        channels=1,
    ),
    AudioFormat.MP3: _FormatInfo(
        extension=".mp3",
        aliases=(),
        content_types=("audio/mpeg", "audio/mp3", "audio/x-mpeg"),
        ffmpeg_codec="libmp3lame",
        ffmpeg_muxer="mp3",
        probe_codecs=("mp3", "mp3float"),
        sample_rate=22_050,
        channels=1,
    ),
    AudioFormat.OGG: _FormatInfo(
        extension=".ogg",
        aliases=(".oga",),
        content_types=("audio/ogg", "audio/vorbis"),
        ffmpeg_codec="libvorbis",
        ffmpeg_muxer="ogg",
        probe_codecs=("vorbis", "opus"),
        sample_rate=22_050,
        channels=1,
    ),
    AudioFormat.AAC: _FormatInfo(
        extension=".aac",
        aliases=(".m4a",),
        content_types=("audio/aac", "audio/mp4", "audio/x-aac"),
        ffmpeg_codec="aac",
        ffmpeg_muxer="adts",
        probe_codecs=("aac",),
        sample_rate=22_050,
        channels=1,
    ),
    AudioFormat.FLAC: _FormatInfo(
        extension=".flac",
        aliases=(),
        content_types=("audio/flac", "audio/x-flac"),
        ffmpeg_codec="flac",
        ffmpeg_muxer="flac",
        probe_codecs=("flac",),
        sample_rate=44_100,
        channels=2,
    ),
}

DEFAULT_AUDIO_FORMAT = AudioFormat.WAV


class AudioMetadata(BaseModel):
    """Metadata extracted from an audio blob by the probe."""

    duration: float = Field(..., description="Duration in seconds")
    sample_rate: int = Field(..., description="Sample rate in Hz")
    channels: int = Field(..., description="Number of audio channels")
    bit_rate: int = Field(0, description="Bit rate in bits/s (0 if unknown)")
    format: AudioFormat = Field(DEFAULT_AUDIO_FORMAT, description="Detected container format")
    codec: str | None = Field(None, description="Codec name reported by the probe")
    size: int = Field(0, description="Payload size in bytes")


class TranscriptionResult(BaseModel):
    """Output of a transcription provider."""

    text: str
    confidence: float = 0.0
    language: str | None = None


class TranslationResult(BaseModel):
    """Output of a translation provider."""

    text: str
    confidence: float = 0.0
    source_language: str
    target_language: str


class SynthesisResult(BaseModel):
    """Output of a speech-synthesis provider."""

    audio: bytes
    format: AudioFormat
    duration: float = 0.0
    voice: str | None = None


class ValidationResult(BaseModel):
    """Outcome of the upload validation policy."""

    errors: list[str] = Field(default_factory=list)
    metadata: AudioMetadata | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors
