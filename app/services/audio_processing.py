"""Audio probing, format detection and transcoding via ffmpeg/ffprobe."""

import asyncio
import json
import logging
import os
from pathlib import Path
import subprocess
import tempfile
from typing import Any

from app.core.config import Settings, get_settings
from app.models.audio import DEFAULT_AUDIO_FORMAT, AudioFormat, AudioMetadata

logger = logging.getLogger(__name__)

NORMALIZATION_FILTERS = "loudnorm,highpass=f=80,lowpass=f=8000"


class AudioProcessingError(Exception):
    """Raised when ffmpeg/ffprobe fails or produces unusable output."""

    pass


class NoAudioStreamError(AudioProcessingError):
    """Raised when a payload contains no audio stream."""

    pass


def detect_format_from_magic(data: bytes) -> AudioFormat | None:
    """Classify a payload by its leading signature bytes.

    Args:
        data: Raw audio bytes

    Returns:
        Detected format, or None when no known signature matches
    """
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return AudioFormat.WAV
    if data[:3] == b"ID3":
        return AudioFormat.MP3
    # MPEG audio frame sync: 11 set bits
    if len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0:
        return AudioFormat.MP3
    if data[:4] == b"OggS":
        return AudioFormat.OGG
    if data[:4] == b"fLaC":
        return AudioFormat.FLAC
    return None


def _temp_file(data: bytes, suffix: str) -> str:
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp_file:
        tmp_file.write(data)
        return tmp_file.name


def _remove(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class FFmpegAudioProcessor:
    """Probe and transcode audio with the ffmpeg command line tools.

    Each call writes the payload to a temporary file, runs the tool in a
    worker thread and removes the temporary files afterwards.
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize processor.

        Args:
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self.ffmpeg_path = settings.ffmpeg_path
        self.ffprobe_path = settings.ffprobe_path

    async def check_installation(self) -> bool:
        """Return True when ffmpeg can be executed."""
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                [self.ffmpeg_path, "-version"],
                capture_output=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("ffmpeg is not available: %s", e)
            return False
        return result.returncode == 0 and b"ffmpeg version" in result.stdout

    async def probe(self, data: bytes, filename: str | None = None) -> AudioMetadata:
        """Extract duration, sample rate, channels and bit rate.

        Args:
            data: Raw audio bytes
            filename: Optional original file name (used for format detection)

        Returns:
            AudioMetadata for the first audio stream

        Raises:
            NoAudioStreamError: If the payload has no audio stream
            AudioProcessingError: If ffprobe fails
        """
        info = await asyncio.to_thread(self._probe_sync, data)

        audio_stream = next(
            (s for s in info.get("streams", []) if s.get("codec_type") == "audio"), None
        )
        if audio_stream is None:
            raise NoAudioStreamError("No audio stream found in file")

        fmt = info.get("format", {})
        duration = float(fmt.get("duration") or audio_stream.get("duration") or 0.0)
        bit_rate = int(audio_stream.get("bit_rate") or fmt.get("bit_rate") or 0)

        detected = self._detect_sync_tiers(data, filename) or AudioFormat.from_probe_codec(
            audio_stream.get("codec_name")
        )
        metadata = AudioMetadata(
            duration=duration,
            sample_rate=int(audio_stream.get("sample_rate") or 0),
            channels=int(audio_stream.get("channels") or 0),
            bit_rate=bit_rate,
            format=detected or DEFAULT_AUDIO_FORMAT,
            codec=audio_stream.get("codec_name"),
            size=len(data),
        )
        logger.debug(
            "Probed audio: %.2fs, %d Hz, %d ch, %d bps, %s",
            metadata.duration,
            metadata.sample_rate,
            metadata.channels,
            metadata.bit_rate,
            metadata.format.value,
        )
        return metadata

    def _probe_sync(self, data: bytes) -> dict[str, Any]:
        input_path = _temp_file(data, ".bin")
        try:
            process = subprocess.run(
                [
                    self.ffprobe_path,
                    "-v",
                    "error",
                    "-print_format",
                    "json",
                    "-show_format",
                    "-show_streams",
                    input_path,
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
            return json.loads(process.stdout or b"{}")
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.warning("ffprobe failed: %s", error_msg)
            raise AudioProcessingError(f"ffprobe could not read audio: {error_msg}") from exc
        except OSError as exc:
            raise AudioProcessingError(f"ffprobe could not be executed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise AudioProcessingError("ffprobe returned invalid JSON") from exc
        finally:
            _remove(input_path)

    def _detect_sync_tiers(self, data: bytes, filename: str | None) -> AudioFormat | None:
        return AudioFormat.from_extension(filename) or detect_format_from_magic(data)

    async def detect_format(self, data: bytes, filename: str | None = None) -> AudioFormat:
        """Classify a payload.

        Tiers are tried in order, each only when the previous one is
        inconclusive: file extension, magic bytes, ffprobe codec name,
        then the default format.
        """
        detected = self._detect_sync_tiers(data, filename)
        if detected is not None:
            return detected

        try:
            info = await asyncio.to_thread(self._probe_sync, data)
        except AudioProcessingError as e:
            logger.debug("Probe-based format detection failed: %s", e)
            return DEFAULT_AUDIO_FORMAT

        for stream in info.get("streams", []):
            if stream.get("codec_type") == "audio":
                detected = AudioFormat.from_probe_codec(stream.get("codec_name"))
                if detected is not None:
                    return detected
        return DEFAULT_AUDIO_FORMAT

    async def convert(
        self,
        data: bytes,
        source_format: AudioFormat,
        target_format: AudioFormat,
        sample_rate: int | None = None,
        channels: int | None = None,
    ) -> bytes:
        """Transcode between formats.

        Returns the input unchanged when source and target formats match.
        Sample rate and channel count default to the target format's
        optimal delivery settings.
        """
        if source_format == target_format:
            return data

        return await asyncio.to_thread(
            self._ffmpeg_sync,
            data,
            source_format,
            target_format,
            sample_rate or target_format.optimal_sample_rate,
            channels or target_format.optimal_channels,
            None,
        )

    async def convert_for_transcription(self, data: bytes, source_format: AudioFormat) -> bytes:
        """Downmix to mono and resample to a 16-bit PCM WAV for speech-to-text."""
        return await asyncio.to_thread(
            self._ffmpeg_sync,
            data,
            source_format,
            AudioFormat.WAV,
            self._settings.transcription_sample_rate,
            1,
            None,
        )

    async def normalize(self, data: bytes, audio_format: AudioFormat) -> bytes:
        """Apply loudness normalization and a speech band-pass filter."""
        return await asyncio.to_thread(
            self._ffmpeg_sync,
            data,
            audio_format,
            audio_format,
            self._settings.transcription_sample_rate,
            1,
            NORMALIZATION_FILTERS,
        )

    def _ffmpeg_sync(
        self,
        data: bytes,
        source_format: AudioFormat,
        target_format: AudioFormat,
        sample_rate: int,
        channels: int,
        audio_filters: str | None,
    ) -> bytes:
        input_path = _temp_file(data, source_format.extension)
        output_path = f"{os.path.splitext(input_path)[0]}_out{target_format.extension}"

        command = [self.ffmpeg_path, "-y", "-v", "error", "-i", input_path, "-vn"]
        if audio_filters:
            command += ["-af", audio_filters]
        command += [
            "-acodec",
            target_format.ffmpeg_codec,
            "-ar",
            str(sample_rate),
            "-ac",
            str(channels),
            "-f",
            target_format.ffmpeg_muxer,
            output_path,
        ]

        try:
            subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=True)
            output = Path(output_path)
            if not output.exists() or output.stat().st_size == 0:
                raise AudioProcessingError(
                    f"ffmpeg produced no output converting {source_format.value} "
                    f"to {target_format.value}"
                )
            converted = output.read_bytes()
            logger.debug(
                "Converted %s -> %s (%d -> %d bytes)",
                source_format.value,
                target_format.value,
                len(data),
                len(converted),
            )
            return converted
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.error("ffmpeg failed. stderr: %s", error_msg)
            raise AudioProcessingError(
                f"ffmpeg failed to convert {source_format.value} to {target_format.value}: "
                f"{error_msg}"
            ) from exc
        except OSError as exc:
            raise AudioProcessingError(f"ffmpeg could not be executed: {exc}") from exc
        finally:
            _remove(input_path)
            _remove(output_path)
