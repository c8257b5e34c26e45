"""Application configuration management."""

from functools import lru_cache
import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "Audio Translation Service"
    app_version: str = "0.1.0"
    app_description: str = (
        "Transcribe, translate and re-synthesize uploaded audio through a tracked job pipeline"
    )

    # Environment
    environment: str = "development"  # development, staging, production

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_hosts: list[str] = ["*"]

    # CORS Configuration
    cors_enabled: bool = True
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Database Configuration
    database_path: str = "./data/audio_translations.db"

    # Content Store Configuration
    storage_backend: str = "local"  # local, s3
    storage_root: str = "./data/storage"

    # S3 Configuration
    s3_endpoint_url: str = "https://s3.amazonaws.com"
    s3_region: str = "us-east-1"
    s3_bucket_name: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_key_prefix: str = "audio-translations"
    s3_max_pool_connections: int = 10  # Connection pool size
    s3_connect_timeout: int = 60  # Connection timeout in seconds
    s3_read_timeout: int = 60  # Read timeout in seconds

    # Audio Limits
    max_file_size_mb: int = 50
    max_duration_minutes: int = 10
    min_duration_seconds: float = 0.5
    default_output_format: str = "wav"
    transcription_sample_rate: int = 16_000

    # Transcoding tool
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Job lifecycle
    job_ttl_hours: int = 24
    max_retry_count: int = 3
    max_active_jobs: int = 50
    provider_timeout: int = 120  # seconds per external call
    worker_count: int = 0  # 0 means cpu_count * 2

    # Cleanup Configuration
    cleanup_enabled: bool = True
    cleanup_interval: int = 3600  # 1 hour in seconds
    temp_file_retention_hours: int = 24
    finished_job_retention_days: int = 7

    # Google GenAI Configuration (translation)
    google_api_key: str | None = None
    default_model: str = "gemini-2.5-flash"
    translation_max_chars: int = 30_000
    translation_chunk_delay: float = 0.5

    # Google Text-to-Speech Configuration
    google_tts_api_key: str | None = None
    google_tts_endpoint: str = "https://texttospeech.googleapis.com/v1/text:synthesize"
    synthesis_max_chars: int = 5_000
    synthesis_chunk_chars: int = 4_000
    synthesis_chunk_delay: float = 0.2

    # AssemblyAI Configuration (transcription)
    assemblyai_api_key: str | None = None

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_file_max_bytes: int = 10 * 1024 * 1024
    log_file_backup_count: int = 5
    enable_log_redaction: bool = True  # Redact sensitive data from logs

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @property
    def max_file_size(self) -> int:
        """Maximum upload size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def max_duration_seconds(self) -> int:
        """Maximum audio duration in seconds."""
        return self.max_duration_minutes * 60

    @property
    def effective_worker_count(self) -> int:
        """Number of queue workers, derived from CPU count when unset."""
        if self.worker_count > 0:
            return self.worker_count
        return (os.cpu_count() or 1) * 2


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance.

    Pydantic Settings loads from environment variables automatically.
    """
    return Settings()
