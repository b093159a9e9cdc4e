"""
Settings module - Configurações centralizadas da aplicação usando Pydantic Settings.
Todas as opções podem ser sobrescritas por variáveis de ambiente ou arquivo .env.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from lockin.domain.entities.transcript_job import TranscriptLimits

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Configurações da aplicação."""
    
    # Application
    app_name: str = Field(default="Lock-in Transcripts API", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    app_environment: str = Field(default="production", alias="APP_ENVIRONMENT")
    
    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    enable_cors: bool = Field(default=True, alias="ENABLE_CORS")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    
    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="./logs/app.log", alias="LOG_FILE")
    
    # Circuit Breaker
    circuit_failure_threshold: int = Field(default=3, alias="CIRCUIT_FAILURE_THRESHOLD")
    circuit_open_duration_ms: int = Field(default=30000, alias="CIRCUIT_OPEN_DURATION_MS")
    circuit_half_open_max_attempts: int = Field(default=1, alias="CIRCUIT_HALF_OPEN_MAX_ATTEMPTS")
    circuit_redis_url: Optional[str] = Field(default=None, alias="CIRCUIT_REDIS_URL")
    circuit_redis_prefix: str = Field(default="lockin:circuit:", alias="CIRCUIT_REDIS_PREFIX")
    
    # Supabase
    supabase_url: Optional[str] = Field(default=None, alias="SUPABASE_URL")
    supabase_service_role_key: Optional[str] = Field(default=None, alias="SUPABASE_SERVICE_ROLE_KEY")
    supabase_timeout_seconds: float = Field(default=15.0, alias="SUPABASE_TIMEOUT_SECONDS")
    
    # Transcription providers
    transcription_primary_provider: str = Field(default="azure", alias="TRANSCRIPTION_PRIMARY_PROVIDER")
    azure_speech_key: Optional[str] = Field(default=None, alias="AZURE_SPEECH_KEY")
    azure_speech_region: Optional[str] = Field(default=None, alias="AZURE_SPEECH_REGION")
    azure_speech_language: str = Field(default="en-US", alias="AZURE_SPEECH_LANGUAGE")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_transcription_model: str = Field(default="whisper-1", alias="OPENAI_TRANSCRIPTION_MODEL")
    transcription_timeout_seconds: float = Field(default=120.0, alias="TRANSCRIPTION_TIMEOUT_SECONDS")
    
    # Transcript jobs
    transcript_chunk_max_bytes: int = Field(default=5 * MIB, alias="TRANSCRIPT_CHUNK_MAX_BYTES")
    transcript_max_total_bytes: int = Field(default=500 * MIB, alias="TRANSCRIPT_MAX_TOTAL_BYTES")
    transcript_upload_bytes_per_minute: int = Field(default=50 * MIB, alias="TRANSCRIPT_UPLOAD_BYTES_PER_MINUTE")
    transcript_daily_job_limit: int = Field(default=20, alias="TRANSCRIPT_DAILY_JOB_LIMIT")
    transcript_max_concurrent_jobs: int = Field(default=3, alias="TRANSCRIPT_MAX_CONCURRENT_JOBS")
    transcript_max_duration_minutes: int = Field(default=240, alias="TRANSCRIPT_MAX_DURATION_MINUTES")
    transcript_processing_stale_minutes: int = Field(default=10, alias="TRANSCRIPT_PROCESSING_STALE_MINUTES")
    transcript_processing_heartbeat_seconds: int = Field(default=30, alias="TRANSCRIPT_PROCESSING_HEARTBEAT_SECONDS")
    
    # Reaper
    enable_transcript_reaper: bool = Field(default=True, alias="ENABLE_TRANSCRIPT_REAPER")
    transcript_job_ttl_minutes: int = Field(default=120, alias="TRANSCRIPT_JOB_TTL_MINUTES")
    transcript_job_reaper_interval_minutes: int = Field(default=5, alias="TRANSCRIPT_JOB_REAPER_INTERVAL_MINUTES")
    
    # Storage
    transcript_storage_dir: str = Field(default="./temp/transcripts", alias="TRANSCRIPT_STORAGE_DIR")
    
    # API rate limiting (slowapi)
    rate_limit_upload: str = Field(default="120/minute", alias="RATE_LIMIT_UPLOAD")
    rate_limit_default: str = Field(default="30/minute", alias="RATE_LIMIT_DEFAULT")
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )
    
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Valida o nível de log."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v
    
    @field_validator("transcription_primary_provider")
    @classmethod
    def validate_primary_provider(cls, v: str) -> str:
        """Valida o provedor primário de transcrição."""
        valid_providers = ["azure", "openai"]
        v = v.lower()
        if v not in valid_providers:
            raise ValueError(f"Primary provider must be one of {valid_providers}")
        return v
    
    @field_validator(
        "circuit_failure_threshold",
        "circuit_open_duration_ms",
        "circuit_half_open_max_attempts",
        "transcript_chunk_max_bytes",
        "transcript_max_total_bytes"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Garante valores estritamente positivos."""
        if v <= 0:
            raise ValueError("Value must be greater than zero")
        return v
    
    def get_cors_origins(self) -> List[str]:
        """Retorna lista de origens CORS permitidas."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]
    
    def transcript_limits(self) -> TranscriptLimits:
        """Monta os limites consumidos pelo serviço de jobs."""
        return TranscriptLimits(
            chunk_max_bytes=self.transcript_chunk_max_bytes,
            max_total_bytes=self.transcript_max_total_bytes,
            upload_bytes_per_minute=self.transcript_upload_bytes_per_minute,
            daily_job_limit=self.transcript_daily_job_limit,
            max_concurrent_jobs=self.transcript_max_concurrent_jobs,
            max_duration_minutes=self.transcript_max_duration_minutes,
            processing_stale_minutes=self.transcript_processing_stale_minutes
        )


# Instância global de configurações
settings = Settings()
