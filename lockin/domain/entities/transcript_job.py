"""
Entity: TranscriptJob
Representa um job de upload em chunks e sua transcrição posterior.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    """Estados do ciclo de vida de um job de transcrição."""
    CREATED = "created"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED})
ACTIVE_STATUSES = frozenset({
    JobStatus.CREATED,
    JobStatus.UPLOADING,
    JobStatus.UPLOADED,
    JobStatus.PROCESSING
})
UPLOADABLE_STATUSES = frozenset({JobStatus.CREATED, JobStatus.UPLOADING})


def utcnow() -> datetime:
    """Retorna o instante atual em UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Converte timestamps ISO 8601 (inclusive com sufixo Z) em datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TranscriptLimits:
    """Limites aplicados na criação e no upload de jobs."""
    
    chunk_max_bytes: int = 5 * 1024 * 1024
    max_total_bytes: int = 500 * 1024 * 1024
    upload_bytes_per_minute: Optional[int] = 50 * 1024 * 1024
    daily_job_limit: int = 20
    max_concurrent_jobs: int = 3
    max_duration_minutes: Optional[int] = 240
    processing_stale_minutes: int = 10


@dataclass(frozen=True)
class ChunkStats:
    """Estatísticas dos índices distintos de chunks recebidos."""
    
    count: int = 0
    min_index: Optional[int] = None
    max_index: Optional[int] = None
    
    def covers(self, expected_total_chunks: int) -> bool:
        """Indica se os índices cobrem exatamente [0, expected_total_chunks)."""
        return (
            self.count == expected_total_chunks
            and self.min_index == 0
            and self.max_index == expected_total_chunks - 1
        )


@dataclass
class TranscriptJob:
    """Entidade que representa um job de transcrição em chunks."""
    
    id: str
    user_id: str
    fingerprint: str
    status: JobStatus = JobStatus.CREATED
    expected_total_chunks: Optional[int] = None
    bytes_received: int = 0
    error: Optional[str] = None
    media_url: Optional[str] = None
    media_url_normalized: Optional[str] = None
    duration_ms: Optional[int] = None
    provider: Optional[str] = None
    language_hint: Optional[str] = None
    max_minutes: Optional[float] = None
    processing_started_at: Optional[datetime] = None
    processing_heartbeat_at: Optional[datetime] = None
    processing_worker_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    
    @property
    def is_terminal(self) -> bool:
        """Verifica se o job está em estado terminal."""
        return self.status in TERMINAL_STATUSES
    
    @property
    def is_active(self) -> bool:
        """Verifica se o job ainda está em andamento."""
        return self.status in ACTIVE_STATUSES
    
    def is_processing_stale(self, stale_minutes: int, now: Optional[datetime] = None) -> bool:
        """
        Verifica se o processamento parou de emitir heartbeat.
        
        Usa o último heartbeat ou, na falta dele, o início do processamento.
        """
        if not stale_minutes:
            return False
        reference = self.processing_heartbeat_at or self.processing_started_at
        if reference is None:
            return False
        now = now or utcnow()
        return (now - reference).total_seconds() > stale_minutes * 60
    
    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "TranscriptJob":
        """Cria entidade a partir de uma linha da tabela transcript_jobs."""
        expected = record.get("expected_total_chunks")
        duration = record.get("duration_ms")
        max_minutes = record.get("max_minutes")
        return cls(
            id=str(record["id"]),
            user_id=str(record["user_id"]),
            fingerprint=record.get("fingerprint") or "",
            status=JobStatus(record.get("status") or JobStatus.CREATED.value),
            expected_total_chunks=int(expected) if expected is not None else None,
            bytes_received=int(record.get("bytes_received") or 0),
            error=record.get("error"),
            media_url=record.get("media_url"),
            media_url_normalized=record.get("media_url_normalized"),
            duration_ms=int(duration) if duration is not None else None,
            provider=record.get("provider"),
            language_hint=record.get("language_hint"),
            max_minutes=float(max_minutes) if max_minutes is not None else None,
            processing_started_at=parse_timestamp(record.get("processing_started_at")),
            processing_heartbeat_at=parse_timestamp(record.get("processing_heartbeat_at")),
            processing_worker_id=record.get("processing_worker_id"),
            created_at=parse_timestamp(record.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(record.get("updated_at")) or utcnow()
        )
    
    def to_dict(self) -> dict:
        """Converte para dicionário serializável (formato da tabela)."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "fingerprint": self.fingerprint,
            "status": self.status.value,
            "expected_total_chunks": self.expected_total_chunks,
            "bytes_received": self.bytes_received,
            "error": self.error,
            "media_url": self.media_url,
            "media_url_normalized": self.media_url_normalized,
            "duration_ms": self.duration_ms,
            "provider": self.provider,
            "language_hint": self.language_hint,
            "max_minutes": self.max_minutes,
            "processing_started_at": _iso(self.processing_started_at),
            "processing_heartbeat_at": _iso(self.processing_heartbeat_at),
            "processing_worker_id": self.processing_worker_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class UploadAllowance:
    """Resultado do limitador de bytes por minuto."""
    
    allowed: bool
    remaining: int = 0
    retry_after_seconds: int = 0
