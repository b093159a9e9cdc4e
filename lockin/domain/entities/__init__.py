"""Domain entities package."""
from lockin.domain.entities.transcript_job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    UPLOADABLE_STATUSES,
    ChunkStats,
    JobStatus,
    TranscriptJob,
    TranscriptLimits,
    UploadAllowance,
    parse_timestamp,
    utcnow
)
from lockin.domain.entities.transcription import (
    ProviderTranscription,
    TranscriptionResult,
    TranscriptionSegment
)

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "UPLOADABLE_STATUSES",
    "ChunkStats",
    "JobStatus",
    "TranscriptJob",
    "TranscriptLimits",
    "UploadAllowance",
    "parse_timestamp",
    "utcnow",
    "ProviderTranscription",
    "TranscriptionResult",
    "TranscriptionSegment"
]
