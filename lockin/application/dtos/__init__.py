"""DTOs package."""
from lockin.application.dtos.transcript_job_dtos import (
    CacheTranscriptRequestDTO,
    CreateJobRequestDTO,
    ErrorResponseDTO,
    FinalizeJobRequestDTO,
    HealthCheckDTO,
    TranscriptDTO,
    TranscriptSegmentDTO
)

__all__ = [
    "CacheTranscriptRequestDTO",
    "CreateJobRequestDTO",
    "ErrorResponseDTO",
    "FinalizeJobRequestDTO",
    "HealthCheckDTO",
    "TranscriptDTO",
    "TranscriptSegmentDTO"
]
