"""Use cases package."""
from lockin.application.use_cases.transcript_cache import TranscriptCacheService, normalize_transcript
from lockin.application.use_cases.transcript_jobs import (
    TranscriptJobsService,
    parse_chunk_index,
    parse_expected_total_chunks
)
from lockin.application.use_cases.transcript_processing import (
    ProcessingCanceled,
    TranscriptProcessingService
)
from lockin.application.use_cases.transcript_reaper import TranscriptJobReaper

__all__ = [
    "ProcessingCanceled",
    "TranscriptCacheService",
    "TranscriptJobReaper",
    "TranscriptJobsService",
    "TranscriptProcessingService",
    "normalize_transcript",
    "parse_chunk_index",
    "parse_expected_total_chunks"
]
