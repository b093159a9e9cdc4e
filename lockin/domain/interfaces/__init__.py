"""Domain interfaces package."""
from lockin.domain.interfaces.circuit_state_store import ICircuitStateStore
from lockin.domain.interfaces.transcript_processor import ITranscriptProcessor
from lockin.domain.interfaces.transcription_provider import ITranscriptionProvider
from lockin.domain.interfaces.transcripts_repository import ITranscriptsRepository

__all__ = [
    "ICircuitStateStore",
    "ITranscriptProcessor",
    "ITranscriptionProvider",
    "ITranscriptsRepository"
]
