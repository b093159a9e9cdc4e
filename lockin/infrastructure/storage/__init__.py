"""Storage module."""
from lockin.infrastructure.storage.chunk_storage import LocalChunkStorage
from lockin.infrastructure.storage.in_memory_repository import InMemoryTranscriptsRepository

__all__ = ["LocalChunkStorage", "InMemoryTranscriptsRepository"]
