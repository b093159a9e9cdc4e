"""API routes."""
from lockin.presentation.api.routes import health, transcripts

__all__ = ["health", "transcripts"]
