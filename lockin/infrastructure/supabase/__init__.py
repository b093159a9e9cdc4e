"""Supabase integration (PostgREST over httpx, circuit-gated)."""
from lockin.infrastructure.supabase.circuit_transport import (
    CircuitBreakerTransport,
    is_failure_status,
    is_network_error
)
from lockin.infrastructure.supabase.transcripts_repository import (
    SupabaseTranscriptsRepository,
    create_supabase_client
)

__all__ = [
    "CircuitBreakerTransport",
    "SupabaseTranscriptsRepository",
    "create_supabase_client",
    "is_failure_status",
    "is_network_error"
]
