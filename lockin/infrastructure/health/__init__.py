"""Health checks."""
from lockin.infrastructure.health.circuit_breaker_status import CircuitBreakerStatusService

__all__ = ["CircuitBreakerStatusService"]
