"""Utils module."""
from lockin.infrastructure.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitDecision,
    CircuitService,
    CircuitSnapshot,
    CircuitState
)
from lockin.infrastructure.utils.circuit_state_store import (
    InMemoryCircuitStateStore,
    RedisCircuitStateStore
)
from lockin.infrastructure.utils.keyed_lock import KeyedLock

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitDecision",
    "CircuitService",
    "CircuitSnapshot",
    "CircuitState",
    "InMemoryCircuitStateStore",
    "RedisCircuitStateStore",
    "KeyedLock"
]
