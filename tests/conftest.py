"""
Configurações e fixtures pytest compartilhadas.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from lockin.domain.entities import TranscriptLimits
from lockin.domain.interfaces import ITranscriptProcessor
from lockin.infrastructure.storage import InMemoryTranscriptsRepository
from lockin.infrastructure.utils import CircuitBreaker, CircuitBreakerConfig


class FakeClock:
    """Relógio controlável (datetime UTC)."""
    
    def __init__(self, start: datetime = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)):
        self.now = start
    
    def __call__(self) -> datetime:
        return self.now
    
    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMsClock:
    """Relógio controlável em milissegundos (circuit breaker)."""
    
    def __init__(self, start: float = 1_000_000.0):
        self.now = start
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ms_clock():
    return FakeMsClock()


@pytest.fixture
def breaker(ms_clock):
    """Circuit breaker com limiar 3, 30s em OPEN e 1 probe."""
    return CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=3, open_duration_ms=30000, half_open_max_attempts=1),
        clock=ms_clock
    )


@pytest.fixture
def repository(clock):
    return InMemoryTranscriptsRepository(clock=clock)


@pytest.fixture
def processor():
    """Processador falso: grava nada e não processa."""
    return AsyncMock(spec=ITranscriptProcessor)


@pytest.fixture
def limits():
    return TranscriptLimits(
        chunk_max_bytes=1024,
        max_total_bytes=10 * 1024,
        upload_bytes_per_minute=8 * 1024,
        daily_job_limit=5,
        max_concurrent_jobs=2,
        max_duration_minutes=60,
        processing_stale_minutes=10
    )
