"""
Testes do TranscriptionClient (failover primário → fallback).
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from lockin.domain.entities import ProviderTranscription, TranscriptionSegment
from lockin.domain.exceptions import CircuitBreakerOpenError, TranscriptionError, ValidationError
from lockin.infrastructure.transcription import TranscriptionClient
from lockin.infrastructure.utils import CircuitService, CircuitState

AZURE = CircuitService.AZURE_SPEECH


def _provider(service, name, text="hello world", error=None):
    provider = Mock()
    provider.service = service
    provider.name = name
    if error is not None:
        provider.transcribe = AsyncMock(side_effect=error)
    else:
        provider.transcribe = AsyncMock(return_value=ProviderTranscription(
            text=text,
            language="en-US",
            duration=1.5,
            segments=[TranscriptionSegment(start=0.0, end=1.5, text=text)]
        ))
    return provider


@pytest.fixture
def primary():
    return _provider(AZURE, "azure-speech", text="from azure")


@pytest.fixture
def fallback():
    return _provider(CircuitService.OPENAI_WHISPER, "openai-whisper", text="from whisper")


class TestTranscriptionClientFailover:
    """Testes do algoritmo de failover."""
    
    @pytest.mark.asyncio
    async def test_primary_success(self, breaker, primary, fallback):
        """Primário saudável atende sem fallback."""
        client = TranscriptionClient(primary, breaker, fallback)
        
        result = await client.transcribe(b"audio", language="en", format="webm")
        
        assert result.text == "from azure"
        assert result.provider == "azure-speech"
        assert result.fallback_used is False
        assert result.primary_error is None
        primary.transcribe.assert_awaited_once_with(b"audio", language="en", format="webm")
        fallback.transcribe.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_primary_failure_uses_fallback(self, breaker, fallback):
        """Falha do primário registra falha e usa o fallback."""
        primary = _provider(AZURE, "azure-speech", error=TranscriptionError("azure-speech", "HTTP 500"))
        client = TranscriptionClient(primary, breaker, fallback)
        
        result = await client.transcribe(b"audio")
        
        assert result.text == "from whisper"
        assert result.fallback_used is True
        assert "HTTP 500" in result.primary_error
        assert (await breaker.get_state(AZURE)).failures == 1
    
    @pytest.mark.asyncio
    async def test_open_circuit_skips_primary(self, breaker, primary, fallback):
        """Com o circuito aberto o primário não é chamado."""
        for _ in range(3):
            await breaker.record_failure(AZURE)
        client = TranscriptionClient(primary, breaker, fallback)
        
        result = await client.transcribe(b"audio")
        
        primary.transcribe.assert_not_awaited()
        assert result.fallback_used is True
        assert result.primary_error == "circuit open"
    
    @pytest.mark.asyncio
    async def test_fallback_error_propagates(self, breaker):
        """Erro do fallback propaga para o chamador."""
        primary = _provider(AZURE, "azure-speech", error=RuntimeError("primary down"))
        fallback = _provider(
            CircuitService.OPENAI_WHISPER,
            "openai-whisper",
            error=TranscriptionError("openai-whisper", "HTTP 503")
        )
        client = TranscriptionClient(primary, breaker, fallback)
        
        with pytest.raises(TranscriptionError, match="openai-whisper"):
            await client.transcribe(b"audio")
    
    @pytest.mark.asyncio
    async def test_no_fallback_open_circuit_raises_service_unavailable(self, breaker, primary):
        """Sem fallback e circuito aberto: SERVICE_UNAVAILABLE com retryAfterMs."""
        for _ in range(3):
            await breaker.record_failure(AZURE)
        client = TranscriptionClient(primary, breaker)
        
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await client.transcribe(b"audio")
        
        assert exc_info.value.code == "SERVICE_UNAVAILABLE"
        assert exc_info.value.details["retryAfterMs"] == 30_000
        primary.transcribe.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_no_fallback_primary_error_reraised(self, breaker):
        """Sem fallback, o erro do primário é relançado."""
        error = TranscriptionError("azure-speech", "recognition status NoMatch")
        client = TranscriptionClient(_provider(AZURE, "azure-speech", error=error), breaker)
        
        with pytest.raises(TranscriptionError) as exc_info:
            await client.transcribe(b"audio")
        
        assert exc_info.value is error
    
    @pytest.mark.asyncio
    async def test_primary_success_closes_half_open_circuit(self, breaker, ms_clock, primary, fallback):
        """Probe bem-sucedido fecha o circuito do primário."""
        for _ in range(3):
            await breaker.record_failure(AZURE)
        ms_clock.advance(30_000)
        client = TranscriptionClient(primary, breaker, fallback)
        
        result = await client.transcribe(b"audio")
        
        assert result.fallback_used is False
        assert (await breaker.get_state(AZURE)).state == CircuitState.CLOSED
    
    @pytest.mark.asyncio
    async def test_empty_audio_rejected(self, breaker, primary):
        """Áudio vazio gera ValidationError no campo audio."""
        client = TranscriptionClient(primary, breaker)
        
        with pytest.raises(ValidationError) as exc_info:
            await client.transcribe(b"")
        
        assert exc_info.value.details == {"field": "audio"}
    
    @pytest.mark.asyncio
    async def test_result_to_dict(self, breaker, primary):
        """to_dict usa chaves camelCase e segmentos em ms."""
        client = TranscriptionClient(primary, breaker)
        
        data = (await client.transcribe(b"audio")).to_dict()
        
        assert data["fallbackUsed"] is False
        assert data["segments"] == [{"startMs": 0, "endMs": 1500, "text": "from azure"}]
    
    @pytest.mark.asyncio
    async def test_canceled_primary_call_releases_half_open_slot(self, breaker, ms_clock, fallback):
        """Cancelar a chamada ao primário em HALF_OPEN libera o probe."""
        started = asyncio.Event()
        
        async def hang(*args, **kwargs):
            started.set()
            await asyncio.sleep(3600)
        
        primary = _provider(AZURE, "azure-speech")
        primary.transcribe = AsyncMock(side_effect=hang)
        for _ in range(3):
            await breaker.record_failure(AZURE)
        ms_clock.advance(30_001)
        client = TranscriptionClient(primary, breaker, fallback)
        
        task = asyncio.create_task(client.transcribe(b"x"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        
        ms_clock.advance(10 * 60_000)
        snapshot = await breaker.get_state(AZURE)
        assert snapshot.state == CircuitState.HALF_OPEN
        assert snapshot.half_open_attempts == 0
        fallback.transcribe.assert_not_awaited()
        assert (await breaker.can_request(AZURE)).allowed is True
