"""
Testes do SupabaseTranscriptsRepository (PostgREST via httpx.MockTransport).
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from lockin.domain.entities import JobStatus
from lockin.domain.exceptions import CircuitBreakerOpenError, StorageError
from lockin.infrastructure.supabase import SupabaseTranscriptsRepository, create_supabase_client
from lockin.infrastructure.utils import CircuitService

JOB_ROW = {
    "id": "job-1",
    "user_id": "user-1",
    "fingerprint": "fp-1",
    "status": "uploading",
    "expected_total_chunks": 3,
    "bytes_received": 2048,
    "error": None,
    "media_url": "https://cdn.example.com/video.webm",
    "created_at": "2026-03-10T12:00:00Z",
    "updated_at": "2026-03-10T12:01:00Z"
}


class Recorder:
    """Handler que grava requisições e devolve respostas programadas."""
    
    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests = []
    
    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _repository(breaker, recorder):
    client = create_supabase_client(
        "https://project.supabase.co/",
        "service-role-key",
        breaker,
        inner_transport=httpx.MockTransport(recorder)
    )
    return SupabaseTranscriptsRepository(client)


class TestSupabaseTranscriptsRepository:
    """Testes das consultas PostgREST."""
    
    @pytest.mark.asyncio
    async def test_get_job_filters_by_owner(self, breaker):
        """Busca job por id e user_id com headers de autenticação."""
        recorder = Recorder(httpx.Response(200, json=[JOB_ROW]))
        repository = _repository(breaker, recorder)
        
        job = await repository.get_transcript_job("job-1", "user-1")
        
        request = recorder.requests[0]
        assert request.url.path == "/rest/v1/transcript_jobs"
        assert request.url.params["id"] == "eq.job-1"
        assert request.url.params["user_id"] == "eq.user-1"
        assert request.headers["apikey"] == "service-role-key"
        assert request.headers["Authorization"] == "Bearer service-role-key"
        assert job.status == JobStatus.UPLOADING
        assert job.created_at == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    
    @pytest.mark.asyncio
    async def test_get_job_missing_returns_none(self, breaker):
        """Lista vazia significa job inexistente ou de outro usuário."""
        repository = _repository(breaker, Recorder(httpx.Response(200, json=[])))
        
        assert await repository.get_transcript_job("job-1", "other") is None
    
    @pytest.mark.asyncio
    async def test_conditional_update_adds_status_filter(self, breaker):
        """expected_statuses vira filtro status=in.(...) e vazio retorna None."""
        recorder = Recorder(httpx.Response(200, json=[]))
        repository = _repository(breaker, recorder)
        
        result = await repository.update_transcript_job(
            "job-1",
            "user-1",
            {"status": JobStatus.PROCESSING},
            expected_statuses={JobStatus.UPLOADED}
        )
        
        request = recorder.requests[0]
        assert result is None
        assert request.method == "PATCH"
        assert request.url.params["status"] == "in.(uploaded)"
        assert request.headers["Prefer"] == "return=representation"
        body = json.loads(request.content)
        assert body["status"] == "processing"
        assert "updated_at" in body
    
    @pytest.mark.asyncio
    async def test_chunk_insert_ignores_duplicates(self, breaker):
        """Insert idempotente: representação vazia indica duplicata."""
        recorder = Recorder(
            httpx.Response(201, json=[{"job_id": "job-1", "chunk_index": 0}]),
            httpx.Response(201, json=[])
        )
        repository = _repository(breaker, recorder)
        
        assert await repository.insert_transcript_job_chunk("job-1", 0, 100) is True
        assert await repository.insert_transcript_job_chunk("job-1", 0, 100) is False
        
        request = recorder.requests[0]
        assert request.url.params["on_conflict"] == "job_id,chunk_index"
        assert "resolution=ignore-duplicates" in request.headers["Prefer"]
    
    @pytest.mark.asyncio
    async def test_count_uses_content_range(self, breaker):
        """Contagem lida do header Content-Range."""
        recorder = Recorder(httpx.Response(206, json=[{"id": "x"}], headers={"Content-Range": "0-0/7"}))
        repository = _repository(breaker, recorder)
        
        count = await repository.count_transcript_jobs_since(
            "user-1", datetime(2026, 3, 10, tzinfo=timezone.utc)
        )
        
        assert count == 7
        assert recorder.requests[0].headers["Prefer"] == "count=exact"
    
    @pytest.mark.asyncio
    async def test_chunk_stats_from_indices(self, breaker):
        """Estatísticas calculadas dos índices ordenados."""
        recorder = Recorder(httpx.Response(200, json=[{"chunk_index": 0}, {"chunk_index": 1}, {"chunk_index": 4}]))
        repository = _repository(breaker, recorder)
        
        stats = await repository.get_transcript_job_chunk_stats("job-1")
        
        assert (stats.count, stats.min_index, stats.max_index) == (3, 0, 4)
        assert stats.covers(3) is False
    
    @pytest.mark.asyncio
    async def test_upload_rate_limit_rpc(self, breaker):
        """Limitador de bytes via RPC consume_transcript_upload_bytes."""
        recorder = Recorder(httpx.Response(200, json=[{"allowed": False, "remaining": 0, "retry_after_seconds": 42}]))
        repository = _repository(breaker, recorder)
        
        allowance = await repository.consume_transcript_upload_bytes("user-1", 1024, 4096)
        
        assert allowance.allowed is False
        assert allowance.retry_after_seconds == 42
        assert recorder.requests[0].url.path == "/rest/v1/rpc/consume_transcript_upload_bytes"
        assert json.loads(recorder.requests[0].content) == {"p_user_id": "user-1", "p_bytes": 1024, "p_limit": 4096}
    
    @pytest.mark.asyncio
    async def test_server_error_raises_storage_error_and_counts_failure(self, breaker):
        """HTTP 500 vira StorageError e conta falha no circuito."""
        repository = _repository(breaker, Recorder(httpx.Response(500, text="boom")))
        
        with pytest.raises(StorageError) as exc_info:
            await repository.get_transcript_job("job-1", "user-1")
        
        assert exc_info.value.details == {"status": 500}
        assert (await breaker.get_state(CircuitService.SUPABASE)).failures == 1
    
    @pytest.mark.asyncio
    async def test_open_circuit_propagates(self, breaker):
        """Circuito aberto gera CircuitBreakerOpenError sem chamada de rede."""
        recorder = Recorder()
        repository = _repository(breaker, recorder)
        for _ in range(3):
            await breaker.record_failure(CircuitService.SUPABASE)
        
        with pytest.raises(CircuitBreakerOpenError):
            await repository.get_transcript_job("job-1", "user-1")
        
        assert recorder.requests == []
