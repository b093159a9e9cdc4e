"""
Testes do TranscriptProcessingService (montagem, transcrição, cancelamento).
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from lockin.application.use_cases.transcript_processing import (
    TranscriptProcessingService,
    build_transcript_json,
    infer_media_format
)
from lockin.domain.entities import (
    JobStatus,
    TranscriptJob,
    TranscriptionResult,
    TranscriptionSegment
)
from lockin.domain.exceptions import CircuitBreakerOpenError, StorageError, TranscriptionError
from lockin.infrastructure.storage import LocalChunkStorage
from lockin.infrastructure.transcription import TranscriptionClient

USER = "user-1"


def _result():
    return TranscriptionResult(
        text="hello world",
        provider="azure-speech",
        fallback_used=False,
        duration=2.0,
        segments=[
            TranscriptionSegment(start=0.0, end=1.0, text="hello"),
            TranscriptionSegment(start=1.0, end=2.0, text="world")
        ]
    )


@pytest.fixture
def storage(tmp_path):
    return LocalChunkStorage(tmp_path)


@pytest.fixture
def transcription_client():
    client = AsyncMock(spec=TranscriptionClient)
    client.transcribe.return_value = _result()
    return client


@pytest.fixture
def service(repository, storage, transcription_client, clock):
    return TranscriptProcessingService(
        repository,
        storage,
        transcription_client,
        heartbeat_seconds=60,
        clock=clock,
        worker_id="worker-1"
    )


async def _processing_job(repository, storage, clock, chunks=(b"ab", b"cd"), duration_ms=None, **updates):
    job = await repository.create_transcript_job(
        USER,
        "fp-1",
        "https://cdn.example.com/audio/talk.mp3",
        duration_ms=duration_ms,
        expected_total_chunks=len(chunks)
    )
    for index, data in enumerate(chunks):
        await repository.insert_transcript_job_chunk(job.id, index, len(data))
        await storage.save_chunk(USER, job.id, index, data)
    return await repository.update_transcript_job(
        job.id, USER, {"status": "processing", "processing_started_at": clock(), **updates}
    )


async def _drain(service):
    await asyncio.gather(*list(service._tasks), return_exceptions=True)


class TestHelpers:
    """Testes das funções auxiliares."""
    
    @pytest.mark.parametrize("url,expected", [
        ("https://cdn.example.com/a/talk.mp3?x=1", "mp3"),
        ("https://cdn.example.com/a/talk.WAV", "wav"),
        ("https://cdn.example.com/a/talk.mpeg", "mp3"),
        ("https://cdn.example.com/a/talk.mp4", "webm"),
        ("https://cdn.example.com/watch", "webm"),
    ])
    def test_infer_media_format(self, url, expected):
        job = TranscriptJob(id="j", user_id=USER, fingerprint="fp", media_url=url)
        
        assert infer_media_format(job) == expected
    
    def test_build_transcript_json(self):
        assert build_transcript_json(_result()) == {
            "plainText": "hello world",
            "segments": [
                {"startMs": 0, "endMs": 1000, "text": "hello"},
                {"startMs": 1000, "endMs": 2000, "text": "world"}
            ],
            "durationMs": 2000
        }
    
    def test_plain_text_from_segments(self):
        """Sem texto agregado, o texto é montado a partir dos segmentos."""
        result = TranscriptionResult(
            text="",
            provider="openai-whisper",
            fallback_used=True,
            segments=[TranscriptionSegment(0.0, 0.5, "one"), TranscriptionSegment(0.5, 1.25, " two ")]
        )
        
        transcript = build_transcript_json(result)
        
        assert transcript["plainText"] == "one\ntwo"
        assert transcript["durationMs"] == 1250


class TestTranscriptProcessingService:
    """Testes do processamento em background."""
    
    @pytest.mark.asyncio
    async def test_append_chunk_writes_to_storage(self, service, storage):
        await service.append_transcript_chunk("job-1", USER, b"data", 4)
        
        assert await storage.read_chunk(USER, "job-1", 4) == b"data"
    
    @pytest.mark.asyncio
    async def test_append_chunk_requires_user(self, service):
        with pytest.raises(StorageError):
            await service.append_transcript_chunk("job-1", "", b"data", 0)
    
    @pytest.mark.asyncio
    async def test_completes_and_caches(self, service, repository, storage, transcription_client, clock):
        job = await _processing_job(repository, storage, clock)
        
        await service.start_transcript_processing(job, {"languageHint": "pt-BR"})
        await _drain(service)
        
        transcription_client.transcribe.assert_awaited_once_with(b"abcd", language="pt-BR", format="mp3")
        stored = repository.jobs[job.id]
        assert stored.status == JobStatus.COMPLETED
        assert stored.processing_worker_id == "worker-1"
        cached = await repository.get_transcript_by_fingerprint(USER, "fp-1")
        assert cached["transcript_json"]["plainText"] == "hello world"
        assert cached["provider"] == "azure-speech"
        assert cached["duration_ms"] == 2000
        assert not storage.job_dir(USER, job.id).exists()
    
    @pytest.mark.asyncio
    async def test_language_hint_from_job(self, service, repository, storage, transcription_client, clock):
        job = await _processing_job(repository, storage, clock, language_hint="es")
        
        await service.start_transcript_processing(job)
        await _drain(service)
        
        assert transcription_client.transcribe.await_args.kwargs["language"] == "es"
    
    @pytest.mark.asyncio
    async def test_cancel_during_transcription(self, service, repository, storage, transcription_client, clock):
        """Cancelamento durante a transcrição impede o cache e mantém o status."""
        job = await _processing_job(repository, storage, clock)
        
        async def cancel_then_return(*args, **kwargs):
            await repository.update_transcript_job(job.id, USER, {"status": "canceled", "error": "Canceled"})
            return _result()
        
        transcription_client.transcribe.side_effect = cancel_then_return
        
        await service.start_transcript_processing(job)
        await _drain(service)
        
        assert repository.jobs[job.id].status == JobStatus.CANCELED
        assert repository.jobs[job.id].error == "Canceled"
        assert await repository.get_transcript_by_fingerprint(USER, "fp-1") is None
        assert not storage.job_dir(USER, job.id).exists()
    
    @pytest.mark.asyncio
    async def test_provider_failure_marks_failed(self, service, repository, storage, transcription_client, clock):
        job = await _processing_job(repository, storage, clock)
        error = TranscriptionError("openai-whisper", "quota exceeded")
        transcription_client.transcribe.side_effect = error
        
        await service.start_transcript_processing(job)
        await _drain(service)
        
        assert repository.jobs[job.id].status == JobStatus.FAILED
        assert repository.jobs[job.id].error == error.message
    
    @pytest.mark.asyncio
    async def test_max_minutes_exceeded(self, service, repository, storage, transcription_client, clock):
        job = await _processing_job(repository, storage, clock, duration_ms=10 * 60_000)
        
        await service.start_transcript_processing(job, {"maxMinutes": 5})
        await _drain(service)
        
        assert repository.jobs[job.id].status == JobStatus.FAILED
        assert repository.jobs[job.id].error == "Video exceeds 5 minute limit"
        transcription_client.transcribe.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_missing_chunk_file_fails_job(self, service, repository, storage, clock):
        job = await _processing_job(repository, storage, clock)
        await storage.remove_job(USER, job.id)
        
        await service.start_transcript_processing(job)
        await _drain(service)
        
        assert repository.jobs[job.id].status == JobStatus.FAILED
        assert "Failed to read chunk 0" in repository.jobs[job.id].error
    
    @pytest.mark.asyncio
    async def test_claimed_by_live_worker(self, service, repository, storage, transcription_client, clock):
        """Job com heartbeat recente de outro worker não é processado."""
        job = await _processing_job(
            repository, storage, clock,
            processing_worker_id="worker-2",
            processing_heartbeat_at=clock()
        )
        
        await service.start_transcript_processing(job)
        
        assert service.active_tasks == 0
        transcription_client.transcribe.assert_not_awaited()
        assert repository.jobs[job.id].processing_worker_id == "worker-2"
    
    @pytest.mark.asyncio
    async def test_shutdown_cancels_in_flight(self, service, repository, storage, transcription_client, clock):
        job = await _processing_job(repository, storage, clock)
        started = asyncio.Event()
        
        async def slow_transcribe(*args, **kwargs):
            started.set()
            await asyncio.sleep(3600)
        
        transcription_client.transcribe.side_effect = slow_transcribe
        
        await service.start_transcript_processing(job)
        await started.wait()
        await service.shutdown()
        
        assert repository.jobs[job.id].status == JobStatus.PROCESSING
        assert storage.job_dir(USER, job.id).exists()
    
    @pytest.mark.asyncio
    async def test_resume_after_shutdown(self, service, repository, storage, transcription_client, clock):
        """Job interrompido no shutdown é retomado por outro worker com os chunks intactos."""
        job = await _processing_job(repository, storage, clock)
        started = asyncio.Event()
        
        async def slow_transcribe(*args, **kwargs):
            started.set()
            await asyncio.sleep(3600)
        
        transcription_client.transcribe.side_effect = slow_transcribe
        await service.start_transcript_processing(job)
        await started.wait()
        await service.shutdown()
        
        clock.advance(minutes=30)
        other_client = AsyncMock(spec=TranscriptionClient)
        other_client.transcribe.return_value = _result()
        other = TranscriptProcessingService(
            repository, storage, other_client, heartbeat_seconds=60, clock=clock, worker_id="worker-2"
        )
        
        await other.start_transcript_processing(repository.jobs[job.id])
        await _drain(other)
        
        other_client.transcribe.assert_awaited_once_with(b"abcd", language=None, format="mp3")
        assert repository.jobs[job.id].status == JobStatus.COMPLETED
        assert repository.jobs[job.id].processing_worker_id == "worker-2"
        assert not storage.job_dir(USER, job.id).exists()
    
    @pytest.mark.asyncio
    async def test_failed_status_write_error_keeps_job_for_reaper(
        self, service, repository, storage, transcription_client, clock, monkeypatch
    ):
        """Se gravar failed também falha, o erro é registrado e os chunks ficam para a retomada."""
        job = await _processing_job(repository, storage, clock)
        transcription_client.transcribe.side_effect = TranscriptionError("azure-speech", "HTTP 500")
        original_update = repository.update_transcript_job
        
        async def update(job_id, user_id, updates, expected_statuses=None):
            if updates.get("status") == JobStatus.FAILED.value:
                raise CircuitBreakerOpenError("supabase", 30_000)
            return await original_update(job_id, user_id, updates, expected_statuses=expected_statuses)
        
        monkeypatch.setattr(repository, "update_transcript_job", update)
        
        await service.start_transcript_processing(job)
        tasks = list(service._tasks)
        await asyncio.gather(*tasks)
        
        assert repository.jobs[job.id].status == JobStatus.PROCESSING
        assert storage.job_dir(USER, job.id).exists()
        assert all(task.exception() is None for task in tasks)
