"""
Testes do TranscriptJobReaper.
"""
import asyncio

import pytest

from lockin.application.use_cases import TranscriptJobReaper
from lockin.domain.entities import JobStatus
from lockin.infrastructure.storage import LocalChunkStorage

USER = "user-1"


@pytest.fixture
def storage(tmp_path):
    return LocalChunkStorage(tmp_path)


@pytest.fixture
def reaper(repository, processor, storage, clock):
    return TranscriptJobReaper(
        repository,
        processor,
        chunk_storage=storage,
        job_ttl_minutes=120,
        stale_minutes=10,
        interval_minutes=5,
        clock=clock
    )


class TestTranscriptJobReaper:
    """Testes de expiração e retomada de jobs."""
    
    @pytest.mark.asyncio
    async def test_expires_abandoned_jobs(self, reaper, repository, storage, clock):
        job = await repository.create_transcript_job(USER, "fp-1", "https://cdn.example.com/a.webm")
        await storage.save_chunk(USER, job.id, 0, b"x")
        clock.advance(minutes=121)
        
        result = await reaper.reap_stale_jobs()
        
        assert result == {"reaped": 1, "resumed": 0}
        assert repository.jobs[job.id].status == JobStatus.FAILED
        assert repository.jobs[job.id].error == "Job expired before completion"
        assert not storage.job_dir(USER, job.id).exists()
    
    @pytest.mark.asyncio
    async def test_keeps_recent_and_terminal_jobs(self, reaper, repository, clock):
        recent = await repository.create_transcript_job(USER, "fp-1", "https://cdn.example.com/a.webm")
        done = await repository.create_transcript_job(USER, "fp-2", "https://cdn.example.com/b.webm")
        await repository.update_transcript_job(done.id, USER, {"status": "completed"})
        clock.advance(minutes=60)
        
        result = await reaper.reap_stale_jobs()
        
        assert result["reaped"] == 0
        assert repository.jobs[recent.id].status == JobStatus.CREATED
        assert repository.jobs[done.id].status == JobStatus.COMPLETED
    
    @pytest.mark.asyncio
    async def test_resumes_stale_processing(self, reaper, repository, processor, clock):
        job = await repository.create_transcript_job(USER, "fp-1", "https://cdn.example.com/a.webm")
        await repository.update_transcript_job(
            job.id, USER, {"status": "processing", "processing_started_at": clock()}
        )
        clock.advance(minutes=11)
        
        result = await reaper.reap_stale_jobs()
        
        assert result == {"reaped": 0, "resumed": 1}
        resumed = processor.start_transcript_processing.await_args.args[0]
        assert resumed.id == job.id
    
    @pytest.mark.asyncio
    async def test_resume_failure_does_not_stop_round(self, reaper, repository, processor, clock):
        job = await repository.create_transcript_job(USER, "fp-1", "https://cdn.example.com/a.webm")
        await repository.update_transcript_job(
            job.id, USER, {"status": "processing", "processing_started_at": clock()}
        )
        processor.start_transcript_processing.side_effect = RuntimeError("boom")
        clock.advance(minutes=130)
        
        result = await reaper.reap_stale_jobs()
        
        assert result == {"reaped": 1, "resumed": 1}
        assert repository.jobs[job.id].status == JobStatus.FAILED
    
    @pytest.mark.asyncio
    async def test_start_and_stop(self, reaper):
        reaper.start()
        assert reaper.is_running is True
        await asyncio.sleep(0)
        
        await reaper.stop()
        
        assert reaper.is_running is False
