"""
Repositório de transcrições em memória.

Usado em execução local (sem SUPABASE_URL) e nos testes. Cada método roda
sem pontos de suspensão, então cada operação é atômica no event loop.
"""
import math
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from lockin.domain.entities import (
    ACTIVE_STATUSES,
    ChunkStats,
    JobStatus,
    TranscriptJob,
    UploadAllowance,
    parse_timestamp,
    utcnow
)
from lockin.domain.interfaces import ITranscriptsRepository

UPLOAD_WINDOW_SECONDS = 60


class InMemoryTranscriptsRepository(ITranscriptsRepository):
    """Implementação em memória do repositório de transcrições."""
    
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self.jobs: Dict[str, TranscriptJob] = {}
        self.chunks: Dict[str, Dict[int, int]] = {}
        self.transcripts: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._upload_windows: Dict[str, Tuple[datetime, int]] = {}
    
    async def get_transcript_by_fingerprint(
        self,
        user_id: str,
        fingerprint: str
    ) -> Optional[Dict[str, Any]]:
        record = self.transcripts.get((user_id, fingerprint))
        return dict(record) if record else None
    
    async def upsert_transcript_cache(self, record: Dict[str, Any]) -> Dict[str, Any]:
        key = (record["user_id"], record["fingerprint"])
        existing = self.transcripts.get(key, {})
        stored = {**existing, **record}
        stored.setdefault("created_at", self._clock().isoformat())
        stored["updated_at"] = self._clock().isoformat()
        self.transcripts[key] = stored
        return dict(stored)
    
    async def create_transcript_job(
        self,
        user_id: str,
        fingerprint: str,
        media_url: str,
        media_url_normalized: Optional[str] = None,
        duration_ms: Optional[int] = None,
        provider: Optional[str] = None,
        expected_total_chunks: Optional[int] = None
    ) -> TranscriptJob:
        now = self._clock()
        job = TranscriptJob(
            id=str(uuid.uuid4()),
            user_id=user_id,
            fingerprint=fingerprint,
            media_url=media_url,
            media_url_normalized=media_url_normalized,
            duration_ms=duration_ms,
            provider=provider,
            expected_total_chunks=expected_total_chunks,
            created_at=now,
            updated_at=now
        )
        self.jobs[job.id] = job
        return replace(job)
    
    async def get_transcript_job(self, job_id: str, user_id: str) -> Optional[TranscriptJob]:
        job = self.jobs.get(job_id)
        if job is None or job.user_id != user_id:
            return None
        return replace(job)
    
    async def update_transcript_job(
        self,
        job_id: str,
        user_id: str,
        updates: Dict[str, Any],
        expected_statuses: Optional[Iterable[JobStatus]] = None
    ) -> Optional[TranscriptJob]:
        job = self.jobs.get(job_id)
        if job is None or job.user_id != user_id:
            return None
        if expected_statuses is not None and job.status not in set(expected_statuses):
            return None
        
        self.jobs[job_id] = self._apply(job, updates)
        return replace(self.jobs[job_id])
    
    def _apply(self, job: TranscriptJob, updates: Dict[str, Any]) -> TranscriptJob:
        changes = dict(updates)
        if "status" in changes:
            changes["status"] = JobStatus(changes["status"])
        for column in ("processing_started_at", "processing_heartbeat_at"):
            if column in changes:
                changes[column] = parse_timestamp(changes[column])
        changes["updated_at"] = self._clock()
        return replace(job, **changes)
    
    async def insert_transcript_job_chunk(self, job_id: str, chunk_index: int, byte_size: int) -> bool:
        job_chunks = self.chunks.setdefault(job_id, {})
        if chunk_index in job_chunks:
            return False
        job_chunks[chunk_index] = byte_size
        return True
    
    async def delete_transcript_job_chunk(self, job_id: str, chunk_index: int) -> None:
        self.chunks.get(job_id, {}).pop(chunk_index, None)
    
    async def delete_transcript_job_chunks(self, job_id: str) -> None:
        self.chunks.pop(job_id, None)
    
    async def list_transcript_job_chunk_indices(self, job_id: str) -> List[int]:
        return sorted(self.chunks.get(job_id, {}))
    
    async def get_transcript_job_chunk_stats(self, job_id: str) -> ChunkStats:
        indices = self.chunks.get(job_id, {})
        if not indices:
            return ChunkStats()
        return ChunkStats(count=len(indices), min_index=min(indices), max_index=max(indices))
    
    async def count_transcript_jobs_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1 for job in self.jobs.values()
            if job.user_id == user_id and job.created_at >= since
        )
    
    async def count_active_transcript_jobs(self, user_id: str) -> int:
        return len(await self.list_active_transcript_jobs(user_id))
    
    async def list_active_transcript_jobs(self, user_id: str) -> List[TranscriptJob]:
        jobs = [
            replace(job) for job in self.jobs.values()
            if job.user_id == user_id and job.status in ACTIVE_STATUSES
        ]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)
    
    async def consume_transcript_upload_bytes(
        self,
        user_id: str,
        byte_count: int,
        limit: int
    ) -> UploadAllowance:
        now = self._clock()
        window_start, used = self._upload_windows.get(user_id, (now, 0))
        elapsed = (now - window_start).total_seconds()
        if elapsed >= UPLOAD_WINDOW_SECONDS:
            window_start, used, elapsed = now, 0, 0.0
        
        if used + byte_count > limit:
            retry_after = max(1, math.ceil(UPLOAD_WINDOW_SECONDS - elapsed))
            self._upload_windows[user_id] = (window_start, used)
            return UploadAllowance(
                allowed=False,
                remaining=max(0, limit - used),
                retry_after_seconds=retry_after
            )
        
        used += byte_count
        self._upload_windows[user_id] = (window_start, used)
        return UploadAllowance(allowed=True, remaining=limit - used)
    
    async def list_transcript_jobs_by_status_before(
        self,
        statuses: Iterable[JobStatus],
        updated_before: datetime
    ) -> List[TranscriptJob]:
        wanted = set(statuses)
        return [
            replace(job) for job in self.jobs.values()
            if job.status in wanted and job.updated_at < updated_before
        ]
    
    async def list_transcript_jobs_by_heartbeat_before(
        self,
        statuses: Iterable[JobStatus],
        heartbeat_before: datetime
    ) -> List[TranscriptJob]:
        wanted = set(statuses)
        result = []
        for job in self.jobs.values():
            reference = job.processing_heartbeat_at or job.processing_started_at
            if job.status in wanted and reference is not None and reference < heartbeat_before:
                result.append(replace(job))
        return result
    
    async def claim_transcript_job_for_processing(
        self,
        job_id: str,
        worker_id: str,
        stale_before: datetime
    ) -> Optional[TranscriptJob]:
        job = self.jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return None
        
        heartbeat = job.processing_heartbeat_at
        claimable = (
            job.processing_worker_id in (None, worker_id)
            or (heartbeat is not None and heartbeat < stale_before)
        )
        if not claimable:
            return None
        
        self.jobs[job_id] = self._apply(job, {
            "processing_worker_id": worker_id,
            "processing_heartbeat_at": self._clock()
        })
        return replace(self.jobs[job_id])
