"""
Use Case: Transcript Job Reaper
Tarefa periódica que retoma jobs com processamento travado e expira jobs
abandonados.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from loguru import logger

from lockin.domain.entities import ACTIVE_STATUSES, JobStatus, utcnow
from lockin.domain.interfaces import ITranscriptProcessor, ITranscriptsRepository
from lockin.infrastructure.storage import LocalChunkStorage

EXPIRED_MESSAGE = "Job expired before completion"


class TranscriptJobReaper:
    """
    Executa reap_stale_jobs() em background a cada `interval_minutes`.

    - Jobs em processing sem heartbeat há mais de `stale_minutes` são
      reenviados ao processador (que reivindica o job para este worker).
    - Jobs ativos sem atualização há mais de `job_ttl_minutes` viram failed.
    """

    def __init__(
        self,
        repository: ITranscriptsRepository,
        processor: ITranscriptProcessor,
        chunk_storage: Optional[LocalChunkStorage] = None,
        job_ttl_minutes: int = 120,
        stale_minutes: int = 10,
        interval_minutes: float = 5,
        clock: Callable[[], datetime] = utcnow
    ):
        self.repository = repository
        self.processor = processor
        self.chunk_storage = chunk_storage
        self.job_ttl_minutes = max(1, job_ttl_minutes)
        self.stale_minutes = max(1, stale_minutes)
        self.interval_minutes = interval_minutes
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info(
            f"TranscriptJobReaper initialized: ttl={self.job_ttl_minutes}min, "
            f"stale={self.stale_minutes}min, interval={interval_minutes}min"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def resume_stale_jobs(self) -> int:
        """Reenvia ao processador jobs em processing sem heartbeat recente."""
        stale_before = self._clock() - timedelta(minutes=self.stale_minutes)
        stale_jobs = await self.repository.list_transcript_jobs_by_heartbeat_before(
            [JobStatus.PROCESSING], stale_before
        )

        for job in stale_jobs:
            try:
                await self.processor.start_transcript_processing(job)
                logger.info(f"Resumed stale transcript job {job.id}")
            except Exception as e:
                logger.warning(f"Failed to resume stale job {job.id}: {e}")

        return len(stale_jobs)

    async def reap_stale_jobs(self) -> Dict[str, int]:
        """
        Executa uma rodada do reaper.

        Returns:
            dict: {reaped, resumed}
        """
        resumed = await self.resume_stale_jobs()

        cutoff = self._clock() - timedelta(minutes=self.job_ttl_minutes)
        expired_jobs = await self.repository.list_transcript_jobs_by_status_before(
            ACTIVE_STATUSES, cutoff
        )

        reaped = 0
        for job in expired_jobs:
            try:
                updated = await self.repository.update_transcript_job(
                    job.id,
                    job.user_id,
                    {"status": JobStatus.FAILED.value, "error": EXPIRED_MESSAGE},
                    expected_statuses=ACTIVE_STATUSES
                )
                if updated is None:
                    continue
                if self.chunk_storage is not None:
                    await self.chunk_storage.remove_job(job.user_id, job.id)
                reaped += 1
            except Exception as e:
                logger.warning(f"Failed to mark stale job {job.id}: {e}")

        if reaped or resumed:
            logger.info(f"🧹 Transcript reaper: reaped={reaped}, resumed={resumed}")
        return {"reaped": reaped, "resumed": resumed}

    async def _loop(self):
        """Loop do reaper (roda em background)."""
        logger.info(f"Starting transcript reaper loop: interval={self.interval_minutes}min")

        while self._running:
            try:
                await self.reap_stale_jobs()
                await asyncio.sleep(self.interval_minutes * 60)
            except asyncio.CancelledError:
                logger.info("Transcript reaper loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in transcript reaper loop: {e}")
                await asyncio.sleep(self.interval_minutes * 60)

    def start(self):
        """Inicia o reaper em background."""
        if self._running:
            logger.warning("Transcript reaper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Transcript reaper started")

    async def stop(self):
        """Para o reaper."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Transcript reaper stopped")
