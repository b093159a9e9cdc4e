"""
Use Case: Transcript Processing
Monta os chunks de um job finalizado, transcreve e grava o resultado no cache.

O processamento roda em background (asyncio.Task). Cada worker se identifica
por WORKER_ID e mantém um heartbeat no job; jobs sem heartbeat recente podem
ser reivindicados por outro worker (ver TranscriptJobReaper).
"""
import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, Optional, Set
from urllib.parse import urlsplit

from loguru import logger

from lockin.domain.entities import JobStatus, TranscriptJob, TranscriptionResult, utcnow
from lockin.domain.exceptions import DomainException, StorageError
from lockin.domain.interfaces import ITranscriptProcessor, ITranscriptsRepository
from lockin.infrastructure.storage import LocalChunkStorage
from lockin.infrastructure.transcription import TranscriptionClient

WORKER_ID = str(uuid.uuid4())

SUPPORTED_FORMATS = ("wav", "mp3", "ogg", "webm")
DEFAULT_FORMAT = "webm"


class ProcessingCanceled(Exception):
    """Job foi cancelado durante o processamento."""


@dataclass
class _ProcessingState:
    job_id: str
    user_id: str
    cancel_requested: bool = False


def infer_media_format(job: TranscriptJob) -> str:
    """Deduz o formato do áudio pela extensão da URL de mídia."""
    for candidate in (job.media_url, job.media_url_normalized):
        if not candidate:
            continue
        suffix = PurePosixPath(urlsplit(candidate).path).suffix.lower().lstrip(".")
        if suffix == "mpeg":
            return "mp3"
        if suffix in SUPPORTED_FORMATS:
            return suffix
    return DEFAULT_FORMAT


def build_transcript_json(result: TranscriptionResult) -> Dict[str, Any]:
    """Converte o resultado do cliente no formato armazenado em transcript_json."""
    segments = [segment.to_dict() for segment in result.segments if segment.text.strip()]
    plain_text = result.text.strip() if result.text else ""
    if not plain_text:
        plain_text = "\n".join(segment["text"].strip() for segment in segments)

    transcript: Dict[str, Any] = {"plainText": plain_text, "segments": segments}
    if result.duration is not None:
        transcript["durationMs"] = int(round(result.duration * 1000))
    elif segments:
        transcript["durationMs"] = segments[-1]["endMs"]
    return transcript


class TranscriptProcessingService(ITranscriptProcessor):
    """
    Processador de jobs de transcrição.

    Persiste chunks em disco e, após a finalização, executa em background:
    montagem -> verificação de duração -> transcrição -> cache -> completed.
    """

    def __init__(
        self,
        repository: ITranscriptsRepository,
        chunk_storage: LocalChunkStorage,
        transcription_client: TranscriptionClient,
        stale_minutes: int = 10,
        heartbeat_seconds: float = 30,
        clock: Callable[[], datetime] = utcnow,
        worker_id: str = WORKER_ID
    ):
        self.repository = repository
        self.chunk_storage = chunk_storage
        self.transcription_client = transcription_client
        self.stale_minutes = max(1, stale_minutes)
        self.heartbeat_seconds = max(0.01, heartbeat_seconds)
        self.worker_id = worker_id
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

        logger.info(
            f"TranscriptProcessingService created: worker={worker_id}, "
            f"heartbeat={heartbeat_seconds}s, stale={stale_minutes}min"
        )

    @property
    def active_tasks(self) -> int:
        """Número de jobs em processamento neste worker."""
        return len(self._tasks)

    async def append_transcript_chunk(
        self,
        job_id: str,
        user_id: str,
        chunk: bytes,
        chunk_index: int
    ) -> None:
        if not user_id:
            raise StorageError("Transcript chunk upload requires user_id")
        await self.chunk_storage.save_chunk(user_id, job_id, chunk_index, chunk)

    async def start_transcript_processing(
        self,
        job: TranscriptJob,
        options: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Reivindica o job e agenda o processamento em background.

        Retorna sem aguardar a transcrição. Se outro worker detém o job
        (heartbeat recente), nada é feito.
        """
        stale_before = self._clock() - timedelta(minutes=self.stale_minutes)
        claimed = await self.repository.claim_transcript_job_for_processing(
            job.id, self.worker_id, stale_before
        )
        if claimed is None:
            logger.info(f"Job {job.id} already claimed by another worker")
            return

        task = asyncio.create_task(
            self._run(claimed, self._effective_options(claimed, options)),
            name=f"transcript-job-{job.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"🎙️ Processing scheduled for job {job.id}", extra={"worker_id": self.worker_id})

    @staticmethod
    def _effective_options(job: TranscriptJob, options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        options = options or {}
        language = options.get("languageHint")
        max_minutes = options.get("maxMinutes")
        return {
            "languageHint": language if isinstance(language, str) and language else job.language_hint,
            "maxMinutes": max_minutes if isinstance(max_minutes, (int, float)) else job.max_minutes
        }

    async def _run(self, job: TranscriptJob, options: Dict[str, Any]) -> None:
        state = _ProcessingState(job_id=job.id, user_id=job.user_id)
        heartbeat = asyncio.create_task(self._heartbeat(state))

        try:
            await self._process(job, options, state)
            terminal = True
        except ProcessingCanceled:
            logger.info(f"Processing stopped, job canceled: {job.id}")
            terminal = True
        except asyncio.CancelledError:
            # Chunks ficam em disco para o worker que retomar o job
            logger.warning(f"Processing interrupted for job {job.id}")
            raise
        except Exception as e:
            message = e.message if isinstance(e, DomainException) else str(e)
            logger.error(f"❌ Processing failed for job {job.id}: {message}")
            terminal = await self._mark_failed(job, message or "Transcription failed")
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

        if terminal:
            await self.chunk_storage.remove_job(job.user_id, job.id)

    async def _mark_failed(self, job: TranscriptJob, message: str) -> bool:
        """Grava status failed; retorna False se o job continua em processing."""
        try:
            await self.repository.update_transcript_job(
                job.id,
                job.user_id,
                {"status": JobStatus.FAILED.value, "error": message},
                expected_statuses={JobStatus.PROCESSING}
            )
        except Exception as e:
            logger.error(
                f"Could not mark job {job.id} as failed, leaving it for the reaper: {e}",
                extra={"worker_id": self.worker_id}
            )
            return False
        return True

    async def _process(self, job: TranscriptJob, options: Dict[str, Any], state: _ProcessingState) -> None:
        await self._ensure_not_canceled(state)

        max_minutes = options.get("maxMinutes")
        if max_minutes and job.duration_ms and job.duration_ms > max_minutes * 60_000:
            raise ValueError(f"Video exceeds {max_minutes:g} minute limit")

        audio = await self._assemble(job, state)

        await self._ensure_not_canceled(state)
        result = await self.transcription_client.transcribe(
            audio,
            language=options.get("languageHint"),
            format=infer_media_format(job)
        )

        await self._ensure_not_canceled(state)
        transcript = build_transcript_json(result)
        await self.repository.upsert_transcript_cache({
            "user_id": job.user_id,
            "fingerprint": job.fingerprint,
            "provider": job.provider or result.provider,
            "media_url_redacted": job.media_url,
            "media_url_normalized": job.media_url_normalized,
            "etag": None,
            "last_modified": None,
            "duration_ms": job.duration_ms or transcript.get("durationMs"),
            "transcript_json": transcript
        })

        completed = await self.repository.update_transcript_job(
            job.id,
            job.user_id,
            {"status": JobStatus.COMPLETED.value, "error": None},
            expected_statuses={JobStatus.PROCESSING}
        )
        if completed is None:
            raise ProcessingCanceled(job.id)

        logger.info(
            f"✅ Transcript job completed: {job.id} "
            f"(provider={result.provider}, fallback={result.fallback_used})"
        )

    async def _assemble(self, job: TranscriptJob, state: _ProcessingState) -> bytes:
        indices = await self.repository.list_transcript_job_chunk_indices(job.id)
        if not indices:
            raise StorageError("Uploaded media not found for this job")
        if job.expected_total_chunks and len(indices) != job.expected_total_chunks:
            raise StorageError("Uploaded chunks are incomplete")

        parts = []
        for chunk_index in indices:
            await self._ensure_not_canceled(state)
            parts.append(await self.chunk_storage.read_chunk(job.user_id, job.id, chunk_index))

        audio = b"".join(parts)
        logger.debug(f"Assembled {len(indices)} chunks for job {job.id} ({len(audio)} bytes)")
        return audio

    async def _ensure_not_canceled(self, state: _ProcessingState) -> None:
        if state.cancel_requested:
            raise ProcessingCanceled(state.job_id)
        job = await self.repository.get_transcript_job(state.job_id, state.user_id)
        if job is None or job.status == JobStatus.CANCELED:
            state.cancel_requested = True
            raise ProcessingCanceled(state.job_id)

    async def _heartbeat(self, state: _ProcessingState) -> None:
        while not state.cancel_requested:
            await asyncio.sleep(self.heartbeat_seconds)
            try:
                job = await self.repository.get_transcript_job(state.job_id, state.user_id)
                if job is None or job.status == JobStatus.CANCELED:
                    state.cancel_requested = True
                    return
                await self.repository.update_transcript_job(
                    state.job_id,
                    state.user_id,
                    {
                        "processing_heartbeat_at": self._clock().isoformat(),
                        "processing_worker_id": self.worker_id
                    },
                    expected_statuses={JobStatus.PROCESSING}
                )
            except DomainException as e:
                logger.warning(f"Processing heartbeat failed for job {state.job_id}: {e.message}")

    async def shutdown(self) -> None:
        """Cancela tarefas em andamento (chamado no shutdown da aplicação)."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(f"Cancelling {len(tasks)} in-flight transcript job(s)")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
