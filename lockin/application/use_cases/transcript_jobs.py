"""
Use Case: Transcript Jobs
Gerencia o ciclo de vida de jobs de transcrição enviados em chunks.

Fluxo: create_job -> upload_chunk (N vezes, em qualquer ordem) -> finalize_job.
Upload, finalização e cancelamento do mesmo job são serializados por um lock
por job; a finalização usa ainda um update condicional no repositório para
que o processamento seja disparado no máximo uma vez.
"""
import re
from datetime import datetime, time as dt_time
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger

from lockin.application.use_cases.transcript_cache import TranscriptCacheService
from lockin.domain.entities import (
    ACTIVE_STATUSES,
    UPLOADABLE_STATUSES,
    JobStatus,
    TranscriptJob,
    TranscriptLimits,
    utcnow
)
from lockin.domain.exceptions import (
    AppError,
    ChunkTooLargeError,
    MissingChunksError,
    QuotaExceededError,
    ResourceNotFoundError,
    TranscriptCanceledError,
    TranscriptInvalidStateError,
    UploadRateLimitError,
    ValidationError
)
from lockin.domain.interfaces import ITranscriptProcessor, ITranscriptsRepository
from lockin.domain.value_objects import coerce_number, normalize_media_url, sanitize_media_url
from lockin.infrastructure.utils import KeyedLock

_INTEGER = re.compile(r"^\d+$")

CANCELED_BY_USER = "Canceled"
CANCELED_BY_USER_BULK = "Canceled by user (bulk)"


def get_header(headers: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    """Busca header ignorando maiúsculas/minúsculas."""
    if not headers:
        return None
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if str(key).lower() == lowered:
                value = candidate
                break
    if value is None:
        return None
    return str(value).strip()


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not _INTEGER.match(text):
        return None
    return int(text)


def parse_chunk_index(value: Any) -> int:
    """
    Valida o header x-chunk-index.

    Raises:
        ValidationError: Se ausente ou não for inteiro >= 0
    """
    if value is None or value == "":
        raise ValidationError("Chunk index header is required", "x-chunk-index")
    index = _parse_int(value)
    if index is None or index < 0:
        raise ValidationError("Chunk index must be a non-negative integer", "x-chunk-index")
    return index


def parse_expected_total_chunks(value: Any) -> Optional[int]:
    """
    Valida o total de chunks esperado (header x-total-chunks ou payload).

    Returns:
        int ou None quando ausente

    Raises:
        ValidationError: Se presente e não for inteiro positivo
    """
    if value is None or value == "":
        return None
    total = _parse_int(value)
    if total is None or total <= 0:
        raise ValidationError("Total chunks must be a positive integer", "x-total-chunks")
    return total


class TranscriptJobsService:
    """
    Use Case para jobs de transcrição em chunks.

    Todas as operações retornam o corpo JSON (dict) enviado pela API.
    """

    def __init__(
        self,
        repository: ITranscriptsRepository,
        processor: ITranscriptProcessor,
        limits: Optional[TranscriptLimits] = None,
        cache_service: Optional[TranscriptCacheService] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Inicializa o use case.

        Args:
            repository: Repositório de jobs, chunks e cache
            processor: Colaborador que grava chunks e processa jobs
            limits: Limites de upload e quotas
            cache_service: Serviço de cache de transcrições externas
            clock: Fonte de tempo (UTC)
        """
        self.repository = repository
        self.processor = processor
        self.limits = limits or TranscriptLimits()
        self.cache_service = cache_service or TranscriptCacheService(repository)
        self._clock = clock
        self._job_locks = KeyedLock()

        logger.info(
            f"📋 TranscriptJobsService initialized "
            f"(chunk_max={self.limits.chunk_max_bytes}B, "
            f"daily_limit={self.limits.daily_job_limit}, "
            f"concurrent_limit={self.limits.max_concurrent_jobs})"
        )

    # ============= CRIAÇÃO =============

    async def create_job(self, user_id: str, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Cria um job de transcrição ou retorna a transcrição em cache.

        Args:
            user_id: Usuário autenticado
            payload: fingerprint, mediaUrl, mediaUrlNormalized, durationMs,
                provider, expectedTotalChunks

        Returns:
            dict: {success, job: {id, status}} ou job em cache (cached=True)

        Raises:
            ValidationError: Dados inválidos
            QuotaExceededError: Limite diário ou de jobs simultâneos atingido
            AppError: Duração acima do permitido (TRANSCRIPT_DURATION_LIMIT)
        """
        if not user_id:
            raise ValidationError("User context missing")

        payload = payload or {}
        fingerprint = payload.get("fingerprint")
        fingerprint = fingerprint.strip() if isinstance(fingerprint, str) else ""
        if not fingerprint:
            raise ValidationError("Fingerprint is required", "fingerprint")

        media_url = payload.get("mediaUrl")
        media_url = media_url.strip() if isinstance(media_url, str) else ""
        if not media_url:
            raise ValidationError("Media URL is required", "mediaUrl")

        cached = await self.repository.get_transcript_by_fingerprint(user_id, fingerprint)
        if cached and cached.get("transcript_json"):
            logger.info("✅ Transcript cache hit, skipping job creation", extra={"user_id": user_id})
            return {
                "success": True,
                "job": {
                    "id": None,
                    "status": JobStatus.COMPLETED.value,
                    "transcript": cached["transcript_json"],
                    "cached": True
                }
            }

        await self._enforce_quotas(user_id)

        duration_ms = coerce_number(payload.get("durationMs"))
        max_minutes = self.limits.max_duration_minutes
        if duration_ms is not None and max_minutes and duration_ms > max_minutes * 60_000:
            raise AppError(
                f"Media exceeds the maximum duration of {max_minutes} minutes.",
                code="TRANSCRIPT_DURATION_LIMIT",
                status_code=400,
                details={"maxMinutes": max_minutes}
            )

        expected_total_chunks = parse_expected_total_chunks(payload.get("expectedTotalChunks"))

        normalized_source = payload.get("mediaUrlNormalized")
        if not isinstance(normalized_source, str) or not normalized_source.strip():
            normalized_source = media_url

        provider = payload.get("provider")

        job = await self.repository.create_transcript_job(
            user_id=user_id,
            fingerprint=fingerprint,
            media_url=sanitize_media_url(media_url),
            media_url_normalized=normalize_media_url(normalized_source),
            duration_ms=int(duration_ms) if duration_ms is not None else None,
            provider=provider.strip() if isinstance(provider, str) and provider.strip() else None,
            expected_total_chunks=expected_total_chunks
        )

        logger.info(f"Transcript job created: {job.id}", extra={"user_id": user_id, "job_id": job.id})
        return {"success": True, "job": {"id": job.id, "status": job.status.value}}

    async def _enforce_quotas(self, user_id: str) -> None:
        now = self._clock()
        start_of_day = datetime.combine(now.date(), dt_time.min, tzinfo=now.tzinfo)

        daily_count = await self.repository.count_transcript_jobs_since(user_id, start_of_day)
        if daily_count >= self.limits.daily_job_limit:
            logger.warning("Daily transcript limit reached", extra={"user_id": user_id})
            raise QuotaExceededError(
                f"Daily limit of {self.limits.daily_job_limit} transcription jobs reached.",
                code="TRANSCRIPT_DAILY_LIMIT",
                limit=self.limits.daily_job_limit,
                current=daily_count
            )

        active_count = await self.repository.count_active_transcript_jobs(user_id)
        if active_count >= self.limits.max_concurrent_jobs:
            raise QuotaExceededError(
                f"Maximum of {self.limits.max_concurrent_jobs} concurrent transcription jobs reached.",
                code="TRANSCRIPT_CONCURRENT_LIMIT",
                limit=self.limits.max_concurrent_jobs,
                current=active_count
            )

    # ============= UPLOAD =============

    async def upload_chunk(
        self,
        user_id: str,
        job_id: str,
        chunk: bytes,
        headers: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Recebe um chunk de mídia.

        Chunks podem chegar fora de ordem e repetidos; o job passa a
        uploaded quando todos os índices [0, total) foram recebidos.

        Args:
            user_id: Usuário autenticado
            job_id: ID do job
            chunk: Bytes do chunk
            headers: x-chunk-index (obrigatório) e x-total-chunks (opcional)

        Returns:
            dict: {success, duplicate, status, bytesReceived, receivedChunks}

        Raises:
            ValidationError: Headers ou payload inválidos
            ChunkTooLargeError: Chunk acima do limite
            ResourceNotFoundError: Job inexistente ou de outro usuário
            TranscriptCanceledError: Job cancelado
            TranscriptInvalidStateError: Job não aceita uploads
            UploadRateLimitError: Limite de bytes por minuto excedido
        """
        chunk_index = parse_chunk_index(get_header(headers, "x-chunk-index"))
        header_total = parse_expected_total_chunks(get_header(headers, "x-total-chunks"))

        if not user_id:
            raise ValidationError("User context missing")
        if not job_id:
            raise ValidationError("Job ID is required", "job_id")
        if not chunk:
            raise ValidationError("Chunk payload is required", "chunk")

        size = len(chunk)
        if size > self.limits.chunk_max_bytes:
            raise ChunkTooLargeError(size, self.limits.chunk_max_bytes)

        async with self._job_locks.hold(job_id):
            job = await self._get_owned_job(user_id, job_id)
            self._ensure_uploadable(job)

            expected_total = job.expected_total_chunks or header_total
            if expected_total is not None and chunk_index >= expected_total:
                raise AppError(
                    "Chunk index out of range.",
                    code="TRANSCRIPT_CHUNK_OUT_OF_RANGE",
                    status_code=400,
                    details={"expectedTotalChunks": expected_total, "chunkIndex": chunk_index}
                )
            if (
                header_total is not None
                and job.expected_total_chunks is not None
                and header_total != job.expected_total_chunks
            ):
                raise AppError(
                    "Total chunks does not match the job.",
                    code="TRANSCRIPT_TOTAL_CHUNKS_MISMATCH",
                    status_code=409,
                    details={"expectedTotalChunks": job.expected_total_chunks}
                )

            if job.bytes_received + size > self.limits.max_total_bytes:
                raise AppError(
                    "Upload exceeds maximum allowed size.",
                    code="TRANSCRIPT_MAX_BYTES",
                    status_code=413,
                    details={"maxBytes": self.limits.max_total_bytes}
                )

            if self.limits.upload_bytes_per_minute:
                allowance = await self.repository.consume_transcript_upload_bytes(
                    user_id, size, self.limits.upload_bytes_per_minute
                )
                if not allowance.allowed:
                    logger.warning(
                        f"Upload rate limit hit for job {job_id}",
                        extra={"user_id": user_id, "retry_after": allowance.retry_after_seconds}
                    )
                    raise UploadRateLimitError(allowance.retry_after_seconds)

            inserted = await self.repository.insert_transcript_job_chunk(job_id, chunk_index, size)
            if not inserted:
                logger.debug(f"Duplicate chunk {chunk_index} ignored for job {job_id}")
                return {
                    "success": True,
                    "duplicate": True,
                    "status": job.status.value,
                    "bytesReceived": job.bytes_received
                }

            try:
                await self.processor.append_transcript_chunk(job_id, user_id, chunk, chunk_index)
            except Exception:
                await self.repository.delete_transcript_job_chunk(job_id, chunk_index)
                raise

            updated, received_chunks = await self._update_upload_state(job, size, header_total)

        return {
            "success": True,
            "duplicate": False,
            "status": updated.status.value,
            "bytesReceived": updated.bytes_received,
            "receivedChunks": received_chunks
        }

    async def _update_upload_state(
        self,
        job: TranscriptJob,
        size: int,
        header_total: Optional[int]
    ):
        stats = await self.repository.get_transcript_job_chunk_stats(job.id)
        expected_total = job.expected_total_chunks or header_total

        updates: Dict[str, Any] = {
            "status": JobStatus.UPLOADING.value,
            "bytes_received": job.bytes_received + size,
            "error": None
        }
        if job.expected_total_chunks is None and header_total is not None:
            updates["expected_total_chunks"] = header_total
        if expected_total is not None and stats.covers(expected_total):
            updates["status"] = JobStatus.UPLOADED.value

        updated = await self.repository.update_transcript_job(
            job.id, job.user_id, updates, expected_statuses=UPLOADABLE_STATUSES
        )
        if updated is None:
            current = await self._get_owned_job(job.user_id, job.id)
            if current.status == JobStatus.CANCELED:
                raise TranscriptCanceledError(job.id)
            raise TranscriptInvalidStateError(
                "Job no longer accepts uploads.", status=current.status.value
            )

        if updated.status == JobStatus.UPLOADED:
            logger.info(f"✅ All {expected_total} chunks received for job {job.id}")
        return updated, stats.count

    # ============= FINALIZAÇÃO =============

    async def finalize_job(
        self,
        user_id: str,
        job_id: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Finaliza o upload e dispara o processamento (idempotente).

        Args:
            user_id: Usuário autenticado
            job_id: ID do job
            payload: languageHint, maxMinutes, expectedTotalChunks

        Returns:
            dict: {success, job: {id, status, ...}}

        Raises:
            ResourceNotFoundError: Job inexistente
            TranscriptCanceledError: Job cancelado
            AppError: TRANSCRIPT_TOTAL_CHUNKS_REQUIRED
            MissingChunksError: Índices faltando
            TranscriptInvalidStateError: Status mudou concorrentemente
        """
        if not user_id:
            raise ValidationError("User context missing")
        if not job_id:
            raise ValidationError("Job ID is required", "job_id")

        payload = payload or {}
        language_hint = payload.get("languageHint")
        language_hint = language_hint.strip() if isinstance(language_hint, str) and language_hint.strip() else None
        max_minutes = coerce_number(payload.get("maxMinutes"))
        if max_minutes is not None and max_minutes <= 0:
            raise ValidationError("maxMinutes must be positive", "maxMinutes")
        payload_total = parse_expected_total_chunks(payload.get("expectedTotalChunks"))

        async with self._job_locks.hold(job_id):
            job = await self._get_owned_job(user_id, job_id)

            if job.status == JobStatus.COMPLETED:
                return {
                    "success": True,
                    "job": {
                        "id": job.id,
                        "status": job.status.value,
                        "transcript": await self._load_transcript(job)
                    }
                }
            if job.status == JobStatus.FAILED:
                return {"success": True, "job": {"id": job.id, "status": job.status.value, "error": job.error}}
            if job.status == JobStatus.CANCELED:
                raise TranscriptCanceledError(job.id)
            if job.status == JobStatus.PROCESSING and not job.is_processing_stale(
                self.limits.processing_stale_minutes, self._clock()
            ):
                logger.debug(f"Job {job.id} already processing, finalize is a no-op")
                return {"success": True, "job": {"id": job.id, "status": JobStatus.PROCESSING.value}}

            expected_total = job.expected_total_chunks or payload_total
            if not expected_total:
                raise AppError(
                    "Total chunks is required to finalize.",
                    code="TRANSCRIPT_TOTAL_CHUNKS_REQUIRED",
                    status_code=400
                )

            stats = await self.repository.get_transcript_job_chunk_stats(job.id)
            if not stats.covers(expected_total):
                raise MissingChunksError(expected_total, stats.count)

            now = self._clock()
            updates: Dict[str, Any] = {
                "status": JobStatus.PROCESSING.value,
                "expected_total_chunks": expected_total,
                "processing_started_at": now.isoformat(),
                "processing_heartbeat_at": None,
                "processing_worker_id": None,
                "language_hint": language_hint,
                "max_minutes": max_minutes,
                "error": None
            }
            updated = await self.repository.update_transcript_job(
                job.id, user_id, updates, expected_statuses={job.status}
            )
            if updated is None:
                raise TranscriptInvalidStateError(
                    "Job status changed during finalize.", status=job.status.value
                )

            if job.status == JobStatus.PROCESSING:
                logger.warning(f"Re-dispatching stale processing job {job.id}")

            await self.processor.start_transcript_processing(
                updated,
                {"languageHint": language_hint, "maxMinutes": max_minutes}
            )

        logger.info(f"🚀 Transcript job {job.id} finalized, processing started", extra={"user_id": user_id})
        return {"success": True, "job": {"id": job.id, "status": JobStatus.PROCESSING.value}}

    # ============= CANCELAMENTO =============

    async def cancel_job(self, user_id: str, job_id: str) -> Dict[str, Any]:
        """
        Cancela um job (apenas muda o status; o processamento para sozinho).

        Returns:
            dict: {success, job: {id, status, error}}
        """
        if not user_id:
            raise ValidationError("User context missing")
        if not job_id:
            raise ValidationError("Job ID is required", "job_id")
        return await self._cancel(user_id, job_id, CANCELED_BY_USER)

    async def _cancel(self, user_id: str, job_id: str, reason: str) -> Dict[str, Any]:
        async with self._job_locks.hold(job_id):
            job = await self._get_owned_job(user_id, job_id)

            if job.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED):
                return {"success": True, "job": {"id": job.id, "status": job.status.value, "error": job.error}}

            updated = await self.repository.update_transcript_job(
                job.id,
                user_id,
                {"status": JobStatus.CANCELED.value, "error": reason},
                expected_statuses=ACTIVE_STATUSES
            )
            if updated is None:
                current = await self._get_owned_job(user_id, job_id)
                return {
                    "success": True,
                    "job": {"id": current.id, "status": current.status.value, "error": current.error}
                }

        logger.info(f"Transcript job canceled: {job_id}", extra={"user_id": user_id, "reason": reason})
        return {"success": True, "job": {"id": updated.id, "status": updated.status.value, "error": updated.error}}

    # ============= CONSULTAS =============

    async def get_job(self, user_id: str, job_id: str) -> Dict[str, Any]:
        """Retorna status do job e a transcrição quando concluído."""
        if not user_id:
            raise ValidationError("User context missing")
        job = await self._get_owned_job(user_id, job_id)
        transcript = await self._load_transcript(job) if job.status == JobStatus.COMPLETED else None
        return {
            "success": True,
            "job": {
                "id": job.id,
                "status": job.status.value,
                "error": job.error,
                "transcript": transcript
            }
        }

    async def list_active_jobs(self, user_id: str) -> Dict[str, Any]:
        """Lista jobs ativos do usuário."""
        if not user_id:
            raise ValidationError("User context missing")
        jobs = await self.repository.list_active_transcript_jobs(user_id)
        return {
            "success": True,
            "jobs": [
                {
                    "id": job.id,
                    "status": job.status.value,
                    "fingerprint": job.fingerprint,
                    "mediaUrl": job.media_url,
                    "createdAt": job.created_at.isoformat(),
                    "updatedAt": job.updated_at.isoformat()
                }
                for job in jobs
            ],
            "count": len(jobs),
            "limit": self.limits.max_concurrent_jobs
        }

    async def cancel_all_active_jobs(self, user_id: str) -> Dict[str, Any]:
        """
        Cancela todos os jobs ativos do usuário.

        Falhas individuais são logadas e não interrompem o restante.

        Returns:
            dict: {canceledCount, canceledIds}
        """
        if not user_id:
            raise ValidationError("User context missing")

        jobs = await self.repository.list_active_transcript_jobs(user_id)
        canceled_ids = []
        for job in jobs:
            try:
                result = await self._cancel(user_id, job.id, CANCELED_BY_USER_BULK)
            except Exception as e:
                logger.warning(f"Failed to cancel job {job.id}: {e}", extra={"user_id": user_id})
                continue
            if result["job"]["status"] == JobStatus.CANCELED.value:
                canceled_ids.append(job.id)

        logger.info(f"Bulk cancel: {len(canceled_ids)} job(s) canceled", extra={"user_id": user_id})
        return {"canceledCount": len(canceled_ids), "canceledIds": canceled_ids}

    async def cache_transcript(self, user_id: str, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Salva transcrição obtida externamente no cache.

        Returns:
            dict: {success, fingerprint, cachedAt}
        """
        payload = payload or {}
        record = await self.cache_service.cache_external_transcript(
            user_id,
            payload.get("fingerprint"),
            payload.get("provider"),
            payload.get("transcript"),
            payload.get("meta")
        )
        return {
            "success": True,
            "fingerprint": record.get("fingerprint", payload.get("fingerprint")),
            "cachedAt": record.get("updated_at") or self._clock().isoformat()
        }

    # ============= HELPERS =============

    async def _get_owned_job(self, user_id: str, job_id: str) -> TranscriptJob:
        job = await self.repository.get_transcript_job(job_id, user_id)
        if job is None:
            raise ResourceNotFoundError("Transcript job", job_id)
        return job

    @staticmethod
    def _ensure_uploadable(job: TranscriptJob) -> None:
        if job.status == JobStatus.CANCELED:
            raise TranscriptCanceledError(job.id)
        if job.status not in UPLOADABLE_STATUSES:
            raise TranscriptInvalidStateError(
                f"Job does not accept uploads in status '{job.status.value}'.",
                status=job.status.value
            )

    async def _load_transcript(self, job: TranscriptJob) -> Optional[Dict[str, Any]]:
        record = await self.repository.get_transcript_by_fingerprint(job.user_id, job.fingerprint)
        return record.get("transcript_json") if record else None
