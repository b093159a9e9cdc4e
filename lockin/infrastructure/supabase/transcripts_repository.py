"""
Repositório de transcrições sobre a API PostgREST do Supabase.

Todas as chamadas passam pelo httpx.AsyncClient criado em
`create_supabase_client`, cujo transport aplica o circuit breaker.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import httpx
from loguru import logger

from lockin.domain.entities import (
    ACTIVE_STATUSES,
    ChunkStats,
    JobStatus,
    TranscriptJob,
    UploadAllowance,
    utcnow
)
from lockin.domain.exceptions import StorageError
from lockin.domain.interfaces import ITranscriptsRepository
from lockin.infrastructure.supabase.circuit_transport import CircuitBreakerTransport
from lockin.infrastructure.utils import CircuitBreaker

JOBS_TABLE = "transcript_jobs"
CHUNKS_TABLE = "transcript_job_chunks"
TRANSCRIPTS_TABLE = "transcripts"

CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)$")


def create_supabase_client(
    supabase_url: str,
    service_role_key: str,
    circuit_breaker: CircuitBreaker,
    timeout: float = 15.0,
    inner_transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Cria cliente httpx para o PostgREST com circuit breaker no transport.
    
    Args:
        supabase_url: URL do projeto (https://xyz.supabase.co)
        service_role_key: Chave service role
        circuit_breaker: Breaker compartilhado da aplicação
        timeout: Timeout por requisição em segundos
        inner_transport: Transport real (padrão: httpx.AsyncHTTPTransport)
    """
    return httpx.AsyncClient(
        base_url=f"{supabase_url.rstrip('/')}/rest/v1",
        headers={
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
            "Content-Type": "application/json"
        },
        timeout=timeout,
        transport=CircuitBreakerTransport(circuit_breaker, inner=inner_transport)
    )


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _in_filter(statuses: Iterable[JobStatus]) -> str:
    return "in.(" + ",".join(JobStatus(status).value for status in statuses) + ")"


class SupabaseTranscriptsRepository(ITranscriptsRepository):
    """Implementação PostgREST do repositório de transcrições."""
    
    def __init__(self, client: httpx.AsyncClient):
        self._client = client
    
    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=headers
            )
        except httpx.HTTPError as e:
            raise StorageError(
                f"Supabase {method} {path} failed: {type(e).__name__}: {e}"
            ) from e
        
        if response.status_code >= 400:
            logger.error(
                f"Supabase {method} {path} returned {response.status_code}",
                extra={"body": response.text[:500]}
            )
            raise StorageError(
                f"Supabase {method} {path} failed with status {response.status_code}",
                details={"status": response.status_code}
            )
        return response
    
    async def _select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        response = await self._request("GET", f"/{table}", params={"select": "*", **params})
        return response.json()
    
    async def _count(self, table: str, params: Dict[str, Any]) -> int:
        response = await self._request(
            "GET",
            f"/{table}",
            params={"select": "id", **params},
            headers={"Prefer": "count=exact", "Range-Unit": "items", "Range": "0-0"}
        )
        match = CONTENT_RANGE_TOTAL.search(response.headers.get("content-range", ""))
        if match:
            return int(match.group(1))
        return len(response.json())
    
    async def get_transcript_by_fingerprint(
        self,
        user_id: str,
        fingerprint: str
    ) -> Optional[Dict[str, Any]]:
        rows = await self._select(
            TRANSCRIPTS_TABLE,
            {"user_id": f"eq.{user_id}", "fingerprint": f"eq.{fingerprint}", "limit": 1}
        )
        return rows[0] if rows else None
    
    async def upsert_transcript_cache(self, record: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/{TRANSCRIPTS_TABLE}",
            params={"on_conflict": "user_id,fingerprint"},
            json={key: _serialize(value) for key, value in record.items()},
            headers={"Prefer": "resolution=merge-duplicates,return=representation"}
        )
        rows = response.json()
        return rows[0] if rows else dict(record)
    
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
        response = await self._request(
            "POST",
            f"/{JOBS_TABLE}",
            json={
                "user_id": user_id,
                "fingerprint": fingerprint,
                "media_url": media_url,
                "media_url_normalized": media_url_normalized,
                "duration_ms": duration_ms,
                "provider": provider,
                "expected_total_chunks": expected_total_chunks,
                "status": JobStatus.CREATED.value,
                "bytes_received": 0
            },
            headers={"Prefer": "return=representation"}
        )
        rows = response.json()
        if not rows:
            raise StorageError("Supabase did not return the created transcript job")
        return TranscriptJob.from_record(rows[0])
    
    async def get_transcript_job(self, job_id: str, user_id: str) -> Optional[TranscriptJob]:
        rows = await self._select(
            JOBS_TABLE,
            {"id": f"eq.{job_id}", "user_id": f"eq.{user_id}", "limit": 1}
        )
        return TranscriptJob.from_record(rows[0]) if rows else None
    
    async def update_transcript_job(
        self,
        job_id: str,
        user_id: str,
        updates: Dict[str, Any],
        expected_statuses: Optional[Iterable[JobStatus]] = None
    ) -> Optional[TranscriptJob]:
        params = {"id": f"eq.{job_id}", "user_id": f"eq.{user_id}"}
        if expected_statuses is not None:
            params["status"] = _in_filter(expected_statuses)
        
        payload = {key: _serialize(value) for key, value in updates.items()}
        payload["updated_at"] = utcnow().isoformat()
        
        response = await self._request(
            "PATCH",
            f"/{JOBS_TABLE}",
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"}
        )
        rows = response.json()
        return TranscriptJob.from_record(rows[0]) if rows else None
    
    async def insert_transcript_job_chunk(self, job_id: str, chunk_index: int, byte_size: int) -> bool:
        response = await self._request(
            "POST",
            f"/{CHUNKS_TABLE}",
            params={"on_conflict": "job_id,chunk_index"},
            json={"job_id": job_id, "chunk_index": chunk_index, "byte_size": byte_size},
            headers={"Prefer": "resolution=ignore-duplicates,return=representation"}
        )
        return len(response.json()) > 0
    
    async def delete_transcript_job_chunk(self, job_id: str, chunk_index: int) -> None:
        await self._request(
            "DELETE",
            f"/{CHUNKS_TABLE}",
            params={"job_id": f"eq.{job_id}", "chunk_index": f"eq.{chunk_index}"}
        )
    
    async def delete_transcript_job_chunks(self, job_id: str) -> None:
        await self._request("DELETE", f"/{CHUNKS_TABLE}", params={"job_id": f"eq.{job_id}"})
    
    async def list_transcript_job_chunk_indices(self, job_id: str) -> List[int]:
        response = await self._request(
            "GET",
            f"/{CHUNKS_TABLE}",
            params={
                "select": "chunk_index",
                "job_id": f"eq.{job_id}",
                "order": "chunk_index.asc"
            }
        )
        return [int(row["chunk_index"]) for row in response.json()]
    
    async def get_transcript_job_chunk_stats(self, job_id: str) -> ChunkStats:
        indices = await self.list_transcript_job_chunk_indices(job_id)
        if not indices:
            return ChunkStats()
        return ChunkStats(count=len(indices), min_index=indices[0], max_index=indices[-1])
    
    async def count_transcript_jobs_since(self, user_id: str, since: datetime) -> int:
        return await self._count(
            JOBS_TABLE,
            {"user_id": f"eq.{user_id}", "created_at": f"gte.{since.isoformat()}"}
        )
    
    async def count_active_transcript_jobs(self, user_id: str) -> int:
        return await self._count(
            JOBS_TABLE,
            {"user_id": f"eq.{user_id}", "status": _in_filter(ACTIVE_STATUSES)}
        )
    
    async def list_active_transcript_jobs(self, user_id: str) -> List[TranscriptJob]:
        rows = await self._select(
            JOBS_TABLE,
            {
                "user_id": f"eq.{user_id}",
                "status": _in_filter(ACTIVE_STATUSES),
                "order": "created_at.desc"
            }
        )
        return [TranscriptJob.from_record(row) for row in rows]
    
    async def consume_transcript_upload_bytes(
        self,
        user_id: str,
        byte_count: int,
        limit: int
    ) -> UploadAllowance:
        response = await self._request(
            "POST",
            "/rpc/consume_transcript_upload_bytes",
            json={"p_user_id": user_id, "p_bytes": byte_count, "p_limit": limit}
        )
        result = response.json()
        if isinstance(result, list):
            result = result[0] if result else {}
        return UploadAllowance(
            allowed=bool(result.get("allowed")),
            remaining=int(result.get("remaining") or 0),
            retry_after_seconds=int(result.get("retry_after_seconds") or 0)
        )
    
    async def list_transcript_jobs_by_status_before(
        self,
        statuses: Iterable[JobStatus],
        updated_before: datetime
    ) -> List[TranscriptJob]:
        rows = await self._select(
            JOBS_TABLE,
            {"status": _in_filter(statuses), "updated_at": f"lt.{updated_before.isoformat()}"}
        )
        return [TranscriptJob.from_record(row) for row in rows]
    
    async def list_transcript_jobs_by_heartbeat_before(
        self,
        statuses: Iterable[JobStatus],
        heartbeat_before: datetime
    ) -> List[TranscriptJob]:
        cutoff = heartbeat_before.isoformat()
        rows = await self._select(
            JOBS_TABLE,
            {
                "status": _in_filter(statuses),
                "or": (
                    f"(processing_heartbeat_at.lt.{cutoff},"
                    f"and(processing_heartbeat_at.is.null,processing_started_at.lt.{cutoff}))"
                )
            }
        )
        return [TranscriptJob.from_record(row) for row in rows]
    
    async def claim_transcript_job_for_processing(
        self,
        job_id: str,
        worker_id: str,
        stale_before: datetime
    ) -> Optional[TranscriptJob]:
        now = utcnow()
        response = await self._request(
            "PATCH",
            f"/{JOBS_TABLE}",
            params={
                "id": f"eq.{job_id}",
                "status": f"eq.{JobStatus.PROCESSING.value}",
                "or": (
                    f"(processing_worker_id.is.null,processing_worker_id.eq.{worker_id},"
                    f"processing_heartbeat_at.lt.{stale_before.isoformat()})"
                )
            },
            json={
                "processing_worker_id": worker_id,
                "processing_heartbeat_at": now.isoformat(),
                "updated_at": now.isoformat()
            },
            headers={"Prefer": "return=representation"}
        )
        rows = response.json()
        return TranscriptJob.from_record(rows[0]) if rows else None
