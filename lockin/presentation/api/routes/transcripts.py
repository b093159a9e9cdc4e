"""
Rotas de jobs de transcrição.

Upload em chunks: cria o job, envia os chunks (PUT com x-chunk-index e
x-total-chunks) e finaliza. A identidade do usuário vem do header x-user-id.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from lockin.application.dtos import (
    CacheTranscriptRequestDTO,
    CreateJobRequestDTO,
    ErrorResponseDTO,
    FinalizeJobRequestDTO
)
from lockin.application.use_cases import TranscriptJobsService
from lockin.config import settings
from lockin.presentation.api.dependencies import get_jobs_service, get_user_id

router = APIRouter(prefix="/api/v1/transcripts", tags=["Transcripts"])

# Rate limiter instance
limiter = Limiter(key_func=get_remote_address)

ERROR_RESPONSES = {
    400: {"description": "Invalid request", "model": ErrorResponseDTO},
    404: {"description": "Job not found", "model": ErrorResponseDTO},
    409: {"description": "Job state conflict", "model": ErrorResponseDTO},
    429: {"description": "Rate or quota limit exceeded", "model": ErrorResponseDTO},
    503: {"description": "Upstream service unavailable (circuit open)", "model": ErrorResponseDTO}
}


@router.post(
    "/jobs",
    status_code=status.HTTP_200_OK,
    summary="Create transcript job",
    description="Creates a chunked upload job, or returns the cached transcript for the fingerprint.",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_default)
async def create_job(
    request: Request,
    body: CreateJobRequestDTO,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    return await service.create_job(user_id, body.to_payload())


@router.get(
    "/jobs/active",
    summary="List active jobs",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_default)
async def list_active_jobs(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    return await service.list_active_jobs(user_id)


@router.post(
    "/jobs/cancel-all",
    summary="Cancel all active jobs",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_default)
async def cancel_all_active_jobs(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    return await service.cancel_all_active_jobs(user_id)


@router.put(
    "/jobs/{job_id}/chunks",
    summary="Upload chunk",
    description="""
    Uploads one chunk as the raw request body.
    
    **Headers**: `x-chunk-index` (required, >= 0), `x-total-chunks` (optional, > 0).
    
    Chunks may arrive out of order; duplicates are acknowledged without effect.
    """,
    responses={**ERROR_RESPONSES, 413: {"description": "Chunk or upload too large", "model": ErrorResponseDTO}}
)
@limiter.limit(settings.rate_limit_upload)
async def upload_chunk(
    request: Request,
    job_id: str,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    chunk = await request.body()
    return await service.upload_chunk(user_id, job_id, chunk, request.headers)


@router.post(
    "/jobs/{job_id}/finalize",
    summary="Finalize job",
    description="Validates that every chunk arrived and starts transcription in background.",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_default)
async def finalize_job(
    request: Request,
    job_id: str,
    body: Optional[FinalizeJobRequestDTO] = None,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    payload = body.to_payload() if body else {}
    return await service.finalize_job(user_id, job_id, payload)


@router.post(
    "/jobs/{job_id}/cancel",
    summary="Cancel job",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_default)
async def cancel_job(
    request: Request,
    job_id: str,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    return await service.cancel_job(user_id, job_id)


@router.get(
    "/jobs/{job_id}",
    summary="Get job status",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_upload)
async def get_job(
    request: Request,
    job_id: str,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    return await service.get_job(user_id, job_id)


@router.post(
    "/cache",
    summary="Cache external transcript",
    description="Stores a transcript obtained by the client (e.g. site captions) for later deduplication.",
    responses=ERROR_RESPONSES
)
@limiter.limit(settings.rate_limit_default)
async def cache_transcript(
    request: Request,
    body: CacheTranscriptRequestDTO,
    user_id: str = Depends(get_user_id),
    service: TranscriptJobsService = Depends(get_jobs_service)
) -> Dict[str, Any]:
    return await service.cache_transcript(user_id, body.to_payload())
