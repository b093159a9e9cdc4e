"""
Rotas de sistema.
Health check e estado dos circuit breakers.
"""
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger
from slowapi import Limiter
from slowapi.util import get_remote_address

from lockin.application.dtos import HealthCheckDTO
from lockin.config import settings
from lockin.infrastructure.health import CircuitBreakerStatusService
from lockin.presentation.api.dependencies import get_status_service

router = APIRouter(tags=["System"])

# Rate limiter instance
limiter = Limiter(key_func=get_remote_address)


@router.get(
    "/health",
    response_model=HealthCheckDTO,
    summary="Health check",
    description="Returns the API liveness status and version"
)
@limiter.limit("60/minute")
async def health_check(request: Request) -> HealthCheckDTO:
    return HealthCheckDTO(
        status="healthy",
        version=settings.app_version,
        environment=settings.app_environment,
        timestamp=time.time()
    )


@router.get(
    "/health/circuits",
    summary="Circuit breaker status",
    description="State, failures and remaining open time of each circuit breaker"
)
@limiter.limit(settings.rate_limit_default)
async def circuit_status(
    request: Request,
    status_service: CircuitBreakerStatusService = Depends(get_status_service)
) -> Dict[str, Any]:
    return await status_service.get_status()


@router.post(
    "/health/circuits/reset",
    summary="Reset circuit breakers",
    description="Resets one circuit (`service=supabase|azure-speech|openai-whisper`) or all of them"
)
@limiter.limit("10/minute")
async def reset_circuits(
    request: Request,
    service: Optional[str] = Query(default=None, description="Service name or 'all'"),
    status_service: CircuitBreakerStatusService = Depends(get_status_service)
) -> Dict[str, Any]:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.info(f"Circuit reset requested: service={service or 'all'}", extra={"request_id": request_id})
    return await status_service.reset(service)
