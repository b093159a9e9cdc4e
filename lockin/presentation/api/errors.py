"""
Tradução de exceções de domínio em respostas JSON.

Formato: {"error": code, "message", "request_id", "details"}.
"""
import math

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from lockin.domain.exceptions import DomainException

RETRYABLE_STATUS_CODES = (429, 503)


def _retry_after_seconds(exc: DomainException) -> int:
    details = exc.details or {}
    if details.get("retryAfterSeconds") is not None:
        return max(1, int(details["retryAfterSeconds"]))
    if details.get("retryAfterMs") is not None:
        return max(1, math.ceil(details["retryAfterMs"] / 1000))
    return 60


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Handler para qualquer DomainException."""
    request_id = getattr(request.state, "request_id", None)
    
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"request_id": request_id, "details": exc.details})
    else:
        logger.warning(f"{exc.code}: {exc.message}", extra={"request_id": request_id})
    
    headers = {}
    if exc.status_code in RETRYABLE_STATUS_CODES:
        headers["Retry-After"] = str(_retry_after_seconds(exc))
    
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "request_id": request_id,
            "details": exc.details
        },
        headers=headers or None
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler global para exceções não tratadas."""
    request_id = getattr(request.state, "request_id", None)
    logger.opt(exception=exc).error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "request_id": request_id,
            "details": {}
        }
    )
