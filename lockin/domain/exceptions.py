"""
Exceções customizadas para a aplicação.

Toda exceção de domínio carrega `code`, `status_code` e `details`, que a
camada HTTP repassa sem alteração para o corpo JSON da resposta.
"""
from typing import Any, Dict, Optional


class DomainException(Exception):
    """Exceção base para erros de domínio."""
    
    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    
    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details: Dict[str, Any] = details or {}
    
    def to_dict(self) -> dict:
        """Converte para dicionário."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class AppError(DomainException):
    """Erro de aplicação com código e status explícitos."""


class ValidationError(DomainException):
    """Erro de validação."""
    
    code = "VALIDATION_ERROR"
    status_code = 400
    
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, details={"field": field} if field else None)


class ResourceNotFoundError(DomainException):
    """Recurso não encontrado (também usado para ownership divergente)."""
    
    code = "NOT_FOUND"
    status_code = 404
    
    def __init__(self, resource: str, resource_id: Any = None):
        self.resource = resource
        self.resource_id = resource_id
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)


class ServiceUnavailableError(DomainException):
    """Serviço indisponível."""
    
    code = "SERVICE_UNAVAILABLE"
    status_code = 503


class CircuitBreakerOpenError(ServiceUnavailableError):
    """Exceção lançada quando o circuit breaker nega a chamada."""
    
    def __init__(self, service: str, retry_after_ms: int, message: Optional[str] = None):
        self.service = service
        self.retry_after_ms = retry_after_ms
        super().__init__(
            message or f"{service} temporarily unavailable (circuit open)",
            details={"retryAfterMs": retry_after_ms, "service": service}
        )


class QuotaExceededError(DomainException):
    """Quota/limite de uso excedido."""
    
    status_code = 429
    
    def __init__(self, message: str, code: str, limit: int, current: int):
        self.limit = limit
        self.current = current
        super().__init__(message, code=code, details={"limit": limit, "current": current})


class TranscriptionError(DomainException):
    """Erro ao transcrever áudio."""
    
    code = "TRANSCRIPTION_FAILED"
    status_code = 502
    
    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(
            f"Transcription with '{provider}' failed: {reason}",
            details={"provider": provider}
        )


class StorageError(DomainException):
    """Erro de armazenamento."""
    
    code = "STORAGE_ERROR"
    status_code = 500


class ConfigurationError(DomainException):
    """Configuração ausente ou inválida."""
    
    code = "CONFIGURATION_ERROR"
    status_code = 500


# ============= EXCEÇÕES DE JOBS DE TRANSCRIÇÃO =============

class TranscriptCanceledError(DomainException):
    """Job foi cancelado e não aceita mais operações."""
    
    code = "TRANSCRIPT_CANCELED"
    status_code = 409
    
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("This transcription job has been canceled.")


class TranscriptInvalidStateError(DomainException):
    """Transição inválida para o status atual do job."""
    
    code = "TRANSCRIPT_INVALID_STATE"
    status_code = 409
    
    def __init__(self, message: str, status: Optional[str] = None):
        self.status = status
        super().__init__(message, details={"status": status} if status else None)


class ChunkTooLargeError(DomainException):
    """Chunk excede o tamanho máximo configurado."""
    
    code = "TRANSCRIPT_CHUNK_TOO_LARGE"
    status_code = 413
    
    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__("Chunk exceeds maximum allowed size.", details={"maxBytes": max_bytes})


class UploadRateLimitError(DomainException):
    """Limitador de bytes por minuto negou o upload."""
    
    code = "TRANSCRIPT_RATE_LIMIT"
    status_code = 429
    
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            "Upload rate limit exceeded. Please wait before uploading more.",
            details={"retryAfterSeconds": retry_after_seconds}
        )


class MissingChunksError(DomainException):
    """Finalização chamada antes de todos os chunks chegarem."""
    
    code = "TRANSCRIPT_MISSING_CHUNKS"
    status_code = 400
    
    def __init__(self, expected_total_chunks: int, received_chunks: int):
        self.expected_total_chunks = expected_total_chunks
        self.received_chunks = received_chunks
        super().__init__(
            "Upload incomplete: missing chunks.",
            details={
                "expectedTotalChunks": expected_total_chunks,
                "receivedChunks": received_chunks
            }
        )
