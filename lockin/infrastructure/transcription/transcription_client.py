"""
TranscriptionClient - transcrição com failover entre provedores.

O primário é protegido pelo circuit breaker. O fallback é o caminho de
recuperação e nunca é bloqueado pelo circuito: é chamado sempre que o
primário é negado ou falha.
"""
import asyncio
import time
from typing import Optional

from loguru import logger

from lockin.domain.entities import TranscriptionResult
from lockin.domain.exceptions import CircuitBreakerOpenError, ValidationError
from lockin.domain.interfaces import ITranscriptionProvider
from lockin.infrastructure.utils import CircuitBreaker, CircuitService, CircuitState


class TranscriptionClient:
    """
    Cliente de transcrição com provedor primário e fallback.
    
    No máximo uma tentativa no primário por chamada; nenhuma tentativa
    enquanto o circuito do primário estiver aberto.
    """
    
    def __init__(
        self,
        primary: ITranscriptionProvider,
        circuit_breaker: CircuitBreaker,
        fallback: Optional[ITranscriptionProvider] = None
    ):
        """
        Inicializa o cliente.
        
        Args:
            primary: Provedor primário (circuit-gated)
            circuit_breaker: Breaker compartilhado da aplicação
            fallback: Provedor de fallback (opcional)
        """
        self.primary = primary
        self.fallback = fallback
        self.circuit_breaker = circuit_breaker
        
        logger.info(
            f"TranscriptionClient created: primary={primary.name}, "
            f"fallback={fallback.name if fallback else None}"
        )
    
    async def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        format: str = "wav"
    ) -> TranscriptionResult:
        """
        Transcreve áudio usando o primário e, se necessário, o fallback.
        
        Args:
            audio: Bytes do áudio
            language: Idioma (opcional)
            format: wav, mp3, ogg ou webm
            
        Returns:
            TranscriptionResult: Texto, provedor usado e flag de fallback
            
        Raises:
            ValidationError: Se o áudio estiver vazio
            CircuitBreakerOpenError: Se o circuito estiver aberto e não houver fallback
            Exception: Erro do fallback, ou do primário quando não há fallback
        """
        if not audio:
            raise ValidationError("Audio buffer is required", "audio")
        
        primary_service = CircuitService.parse(self.primary.service)
        decision = await self.circuit_breaker.can_request(primary_service)
        primary_error: Optional[str] = None
        
        if decision.allowed:
            start_time = time.time()
            try:
                response = await self.primary.transcribe(audio, language=language, format=format)
            except asyncio.CancelledError:
                if decision.state == CircuitState.HALF_OPEN:
                    await self.circuit_breaker.release_probe(primary_service)
                raise
            except Exception as e:
                await self.circuit_breaker.record_failure(primary_service)
                primary_error = str(e)
                logger.warning(
                    f"Primary transcription failed ({self.primary.name}): {e}",
                    extra={"provider": self.primary.name, "elapsed": round(time.time() - start_time, 3)}
                )
                if self.fallback is None:
                    raise
            else:
                await self.circuit_breaker.record_success(primary_service)
                return TranscriptionResult(
                    text=response.text,
                    provider=self.primary.name,
                    fallback_used=False,
                    duration=response.duration,
                    language=response.language,
                    segments=response.segments
                )
        else:
            primary_error = "circuit open"
            logger.warning(
                f"⚡ Primary transcription skipped, circuit open: {self.primary.name}",
                extra={"retry_after_ms": decision.retry_after_ms}
            )
            if self.fallback is None:
                raise CircuitBreakerOpenError(
                    primary_service.value,
                    decision.retry_after_ms or 0,
                    "Transcription service temporarily unavailable (circuit open)"
                )
        
        # Fallback: sem gate de circuito, erros propagam
        response = await self.fallback.transcribe(audio, language=language, format=format)
        logger.info(f"Transcription served by fallback: {self.fallback.name}")
        
        return TranscriptionResult(
            text=response.text,
            provider=self.fallback.name,
            fallback_used=True,
            duration=response.duration,
            language=response.language,
            segments=response.segments,
            primary_error=primary_error
        )
    
    async def aclose(self) -> None:
        """Fecha os clientes HTTP dos provedores."""
        for provider in (self.primary, self.fallback):
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()
