"""
Transport httpx que aplica o circuit breaker às chamadas ao Supabase.

Antes de cada requisição consulta o circuito (negação = falha rápida, sem
chamada de rede). Depois, classifica o resultado:
- HTTP 429 ou >= 500: falha
- Demais status: sucesso
- Exceções de rede: falha, e a exceção é relançada
"""
import asyncio
import re
from typing import Optional

import httpx
from loguru import logger

from lockin.infrastructure.utils import CircuitBreaker, CircuitService, CircuitState

NETWORK_ERROR_PATTERN = re.compile(
    r"failed to fetch"
    r"|networkerror|network error"
    r"|network request failed"
    r"|err_network"
    r"|econnreset|econnrefused|etimedout|eai_again|enotfound"
    r"|timeout|timed out"
    r"|connection reset|connection refused"
    r"|name resolution|getaddrinfo|dns",
    re.IGNORECASE
)


def is_network_error(error: BaseException) -> bool:
    """Indica se a exceção representa falha de rede (timeout, reset, DNS)."""
    if isinstance(error, httpx.TransportError):
        return True
    return bool(NETWORK_ERROR_PATTERN.search(f"{type(error).__name__}: {error}"))


def is_failure_status(status_code: int) -> bool:
    """Status que contam como falha do serviço."""
    return status_code == 429 or status_code >= 500


class CircuitBreakerTransport(httpx.AsyncBaseTransport):
    """
    Envolve outro transport com o circuit breaker.
    
    Example:
        ```python
        client = httpx.AsyncClient(
            base_url=f"{supabase_url}/rest/v1",
            transport=CircuitBreakerTransport(breaker)
        )
        ```
    """
    
    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        inner: Optional[httpx.AsyncBaseTransport] = None,
        service: CircuitService = CircuitService.SUPABASE,
        unavailable_message: str = "Supabase temporarily unavailable (circuit open)"
    ):
        self.circuit_breaker = circuit_breaker
        self.inner = inner or httpx.AsyncHTTPTransport()
        self.service = CircuitService.parse(service)
        self.unavailable_message = unavailable_message
    
    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        decision = await self.circuit_breaker.ensure_can_request(self.service, self.unavailable_message)
        
        try:
            response = await self.inner.handle_async_request(request)
        except asyncio.CancelledError:
            if decision.state == CircuitState.HALF_OPEN:
                await self.circuit_breaker.release_probe(self.service)
            raise
        except Exception as e:
            if is_network_error(e):
                logger.warning(
                    f"Network error calling {self.service.value}: {type(e).__name__}: {e}",
                    extra={"method": request.method, "path": request.url.path}
                )
                await self.circuit_breaker.record_failure(self.service)
            elif decision.state == CircuitState.HALF_OPEN:
                await self.circuit_breaker.release_probe(self.service)
            raise
        
        if is_failure_status(response.status_code):
            logger.warning(
                f"{self.service.value} responded {response.status_code}",
                extra={"method": request.method, "path": request.url.path}
            )
            await self.circuit_breaker.record_failure(self.service)
        else:
            await self.circuit_breaker.record_success(self.service)
        
        return response
    
    async def aclose(self) -> None:
        await self.inner.aclose()
