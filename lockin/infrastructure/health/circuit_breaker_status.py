"""
Status e reset manual dos circuit breakers (endpoint de health).
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger

from lockin.domain.exceptions import ValidationError
from lockin.infrastructure.utils import CircuitBreaker, CircuitService, CircuitSnapshot, CircuitState


def _ms_to_iso(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


class CircuitBreakerStatusService:
    """Expõe o estado dos circuitos e permite reset por operadores."""
    
    def __init__(self, circuit_breaker: CircuitBreaker):
        self.circuit_breaker = circuit_breaker
    
    def _describe(self, snapshot: CircuitSnapshot) -> Dict[str, Any]:
        return {
            "state": snapshot.state.value,
            "failures": snapshot.failures,
            "openedAt": _ms_to_iso(snapshot.opened_at),
            "halfOpenAttempts": snapshot.half_open_attempts,
            "timeRemainingMs": self.circuit_breaker.time_remaining_ms(snapshot)
        }
    
    async def get_status(self) -> Dict[str, Any]:
        """
        Retorna o estado de todos os circuitos.
        
        Returns:
            dict: healthy (todos fechados), services, config e timestamp
        """
        services = {}
        for service in self.circuit_breaker.services:
            snapshot = await self.circuit_breaker.get_state(service)
            services[service.value] = self._describe(snapshot)
        
        return {
            "healthy": all(s["state"] == CircuitState.CLOSED.value for s in services.values()),
            "services": services,
            "config": self.circuit_breaker.config.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    
    async def reset(self, service: Optional[str] = None) -> Dict[str, Any]:
        """
        Reseta um circuito ou todos.
        
        Args:
            service: Nome do serviço, "all" ou None (todos)
            
        Returns:
            dict: Estados antes e depois do reset
            
        Raises:
            ValidationError: Se o serviço for desconhecido
        """
        if service in (None, "", "all"):
            targets = self.circuit_breaker.services
        else:
            try:
                targets = [CircuitService.parse(service)]
            except ValueError as e:
                raise ValidationError(str(e), "service") from e
        
        before = {}
        after = {}
        for target in targets:
            before[target.value] = self._describe(await self.circuit_breaker.get_state(target))
            await self.circuit_breaker.reset(target)
            after[target.value] = self._describe(await self.circuit_breaker.get_state(target))
        
        logger.warning(
            "Circuit breakers reset by operator",
            extra={"services": [target.value for target in targets]}
        )
        
        return {
            "success": True,
            "reset": "all" if len(targets) > 1 else targets[0].value,
            "before": before,
            "after": after
        }
