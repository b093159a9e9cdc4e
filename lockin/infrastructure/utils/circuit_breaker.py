"""
Circuit Breaker Pattern - Protege o sistema de falhas em cascata.

Mantém um circuito por serviço externo (Supabase, provedores de transcrição).

Estados:
- CLOSED: Normal, todas chamadas passam
- OPEN: Bloqueado, rejeita chamadas sem tentar
- HALF_OPEN: Testando recuperação, permite um número limitado de probes

O estado de cada serviço é protegido por um asyncio.Lock próprio e guardado
em um ICircuitStateStore (memória ou Redis). A instância é criada uma vez
pelo Container e injetada nos componentes que fazem chamadas externas.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from lockin.domain.exceptions import CircuitBreakerOpenError
from lockin.domain.interfaces import ICircuitStateStore
from lockin.infrastructure.utils.circuit_state_store import InMemoryCircuitStateStore
from lockin.infrastructure.utils.keyed_lock import KeyedLock


class CircuitState(str, Enum):
    """Estados do Circuit Breaker."""
    CLOSED = "closed"        # Operação normal
    OPEN = "open"            # Bloqueado (muitas falhas)
    HALF_OPEN = "half_open"  # Testando recuperação


class CircuitService(str, Enum):
    """Serviços externos conhecidos, cada um com seu circuito."""
    SUPABASE = "supabase"
    AZURE_SPEECH = "azure-speech"
    OPENAI_WHISPER = "openai-whisper"
    
    @classmethod
    def parse(cls, value: Union["CircuitService", str]) -> "CircuitService":
        """Converte string em serviço conhecido, rejeitando nomes desconhecidos."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(service.value for service in cls)
            raise ValueError(f"Unknown circuit service '{value}'. Known services: {known}") from None


ServiceKey = Union[CircuitService, str]


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuração compartilhada por todos os circuitos."""
    
    failure_threshold: int = 3
    open_duration_ms: int = 30000
    half_open_max_attempts: int = 1
    
    def to_dict(self) -> dict:
        """Converte para dicionário."""
        return {
            "failureThreshold": self.failure_threshold,
            "openDurationMs": self.open_duration_ms,
            "halfOpenMaxAttempts": self.half_open_max_attempts
        }


@dataclass
class CircuitSnapshot:
    """Estado de um circuito."""
    
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    opened_at: Optional[float] = None
    half_open_attempts: int = 0
    
    def to_dict(self) -> Dict[str, Any]:
        """Serializa para o store."""
        return {
            "state": self.state.value,
            "failures": self.failures,
            "openedAt": self.opened_at,
            "halfOpenAttempts": self.half_open_attempts
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitSnapshot":
        """Desserializa estado vindo do store."""
        opened_at = data.get("openedAt")
        return cls(
            state=CircuitState(data.get("state", CircuitState.CLOSED.value)),
            failures=int(data.get("failures") or 0),
            opened_at=float(opened_at) if opened_at is not None else None,
            half_open_attempts=int(data.get("halfOpenAttempts") or 0)
        )


@dataclass(frozen=True)
class CircuitDecision:
    """Resposta de `can_request`."""
    
    allowed: bool
    state: CircuitState
    retry_after_ms: Optional[int] = None


def _now_ms() -> float:
    return time.time() * 1000


class CircuitBreaker:
    """
    Circuit Breaker por serviço.
    
    Example:
        ```python
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3))
        
        decision = await breaker.can_request(CircuitService.SUPABASE)
        if decision.allowed:
            try:
                response = await call_supabase()
                await breaker.record_success(CircuitService.SUPABASE)
            except httpx.TransportError:
                await breaker.record_failure(CircuitService.SUPABASE)
                raise
        ```
    """
    
    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        store: Optional[ICircuitStateStore] = None,
        clock: Callable[[], float] = _now_ms
    ):
        """
        Inicializa Circuit Breaker.
        
        Args:
            config: Limiar de falhas, duração do estado OPEN e probes em HALF_OPEN
            store: Armazenamento do estado (padrão: memória do processo)
            clock: Relógio em milissegundos (injetável para testes)
        """
        self.config = config or CircuitBreakerConfig()
        self.store = store or InMemoryCircuitStateStore()
        self._clock = clock
        self._locks = KeyedLock()
        
        logger.info(
            "Circuit Breaker initialized",
            extra={
                "failure_threshold": self.config.failure_threshold,
                "open_duration_ms": self.config.open_duration_ms,
                "half_open_max_attempts": self.config.half_open_max_attempts,
                "store": type(self.store).__name__
            }
        )
    
    @property
    def services(self) -> List[CircuitService]:
        """Serviços monitorados."""
        return list(CircuitService)
    
    async def can_request(self, service: ServiceKey) -> CircuitDecision:
        """
        Verifica se uma chamada ao serviço pode ser feita agora.
        
        Efeitos colaterais: transição OPEN → HALF_OPEN quando o tempo expira
        e contagem de probes em HALF_OPEN.
        
        Args:
            service: Serviço protegido
            
        Returns:
            CircuitDecision: allowed, estado atual e retry_after_ms quando negado
        """
        service = CircuitService.parse(service)
        
        async with self._locks.hold(service):
            snapshot = await self._load(service)
            
            if snapshot.state == CircuitState.CLOSED:
                return CircuitDecision(allowed=True, state=CircuitState.CLOSED)
            
            if snapshot.state == CircuitState.OPEN:
                elapsed = self._clock() - (snapshot.opened_at or 0)
                if elapsed < self.config.open_duration_ms:
                    retry_after = int(max(0, self.config.open_duration_ms - elapsed))
                    return CircuitDecision(
                        allowed=False,
                        state=CircuitState.OPEN,
                        retry_after_ms=retry_after
                    )
                
                snapshot.state = CircuitState.HALF_OPEN
                snapshot.half_open_attempts = 0
                logger.info(
                    f"🔄 Circuit breaker: OPEN → HALF_OPEN (testing recovery): {service.value}",
                    extra={"max_probes": self.config.half_open_max_attempts}
                )
            
            # HALF_OPEN: limitar probes
            if snapshot.half_open_attempts >= self.config.half_open_max_attempts:
                await self._save(service, snapshot)
                return CircuitDecision(
                    allowed=False,
                    state=CircuitState.HALF_OPEN,
                    retry_after_ms=self.config.open_duration_ms
                )
            
            snapshot.half_open_attempts += 1
            await self._save(service, snapshot)
            return CircuitDecision(allowed=True, state=CircuitState.HALF_OPEN)
    
    async def ensure_can_request(
        self,
        service: ServiceKey,
        message: Optional[str] = None
    ) -> CircuitDecision:
        """
        Igual a `can_request`, mas lança exceção quando a chamada é negada.
        
        Raises:
            CircuitBreakerOpenError: Se o circuito negar a chamada
        """
        service = CircuitService.parse(service)
        decision = await self.can_request(service)
        if not decision.allowed:
            logger.warning(
                f"⚡ Circuit breaker denied request: {service.value}",
                extra={"state": decision.state.value, "retry_after_ms": decision.retry_after_ms}
            )
            raise CircuitBreakerOpenError(service.value, decision.retry_after_ms or 0, message)
        return decision
    
    async def record_success(self, service: ServiceKey) -> CircuitSnapshot:
        """Registra sucesso: zera falhas e fecha o circuito."""
        service = CircuitService.parse(service)
        
        async with self._locks.hold(service):
            snapshot = await self._load(service)
            previous = snapshot.state
            
            if previous == CircuitState.CLOSED and snapshot.failures == 0:
                return snapshot
            
            snapshot = CircuitSnapshot()
            await self._save(service, snapshot)
            
            if previous != CircuitState.CLOSED:
                logger.info(f"✅ Circuit breaker CLOSED: {service.value} (service recovered)")
            return snapshot
    
    async def record_failure(self, service: ServiceKey) -> CircuitSnapshot:
        """Registra falha e abre o circuito ao atingir o limiar ou em probe falho."""
        service = CircuitService.parse(service)
        
        async with self._locks.hold(service):
            snapshot = await self._load(service)
            snapshot.failures += 1
            
            should_open = (
                snapshot.state == CircuitState.HALF_OPEN
                or snapshot.failures >= self.config.failure_threshold
            )
            
            if should_open:
                previous = snapshot.state
                snapshot.state = CircuitState.OPEN
                snapshot.opened_at = self._clock()
                snapshot.half_open_attempts = 0
                
                if previous != CircuitState.OPEN:
                    logger.error(
                        f"⚠️  Circuit breaker OPENED: {service.value}",
                        extra={
                            "previous_state": previous.value,
                            "failures": snapshot.failures,
                            "open_duration_ms": self.config.open_duration_ms
                        }
                    )
            else:
                logger.warning(
                    f"Circuit breaker failure: {service.value}",
                    extra={
                        "failures": snapshot.failures,
                        "threshold": self.config.failure_threshold
                    }
                )
            
            await self._save(service, snapshot)
            return snapshot
    
    async def release_probe(self, service: ServiceKey) -> CircuitSnapshot:
        """
        Devolve um probe HALF_OPEN cuja chamada não chegou a um resultado.
        
        Usado quando a chamada é cancelada: não conta como sucesso nem como
        falha, apenas libera a vaga para o próximo probe.
        """
        service = CircuitService.parse(service)
        
        async with self._locks.hold(service):
            snapshot = await self._load(service)
            if snapshot.state != CircuitState.HALF_OPEN or snapshot.half_open_attempts == 0:
                return snapshot
        
            snapshot.half_open_attempts -= 1
            await self._save(service, snapshot)
            logger.info(
                f"Circuit breaker probe released: {service.value}",
                extra={"half_open_attempts": snapshot.half_open_attempts}
            )
            return snapshot
    
    async def get_state(self, service: ServiceKey) -> CircuitSnapshot:
        """Retorna cópia do estado atual (somente leitura)."""
        service = CircuitService.parse(service)
        return await self._load(service)
    
    async def reset(self, service: Optional[ServiceKey] = None) -> None:
        """
        Força o estado CLOSED para um serviço ou para todos.
        
        Args:
            service: Serviço a resetar, ou None para todos
        """
        targets = [CircuitService.parse(service)] if service is not None else self.services
        
        for target in targets:
            async with self._locks.hold(target):
                await self.store.delete(target.value)
            logger.info(f"Circuit breaker manually reset: {target.value}")
    
    def time_remaining_ms(self, snapshot: CircuitSnapshot) -> int:
        """Tempo restante em OPEN até a próxima tentativa (0 nos demais estados)."""
        if snapshot.state != CircuitState.OPEN or snapshot.opened_at is None:
            return 0
        elapsed = self._clock() - snapshot.opened_at
        return int(max(0, self.config.open_duration_ms - elapsed))
    
    async def _load(self, service: CircuitService) -> CircuitSnapshot:
        data = await self.store.get(service.value)
        if not data:
            return CircuitSnapshot()
        return CircuitSnapshot.from_dict(data)
    
    async def _save(self, service: CircuitService, snapshot: CircuitSnapshot) -> None:
        await self.store.set(service.value, snapshot.to_dict())
