"""
Stores de estado do Circuit Breaker.

- InMemoryCircuitStateStore: estado local do processo
- RedisCircuitStateStore: estado compartilhado entre instâncias

Falhas do Redis nunca propagam: o breaker continua operando como se não
houvesse estado salvo, e o problema é registrado em log.
"""
import json
from typing import Any, Dict, Optional

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from lockin.domain.interfaces import ICircuitStateStore


class InMemoryCircuitStateStore(ICircuitStateStore):
    """Store em memória (padrão)."""
    
    def __init__(self):
        self._states: Dict[str, Dict[str, Any]] = {}
    
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        state = self._states.get(key)
        return dict(state) if state is not None else None
    
    async def set(self, key: str, state: Dict[str, Any]) -> None:
        self._states[key] = dict(state)
    
    async def delete(self, key: str) -> None:
        self._states.pop(key, None)


class RedisCircuitStateStore(ICircuitStateStore):
    """
    Store em Redis com valores JSON e TTL.
    
    O TTL é o dobro da duração do estado OPEN (mínimo 60s), suficiente para
    que um circuito aberto expire sozinho caso ninguém volte a consultá-lo.
    """
    
    def __init__(
        self,
        redis_url: Optional[str] = None,
        prefix: str = "lockin:circuit:",
        open_duration_ms: int = 30000,
        client: Optional[redis.Redis] = None
    ):
        """
        Inicializa o store.
        
        Args:
            redis_url: URL do Redis (ignorada se `client` for informado)
            prefix: Prefixo das chaves
            open_duration_ms: Duração do estado OPEN, usada para calcular o TTL
            client: Cliente redis.asyncio já configurado
        """
        if client is None and not redis_url:
            raise ValueError("redis_url or client is required")
        
        self.prefix = prefix
        self.ttl_seconds = max(60, int(open_duration_ms * 2 / 1000))
        self._client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        logger.info(f"Redis circuit state store initialized (prefix={prefix}, ttl={self.ttl_seconds}s)")
    
    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"
    
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Circuit state read failed for {key}: {e}")
            return None
        
        if not raw:
            return None
        
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed circuit state for {key}: {e}")
            return None
    
    async def set(self, key: str, state: Dict[str, Any]) -> None:
        try:
            await self._client.set(self._key(key), json.dumps(state), ex=self.ttl_seconds)
        except RedisError as e:
            logger.warning(f"Circuit state write failed for {key}: {e}")
    
    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except RedisError as e:
            logger.warning(f"Circuit state delete failed for {key}: {e}")
    
    async def close(self) -> None:
        """Fecha a conexão com o Redis."""
        await self._client.aclose()
