"""
Locks assíncronos por chave.

Serializa operações sobre o mesmo recurso (circuito, job) sem bloquear
operações sobre recursos diferentes.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    """
    Conjunto de asyncio.Lock criados sob demanda, um por chave.
    
    O lock de uma chave é descartado quando não há mais donos nem
    aguardando, mantendo o dicionário limitado aos recursos em uso.
    """
    
    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._refcounts: Dict[Hashable, int] = {}
    
    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Adquire o lock da chave durante o bloco `async with`."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refcounts[key] = self._refcounts.get(key, 0) + 1
        
        try:
            async with lock:
                yield
        finally:
            self._refcounts[key] -= 1
            if self._refcounts[key] == 0:
                del self._refcounts[key]
                del self._locks[key]
    
    def locked(self, key: Hashable) -> bool:
        """Indica se a chave está bloqueada no momento."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
    
    def __len__(self) -> int:
        return len(self._locks)
