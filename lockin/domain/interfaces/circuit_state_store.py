"""
Interface: ICircuitStateStore
Armazena o estado serializado de cada circuito.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class ICircuitStateStore(ABC):
    """
    Interface para armazenamento de estado do circuit breaker.
    
    Implementações não devem lançar exceções de infraestrutura: falhas são
    registradas em log e tratadas como ausência de estado.
    """
    
    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Retorna o estado salvo ou None."""
        pass
    
    @abstractmethod
    async def set(self, key: str, state: Dict[str, Any]) -> None:
        """Salva o estado do circuito."""
        pass
    
    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove o estado do circuito."""
        pass
