"""
Interface: ITranscriptionProvider
Define o contrato para provedores externos de transcrição.
"""
from abc import ABC, abstractmethod
from typing import Optional

from lockin.domain.entities import ProviderTranscription


class ITranscriptionProvider(ABC):
    """Interface para provedores de transcrição de áudio."""
    
    #: Identificador do circuito usado para este provedor
    service: str
    #: Nome exibido no resultado da transcrição
    name: str
    
    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        format: str = "wav"
    ) -> ProviderTranscription:
        """
        Transcreve um buffer de áudio.
        
        Args:
            audio: Bytes do áudio
            language: Código do idioma (ex.: "en" ou "en-US")
            format: wav, mp3, ogg ou webm
            
        Returns:
            ProviderTranscription: Texto, idioma, duração e segmentos
            
        Raises:
            TranscriptionError: Se o provedor falhar
        """
        pass
