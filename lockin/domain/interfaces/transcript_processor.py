"""
Interface: ITranscriptProcessor
Colaborador que persiste chunks e executa a transcrição após a finalização.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from lockin.domain.entities import TranscriptJob


class ITranscriptProcessor(ABC):
    """
    Interface para o processamento de jobs de transcrição.
    
    Cancelamento é cooperativo: `cancel_job` apenas muda o status para
    canceled. Implementações devem reler o status do job entre as etapas
    (montagem, transcrição, persistência) e parar ao encontrar canceled.
    """
    
    @abstractmethod
    async def append_transcript_chunk(
        self,
        job_id: str,
        user_id: str,
        chunk: bytes,
        chunk_index: int
    ) -> None:
        """
        Persiste os bytes de um chunk.
        
        Raises:
            StorageError: Se não conseguir gravar o chunk
        """
        pass
    
    @abstractmethod
    async def start_transcript_processing(
        self,
        job: TranscriptJob,
        options: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Agenda o processamento e retorna sem aguardar a transcrição.
        
        Args:
            job: Job já marcado como processing
            options: languageHint e maxMinutes
        """
        pass
