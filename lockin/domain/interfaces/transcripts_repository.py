"""
Interface: ITranscriptsRepository
Define o contrato de persistência de jobs, chunks e transcrições em cache.
Segue o princípio de Dependency Inversion (SOLID).
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from lockin.domain.entities import ChunkStats, JobStatus, TranscriptJob, UploadAllowance


class ITranscriptsRepository(ABC):
    """Interface para o repositório de transcrições."""
    
    @abstractmethod
    async def get_transcript_by_fingerprint(
        self,
        user_id: str,
        fingerprint: str
    ) -> Optional[Dict[str, Any]]:
        """
        Busca transcrição em cache pelo fingerprint do conteúdo.
        
        Args:
            user_id: Dono da transcrição
            fingerprint: Chave de deduplicação derivada do conteúdo
            
        Returns:
            Linha da tabela transcripts (com transcript_json) ou None
        """
        pass
    
    @abstractmethod
    async def upsert_transcript_cache(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insere ou atualiza transcrição em cache, chave (user_id, fingerprint).
        
        Args:
            record: Colunas da tabela transcripts
            
        Returns:
            Linha persistida
        """
        pass
    
    @abstractmethod
    async def create_transcript_job(
        self,
        user_id: str,
        fingerprint: str,
        media_url: str,
        media_url_normalized: Optional[str] = None,
        duration_ms: Optional[int] = None,
        provider: Optional[str] = None,
        expected_total_chunks: Optional[int] = None
    ) -> TranscriptJob:
        """
        Cria um job no status created.
        
        Returns:
            TranscriptJob: Job criado
        """
        pass
    
    @abstractmethod
    async def get_transcript_job(self, job_id: str, user_id: str) -> Optional[TranscriptJob]:
        """
        Busca job pelo ID, restrito ao dono.
        
        Returns:
            Job ou None se não existir ou pertencer a outro usuário
        """
        pass
    
    @abstractmethod
    async def update_transcript_job(
        self,
        job_id: str,
        user_id: str,
        updates: Dict[str, Any],
        expected_statuses: Optional[Iterable[JobStatus]] = None
    ) -> Optional[TranscriptJob]:
        """
        Atualiza colunas do job.
        
        Args:
            job_id: ID do job
            user_id: Dono do job
            updates: Colunas a atualizar
            expected_statuses: Se informado, a atualização só é aplicada quando
                o status atual pertence ao conjunto (update condicional atômico)
                
        Returns:
            Job atualizado, ou None se nenhuma linha atendeu às condições
        """
        pass
    
    @abstractmethod
    async def insert_transcript_job_chunk(self, job_id: str, chunk_index: int, byte_size: int) -> bool:
        """
        Registra chunk de forma idempotente, chave (job_id, chunk_index).
        
        Returns:
            bool: True se inserido, False se o índice já existia
        """
        pass
    
    @abstractmethod
    async def delete_transcript_job_chunk(self, job_id: str, chunk_index: int) -> None:
        """Remove o registro de um chunk."""
        pass
    
    @abstractmethod
    async def delete_transcript_job_chunks(self, job_id: str) -> None:
        """Remove todos os registros de chunks de um job."""
        pass
    
    @abstractmethod
    async def get_transcript_job_chunk_stats(self, job_id: str) -> ChunkStats:
        """Retorna contagem, menor e maior índice distintos recebidos."""
        pass
    
    @abstractmethod
    async def list_transcript_job_chunk_indices(self, job_id: str) -> List[int]:
        """Lista índices recebidos em ordem crescente."""
        pass
    
    @abstractmethod
    async def count_transcript_jobs_since(self, user_id: str, since: datetime) -> int:
        """Conta jobs criados pelo usuário a partir de `since`."""
        pass
    
    @abstractmethod
    async def count_active_transcript_jobs(self, user_id: str) -> int:
        """Conta jobs do usuário ainda não terminais."""
        pass
    
    @abstractmethod
    async def list_active_transcript_jobs(self, user_id: str) -> List[TranscriptJob]:
        """Lista jobs ativos do usuário, mais recentes primeiro."""
        pass
    
    @abstractmethod
    async def consume_transcript_upload_bytes(
        self,
        user_id: str,
        byte_count: int,
        limit: int
    ) -> UploadAllowance:
        """
        Consome bytes da janela de rate limit do usuário.
        
        Args:
            user_id: Usuário
            byte_count: Bytes a consumir
            limit: Bytes permitidos por minuto
            
        Returns:
            UploadAllowance: allowed, remaining e retry_after_seconds
        """
        pass
    
    @abstractmethod
    async def list_transcript_jobs_by_status_before(
        self,
        statuses: Iterable[JobStatus],
        updated_before: datetime
    ) -> List[TranscriptJob]:
        """Lista jobs (de qualquer usuário) nos status dados sem atualização desde `updated_before`."""
        pass
    
    @abstractmethod
    async def list_transcript_jobs_by_heartbeat_before(
        self,
        statuses: Iterable[JobStatus],
        heartbeat_before: datetime
    ) -> List[TranscriptJob]:
        """Lista jobs cujo heartbeat (ou início) é anterior a `heartbeat_before`."""
        pass
    
    @abstractmethod
    async def claim_transcript_job_for_processing(
        self,
        job_id: str,
        worker_id: str,
        stale_before: datetime
    ) -> Optional[TranscriptJob]:
        """
        Reivindica job em processing para um worker.
        
        Só tem sucesso se o job estiver em processing e sem worker, com o mesmo
        worker, ou com heartbeat anterior a `stale_before`.
        
        Returns:
            Job reivindicado ou None se outro worker o detém
        """
        pass
