"""
Dependency Injection Container.
Gerencia a criação e injeção de dependências seguindo SOLID.

IMPORTANTE: Todos os serviços são SINGLETON. O circuit breaker é criado
UMA VEZ e injetado no cliente Supabase, no cliente de transcrição e no
serviço de status, de modo que todos enxergam o mesmo estado de circuito.
"""
from typing import Optional

import httpx
from fastapi import Header
from loguru import logger

from lockin.application.use_cases import (
    TranscriptJobReaper,
    TranscriptJobsService,
    TranscriptProcessingService
)
from lockin.config import settings
from lockin.domain.exceptions import ValidationError
from lockin.domain.interfaces import ITranscriptsRepository
from lockin.infrastructure.health import CircuitBreakerStatusService
from lockin.infrastructure.storage import InMemoryTranscriptsRepository, LocalChunkStorage
from lockin.infrastructure.supabase import SupabaseTranscriptsRepository, create_supabase_client
from lockin.infrastructure.transcription import TranscriptionClient, create_transcription_client
from lockin.infrastructure.utils import (
    CircuitBreaker,
    CircuitBreakerConfig,
    InMemoryCircuitStateStore,
    RedisCircuitStateStore
)


class Container:
    """
    Container de injeção de dependências com SINGLETON pattern.

    Serviços são criados de forma LAZY na primeira requisição e reutilizados
    em todas as seguintes.
    """

    _circuit_breaker: CircuitBreaker = None
    _circuit_store = None
    _supabase_client: httpx.AsyncClient = None
    _repository: ITranscriptsRepository = None
    _chunk_storage: LocalChunkStorage = None
    _transcription_client: TranscriptionClient = None
    _processor: TranscriptProcessingService = None
    _jobs_service: TranscriptJobsService = None
    _reaper: TranscriptJobReaper = None
    _status_service: CircuitBreakerStatusService = None

    @classmethod
    def get_circuit_breaker(cls) -> CircuitBreaker:
        """
        Obtém instância SINGLETON do circuit breaker.

        Usa Redis para compartilhar estado entre processos quando
        CIRCUIT_REDIS_URL estiver configurada.
        """
        if cls._circuit_breaker is None:
            if settings.circuit_redis_url:
                logger.info("[CONTAINER] Creating CircuitBreaker singleton (Redis store)")
                cls._circuit_store = RedisCircuitStateStore(
                    redis_url=settings.circuit_redis_url,
                    prefix=settings.circuit_redis_prefix,
                    open_duration_ms=settings.circuit_open_duration_ms
                )
            else:
                logger.info("[CONTAINER] Creating CircuitBreaker singleton (in-memory store)")
                cls._circuit_store = InMemoryCircuitStateStore()

            cls._circuit_breaker = CircuitBreaker(
                config=CircuitBreakerConfig(
                    failure_threshold=settings.circuit_failure_threshold,
                    open_duration_ms=settings.circuit_open_duration_ms,
                    half_open_max_attempts=settings.circuit_half_open_max_attempts
                ),
                store=cls._circuit_store
            )
        return cls._circuit_breaker

    @classmethod
    def get_repository(cls) -> ITranscriptsRepository:
        """
        Obtém instância SINGLETON do repositório.

        Supabase quando SUPABASE_URL estiver configurada, memória caso contrário.
        """
        if cls._repository is None:
            if settings.supabase_url and settings.supabase_service_role_key:
                logger.info("[CONTAINER] Creating SupabaseTranscriptsRepository singleton")
                cls._supabase_client = create_supabase_client(
                    settings.supabase_url,
                    settings.supabase_service_role_key,
                    cls.get_circuit_breaker(),
                    timeout=settings.supabase_timeout_seconds
                )
                cls._repository = SupabaseTranscriptsRepository(cls._supabase_client)
            else:
                logger.warning("[CONTAINER] SUPABASE_URL not set, using in-memory transcripts repository")
                cls._repository = InMemoryTranscriptsRepository()
        return cls._repository

    @classmethod
    def get_chunk_storage(cls) -> LocalChunkStorage:
        if cls._chunk_storage is None:
            logger.debug("[CONTAINER] Creating LocalChunkStorage singleton")
            cls._chunk_storage = LocalChunkStorage(settings.transcript_storage_dir)
        return cls._chunk_storage

    @classmethod
    def get_transcription_client(cls) -> TranscriptionClient:
        """
        Obtém instância SINGLETON do cliente de transcrição.

        Raises:
            ConfigurationError: Se nenhum provedor estiver configurado
        """
        if cls._transcription_client is None:
            logger.info("[CONTAINER] Creating TranscriptionClient singleton")
            cls._transcription_client = create_transcription_client(settings, cls.get_circuit_breaker())
        return cls._transcription_client

    @classmethod
    def get_processor(cls) -> TranscriptProcessingService:
        if cls._processor is None:
            logger.debug("[CONTAINER] Creating TranscriptProcessingService singleton")
            cls._processor = TranscriptProcessingService(
                repository=cls.get_repository(),
                chunk_storage=cls.get_chunk_storage(),
                transcription_client=cls.get_transcription_client(),
                stale_minutes=settings.transcript_processing_stale_minutes,
                heartbeat_seconds=settings.transcript_processing_heartbeat_seconds
            )
        return cls._processor

    @classmethod
    def get_jobs_service(cls) -> TranscriptJobsService:
        if cls._jobs_service is None:
            logger.debug("[CONTAINER] Creating TranscriptJobsService singleton")
            cls._jobs_service = TranscriptJobsService(
                repository=cls.get_repository(),
                processor=cls.get_processor(),
                limits=settings.transcript_limits()
            )
        return cls._jobs_service

    @classmethod
    def get_reaper(cls) -> TranscriptJobReaper:
        if cls._reaper is None:
            logger.debug("[CONTAINER] Creating TranscriptJobReaper singleton")
            cls._reaper = TranscriptJobReaper(
                repository=cls.get_repository(),
                processor=cls.get_processor(),
                chunk_storage=cls.get_chunk_storage(),
                job_ttl_minutes=settings.transcript_job_ttl_minutes,
                stale_minutes=settings.transcript_processing_stale_minutes,
                interval_minutes=settings.transcript_job_reaper_interval_minutes
            )
        return cls._reaper

    @classmethod
    def get_status_service(cls) -> CircuitBreakerStatusService:
        if cls._status_service is None:
            cls._status_service = CircuitBreakerStatusService(cls.get_circuit_breaker())
        return cls._status_service

    @classmethod
    async def shutdown(cls) -> None:
        """Para tarefas em background e fecha clientes externos."""
        if cls._reaper is not None:
            await cls._reaper.stop()
        if cls._processor is not None:
            await cls._processor.shutdown()
        if cls._transcription_client is not None:
            await cls._transcription_client.aclose()
        if cls._supabase_client is not None:
            await cls._supabase_client.aclose()
        if isinstance(cls._circuit_store, RedisCircuitStateStore):
            await cls._circuit_store.close()
        logger.info("[CONTAINER] Resources released")

    @classmethod
    def reset(cls) -> None:
        """Descarta todas as instâncias (usado nos testes)."""
        cls._circuit_breaker = None
        cls._circuit_store = None
        cls._supabase_client = None
        cls._repository = None
        cls._chunk_storage = None
        cls._transcription_client = None
        cls._processor = None
        cls._jobs_service = None
        cls._reaper = None
        cls._status_service = None


# Funções de dependência para FastAPI
# IMPORTANTE: Sempre retornam a MESMA instância (singleton)

def get_jobs_service() -> TranscriptJobsService:
    """Dependency para FastAPI."""
    return Container.get_jobs_service()


def get_status_service() -> CircuitBreakerStatusService:
    """Dependency para FastAPI."""
    return Container.get_status_service()


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias="x-user-id")) -> str:
    """
    Identidade do usuário, definida pelo gateway upstream.

    Raises:
        ValidationError: Se o header estiver ausente
    """
    if not x_user_id or not x_user_id.strip():
        raise ValidationError("User context missing")
    return x_user_id.strip()
