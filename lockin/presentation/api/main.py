"""
FastAPI Application - Main Entry Point
Configuração principal da API seguindo Clean Architecture e SOLID.
"""
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from lockin.config import settings
from lockin.domain.exceptions import ConfigurationError, DomainException
from lockin.presentation.api.dependencies import Container
from lockin.presentation.api.errors import domain_exception_handler, unhandled_exception_handler
from lockin.presentation.api.middlewares import LoggingMiddleware
from lockin.presentation.api.routes import health, transcripts


def configure_logging() -> None:
    """Configura os sinks do loguru (stderr colorido e arquivo rotativo)."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.log_level
    )
    
    if not settings.log_file:
        return
    
    try:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            rotation="100 MB",
            retention="10 days",
            level=settings.log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
        )
        logger.info(f"File logging configured: {settings.log_file}")
    except OSError as e:
        logger.error(f"Failed to configure file logging: {e}")


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.
    Executado no startup e shutdown.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.app_environment}")
    logger.info(f"Primary transcription provider: {settings.transcription_primary_provider}")
    logger.info(f"Chunk storage: {settings.transcript_storage_dir}")
    logger.info(f"Circuit state store: {'redis' if settings.circuit_redis_url else 'memory'}")
    logger.info("=" * 60)
    
    if settings.enable_transcript_reaper:
        try:
            Container.get_reaper().start()
        except ConfigurationError as e:
            logger.warning(f"Transcript reaper disabled: {e.message}")
    else:
        logger.info("Transcript reaper disabled by configuration")
    
    logger.info("Application startup complete!")
    
    yield
    
    logger.info("=" * 60)
    logger.info("Shutting down application...")
    await Container.shutdown()
    logger.info("Application shutdown complete")
    logger.info("=" * 60)


# Criar aplicação FastAPI
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    API REST de ingestão de transcrições do Lock-in.
    
    ## Características
    
    * 📦 Upload de mídia em chunks, fora de ordem e retomável
    * 🔁 Ciclo de vida de jobs idempotente (finalize e cancel)
    * 🚦 Rate limiting por bytes/minuto e quotas por usuário
    * ⚡ Circuit breaker para Supabase e provedores de transcrição
    * 🎙️ Failover automático Azure Speech <-> OpenAI Whisper
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Rate limiting (slowapi)
app.state.limiter = transcripts.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Configurar CORS
if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"CORS enabled: {settings.get_cors_origins()}")

# Adicionar middleware de logging
app.add_middleware(LoggingMiddleware)

# Registrar rotas
app.include_router(health.router)
app.include_router(transcripts.router)
logger.info("Routes registered successfully")

# Exception handlers
app.add_exception_handler(DomainException, domain_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "lockin.presentation.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_environment == "development",
        log_level=settings.log_level.lower()
    )
