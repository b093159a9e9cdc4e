"""
Factory para criar o TranscriptionClient a partir das configurações.

IMPORTANTE: Chamado UMA VEZ no Container, recebendo o circuit breaker
compartilhado da aplicação.
"""
from typing import Dict, Optional

from loguru import logger

from lockin.config.settings import Settings
from lockin.domain.exceptions import ConfigurationError
from lockin.domain.interfaces import ITranscriptionProvider
from lockin.infrastructure.transcription.azure_speech import AzureSpeechProvider
from lockin.infrastructure.transcription.openai_whisper import OpenAIWhisperProvider
from lockin.infrastructure.transcription.transcription_client import TranscriptionClient
from lockin.infrastructure.utils import CircuitBreaker


def _build_providers(settings: Settings) -> Dict[str, ITranscriptionProvider]:
    providers: Dict[str, ITranscriptionProvider] = {}
    
    if settings.azure_speech_key and settings.azure_speech_region:
        providers["azure"] = AzureSpeechProvider(
            api_key=settings.azure_speech_key,
            region=settings.azure_speech_region,
            default_language=settings.azure_speech_language,
            timeout=settings.transcription_timeout_seconds
        )
    
    if settings.openai_api_key:
        providers["openai"] = OpenAIWhisperProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_transcription_model,
            timeout=settings.transcription_timeout_seconds
        )
    
    return providers


def create_transcription_client(
    settings: Settings,
    circuit_breaker: CircuitBreaker
) -> TranscriptionClient:
    """
    Cria o cliente de transcrição.
    
    O provedor indicado em TRANSCRIPTION_PRIMARY_PROVIDER vira o primário e o
    outro, se configurado, o fallback. Com um único provedor configurado, ele
    é o primário sem fallback.
    
    Raises:
        ConfigurationError: Se nenhum provedor estiver configurado
    """
    providers = _build_providers(settings)
    if not providers:
        raise ConfigurationError(
            "No transcription provider configured (set AZURE_SPEECH_KEY/AZURE_SPEECH_REGION or OPENAI_API_KEY)"
        )
    
    preferred = settings.transcription_primary_provider
    primary = providers.pop(preferred, None)
    if primary is None:
        fallback_name, primary = providers.popitem()
        logger.warning(
            f"[FACTORY] Primary provider '{preferred}' not configured, using '{fallback_name}'"
        )
    
    fallback: Optional[ITranscriptionProvider] = next(iter(providers.values()), None)
    
    return TranscriptionClient(
        primary=primary,
        fallback=fallback,
        circuit_breaker=circuit_breaker
    )
