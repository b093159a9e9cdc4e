"""
Provedor Azure Speech (REST, reconhecimento de conversação).

Envia o áudio inteiro em uma requisição e converte a duração retornada
(em ticks de 100ns) para segundos.
"""
from typing import Optional

import httpx
from loguru import logger

from lockin.domain.entities import ProviderTranscription
from lockin.domain.exceptions import TranscriptionError
from lockin.domain.interfaces import ITranscriptionProvider
from lockin.infrastructure.utils import CircuitService

CONTENT_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "webm": "audio/webm"
}

LOCALE_MAP = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "it": "it-IT",
    "pt": "pt-BR",
    "zh": "zh-CN",
    "ja": "ja-JP",
    "ko": "ko-KR",
    "ar": "ar-SA",
    "hi": "hi-IN"
}

TICKS_PER_SECOND = 10_000_000


def to_azure_locale(language: Optional[str], default: str = "en-US") -> str:
    """
    Converte código de idioma em locale do Azure.
    
    Tags completas (pt-BR) passam direto; códigos de duas letras usam a
    tabela conhecida ou o padrão `xx-XX`.
    """
    if not language:
        return default
    language = language.strip()
    if "-" in language:
        return language
    lang = language.lower()
    return LOCALE_MAP.get(lang, f"{lang}-{lang.upper()}")


class AzureSpeechProvider(ITranscriptionProvider):
    """Transcrição via Azure Speech-to-Text REST API."""
    
    service = CircuitService.AZURE_SPEECH
    name = "azure-speech"
    
    def __init__(
        self,
        api_key: str,
        region: str,
        default_language: str = "en-US",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Inicializa o provedor.
        
        Args:
            api_key: Chave de assinatura do recurso Speech
            region: Região do recurso (ex.: eastus)
            default_language: Locale usado quando nenhum idioma é informado
            timeout: Timeout da requisição em segundos
            client: Cliente httpx compartilhado (opcional)
        """
        if not api_key or not region:
            raise ValueError("Azure Speech requires api_key and region")
        
        self.api_key = api_key
        self.region = region
        self.default_language = default_language
        self._client = client or httpx.AsyncClient(timeout=timeout)
    
    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.region}.stt.speech.microsoft.com"
            "/speech/recognition/conversation/cognitiveservices/v1"
        )
    
    async def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        format: str = "wav"
    ) -> ProviderTranscription:
        locale = to_azure_locale(language, self.default_language)
        headers = {
            "Ocp-Apim-Subscription-Key": self.api_key,
            "Content-Type": CONTENT_TYPES.get(format, "audio/wav"),
            "Accept": "application/json"
        }
        
        logger.debug(f"Azure Speech request: {len(audio)} bytes, locale={locale}, format={format}")
        
        try:
            response = await self._client.post(
                self.endpoint,
                params={"language": locale, "format": "detailed"},
                headers=headers,
                content=audio
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(self.name, f"request failed: {e}") from e
        
        if response.status_code >= 400:
            raise TranscriptionError(
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}"
            )
        
        data = response.json()
        status = data.get("RecognitionStatus")
        if status != "Success":
            raise TranscriptionError(self.name, f"recognition status {status}")
        
        text = data.get("DisplayText")
        if not text:
            best = (data.get("NBest") or [{}])[0]
            text = best.get("Display", "")
        
        duration_ticks = data.get("Duration")
        duration = duration_ticks / TICKS_PER_SECOND if duration_ticks is not None else None
        
        return ProviderTranscription(text=text, language=locale, duration=duration)
    
    async def aclose(self) -> None:
        await self._client.aclose()
