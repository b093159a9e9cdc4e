"""
Provedor OpenAI Whisper (API de transcrição).
"""
from typing import Optional

import httpx
from loguru import logger

from lockin.domain.entities import ProviderTranscription, TranscriptionSegment
from lockin.domain.exceptions import TranscriptionError
from lockin.domain.interfaces import ITranscriptionProvider
from lockin.infrastructure.transcription.azure_speech import CONTENT_TYPES
from lockin.infrastructure.utils import CircuitService

OPENAI_TRANSCRIPTIONS_URL = "https://api.openai.com/v1/audio/transcriptions"


class OpenAIWhisperProvider(ITranscriptionProvider):
    """Transcrição via OpenAI Whisper com resposta verbose_json (segmentos)."""
    
    service = CircuitService.OPENAI_WHISPER
    name = "openai-whisper"
    
    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
        endpoint: str = OPENAI_TRANSCRIPTIONS_URL
    ):
        if not api_key:
            raise ValueError("OpenAI Whisper requires api_key")
        
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self._client = client or httpx.AsyncClient(timeout=timeout)
    
    async def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        format: str = "wav"
    ) -> ProviderTranscription:
        data = {"model": self.model, "response_format": "verbose_json"}
        if language:
            # Whisper aceita ISO-639-1
            data["language"] = language.split("-")[0].lower()
        
        files = {
            "file": (f"audio.{format}", audio, CONTENT_TYPES.get(format, "application/octet-stream"))
        }
        
        logger.debug(f"OpenAI Whisper request: {len(audio)} bytes, model={self.model}")
        
        try:
            response = await self._client.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=data,
                files=files
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(self.name, f"request failed: {e}") from e
        
        if response.status_code >= 400:
            raise TranscriptionError(
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}"
            )
        
        payload = response.json()
        segments = [
            TranscriptionSegment(
                start=float(segment.get("start") or 0),
                end=float(segment.get("end") or 0),
                text=(segment.get("text") or "").strip()
            )
            for segment in payload.get("segments") or []
            if (segment.get("text") or "").strip()
        ]
        
        return ProviderTranscription(
            text=(payload.get("text") or "").strip(),
            language=payload.get("language"),
            duration=payload.get("duration"),
            segments=segments
        )
    
    async def aclose(self) -> None:
        await self._client.aclose()
