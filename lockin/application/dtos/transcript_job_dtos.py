"""
DTOs (Data Transfer Objects) da API de jobs de transcrição.

Os campos seguem o JSON camelCase do cliente (aliases). A validação de regra
de negócio fica nos use cases; aqui só garantimos tipos.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateJobRequestDTO(BaseModel):
    """DTO para criação de job."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    fingerprint: Optional[str] = Field(
        default=None,
        description="Chave de deduplicação derivada do conteúdo"
    )
    media_url: Optional[str] = Field(
        default=None,
        alias="mediaUrl",
        description="URL da mídia (query e tokens são removidos antes de salvar)",
        examples=["https://cdn.example.com/lectures/week-1.webm"]
    )
    media_url_normalized: Optional[str] = Field(default=None, alias="mediaUrlNormalized")
    duration_ms: Optional[float] = Field(default=None, alias="durationMs", ge=0)
    provider: Optional[str] = Field(default=None, description="Origem da mídia", examples=["panopto", "youtube"])
    expected_total_chunks: Optional[int] = Field(default=None, alias="expectedTotalChunks")
    
    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FinalizeJobRequestDTO(BaseModel):
    """DTO para finalização de job."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    language_hint: Optional[str] = Field(
        default=None,
        alias="languageHint",
        description="Idioma esperado (en, pt, en-US...)",
        examples=["en", "pt-BR"]
    )
    max_minutes: Optional[float] = Field(default=None, alias="maxMinutes")
    expected_total_chunks: Optional[int] = Field(default=None, alias="expectedTotalChunks")
    
    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TranscriptSegmentDTO(BaseModel):
    """Segmento de transcrição em milissegundos."""
    
    model_config = ConfigDict(populate_by_name=True, extra="allow")
    
    start_ms: Optional[float] = Field(default=None, alias="startMs")
    end_ms: Optional[float] = Field(default=None, alias="endMs")
    text: Optional[str] = None
    speaker: Optional[str] = None
    confidence: Optional[float] = None


class TranscriptDTO(BaseModel):
    """Transcrição completa (formato armazenado em cache)."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    plain_text: Optional[str] = Field(default=None, alias="plainText")
    segments: List[TranscriptSegmentDTO] = Field(default_factory=list)
    duration_ms: Optional[float] = Field(default=None, alias="durationMs")


class CacheTranscriptRequestDTO(BaseModel):
    """DTO para salvar transcrição externa no cache."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    fingerprint: Optional[str] = None
    provider: Optional[str] = None
    transcript: Optional[TranscriptDTO] = None
    meta: Optional[Dict[str, Any]] = Field(
        default=None,
        description="mediaUrl, mediaUrlNormalized, etag, lastModified, durationMs"
    )
    
    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorResponseDTO(BaseModel):
    """DTO para respostas de erro."""
    
    error: str = Field(..., description="Código do erro")
    message: str = Field(..., description="Mensagem de erro")
    request_id: Optional[str] = Field(default=None, description="ID da requisição")
    details: Dict[str, Any] = Field(default_factory=dict, description="Detalhes adicionais")


class HealthCheckDTO(BaseModel):
    """DTO para health check."""
    
    status: str = Field(..., description="Status do serviço")
    version: str = Field(..., description="Versão da API")
    environment: str = Field(..., description="Ambiente de execução")
    timestamp: float = Field(..., description="Timestamp da verificação")
