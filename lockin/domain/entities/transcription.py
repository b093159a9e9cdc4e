"""
Entities: resultados de transcrição.
Representam a resposta de um provedor e o resultado final do cliente com failover.
"""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class TranscriptionSegment:
    """Segmento com timestamps em segundos."""
    
    start: float
    end: float
    text: str
    
    def to_dict(self) -> dict:
        """Converte para o formato de transcript em milissegundos."""
        return {
            "startMs": int(round(self.start * 1000)),
            "endMs": int(round(self.end * 1000)),
            "text": self.text
        }


@dataclass
class ProviderTranscription:
    """Resposta normalizada de um provedor de transcrição."""
    
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None
    segments: List[TranscriptionSegment] = field(default_factory=list)


@dataclass
class TranscriptionResult:
    """Resultado do TranscriptionClient, indicando se houve failover."""
    
    text: str
    provider: str
    fallback_used: bool
    duration: Optional[float] = None
    language: Optional[str] = None
    segments: List[TranscriptionSegment] = field(default_factory=list)
    primary_error: Optional[str] = None
    
    def to_dict(self) -> dict:
        """Converte para dicionário."""
        return {
            "text": self.text,
            "provider": self.provider,
            "fallbackUsed": self.fallback_used,
            "duration": self.duration,
            "language": self.language,
            "segments": [segment.to_dict() for segment in self.segments],
            "primaryError": self.primary_error
        }
