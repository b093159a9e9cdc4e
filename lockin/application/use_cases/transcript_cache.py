"""
Use Case: cache de transcrições externas.

Transcrições obtidas pelo cliente (legendas do site, por exemplo) são
normalizadas e salvas pelo fingerprint, permitindo que `create_job` pule o
upload quando o mesmo conteúdo aparecer de novo.
"""
from typing import Any, Dict, Optional

from loguru import logger

from lockin.domain.exceptions import ValidationError
from lockin.domain.interfaces import ITranscriptsRepository
from lockin.domain.value_objects import coerce_number, normalize_media_url, sanitize_media_url


def _normalize_segment(segment: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(segment, dict):
        return None
    start_ms = coerce_number(segment.get("startMs"))
    if start_ms is None:
        return None
    text = segment.get("text").strip() if isinstance(segment.get("text"), str) else ""
    if not text:
        return None
    
    end_ms = coerce_number(segment.get("endMs"))
    normalized: Dict[str, Any] = {
        "startMs": start_ms,
        "endMs": end_ms,
        "text": text
    }
    
    speaker = segment.get("speaker").strip() if isinstance(segment.get("speaker"), str) else ""
    if speaker:
        normalized["speaker"] = speaker
    confidence = coerce_number(segment.get("confidence"))
    if confidence is not None:
        normalized["confidence"] = confidence
    return normalized


def normalize_transcript(transcript: Any) -> Dict[str, Any]:
    """
    Valida e normaliza o JSON de transcrição.
    
    Args:
        transcript: {plainText, segments?, durationMs?}
        
    Returns:
        dict: Transcrição normalizada (segmentos inválidos descartados)
        
    Raises:
        ValidationError: Se faltar o objeto ou o texto
    """
    if not isinstance(transcript, dict):
        raise ValidationError("Transcript is required", "transcript")
    
    plain_text = transcript.get("plainText")
    plain_text = plain_text.strip() if isinstance(plain_text, str) else ""
    if not plain_text:
        raise ValidationError("Transcript text is required", "transcript.plainText")
    
    segments = transcript.get("segments")
    segments = segments if isinstance(segments, list) else []
    
    normalized: Dict[str, Any] = {
        "plainText": plain_text,
        "segments": [s for s in (_normalize_segment(segment) for segment in segments) if s]
    }
    
    duration_ms = coerce_number(transcript.get("durationMs"))
    if duration_ms is not None:
        normalized["durationMs"] = duration_ms
    return normalized


class TranscriptCacheService:
    """Grava transcrições no cache por (user_id, fingerprint)."""
    
    def __init__(self, repository: ITranscriptsRepository):
        self.repository = repository
    
    async def cache_external_transcript(
        self,
        user_id: str,
        fingerprint: Any,
        provider: Any,
        transcript: Any,
        meta: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Normaliza e persiste uma transcrição externa.
        
        Returns:
            dict: Linha persistida
            
        Raises:
            ValidationError: Se faltar usuário, fingerprint, provider ou texto
        """
        if not user_id:
            raise ValidationError("User context missing")
        if not fingerprint or not isinstance(fingerprint, str):
            raise ValidationError("Fingerprint is required", "fingerprint")
        
        provider = provider.strip() if isinstance(provider, str) else ""
        if not provider:
            raise ValidationError("Provider is required", "provider")
        
        normalized = normalize_transcript(transcript)
        meta = meta if isinstance(meta, dict) else {}
        
        raw_media_url = meta.get("mediaUrl") if isinstance(meta.get("mediaUrl"), str) else ""
        raw_normalized_url = meta.get("mediaUrlNormalized")
        if not isinstance(raw_normalized_url, str):
            raw_normalized_url = raw_media_url
        
        duration_ms = coerce_number(meta.get("durationMs", normalized.get("durationMs")))
        
        record = await self.repository.upsert_transcript_cache({
            "user_id": user_id,
            "fingerprint": fingerprint.strip(),
            "provider": provider,
            "media_url_redacted": sanitize_media_url(raw_media_url),
            "media_url_normalized": normalize_media_url(raw_normalized_url),
            "etag": meta.get("etag") if isinstance(meta.get("etag"), str) else None,
            "last_modified": meta.get("lastModified") if isinstance(meta.get("lastModified"), str) else None,
            "duration_ms": int(duration_ms) if duration_ms is not None else None,
            "transcript_json": normalized
        })
        
        logger.info(
            f"Cached external transcript (provider={provider}, segments={len(normalized['segments'])})",
            extra={"user_id": user_id}
        )
        return record
