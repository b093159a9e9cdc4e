"""
Value helpers: URLs de mídia e coerção de números vindos de payloads/headers.
"""
import math
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

MAX_PATH_SEGMENT_LENGTH = 32
REDACTED_SEGMENT = "[redacted]"


def sanitize_media_url(media_url: Optional[str]) -> str:
    """
    Remove dados sensíveis da URL antes de persistir.
    
    Descarta query string e fragmento e substitui segmentos de caminho
    longos (tokens, IDs assinados) por "[redacted]". URLs inválidas viram "".
    """
    if not media_url or not isinstance(media_url, str):
        return ""
    
    try:
        parts = urlsplit(media_url.strip())
    except ValueError:
        return ""
    
    if not parts.scheme or not parts.netloc:
        return ""
    
    segments = [
        REDACTED_SEGMENT if len(segment) > MAX_PATH_SEGMENT_LENGTH else segment
        for segment in parts.path.split("/")
    ]
    return urlunsplit((parts.scheme, parts.netloc, "/".join(segments) or "/", "", ""))


def normalize_media_url(media_url: Optional[str]) -> str:
    """Forma normalizada usada para comparar a mesma mídia entre sessões."""
    return sanitize_media_url(media_url)


def coerce_number(value: Any) -> Optional[float]:
    """
    Converte valor em número finito.
    
    Returns:
        float, ou None quando ausente, booleano ou não numérico
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None
