"""Value objects package."""
from lockin.domain.value_objects.media_url import (
    coerce_number,
    normalize_media_url,
    sanitize_media_url
)

__all__ = ["coerce_number", "normalize_media_url", "sanitize_media_url"]
