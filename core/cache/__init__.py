"""Cache Module - Caching services."""
from core.cache.decoration_cache import (
    TitleCacheService,
    GifCacheService,
    extract_gif_url,
    DEFAULT_GIF_URL,
    UNKNOWN_POST_TITLE,
    TITLE_TTL_SECONDS,
    GIF_TTL_SECONDS,
)

__all__ = [
    'TitleCacheService',
    'GifCacheService',
    'extract_gif_url',
    'DEFAULT_GIF_URL',
    'UNKNOWN_POST_TITLE',
    'TITLE_TTL_SECONDS',
    'GIF_TTL_SECONDS',
]
