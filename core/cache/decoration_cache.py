"""Decoration caches - Redis memoization of parent post titles and GIFs."""
import logging
from typing import Any, Callable, Dict, Optional

import requests
from redis import Redis

logger = logging.getLogger(__name__)

TITLE_KEY_PREFIX = "post_title:"
TITLE_TTL_SECONDS = 60 * 60  # 1 hour
UNKNOWN_POST_TITLE = "Unknown Post"

GIF_KEY = "cached_gif"
GIF_TTL_SECONDS = 5 * 60  # 5 minutes
GIPHY_SEARCH_URL = "https://api.giphy.com/v1/gifs/search"
DEFAULT_GIF_URL = "https://media.giphy.com/media/tXL4FHPSnVJ0A/giphy.gif"


def _decode(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return str(value)


class TitleCacheService:
    """
    Cache of parent post titles keyed by post id.

    A miss costs exactly one call to `fetch_title`. Fetch failures (an
    exception or an empty result) return UNKNOWN_POST_TITLE and are not
    cached, so the next lookup tries again.
    """

    def __init__(
        self,
        redis_conn: Redis,
        fetch_title: Callable[[str], Optional[str]],
        ttl_seconds: int = TITLE_TTL_SECONDS
    ):
        self._redis = redis_conn
        self.fetch_title = fetch_title
        self.ttl_seconds = ttl_seconds

    def _make_key(self, post_id: str) -> str:
        return f"{TITLE_KEY_PREFIX}{post_id}"

    def get_title(self, post_id: str) -> str:
        key = self._make_key(post_id)

        try:
            cached = _decode(self._redis.get(key))
        except Exception as e:
            logger.warning(f"Error reading from title cache: {e}")
            cached = None

        if cached is not None:
            logger.debug(f"Cache hit for post title {post_id}")
            return cached

        try:
            title = self.fetch_title(post_id)
        except Exception as e:
            logger.warning(f"Error fetching title for post {post_id}: {e}")
            return UNKNOWN_POST_TITLE

        if not title:
            return UNKNOWN_POST_TITLE

        try:
            self._redis.setex(key, self.ttl_seconds, title)
        except Exception as e:
            logger.warning(f"Error writing to title cache: {e}")
        return title


class GifCacheService:
    """
    One shared decorative GIF per TTL window.

    The whole flush batch shares one cached URL, so the rate-limited Giphy
    API is called at most once per window. Without an API key no request is
    made and DEFAULT_GIF_URL is returned.
    """

    def __init__(
        self,
        redis_conn: Redis,
        session: Optional[requests.Session] = None,
        ttl_seconds: int = GIF_TTL_SECONDS,
        timeout: float = 10,
        fallback_url: str = DEFAULT_GIF_URL
    ):
        self._redis = redis_conn
        self.session = session or requests.Session()
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self.fallback_url = fallback_url

    def get_gif(self, api_key: Optional[str], tag: str = "waiting in line") -> str:
        if not api_key:
            return self.fallback_url

        try:
            cached = _decode(self._redis.get(GIF_KEY))
        except Exception as e:
            logger.warning(f"Error reading cached GIF: {e}")
            cached = None

        if cached:
            return cached

        gif_url = self._fetch_gif(api_key, tag)
        if not gif_url:
            return self.fallback_url

        try:
            self._redis.setex(GIF_KEY, self.ttl_seconds, gif_url)
        except Exception as e:
            logger.warning(f"Error caching GIF: {e}")
        return gif_url

    def _fetch_gif(self, api_key: str, tag: str) -> Optional[str]:
        params = {'api_key': api_key, 'q': tag, 'limit': 1, 'rating': 'g'}
        try:
            response = self.session.get(GIPHY_SEARCH_URL, params=params, timeout=self.timeout)
            if response.status_code != 200:
                logger.warning(f"Giphy API returned {response.status_code}, using fallback GIF")
                return None
            return extract_gif_url(response.json())
        except Exception as e:
            logger.warning(f"Error fetching Giphy GIF: {e}")
            return None


def extract_gif_url(body: Dict[str, Any]) -> Optional[str]:
    """
    Pull the GIF URL out of a Giphy response.

    `data` is a list for the search endpoint and a single object for the
    random endpoint.
    """
    data = body.get('data') if isinstance(body, dict) else None
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict):
        return None

    images = data.get('images') or {}
    for rendition in ('original', 'downsized'):
        url = (images.get(rendition) or {}).get('url')
        if url:
            return url
    return None
