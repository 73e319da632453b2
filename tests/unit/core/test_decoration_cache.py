"""Tests for the title and GIF decoration caches."""
from unittest.mock import Mock

import pytest
import requests

from core.cache import (
    DEFAULT_GIF_URL,
    GIF_TTL_SECONDS,
    TITLE_TTL_SECONDS,
    UNKNOWN_POST_TITLE,
    GifCacheService,
    TitleCacheService,
    extract_gif_url,
)
from tests.conftest import make_response

GIPHY_BODY = {
    'data': [{
        'images': {
            'original': {'url': "https://media.giphy.com/media/abc/giphy.gif"},
            'downsized': {'url': "https://media.giphy.com/media/abc/small.gif"},
        }
    }]
}


class TestTitleCacheService:
    def test_miss_fetches_once_then_hits(self, fake_redis):
        fetch = Mock(return_value="Hello World")
        cache = TitleCacheService(fake_redis, fetch)

        assert cache.get_title("t3_abc") == "Hello World"
        assert cache.get_title("t3_abc") == "Hello World"

        fetch.assert_called_once_with("t3_abc")
        assert fake_redis.ttl("post_title:t3_abc") == TITLE_TTL_SECONDS

    def test_entry_expires_after_an_hour(self, fake_redis, fake_clock):
        fetch = Mock(return_value="Hello World")
        cache = TitleCacheService(fake_redis, fetch)

        cache.get_title("t3_abc")
        fake_clock.advance(TITLE_TTL_SECONDS)
        cache.get_title("t3_abc")

        assert fetch.call_count == 2

    def test_fetch_failure_is_not_cached(self, fake_redis):
        fetch = Mock(side_effect=[requests.HTTPError("404"), "Recovered"])
        cache = TitleCacheService(fake_redis, fetch)

        assert cache.get_title("t3_abc") == UNKNOWN_POST_TITLE
        assert fake_redis.get("post_title:t3_abc") is None
        assert cache.get_title("t3_abc") == "Recovered"

    def test_empty_title_falls_back(self, fake_redis):
        cache = TitleCacheService(fake_redis, Mock(return_value=None))
        assert cache.get_title("t3_abc") == UNKNOWN_POST_TITLE

    def test_redis_down_still_fetches(self, fake_redis):
        fake_redis.broken = True
        cache = TitleCacheService(fake_redis, Mock(return_value="Hello"))
        assert cache.get_title("t3_abc") == "Hello"


class TestGifCacheService:
    @pytest.fixture
    def session(self):
        session = Mock()
        response = make_response(200)
        response.json.return_value = GIPHY_BODY
        session.get.return_value = response
        return session

    def test_no_api_key_makes_no_request(self, fake_redis, session):
        cache = GifCacheService(fake_redis, session=session)

        assert cache.get_gif(None) == DEFAULT_GIF_URL
        assert cache.get_gif("") == DEFAULT_GIF_URL
        session.get.assert_not_called()
        assert fake_redis.calls == []

    def test_fetch_then_cache(self, fake_redis, session):
        cache = GifCacheService(fake_redis, session=session)

        first = cache.get_gif("key", "waiting in line")
        second = cache.get_gif("key", "waiting in line")

        assert first == second == "https://media.giphy.com/media/abc/giphy.gif"
        session.get.assert_called_once()
        params = session.get.call_args.kwargs['params']
        assert params['api_key'] == "key"
        assert params['q'] == "waiting in line"
        assert fake_redis.ttl("cached_gif") == GIF_TTL_SECONDS

    def test_refetch_after_ttl(self, fake_redis, fake_clock, session):
        cache = GifCacheService(fake_redis, session=session)

        cache.get_gif("key")
        fake_clock.advance(GIF_TTL_SECONDS)
        cache.get_gif("key")

        assert session.get.call_count == 2

    def test_provider_error_uses_fallback(self, fake_redis, session):
        session.get.return_value = make_response(429)
        cache = GifCacheService(fake_redis, session=session)

        assert cache.get_gif("key") == DEFAULT_GIF_URL
        assert fake_redis.get("cached_gif") is None

    def test_transport_error_uses_fallback(self, fake_redis, session):
        session.get.side_effect = requests.Timeout("slow")
        cache = GifCacheService(fake_redis, session=session)

        assert cache.get_gif("key") == DEFAULT_GIF_URL
        session.get.assert_called_once()


class TestExtractGifUrl:
    def test_search_response(self):
        assert extract_gif_url(GIPHY_BODY) == "https://media.giphy.com/media/abc/giphy.gif"

    def test_random_response_object(self):
        body = {'data': {'images': {'downsized': {'url': "https://x/small.gif"}}}}
        assert extract_gif_url(body) == "https://x/small.gif"

    def test_empty_results(self):
        assert extract_gif_url({'data': []}) is None
        assert extract_gif_url({}) is None
