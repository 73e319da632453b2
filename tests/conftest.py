"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
Unit tests run against the in-memory Redis double in tests/mocks and a
mocked requests session; nothing touches the network.
"""

from unittest.mock import Mock

import pytest

from core.config_loader import DiscordConfig, NotificationSettings, SlackConfig
from notification.channels import WebhookDispatcher
from notification.events import RecordingEventSink
from notification.retry import RetryPolicy
from notification.service import NotificationService
from tests.mocks.redis_mocks import FakeClock, InMemoryRedis

DISCORD_URL = "https://discord.com/api/webhooks/123/secret-token"
SLACK_URL = "https://hooks.slack.com/services/T000/B000/secret"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "redis: marks tests as requiring a real Redis server (deselect with '-m \"not redis\"')"
    )


def make_response(status_code: int = 204, headers=None, text: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    return response


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock):
    return InMemoryRedis(clock=fake_clock)


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def http_session():
    """Mocked requests.Session; every POST succeeds unless a test overrides it."""
    session = Mock()
    session.post.return_value = make_response(204)
    return session


@pytest.fixture
def settings():
    return NotificationSettings(
        subreddit_name="testsub",
        discord=DiscordConfig(enabled=True, webhook_url=DISCORD_URL, role_id="999"),
        slack=SlackConfig(enabled=True, webhook_url=SLACK_URL, mention="<!here>"),
        stale_threshold_minutes=45,
        overflow_threshold=5,
        inter_batch_delay_seconds=1.0,
    )


@pytest.fixture
def gif_cache():
    cache = Mock()
    cache.get_gif.return_value = "https://media.giphy.com/media/test/giphy.gif"
    return cache


@pytest.fixture
def title_cache():
    cache = Mock()
    cache.get_title.return_value = "Parent Post"
    return cache


@pytest.fixture
def service(fake_redis, http_session, events, sleep, fake_clock, gif_cache, title_cache):
    dispatcher = WebhookDispatcher(RetryPolicy(sleep=sleep), session=http_session)
    return NotificationService(
        fake_redis,
        dispatcher=dispatcher,
        title_cache=title_cache,
        gif_cache=gif_cache,
        events=events,
        sleep=sleep,
        clock=fake_clock,
    )
