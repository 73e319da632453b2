#!/usr/bin/env python3
"""
Notification Channels - webhook delivery per chat platform

- WebhookDispatcher POSTs one JSON payload to one endpoint under the shared
  RetryPolicy and reports success as a bool; it never raises.
- Each NotificationChannel knows how one platform wants rendered payloads
  grouped into requests.

Usage:
    from notification.channels import NotificationChannelFactory, WebhookDispatcher

    dispatcher = WebhookDispatcher()
    for channel in NotificationChannelFactory.active_channels(settings, dispatcher):
        channel.deliver_items(rendered[channel.channel_type], settings)
"""

import logging
import time
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from core.config_loader import NotificationSettings
from notification.message_builder import DISCORD, SLACK, NotificationMessageBuilder
from notification.retry import RateLimitException, RetryPolicy, WebhookDeliveryError

logger = logging.getLogger(__name__)


def _mask_url(url: str) -> str:
    """Strip the secret part of a webhook URL for safe logging."""
    try:
        parsed = urllib.parse.urlparse(url)
        return f"{parsed.scheme}://{parsed.hostname}/***"
    except Exception:
        return "***"


def _parse_retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get('retry-after') if response.headers else None
    if not value:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class WebhookDispatcher:
    """
    Performs HTTP delivery of one payload to one webhook endpoint.

    Non-2xx responses and transport errors are retried per the RetryPolicy;
    429 responses honour Retry-After. Exhausted retries are logged and
    reported as False.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post_once(self, endpoint: str, payload: Dict[str, Any]) -> None:
        response = self.session.post(
            endpoint,
            json=payload,
            headers={'Content-Type': 'application/json'},
            timeout=self.timeout,
        )
        if 200 <= response.status_code < 300:
            return
        if response.status_code == 429:
            raise RateLimitException(retry_after=_parse_retry_after(response))
        raise WebhookDeliveryError(response.status_code, response.text or "")

    def deliver(self, endpoint: str, payload: Dict[str, Any]) -> bool:
        if not endpoint:
            logger.error("Webhook endpoint is not configured")
            return False

        try:
            self.retry_policy.call(self._post_once, endpoint, payload)
            return True
        except Exception as e:
            logger.error(
                f"Failed to deliver webhook to {_mask_url(endpoint)} after "
                f"{self.retry_policy.max_attempts} attempts: {e}"
            )
            return False


@dataclass
class DeliveryResult:
    """Outcome of delivering a set of payloads through one channel."""
    channel_type: str
    requests_sent: int = 0
    requests_failed: int = 0

    @property
    def all_succeeded(self) -> bool:
        return self.requests_failed == 0


class NotificationChannel(ABC):
    """
    Abstract base class for all notification channels.

    A channel receives payloads already rendered by NotificationMessageBuilder
    and decides how many requests they become.
    """

    def __init__(self, dispatcher: WebhookDispatcher, sleep: Callable[[float], None] = time.sleep):
        self.dispatcher = dispatcher
        self.sleep = sleep

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return the channel type identifier."""
        pass

    @abstractmethod
    def endpoint(self, settings: NotificationSettings) -> Optional[str]:
        pass

    @abstractmethod
    def is_active(self, settings: NotificationSettings) -> bool:
        pass

    @abstractmethod
    def build_requests(
        self,
        rendered: List[Dict[str, Any]],
        settings: NotificationSettings
    ) -> List[Dict[str, Any]]:
        """Turn per-item rendered payloads into request bodies."""
        pass

    def inter_request_delay(self, settings: NotificationSettings) -> float:
        return 0.0

    def deliver_items(
        self,
        rendered: List[Dict[str, Any]],
        settings: NotificationSettings
    ) -> DeliveryResult:
        """Deliver rendered item payloads; a failed request does not stop the rest."""
        result = DeliveryResult(channel_type=self.channel_type)
        endpoint = self.endpoint(settings)
        delay = self.inter_request_delay(settings)

        for index, body in enumerate(self.build_requests(rendered, settings)):
            if index > 0 and delay > 0:
                self.sleep(delay)
            result.requests_sent += 1
            if not self.dispatcher.deliver(endpoint, body):
                result.requests_failed += 1

        logger.info(
            f"{self.channel_type}: delivered {result.requests_sent - result.requests_failed}"
            f"/{result.requests_sent} request(s)"
        )
        return result

    def deliver_alert(self, payload: Dict[str, Any], settings: NotificationSettings) -> bool:
        return self.dispatcher.deliver(self.endpoint(settings), payload)


class DiscordChannel(NotificationChannel):
    """Discord webhook: up to 10 embeds per request, spaced by a fixed delay."""

    @property
    def channel_type(self) -> str:
        return DISCORD

    def endpoint(self, settings: NotificationSettings) -> Optional[str]:
        return settings.discord.webhook_url

    def is_active(self, settings: NotificationSettings) -> bool:
        return settings.discord_active

    def build_requests(self, rendered, settings):
        return NotificationMessageBuilder.build_discord_batches(rendered, settings)

    def inter_request_delay(self, settings: NotificationSettings) -> float:
        return settings.inter_batch_delay_seconds


class SlackChannel(NotificationChannel):
    """Slack incoming webhook: no multi-item batching, one request per item."""

    @property
    def channel_type(self) -> str:
        return SLACK

    def endpoint(self, settings: NotificationSettings) -> Optional[str]:
        return settings.slack.webhook_url

    def is_active(self, settings: NotificationSettings) -> bool:
        return settings.slack_active

    def build_requests(self, rendered, settings):
        return list(rendered)


class NotificationChannelFactory:
    """Factory for creating notification channels."""

    # Registry of available channels
    _channels: Dict[str, type] = {
        DISCORD: DiscordChannel,
        SLACK: SlackChannel,
    }

    @classmethod
    def get_channel(
        cls,
        channel_type: str,
        dispatcher: WebhookDispatcher,
        sleep: Callable[[float], None] = time.sleep
    ) -> NotificationChannel:
        """
        Get a notification channel instance by type.

        Raises:
            ValueError: If channel type is not registered
        """
        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            raise ValueError(f"Unknown channel type: {channel_type}. "
                             f"Available: {', '.join(cls._channels.keys())}")
        return channel_class(dispatcher, sleep)

    @classmethod
    def active_channels(
        cls,
        settings: NotificationSettings,
        dispatcher: WebhookDispatcher,
        sleep: Callable[[float], None] = time.sleep
    ) -> List[NotificationChannel]:
        """Channels that are enabled and have an endpoint configured."""
        channels = [cls.get_channel(t, dispatcher, sleep) for t in cls._channels]
        return [channel for channel in channels if channel.is_active(settings)]
