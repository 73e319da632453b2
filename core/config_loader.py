import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_AVATAR_URL = "https://cdn-icons-png.flaticon.com/512/3135/3135715.png"


class RedisConfig(BaseModel):
    url: str = "redis://localhost:6379/0"
    password: Optional[str] = None


class DiscordConfig(BaseModel):
    """Platform A: Discord webhook (multi-embed capable)."""
    enabled: bool = False
    webhook_url: Optional[str] = None
    role_id: Optional[str] = None  # Pinged on overflow alerts
    username: str = "QBert"
    avatar_url: str = DEFAULT_AVATAR_URL


class SlackConfig(BaseModel):
    """Platform B: Slack incoming webhook (block kit, one message per item)."""
    enabled: bool = False
    webhook_url: Optional[str] = None
    mention: Optional[str] = None  # e.g. "<!here>" or "<!subteam^S123>"


class NotificationSettings(BaseModel):
    """
    Per-installation notification configuration.

    Read-only to the dispatch pipeline; a whole instance is handed to
    every entry point of NotificationService.
    """
    subreddit_name: Optional[str] = None

    # Platforms
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)

    # Thresholds
    stale_threshold_minutes: float = 45
    overflow_threshold: int = 5
    overflow_cooldown_seconds: int = 3600

    # Cadence
    flush_interval_seconds: int = 60
    buffer_ttl_seconds: int = 600

    # Decoration provider
    giphy_api_key: Optional[str] = None
    giphy_tag: str = "waiting in line"

    # Per-type toggles
    enable_submission_notifications: bool = True
    enable_comment_notifications: bool = True
    enable_stale_alerts: bool = True
    enable_overflow_alerts: bool = True

    # Delivery
    request_timeout_seconds: int = 30
    inter_batch_delay_seconds: float = 1.0

    @property
    def discord_active(self) -> bool:
        return self.discord.enabled and bool(self.discord.webhook_url)

    @property
    def slack_active(self) -> bool:
        return self.slack.enabled and bool(self.slack.webhook_url)

    @property
    def effective_buffer_ttl_seconds(self) -> int:
        """
        Buffer safety TTL, stretched to cover at least two flush intervals.

        A TTL shorter than the flush cadence would let buffered items expire
        before any flush could see them.
        """
        return max(self.buffer_ttl_seconds, 2 * self.flush_interval_seconds)

    @model_validator(mode='after')
    def _warn_short_buffer_ttl(self) -> "NotificationSettings":
        minimum = 2 * self.flush_interval_seconds
        if self.buffer_ttl_seconds < minimum:
            logger.warning(
                f"buffer_ttl_seconds ({self.buffer_ttl_seconds}) does not cover two "
                f"flush intervals ({self.flush_interval_seconds}s each); using {minimum}s"
            )
        return self


class AppConfig(BaseModel):
    redis: RedisConfig = Field(default_factory=RedisConfig)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from another dir), try the project root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    data = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Config file not found at {config_path}, using defaults")

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        if not data.get('redis'):
            data['redis'] = {}
        data['redis']['url'] = env_redis_url

    if not data.get('notifications'):
        data['notifications'] = {}
    notifications = data['notifications']

    # Allow env var override for secrets
    env_discord_url = os.environ.get("DISCORD_WEBHOOK_URL")
    if env_discord_url:
        notifications.setdefault('discord', {})
        notifications['discord']['webhook_url'] = env_discord_url

    env_slack_url = os.environ.get("SLACK_WEBHOOK_URL")
    if env_slack_url:
        notifications.setdefault('slack', {})
        notifications['slack']['webhook_url'] = env_slack_url

    env_giphy_key = os.environ.get("GIPHY_API_KEY")
    if env_giphy_key:
        notifications['giphy_api_key'] = env_giphy_key

    return AppConfig(**data)
