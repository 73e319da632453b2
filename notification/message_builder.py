"""
Payload rendering for queue-item and overflow notifications.

Pure functions: given the same inputs (and the same `rendered_at`) the
output is identical, and nothing here performs I/O.

Platforms:
    discord - embeds; up to DISCORD_MAX_EMBEDS embeds per webhook request
    slack   - block kit; one message per item
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from core.config_loader import NotificationSettings
from notification.models import QueueItem

DISCORD = 'discord'
SLACK = 'slack'

DISCORD_MAX_EMBEDS = 10
DISCORD_TITLE_LIMIT = 256
DISCORD_DESCRIPTION_LIMIT = 4096
SLACK_HEADER_LIMIT = 150

OVERFLOW_TITLE = "You had one job! Stop shootin' the shit and check the damn queue!"

T = TypeVar("T")


class Colors:
    """Embed colors by urgency."""
    NEW_SUBMISSION = 0x57F287  # green
    NEW_COMMENT = 0x3498DB     # blue
    STALE = 0xED4245           # red
    OVERFLOW = 0x9B59B6        # dark magenta


def chunk(items: Sequence[T], capacity: int) -> List[List[T]]:
    """Split items into consecutive groups of at most `capacity`."""
    if capacity < 1:
        raise ValueError("capacity must be at least 1")
    return [list(items[i:i + capacity]) for i in range(0, len(items), capacity)]


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def _escape_slack(text: str) -> str:
    return text.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class NotificationMessageBuilder:
    @staticmethod
    def item_color(item: QueueItem) -> int:
        if item.is_stale:
            return Colors.STALE
        if item.is_submission:
            return Colors.NEW_SUBMISSION
        return Colors.NEW_COMMENT

    @staticmethod
    def item_description(item: QueueItem) -> str:
        """Body text by kind x staleness."""
        waiting_since = _iso(item.created_at)
        if item.is_submission:
            if item.is_stale:
                return (
                    f"There is a Stale Post in the ModQueue from {item.author}!\n"
                    f"Post has been waiting since {waiting_since}"
                )
            return f"New Post in the ModQueue from {item.author}!"

        if item.is_stale:
            return (
                f"There is a Stale Comment in the ModQueue from {item.author}!\n"
                f"Comment has been waiting since {waiting_since}"
            )
        return "New comment in the ModQueue!"

    @staticmethod
    def overflow_description(count: int) -> str:
        return f"There are {count} items in the queue!!!"

    # ------------------------------------------------------------------
    # Discord
    # ------------------------------------------------------------------

    @staticmethod
    def build_item_embed(
        item: QueueItem,
        gif_url: Optional[str] = None,
        rendered_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        rendered_at = rendered_at or datetime.now(timezone.utc)
        embed: Dict[str, Any] = {
            'title': _truncate(item.title, DISCORD_TITLE_LIMIT),
            'description': _truncate(
                NotificationMessageBuilder.item_description(item), DISCORD_DESCRIPTION_LIMIT
            ),
            'url': item.url,
            'color': NotificationMessageBuilder.item_color(item),
            'timestamp': _iso(rendered_at),
        }
        if gif_url:
            embed['thumbnail'] = {'url': gif_url}
        return embed

    @staticmethod
    def build_overflow_embed(count: int, rendered_at: Optional[datetime] = None) -> Dict[str, Any]:
        rendered_at = rendered_at or datetime.now(timezone.utc)
        return {
            'title': OVERFLOW_TITLE,
            'description': NotificationMessageBuilder.overflow_description(count),
            'color': Colors.OVERFLOW,
            'timestamp': _iso(rendered_at),
        }

    @staticmethod
    def build_discord_payload(
        embeds: List[Dict[str, Any]],
        settings: NotificationSettings,
        content: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'username': settings.discord.username,
            'avatar_url': settings.discord.avatar_url,
            'embeds': embeds,
        }
        if content:
            payload['content'] = content
        return payload

    @staticmethod
    def build_discord_batches(
        embeds: List[Dict[str, Any]],
        settings: NotificationSettings
    ) -> List[Dict[str, Any]]:
        """Group embeds into request payloads of at most DISCORD_MAX_EMBEDS each."""
        return [
            NotificationMessageBuilder.build_discord_payload(group, settings)
            for group in chunk(embeds, DISCORD_MAX_EMBEDS)
        ]

    # ------------------------------------------------------------------
    # Slack
    # ------------------------------------------------------------------

    @staticmethod
    def build_item_blocks(
        item: QueueItem,
        gif_url: Optional[str] = None,
        rendered_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        rendered_at = rendered_at or datetime.now(timezone.utc)
        marker = ":rotating_light:" if item.is_stale else ":new:"
        description = _escape_slack(NotificationMessageBuilder.item_description(item))

        section: Dict[str, Any] = {
            'type': 'section',
            'text': {
                'type': 'mrkdwn',
                'text': f"{marker} {description}\n<{item.url}|Open in ModQueue>",
            },
        }
        if gif_url:
            section['accessory'] = {
                'type': 'image',
                'image_url': gif_url,
                'alt_text': 'waiting',
            }

        return {
            'blocks': [
                {
                    'type': 'header',
                    'text': {
                        'type': 'plain_text',
                        'text': _truncate(item.title, SLACK_HEADER_LIMIT),
                        'emoji': True,
                    },
                },
                section,
                {
                    'type': 'context',
                    'elements': [{
                        'type': 'mrkdwn',
                        'text': f"{item.kind.value} by {_escape_slack(item.author)} | {_iso(rendered_at)}",
                    }],
                },
            ]
        }

    @staticmethod
    def build_overflow_blocks(
        count: int,
        mention: Optional[str] = None,
        rendered_at: Optional[datetime] = None
    ) -> Dict[str, Any]:
        rendered_at = rendered_at or datetime.now(timezone.utc)
        text = f":warning: {NotificationMessageBuilder.overflow_description(count)}"
        if mention:
            text = f"{mention} {text}"
        return {
            'blocks': [
                {
                    'type': 'header',
                    'text': {'type': 'plain_text', 'text': _truncate(OVERFLOW_TITLE, SLACK_HEADER_LIMIT), 'emoji': True},
                },
                {
                    'type': 'section',
                    'text': {'type': 'mrkdwn', 'text': text},
                },
                {
                    'type': 'context',
                    'elements': [{'type': 'mrkdwn', 'text': _iso(rendered_at)}],
                },
            ]
        }

    # ------------------------------------------------------------------
    # Per-platform fan-out
    # ------------------------------------------------------------------

    @staticmethod
    def render_item(
        item: QueueItem,
        settings: NotificationSettings,
        gif_url: Optional[str] = None,
        rendered_at: Optional[datetime] = None
    ) -> Dict[str, Dict[str, Any]]:
        """
        Render one item for every active platform.

        Discord gets a single embed (batched into requests later); Slack gets
        a complete message body.
        """
        rendered: Dict[str, Dict[str, Any]] = {}
        if settings.discord_active:
            rendered[DISCORD] = NotificationMessageBuilder.build_item_embed(item, gif_url, rendered_at)
        if settings.slack_active:
            rendered[SLACK] = NotificationMessageBuilder.build_item_blocks(item, gif_url, rendered_at)
        return rendered

    @staticmethod
    def render_overflow(
        count: int,
        settings: NotificationSettings,
        rendered_at: Optional[datetime] = None
    ) -> Dict[str, Dict[str, Any]]:
        """Render the overflow alert for every active platform, with role mentions."""
        rendered: Dict[str, Dict[str, Any]] = {}
        if settings.discord_active:
            role_id = settings.discord.role_id
            rendered[DISCORD] = NotificationMessageBuilder.build_discord_payload(
                [NotificationMessageBuilder.build_overflow_embed(count, rendered_at)],
                settings,
                content=f"<@&{role_id}>" if role_id else None,
            )
        if settings.slack_active:
            rendered[SLACK] = NotificationMessageBuilder.build_overflow_blocks(
                count, settings.slack.mention, rendered_at
            )
        return rendered
