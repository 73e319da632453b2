"""
Queue item model and normalization.

Raw moderation-queue records are normalized exactly once, at intake, into a
QueueItem whose `kind` is decided from the id prefix. Downstream code only
looks at `kind`.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

SUBMISSION_PREFIX = "t3_"
COMMENT_PREFIX = "t1_"
REDDIT_BASE_URL = "https://reddit.com"

UNKNOWN_AUTHOR = "Unknown"
UNKNOWN_POST = "Unknown Post"
UNTITLED_POST = "Untitled Post"

# Epoch values above this are treated as milliseconds
_EPOCH_MS_THRESHOLD = 10 ** 11


class UnknownItemTypeError(ValueError):
    """Raised when a queue item id carries neither a submission nor a comment prefix."""

    def __init__(self, item_id: str):
        super().__init__(f"Unknown item type for {item_id}")
        self.item_id = item_id


class ItemKind(str, Enum):
    SUBMISSION = "submission"
    COMMENT = "comment"


class QueueItem(BaseModel):
    """A normalized moderation-queue item. Immutable once constructed."""
    model_config = ConfigDict(frozen=True)

    id: str
    kind: ItemKind
    title: str
    author: str
    url: str
    created_at: datetime
    is_stale: bool = False
    parent_title: Optional[str] = None  # Comments only

    @property
    def is_submission(self) -> bool:
        return self.kind is ItemKind.SUBMISSION

    @property
    def is_comment(self) -> bool:
        return self.kind is ItemKind.COMMENT

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any],
        stale_threshold_minutes: float,
        subreddit_name: Optional[str] = None,
        now: Optional[datetime] = None,
        title_lookup: Optional[Callable[[str], str]] = None,
    ) -> "QueueItem":
        """
        Build a QueueItem from a raw queue record.

        Missing fields fall back to fixed placeholder text rather than
        failing the item.

        Args:
            raw: Raw record (dict-like) from the event source or a queue scan
            stale_threshold_minutes: Age above which the item is stale
            subreddit_name: Used for fallback permalinks
            now: Reference instant (defaults to current UTC time)
            title_lookup: Resolves a parent post id to its title for comments
                that do not carry one

        Raises:
            UnknownItemTypeError: If the id is not a submission or comment id
        """
        now = now or datetime.now(timezone.utc)
        item_id = str(raw.get('id') or raw.get('name') or '')

        if item_id.startswith(SUBMISSION_PREFIX):
            kind = ItemKind.SUBMISSION
        elif item_id.startswith(COMMENT_PREFIX):
            kind = ItemKind.COMMENT
        else:
            raise UnknownItemTypeError(item_id)

        created_at = parse_created_at(raw)
        if created_at is None:
            logger.warning(f"Could not determine creation time for {item_id}, using current time")
            created_at = now

        author = _text(raw.get('author')) or UNKNOWN_AUTHOR
        url = build_item_url(raw.get('permalink'), item_id, subreddit_name)

        if kind is ItemKind.SUBMISSION:
            title = _text(raw.get('title')) or UNTITLED_POST
            parent_title = None
        else:
            parent_title = _resolve_parent_title(raw, title_lookup)
            title = comment_title(author, parent_title)

        return cls(
            id=item_id,
            kind=kind,
            title=title,
            author=author,
            url=url,
            created_at=created_at,
            is_stale=is_stale(created_at, stale_threshold_minutes, now),
            parent_title=parent_title,
        )


def comment_title(author: str, parent_title: str) -> str:
    return f'{author} has commented on "{parent_title}"'


def is_stale(created_at: datetime, threshold_minutes: float, now: Optional[datetime] = None) -> bool:
    """Return True when the item's age is strictly greater than the threshold."""
    now = now or datetime.now(timezone.utc)
    age_minutes = (now - created_at).total_seconds() / 60
    return age_minutes > threshold_minutes


def parse_created_at(raw: Mapping[str, Any]) -> Optional[datetime]:
    """Extract the creation instant from the field names the event sources use."""
    for field in ('createdAt', 'created_at'):
        value = raw.get(field)
        if value:
            return _to_datetime(value)

    created_utc = raw.get('created_utc')
    if created_utc:
        try:
            return _to_datetime(float(created_utc))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed created_utc: {created_utc!r}")
    return None


def build_item_url(permalink: Optional[str], item_id: str, subreddit_name: Optional[str]) -> str:
    if permalink:
        permalink = str(permalink)
        if permalink.startswith('http'):
            return permalink
        return f"{REDDIT_BASE_URL}{permalink}"
    bare_id = item_id.split('_', 1)[-1]
    return f"{REDDIT_BASE_URL}/r/{subreddit_name or 'mod'}/comments/{bare_id}"


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            logger.warning(f"Ignoring out-of-range timestamp: {value!r}")
            return None
    if isinstance(value, str):
        try:
            return _to_datetime(float(value))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
        return _to_datetime(parsed)
    return None


def _resolve_parent_title(
    raw: Mapping[str, Any],
    title_lookup: Optional[Callable[[str], str]],
) -> str:
    for field in ('linkTitle', 'link_title', 'parentTitle', 'parent_title'):
        value = _text(raw.get(field))
        if value:
            return value

    link_id = raw.get('linkId') or raw.get('link_id')
    if link_id and title_lookup:
        return title_lookup(str(link_id)) or UNKNOWN_POST
    return UNKNOWN_POST


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()
