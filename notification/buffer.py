"""
Notification Buffer - ordered holding area between intake and flush.

Pending items live in a Redis sorted set scored by ingestion time, so a
drain returns them in FIFO order. The set carries a safety TTL that bounds
staleness if flushes stop running.

A flush holds the flush lease, then runs drain_all() followed by
clear(drained). clear() removes only the members that drain returned, so
items enqueued while a flush is in progress survive into the next flush.
Each member carries its own nonce, so re-enqueueing an identical item never
collides with a drained copy.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError
from redis import Redis

from notification.events import EventSink
from notification.models import QueueItem

QUEUE_KEY = "notification_queue"
BUFFER_TTL_SECONDS = 10 * 60

FLUSH_LEASE_KEY = "flush_lease"
FLUSH_LEASE_SECONDS = 5 * 60

logger = logging.getLogger(__name__)


class _BufferMember(BaseModel):
    nonce: str
    item: QueueItem


@dataclass(frozen=True)
class BufferedNotification:
    """A buffered item together with its raw set member and ordering key."""
    item: QueueItem
    member: str
    score: float


class NotificationBuffer:
    """Durable FIFO buffer of pending notifications backed by a sorted set."""

    def __init__(
        self,
        redis_conn: Redis,
        key: str = QUEUE_KEY,
        ttl_seconds: int = BUFFER_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        events: Optional[EventSink] = None
    ):
        self.redis = redis_conn
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.events = events or EventSink()

    def enqueue(self, item: QueueItem, ttl_seconds: Optional[int] = None) -> bool:
        """
        Append an item using the current instant (epoch millis) as its score.
        The safety TTL of the whole set is refreshed on every append.

        Store errors are logged and swallowed; the item is then simply not
        notified.
        """
        score = self.clock() * 1000
        member = _BufferMember(nonce=uuid.uuid4().hex, item=item).model_dump_json()
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.zadd(self.key, {member: score})
            pipe.expire(self.key, ttl_seconds or self.ttl_seconds)
            pipe.execute()
            return True
        except Exception as e:
            logger.error(f"Error buffering notification for {item.id}: {e}")
            self.events.record('store_error', operation='enqueue', item_id=item.id)
            return False

    def drain_all(self) -> List[BufferedNotification]:
        """
        Return every buffered notification in ingestion order.

        Readable members are left in place for clear(). Unreadable members
        are logged and removed immediately.
        """
        raw_members = self.redis.zrange(self.key, 0, -1, withscores=True)

        drained: List[BufferedNotification] = []
        corrupt: List[str] = []
        for member, score in raw_members:
            if isinstance(member, bytes):
                member = member.decode('utf-8')
            try:
                item = _BufferMember.model_validate_json(member).item
            except ValidationError as e:
                logger.warning(f"Dropping unreadable buffered notification: {e}")
                corrupt.append(member)
                continue
            drained.append(BufferedNotification(item=item, member=member, score=float(score)))

        if corrupt:
            self.redis.zrem(self.key, *corrupt)

        return drained

    def clear(self, drained: List[BufferedNotification]) -> int:
        """Remove exactly the given drained members. Returns the number removed."""
        if not drained:
            return 0
        return self.redis.zrem(self.key, *[entry.member for entry in drained])

    def acquire_flush_lease(self, ttl_seconds: int = FLUSH_LEASE_SECONDS) -> Optional[str]:
        """
        Take the exclusive flush lease (SET NX EX).

        Returns a token to pass to release_flush_lease(), or None when another
        flush holds the lease. The TTL bounds how long a crashed flush can
        block the next one.
        """
        token = uuid.uuid4().hex
        if self.redis.set(FLUSH_LEASE_KEY, token, ex=ttl_seconds, nx=True):
            return token
        return None

    def release_flush_lease(self, token: str) -> None:
        """Release the lease if this flush still holds it. Failures are logged."""
        try:
            held = self.redis.get(FLUSH_LEASE_KEY)
            if isinstance(held, bytes):
                held = held.decode('utf-8')
            if held == token:
                self.redis.delete(FLUSH_LEASE_KEY)
        except Exception as e:
            logger.error(f"Error releasing flush lease: {e}")
            self.events.record('store_error', operation='release_flush_lease')
