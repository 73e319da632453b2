#!/usr/bin/env python3
"""
Notification Tracker - Deduplication Service

Marks queue item ids as handled so the same item is never notified twice
while its mark is alive.

Storage layout (Redis):
    processed:{id} -> "1"   (TTL 24h)

Usage:
    from notification.tracker import DedupTracker

    tracker = DedupTracker(redis_conn)

    if not tracker.is_processed(item.id):
        buffer.enqueue(item)
        tracker.mark_processed(item.id)

Once a mark expires the item may be notified again. Items that sit in the
queue for longer than the TTL can therefore be re-notified; this is accepted.
"""

import logging
from typing import List, Optional, Sequence

from redis import Redis

from notification.events import EventSink

PROCESSED_PREFIX = "processed:"
PROCESSED_TTL_SECONDS = 24 * 60 * 60

logger = logging.getLogger(__name__)


class DedupTracker:
    """
    Tracks which queue items have already been handled.

    Read failures fail open (the item is treated as unprocessed and retried);
    write failures are logged and swallowed.
    """

    def __init__(
        self,
        redis_conn: Redis,
        ttl_seconds: int = PROCESSED_TTL_SECONDS,
        events: Optional[EventSink] = None
    ):
        self.redis = redis_conn
        self.ttl_seconds = ttl_seconds
        self.events = events or EventSink()

    @staticmethod
    def make_key(item_id: str) -> str:
        return f"{PROCESSED_PREFIX}{item_id}"

    def is_processed(self, item_id: str) -> bool:
        """Return True if a live dedup mark exists for the id."""
        try:
            return self.redis.get(self.make_key(item_id)) is not None
        except Exception as e:
            logger.error(f"Error checking if item {item_id} is processed: {e}")
            self.events.record('store_error', operation='is_processed', item_id=item_id)
            return False

    def are_processed(self, item_ids: Sequence[str]) -> List[bool]:
        """
        Batched form of is_processed.

        All lookups are sent in a single pipeline; the result preserves the
        order of `item_ids`. A pipeline failure fails open for the whole batch.
        """
        if not item_ids:
            return []

        try:
            pipe = self.redis.pipeline(transaction=False)
            for item_id in item_ids:
                pipe.get(self.make_key(item_id))
            values = pipe.execute()
        except Exception as e:
            logger.error(f"Error checking {len(item_ids)} items for processed marks: {e}")
            self.events.record('store_error', operation='are_processed', count=len(item_ids))
            return [False] * len(item_ids)

        return [value is not None for value in values]

    def claim(self, item_id: str) -> bool:
        """
        Atomically set the dedup mark if it is absent (SET NX).

        Returns True when this caller set the mark, False when another
        invocation already had. Store errors fail open (True).
        """
        try:
            return bool(self.redis.set(self.make_key(item_id), "1", ex=self.ttl_seconds, nx=True))
        except Exception as e:
            logger.error(f"Error claiming item {item_id}: {e}")
            self.events.record('store_error', operation='claim', item_id=item_id)
            return True

    def mark_processed(self, item_id: str) -> bool:
        """
        Set the dedup mark for an id.

        Returns False if the write failed. A missed mark only risks a
        duplicate notification on the next scan.
        """
        try:
            self.redis.set(self.make_key(item_id), "1", ex=self.ttl_seconds)
            return True
        except Exception as e:
            logger.error(f"Error marking item {item_id} as processed: {e}")
            self.events.record('store_error', operation='mark_processed', item_id=item_id)
            return False
