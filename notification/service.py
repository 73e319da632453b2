#!/usr/bin/env python3
"""
Notification Service - moderation queue dispatch pipeline

Entry points (each one invocation of an external trigger):
    on_item_detected(item, settings)        intake: dedup check, then buffer
    on_flush_tick(settings)                 drain buffer, render, deliver
    on_backup_scan(items, settings)         re-run intake for missed items
    on_queue_size_observed(count, settings) cooldown-gated overflow alert

No entry point raises: errors from one item or one platform are logged and
the rest of the invocation continues. Every side effect (dedup mark, buffer
append) is committed on its own, so overlapping or cut-off invocations leave
consistent state behind.

Usage:
    from notification.service import NotificationService

    service = NotificationService(Redis.from_url(redis_url))
    service.on_item_detected(item, settings)
    service.on_flush_tick(settings)

The same entry points are exposed as RQ task functions at the bottom of this
module for use with notification.worker.
"""

import logging
import os
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from redis import Redis

from core.cache import GifCacheService, TitleCacheService
from core.config_loader import AppConfig, NotificationSettings, load_config
from core.reddit_client import RedditClient
from notification.buffer import NotificationBuffer
from notification.channels import (
    DeliveryResult,
    NotificationChannel,
    NotificationChannelFactory,
    WebhookDispatcher,
)
from notification.events import EventSink
from notification.message_builder import NotificationMessageBuilder
from notification.models import QueueItem, UnknownItemTypeError
from notification.overflow import OverflowGate
from notification.retry import RetryPolicy
from notification.tracker import DedupTracker

logger = logging.getLogger(__name__)

LAST_CHECK_KEY = "last_check"

T = TypeVar("T")

RawItem = Union[QueueItem, Mapping[str, Any]]


class AdmitOutcome(str, Enum):
    BUFFERED = "buffered"
    DUPLICATE = "duplicate"
    SUPPRESSED = "suppressed"
    NOT_BUFFERED = "not_buffered"  # store error on enqueue


@dataclass
class FlushResult:
    drained: int = 0
    delivered_platforms: int = 0
    failed_platforms: int = 0
    cleared: int = 0
    skipped: bool = False  # another flush held the lease


@dataclass
class ScanResult:
    scanned: int = 0
    already_processed: int = 0
    buffered: int = 0
    suppressed: int = 0
    skipped_unknown: int = 0
    errors: int = 0
    overflow_alert_sent: bool = False


def should_notify(item: QueueItem, settings: NotificationSettings) -> bool:
    """Per-type toggles: stale items follow the stale toggle, fresh ones their kind's toggle."""
    if item.is_stale:
        return settings.enable_stale_alerts
    if item.is_submission:
        return settings.enable_submission_notifications
    return settings.enable_comment_notifications


def _raw_id(raw: RawItem) -> str:
    if isinstance(raw, QueueItem):
        return raw.id
    return str(raw.get('id') or raw.get('name') or '')


class NotificationService:
    """
    Orchestrates the dispatch pipeline.

    Collaborators are created from the Redis connection unless injected;
    tests inject a fake Redis, a recording EventSink, and a no-op sleep.
    """

    def __init__(
        self,
        redis_conn: Redis,
        dispatcher: Optional[WebhookDispatcher] = None,
        title_cache: Optional[TitleCacheService] = None,
        gif_cache: Optional[GifCacheService] = None,
        events: Optional[EventSink] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        max_workers: int = 4
    ):
        self.redis = redis_conn
        self.events = events or EventSink()
        self.sleep = sleep
        self.clock = clock
        self.max_workers = max_workers

        self.tracker = DedupTracker(redis_conn, events=self.events)
        self.buffer = NotificationBuffer(redis_conn, clock=clock, events=self.events)
        self.overflow_gate = OverflowGate(redis_conn, clock=clock, events=self.events)
        self.dispatcher = dispatcher or WebhookDispatcher(RetryPolicy(sleep=sleep))
        self.gif_cache = gif_cache or GifCacheService(redis_conn)
        self.title_cache = title_cache or TitleCacheService(
            redis_conn, RedditClient().fetch_post_title
        )

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def normalize(self, raw: RawItem, settings: NotificationSettings) -> QueueItem:
        """
        Normalize a raw record, resolving missing comment parent titles
        through the title cache.

        Raises:
            UnknownItemTypeError: For ids that are neither submissions nor comments
        """
        if isinstance(raw, QueueItem):
            return raw
        return QueueItem.from_raw(
            raw,
            stale_threshold_minutes=settings.stale_threshold_minutes,
            subreddit_name=settings.subreddit_name,
            now=self._now(),
            title_lookup=self.title_cache.get_title,
        )

    def on_item_detected(self, item: QueueItem, settings: NotificationSettings) -> bool:
        """
        Intake one detected item. Returns True if it was buffered.
        """
        try:
            if self.tracker.is_processed(item.id):
                self.events.record('item_skipped_duplicate', item_id=item.id)
                return False
            return self._admit(item, settings) is AdmitOutcome.BUFFERED
        except Exception as e:
            logger.error(f"Error processing item {item.id}: {e}", exc_info=True)
            return False

    def _admit(self, item: QueueItem, settings: NotificationSettings) -> AdmitOutcome:
        # SET NX settles races between overlapping triggers for the same id
        if not self.tracker.claim(item.id):
            self.events.record('item_skipped_duplicate', item_id=item.id)
            return AdmitOutcome.DUPLICATE

        if not should_notify(item, settings):
            self.events.record(
                'item_suppressed', item_id=item.id, kind=item.kind.value, stale=item.is_stale
            )
            return AdmitOutcome.SUPPRESSED

        buffered = self.buffer.enqueue(item, ttl_seconds=settings.effective_buffer_ttl_seconds)
        if not buffered:
            return AdmitOutcome.NOT_BUFFERED
        self.events.record('item_buffered', item_id=item.id, kind=item.kind.value, stale=item.is_stale)
        return AdmitOutcome.BUFFERED

    def on_backup_scan(self, items: Sequence[RawItem], settings: NotificationSettings) -> ScanResult:
        """
        Re-run intake over a full queue listing.

        Already-processed ids are filtered with one batched lookup before any
        normalization work. Ends by recording `last_check` and reporting the
        queue size to the overflow gate.
        """
        result = ScanResult(scanned=len(items))
        try:
            ids = [_raw_id(raw) for raw in items]
            processed_flags = self.tracker.are_processed(ids)

            for raw, item_id, processed in zip(items, ids, processed_flags):
                if processed:
                    result.already_processed += 1
                    continue
                try:
                    item = self.normalize(raw, settings)
                except UnknownItemTypeError:
                    logger.warning(f"Unknown item type for {item_id}, skipping")
                    self.events.record('unknown_item_type', item_id=item_id)
                    self.tracker.mark_processed(item_id)
                    result.skipped_unknown += 1
                    continue
                except Exception as e:
                    logger.error(f"Error normalizing item {item_id}: {e}", exc_info=True)
                    result.errors += 1
                    continue

                try:
                    outcome = self._admit(item, settings)
                    if outcome is AdmitOutcome.BUFFERED:
                        result.buffered += 1
                    elif outcome is AdmitOutcome.DUPLICATE:
                        result.already_processed += 1
                    elif outcome is AdmitOutcome.SUPPRESSED:
                        result.suppressed += 1
                    else:
                        result.errors += 1
                except Exception as e:
                    logger.error(f"Error processing item {item_id}: {e}", exc_info=True)
                    result.errors += 1

            self._record_last_check()
            result.overflow_alert_sent = self.on_queue_size_observed(len(items), settings)
        except Exception as e:
            logger.error(f"Fatal error in backup scan: {e}", exc_info=True)

        logger.info(
            f"Backup scan: {result.scanned} scanned, {result.buffered} buffered, "
            f"{result.already_processed} already processed, {result.suppressed} suppressed"
        )
        return result

    def _record_last_check(self) -> None:
        try:
            self.redis.set(LAST_CHECK_KEY, self._now().isoformat())
        except Exception as e:
            logger.warning(f"Error updating {LAST_CHECK_KEY} timestamp: {e}")

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def on_flush_tick(self, settings: NotificationSettings) -> FlushResult:
        """
        Drain the buffer and deliver to every active platform concurrently.

        The drained members are cleared once delivery has been attempted,
        whatever the per-platform outcome. Items appended during the flush
        are not touched and go out with the next one.

        Only one flush runs at a time: a tick that finds the flush lease
        held returns without draining.
        """
        result = FlushResult()
        try:
            lease = self.buffer.acquire_flush_lease()
        except Exception as e:
            logger.error(f"Error acquiring flush lease: {e}")
            self.events.record('store_error', operation='acquire_flush_lease')
            return result

        if lease is None:
            result.skipped = True
            self.events.record('flush_skipped_in_progress')
            return result

        try:
            self._flush(settings, result)
        finally:
            self.buffer.release_flush_lease(lease)
        return result

    def _flush(self, settings: NotificationSettings, result: FlushResult) -> None:
        try:
            drained = self.buffer.drain_all()
            result.drained = len(drained)
            if not drained:
                return

            channels = NotificationChannelFactory.active_channels(settings, self.dispatcher, self.sleep)
            if not channels:
                logger.warning(f"No notification platform configured; discarding {len(drained)} buffered item(s)")
                self.events.record('platform_not_configured', path='flush', discarded=len(drained))
                result.cleared = self.buffer.clear(drained)
                return

            gif_url = self.gif_cache.get_gif(settings.giphy_api_key, settings.giphy_tag)
            rendered_at = self._now()

            per_platform: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
            for entry in drained:
                try:
                    rendered = NotificationMessageBuilder.render_item(entry.item, settings, gif_url, rendered_at)
                except Exception as e:
                    logger.error(f"Error rendering item {entry.item.id}: {e}", exc_info=True)
                    continue
                for platform, payload in rendered.items():
                    per_platform[platform].append(payload)

            outcomes = self._fan_out(
                channels,
                lambda channel: channel.deliver_items(per_platform.get(channel.channel_type, []), settings),
            )
            for channel, outcome in zip(channels, outcomes):
                if isinstance(outcome, DeliveryResult) and outcome.all_succeeded:
                    result.delivered_platforms += 1
                else:
                    result.failed_platforms += 1
                    self.events.record('delivery_failed', platform=channel.channel_type, path='flush')

            result.cleared = self.buffer.clear(drained)
            self.events.record(
                'flush_delivered',
                items=len(drained),
                platforms_ok=result.delivered_platforms,
                platforms_failed=result.failed_platforms,
            )
        except Exception as e:
            logger.error(f"Fatal error in flush: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Overflow
    # ------------------------------------------------------------------

    def on_queue_size_observed(self, count: int, settings: NotificationSettings) -> bool:
        """
        Send an overflow alert when the queue exceeds its threshold and the
        cooldown has elapsed. Returns True if at least one platform accepted it.
        """
        try:
            if not settings.enable_overflow_alerts:
                return False
            if not self.overflow_gate.should_alert(
                count, settings.overflow_threshold, settings.overflow_cooldown_seconds
            ):
                return False

            channels = NotificationChannelFactory.active_channels(settings, self.dispatcher, self.sleep)
            if not channels:
                logger.warning("No notification platform configured; skipping overflow alert")
                self.events.record('platform_not_configured', path='overflow')
                return False

            rendered = NotificationMessageBuilder.render_overflow(count, settings, self._now())
            outcomes = self._fan_out(
                channels,
                lambda channel: channel.deliver_alert(rendered[channel.channel_type], settings),
            )

            if not any(outcome is True for outcome in outcomes):
                self.events.record('delivery_failed', path='overflow', count=count)
                return False

            self.overflow_gate.record_alert_sent(settings.overflow_cooldown_seconds)
            self.events.record('overflow_alert_sent', count=count)
            return True
        except Exception as e:
            logger.error(f"Error sending overflow alert: {e}", exc_info=True)
            return False

    # ------------------------------------------------------------------

    def _fan_out(
        self,
        channels: List[NotificationChannel],
        task: Callable[[NotificationChannel], T]
    ) -> List[Optional[T]]:
        """Run task once per channel concurrently; a raising channel yields None."""
        outcomes: List[Optional[T]] = []
        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(channels)))) as pool:
            futures = [pool.submit(task, channel) for channel in channels]
            for channel, future in zip(channels, futures):
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    logger.error(f"Error delivering via {channel.channel_type}: {e}", exc_info=True)
                    outcomes.append(None)
        return outcomes


# ----------------------------------------------------------------------
# RQ task functions - must be at module level for RQ
# ----------------------------------------------------------------------

def build_service(config: Optional[AppConfig] = None) -> NotificationService:
    """Wire a NotificationService from configuration."""
    config = config or load_config(os.environ.get('CONFIG_PATH', 'config.yaml'))
    redis_conn = Redis.from_url(config.redis.url, password=config.redis.password)
    timeout = config.notifications.request_timeout_seconds
    reddit = RedditClient(request_timeout_seconds=timeout)
    return NotificationService(
        redis_conn,
        dispatcher=WebhookDispatcher(timeout=timeout),
        title_cache=TitleCacheService(redis_conn, reddit.fetch_post_title),
        gif_cache=GifCacheService(redis_conn, timeout=timeout),
    )


def _load() -> Tuple[NotificationService, NotificationSettings]:
    config = load_config(os.environ.get('CONFIG_PATH', 'config.yaml'))
    return build_service(config), config.notifications


def process_item_task(raw_item: Dict[str, Any]) -> bool:
    """Intake one raw item enqueued by the event source."""
    service, settings = _load()
    item_id = _raw_id(raw_item)
    # Repeat events must not cost a parent title lookup
    if service.tracker.is_processed(item_id):
        service.events.record('item_skipped_duplicate', item_id=item_id)
        return False
    try:
        item = service.normalize(raw_item, settings)
    except UnknownItemTypeError as e:
        logger.warning(f"{e}, skipping")
        service.tracker.mark_processed(e.item_id)
        return False
    except Exception as e:
        logger.error(f"Error normalizing item {item_id}: {e}", exc_info=True)
        return False
    return service.on_item_detected(item, settings)


def flush_task() -> int:
    service, settings = _load()
    return service.on_flush_tick(settings).drained


def backup_scan_task(raw_items: List[Dict[str, Any]]) -> int:
    service, settings = _load()
    return service.on_backup_scan(raw_items, settings).buffered


def queue_size_task(count: int) -> bool:
    service, settings = _load()
    return service.on_queue_size_observed(count, settings)
