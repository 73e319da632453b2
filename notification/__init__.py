"""
Notification Module

Moderation-queue notification pipeline: deduplicated intake, a time-ordered
buffer, per-platform rendering, retrying webhook delivery and a
cooldown-gated overflow alert.

Usage:
    from notification import NotificationService

    service = NotificationService(redis_conn)
    service.on_item_detected(item, settings)
    service.on_flush_tick(settings)
    service.on_queue_size_observed(queue_size, settings)
"""

from notification.models import (
    QueueItem,
    ItemKind,
    UnknownItemTypeError,
    is_stale,
)

from notification.events import (
    EventSink,
    RecordingEventSink,
)

from notification.tracker import DedupTracker

from notification.buffer import (
    NotificationBuffer,
    BufferedNotification,
)

from notification.retry import (
    RetryPolicy,
    RateLimitException,
    WebhookDeliveryError,
)

from notification.message_builder import (
    NotificationMessageBuilder,
    Colors,
    chunk,
)

from notification.channels import (
    NotificationChannel,
    DiscordChannel,
    SlackChannel,
    NotificationChannelFactory,
    WebhookDispatcher,
    DeliveryResult,
)

from notification.overflow import OverflowGate

from notification.service import (
    NotificationService,
    FlushResult,
    ScanResult,
    should_notify,
    process_item_task,
    flush_task,
    backup_scan_task,
    queue_size_task,
)

__all__ = [
    # Models
    'QueueItem',
    'ItemKind',
    'UnknownItemTypeError',
    'is_stale',
    # Events
    'EventSink',
    'RecordingEventSink',
    # Dedup / buffer
    'DedupTracker',
    'NotificationBuffer',
    'BufferedNotification',
    # Delivery
    'RetryPolicy',
    'RateLimitException',
    'WebhookDeliveryError',
    'NotificationMessageBuilder',
    'Colors',
    'chunk',
    'NotificationChannel',
    'DiscordChannel',
    'SlackChannel',
    'NotificationChannelFactory',
    'WebhookDispatcher',
    'DeliveryResult',
    # Overflow
    'OverflowGate',
    # Service
    'NotificationService',
    'FlushResult',
    'ScanResult',
    'should_notify',
    'process_item_task',
    'flush_task',
    'backup_scan_task',
    'queue_size_task',
]
