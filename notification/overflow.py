"""
Overflow Gate - cooldown-limited queue overflow alerts.

State lives in a single Redis key holding the epoch-millis of the last alert
that reached at least one platform; the key expires with the cooldown.

    Idle --(count > threshold and cooldown expired)--> Alerting
    Alerting --(dispatch attempted)--> Idle   (baseline reset iff any platform succeeded)
"""
import logging
import time
from typing import Callable, Optional

from redis import Redis

from notification.events import EventSink

LAST_OVERFLOW_KEY = "last_overflow_alert"
DEFAULT_COOLDOWN_SECONDS = 60 * 60

logger = logging.getLogger(__name__)


class OverflowGate:
    def __init__(
        self,
        redis_conn: Redis,
        clock: Callable[[], float] = time.time,
        events: Optional[EventSink] = None
    ):
        self.redis = redis_conn
        self.clock = clock
        self.events = events or EventSink()

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def last_alert_ms(self) -> Optional[int]:
        """Epoch millis of the last recorded alert, or None. Store errors read as None."""
        try:
            value = self.redis.get(LAST_OVERFLOW_KEY)
        except Exception as e:
            logger.error(f"Error reading last overflow alert: {e}")
            self.events.record('store_error', operation='last_overflow_alert')
            return None

        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed {LAST_OVERFLOW_KEY} value: {value!r}")
            return None

    def should_alert(
        self,
        current_count: int,
        threshold: int,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    ) -> bool:
        """True when the queue is over threshold and the cooldown has elapsed."""
        if current_count <= threshold:
            return False

        last_alert = self.last_alert_ms()
        if last_alert is None:
            return True

        elapsed_ms = self._now_ms() - last_alert
        if elapsed_ms < cooldown_seconds * 1000:
            self.events.record(
                'overflow_alert_suppressed',
                count=current_count,
                cooldown_remaining_s=round((cooldown_seconds * 1000 - elapsed_ms) / 1000, 1),
            )
            return False
        return True

    def record_alert_sent(
        self,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        now_ms: Optional[int] = None
    ) -> None:
        """Persist a new cooldown baseline. Failures are logged and swallowed."""
        now_ms = now_ms if now_ms is not None else self._now_ms()
        try:
            self.redis.set(LAST_OVERFLOW_KEY, str(now_ms), ex=cooldown_seconds)
        except Exception as e:
            logger.error(f"Error recording overflow alert: {e}")
            self.events.record('store_error', operation='record_alert_sent')
