"""
Event sinks for notification pipeline decisions.

The pipeline reports what it decided (buffered, suppressed, delivered...) to a
sink passed in at construction time, so control flow never depends on log
output and tests can assert on decisions directly.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

# Events worth surfacing at WARNING level
_WARNING_EVENTS = {
    'delivery_failed',
    'store_error',
    'platform_not_configured',
    'unknown_item_type',
}


@dataclass
class PipelineEvent:
    name: str
    fields: Dict[str, Any]
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventSink:
    """Default sink: forwards every event to the module logger."""

    def record(self, event: str, **fields: Any) -> None:
        details = ", ".join(f"{k}={v}" for k, v in fields.items())
        level = logging.WARNING if event in _WARNING_EVENTS else logging.INFO
        logger.log(level, f"{event}: {details}" if details else event)


class RecordingEventSink(EventSink):
    """Keeps every event in memory (in addition to logging it)."""

    def __init__(self):
        self.events: List[PipelineEvent] = []
        self._lock = Lock()

    def record(self, event: str, **fields: Any) -> None:
        super().record(event, **fields)
        with self._lock:
            self.events.append(PipelineEvent(name=event, fields=fields))

    def names(self) -> List[str]:
        with self._lock:
            return [e.name for e in self.events]

    def of(self, event: str) -> List[PipelineEvent]:
        with self._lock:
            return [e for e in self.events if e.name == event]
