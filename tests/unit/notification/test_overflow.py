"""Tests for the overflow alert cooldown gate."""
import pytest

from notification.overflow import LAST_OVERFLOW_KEY, OverflowGate


class TestOverflowGate:
    @pytest.fixture
    def gate(self, fake_redis, fake_clock, events):
        return OverflowGate(fake_redis, clock=fake_clock, events=events)

    def test_below_or_at_threshold(self, gate):
        assert gate.should_alert(5, threshold=5) is False
        assert gate.should_alert(0, threshold=5) is False

    def test_over_threshold_alerts(self, gate):
        assert gate.should_alert(6, threshold=5) is True

    def test_repeat_within_cooldown_is_suppressed(self, gate, fake_clock, events):
        gate.record_alert_sent(cooldown_seconds=3600)
        fake_clock.advance(60)

        assert gate.should_alert(6, threshold=5, cooldown_seconds=3600) is False
        suppressed = events.of('overflow_alert_suppressed')
        assert suppressed[0].fields['count'] == 6

    def test_alerts_again_after_cooldown(self, gate, fake_clock):
        gate.record_alert_sent(cooldown_seconds=3600)
        fake_clock.advance(3600)

        assert gate.should_alert(6, threshold=5, cooldown_seconds=3600) is True

    def test_baseline_expires_with_cooldown(self, gate, fake_redis):
        gate.record_alert_sent(cooldown_seconds=120)
        assert fake_redis.ttl(LAST_OVERFLOW_KEY) == 120

    def test_record_stores_epoch_millis(self, gate, fake_redis, fake_clock):
        gate.record_alert_sent()
        assert int(fake_redis.get(LAST_OVERFLOW_KEY)) == int(fake_clock() * 1000)
        assert gate.last_alert_ms() == int(fake_clock() * 1000)

    def test_malformed_baseline_is_ignored(self, gate, fake_redis):
        fake_redis.set(LAST_OVERFLOW_KEY, "yesterday")
        assert gate.last_alert_ms() is None
        assert gate.should_alert(6, threshold=5) is True

    def test_store_error_reads_as_no_baseline(self, gate, fake_redis, events):
        fake_redis.broken = True

        assert gate.should_alert(6, threshold=5) is True
        assert 'store_error' in events.names()

    def test_record_failure_is_swallowed(self, gate, fake_redis):
        fake_redis.broken = True
        gate.record_alert_sent()
