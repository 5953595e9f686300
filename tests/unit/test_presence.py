"""
Tests for presence freshness and the heartbeat reporter.
"""
import asyncio
from datetime import datetime, timedelta, timezone

from mingleo.common.exceptions.exceptions import TransientError
from mingleo.sync.presence import PresenceReporter, is_online

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestIsOnline:

    def test_four_minutes_old_is_online(self):
        assert is_online(NOW - timedelta(minutes=4), now=NOW)

    def test_six_minutes_old_is_offline(self):
        assert not is_online(NOW - timedelta(minutes=6), now=NOW)

    def test_exactly_at_window_is_offline(self):
        assert not is_online(NOW - timedelta(minutes=5), now=NOW)

    def test_never_reported_is_offline(self):
        assert not is_online(None, now=NOW)

    def test_accepts_iso_strings(self):
        assert is_online("2024-05-01T11:58:00Z", now=NOW)
        assert is_online("2024-05-01T11:58:00", now=NOW)

    def test_custom_window(self):
        assert not is_online(NOW - timedelta(seconds=90), now=NOW, window_seconds=60)


class TestPresenceReporter:

    async def test_start_reports_immediately(self, store, alice):
        reporter = PresenceReporter(store, alice.id, interval_seconds=60)
        await reporter.start()
        try:
            assert reporter.reports_sent == 1
            assert store.rows("users")[0]["online_at"] is not None
            assert reporter.running
        finally:
            reporter.stop()

    async def test_heartbeat_repeats_until_stopped(self, store, alice):
        reporter = PresenceReporter(store, alice.id, interval_seconds=0.01)
        await reporter.start()
        await asyncio.sleep(0.05)
        reporter.stop()
        sent = reporter.reports_sent
        assert sent >= 2

        await asyncio.sleep(0.03)
        assert reporter.reports_sent == sent
        assert not reporter.running

    async def test_failed_report_is_logged_not_raised(self, store, alice):
        store.configure_failure("update", TransientError("offline"), times=1)
        reporter = PresenceReporter(store, alice.id)
        assert await reporter.report_once() is False
        assert reporter.reports_failed == 1
        assert await reporter.report_once() is True

    async def test_stop_during_first_report_prevents_heartbeat(self, store, alice):
        reporter = PresenceReporter(store, alice.id, interval_seconds=0.01)
        starting = asyncio.create_task(reporter.start())
        await asyncio.sleep(0)

        reporter.stop()
        await starting

        assert not reporter.running
        await asyncio.sleep(0.03)
        assert reporter.reports_sent <= 1

    async def test_stop_is_idempotent(self, store, alice):
        reporter = PresenceReporter(store, alice.id)
        reporter.stop()
        await reporter.start()
        reporter.stop()
        reporter.stop()
        assert not reporter.running
