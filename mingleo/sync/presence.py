# =============================================================================
# File: mingleo/sync/presence.py
# Description: Presence heartbeat and render-time online check
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from mingleo.chat.enums import Table
from mingleo.chat.ports.store_port import DurableStorePort
from mingleo.common.exceptions.exceptions import MingleoException
from mingleo.sync.core.types import utc_now

log = logging.getLogger("mingleo.sync.presence")

DEFAULT_INTERVAL_SECONDS = 240.0
DEFAULT_WINDOW_SECONDS = 300.0


def _as_datetime(value: Union[datetime, str, None]) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def is_online(
        online_at: Union[datetime, str, None],
        now: Optional[datetime] = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
) -> bool:
    """A user is online when the last report is younger than the window."""
    reported = _as_datetime(online_at)
    if reported is None:
        return False
    if reported.tzinfo is None:
        reported = reported.replace(tzinfo=timezone.utc)
    now = now or utc_now()
    return now - reported < timedelta(seconds=window_seconds)


class PresenceReporter:
    """
    Periodically stamps ``users.online_at`` for the signed-in user.

    Reports once on start, then every ``interval_seconds`` until stopped.
    A failed report is logged and retried on the next tick.
    """

    def __init__(
            self,
            store: DurableStorePort,
            user_id: str,
            interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self._store = store
        self.user_id = user_id
        self.interval_seconds = interval_seconds

        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self.reports_sent = 0
        self.reports_failed = 0
        self.last_reported_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return

        generation = self._generation
        await self.report_once()
        if generation != self._generation:
            log.debug(f"Presence for user {self.user_id} stopped during the first report")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._heartbeat_loop(), name=f"presence-{self.user_id}")
        log.info(f"Presence reporting started for user {self.user_id} every {self.interval_seconds:.0f}s")

    def stop(self) -> None:
        """Cancel the heartbeat. Safe to call when not running, or while start() is reporting."""
        self._generation += 1
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        log.info(f"Presence reporting stopped for user {self.user_id}")

    async def report_once(self) -> bool:
        now = utc_now()
        try:
            await self._store.update(
                Table.USERS.value,
                {"id": self.user_id},
                {"online_at": now.isoformat()},
            )
        except MingleoException as e:
            self.reports_failed += 1
            log.warning(f"Presence report failed for user {self.user_id}: {e}")
            return False

        self.reports_sent += 1
        self.last_reported_at = now
        return True

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.report_once()
